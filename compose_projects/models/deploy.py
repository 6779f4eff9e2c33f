"""Deployment progress models."""

import json
from enum import Enum
from typing import Any, Literal

from pydantic import AliasChoices, ConfigDict, Field, field_validator

from ..constants import DEPLOY_EVENT_TYPE, DEPLOY_WAIT_TIMEOUT, RECREATE_DIVERGED
from .project import ComposeModel


class DeployPhase(str, Enum):
    """Phases reported on the deploy progress stream."""

    BEGIN = "begin"
    SERVICE_HEALTHY = "service_healthy"
    SERVICE_WAITING_HEALTHY = "service_waiting_healthy"
    SERVICE_STATE = "service_state"
    SERVICE_STATUS = "service_status"


class ContainerSummary(ComposeModel):
    """One container row as reported by ``docker compose ps``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    service: str = Field("", validation_alias=AliasChoices("service", "Service"))
    name: str = Field("", validation_alias=AliasChoices("name", "Name"))
    state: str = Field("", validation_alias=AliasChoices("state", "State"))
    health: str = Field("", validation_alias=AliasChoices("health", "Health"))
    status: str = Field("", validation_alias=AliasChoices("status", "Status"))

    @field_validator("service", "name", "state", "health", "status", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class ProgressEvent(ComposeModel):
    """A single line on the deploy progress stream."""

    type: Literal["deploy"] = DEPLOY_EVENT_TYPE
    phase: DeployPhase
    service: str | None = None
    state: str | None = None
    health: str | None = None
    status: str | None = None

    def to_json(self) -> str:
        payload = self.model_dump(mode="json")
        if not payload.get("status"):
            payload.pop("status", None)
        return json.dumps(payload, separators=(",", ":"))


class ComposeUpOptions(ComposeModel):
    """Engine-facing options for ``compose up``."""

    services: list[str] = Field(default_factory=list)
    recreate: Literal["diverged", "force", "never"] = RECREATE_DIVERGED
    recreate_dependencies: Literal["diverged", "force", "never"] = RECREATE_DIVERGED
    remove_orphans: bool = False
    wait: bool = True
    wait_timeout: float = Field(DEPLOY_WAIT_TIMEOUT, gt=0, description="Seconds")
    # Any dependency failing its healthcheck fails the whole operation
    cascade_fail: bool = True
