"""Settings for compose project handling.

Provides centralized configuration using Pydantic BaseSettings with
environment variable support. Permission bits for files and directories
written into project directories are owned here, not by the include code.
"""

from functools import lru_cache

import structlog
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..constants import (
    DEFAULT_DIR_PERM,
    DEFAULT_FILE_PERM,
    DEPLOY_POLL_INTERVAL,
    DEPLOY_WAIT_TIMEOUT,
)

logger = structlog.get_logger()


def parse_permission(value: object, default: int) -> int:
    """Parse a permission value such as ``"0644"``, ``"644"``, ``"0o644"`` or ``0o644``.

    Invalid values fall back to ``default`` with a warning.
    """
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        perm = value
    else:
        text = str(value).strip().lower()
        if text.startswith("0o"):
            text = text[2:]
        try:
            perm = int(text, 8)
        except ValueError:
            logger.warning("Invalid permission value, using default", value=value, default=oct(default))
            return default
    if perm < 0 or perm > 0o7777:
        logger.warning("Permission value out of range, using default", value=value, default=oct(default))
        return default
    return perm


class ProjectSettings(BaseSettings):
    """Configuration for project files, path mapping and deployments."""

    projects_directory: str = Field(
        "/app/data/projects",
        alias="PROJECTS_DIRECTORY",
        description="Directory holding project folders, as seen from this process",
    )
    host_projects_directory: str = Field(
        "",
        alias="HOST_PROJECTS_DIRECTORY",
        description="Same directory as seen by the Docker host; empty means matching mount",
    )
    file_perm: int = Field(DEFAULT_FILE_PERM, alias="FILE_PERM", description="Mode for new files")
    dir_perm: int = Field(DEFAULT_DIR_PERM, alias="DIR_PERM", description="Mode for new directories")
    deploy_poll_interval: float = Field(
        DEPLOY_POLL_INTERVAL,
        alias="DEPLOY_POLL_INTERVAL",
        gt=0,
        description="Seconds between container status polls during compose up",
    )
    deploy_wait_timeout: int = Field(
        DEPLOY_WAIT_TIMEOUT,
        alias="DEPLOY_WAIT_TIMEOUT",
        gt=0,
        description="Seconds a service group may take to become healthy",
    )
    docker_cli_timeout: int = Field(
        60, alias="DOCKER_CLI_TIMEOUT", description="Docker CLI command timeout in seconds"
    )
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_dir: str = Field("logs", alias="LOG_DIR")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    @field_validator("file_perm", mode="before")
    @classmethod
    def _parse_file_perm(cls, value: object) -> int:
        return parse_permission(value, DEFAULT_FILE_PERM)

    @field_validator("dir_perm", mode="before")
    @classmethod
    def _parse_dir_perm(cls, value: object) -> int:
        return parse_permission(value, DEFAULT_DIR_PERM)


@lru_cache(maxsize=1)
def get_settings() -> ProjectSettings:
    """Return the process-wide settings instance."""
    return ProjectSettings()
