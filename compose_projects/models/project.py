"""Compose project data models.

Minimal in-memory representation of a loaded compose document: enough of
services, volumes, secrets and configs for path translation and for
handing the document back to the compose engine.
"""

import posixpath
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..constants import (
    CONFIGS_KEY,
    NAME_KEY,
    NETWORKS_KEY,
    SECRETS_KEY,
    SERVICES_KEY,
    VOLUMES_KEY,
)

# Top-level keys modelled explicitly; everything else is carried in Project.extras
_MODELLED_KEYS = frozenset({NAME_KEY, SERVICES_KEY, VOLUMES_KEY, NETWORKS_KEY, SECRETS_KEY, CONFIGS_KEY})


class ComposeModel(BaseModel):
    """Base model with common settings."""

    def model_dump(self, **kwargs) -> dict[str, Any]:
        """Convert to dict with exclude_none by default."""
        kwargs.setdefault("exclude_none", True)
        return super().model_dump(**kwargs)


class VolumeType(str, Enum):
    """Mount types from the compose specification."""

    BIND = "bind"
    VOLUME = "volume"
    TMPFS = "tmpfs"
    NPIPE = "npipe"
    CLUSTER = "cluster"
    IMAGE = "image"


class ServiceVolume(ComposeModel):
    """A single service volume in long syntax."""

    model_config = ConfigDict(extra="allow")

    type: VolumeType = VolumeType.VOLUME
    source: str | None = None
    target: str
    read_only: bool = False

    @classmethod
    def from_compose(cls, entry: Any) -> "ServiceVolume":
        """Build from short (``src:dst[:mode]``) or long (mapping) syntax."""
        if isinstance(entry, dict):
            return cls.model_validate(entry)

        parts = str(entry).split(":")
        # Windows drive letter in the source, e.g. C:/data:/data
        if len(parts) >= 3 and len(parts[0]) == 1 and parts[0].isalpha():
            parts = [f"{parts[0]}:{parts[1]}", *parts[2:]]

        if len(parts) == 1:
            return cls(type=VolumeType.VOLUME, target=parts[0])

        source, target = parts[0], parts[1]
        mode = parts[2] if len(parts) > 2 else ""
        is_path = source.startswith(("/", ".", "~")) or (len(source) > 1 and source[1] == ":")
        return cls(
            type=VolumeType.BIND if is_path else VolumeType.VOLUME,
            source=source,
            target=target,
            read_only="ro" in mode.split(","),
        )

    def to_compose(self) -> dict[str, Any]:
        data = self.model_dump(mode="json")
        if not data.get("read_only"):
            data.pop("read_only", None)
        return data


class ServiceConfig(ComposeModel):
    """A compose service; keys other than volumes are carried through untouched."""

    model_config = ConfigDict(extra="allow")

    name: str
    image: str | None = None
    volumes: list[ServiceVolume] = Field(default_factory=list)

    def to_compose(self) -> dict[str, Any]:
        data = self.model_dump(mode="json", exclude={"name", "volumes"})
        if self.volumes:
            data["volumes"] = [volume.to_compose() for volume in self.volumes]
        return data


class FileObject(ComposeModel):
    """A top-level secret or config definition."""

    model_config = ConfigDict(extra="allow")

    file: str | None = None
    external: bool | None = None
    name: str | None = None


class Project(ComposeModel):
    """A loaded compose project."""

    name: str
    working_dir: str | None = None
    services: dict[str, ServiceConfig] = Field(default_factory=dict)
    volumes: dict[str, dict[str, Any]] = Field(default_factory=dict)
    networks: dict[str, dict[str, Any]] = Field(default_factory=dict)
    secrets: dict[str, FileObject] = Field(default_factory=dict)
    configs: dict[str, FileObject] = Field(default_factory=dict)
    extras: dict[str, Any] = Field(
        default_factory=dict, description="Other top-level keys (x-*, include, ...), passed through as-is"
    )

    @classmethod
    def from_compose_dict(
        cls, name: str, data: dict[str, Any] | None, working_dir: str | None = None
    ) -> "Project":
        """Build a project from a decoded compose document."""
        data = data or {}
        services = {}
        for service_name, raw in (data.get(SERVICES_KEY) or {}).items():
            raw = dict(raw or {})
            volumes = [ServiceVolume.from_compose(v) for v in raw.pop("volumes", None) or []]
            for volume in volumes:
                if volume.type is VolumeType.BIND:
                    volume.source = _resolve_relative(working_dir, volume.source)
            services[service_name] = ServiceConfig(name=service_name, volumes=volumes, **raw)

        secrets = {k: FileObject(**(v or {})) for k, v in (data.get(SECRETS_KEY) or {}).items()}
        configs = {k: FileObject(**(v or {})) for k, v in (data.get(CONFIGS_KEY) or {}).items()}
        for file_object in [*secrets.values(), *configs.values()]:
            file_object.file = _resolve_relative(working_dir, file_object.file)

        return cls(
            name=name,
            working_dir=working_dir,
            services=services,
            volumes={k: dict(v or {}) for k, v in (data.get(VOLUMES_KEY) or {}).items()},
            networks={k: dict(v or {}) for k, v in (data.get(NETWORKS_KEY) or {}).items()},
            secrets=secrets,
            configs=configs,
            extras={k: v for k, v in data.items() if k not in _MODELLED_KEYS},
        )

    def to_compose_dict(self) -> dict[str, Any]:
        """Render the project back into a compose document."""
        document: dict[str, Any] = {
            "name": self.name,
            "services": {name: svc.to_compose() for name, svc in self.services.items()},
        }
        if self.volumes:
            document["volumes"] = self.volumes
        if self.networks:
            document["networks"] = self.networks
        if self.secrets:
            document["secrets"] = {k: v.model_dump() for k, v in self.secrets.items()}
        if self.configs:
            document["configs"] = {k: v.model_dump() for k, v in self.configs.items()}
        for key, value in self.extras.items():
            document.setdefault(key, value)
        return document

    def service_names(self) -> list[str]:
        return list(self.services)


def _resolve_relative(working_dir: str | None, path: str | None) -> str | None:
    """Anchor a ``./``-style path at the project working directory."""
    if not working_dir or not path or not path.startswith("."):
        return path
    return posixpath.normpath(posixpath.join(working_dir, path))
