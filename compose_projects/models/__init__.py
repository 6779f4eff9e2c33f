"""Data models for compose projects."""

from .deploy import (  # noqa: F401
    ComposeUpOptions,
    ContainerSummary,
    DeployPhase,
    ProgressEvent,
)
from .includes import (  # noqa: F401
    INCLUDE_DIRECTIVE,
    IncludeFile,
    IncludeObject,
    include_paths,
)
from .project import (  # noqa: F401
    ComposeModel,
    FileObject,
    Project,
    ServiceConfig,
    ServiceVolume,
    VolumeType,
)

__all__ = [
    # Project models
    "ComposeModel",
    "FileObject",
    "Project",
    "ServiceConfig",
    "ServiceVolume",
    "VolumeType",
    # Include models
    "INCLUDE_DIRECTIVE",
    "IncludeFile",
    "IncludeObject",
    "include_paths",
    # Deploy models
    "ComposeUpOptions",
    "ContainerSummary",
    "DeployPhase",
    "ProgressEvent",
]
