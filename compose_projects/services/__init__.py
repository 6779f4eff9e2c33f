"""
Compose project services

Deployment orchestration and the compose engine it drives.
"""

from .compose_engine import ComposeEngine, DockerComposeCLI  # noqa: F401
from .deploy import (  # noqa: F401
    DeploymentOrchestrator,
    progress_writer,
    use_progress_writer,
)

__all__ = [
    "ComposeEngine",
    "DockerComposeCLI",
    "DeploymentOrchestrator",
    "progress_writer",
    "use_progress_writer",
]
