"""Compose deployments with a streamed progress feed.

``DeploymentOrchestrator.up`` runs ``compose up`` to completion. When the
calling context carries a progress writer (see ``use_progress_writer``), it
also polls container status while ``up`` runs and writes one JSON object
per line for every service whose status changed, e.g. (wrapped here)::

    {"type":"deploy","phase":"begin"}
    {"type":"deploy","phase":"service_waiting_healthy","service":"db",
     "state":"running","health":"starting","status":"Up 3 seconds (health: starting)"}
    {"type":"deploy","phase":"service_healthy","service":"db",
     "state":"running","health":"healthy","status":"Up 9 seconds (healthy)"}

The progress feed is advisory; the result of ``up`` is authoritative.
"""

import asyncio
import io
import json
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, TextIO

import structlog

from ..constants import (
    DEPLOY_POLL_INTERVAL,
    DEPLOY_WAIT_TIMEOUT,
    HEALTH_HEALTHY,
    HEALTH_STARTING,
    HEALTH_UNHEALTHY,
    RECREATE_DIVERGED,
    STATE_RUNNING,
)
from ..core.path_mapper import PathMapper
from ..core.settings import ProjectSettings
from ..models.deploy import ComposeUpOptions, ContainerSummary, DeployPhase, ProgressEvent
from ..models.project import Project
from .compose_engine import ComposeEngine

logger = structlog.get_logger()

# Writer for JSON-line progress updates, typically wrapping an HTTP response
progress_writer: ContextVar[Any | None] = ContextVar("progress_writer", default=None)


@contextmanager
def use_progress_writer(writer: Any) -> Iterator[Any]:
    """Make ``writer`` the progress sink for deployments run in this context."""
    token = progress_writer.set(writer)
    try:
        yield writer
    finally:
        progress_writer.reset(token)


def write_json_line(writer: Any, payload: ProgressEvent | dict[str, Any]) -> None:
    """Write one JSON line to ``writer`` and flush it if possible. Never raises."""
    if writer is None:
        return

    if isinstance(payload, ProgressEvent):
        line = payload.to_json()
    else:
        line = json.dumps(payload, separators=(",", ":"))
    line += "\n"

    try:
        if isinstance(writer, (io.RawIOBase, io.BufferedIOBase)):
            writer.write(line.encode())
        else:
            try:
                writer.write(line)
            except TypeError:
                # bytes-only sink that is not an io class
                writer.write(line.encode())
        flush = getattr(writer, "flush", None)
        if callable(flush):
            flush()
    except (OSError, ValueError, TypeError) as e:
        logger.debug("Dropping progress line, writer failed", error=str(e))


def compose_up_options(
    services: list[str] | None = None,
    remove_orphans: bool = False,
    wait_timeout: float = DEPLOY_WAIT_TIMEOUT,
) -> ComposeUpOptions:
    """Options for deploy-style ``compose up``.

    Services and their dependencies are recreated when their configuration
    diverged. A dependency failing its healthcheck within ``wait_timeout``
    fails the whole operation.
    """
    return ComposeUpOptions(
        services=list(services or []),
        recreate=RECREATE_DIVERGED,
        recreate_dependencies=RECREATE_DIVERGED,
        remove_orphans=remove_orphans,
        wait=True,
        wait_timeout=wait_timeout,
        cascade_fail=True,
    )


def phase_for_summary(summary: ContainerSummary) -> DeployPhase:
    """Map a container's (state, health) to a progress phase."""
    state = summary.state.strip().lower()
    health = summary.health.strip().lower()

    if state == STATE_RUNNING and health == HEALTH_HEALTHY:
        return DeployPhase.SERVICE_HEALTHY
    if health in (HEALTH_STARTING, HEALTH_UNHEALTHY):
        return DeployPhase.SERVICE_WAITING_HEALTHY
    if state and state != STATE_RUNNING:
        return DeployPhase.SERVICE_STATE
    return DeployPhase.SERVICE_STATUS


class ProgressTracker:
    """Turns container snapshots into deduplicated progress events.

    Owned by a single poller, so the signature table needs no lock.
    """

    def __init__(self, writer: Any):
        self.writer = writer
        self._last_signature: dict[str, str] = {}

    def update(self, summary: ContainerSummary) -> ProgressEvent | None:
        """Emit an event for ``summary`` if its service changed since the last emission."""
        name = summary.service.strip() or summary.name.strip()
        if not name:
            return None

        phase = phase_for_summary(summary)
        status = summary.status.strip()
        signature = "|".join([phase.value, summary.state, summary.health, status])
        if self._last_signature.get(name) == signature:
            return None
        self._last_signature[name] = signature

        event = ProgressEvent(
            phase=phase,
            service=name,
            state=summary.state,
            health=summary.health,
            status=status or None,
        )
        write_json_line(self.writer, event)
        return event


class DeploymentOrchestrator:
    """Runs compose operations for projects against a compose engine."""

    def __init__(
        self,
        engine: ComposeEngine,
        poll_interval: float = DEPLOY_POLL_INTERVAL,
        wait_timeout: float = DEPLOY_WAIT_TIMEOUT,
        path_mapper: PathMapper | None = None,
    ):
        self.engine = engine
        self.poll_interval = poll_interval
        self.wait_timeout = wait_timeout
        self.path_mapper = path_mapper
        self.logger = logger.bind(component="deployment_orchestrator")

    @classmethod
    def from_settings(
        cls, engine: ComposeEngine, settings: ProjectSettings, path_mapper: PathMapper | None = None
    ) -> "DeploymentOrchestrator":
        return cls(
            engine,
            poll_interval=settings.deploy_poll_interval,
            wait_timeout=settings.deploy_wait_timeout,
            path_mapper=path_mapper,
        )

    async def up(
        self,
        project: Project,
        services: list[str] | None = None,
        remove_orphans: bool = False,
    ) -> None:
        """Bring ``project`` up and wait for it to become healthy.

        With a progress writer in context, progress lines are streamed while
        waiting. The poller is always stopped and joined before this returns.

        Raises:
            ComposeEngineError: If the engine reports failure; raised unchanged
            PathTranslationError: If bind sources cannot be mapped to the host
        """
        if self.path_mapper is not None and self.path_mapper.is_non_matching:
            project = project.model_copy(deep=True)
            self.path_mapper.translate_volume_sources(project)

        options = compose_up_options(services, remove_orphans, self.wait_timeout)
        writer = progress_writer.get()

        if writer is None:
            await self.engine.up(project, options)
            self.logger.info("Compose up completed", project=project.name)
            return

        write_json_line(writer, ProgressEvent(phase=DeployPhase.BEGIN))

        poller = asyncio.create_task(
            self._poll_progress(project.name, writer), name=f"deploy-progress-{project.name}"
        )
        try:
            await self.engine.up(project, options)
        except Exception as e:
            self.logger.error("Compose up failed", project=project.name, error=str(e))
            raise
        finally:
            poller.cancel()
            await asyncio.wait({poller})
            if not poller.cancelled() and poller.exception() is not None:
                self.logger.warning(
                    "Progress poller stopped with an error",
                    project=project.name,
                    error=str(poller.exception()),
                )

        self.logger.info("Compose up completed", project=project.name)

    async def _poll_progress(self, project_name: str, writer: Any) -> None:
        tracker = ProgressTracker(writer)
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                containers = await self.engine.ps(project_name, all=True)
            except Exception as e:
                # Containers may still be being created
                self.logger.debug("Progress poll failed, retrying", project=project_name, error=str(e))
                continue
            for summary in containers:
                tracker.update(summary)

    async def restart(self, project: Project, services: list[str] | None = None) -> None:
        await self.engine.restart(project.name, services)

    async def down(self, project: Project, remove_volumes: bool = False) -> None:
        await self.engine.down(project.name, remove_orphans=True, volumes=remove_volumes)

    async def ps(self, project: Project, all: bool = True) -> list[ContainerSummary]:
        return await self.engine.ps(project.name, all=all)

    async def logs(
        self, project_name: str, out: TextIO, follow: bool = False, tail: str = "all"
    ) -> None:
        await self.engine.logs(project_name, out, follow=follow, tail=tail)
