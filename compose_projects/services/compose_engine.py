"""Compose engine interface and a ``docker compose`` CLI implementation."""

import asyncio
import json
from typing import Protocol, TextIO, runtime_checkable

import structlog
import yaml
from pydantic import ValidationError

from ..constants import RECREATE_FORCE, RECREATE_NEVER
from ..core.exceptions import ComposeCommandError, ComposeEngineError
from ..core.settings import ProjectSettings
from ..core.subprocess_manager import SubprocessManager
from ..models.deploy import ComposeUpOptions, ContainerSummary
from ..models.project import Project

logger = structlog.get_logger()

# Extra time on top of the health wait for pulling images and creating containers
UP_TIMEOUT_PADDING = 300


@runtime_checkable
class ComposeEngine(Protocol):
    """Operations the deployment code needs from a compose implementation."""

    async def up(self, project: Project, options: ComposeUpOptions) -> None: ...

    async def ps(self, project_name: str, all: bool = False) -> list[ContainerSummary]: ...

    async def down(
        self, project_name: str, remove_orphans: bool = True, volumes: bool = False
    ) -> None: ...

    async def restart(self, project_name: str, services: list[str] | None = None) -> None: ...

    async def logs(
        self, project_name: str, out: TextIO, follow: bool = False, tail: str = "all"
    ) -> None: ...


def parse_ps_output(output: str) -> list[ContainerSummary]:
    """Parse ``docker compose ps --format json`` output.

    Older compose releases print one JSON array, newer ones one object per line.
    """
    output = output.strip()
    if not output:
        return []

    if output.startswith("["):
        rows = json.loads(output)
    else:
        rows = []
        for line in output.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                rows.append(json.loads(line))
            except json.JSONDecodeError:
                logger.warning("Failed to parse docker compose ps output line", line=line)

    summaries = []
    for row in rows:
        try:
            summaries.append(ContainerSummary.model_validate(row))
        except ValidationError as e:
            logger.warning("Ignoring malformed compose ps row", row=row, error=str(e))
    return summaries


class DockerComposeCLI:
    """Compose engine backed by the ``docker compose`` command line plugin.

    The project document is rendered to YAML and passed on stdin, so no
    compose file has to exist on disk for ``up``.
    """

    def __init__(
        self,
        subprocess_manager: SubprocessManager | None = None,
        docker_bin: str = "docker",
        command_timeout: float = 60,
    ):
        self.subprocess_manager = subprocess_manager or SubprocessManager()
        self.docker_bin = docker_bin
        self.command_timeout = command_timeout

    @classmethod
    def from_settings(cls, settings: ProjectSettings) -> "DockerComposeCLI":
        return cls(command_timeout=settings.docker_cli_timeout)

    def _base_command(self, project_name: str) -> list[str]:
        return [self.docker_bin, "compose", "--ansi", "never", "--project-name", project_name]

    def build_up_command(self, project: Project, options: ComposeUpOptions) -> list[str]:
        cmd = self._base_command(project.name)
        if project.working_dir:
            cmd += ["--project-directory", project.working_dir]
        cmd += ["--file", "-", "up", "--detach"]

        if options.recreate == RECREATE_FORCE:
            cmd.append("--force-recreate")
        elif options.recreate == RECREATE_NEVER:
            cmd.append("--no-recreate")
        if options.recreate_dependencies == RECREATE_FORCE:
            cmd.append("--always-recreate-deps")
        if options.remove_orphans:
            cmd.append("--remove-orphans")
        # --wait fails the whole command when any waited service is unhealthy,
        # which is the cascading policy; --abort-on-container-failure
        # cannot be combined with --detach.
        if options.wait:
            cmd += ["--wait", "--wait-timeout", str(int(options.wait_timeout))]

        cmd += options.services
        return cmd

    async def _run(
        self, cmd: list[str], action: str, *, timeout: float | None = None, stdin: str | None = None
    ) -> str:
        try:
            result = await self.subprocess_manager.run_command(
                cmd, timeout=timeout or self.command_timeout, stdin=stdin
            )
        except ComposeCommandError as e:
            raise ComposeEngineError(f"compose {action} failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise ComposeEngineError(f"compose {action} timed out: {e}") from e
        return result.stdout

    async def up(self, project: Project, options: ComposeUpOptions) -> None:
        cmd = self.build_up_command(project, options)
        document = yaml.safe_dump(project.to_compose_dict(), sort_keys=False)
        logger.info(
            "Running compose up",
            project=project.name,
            services=options.services or "all",
            remove_orphans=options.remove_orphans,
            wait_timeout=options.wait_timeout,
        )
        await self._run(cmd, "up", timeout=options.wait_timeout + UP_TIMEOUT_PADDING, stdin=document)

    async def ps(self, project_name: str, all: bool = False) -> list[ContainerSummary]:
        cmd = self._base_command(project_name) + ["ps", "--format", "json"]
        if all:
            cmd.append("--all")
        output = await self._run(cmd, "ps")
        try:
            return parse_ps_output(output)
        except json.JSONDecodeError as e:
            raise ComposeEngineError(f"compose ps returned invalid JSON: {e}") from e

    async def down(self, project_name: str, remove_orphans: bool = True, volumes: bool = False) -> None:
        cmd = self._base_command(project_name) + ["down"]
        if remove_orphans:
            cmd.append("--remove-orphans")
        if volumes:
            cmd.append("--volumes")
        await self._run(cmd, "down")

    async def restart(self, project_name: str, services: list[str] | None = None) -> None:
        cmd = self._base_command(project_name) + ["restart", *(services or [])]
        await self._run(cmd, "restart")

    async def logs(self, project_name: str, out: TextIO, follow: bool = False, tail: str = "all") -> None:
        cmd = self._base_command(project_name) + ["logs", "--no-color", "--tail", tail]
        if follow:
            cmd.append("--follow")

        def write_line(line: str) -> None:
            out.write(line if line.endswith("\n") else line + "\n")

        try:
            returncode = await self.subprocess_manager.stream_command(cmd, write_line)
        except ComposeCommandError as e:
            raise ComposeEngineError(f"compose logs failed: {e}") from e
        if returncode != 0:
            raise ComposeEngineError(f"compose logs failed with exit code {returncode}")
