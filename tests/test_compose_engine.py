"""Tests for the docker compose CLI engine."""

import asyncio
import io
from unittest.mock import AsyncMock, MagicMock

import pytest
import yaml

from compose_projects.core.exceptions import ComposeCommandError, ComposeEngineError
from compose_projects.core.subprocess_manager import SubprocessResult
from compose_projects.models import ComposeUpOptions, Project
from compose_projects.services.compose_engine import (
    UP_TIMEOUT_PADDING,
    ComposeEngine,
    DockerComposeCLI,
    parse_ps_output,
)
from compose_projects.services.deploy import compose_up_options

BASE = ["docker", "compose", "--ansi", "never", "--project-name", "site"]


@pytest.fixture
def project() -> Project:
    return Project.from_compose_dict(
        "site",
        {"services": {"web": {"image": "nginx", "volumes": ["./html:/usr/share/nginx/html:ro"]}}},
        working_dir="/app/data/projects/site",
    )


@pytest.fixture
def manager() -> MagicMock:
    mock = MagicMock()
    mock.run_command = AsyncMock(return_value=SubprocessResult(0, "", "", []))
    mock.stream_command = AsyncMock(return_value=0)
    return mock


@pytest.fixture
def cli(manager) -> DockerComposeCLI:
    return DockerComposeCLI(subprocess_manager=manager, command_timeout=10)


class TestBuildUpCommand:
    """Translation of up options to CLI flags."""

    def test_deploy_options(self, cli, project):
        cmd = cli.build_up_command(project, compose_up_options(["web"], remove_orphans=True, wait_timeout=45))

        assert cmd == BASE + [
            "--project-directory",
            "/app/data/projects/site",
            "--file",
            "-",
            "up",
            "--detach",
            "--remove-orphans",
            "--wait",
            "--wait-timeout",
            "45",
            "web",
        ]

    def test_force_recreate(self, cli, project):
        options = ComposeUpOptions(recreate="force", recreate_dependencies="force", wait=False)

        cmd = cli.build_up_command(project, options)

        assert "--force-recreate" in cmd
        assert "--always-recreate-deps" in cmd
        assert "--wait" not in cmd

    def test_never_recreate(self, cli, project):
        cmd = cli.build_up_command(project, ComposeUpOptions(recreate="never"))
        assert "--no-recreate" in cmd
        assert "--force-recreate" not in cmd

    def test_without_working_dir(self, cli):
        cmd = cli.build_up_command(Project(name="site"), ComposeUpOptions())
        assert "--project-directory" not in cmd


class TestParsePsOutput:
    """Both output shapes of ``compose ps --format json``."""

    def test_ndjson(self):
        output = (
            '{"Service":"db","Name":"site-db-1","State":"running","Health":"healthy","Status":"Up 5s"}\n'
            '{"Service":"web","Name":"site-web-1","State":"exited","Health":"","Status":"Exited (1)"}\n'
        )

        rows = parse_ps_output(output)

        assert [(r.service, r.state, r.health) for r in rows] == [
            ("db", "running", "healthy"),
            ("web", "exited", ""),
        ]

    def test_json_array(self):
        rows = parse_ps_output('[{"Service":"db","State":"running"}]')
        assert rows[0].service == "db"

    def test_empty_output(self):
        assert parse_ps_output("  \n") == []

    def test_bad_lines_are_skipped(self):
        rows = parse_ps_output('not json\n{"Service":"db","State":"running"}\n[1, 2]\n')
        assert [r.service for r in rows] == ["db"]


@pytest.mark.asyncio
class TestDockerComposeCLI:
    """Commands issued through the subprocess manager."""

    async def test_up_sends_document_on_stdin(self, cli, manager, project):
        options = compose_up_options(wait_timeout=30)

        await cli.up(project, options)

        cmd = manager.run_command.call_args.args[0]
        kwargs = manager.run_command.call_args.kwargs
        assert cmd == cli.build_up_command(project, options)
        assert kwargs["timeout"] == 30 + UP_TIMEOUT_PADDING
        document = yaml.safe_load(kwargs["stdin"])
        assert document["name"] == "site"
        assert document["services"]["web"]["volumes"][0] == {
            "type": "bind",
            "source": "/app/data/projects/site/html",
            "target": "/usr/share/nginx/html",
            "read_only": True,
        }

    async def test_up_document_keeps_networks(self, cli, manager):
        project = Project.from_compose_dict(
            "site",
            {
                "services": {"web": {"image": "nginx", "networks": ["front"]}},
                "networks": {"front": {"driver": "bridge"}},
                "x-owner": "ops",
            },
        )

        await cli.up(project, compose_up_options())

        document = yaml.safe_load(manager.run_command.call_args.kwargs["stdin"])
        assert document["networks"] == {"front": {"driver": "bridge"}}
        assert document["services"]["web"]["networks"] == ["front"]
        assert document["x-owner"] == "ops"

    async def test_up_failure_is_an_engine_error(self, cli, manager, project):
        manager.run_command.side_effect = ComposeCommandError("dependency failed to start: container db is unhealthy")

        with pytest.raises(ComposeEngineError, match="unhealthy"):
            await cli.up(project, compose_up_options())

    async def test_timeout_is_an_engine_error(self, cli, manager, project):
        manager.run_command.side_effect = asyncio.TimeoutError("Command timed out after 420 seconds")

        with pytest.raises(ComposeEngineError, match="timed out"):
            await cli.up(project, compose_up_options())

    async def test_ps(self, cli, manager):
        manager.run_command.return_value = SubprocessResult(0, '{"Service":"db","State":"running"}\n', "", [])

        rows = await cli.ps("site", all=True)

        manager.run_command.assert_awaited_once_with(BASE + ["ps", "--format", "json", "--all"], timeout=10, stdin=None)
        assert rows[0].service == "db"

    async def test_ps_invalid_array(self, cli, manager):
        manager.run_command.return_value = SubprocessResult(0, "[not json", "", [])

        with pytest.raises(ComposeEngineError, match="invalid JSON"):
            await cli.ps("site")

    async def test_down(self, cli, manager):
        await cli.down("site", volumes=True)

        cmd = manager.run_command.call_args.args[0]
        assert cmd == BASE + ["down", "--remove-orphans", "--volumes"]

    async def test_restart_services(self, cli, manager):
        await cli.restart("site", ["web", "db"])

        assert manager.run_command.call_args.args[0] == BASE + ["restart", "web", "db"]

    async def test_logs_are_written_line_by_line(self, cli, manager):
        async def fake_stream(cmd, on_line, **kwargs):
            on_line("web-1  | started\n")
            on_line("web-1  | no newline")
            return 0

        manager.stream_command.side_effect = fake_stream
        out = io.StringIO()

        await cli.logs("site", out, follow=True, tail="100")

        assert manager.stream_command.call_args.args[0] == BASE + [
            "logs",
            "--no-color",
            "--tail",
            "100",
            "--follow",
        ]
        assert out.getvalue() == "web-1  | started\nweb-1  | no newline\n"

    async def test_logs_failure(self, cli, manager):
        manager.stream_command.return_value = 1

        with pytest.raises(ComposeEngineError, match="exit code 1"):
            await cli.logs("site", io.StringIO())


def test_cli_satisfies_protocol():
    assert isinstance(DockerComposeCLI(), ComposeEngine)


def test_from_settings(settings):
    cli = DockerComposeCLI.from_settings(settings)
    assert cli.command_timeout == settings.docker_cli_timeout
