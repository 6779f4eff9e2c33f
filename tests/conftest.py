"""Shared pytest fixtures for compose project tests."""

import os
from collections.abc import Callable
from pathlib import Path

import pytest

from compose_projects.core.settings import ProjectSettings


@pytest.fixture
def settings() -> ProjectSettings:
    """Settings with explicit values so the developer's environment does not leak in."""
    return ProjectSettings(
        PROJECTS_DIRECTORY="/app/data/projects",
        HOST_PROJECTS_DIRECTORY="",
        FILE_PERM="0644",
        DIR_PERM="0755",
        DEPLOY_POLL_INTERVAL=0.01,
        DEPLOY_WAIT_TIMEOUT=120,
        _env_file=None,
    )


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """An empty project directory."""
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture
def outside_dir(tmp_path: Path) -> Path:
    """A directory next to, but not inside, the project directory."""
    path = tmp_path / "outside"
    path.mkdir()
    return path


@pytest.fixture
def write_compose(project_dir: Path) -> Callable[..., Path]:
    """Write a compose file (default ``compose.yaml``) into the project directory."""

    def _write(content: str, name: str = "compose.yaml") -> Path:
        path = project_dir / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Remove settings-related variables from the environment."""
    for name in (
        "PROJECTS_DIRECTORY",
        "HOST_PROJECTS_DIRECTORY",
        "FILE_PERM",
        "DIR_PERM",
        "DEPLOY_POLL_INTERVAL",
        "DEPLOY_WAIT_TIMEOUT",
        "DOCKER_CLI_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(os.path.dirname(__file__))
    return monkeypatch
