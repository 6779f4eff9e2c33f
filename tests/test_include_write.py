"""Tests for confined include file writes and deletes."""

import os
import stat
import sys

import pytest

from compose_projects.core.exceptions import (
    IncludeValidationError,
    IncludeWriteError,
    WriteAccessDeniedError,
)
from compose_projects.core.includes import (
    confine,
    delete_include_file,
    is_within,
    validate_include_path_for_write,
    write_include_file,
)
from compose_projects.core.settings import ProjectSettings

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="requires POSIX symlinks and modes")


class TestValidateIncludePathForWrite:
    """Path validation before any filesystem change."""

    def test_relative_path_inside_project(self, project_dir):
        result = validate_include_path_for_write(str(project_dir), "services/db.yaml")
        assert result == str(project_dir / "services" / "db.yaml")

    def test_absolute_path_inside_project(self, project_dir):
        target = project_dir / "db.yaml"
        assert validate_include_path_for_write(str(project_dir), str(target)) == str(target)

    def test_path_is_cleaned(self, project_dir):
        result = validate_include_path_for_write(str(project_dir), "./a/../b.yaml")
        assert result == str(project_dir / "b.yaml")

    @pytest.mark.parametrize("include_path", ["../escape.yaml", "a/../../escape.yaml", "/etc/passwd"])
    def test_outside_paths_denied(self, project_dir, include_path):
        with pytest.raises(WriteAccessDeniedError, match="outside project directory"):
            validate_include_path_for_write(str(project_dir), include_path)

    @pytest.mark.parametrize("include_path", [".", "./", "a/.."])
    def test_project_root_denied(self, project_dir, include_path):
        with pytest.raises(WriteAccessDeniedError, match="project directory itself"):
            validate_include_path_for_write(str(project_dir), include_path)

    def test_sibling_with_shared_prefix_denied(self, tmp_path, project_dir):
        with pytest.raises(WriteAccessDeniedError):
            validate_include_path_for_write(str(project_dir), str(tmp_path / "project-other" / "x.yaml"))

    def test_denied_is_a_validation_error(self, project_dir):
        with pytest.raises(IncludeValidationError):
            validate_include_path_for_write(str(project_dir), "../x.yaml")

    def test_empty_include_path(self, project_dir):
        with pytest.raises(IncludeValidationError, match="cannot be empty"):
            validate_include_path_for_write(str(project_dir), "")

    def test_empty_project_dir(self):
        with pytest.raises(IncludeValidationError, match="empty path"):
            validate_include_path_for_write("", "x.yaml")

    @posix_only
    def test_symlinked_project_dir_returns_unresolved_path(self, tmp_path, project_dir):
        link = tmp_path / "linked-project"
        link.symlink_to(project_dir, target_is_directory=True)

        result = validate_include_path_for_write(str(link), "db.yaml")

        assert result == str(link / "db.yaml")


@posix_only
class TestSymlinkConfinement:
    """Planted symlinks must not redirect writes outside the project."""

    def test_symlinked_directory_escape_denied(self, project_dir, outside_dir):
        (project_dir / "escape").symlink_to(outside_dir, target_is_directory=True)

        with pytest.raises(WriteAccessDeniedError):
            write_include_file(str(project_dir), "escape/evil.yaml", "services: {}\n")

        assert not (outside_dir / "evil.yaml").exists()

    def test_missing_directory_under_escaping_symlink_denied(self, project_dir, outside_dir):
        (project_dir / "escape").symlink_to(outside_dir, target_is_directory=True)

        with pytest.raises(WriteAccessDeniedError):
            write_include_file(str(project_dir), "escape/new/deeper/evil.yaml", "x")

        assert not (outside_dir / "new").exists()

    def test_dangling_symlink_escape_denied(self, project_dir, outside_dir):
        (project_dir / "evil.yaml").symlink_to(outside_dir / "created-by-write.yaml")

        with pytest.raises(WriteAccessDeniedError):
            write_include_file(str(project_dir), "evil.yaml", "x")

        assert not (outside_dir / "created-by-write.yaml").exists()

    def test_file_symlink_escape_denied_for_delete(self, project_dir, outside_dir):
        victim = outside_dir / "victim.yaml"
        victim.write_text("keep me")
        (project_dir / "victim.yaml").symlink_to(victim)

        with pytest.raises(WriteAccessDeniedError):
            delete_include_file(str(project_dir), "victim.yaml")

        assert victim.read_text() == "keep me"

    def test_symlink_within_project_allowed(self, project_dir):
        (project_dir / "real").mkdir()
        (project_dir / "alias").symlink_to(project_dir / "real", target_is_directory=True)

        write_include_file(str(project_dir), "alias/db.yaml", "services: {}\n")

        assert (project_dir / "real" / "db.yaml").read_text() == "services: {}\n"

    def test_symlink_to_project_root_denied(self, project_dir):
        (project_dir / "self").symlink_to(project_dir, target_is_directory=True)

        with pytest.raises(WriteAccessDeniedError, match="project directory itself"):
            validate_include_path_for_write(str(project_dir), "self")

    def test_symlink_loop_is_a_validation_error(self, project_dir):
        (project_dir / "loop").symlink_to(project_dir / "loop")

        with pytest.raises(IncludeValidationError):
            validate_include_path_for_write(str(project_dir), "loop/x.yaml")


class TestWriteIncludeFile:
    """Writing include files."""

    def test_writes_content_and_creates_directories(self, project_dir, settings):
        written = write_include_file(
            str(project_dir), "services/web/compose.yaml", "services:\n  web: {}\n", settings
        )

        assert written == str(project_dir / "services" / "web" / "compose.yaml")
        assert (project_dir / "services" / "web" / "compose.yaml").read_text() == "services:\n  web: {}\n"

    def test_overwrites_existing_file(self, project_dir, settings):
        (project_dir / "db.yaml").write_text("old content that is longer\n")

        write_include_file(str(project_dir), "db.yaml", "new\n", settings)

        assert (project_dir / "db.yaml").read_text() == "new\n"

    def test_line_endings_are_preserved(self, project_dir, settings):
        write_include_file(str(project_dir), "crlf.yaml", "services:\r\n  a: {}\r\n", settings)
        assert (project_dir / "crlf.yaml").read_bytes() == b"services:\r\n  a: {}\r\n"

    @posix_only
    def test_configured_permissions_are_applied(self, project_dir):
        previous = os.umask(0)
        try:
            custom = ProjectSettings(FILE_PERM="0600", DIR_PERM="0700", _env_file=None)
            write_include_file(str(project_dir), "private/secret.yaml", "x", custom)
        finally:
            os.umask(previous)

        assert stat.S_IMODE((project_dir / "private").stat().st_mode) == 0o700
        assert stat.S_IMODE((project_dir / "private" / "secret.yaml").stat().st_mode) == 0o600

    def test_denied_write_creates_nothing(self, project_dir, outside_dir, settings):
        with pytest.raises(WriteAccessDeniedError):
            write_include_file(str(project_dir), "../outside/new-dir/x.yaml", "x", settings)

        assert not (outside_dir / "new-dir").exists()

    def test_directory_creation_failure(self, project_dir, settings):
        (project_dir / "blocker").write_text("i am a file")

        with pytest.raises(IncludeWriteError, match="failed to"):
            write_include_file(str(project_dir), "blocker/x.yaml", "x", settings)

    def test_writing_onto_a_directory_fails(self, project_dir, settings):
        (project_dir / "dir.yaml").mkdir()

        with pytest.raises(IncludeWriteError, match="failed to write include file"):
            write_include_file(str(project_dir), "dir.yaml", "x", settings)


class TestDeleteIncludeFile:
    """Deleting include files."""

    def test_deletes_existing_file(self, project_dir):
        (project_dir / "db.yaml").write_text("x")

        assert delete_include_file(str(project_dir), "db.yaml") is True
        assert not (project_dir / "db.yaml").exists()

    def test_missing_file_returns_false(self, project_dir):
        assert delete_include_file(str(project_dir), "never.yaml") is False

    def test_outside_path_denied(self, project_dir, outside_dir):
        (outside_dir / "x.yaml").write_text("x")

        with pytest.raises(WriteAccessDeniedError):
            delete_include_file(str(project_dir), "../outside/x.yaml")

        assert (outside_dir / "x.yaml").exists()

    def test_deleting_a_directory_fails(self, project_dir):
        (project_dir / "sub").mkdir()

        with pytest.raises(IncludeWriteError):
            delete_include_file(str(project_dir), "sub")


class TestConfinementHelpers:
    """Boundary checks on resolved paths."""

    @pytest.mark.parametrize(
        "path,boundary,expected",
        [
            ("/a/b/c", "/a/b", True),
            ("/a/b", "/a/b", False),
            ("/a/bc", "/a/b", False),
            ("/a", "/a/b", False),
            ("/a/b/c", "/a/b/", True),
            ("/x", "/", True),
        ],
    )
    def test_is_within(self, path, boundary, expected):
        assert is_within(path, boundary) is expected

    def test_confine_reports_resolved_path(self, project_dir):
        resolved, inside = confine(str(project_dir / "a" / ".." / "b.yaml"), str(project_dir))

        assert inside is True
        assert resolved == os.path.realpath(project_dir / "b.yaml")
