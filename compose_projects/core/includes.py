"""Compose include file discovery and confined writes.

Security model for include files:

- READ: docker compose accepts include files from anywhere (parent
  directories, absolute paths, ...), so reads are not restricted.
- WRITE/DELETE: only targets whose symlink-resolved location lies inside the
  symlink-resolved project directory are accepted.
"""

import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import ValidationError

from ..constants import INCLUDE_KEY, INCLUDE_PLACEHOLDER_CONTENT
from ..models.includes import INCLUDE_DIRECTIVE, IncludeFile, include_paths
from .exceptions import (
    IncludeParseError,
    IncludeValidationError,
    IncludeWriteError,
    InterpolationError,
    WriteAccessDeniedError,
)
from .settings import ProjectSettings, get_settings

logger = structlog.get_logger()

EnvResolver = Callable[[str], str]


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------


def _decode_document(content: str, source: str) -> dict[str, Any]:
    try:
        document = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise IncludeParseError(f"failed to parse compose file {source}: {e}") from e
    if document is None:
        return {}
    if not isinstance(document, dict):
        raise IncludeParseError(f"compose file {source} is not a mapping")
    return document


def _load_document(compose_file_path: str) -> dict[str, Any]:
    try:
        content = Path(compose_file_path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise IncludeParseError(f"failed to read compose file: {e}") from e
    return _decode_document(content, compose_file_path)


def _include_references(
    document: dict[str, Any], source: str, env_resolver: EnvResolver | None
) -> list[str]:
    """Decode the root-level include directive of ``document`` into path references."""
    raw = document.get(INCLUDE_KEY)
    if raw is None:
        return []

    try:
        directive = INCLUDE_DIRECTIVE.validate_python(raw)
    except ValidationError as e:
        raise IncludeValidationError(f"invalid include directive in {source}: {e}") from e

    references = include_paths(directive)
    if env_resolver is not None:
        try:
            references = [env_resolver(reference).strip() for reference in references]
        except InterpolationError as e:
            raise IncludeValidationError(f"cannot interpolate include path in {source}: {e}") from e
        if any(not reference for reference in references):
            raise IncludeValidationError(f"empty include path in {source} after interpolation")
    return references


def _read_include(reference: str, base_dir: str) -> IncludeFile:
    full_path = reference if os.path.isabs(reference) else os.path.join(base_dir, reference)
    full_path = os.path.normpath(full_path)

    try:
        content = Path(full_path).read_text(encoding="utf-8")
    except FileNotFoundError:
        content = INCLUDE_PLACEHOLDER_CONTENT
    except (OSError, UnicodeDecodeError) as e:
        raise IncludeParseError(f"failed to read include file {reference}: {e}") from e

    relative = reference
    if os.path.isabs(reference):
        try:
            relative = os.path.relpath(full_path, base_dir)
        except ValueError:
            pass

    return IncludeFile(path=full_path, relative_path=relative, content=content)


def _includes_from_document(
    document: dict[str, Any], compose_file_path: str, env_resolver: EnvResolver | None
) -> list[IncludeFile]:
    base_dir = os.path.dirname(compose_file_path)
    includes = []
    for reference in _include_references(document, compose_file_path, env_resolver):
        try:
            includes.append(_read_include(reference, base_dir))
        except IncludeParseError as e:
            logger.warning(
                "Skipping unreadable include file",
                compose_file=compose_file_path,
                include=reference,
                error=str(e),
            )
    return includes


def parse_include_paths(compose_file_path: str, env_resolver: EnvResolver | None = None) -> list[str]:
    """Return the include path references of a compose file, in document order.

    Raises:
        IncludeParseError: If the compose file cannot be read or decoded
        IncludeValidationError: If the include directive is malformed
    """
    document = _load_document(compose_file_path)
    return _include_references(document, compose_file_path, env_resolver)


def parse_includes(compose_file_path: str, env_resolver: EnvResolver | None = None) -> list[IncludeFile]:
    """Read every file named by the root-level ``include`` key of a compose file.

    Only the root-level key is honored. Include targets that do not exist yet
    get placeholder content so they can be created on save. A target that
    exists but cannot be read is skipped.

    Args:
        compose_file_path: Path to the compose file
        env_resolver: Optional ``str -> str`` used to interpolate variables in
            include paths (see ``EnvironmentResolver``); None leaves paths raw

    Returns:
        Resolved include files; empty when the document has no ``include`` key

    Raises:
        IncludeParseError: If the compose file cannot be read or decoded
        IncludeValidationError: If the include directive is malformed
    """
    compose_file_path = os.path.abspath(compose_file_path)
    document = _load_document(compose_file_path)
    return _includes_from_document(document, compose_file_path, env_resolver)


def resolve_include_tree(
    compose_file_path: str, env_resolver: EnvResolver | None = None
) -> list[IncludeFile]:
    """Follow includes recursively and return every reachable include file once.

    Files are visited depth-first in document order. Cycles terminate because
    each absolute path is visited at most once. Nested files that fail to
    decode are returned but not descended into.
    """
    root = os.path.abspath(compose_file_path)
    visited = {root}
    resolved: list[IncludeFile] = []

    def walk(path: str, document: dict[str, Any]) -> None:
        for include in _includes_from_document(document, path, env_resolver):
            if include.path in visited:
                continue
            visited.add(include.path)
            resolved.append(include)
            try:
                nested = _decode_document(include.content, include.path)
                walk(include.path, nested)
            except (IncludeParseError, IncludeValidationError) as e:
                logger.warning("Not descending into include file", path=include.path, error=str(e))

    walk(root, _load_document(root))
    return resolved


# ---------------------------------------------------------------------------
# Confinement and writing
# ---------------------------------------------------------------------------


def resolve_symlinks(path: str) -> str:
    """Resolve every symlink in ``path``.

    Components that do not exist yet are kept as written; every existing
    ancestor is still resolved, as is a dangling link.

    Raises:
        OSError: For resolution failures other than a missing path (e.g. loops)
    """
    try:
        return os.path.realpath(path, strict=True)
    except FileNotFoundError:
        return os.path.realpath(path)


def is_within(path: str, boundary: str) -> bool:
    """True if ``path`` lies strictly below ``boundary`` (both already resolved)."""
    if path == boundary:
        return False
    prefix = boundary.rstrip(os.sep) + os.sep
    return (path + os.sep).startswith(prefix)


def confine(path: str, boundary: str) -> tuple[str, bool]:
    """Resolve ``path`` and report whether it stays strictly inside ``boundary``.

    Both sides are compared in symlink-resolved form.

    Raises:
        OSError: If either side cannot be resolved
    """
    resolved_boundary = resolve_symlinks(boundary)
    resolved = resolve_symlinks(path)
    return resolved, is_within(resolved, resolved_boundary)


def validate_include_path_for_write(project_dir: str, include_path: str) -> str:
    """Validate that ``include_path`` may be written inside ``project_dir``.

    Returns:
        The absolute, cleaned (but not symlink-resolved) target path

    Raises:
        IncludeValidationError: If the path is empty or cannot be resolved
        WriteAccessDeniedError: If the target is the project directory itself
            or resolves outside of it
    """
    if not include_path:
        raise IncludeValidationError("include path cannot be empty")
    if not project_dir:
        raise IncludeValidationError("invalid project directory: empty path")

    abs_project_dir = os.path.normpath(os.path.abspath(project_dir))
    candidate = include_path if os.path.isabs(include_path) else os.path.join(abs_project_dir, include_path)
    candidate = os.path.normpath(os.path.abspath(candidate))

    try:
        resolved_project_dir = resolve_symlinks(abs_project_dir)
        resolved, inside = confine(candidate, abs_project_dir)
    except OSError as e:
        raise IncludeValidationError(f"failed to resolve include path: {e}") from e

    if resolved == resolved_project_dir:
        raise WriteAccessDeniedError("include path cannot be the project directory itself")
    if not inside:
        logger.warning(
            "Rejected include write outside project directory",
            project_dir=abs_project_dir,
            include_path=include_path,
            resolved=resolved,
        )
        raise WriteAccessDeniedError("write access denied: path is outside project directory")

    return candidate


def _make_dirs(directory: str, mode: int) -> None:
    """Create ``directory`` and any missing parents, each with ``mode``."""
    missing = []
    current = directory
    while not os.path.exists(current):
        missing.append(current)
        parent = os.path.dirname(current)
        if parent == current:
            break
        current = parent
    for path in reversed(missing):
        try:
            os.mkdir(path, mode)
        except FileExistsError:
            continue


def write_include_file(
    project_dir: str,
    include_path: str,
    content: str,
    settings: ProjectSettings | None = None,
) -> str:
    """Write ``content`` to an include file inside ``project_dir``.

    Missing parent directories are created with the configured directory
    mode; the file is created with the configured file mode.

    Returns:
        The path that was written

    Raises:
        IncludeValidationError: If the target is invalid (see
            ``validate_include_path_for_write``)
        IncludeWriteError: If creating the directory or writing the file fails
    """
    settings = settings or get_settings()
    validated_path = validate_include_path_for_write(project_dir, include_path)

    directory = os.path.dirname(validated_path)
    if directory in ("", "."):
        raise IncludeValidationError(f"invalid include path: cannot create directory '{directory}'")

    if not os.path.exists(directory):
        try:
            _make_dirs(directory, settings.dir_perm)
        except OSError as e:
            raise IncludeWriteError(f"failed to create directory {directory}: {e}") from e

    try:
        fd = os.open(validated_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, settings.file_perm)
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(content)
    except OSError as e:
        raise IncludeWriteError(f"failed to write include file {validated_path}: {e}") from e

    logger.info("Wrote include file", project_dir=project_dir, path=validated_path, size=len(content))
    return validated_path


def delete_include_file(project_dir: str, include_path: str) -> bool:
    """Delete an include file inside ``project_dir``.

    Returns:
        True if a file was removed, False if it did not exist

    Raises:
        IncludeValidationError: If the target is invalid
        IncludeWriteError: If removal fails
    """
    validated_path = validate_include_path_for_write(project_dir, include_path)
    try:
        os.remove(validated_path)
    except FileNotFoundError:
        return False
    except OSError as e:
        raise IncludeWriteError(f"failed to delete include file {validated_path}: {e}") from e

    logger.info("Deleted include file", project_dir=project_dir, path=validated_path)
    return True
