"""Container-to-host path translation for compose projects.

When this process runs inside a container, the projects directory it sees
(e.g. ``/app/data/projects``) is usually a bind mount of some other host
directory (e.g. ``D:/arcane/projects``). Bind mount sources, secret files and
config files handed to the Docker daemon must use the host's view, so they
are rewritten here before ``compose up``.

Translation is a convenience, not a confinement check: paths that fall
outside the container prefix (including ones that collapse out of it via
``..``) pass through unchanged.
"""

import posixpath

import structlog

from ..models.project import Project, VolumeType
from .exceptions import PathTranslationError

logger = structlog.get_logger()


def clean_path(path: str) -> str:
    """Lexically clean a POSIX-style path (``.``/``..``/duplicate separators)."""
    cleaned = posixpath.normpath(path)
    # normpath keeps a leading "//" (implementation-defined in POSIX)
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


def relative_path(base: str, target: str) -> str:
    """Return ``target`` relative to ``base``.

    Raises:
        ValueError: If exactly one of the two paths is absolute
    """
    if posixpath.isabs(base) != posixpath.isabs(target):
        raise ValueError(f"can't make {target} relative to {base}")
    return posixpath.relpath(target, base)


def is_windows_drive_path(path: str) -> bool:
    """Return True if the path looks like a Windows drive path (``C:/x`` or ``C:\\x``)."""
    return len(path) >= 3 and path[0].isascii() and path[0].isalpha() and path[1] == ":" and path[2] in "/\\"


class PathMapper:
    """Translates container paths to host paths under a single mapped prefix."""

    __slots__ = ("_container_prefix", "_host_prefix", "_is_non_matching")

    def __init__(self, container_dir: str, host_dir: str = ""):
        container = clean_path(container_dir)
        host = clean_path(host_dir) if host_dir else container

        self._container_prefix = container
        self._host_prefix = host
        self._is_non_matching = container != host

    @property
    def container_prefix(self) -> str:
        return self._container_prefix

    @property
    def host_prefix(self) -> str:
        return self._host_prefix

    @property
    def is_non_matching(self) -> bool:
        """True when the container and host see the projects directory at different paths."""
        return self._is_non_matching

    def __repr__(self) -> str:
        return f"PathMapper(container_prefix={self._container_prefix!r}, host_prefix={self._host_prefix!r})"

    def container_to_host(self, container_path: str) -> str:
        """Translate a container path to the equivalent host path.

        Paths outside the container prefix are returned cleaned but otherwise
        unchanged.

        Raises:
            PathTranslationError: If the relative path cannot be computed
        """
        if not self._is_non_matching:
            return container_path

        cleaned = clean_path(container_path)
        try:
            rel = relative_path(self._container_prefix, cleaned)
        except ValueError as e:
            raise PathTranslationError(f"failed to calculate relative path: {e}") from e

        if rel == ".." or rel.startswith("..") or posixpath.isabs(rel):
            return cleaned

        host_path = posixpath.join(self._host_prefix, rel) if rel != "." else self._host_prefix

        # Docker accepts forward slashes even when targeting a Windows host
        if ":" in self._host_prefix or self._host_prefix.startswith("\\"):
            host_path = host_path.replace("\\", "/")

        return host_path

    def translate_volume_sources(self, project: Project) -> None:
        """Rewrite bind mount sources and secret/config files of ``project`` in place.

        Raises:
            PathTranslationError: If any source cannot be translated
        """
        if not self._is_non_matching:
            return

        translated = 0
        for service in project.services.values():
            for volume in service.volumes:
                if volume.type is not VolumeType.BIND or not volume.source:
                    continue
                volume.source = self._translate(volume.source, "volume source")
                translated += 1

        for kind, objects in (("secret file", project.secrets), ("config file", project.configs)):
            for file_object in objects.values():
                if file_object.file:
                    file_object.file = self._translate(file_object.file, kind)
                    translated += 1

        logger.debug(
            "Translated project paths to host",
            project=project.name,
            translated=translated,
            container_prefix=self._container_prefix,
            host_prefix=self._host_prefix,
        )

    def _translate(self, path: str, kind: str) -> str:
        try:
            return self.container_to_host(path)
        except PathTranslationError as e:
            raise PathTranslationError(f"failed to translate {kind} {path!r}: {e}") from e
