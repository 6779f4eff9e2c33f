"""Host path discovery for Docker-in-Docker deployments.

Finds out where a directory visible inside this container lives on the
Docker host by inspecting our own container's mounts.
"""

import asyncio
import socket

import docker
import structlog
from docker.errors import DockerException

from .path_mapper import PathMapper, clean_path, is_windows_drive_path
from .settings import ProjectSettings

logger = structlog.get_logger()


def _mount_covers(destination: str, container_path: str) -> bool:
    if destination == "/":
        return container_path.startswith("/")
    return container_path == destination or container_path.startswith(destination.rstrip("/") + "/")


def host_path_from_mounts(mounts: list[dict], container_path: str) -> str | None:
    """Map ``container_path`` through the most specific bind mount covering it.

    Args:
        mounts: ``Mounts`` entries from a container inspect payload
        container_path: Absolute path inside the container

    Returns:
        Host path, or None when no bind mount covers the path
    """
    container_path = clean_path(container_path)
    best: dict | None = None
    for mount in mounts:
        destination = mount.get("Destination") or ""
        if not destination or not _mount_covers(destination, container_path):
            continue
        if best is None or len(destination) > len(best.get("Destination", "")):
            best = mount

    if best is None or best.get("Type") != "bind":
        return None

    host_path = best.get("Source") or ""
    if not host_path:
        return None

    rel = container_path[len(best["Destination"].rstrip("/")):].lstrip("/")
    if not rel:
        return host_path

    separator = "/"
    if is_windows_drive_path(host_path) and "\\" in host_path:
        separator = "\\"
        rel = rel.replace("/", "\\")
    if not host_path.endswith(separator):
        host_path += separator
    return host_path + rel


async def discover_host_path(client: docker.DockerClient | None, container_path: str) -> str | None:
    """Discover the host-side path for ``container_path`` by inspecting this container.

    The container's hostname is its short id unless overridden, which is what
    Docker resolves in ``containers.get``.
    """
    if client is None:
        return None

    hostname = socket.gethostname()
    try:
        container = await asyncio.to_thread(client.containers.get, hostname)
    except DockerException as e:
        logger.debug("Self-inspection failed, assuming no container", hostname=hostname, error=str(e))
        return None

    mounts = container.attrs.get("Mounts") or []
    host_path = host_path_from_mounts(mounts, container_path)
    logger.info(
        "Discovered host path for container directory",
        container_path=container_path,
        host_path=host_path,
    )
    return host_path


async def build_path_mapper(
    settings: ProjectSettings, client: docker.DockerClient | None = None
) -> PathMapper:
    """Build the projects-directory mapper from settings, discovering the host side if unset."""
    host_dir = settings.host_projects_directory
    if not host_dir and client is not None:
        host_dir = await discover_host_path(client, settings.projects_directory) or ""

    mapper = PathMapper(settings.projects_directory, host_dir)
    if mapper.is_non_matching:
        logger.info(
            "Using non-matching projects mount",
            container_prefix=mapper.container_prefix,
            host_prefix=mapper.host_prefix,
        )
    return mapper
