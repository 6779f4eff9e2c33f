"""Centralized subprocess management with proper resource handling."""

import asyncio
import os
from collections.abc import Callable
from contextlib import asynccontextmanager
from typing import Any, Optional

import structlog

from .exceptions import ComposeCommandError

logger = structlog.get_logger()

DEFAULT_TIMEOUT = 30  # Default timeout in seconds
KILL_TIMEOUT = 5  # Time to wait after SIGTERM before SIGKILL


class SubprocessResult:
    """Result of a subprocess execution."""

    def __init__(self, returncode: int, stdout: str, stderr: str, cmd: list[str]):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.cmd = cmd

    @property
    def success(self) -> bool:
        """Check if the command succeeded."""
        return self.returncode == 0

    @property
    def error_message(self) -> str:
        return self.stderr.strip() or self.stdout.strip() or "Command failed"

    def check_returncode(self) -> None:
        """Raise an exception if the command failed."""
        if self.returncode != 0:
            raise ComposeCommandError(
                f"Command failed with exit code {self.returncode}: {self.error_message}"
            )


class SubprocessManager:
    """Manages subprocess execution with proper resource cleanup."""

    def __init__(self):
        self._active_processes: set[asyncio.subprocess.Process] = set()
        self._cleanup_lock = asyncio.Lock()

    async def run_command(
        self,
        cmd: list[str],
        *,
        timeout: Optional[float] = None,
        check: bool = True,
        cwd: Optional[str] = None,
        env: Optional[dict[str, str]] = None,
        stdin: Optional[str] = None,
    ) -> SubprocessResult:
        """
        Run a command asynchronously with proper resource management.

        Cancelling the awaiting task terminates the child process.

        Args:
            cmd: Command and arguments as a list
            timeout: Timeout in seconds (default: DEFAULT_TIMEOUT)
            check: Raise exception if command fails
            cwd: Working directory for the command
            env: Environment variables
            stdin: Input to provide to the command

        Returns:
            SubprocessResult with returncode, stdout, and stderr

        Raises:
            ComposeCommandError: If check=True and command fails
            asyncio.TimeoutError: If command times out
        """
        if timeout is None:
            timeout = DEFAULT_TIMEOUT

        logger.debug("Executing command", command=" ".join(cmd), timeout=timeout, cwd=cwd)

        kwargs: dict[str, Any] = {
            "cwd": cwd,
            "env": env or os.environ.copy(),
            "stdout": asyncio.subprocess.PIPE,
            "stderr": asyncio.subprocess.PIPE,
        }
        if stdin is not None:
            kwargs["stdin"] = asyncio.subprocess.PIPE

        process = None
        try:
            try:
                process = await asyncio.create_subprocess_exec(*cmd, **kwargs)
            except OSError as e:
                raise ComposeCommandError(f"Failed to start {cmd[0]}: {e}") from e

            async with self._cleanup_lock:
                self._active_processes.add(process)

            stdin_bytes = stdin.encode() if stdin is not None else None
            try:
                stdout_bytes, stderr_bytes = await asyncio.wait_for(
                    process.communicate(input=stdin_bytes), timeout=timeout
                )
            except asyncio.TimeoutError:
                logger.warning(
                    "Command timed out, terminating process",
                    command=" ".join(cmd),
                    timeout=timeout,
                    pid=process.pid,
                )
                await self._terminate(process)
                raise asyncio.TimeoutError(
                    f"Command timed out after {timeout} seconds: {' '.join(cmd)}"
                )

            result = SubprocessResult(
                returncode=process.returncode or 0,
                stdout=stdout_bytes.decode() if stdout_bytes else "",
                stderr=stderr_bytes.decode() if stderr_bytes else "",
                cmd=cmd,
            )
            if check:
                result.check_returncode()
            return result

        finally:
            if process is not None:
                async with self._cleanup_lock:
                    self._active_processes.discard(process)
                if process.returncode is None:
                    await self._terminate(process)

    async def stream_command(
        self,
        cmd: list[str],
        on_line: Callable[[str], None],
        *,
        cwd: Optional[str] = None,
    ) -> int:
        """Run a command and hand each output line (stdout and stderr merged) to ``on_line``.

        Runs until the process exits or the awaiting task is cancelled.

        Returns:
            The process exit code
        """
        logger.debug("Streaming command", command=" ".join(cmd), cwd=cwd)
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=cwd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise ComposeCommandError(f"Failed to start {cmd[0]}: {e}") from e

        async with self._cleanup_lock:
            self._active_processes.add(process)
        try:
            assert process.stdout is not None
            async for raw_line in process.stdout:
                on_line(raw_line.decode(errors="replace"))
            return await process.wait()
        finally:
            async with self._cleanup_lock:
                self._active_processes.discard(process)
            if process.returncode is None:
                await self._terminate(process)

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        """Terminate gracefully, then kill if needed."""
        try:
            process.terminate()
            await asyncio.wait_for(process.wait(), timeout=KILL_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning("Process did not terminate gracefully, sending SIGKILL", pid=process.pid)
            process.kill()
            await process.wait()
        except ProcessLookupError:
            # Process already terminated
            pass

    async def cleanup_all(self) -> None:
        """Terminate all tracked processes."""
        async with self._cleanup_lock:
            processes = list(self._active_processes)
            self._active_processes.clear()

        if not processes:
            return

        logger.info("Cleaning up active processes", count=len(processes))
        await asyncio.gather(
            *(self._terminate(p) for p in processes if p.returncode is None),
            return_exceptions=True,
        )


@asynccontextmanager
async def managed_subprocess():
    """Context manager for subprocess management with automatic cleanup."""
    manager = SubprocessManager()
    try:
        yield manager
    finally:
        await manager.cleanup_all()
