"""Single-shot execution of the version-control binary."""

import asyncio
import os
import time
import uuid
from collections import deque
from pathlib import Path
from typing import Deque, Dict, List, Optional, Sequence, Union

import structlog

from gitcanopy.execution.errors import (
    GitCommandError,
    GitOutputTooLargeError,
    GitSpawnError,
    GitTimeoutError,
)
from gitcanopy.models import CanopySettings, CommandLogEntry

logger = structlog.get_logger(__name__)

_CHUNK_SIZE = 64 * 1024

# Never block on a credential prompt and never take the index lock for reads
_DEFAULT_ENV = {
    "GIT_TERMINAL_PROMPT": "0",
    "GIT_OPTIONAL_LOCKS": "0",
}


class CommandLog:
    """Ring buffer of the most recent command invocations.

    The oldest entry is evicted first once ``max_entries`` is reached. Nothing
    is persisted across restarts.
    """

    def __init__(self, max_entries: int = 100) -> None:
        self._entries: Deque[CommandLogEntry] = deque(maxlen=max_entries)

    def record(self, entry: CommandLogEntry) -> None:
        self._entries.append(entry)

    def get_history(self, limit: Optional[int] = None, offset: int = 0) -> List[CommandLogEntry]:
        """Return entries newest first.

        Args:
            limit: Maximum number of entries to return (all when None)
            offset: Number of newest entries to skip

        Returns:
            List of CommandLogEntry objects
        """
        newest_first = list(reversed(self._entries))
        offset = max(offset, 0)
        if limit is None:
            return newest_first[offset:]
        return newest_first[offset : offset + max(limit, 0)]

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class CommandExecutor:
    """Runs one external invocation per call and audits every outcome.

    There are no retries: failures surface immediately and the retry policy
    belongs to the caller.
    """

    def __init__(
        self,
        settings: Optional[CanopySettings] = None,
        binary: Optional[str] = None,
        command_log: Optional[CommandLog] = None,
    ) -> None:
        """Initialize the executor.

        Args:
            settings: Runtime settings. If None, loads from environment.
            binary: Override for the binary to run (defaults to settings.git_binary)
            command_log: Shared audit log. If None, a private one is created.
        """
        self.settings = settings or CanopySettings()
        self.binary = binary or self.settings.git_binary
        self.max_output_bytes = self.settings.max_output_bytes
        self.timeout = self.settings.command_timeout
        self.command_log = command_log or CommandLog(self.settings.command_history_size)

    async def run(
        self,
        args: Sequence[str],
        cwd: Union[str, Path],
        env: Optional[Dict[str, str]] = None,
    ) -> str:
        """Run the binary with ``args`` inside ``cwd`` and return its stdout.

        Args:
            args: Argument vector, without the binary itself
            cwd: Working directory
            env: Extra environment variables

        Returns:
            Decoded standard output

        Raises:
            GitSpawnError: If the process could not be started
            GitCommandError: If the process exited with a non-zero code
            GitOutputTooLargeError: If stdout crossed max_output_bytes
            GitTimeoutError: If the process outlived the configured timeout
        """
        args = list(args)
        started_at = time.time()
        started = time.perf_counter()

        process_env = {**os.environ, **_DEFAULT_ENV, **(env or {})}
        try:
            process = await asyncio.create_subprocess_exec(
                self.binary,
                *args,
                cwd=str(cwd),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=process_env,
            )
        except OSError as e:
            self._record(args, started_at, started, exit_code=-1, success=False)
            logger.debug("command_spawn_failed", args=args, error=str(e))
            raise GitSpawnError(self.binary, e) from e

        try:
            stdout, stderr = await asyncio.wait_for(
                self._communicate(process, args), timeout=self.timeout
            )
        except GitOutputTooLargeError:
            await self._terminate(process)
            self._record(args, started_at, started, exit_code=_exit_code(process), success=False)
            logger.debug("command_output_too_large", args=args, limit=self.max_output_bytes)
            raise
        except asyncio.TimeoutError as e:
            await self._terminate(process)
            self._record(args, started_at, started, exit_code=_exit_code(process), success=False)
            logger.debug("command_timed_out", args=args, timeout=self.timeout)
            raise GitTimeoutError(args, self.timeout or 0) from e
        except BaseException:
            await self._terminate(process)
            self._record(args, started_at, started, exit_code=_exit_code(process), success=False)
            raise

        exit_code = process.returncode if process.returncode is not None else -1
        success = exit_code == 0
        self._record(args, started_at, started, exit_code=exit_code, success=success)

        if not success:
            error_text = stderr.decode("utf-8", errors="replace")
            logger.debug("command_failed", args=args, exit_code=exit_code)
            raise GitCommandError(args, exit_code, error_text)

        return stdout.decode("utf-8", errors="replace")

    async def _communicate(self, process: asyncio.subprocess.Process, args: List[str]):
        """Accumulate stdout under the ceiling while draining stderr."""
        stderr_task = asyncio.ensure_future(process.stderr.read())
        chunks: List[bytes] = []
        size = 0
        try:
            while True:
                chunk = await process.stdout.read(_CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > self.max_output_bytes:
                    raise GitOutputTooLargeError(args, self.max_output_bytes)
                chunks.append(chunk)
            stderr = await stderr_task
            await process.wait()
        finally:
            if not stderr_task.done():
                stderr_task.cancel()
        return b"".join(chunks), stderr

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()

    def _record(
        self,
        args: List[str],
        started_at: float,
        started: float,
        exit_code: int,
        success: bool,
    ) -> None:
        self.command_log.record(
            CommandLogEntry(
                id=uuid.uuid4().hex,
                command=Path(self.binary).name,
                args=args,
                timestamp=started_at,
                duration=(time.perf_counter() - started) * 1000,
                exit_code=exit_code,
                success=success,
            )
        )


def _exit_code(process: asyncio.subprocess.Process) -> int:
    return process.returncode if process.returncode is not None else -1
