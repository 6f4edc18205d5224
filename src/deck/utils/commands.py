"""Async subprocess execution shared by engine handles and diagnostics.

Every external command Deck runs goes through :func:`run_command`. A command
that times out or whose awaiting task is cancelled is killed and reaped before
the exception propagates, so no child process outlives the operation that
started it.
"""

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path

from deck.exceptions import SubprocessFailureError
from deck.utils.logger import get_logger

logger = get_logger("commands")

DEFAULT_TIMEOUT = 120.0


@dataclass
class CommandResult:
    command: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


async def _terminate(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()


async def run_command(
    command: list[str],
    *,
    cwd: str | Path | None = None,
    timeout: float | None = DEFAULT_TIMEOUT,
    check: bool = True,
    env: dict[str, str] | None = None,
) -> CommandResult:
    """Run ``command`` and capture its output.

    Args:
        command: argv list; the first element is resolved on PATH
        cwd: Working directory
        timeout: Seconds before the process is killed; ``None`` waits forever
        check: Raise on non-zero exit when True
        env: Extra environment variables layered over ``os.environ``

    Returns:
        CommandResult with decoded stdout/stderr

    Raises:
        SubprocessFailureError: On non-zero exit (with ``check``), timeout, or
            when the executable cannot be started
    """
    logger.debug(f"Running: {' '.join(command)}")
    full_env = {**os.environ, **env} if env else None

    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd is not None else None,
            env=full_env,
        )
    except (FileNotFoundError, PermissionError) as e:
        raise SubprocessFailureError(
            f"Could not execute '{command[0]}': {e}", command=command, stderr=str(e)
        ) from e

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except TimeoutError as err:
        await _terminate(process)
        raise SubprocessFailureError(
            f"Command timed out after {timeout} seconds: {' '.join(command)}", command=command
        ) from err
    except asyncio.CancelledError:
        await _terminate(process)
        raise

    result = CommandResult(
        command=list(command),
        returncode=process.returncode if process.returncode is not None else -1,
        stdout=stdout_bytes.decode("utf-8", errors="replace"),
        stderr=stderr_bytes.decode("utf-8", errors="replace"),
    )

    if check and not result.ok:
        logger.debug(f"Command failed with exit code {result.returncode}: {result.stderr.strip()}")
        raise SubprocessFailureError(
            f"Command failed with exit code {result.returncode}: {' '.join(command)}",
            command=command,
            returncode=result.returncode,
            stderr=result.stderr,
        )
    return result


async def run_interactive(command: list[str], *, cwd: str | Path | None = None) -> int:
    """Run ``command`` attached to the current terminal and return its exit code.

    Used for ``logs --follow`` and ``shell`` where output must stream live.
    """
    logger.debug(f"Running interactively: {' '.join(command)}")
    try:
        process = await asyncio.create_subprocess_exec(
            *command, cwd=str(cwd) if cwd is not None else None
        )
    except (FileNotFoundError, PermissionError) as e:
        raise SubprocessFailureError(
            f"Could not execute '{command[0]}': {e}", command=command, stderr=str(e)
        ) from e
    try:
        return await process.wait()
    except asyncio.CancelledError:
        await _terminate(process)
        raise
