"""Asynchronous command execution for package-manager backends."""

from __future__ import annotations

import asyncio
import json
import shutil
import time
from typing import Any, Callable, Optional

from pkgsync.core.config import command_env
from pkgsync.core.errors import CommandError, CommandTimeoutError, retry_on_transient
from pkgsync.core.logging import get_logger

log = get_logger(__name__)

# Conventional shell exit code for "command not found".
EXIT_NOT_FOUND = 127


def command_exists(name: str) -> bool:
    """Check whether an executable is on PATH."""
    return shutil.which(name) is not None


async def run_capture(
    *cmd: str, timeout: Optional[float] = None, cwd: Optional[str] = None
) -> tuple[str, str, int]:
    """Run a command asynchronously and capture its output.

    Args:
        *cmd: Command and its arguments to run.
        timeout: Timeout in seconds, or None to wait for the process to exit.
        cwd: Optional working directory.

    Returns:
        A tuple of (stdout, stderr, returncode). A missing executable
        yields returncode 127 instead of an exception.

    Raises:
        CommandTimeoutError: If the command times out.
    """
    start = time.perf_counter()
    command = " ".join(cmd)
    log.debug("command_start", command=command, timeout=timeout)

    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=command_env(),
            cwd=cwd,
        )
    except FileNotFoundError as e:
        log.warning("command_not_found", command=command, error=str(e))
        return "", str(e), EXIT_NOT_FOUND

    try:
        out, err = await asyncio.wait_for(process.communicate(), timeout)
    except asyncio.TimeoutError as e:
        duration_ms = int((time.perf_counter() - start) * 1000)
        log.error(
            "command_timeout",
            command=command,
            timeout=timeout,
            duration_ms=duration_ms
        )
        try:
            process.kill()
        finally:
            raise CommandTimeoutError(
                command=command,
                timeout=timeout,
                context={"duration_ms": duration_ms}
            ) from e

    duration_ms = int((time.perf_counter() - start) * 1000)
    log.info(
        "command_complete",
        command=command,
        returncode=process.returncode,
        duration_ms=duration_ms
    )

    return (
        out.decode(errors="replace").strip(),
        err.decode(errors="replace").strip(),
        process.returncode,
    )


async def run_streaming(
    *cmd: str,
    on_line: Callable[[str], None],
    inherit_stdin: bool = False,
    cwd: Optional[str] = None,
) -> int:
    """Run a command and forward stdout and stderr line by line.

    Args:
        *cmd: Command and its arguments to run.
        on_line: Called with every output line, without the newline.
        inherit_stdin: Keep the terminal attached to stdin, for commands
            that may ask for a password or Touch ID.
        cwd: Optional working directory.

    Returns:
        The process exit code (127 when the executable is missing).
    """
    start = time.perf_counter()
    command = " ".join(cmd)
    log.debug("command_stream_start", command=command)

    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=None if inherit_stdin else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=command_env(),
            cwd=cwd,
        )
    except FileNotFoundError as e:
        log.warning("command_not_found", command=command, error=str(e))
        on_line(f"{cmd[0]}: command not found")
        return EXIT_NOT_FOUND

    async def pump(stream: asyncio.StreamReader) -> None:
        while True:
            raw = await stream.readline()
            if not raw:
                break
            on_line(raw.decode(errors="replace").rstrip("\r\n"))

    await asyncio.gather(pump(process.stdout), pump(process.stderr))
    returncode = await process.wait()

    duration_ms = int((time.perf_counter() - start) * 1000)
    log.info(
        "command_complete",
        command=command,
        returncode=returncode,
        duration_ms=duration_ms,
        streamed=True
    )

    return returncode


@retry_on_transient(max_retries=3, base_delay=1.0)
async def run_json(*cmd: str, timeout: Optional[float] = None) -> Any:
    """Run a command and parse its JSON output.

    Automatically retries on transient errors.

    Args:
        *cmd: Command and its arguments to run.
        timeout: Timeout in seconds; None waits indefinitely.

    Returns:
        Parsed JSON output.

    Raises:
        CommandError: If the command fails or JSON parsing fails.
        CommandTimeoutError: If the command times out (retried automatically).
    """
    command = " ".join(cmd)
    out, err, code = await run_capture(*cmd, timeout=timeout)

    if code != 0:
        log.error(
            "command_failed",
            command=command,
            error=err or out,
            returncode=code
        )
        raise CommandError(command=command, returncode=code, error=err or out)

    try:
        return json.loads(out)
    except json.JSONDecodeError as e:
        log.error(
            "json_parse_failed",
            command=command,
            error=str(e),
            output_preview=out[:200]
        )
        raise CommandError(
            "Failed to parse JSON output",
            command=command,
            error=str(e),
        ) from e
