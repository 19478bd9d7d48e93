"""Module defining custom exceptions for pkgsync."""

from __future__ import annotations

import asyncio
import functools
import inspect
import time
from typing import Any, Callable, Self, TypeVar

from pkgsync.core.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")

# Exit Codes
EXIT_SUCCESS = 0
EXIT_USER_ERROR = 1
EXIT_SYSTEM_ERROR = 2
EXIT_TRANSIENT_ERROR = 3


class PkgSyncError(Exception):
    """Base exception class with context propagation.

    All exceptions raised by pkgsync inherit from this class.
    Context is a dictionary that accumulates relevant information
    as the exception propagates up the call stack.

    Example:
        raise PkgSyncError("An error occurred", context={"manager": "apt"})

        # Or with context propagation
        try:
            ...
        except PkgSyncError as e:
            raise e.with_context(operation="sync")
    """
    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.message = message
        self.context = context or {}
        super().__init__(message)

    def with_context(self, **new_context: Any) -> Self:
        """Merge additional context into the exception and return it.

        Args:
            **new_context: Additional context to add to the exception.

        Returns:
            The same exception instance with merged context.
        """
        self.context.update(new_context)
        return self

    def __str__(self) -> str:
        """String representation of the exception including context."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{context_str}]"
        return self.message


class TransientError(PkgSyncError):
    """Errors that may succeed if the operation is repeated.

    Typically a package manager query that failed because of a network
    hiccup or a locked database. Operations raising this exception
    should be idempotent.
    """
    pass


class UserError(PkgSyncError):
    """Errors caused by user input, such as a malformed config file.

    These should not be retried without correction.
    """
    pass


class SystemError(PkgSyncError):
    """Errors due to the host environment.

    Missing prerequisites, permission problems or an unwritable
    config directory. The CLI displays diagnostic information.
    """
    pass


## Specific Exceptions ##

class CommandError(TransientError):
    """A package-manager query returned a non-zero exit code or unparseable output.

    Only raised by ``run_json``; the backends turn a final failure into an
    empty result rather than letting it escape.
    """
    def __init__(
        self,
        message: str | None = None,
        command: str | None = None,
        returncode: int | None = None,
        error: str | None = None,
        context: dict[str, Any] | None = None
    ) -> None:
        """Initialise CommandError with detailed context.

        Args:
            message: Optional custom error message.
            command: The command line that was executed.
            returncode: The exit code returned by the command.
            error: The error output from the command.
            context: Additional context information.
        """
        ctx = context or {}
        if command:
            ctx["command"] = command
        if returncode is not None:
            ctx["returncode"] = returncode
        if error:
            ctx["error"] = error

        if message is None:
            message = f"Command failed with exit code {returncode if returncode is not None else 'unknown'}"

        super().__init__(message, context=ctx)


class CommandTimeoutError(TransientError):
    """A command exceeded the timeout it was started with."""
    def __init__(
        self,
        message: str | None = None,
        command: str | None = None,
        timeout: float | None = None,
        context: dict[str, Any] | None = None
    ) -> None:
        ctx = context or {}
        if command:
            ctx["command"] = command
        if timeout is not None:
            ctx["timeout"] = timeout

        if message is None:
            message = f"Command timed out after {timeout or 'unknown'}s"

        super().__init__(message, context=ctx)


class ConfigError(UserError):
    """The declared package config cannot be read or has an unknown schema.

    This is a UserError - the file must be fixed by hand; pkgsync never
    overwrites a config it does not understand.
    """
    def __init__(
        self,
        message: str | None = None,
        path: str | None = None,
        error: str | None = None,
        context: dict[str, Any] | None = None
    ) -> None:
        ctx = context or {}
        if path:
            ctx["path"] = path
        if error:
            ctx["error"] = error

        if message is None:
            message = f"Invalid package config at {path or 'unknown path'}"

        super().__init__(message, context=ctx)


class NoPrerequisiteError(SystemError):
    """No usable base package manager exists on this host.

    Raised before any sync or upgrade logic runs; fatal for the whole
    operation.
    """
    def __init__(
        self,
        message: str | None = None,
        os: str | None = None,
        required: list[str] | None = None,
        context: dict[str, Any] | None = None
    ) -> None:
        ctx = context or {}
        if os:
            ctx["os"] = os
        if required:
            ctx["required"] = ", ".join(required)

        if message is None:
            message = "No supported package manager found"

        super().__init__(message, context=ctx)


class StorageError(SystemError):
    """The config or lockfile could not be written or read from disk.

    Typically indicates:
        - File system permission issues
        - Disk space exhaustion
        - Read-only file system

    This is a SystemError - may require user/system intervention.
    """
    def __init__(
        self,
        message: str | None = None,
        path: str | None = None,
        operation: str | None = None,
        error: str | None = None,
        context: dict[str, Any] | None = None
    ) -> None:
        ctx = context or {}
        if path:
            ctx["path"] = path
        if operation:
            ctx["operation"] = operation
        if error:
            ctx["error"] = error

        if message is None:
            message = f"Storage {operation or 'operation'} failed"

        super().__init__(message, context=ctx)


def _next_delay(
    func: Callable[..., Any], error: TransientError, attempt: int, max_retries: int,
    base_delay: float, backoff: float,
) -> float | None:
    """Log a failed attempt; return the pause before the next one, or None when out of attempts."""
    if attempt >= max_retries:
        log.error(
            "retry_exhausted",
            function=func.__name__,
            attempts=max_retries,
            error=str(error),
            context=error.context,
        )
        return None

    delay = base_delay * backoff ** (attempt - 1)
    log.warning(
        "retry_attempt",
        function=func.__name__,
        attempt=attempt,
        max_attempts=max_retries,
        delay_seconds=delay,
        error=str(error),
        context=error.context,
    )
    return delay


def retry_on_transient(
    max_retries: int = 3,
    base_delay: float = 1.0,
    backoff: float = 2.0
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Retry a function while it raises ``TransientError``.

    Works on plain functions and coroutines. Any other exception
    propagates on the first attempt.

    Args:
        max_retries: Total attempts, the first one included.
        base_delay: Pause after the first failure, in seconds.
        backoff: Factor applied to the pause after each further failure.

    Example:
        @retry_on_transient(max_retries=5)
        async def brew_info(*names):
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> T:
                attempt = 1
                while True:
                    try:
                        return await func(*args, **kwargs)
                    except TransientError as e:
                        delay = _next_delay(func, e, attempt, max_retries, base_delay, backoff)
                        if delay is None:
                            raise
                    await asyncio.sleep(delay)
                    attempt += 1

            return async_wrapper  # type: ignore

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> T:
            attempt = 1
            while True:
                try:
                    return func(*args, **kwargs)
                except TransientError as e:
                    delay = _next_delay(func, e, attempt, max_retries, base_delay, backoff)
                    if delay is None:
                        raise
                time.sleep(delay)
                attempt += 1

        return sync_wrapper

    return decorator


# CLI Error Message Templates

ERROR_TEMPLATES = {
    NoPrerequisiteError: (
        "❌ {message}\n"
        "   Required: {required}\n"
        "   Install one of these package managers and run pkgsync again"
    ),
    ConfigError: (
        "❌ Invalid package config: {path}\n"
        "   Error: {error}\n"
        "   Fix the file by hand; pkgsync will not overwrite it"
    ),
    StorageError: (
        "⚠️ Could not {operation} {path}\n"
        "   Error: {error}\n"
        "   Check permissions and free space in the pkgsync directory"
    ),
    CommandTimeoutError: (
        "⚠️ Command timed out after {timeout}s: {command}\n"
        "   The operation took too long - this may be due to network issues"
    ),
    CommandError: (
        "⚠️ Command failed: {command}\n"
        "   Exit Code: {returncode}\n"
        "   Error: {error}"
    ),
    TransientError: (
        "⚠️ Temporary failure: {message}\n"
        "   This may resolve itself - try again in a moment"
    ),
    UserError: (
        "❌ {message}"
    ),
    SystemError: (
        "⚠️ System error: {message}\n"
        "   Please check your system configuration and try again"
    ),
    PkgSyncError: (
        "❌ {message}"
    ),
}


def format_error_message(error: PkgSyncError) -> str:
    """Formats an error message for CLI display based on the error type.

    Args:
        error: The PkgSyncError instance to format.

    Returns:
        A formatted string message for CLI display.
    """
    template = next(
        (ERROR_TEMPLATES[cls] for cls in type(error).__mro__ if cls in ERROR_TEMPLATES),
        ERROR_TEMPLATES[PkgSyncError],
    )
    try:
        return template.format(message=error.message, **error.context)
    except KeyError:
        return f"❌ {error.message}"
