"""Capability contract shared by every package-manager backend."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import Iterable, Protocol, Sequence, runtime_checkable

from pkgsync.core import shell
from pkgsync.core.channel import Channel
from pkgsync.core.logging import get_logger
from pkgsync.core.models import DISPLAY_NAMES, ManagerType, PackageInfo, UpgradeInfo

log = get_logger(__name__)


def lines(text: str) -> list[str]:
    """Non-empty, stripped lines of command output."""
    return [line.strip() for line in text.splitlines() if line.strip()]


class PackageManager(ABC):
    """Uniform interface over one native package manager.

    Every operation fails gracefully: a non-zero exit becomes ``False`` or
    an empty list, never an exception. Mutating operations stream their
    output to ``channel`` when one is given and run quietly otherwise.

    Subclasses implement ``_install`` and ``_uninstall``; the public
    wrappers turn an empty name list into a successful no-op.
    """

    tag: ManagerType
    executable: str
    # Prefix mutating commands with sudo.
    needs_sudo: bool = False

    @property
    def display_name(self) -> str:
        return DISPLAY_NAMES[self.tag]

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.tag.value}>"

    def is_available(self) -> bool:
        return shell.command_exists(self.executable)

    async def _exec(self, *cmd: str) -> tuple[str, str, int]:
        """Run a read-only query and capture its output."""
        return await shell.run_capture(*cmd)

    async def _run(
        self,
        args: Sequence[str],
        channel: Channel | None = None,
        sudo: bool | None = None,
        tty: bool = False,
        ok_codes: Sequence[int] = (0,),
    ) -> bool:
        """Run a mutating command and report whether it exited successfully.

        Args:
            args: Command line, starting with the executable.
            channel: Optional sink for line-by-line output.
            sudo: Override ``needs_sudo`` for this call.
            tty: Keep stdin attached, for commands that authenticate.
                Implied by sudo.
            ok_codes: Exit codes that count as success.
        """
        cmd = list(args)
        use_sudo = self.needs_sudo if sudo is None else sudo
        if use_sudo:
            cmd.insert(0, "sudo")

        start = time.perf_counter()
        if channel is not None:
            code = await shell.run_streaming(
                *cmd, on_line=channel.emit, inherit_stdin=tty or use_sudo
            )
            err = ""
        else:
            _, err, code = await shell.run_capture(*cmd)

        duration_ms = int((time.perf_counter() - start) * 1000)
        if code not in ok_codes:
            log.warning(
                "manager_command_failed",
                manager=self.tag.value,
                command=" ".join(cmd),
                returncode=code,
                error=err[:500] or None,
                duration_ms=duration_ms,
            )
            return False
        return True

    async def _run_each(
        self, prefix: Sequence[str], names: Iterable[str], channel: Channel | None = None, **kwargs
    ) -> bool:
        """Run ``prefix + [name]`` for each name, stopping at the first failure."""
        for name in names:
            if not await self._run([*prefix, name], channel, **kwargs):
                return False
        return True

    def _parse_failed(self, command: str, error: Exception, output: str) -> None:
        log.warning(
            "output_parse_failed",
            manager=self.tag.value,
            command=command,
            error=str(error),
            output_preview=output[:200],
        )

    async def install(self, names: Sequence[str], channel: Channel | None = None) -> bool:
        """Install packages. An empty list succeeds without running anything."""
        if not names:
            return True
        log.info("install_start", manager=self.tag.value, packages=list(names))
        return await self._install(list(names), channel)

    async def uninstall(self, names: Sequence[str], channel: Channel | None = None) -> bool:
        """Remove packages. An empty list succeeds without running anything."""
        if not names:
            return True
        log.info("uninstall_start", manager=self.tag.value, packages=list(names))
        return await self._uninstall(list(names), channel)

    @abstractmethod
    async def _install(self, names: list[str], channel: Channel | None) -> bool: ...

    @abstractmethod
    async def _uninstall(self, names: list[str], channel: Channel | None) -> bool: ...

    @abstractmethod
    async def update(self, channel: Channel | None = None) -> bool:
        """Refresh the manager's index. ``True`` where there is nothing to refresh."""

    @abstractmethod
    async def upgrade(
        self, names: Sequence[str] | None = None, channel: Channel | None = None
    ) -> bool:
        """Upgrade ``names``, or everything outdated when omitted."""

    @abstractmethod
    async def list_installed(self) -> list[PackageInfo]: ...

    @abstractmethod
    async def list_outdated(self) -> list[UpgradeInfo]: ...

    @abstractmethod
    async def cleanup(self, channel: Channel | None = None) -> bool: ...

    async def is_installed(self, names: Sequence[str]) -> dict[str, bool]:
        """Batch membership query against one installed listing."""
        installed = {p.name for p in await self.list_installed()}
        return {name: name in installed for name in names}


@runtime_checkable
class LeafListing(Protocol):
    """Backends that can tell explicitly installed packages from dependencies."""

    async def list_leaves(self) -> list[str]: ...


@runtime_checkable
class RepositoryManaging(Protocol):
    """Backends with taps, PPAs, COPRs or remotes."""

    async def add_repository(self, ref: str, channel: Channel | None = None) -> bool: ...

    async def list_repositories(self) -> list[str]: ...
