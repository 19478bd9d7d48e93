"""Arch Linux pacman backend."""

from __future__ import annotations

import re
from typing import Sequence

from pkgsync.backends.base import PackageManager, lines
from pkgsync.core import shell
from pkgsync.core.channel import Channel
from pkgsync.core.models import ManagerType, PackageInfo, UpgradeInfo

# "package 1.0-1 -> 1.1-1"
_UPDATE_LINE = re.compile(r"^(\S+)\s+(\S+)\s+->\s+(\S+)")


def parse_name_version(output: str) -> list[PackageInfo]:
    """Parse ``name version`` lines as printed by ``pacman -Q``."""
    packages = []
    for line in lines(output):
        name, _, version = line.partition(" ")
        packages.append(PackageInfo(name=name, version=version.strip() or "unknown"))
    return packages


def parse_update_lines(output: str) -> list[UpgradeInfo]:
    """Parse ``name old -> new`` lines (checkupdates, pacman -Qu, AUR helpers)."""
    updates = []
    for line in lines(output):
        match = _UPDATE_LINE.match(line)
        if match:
            updates.append(UpgradeInfo(match.group(1), match.group(2), match.group(3)))
        else:
            updates.append(UpgradeInfo(name=line.split()[0]))
    return updates


class Pacman(PackageManager):
    tag = ManagerType.PACMAN
    executable = "pacman"
    needs_sudo = True

    async def update(self, channel: Channel | None = None) -> bool:
        return await self._run(["pacman", "-Sy", "--noconfirm"], channel)

    async def _install(self, names: list[str], channel: Channel | None) -> bool:
        return await self._run(["pacman", "-S", "--noconfirm", "--needed", *names], channel)

    async def _uninstall(self, names: list[str], channel: Channel | None) -> bool:
        return await self._run(["pacman", "-Rs", "--noconfirm", *names], channel)

    async def upgrade(
        self, names: Sequence[str] | None = None, channel: Channel | None = None
    ) -> bool:
        if names:
            return await self._run(["pacman", "-S", "--noconfirm", *names], channel)
        return await self._run(["pacman", "-Syu", "--noconfirm"], channel)

    async def list_installed(self) -> list[PackageInfo]:
        # Native packages only; foreign ones are listed by the AUR backend.
        out, _, code = await self._exec("pacman", "-Qen")
        return parse_name_version(out) if code == 0 else []

    async def list_outdated(self) -> list[UpgradeInfo]:
        if shell.command_exists("checkupdates"):
            # checkupdates (pacman-contrib) exits 2 when there is nothing to update.
            out, _, _ = await self._exec("checkupdates")
            return parse_update_lines(out)

        out, _, code = await self._exec("pacman", "-Qu")
        return parse_update_lines(out) if code == 0 else []

    async def list_leaves(self) -> list[str]:
        out, _, code = await self._exec("pacman", "-Qqen")
        return lines(out) if code == 0 else []

    async def cleanup(self, channel: Channel | None = None) -> bool:
        out, _, code = await self._exec("pacman", "-Qdtq")
        orphans = lines(out) if code == 0 else []
        if orphans:
            await self._run(["pacman", "-Rs", "--noconfirm", *orphans], channel)

        return await self._run(["pacman", "-Sc", "--noconfirm"], channel)

    async def is_installed(self, names: Sequence[str]) -> dict[str, bool]:
        out, _, _ = await self._exec("pacman", "-Qq")
        installed = set(lines(out))
        return {name: name in installed for name in names}
