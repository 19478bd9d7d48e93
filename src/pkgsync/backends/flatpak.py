"""Flatpak application backend."""

from __future__ import annotations

from typing import Sequence

from pkgsync.backends.base import PackageManager, lines
from pkgsync.core.channel import Channel
from pkgsync.core.models import ManagerType, PackageInfo, UpgradeInfo

FLATHUB = "flathub"
FLATHUB_URL = "https://flathub.org/repo/flathub.flatpakrepo"


def parse_columns(output: str) -> list[list[str]]:
    """Split tab-separated ``--columns`` output into stripped fields."""
    return [[field.strip() for field in line.split("\t")] for line in lines(output)]


class Flatpak(PackageManager):
    tag = ManagerType.FLATPAK
    executable = "flatpak"

    async def update(self, channel: Channel | None = None) -> bool:
        # `flatpak update` refreshes and upgrades in one step.
        return True

    async def _install(self, names: list[str], channel: Channel | None) -> bool:
        return await self._run_each(
            ["flatpak", "install", "-y", "--noninteractive", FLATHUB], names, channel
        )

    async def _uninstall(self, names: list[str], channel: Channel | None) -> bool:
        return await self._run_each(
            ["flatpak", "uninstall", "-y", "--noninteractive"], names, channel
        )

    async def upgrade(
        self, names: Sequence[str] | None = None, channel: Channel | None = None
    ) -> bool:
        if names:
            return await self._run_each(
                ["flatpak", "update", "-y", "--noninteractive"], names, channel
            )
        return await self._run(["flatpak", "update", "-y", "--noninteractive"], channel)

    async def list_installed(self) -> list[PackageInfo]:
        out, _, code = await self._exec("flatpak", "list", "--app", "--columns=application,version")
        if code != 0:
            return []
        return [
            PackageInfo(name=row[0], version=(row[1] if len(row) > 1 else "") or "unknown")
            for row in parse_columns(out)
        ]

    async def origins(self) -> dict[str, str]:
        """Map each installed application to the remote it came from."""
        out, _, code = await self._exec("flatpak", "list", "--app", "--columns=application,origin")
        if code != 0:
            return {}
        return {row[0]: row[1] for row in parse_columns(out) if len(row) > 1 and row[1]}

    async def list_outdated(self) -> list[UpgradeInfo]:
        out, _, code = await self._exec(
            "flatpak", "remote-ls", "--updates", "--columns=application,version"
        )
        if code != 0:
            return []
        return [
            UpgradeInfo(
                name=row[0],
                current_version="installed",
                new_version=(row[1] if len(row) > 1 else "") or "unknown",
            )
            for row in parse_columns(out)
        ]

    async def cleanup(self, channel: Channel | None = None) -> bool:
        return await self._run(["flatpak", "uninstall", "-y", "--unused", "--noninteractive"], channel)

    async def add_repository(self, ref: str, channel: Channel | None = None) -> bool:
        """Add a remote.

        Args:
            ref: ``"flathub"``, or ``"<name> <url>"`` for any other remote.
        """
        if ref == FLATHUB:
            name, url = FLATHUB, FLATHUB_URL
        else:
            name, _, url = ref.partition(" ")
            if not url.strip():
                return False
        return await self._run(
            ["flatpak", "remote-add", "--if-not-exists", name, url.strip()], channel
        )

    async def list_repositories(self) -> list[str]:
        out, _, code = await self._exec("flatpak", "remotes", "--columns=name")
        return lines(out) if code == 0 else []

    async def is_installed(self, names: Sequence[str]) -> dict[str, bool]:
        out, _, _ = await self._exec("flatpak", "list", "--app", "--columns=application")
        installed = set(lines(out))
        return {name: name in installed for name in names}
