"""Arch User Repository backend, driven through an AUR helper."""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Sequence

from pkgsync.backends.base import PackageManager, lines
from pkgsync.backends.pacman import parse_name_version, parse_update_lines
from pkgsync.core import shell
from pkgsync.core.channel import Channel
from pkgsync.core.logging import get_logger
from pkgsync.core.models import AurHelper, ManagerType, PackageInfo, UpgradeInfo

log = get_logger(__name__)

YAY_REPO = "https://aur.archlinux.org/yay.git"


class Aur(PackageManager):
    """AUR packages via yay, paru or trizen.

    Args:
        helper: The helper detected for this host, or None when none is
            installed yet. ``install`` bootstraps yay in that case.
    """

    tag = ManagerType.AUR
    executable = "pacman"

    def __init__(self, helper: AurHelper | None = None) -> None:
        self.helper = helper

    def is_available(self) -> bool:
        return self.helper is not None and shell.command_exists(self.helper.value)

    async def _helper_run(self, args: Sequence[str], channel: Channel | None) -> bool:
        if self.helper is None:
            return False
        # Helpers call sudo themselves and refuse to run as root.
        return await self._run([self.helper.value, *args], channel, sudo=False, tty=True)

    async def ensure_helper(self, channel: Channel | None = None) -> bool:
        """Install yay from the AUR when no helper is present.

        Returns:
            True when a helper is available afterwards.
        """
        if self.helper is not None:
            return True

        log.info("aur_helper_bootstrap_start", helper=AurHelper.YAY.value)
        if channel:
            channel.emit("No AUR helper found. Installing yay...")

        prerequisites = []
        if not shell.command_exists("git"):
            prerequisites.append("git")
        _, _, code = await self._exec("pacman", "-Qq", "base-devel")
        if code != 0:
            prerequisites.append("base-devel")

        if prerequisites and not await self._run(
            ["pacman", "-S", "--noconfirm", "--needed", *prerequisites], channel, sudo=True
        ):
            log.error("aur_helper_bootstrap_failed", step="prerequisites", packages=prerequisites)
            return False

        with tempfile.TemporaryDirectory(prefix="pkgsync-yay-") as tmp:
            build_dir = Path(tmp) / "yay"
            if not await self._run(["git", "clone", YAY_REPO, str(build_dir)], channel, sudo=False):
                log.error("aur_helper_bootstrap_failed", step="clone")
                return False

            code = await shell.run_streaming(
                "makepkg", "-si", "--noconfirm",
                on_line=channel.emit if channel else lambda _: None,
                inherit_stdin=True,
                cwd=str(build_dir),
            )
            if code != 0:
                log.error("aur_helper_bootstrap_failed", step="makepkg", returncode=code)
                return False

        self.helper = AurHelper.YAY
        log.info("aur_helper_bootstrap_complete", helper=self.helper.value)
        return True

    async def update(self, channel: Channel | None = None) -> bool:
        return await self._helper_run(["-Sy"], channel)

    async def _install(self, names: list[str], channel: Channel | None) -> bool:
        if not await self.ensure_helper(channel):
            return False
        return await self._helper_run(["-S", "--noconfirm", "--needed", *names], channel)

    async def _uninstall(self, names: list[str], channel: Channel | None) -> bool:
        return await self._helper_run(["-Rs", "--noconfirm", *names], channel)

    async def upgrade(
        self, names: Sequence[str] | None = None, channel: Channel | None = None
    ) -> bool:
        if names:
            return await self._helper_run(["-S", "--noconfirm", *names], channel)
        return await self._helper_run(["-Syu", "--noconfirm"], channel)

    async def list_installed(self) -> list[PackageInfo]:
        # Foreign packages, i.e. everything not from a sync repository.
        out, _, code = await self._exec("pacman", "-Qm")
        return parse_name_version(out) if code == 0 else []

    async def list_outdated(self) -> list[UpgradeInfo]:
        if self.helper is None:
            return []
        out, _, code = await self._exec(self.helper.value, "-Qua")
        return parse_update_lines(out) if code == 0 else []

    async def cleanup(self, channel: Channel | None = None) -> bool:
        if self.helper is None:
            return True
        return await self._helper_run(["-Sc", "--noconfirm"], channel)

    async def is_installed(self, names: Sequence[str]) -> dict[str, bool]:
        out, _, _ = await self._exec("pacman", "-Qmq")
        installed = set(lines(out))
        return {name: name in installed for name in names}
