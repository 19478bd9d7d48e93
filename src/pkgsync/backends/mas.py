"""Mac App Store backend, driven through the ``mas`` CLI.

Packages are numeric App Store IDs rendered as strings.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Sequence

from pkgsync.backends.base import PackageManager
from pkgsync.core.channel import Channel
from pkgsync.core.models import ManagerType, PackageInfo, UpgradeInfo

# Apple and common vendor apps that are never removed automatically,
# even when they are missing from the config.
SYSTEM_APP_IDS: frozenset[int] = frozenset({
    409183694,   # Keynote
    409203825,   # Numbers
    409201541,   # Pages
    408981434,   # iMovie
    682658836,   # GarageBand
    424389933,   # Final Cut Pro
    424390742,   # Compressor
    413897608,   # Logic Pro
    1274495053,  # TestFlight
    425424353,   # The Unarchiver
    497799835,   # Xcode
    634148309,   # MainStage
    1480068668,  # Messenger
    803453959,   # Slack
    1295203466,  # Microsoft Remote Desktop
    1444383602,  # Apple Developer
    640199958,   # Developer Documentation
    899247664,   # TestFlight
    1176895641,  # Spark
    1451685025,  # WireGuard
})

# "1234567890   App Name (1.2.3)" or "1234567890 App Name (1.2 -> 1.3)"
_LINE = re.compile(r"^(\d+)\s+(.+?)(?:\s+\(([^)]+)\))?$")


@dataclass(frozen=True)
class MasApp:
    id: int
    name: str
    version: str | None = None


def parse_mas_output(output: str) -> list[MasApp]:
    apps = []
    for line in output.splitlines():
        match = _LINE.match(line.strip())
        if match:
            apps.append(MasApp(int(match.group(1)), match.group(2).strip(), match.group(3)))
    return apps


def is_system_app(app_id: str) -> bool:
    return app_id.isdigit() and int(app_id) in SYSTEM_APP_IDS


class MacAppStore(PackageManager):
    tag = ManagerType.MAS
    executable = "mas"

    async def update(self, channel: Channel | None = None) -> bool:
        # App Store catalog refresh is handled by macOS.
        return True

    async def _install(self, names: list[str], channel: Channel | None) -> bool:
        return await self._run_each(["mas", "install"], names, channel, tty=True)

    async def _uninstall(self, names: list[str], channel: Channel | None) -> bool:
        return await self._run_each(["mas", "uninstall"], names, channel, tty=True)

    async def upgrade(
        self, names: Sequence[str] | None = None, channel: Channel | None = None
    ) -> bool:
        return await self._run(["mas", "upgrade", *(names or [])], channel, tty=True)

    async def get_installed_apps(self) -> list[MasApp]:
        out, _, code = await self._exec("mas", "list")
        return parse_mas_output(out) if code == 0 else []

    async def list_installed(self) -> list[PackageInfo]:
        return [
            PackageInfo(name=str(app.id), version=app.version or "unknown")
            for app in await self.get_installed_apps()
        ]

    async def list_outdated(self) -> list[UpgradeInfo]:
        out, _, code = await self._exec("mas", "outdated")
        if code != 0:
            return []

        outdated = []
        for app in parse_mas_output(out):
            current, _, new = (app.version or "").partition("->")
            outdated.append(
                UpgradeInfo(
                    name=str(app.id),
                    current_version=current.strip() or "unknown",
                    new_version=new.strip() or "available",
                )
            )
        return outdated

    async def cleanup(self, channel: Channel | None = None) -> bool:
        return True
