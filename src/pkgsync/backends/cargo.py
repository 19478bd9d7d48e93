"""Rust crates installed with ``cargo install``."""

from __future__ import annotations

import re
from typing import Sequence

from pkgsync.backends.base import PackageManager
from pkgsync.core.channel import Channel
from pkgsync.core.models import ManagerType, PackageInfo, UpgradeInfo

# "ripgrep v14.1.0:" or "tool v0.2.0-beta.1 (/path/to/source):"
_CRATE = re.compile(r"^(\S+)\s+v([\d.]+(?:-[\w.]+)?)")


def parse_install_list(output: str) -> list[PackageInfo]:
    packages = []
    for line in output.splitlines():
        # Indented lines list the binaries of the crate above.
        match = _CRATE.match(line)
        if match:
            packages.append(PackageInfo(name=match.group(1), version=match.group(2)))
    return packages


class Cargo(PackageManager):
    tag = ManagerType.CARGO
    executable = "cargo"

    async def update(self, channel: Channel | None = None) -> bool:
        return True

    async def _install(self, names: list[str], channel: Channel | None) -> bool:
        return await self._run_each(["cargo", "install"], names, channel)

    async def _uninstall(self, names: list[str], channel: Channel | None) -> bool:
        return await self._run_each(["cargo", "uninstall"], names, channel)

    async def upgrade(
        self, names: Sequence[str] | None = None, channel: Channel | None = None
    ) -> bool:
        if names:
            return await self._run_each(["cargo", "install", "--force"], names, channel)

        ok = True
        for package in await self.list_installed():
            # Every crate is attempted, even after a failure.
            if not await self._run(["cargo", "install", "--force", package.name], channel):
                ok = False
        return ok

    async def list_installed(self) -> list[PackageInfo]:
        out, _, code = await self._exec("cargo", "install", "--list")
        return parse_install_list(out) if code == 0 else []

    async def list_outdated(self) -> list[UpgradeInfo]:
        # cargo cannot tell without querying crates.io for every crate.
        return []

    async def cleanup(self, channel: Channel | None = None) -> bool:
        return True
