"""Homebrew formula and cask backends."""

from __future__ import annotations

import json
from typing import Sequence

from pkgsync.backends.base import PackageManager, lines
from pkgsync.backends.brew_common import brew_outdated
from pkgsync.core import shell
from pkgsync.core.channel import Channel
from pkgsync.core.errors import TransientError
from pkgsync.core.logging import get_logger
from pkgsync.core.models import ManagerType, PackageInfo, UpgradeInfo
from pkgsync.core.names import short_name

log = get_logger(__name__)

# Names per `brew info` call when looking up tap metadata.
BATCH_SIZE = 30


class HomebrewFormulas(PackageManager):
    """Homebrew command-line formulae."""

    tag = ManagerType.HOMEBREW
    executable = "brew"

    async def update(self, channel: Channel | None = None) -> bool:
        return await self._run(["brew", "update"], channel)

    async def _install(self, names: list[str], channel: Channel | None) -> bool:
        return await self._run(["brew", "install", *names], channel)

    async def _uninstall(self, names: list[str], channel: Channel | None) -> bool:
        return await self._run(["brew", "uninstall", *names], channel)

    async def upgrade(
        self, names: Sequence[str] | None = None, channel: Channel | None = None
    ) -> bool:
        return await self._run(["brew", "upgrade", "--formula", *(names or [])], channel)

    async def list_installed(self) -> list[PackageInfo]:
        out, _, code = await self._exec("brew", "info", "--json=v2", "--installed")
        if code != 0:
            return []

        try:
            data = json.loads(out)
            return [
                PackageInfo(
                    name=f["name"],
                    version=str((f.get("installed") or [{}])[0].get("version") or "unknown"),
                )
                for f in data.get("formulae", [])
            ]
        except (json.JSONDecodeError, KeyError, TypeError, AttributeError) as e:
            self._parse_failed("brew info --json=v2 --installed", e, out)
            return []

    async def list_outdated(self) -> list[UpgradeInfo]:
        return await brew_outdated(self._exec, "--formula", "formulae")

    async def list_leaves(self) -> list[str]:
        out, _, code = await self._exec("brew", "leaves")
        return lines(out) if code == 0 else []

    async def cleanup(self, channel: Channel | None = None) -> bool:
        autoremove = await self._run(["brew", "autoremove"], channel)
        cleanup = await self._run(["brew", "cleanup"], channel)
        return autoremove and cleanup

    async def add_repository(self, ref: str, channel: Channel | None = None) -> bool:
        return await self._run(["brew", "tap", ref], channel)

    async def list_repositories(self) -> list[str]:
        out, _, code = await self._exec("brew", "tap")
        return lines(out) if code == 0 else []

    async def is_installed(self, names: Sequence[str]) -> dict[str, bool]:
        out, _, _ = await self._exec("brew", "list", "--formula")
        installed = set(lines(out))

        # Tap-qualified names like "oven-sh/bun/bun" are listed as "bun".
        return {name: name in installed or short_name(name) in installed for name in names}

    async def has_dependents(self, name: str) -> bool:
        """Whether any installed formula depends on ``name``."""
        out, _, code = await self._exec("brew", "uses", "--installed", name)
        return code == 0 and bool(out.strip())

    async def tap_metadata(self, names: Sequence[str]) -> dict[str, str]:
        """Look up the tap each formula came from.

        Args:
            names: Formula names to look up.

        Returns:
            Mapping of formula name to tap; formulas brew could not
            describe are missing from it.
        """
        taps: dict[str, str] = {}
        names = list(names)

        for i in range(0, len(names), BATCH_SIZE):
            batch = names[i : i + BATCH_SIZE]
            try:
                data = await shell.run_json("brew", "info", "--json=v2", "--formula", *batch)
            except TransientError as e:
                log.warning("tap_lookup_failed", count=len(batch), error=str(e))
                continue

            for f in data.get("formulae", []):
                if f.get("installed") and f.get("tap"):
                    taps[f["name"]] = f["tap"]

        return taps


class HomebrewCasks(PackageManager):
    """Homebrew GUI application casks."""

    tag = ManagerType.HOMEBREW_CASKS
    executable = "brew"

    async def update(self, channel: Channel | None = None) -> bool:
        return await self._run(["brew", "update"], channel)

    async def _install(self, names: list[str], channel: Channel | None) -> bool:
        return await self._run(["brew", "install", "--cask", *names], channel, tty=True)

    async def _uninstall(self, names: list[str], channel: Channel | None) -> bool:
        return await self._run(["brew", "uninstall", "--cask", *names], channel, tty=True)

    async def upgrade(
        self, names: Sequence[str] | None = None, channel: Channel | None = None
    ) -> bool:
        return await self._run(
            ["brew", "upgrade", "--cask", "--greedy", *(names or [])], channel, tty=True
        )

    async def list_installed(self) -> list[PackageInfo]:
        out, _, code = await self._exec("brew", "info", "--json=v2", "--cask", "--installed")
        if code != 0:
            return []

        try:
            data = json.loads(out)
            return [
                PackageInfo(name=c["token"], version=str(c.get("installed") or "unknown"))
                for c in data.get("casks", [])
            ]
        except (json.JSONDecodeError, KeyError, TypeError, AttributeError) as e:
            self._parse_failed("brew info --json=v2 --cask --installed", e, out)
            return []

    async def list_outdated(self) -> list[UpgradeInfo]:
        return await brew_outdated(self._exec, "--cask", "casks")

    async def cleanup(self, channel: Channel | None = None) -> bool:
        return await self._run(["brew", "cleanup"], channel)

    async def is_installed(self, names: Sequence[str]) -> dict[str, bool]:
        out, _, _ = await self._exec("brew", "list", "--cask")
        installed = set(lines(out))
        return {name: name in installed or short_name(name) in installed for name in names}
