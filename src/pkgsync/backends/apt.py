"""Debian and Ubuntu APT backend."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Sequence

from pkgsync.backends.base import PackageManager, lines
from pkgsync.backends.pacman import parse_name_version
from pkgsync.core.channel import Channel
from pkgsync.core.logging import get_logger
from pkgsync.core.models import ManagerType, PackageInfo, UpgradeInfo
from pkgsync.core.names import dedupe

log = get_logger(__name__)

SOURCES_DIR = Path("/etc/apt/sources.list.d")

# "package/release 1.2-1 amd64 [upgradable from: 1.1-1]"
_UPGRADABLE = re.compile(r"^(\S+)/\S+\s+(\S+)\s+\S+\s+\[upgradable from:\s+(\S+)\]")
_PPA_URL = re.compile(r"ppa\.launchpad(?:content)?\.net/([^/\s]+)/([^/\s]+)")


def parse_upgradable(output: str) -> list[UpgradeInfo]:
    updates = []
    for line in lines(output):
        match = _UPGRADABLE.match(line)
        if match:
            updates.append(UpgradeInfo(match.group(1), match.group(3), match.group(2)))
    return updates


def parse_ppa_sources(text: str) -> list[str]:
    """Extract ``ppa:user/repo`` references from an APT sources file."""
    refs = []
    for line in text.splitlines():
        if line.lstrip().startswith("#"):
            continue
        refs.extend(f"ppa:{user}/{repo}" for user, repo in _PPA_URL.findall(line))
    return refs


class Apt(PackageManager):
    tag = ManagerType.APT
    executable = "apt-get"
    needs_sudo = True

    def __init__(self, sources_dir: Path = SOURCES_DIR) -> None:
        self.sources_dir = sources_dir

    async def update(self, channel: Channel | None = None) -> bool:
        return await self._run(["apt-get", "update", "-y"], channel)

    async def _install(self, names: list[str], channel: Channel | None) -> bool:
        return await self._run(["apt-get", "install", "-y", *names], channel)

    async def _uninstall(self, names: list[str], channel: Channel | None) -> bool:
        return await self._run(["apt-get", "remove", "-y", *names], channel)

    async def upgrade(
        self, names: Sequence[str] | None = None, channel: Channel | None = None
    ) -> bool:
        if names:
            return await self._run(["apt-get", "install", "-y", "--only-upgrade", *names], channel)

        await self.update(channel)
        return await self._run(["apt-get", "upgrade", "-y"], channel)

    async def list_installed(self) -> list[PackageInfo]:
        out, _, code = await self._exec("dpkg-query", "-W", "-f=${Package} ${Version}\n")
        return parse_name_version(out) if code == 0 else []

    async def list_outdated(self) -> list[UpgradeInfo]:
        out, _, code = await self._exec("apt", "list", "--upgradable")
        return parse_upgradable(out) if code == 0 else []

    async def list_leaves(self) -> list[str]:
        out, _, code = await self._exec("apt-mark", "showmanual")
        return lines(out) if code == 0 else []

    async def cleanup(self, channel: Channel | None = None) -> bool:
        autoremove = await self._run(["apt-get", "autoremove", "-y"], channel)
        autoclean = await self._run(["apt-get", "autoclean"], channel)
        return autoremove and autoclean

    async def add_repository(self, ref: str, channel: Channel | None = None) -> bool:
        if not await self._run(["add-apt-repository", "-y", ref], channel):
            return False
        return await self.update(channel)

    async def list_repositories(self) -> list[str]:
        refs: list[str] = []
        try:
            sources = sorted(self.sources_dir.glob("*"))
        except OSError as e:
            log.warning("apt_sources_unreadable", path=str(self.sources_dir), error=str(e))
            return []

        for path in sources:
            if path.suffix not in (".list", ".sources"):
                continue
            try:
                refs.extend(parse_ppa_sources(path.read_text()))
            except OSError as e:
                log.warning("apt_sources_unreadable", path=str(path), error=str(e))
        return list(dedupe(refs))

    async def is_installed(self, names: Sequence[str]) -> dict[str, bool]:
        # dpkg-query exits 1 when any name is unknown but still reports the rest.
        out, _, _ = await self._exec("dpkg-query", "-W", "-f=${Package}\t${Status}\n", *names)
        installed = set()
        for line in lines(out):
            name, _, status = line.partition("\t")
            if status.endswith("ok installed"):
                installed.add(name.split(":")[0])
        return {name: name in installed for name in names}
