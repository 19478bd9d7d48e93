"""Fedora and RHEL DNF backend."""

from __future__ import annotations

import re
from typing import Sequence

from pkgsync.backends.base import PackageManager, lines
from pkgsync.core.channel import Channel
from pkgsync.core.models import ManagerType, PackageInfo, UpgradeInfo

# `dnf check-update` exits 100 when updates are available.
EXIT_UPDATES_AVAILABLE = 100

COPR_PREFIX = "copr:"

_ARCH_SUFFIX = re.compile(r"\.\w+$")
# "name-version-release.arch"
_NEVRA = re.compile(r"^(.+)-[^-]+-[^-]+\.[^.]+$")


def strip_arch(name: str) -> str:
    return _ARCH_SUFFIX.sub("", name)


def parse_package_table(output: str, skip_header: bool = False) -> list[tuple[str, str]]:
    """Parse ``name.arch  version  repo`` rows into (name, version) pairs."""
    rows = []
    for line in lines(output)[1 if skip_header else 0 :]:
        if line.startswith(("Last metadata", "Obsoleting", "Installed Packages")):
            continue
        parts = line.split()
        if len(parts) >= 2:
            rows.append((strip_arch(parts[0]), parts[1]))
    return rows


class Dnf(PackageManager):
    tag = ManagerType.DNF
    executable = "dnf"
    needs_sudo = True

    async def update(self, channel: Channel | None = None) -> bool:
        return await self._run(
            ["dnf", "check-update"], channel, ok_codes=(0, EXIT_UPDATES_AVAILABLE)
        )

    async def _install(self, names: list[str], channel: Channel | None) -> bool:
        return await self._run(["dnf", "install", "-y", *names], channel)

    async def _uninstall(self, names: list[str], channel: Channel | None) -> bool:
        return await self._run(["dnf", "remove", "-y", *names], channel)

    async def upgrade(
        self, names: Sequence[str] | None = None, channel: Channel | None = None
    ) -> bool:
        return await self._run(["dnf", "upgrade", "-y", *(names or [])], channel)

    async def list_installed(self) -> list[PackageInfo]:
        out, _, code = await self._exec("dnf", "list", "installed", "-q")
        if code != 0:
            return []
        return [PackageInfo(name, version) for name, version in parse_package_table(out)]

    async def list_outdated(self) -> list[UpgradeInfo]:
        out, _, code = await self._exec("dnf", "check-update", "-q")
        if code not in (0, EXIT_UPDATES_AVAILABLE):
            return []
        return [
            UpgradeInfo(name, current_version="installed", new_version=version)
            for name, version in parse_package_table(out)
        ]

    async def list_leaves(self) -> list[str]:
        out, _, code = await self._exec("dnf", "leaves")
        if code == 0 and out:
            leaves = []
            for line in lines(out):
                # "- vim-enhanced-9.1.0-1.fc40.x86_64"; indented lines are
                # alternatives in the same dependency cycle.
                if not line.startswith("-"):
                    continue
                nevra = line.lstrip("- ").strip()
                match = _NEVRA.match(nevra)
                leaves.append(match.group(1) if match else nevra)
            return leaves

        out, _, code = await self._exec(
            "dnf", "repoquery", "--userinstalled", "--queryformat", "%{name}\n", "-q"
        )
        return lines(out) if code == 0 else []

    async def cleanup(self, channel: Channel | None = None) -> bool:
        autoremove = await self._run(["dnf", "autoremove", "-y"], channel)
        clean = await self._run(["dnf", "clean", "all"], channel)
        return autoremove and clean

    async def add_repository(self, ref: str, channel: Channel | None = None) -> bool:
        if ref.startswith(COPR_PREFIX):
            return await self._run(
                ["dnf", "copr", "enable", "-y", ref.removeprefix(COPR_PREFIX)], channel
            )
        return await self._run(["dnf", "config-manager", "--add-repo", ref], channel)

    async def list_repositories(self) -> list[str]:
        out, _, code = await self._exec("dnf", "copr", "list")
        if code != 0:
            return []

        repos = []
        for line in lines(out):
            if "(disabled)" in line:
                continue
            # "copr.fedorainfracloud.org/user/project"
            parts = line.split()[0].split("/")
            if len(parts) >= 3:
                repos.append(f"{COPR_PREFIX}{parts[-2]}/{parts[-1]}")
        return repos

    async def is_installed(self, names: Sequence[str]) -> dict[str, bool]:
        # Missing packages print "package x is not installed" and make rpm exit 1.
        out, _, _ = await self._exec("rpm", "-q", "--queryformat", "%{NAME}\n", *names)
        installed = {line for line in lines(out) if " " not in line}
        return {name: name in installed for name in names}
