"""Host platform detection: OS, Linux family, AUR helper and usable backends."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable

from pkgsync.core import shell
from pkgsync.core.logging import get_logger
from pkgsync.core.models import (
    AurHelper,
    LinuxDistro,
    ManagerType,
    OperatingSystem,
    PlatformInfo,
)

log = get_logger(__name__)

OS_RELEASE = Path("/etc/os-release")

_DISTRO_IDS = {
    "arch": LinuxDistro.ARCH,
    "manjaro": LinuxDistro.ARCH,
    "endeavouros": LinuxDistro.ARCH,
    "artix": LinuxDistro.ARCH,
    "debian": LinuxDistro.DEBIAN,
    "ubuntu": LinuxDistro.UBUNTU,
    "linuxmint": LinuxDistro.UBUNTU,
    "pop": LinuxDistro.UBUNTU,
    "elementary": LinuxDistro.UBUNTU,
    "fedora": LinuxDistro.FEDORA,
    "rhel": LinuxDistro.RHEL,
    "centos": LinuxDistro.RHEL,
    "rocky": LinuxDistro.RHEL,
    "almalinux": LinuxDistro.RHEL,
    "opensuse": LinuxDistro.OPENSUSE,
    "opensuse-leap": LinuxDistro.OPENSUSE,
    "opensuse-tumbleweed": LinuxDistro.OPENSUSE,
}

# Executable probed for each backend type. AUR is probed via its helper.
EXECUTABLES = {
    ManagerType.HOMEBREW: "brew",
    ManagerType.MAS: "mas",
    ManagerType.PACMAN: "pacman",
    ManagerType.APT: "apt-get",
    ManagerType.DNF: "dnf",
    ManagerType.FLATPAK: "flatpak",
    ManagerType.CARGO: "cargo",
}


def _os_release_fields(text: str) -> dict[str, str]:
    fields = {}
    for line in text.splitlines():
        key, sep, value = line.partition("=")
        if sep:
            fields[key.strip()] = value.strip().strip('"').strip("'").lower()
    return fields


def parse_os_release(text: str) -> LinuxDistro:
    """Map the contents of ``/etc/os-release`` onto a distro family.

    ``ID`` is matched first; derivatives are recognised through ``ID_LIKE``.
    """
    fields = _os_release_fields(text)
    distro_id = fields.get("ID", "")

    if distro_id in _DISTRO_IDS:
        return _DISTRO_IDS[distro_id]

    id_like = fields.get("ID_LIKE", "")
    if "arch" in id_like:
        return LinuxDistro.ARCH
    if "debian" in id_like or "ubuntu" in id_like:
        return LinuxDistro.DEBIAN
    if "fedora" in id_like or "rhel" in id_like:
        return LinuxDistro.FEDORA

    return LinuxDistro.UNKNOWN


class PlatformDetector:
    """Detects the host platform once and caches the result.

    Args:
        os_release: Path of the OS identifier file.
        system: Override for ``sys.platform``.
        preferred_aur_helper: Helper to pick first when it is installed.
        which: Executable probe; defaults to ``shell.command_exists``.
    """

    def __init__(
        self,
        os_release: Path = OS_RELEASE,
        system: str | None = None,
        preferred_aur_helper: AurHelper | None = None,
        which: Callable[[str], bool] | None = None,
    ) -> None:
        self.os_release = os_release
        self.system = system
        self.preferred_aur_helper = preferred_aur_helper
        self._which = which
        self._info: PlatformInfo | None = None

    def exists(self, executable: str) -> bool:
        if self._which is not None:
            return self._which(executable)
        return shell.command_exists(executable)

    def detect_os(self) -> OperatingSystem:
        system = self.system or sys.platform
        return OperatingSystem.DARWIN if system == "darwin" else OperatingSystem.LINUX

    def detect_distro(self) -> LinuxDistro:
        try:
            text = self.os_release.read_text()
        except OSError as e:
            log.warning("os_release_unreadable", path=str(self.os_release), error=str(e))
            return LinuxDistro.UNKNOWN
        return parse_os_release(text)

    def detect_aur_helper(self) -> AurHelper | None:
        order = list(AurHelper)
        if self.preferred_aur_helper is not None:
            order.remove(self.preferred_aur_helper)
            order.insert(0, self.preferred_aur_helper)

        for helper in order:
            if self.exists(helper.value):
                return helper
        return None

    def candidate_types(self, os: OperatingSystem) -> list[ManagerType]:
        if os is OperatingSystem.DARWIN:
            return [ManagerType.HOMEBREW, ManagerType.MAS, ManagerType.CARGO]
        return [
            ManagerType.PACMAN,
            ManagerType.AUR,
            ManagerType.APT,
            ManagerType.DNF,
            ManagerType.FLATPAK,
            ManagerType.CARGO,
        ]

    def info(self) -> PlatformInfo:
        """Return the cached platform info, detecting it on first use."""
        if self._info is not None:
            return self._info

        os = self.detect_os()
        distro = self.detect_distro() if os is OperatingSystem.LINUX else None
        aur_helper = None
        if os is OperatingSystem.LINUX and self.exists("pacman"):
            aur_helper = self.detect_aur_helper()

        available = []
        for manager in self.candidate_types(os):
            if manager is ManagerType.AUR:
                if aur_helper is not None and ManagerType.PACMAN in available:
                    available.append(manager)
            elif self.exists(EXECUTABLES[manager]):
                available.append(manager)

        self._info = PlatformInfo(
            os=os,
            distro=distro,
            aur_helper=aur_helper,
            available_types=tuple(available),
        )
        log.info(
            "platform_detected",
            os=os.value,
            distro=distro.value if distro else None,
            aur_helper=aur_helper.value if aur_helper else None,
            available=[m.value for m in available],
        )
        return self._info

    def clear(self) -> None:
        """Forget the cached result so the next ``info()`` probes again."""
        self._info = None
