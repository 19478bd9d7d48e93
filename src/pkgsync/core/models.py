"""Data models shared by the backends and the reconciliation engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ManagerType(Enum):
    """Backend tags. Values are used verbatim in lock keys."""

    HOMEBREW = "homebrew"
    HOMEBREW_CASKS = "homebrew-casks"
    MAS = "mas"
    PACMAN = "pacman"
    AUR = "aur"
    APT = "apt"
    DNF = "dnf"
    FLATPAK = "flatpak"
    CARGO = "cargo"


DISPLAY_NAMES = {
    ManagerType.HOMEBREW: "Homebrew Formulas",
    ManagerType.HOMEBREW_CASKS: "Homebrew Casks",
    ManagerType.MAS: "Mac App Store",
    ManagerType.PACMAN: "Pacman",
    ManagerType.AUR: "AUR",
    ManagerType.APT: "APT",
    ManagerType.DNF: "DNF",
    ManagerType.FLATPAK: "Flatpak",
    ManagerType.CARGO: "Cargo",
}

# Orphan "type" labels, as shown to the user.
ORPHAN_TYPES = {
    ManagerType.HOMEBREW: "formula",
    ManagerType.HOMEBREW_CASKS: "cask",
    ManagerType.MAS: "mas",
    ManagerType.PACMAN: "pacman",
    ManagerType.AUR: "aur",
    ManagerType.APT: "apt",
    ManagerType.DNF: "dnf",
    ManagerType.FLATPAK: "flatpak",
    ManagerType.CARGO: "cargo",
}


class OperatingSystem(Enum):
    DARWIN = "darwin"
    LINUX = "linux"


class LinuxDistro(Enum):
    ARCH = "arch"
    DEBIAN = "debian"
    UBUNTU = "ubuntu"
    FEDORA = "fedora"
    RHEL = "rhel"
    OPENSUSE = "opensuse"
    UNKNOWN = "unknown"


class AurHelper(Enum):
    """Supported AUR helpers, in detection preference order."""

    YAY = "yay"
    PARU = "paru"
    TRIZEN = "trizen"


@dataclass(frozen=True)
class PlatformInfo:
    """What kind of host this is and which backends it can use."""

    os: OperatingSystem
    distro: LinuxDistro | None = None
    aur_helper: AurHelper | None = None
    available_types: tuple[ManagerType, ...] = ()

    def has(self, manager: ManagerType) -> bool:
        return manager in self.available_types

    @property
    def display_name(self) -> str:
        if self.os is OperatingSystem.DARWIN:
            return "macOS"
        return {
            LinuxDistro.ARCH: "Arch Linux",
            LinuxDistro.DEBIAN: "Debian",
            LinuxDistro.UBUNTU: "Ubuntu",
            LinuxDistro.FEDORA: "Fedora",
            LinuxDistro.RHEL: "RHEL/CentOS",
            LinuxDistro.OPENSUSE: "openSUSE",
        }.get(self.distro, "Linux")


@dataclass(frozen=True)
class PackageInfo:
    """An installed package as reported by its manager."""

    name: str
    version: str


@dataclass(frozen=True)
class UpgradeInfo:
    """A package with a pending update."""

    name: str
    current_version: str = "unknown"
    new_version: str = "unknown"


@dataclass(frozen=True)
class PackageSet:
    """Packages and repositories one manager should provide on this host."""

    manager: ManagerType
    packages: tuple[str, ...] = ()
    repositories: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.packages and not self.repositories


@dataclass
class LockEntry:
    """One locked package, keyed in the lockfile by ``<manager>:<name>``."""

    version: str
    installed_at: str
    manager: ManagerType
    tap: str | None = None
    source: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "version": self.version,
            "installedAt": self.installed_at,
            "manager": self.manager.value,
        }
        if self.tap:
            data["tap"] = self.tap
        if self.source:
            data["source"] = self.source
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LockEntry:
        return cls(
            version=str(data.get("version", "unknown")),
            installed_at=str(data.get("installedAt", "")),
            manager=ManagerType(data["manager"]),
            tap=data.get("tap"),
            source=data.get("source"),
        )


def lock_key(manager: ManagerType, name: str) -> str:
    return f"{manager.value}:{name}"


@dataclass
class Lockfile:
    """Snapshot of installed packages (schema version 2)."""

    last_updated: str
    packages: dict[str, LockEntry] = field(default_factory=dict)
    version: int = 2

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": 2,
            "lastUpdated": self.last_updated,
            "packages": {key: entry.to_dict() for key, entry in self.packages.items()},
        }


@dataclass
class UpgradeResult:
    """Accounting for a single upgrade run."""

    attempted: list[str] = field(default_factory=list)
    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    still_outdated: list[str] = field(default_factory=list)

    def merge(self, other: UpgradeResult) -> None:
        self.attempted.extend(other.attempted)
        self.succeeded.extend(other.succeeded)
        self.failed.extend(other.failed)
        self.still_outdated.extend(other.still_outdated)

    @property
    def ok(self) -> bool:
        return not self.failed and not self.still_outdated


@dataclass(frozen=True)
class OrphanedPackage:
    """An installed leaf that the declared config does not mention."""

    name: str
    type: str
    manager: ManagerType
    display_name: str | None = None

    @property
    def label(self) -> str:
        return f"{self.display_name} ({self.name})" if self.display_name else self.name


@dataclass
class OrphanDetectionResult:
    orphans: list[OrphanedPackage] = field(default_factory=list)
    config_packages: int = 0
    installed_packages: int = 0


@dataclass(frozen=True)
class VersionChange:
    name: str
    from_version: str
    to_version: str


@dataclass
class PackageChanges:
    """Drift between the installed packages and the persisted lockfile."""

    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    upgraded: list[VersionChange] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.upgraded)


@dataclass
class SyncReport:
    """What a sync run did, per manager tag."""

    installed: dict[str, list[str]] = field(default_factory=dict)
    failed: dict[str, list[str]] = field(default_factory=dict)
    repositories_added: dict[str, list[str]] = field(default_factory=dict)
    removed: list[OrphanedPackage] = field(default_factory=list)
    lockfile: Lockfile | None = None

    @property
    def ok(self) -> bool:
        return not any(self.failed.values())
