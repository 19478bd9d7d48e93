"""Resolve the declared config into per-manager package sets for this host."""

from __future__ import annotations

from typing import Iterable

from pkgsync.core.models import (
    LinuxDistro,
    ManagerType,
    OperatingSystem,
    PackageSet,
    PlatformInfo,
)
from pkgsync.core.names import dedupe
from pkgsync.core.pkgconfig import DeclaredConfig

# Distro families with their own config section.
_ARCH = (LinuxDistro.ARCH,)
_DEBIAN = (LinuxDistro.DEBIAN, LinuxDistro.UBUNTU)
_FEDORA = (LinuxDistro.FEDORA, LinuxDistro.RHEL)

# Tried in order on distros without a section of their own.
FALLBACK_MANAGERS = (ManagerType.PACMAN, ManagerType.APT, ManagerType.DNF)

FLATHUB = "flathub"


def _names(*lists: Iterable[str] | None) -> tuple[str, ...]:
    return dedupe(name for names in lists if names for name in names)


def _macos_sets(config: DeclaredConfig, platform: PlatformInfo) -> list[PackageSet]:
    macos = config.macos
    sets = [
        PackageSet(
            ManagerType.HOMEBREW,
            _names(config.global_.packages, macos and macos.formulas),
            _names(macos and macos.taps),
        ),
        PackageSet(ManagerType.HOMEBREW_CASKS, _names(macos and macos.casks)),
    ]
    if platform.has(ManagerType.MAS):
        ids = (str(app_id) for app_id in ((macos and macos.mas) or {}).values())
        sets.append(PackageSet(ManagerType.MAS, _names(ids)))
    if platform.has(ManagerType.CARGO):
        sets.append(PackageSet(ManagerType.CARGO, _names(config.global_.cargo, macos and macos.cargo)))
    return sets


def _linux_sets(config: DeclaredConfig, platform: PlatformInfo) -> list[PackageSet]:
    linux = config.linux
    common = (config.global_.packages, linux and linux.packages)
    sets = []

    if platform.distro in _ARCH:
        arch = config.arch
        sets.append(PackageSet(ManagerType.PACMAN, _names(*common, arch and arch.packages)))
        sets.append(PackageSet(ManagerType.AUR, _names(arch and arch.aur)))
    elif platform.distro in _DEBIAN:
        debian = config.debian
        sets.append(
            PackageSet(
                ManagerType.APT,
                _names(*common, debian and debian.packages),
                _names(debian and debian.ppas),
            )
        )
    elif platform.distro in _FEDORA:
        fedora = config.fedora
        sets.append(
            PackageSet(
                ManagerType.DNF,
                _names(*common, fedora and fedora.packages),
                _names(f"copr:{ref}" for ref in (fedora and fedora.copr) or []),
            )
        )
    else:
        primary = next((m for m in FALLBACK_MANAGERS if platform.has(m)), None)
        if primary is not None:
            sets.append(PackageSet(primary, _names(*common)))

    if platform.has(ManagerType.FLATPAK):
        apps = _names(linux and linux.flatpak)
        sets.append(PackageSet(ManagerType.FLATPAK, apps, (FLATHUB,) if apps else ()))
    if platform.has(ManagerType.CARGO):
        sets.append(PackageSet(ManagerType.CARGO, _names(config.global_.cargo, linux and linux.cargo)))
    return sets


def resolve(
    config: DeclaredConfig, platform: PlatformInfo, include_empty: bool = False
) -> list[PackageSet]:
    """Work out which packages each manager should provide on ``platform``.

    Lists are concatenated in declaration order and de-duplicated, keeping
    the first occurrence. No backend is queried.

    Args:
        config: The declared config.
        platform: The detected host platform.
        include_empty: Keep sets that declare nothing. Orphan detection
            needs them so that every installed package of a manager with
            an empty declaration is still considered.

    Returns:
        One package set per manager, in the order they should be synced.
    """
    if platform.os is OperatingSystem.DARWIN:
        sets = _macos_sets(config, platform)
    else:
        sets = _linux_sets(config, platform)

    if include_empty:
        return sets
    return [s for s in sets if not s.is_empty]
