"""The declared package config (``pkg-config.json``).

Two schemas exist. V1 predates Linux support and has no ``version`` key::

    {"config": {...}, "taps": [], "packages": [], "casks": [], "mas": {}}

V2 groups packages by platform::

    {"version": 2, "config": {...}, "global": {"packages": []},
     "macos": {...}, "linux": {...}, "arch": {...}, "debian": {...},
     "fedora": {...}}

A V1 file is migrated once on load and written back as V2. Any other
shape is rejected with ``ConfigError`` and the file is left untouched.
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from pkgsync.core.errors import ConfigError
from pkgsync.core.files import read_json, write_json
from pkgsync.core.logging import get_logger
from pkgsync.core.models import AurHelper, LinuxDistro, ManagerType, OrphanedPackage

log = get_logger(__name__)

CONFIG_VERSION = 2


def _check_names(section: str, key: str, value: Any) -> list[str]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(
            f"'{section}.{key}' must be a list of strings",
            error=f"got {type(value).__name__}",
        )
    return list(value)


def _check_mas(section: str, value: Any) -> dict[str, int]:
    if not isinstance(value, dict):
        raise ConfigError(f"'{section}.mas' must map app names to IDs", error=repr(value)[:80])
    apps = {}
    for name, app_id in value.items():
        if isinstance(app_id, bool) or not isinstance(app_id, (int, str)) or not str(app_id).isdigit():
            raise ConfigError(f"'{section}.mas.{name}' is not an App Store ID", error=repr(app_id))
        apps[str(name)] = int(app_id)
    return apps


class _Section:
    """Package lists of one config section.

    Fields left as ``None`` are absent from the file and are not written.
    """

    @classmethod
    def from_dict(cls, name: str, data: Any):
        if data is None:
            return None
        if not isinstance(data, dict):
            raise ConfigError(f"'{name}' must be an object", error=repr(data)[:80])

        values = {}
        for f in fields(cls):
            if f.name not in data:
                continue
            if f.name == "mas":
                values[f.name] = _check_mas(name, data[f.name])
            else:
                values[f.name] = _check_names(name, f.name, data[f.name])
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        return {
            f.name: copy.deepcopy(getattr(self, f.name))
            for f in fields(self)
            if getattr(self, f.name) is not None
        }


@dataclass
class Settings:
    purge: bool = False
    purge_interactive: bool = True
    auto_update: bool = True
    preferred_aur_helper: AurHelper | None = None

    @classmethod
    def from_dict(cls, data: Any) -> Settings:
        if not isinstance(data, dict):
            raise ConfigError("'config' must be an object", error=repr(data)[:80])

        helper = data.get("preferredAurHelper")
        try:
            preferred = AurHelper(helper) if helper else None
        except ValueError as e:
            raise ConfigError(
                f"Unknown AUR helper '{helper}'",
                error=f"expected one of {', '.join(h.value for h in AurHelper)}",
            ) from e

        return cls(
            purge=bool(data.get("purge", False)),
            purge_interactive=bool(data.get("purgeInteractive", True)),
            auto_update=bool(data.get("autoUpdate", True)),
            preferred_aur_helper=preferred,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "purge": self.purge,
            "purgeInteractive": self.purge_interactive,
            "autoUpdate": self.auto_update,
        }
        if self.preferred_aur_helper is not None:
            data["preferredAurHelper"] = self.preferred_aur_helper.value
        return data


@dataclass
class GlobalPackages(_Section):
    packages: list[str] = field(default_factory=list)
    cargo: list[str] | None = None


@dataclass
class MacOSPackages(_Section):
    taps: list[str] | None = None
    formulas: list[str] | None = None
    casks: list[str] | None = None
    mas: dict[str, int] | None = None
    cargo: list[str] | None = None


@dataclass
class LinuxPackages(_Section):
    packages: list[str] | None = None
    flatpak: list[str] | None = None
    cargo: list[str] | None = None


@dataclass
class ArchPackages(_Section):
    packages: list[str] | None = None
    aur: list[str] | None = None


@dataclass
class DebianPackages(_Section):
    packages: list[str] | None = None
    ppas: list[str] | None = None


@dataclass
class FedoraPackages(_Section):
    packages: list[str] | None = None
    copr: list[str] | None = None


_SECTIONS = {
    "macos": MacOSPackages,
    "linux": LinuxPackages,
    "arch": ArchPackages,
    "debian": DebianPackages,
    "fedora": FedoraPackages,
}


@dataclass
class DeclaredConfig:
    """A V2 package config."""

    settings: Settings = field(default_factory=Settings)
    global_: GlobalPackages = field(default_factory=GlobalPackages)
    macos: MacOSPackages | None = None
    linux: LinuxPackages | None = None
    arch: ArchPackages | None = None
    debian: DebianPackages | None = None
    fedora: FedoraPackages | None = None
    version: int = CONFIG_VERSION

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DeclaredConfig:
        global_ = GlobalPackages.from_dict("global", data.get("global", {"packages": []}))
        return cls(
            settings=Settings.from_dict(data.get("config", {})),
            global_=global_,
            **{key: section.from_dict(key, data.get(key)) for key, section in _SECTIONS.items()},
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "version": CONFIG_VERSION,
            "config": self.settings.to_dict(),
            "global": self.global_.to_dict(),
        }
        for key in _SECTIONS:
            section = getattr(self, key)
            if section is not None:
                data[key] = section.to_dict()
        return data


def default_config() -> DeclaredConfig:
    return DeclaredConfig(macos=MacOSPackages(taps=[], formulas=[], casks=[], mas={}))


def is_v1(data: Any) -> bool:
    return (
        isinstance(data, dict)
        and "version" not in data
        and all(key in data for key in ("config", "taps", "packages", "casks"))
    )


def migrate_v1_to_v2(v1: dict[str, Any]) -> dict[str, Any]:
    """Convert a V1 config document to V2.

    Returns a new document; ``v1`` is not modified. The same input always
    yields the same output, key order included.
    """
    settings = v1.get("config") or {}
    return {
        "version": 2,
        "config": {
            "purge": settings.get("purge", False),
            "purgeInteractive": settings.get("purgeInteractive", True),
            "autoUpdate": settings.get("autoUpdate", True),
        },
        "global": {"packages": []},
        "macos": {
            "taps": list(v1.get("taps") or []),
            "formulas": list(v1.get("packages") or []),
            "casks": list(v1.get("casks") or []),
            "mas": dict(v1.get("mas") or {}),
        },
    }


def save_config(config: DeclaredConfig, path: Path) -> None:
    write_json(path, config.to_dict())
    log.info("config_saved", path=str(path))


def load_config(path: Path) -> DeclaredConfig:
    """Load the declared config, creating or migrating it as needed.

    Args:
        path: Location of ``pkg-config.json``.

    Returns:
        The config as V2. A missing file is created with the defaults.

    Raises:
        ConfigError: If the file is not JSON or matches neither schema.
    """
    if not path.exists():
        config = default_config()
        save_config(config, path)
        log.info("config_created", path=str(path))
        return config

    try:
        raw = read_json(path)
    except json.JSONDecodeError as e:
        raise ConfigError(path=str(path), error=f"invalid JSON: {e}") from e

    if is_v1(raw):
        config = DeclaredConfig.from_dict(migrate_v1_to_v2(raw))
        save_config(config, path)
        log.info("config_migrated", path=str(path), from_version=1, to_version=CONFIG_VERSION)
        return config

    if isinstance(raw, dict) and raw.get("version") == CONFIG_VERSION:
        try:
            return DeclaredConfig.from_dict(raw)
        except ConfigError as e:
            raise e.with_context(path=str(path))

    version = raw.get("version") if isinstance(raw, dict) else None
    log.error("config_schema_unknown", path=str(path), version=version)
    raise ConfigError(
        path=str(path),
        error=f"unrecognised schema (version={version!r}); expected version 2 or a V1 config",
    )


def _append(names: list[str] | None, name: str) -> list[str]:
    return sorted(set(names or []) | {name})


def adopt_orphan(
    config: DeclaredConfig, orphan: OrphanedPackage, distro: LinuxDistro | None = None
) -> DeclaredConfig:
    """Return a copy of ``config`` that declares ``orphan``.

    The package is added to the section its manager reads from, kept
    sorted and without duplicates. Distro package managers on a distro
    pkgsync has no section for fall back to ``linux.packages``.
    """
    config = copy.deepcopy(config)
    manager = orphan.manager
    distro_section = distro not in (None, LinuxDistro.UNKNOWN, LinuxDistro.OPENSUSE)

    if manager in (ManagerType.HOMEBREW, ManagerType.HOMEBREW_CASKS, ManagerType.MAS):
        macos = config.macos = config.macos or MacOSPackages()
        if manager is ManagerType.HOMEBREW:
            macos.formulas = _append(macos.formulas, orphan.name)
        elif manager is ManagerType.HOMEBREW_CASKS:
            macos.casks = _append(macos.casks, orphan.name)
        else:
            apps = dict(macos.mas or {})
            if int(orphan.name) not in apps.values():
                apps[orphan.display_name or orphan.name] = int(orphan.name)
            macos.mas = dict(sorted(apps.items()))
    elif manager is ManagerType.AUR:
        arch = config.arch = config.arch or ArchPackages()
        arch.aur = _append(arch.aur, orphan.name)
    elif manager is ManagerType.PACMAN and distro_section:
        arch = config.arch = config.arch or ArchPackages()
        arch.packages = _append(arch.packages, orphan.name)
    elif manager is ManagerType.APT and distro_section:
        debian = config.debian = config.debian or DebianPackages()
        debian.packages = _append(debian.packages, orphan.name)
    elif manager is ManagerType.DNF and distro_section:
        fedora = config.fedora = config.fedora or FedoraPackages()
        fedora.packages = _append(fedora.packages, orphan.name)
    elif manager is ManagerType.FLATPAK:
        linux = config.linux = config.linux or LinuxPackages()
        linux.flatpak = _append(linux.flatpak, orphan.name)
    elif manager is ManagerType.CARGO:
        config.global_.cargo = _append(config.global_.cargo, orphan.name)
    else:
        linux = config.linux = config.linux or LinuxPackages()
        linux.packages = _append(linux.packages, orphan.name)

    log.info("orphan_adopted", manager=manager.value, package=orphan.name)
    return config
