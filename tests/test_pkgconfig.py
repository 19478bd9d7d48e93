import json

import pytest

from pkgsync.core.errors import ConfigError
from pkgsync.core.files import dumps
from pkgsync.core.models import LinuxDistro, ManagerType, OrphanedPackage
from pkgsync.core.pkgconfig import (
    DeclaredConfig,
    adopt_orphan,
    default_config,
    is_v1,
    load_config,
    migrate_v1_to_v2,
)

V1 = {
    "config": {"purge": True, "purgeInteractive": False, "autoUpdate": True},
    "taps": ["oven-sh/bun"],
    "packages": ["git", "oven-sh/bun/bun"],
    "casks": ["firefox"],
    "mas": {"Xcode": 497799835},
}


def test_migrate_v1_to_v2():
    v2 = migrate_v1_to_v2(V1)

    assert v2 == {
        "version": 2,
        "config": {"purge": True, "purgeInteractive": False, "autoUpdate": True},
        "global": {"packages": []},
        "macos": {
            "taps": ["oven-sh/bun"],
            "formulas": ["git", "oven-sh/bun/bun"],
            "casks": ["firefox"],
            "mas": {"Xcode": 497799835},
        },
    }


def test_migration_is_deterministic():
    assert dumps(migrate_v1_to_v2(V1)) == dumps(migrate_v1_to_v2(json.loads(json.dumps(V1))))


def test_is_v1():
    assert is_v1(V1)
    assert not is_v1(migrate_v1_to_v2(V1))
    assert not is_v1({"config": {}})


def test_load_config_creates_default(tmp_path):
    path = tmp_path / "pkg-config.json"

    config = load_config(path)

    assert config == default_config()
    assert json.loads(path.read_text())["version"] == 2


def test_load_config_persists_v1_migration(tmp_path):
    path = tmp_path / "pkg-config.json"
    path.write_text(json.dumps(V1))

    config = load_config(path)

    assert config.macos.formulas == ["git", "oven-sh/bun/bun"]
    assert config.settings.purge is True
    assert json.loads(path.read_text()) == migrate_v1_to_v2(V1)


def test_load_config_rejects_unknown_schema(tmp_path):
    path = tmp_path / "pkg-config.json"
    original = '{"version": 3, "packages": []}'
    path.write_text(original)

    with pytest.raises(ConfigError) as exc_info:
        load_config(path)

    assert exc_info.value.context["path"] == str(path)
    assert path.read_text() == original


def test_load_config_rejects_invalid_json(tmp_path):
    path = tmp_path / "pkg-config.json"
    path.write_text("{")

    with pytest.raises(ConfigError):
        load_config(path)


def test_load_config_rejects_bad_field_types(tmp_path):
    path = tmp_path / "pkg-config.json"
    path.write_text(json.dumps({"version": 2, "config": {}, "global": {"packages": "git"}}))

    with pytest.raises(ConfigError) as exc_info:
        load_config(path)

    assert "global.packages" in exc_info.value.message


def test_round_trip_keeps_absent_sections_absent():
    data = {
        "version": 2,
        "config": {"purge": False, "purgeInteractive": True, "autoUpdate": False},
        "global": {"packages": ["git"]},
        "arch": {"aur": ["yay-bin"]},
    }

    assert DeclaredConfig.from_dict(data).to_dict() == data


def test_preferred_aur_helper_is_parsed():
    config = DeclaredConfig.from_dict(
        {"version": 2, "config": {"preferredAurHelper": "paru"}, "global": {"packages": []}}
    )

    assert config.settings.preferred_aur_helper.value == "paru"


def test_unknown_aur_helper_is_rejected():
    with pytest.raises(ConfigError):
        DeclaredConfig.from_dict({"version": 2, "config": {"preferredAurHelper": "pacaur"}})


def test_adopt_formula_keeps_list_sorted():
    config = default_config()
    config.macos.formulas = ["wget"]

    adopted = adopt_orphan(config, OrphanedPackage("htop", "formula", ManagerType.HOMEBREW))

    assert adopted.macos.formulas == ["htop", "wget"]
    assert config.macos.formulas == ["wget"]


def test_adopt_is_idempotent():
    orphan = OrphanedPackage("htop", "formula", ManagerType.HOMEBREW)
    once = adopt_orphan(default_config(), orphan)

    assert adopt_orphan(once, orphan).macos.formulas == ["htop"]


def test_adopt_mas_app_uses_display_name():
    orphan = OrphanedPackage("1444383602", "mas", ManagerType.MAS, "Goodnotes")

    adopted = adopt_orphan(default_config(), orphan)

    assert adopted.macos.mas == {"Goodnotes": 1444383602}


def test_adopt_distro_packages():
    apt = OrphanedPackage("htop", "apt", ManagerType.APT)

    assert adopt_orphan(default_config(), apt, LinuxDistro.UBUNTU).debian.packages == ["htop"]
    assert adopt_orphan(default_config(), apt, LinuxDistro.UNKNOWN).linux.packages == ["htop"]


def test_adopt_flatpak_and_cargo():
    config = adopt_orphan(
        default_config(), OrphanedPackage("org.gimp.GIMP", "flatpak", ManagerType.FLATPAK)
    )
    config = adopt_orphan(config, OrphanedPackage("ripgrep", "cargo", ManagerType.CARGO))

    assert config.linux.flatpak == ["org.gimp.GIMP"]
    assert config.global_.cargo == ["ripgrep"]
