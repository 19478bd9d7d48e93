import asyncio
import json

from conftest import FakeManager

from pkgsync.core.files import dumps
from pkgsync.core.lockfile import (
    LockfileStore,
    diff_locks,
    fetch_installed,
    get_changed_packages,
    merge_locks,
    migrate_lock_v1,
    parse_lockfile,
    reset_lockfile,
    update_lockfile,
    utc_now,
)
from pkgsync.core.models import LockEntry, Lockfile, ManagerType

T0 = "2024-01-01T00:00:00.000Z"
T1 = "2024-02-01T00:00:00.000Z"


def _lock(**versions):
    return Lockfile(
        last_updated=T0,
        packages={
            f"homebrew:{name}": LockEntry(version, T0, ManagerType.HOMEBREW)
            for name, version in versions.items()
        },
    )


def _fresh(**versions):
    return {
        f"homebrew:{name}": LockEntry(version, T1, ManagerType.HOMEBREW)
        for name, version in versions.items()
    }


def test_utc_now_format():
    stamp = utc_now()
    assert stamp.endswith("Z")
    assert len(stamp) == len("2024-01-01T00:00:00.000Z")


def test_merge_keeps_installed_at_for_unchanged_version():
    merged = merge_locks(_lock(git="2.40"), _fresh(git="2.40"), T1)

    assert merged.packages["homebrew:git"].installed_at == T0
    assert merged.last_updated == T1


def test_merge_takes_new_timestamp_on_version_change():
    merged = merge_locks(_lock(git="2.40"), _fresh(git="2.41"), T1)

    entry = merged.packages["homebrew:git"]
    assert entry.version == "2.41"
    assert entry.installed_at == T1


def test_merge_drops_uninstalled_packages():
    merged = merge_locks(_lock(git="2.40", wget="1.21"), _fresh(git="2.40"), T1)

    assert list(merged.packages) == ["homebrew:git"]


def test_merge_is_idempotent():
    fresh = _fresh(git="2.40", jq="1.7")
    once = merge_locks(_lock(git="2.40"), fresh, T1)
    twice = merge_locks(once, fresh, T1)

    assert dumps(once.to_dict()) == dumps(twice.to_dict())


def test_diff_without_previous_lock_reports_everything_added():
    changes = diff_locks(None, _fresh(git="2.40", jq="1.7"))

    assert sorted(changes.added) == ["homebrew:git", "homebrew:jq"]
    assert not changes.removed
    assert not changes.upgraded


def test_diff_reports_added_removed_and_upgraded():
    changes = diff_locks(_lock(git="2.40", wget="1.21"), _fresh(git="2.41", jq="1.7"))

    assert changes.added == ["homebrew:jq"]
    assert changes.removed == ["homebrew:wget"]
    assert len(changes.upgraded) == 1
    change = changes.upgraded[0]
    assert (change.name, change.from_version, change.to_version) == ("homebrew:git", "2.40", "2.41")


def test_migrate_lock_v1():
    v1 = {
        "version": 1,
        "lastUpdated": T0,
        "formulas": {"git": {"version": "2.40", "installedAt": T0, "tap": "homebrew/core"}},
        "casks": {"firefox": {"version": "120.0", "installedAt": T0}},
    }

    v2 = migrate_lock_v1(v1)

    assert v2["version"] == 2
    assert v2["packages"]["homebrew:git"] == {
        "version": "2.40",
        "installedAt": T0,
        "manager": "homebrew",
        "tap": "homebrew/core",
    }
    assert v2["packages"]["homebrew-casks:firefox"]["manager"] == "homebrew-casks"
    assert "formulas" in v1


def test_parse_lockfile_rejects_unknown_versions():
    assert parse_lockfile({"version": 7, "packages": {}}) is None
    assert parse_lockfile([]) is None


def test_parse_lockfile_skips_invalid_entries():
    lock = parse_lockfile({
        "version": 2,
        "lastUpdated": T0,
        "packages": {
            "homebrew:git": {"version": "2.40", "installedAt": T0, "manager": "homebrew"},
            "bogus:thing": {"version": "1", "installedAt": T0, "manager": "bogus"},
        },
    })

    assert list(lock.packages) == ["homebrew:git"]


def test_store_load_missing_returns_none(tmp_path):
    assert LockfileStore(tmp_path / "pkg-lock.json").load() is None


def test_store_treats_corrupt_file_as_absent(tmp_path):
    path = tmp_path / "pkg-lock.json"
    path.write_text("{not json")

    assert LockfileStore(path).load() is None
    assert path.read_text() == "{not json"


def test_store_reads_v1_lock(tmp_path):
    path = tmp_path / "pkg-lock.json"
    path.write_text(json.dumps({
        "version": 1,
        "lastUpdated": T0,
        "formulas": {"git": {"version": "2.40", "installedAt": T0}},
        "casks": {},
    }))

    lock = LockfileStore(path).load()

    assert lock.packages["homebrew:git"].version == "2.40"


def test_fetch_installed_keys_by_manager():
    brew = FakeManager(ManagerType.HOMEBREW, installed={"git": "2.40"})
    cargo = FakeManager(ManagerType.CARGO, installed={"ripgrep": "14.1.0"})

    packages = asyncio.run(fetch_installed([brew, cargo], T0))

    assert set(packages) == {"homebrew:git", "cargo:ripgrep"}
    assert packages["cargo:ripgrep"].manager is ManagerType.CARGO


def test_update_lockfile_preserves_timestamps_across_runs(tmp_path):
    clock = iter([T0, T1])
    store = LockfileStore(tmp_path / "pkg-lock.json", clock=lambda: next(clock))
    brew = FakeManager(ManagerType.HOMEBREW, installed={"git": "2.40", "jq": "1.7"})

    asyncio.run(update_lockfile(store, [brew]))
    brew.installed["jq"] = "1.7.1"
    lock = asyncio.run(update_lockfile(store, [brew]))

    assert lock.last_updated == T1
    assert lock.packages["homebrew:git"].installed_at == T0
    assert lock.packages["homebrew:jq"].installed_at == T1
    assert store.load().packages["homebrew:jq"].version == "1.7.1"


def test_reset_lockfile_discards_timestamps(tmp_path):
    clock = iter([T0, T1])
    store = LockfileStore(tmp_path / "pkg-lock.json", clock=lambda: next(clock))
    brew = FakeManager(ManagerType.HOMEBREW, installed={"git": "2.40"})

    asyncio.run(update_lockfile(store, [brew]))
    lock = asyncio.run(reset_lockfile(store, [brew]))

    assert lock.packages["homebrew:git"].installed_at == T1


def test_changed_packages_on_cold_start(tmp_path):
    store = LockfileStore(tmp_path / "pkg-lock.json", clock=lambda: T0)
    brew = FakeManager(ManagerType.HOMEBREW, installed={"git": "2.40"})

    changes = asyncio.run(get_changed_packages(store, [brew]))

    assert changes.added == ["homebrew:git"]
    assert not (tmp_path / "pkg-lock.json").exists()


def test_saved_lock_is_version_2(tmp_path):
    store = LockfileStore(tmp_path / "pkg-lock.json", clock=lambda: T0)
    asyncio.run(update_lockfile(store, [FakeManager(installed={"git": "2.40"})]))

    data = json.loads((tmp_path / "pkg-lock.json").read_text())

    assert data["version"] == 2
    assert data["packages"]["homebrew:git"] == {
        "version": "2.40",
        "installedAt": T0,
        "manager": "homebrew",
    }
