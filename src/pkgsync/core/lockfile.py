"""The lockfile (``pkg-lock.json``): a snapshot of installed package versions.

Entries are keyed ``<manager>:<name>``. Lockfiles written before Linux
support (version 1) kept formulas and casks in separate maps; they are
still read, migrated in memory, and always written back as version 2.
"""

from __future__ import annotations

import asyncio
import json
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Sequence

from pkgsync.backends.base import PackageManager
from pkgsync.backends.flatpak import Flatpak
from pkgsync.backends.homebrew import HomebrewFormulas
from pkgsync.core.errors import StorageError
from pkgsync.core.files import read_json, write_json
from pkgsync.core.logging import get_logger
from pkgsync.core.models import (
    LockEntry,
    Lockfile,
    ManagerType,
    PackageChanges,
    VersionChange,
    lock_key,
)

log = get_logger(__name__)

LOCK_VERSION = 2


def utc_now() -> str:
    """Current time as an ISO 8601 UTC timestamp with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def migrate_lock_v1(v1: dict[str, Any]) -> dict[str, Any]:
    """Convert a version 1 lock document to version 2.

    Formulas become ``homebrew:<name>`` and casks ``homebrew-casks:<name>``.
    ``v1`` is not modified.
    """
    packages: dict[str, Any] = {}

    for name, info in sorted((v1.get("formulas") or {}).items()):
        entry = {
            "version": info.get("version", "unknown"),
            "installedAt": info.get("installedAt", ""),
            "manager": ManagerType.HOMEBREW.value,
        }
        if info.get("tap"):
            entry["tap"] = info["tap"]
        packages[lock_key(ManagerType.HOMEBREW, name)] = entry

    for name, info in sorted((v1.get("casks") or {}).items()):
        packages[lock_key(ManagerType.HOMEBREW_CASKS, name)] = {
            "version": info.get("version", "unknown"),
            "installedAt": info.get("installedAt", ""),
            "manager": ManagerType.HOMEBREW_CASKS.value,
        }

    return {"version": 2, "lastUpdated": v1.get("lastUpdated", ""), "packages": packages}


def parse_lockfile(data: Any) -> Lockfile | None:
    """Build a ``Lockfile`` from a V1 or V2 document; ``None`` for anything else."""
    if not isinstance(data, dict):
        return None

    if data.get("version") == 1:
        data = migrate_lock_v1(data)
        log.info("lockfile_migrated", from_version=1, to_version=LOCK_VERSION)
    elif data.get("version") != LOCK_VERSION:
        return None

    packages = {}
    for key, entry in (data.get("packages") or {}).items():
        try:
            packages[key] = LockEntry.from_dict(entry)
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            log.warning("lock_entry_invalid", key=key, error=str(e))

    return Lockfile(last_updated=str(data.get("lastUpdated", "")), packages=packages)


class LockfileStore:
    """Reads and writes the lockfile at ``path``.

    Args:
        path: Location of ``pkg-lock.json``.
        clock: Returns the timestamp used for ``installedAt`` and
            ``lastUpdated``.
    """

    def __init__(self, path: Path, clock: Callable[[], str] = utc_now) -> None:
        self.path = path
        self.clock = clock

    def load(self) -> Lockfile | None:
        """Load the lockfile, or ``None`` when it does not exist yet.

        A lockfile that is not valid JSON or has an unknown version is
        logged and treated as absent; it is regenerated on the next update.
        """
        if not self.path.exists():
            return None

        try:
            data = read_json(self.path)
        except json.JSONDecodeError as e:
            log.warning("lockfile_corrupted", path=str(self.path), error=str(e))
            return None

        lock = parse_lockfile(data)
        if lock is None:
            version = data.get("version") if isinstance(data, dict) else None
            log.warning("lockfile_schema_unknown", path=str(self.path), version=version)
        return lock

    def save(self, lock: Lockfile) -> None:
        write_json(self.path, lock.to_dict())
        log.info("lockfile_saved", path=str(self.path), packages=len(lock.packages))

    def delete(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(path=str(self.path), operation="delete", error=str(e)) from e


async def fetch_installed(
    managers: Sequence[PackageManager], now: str
) -> dict[str, LockEntry]:
    """Snapshot every installed package of ``managers`` as lock entries.

    The listings run concurrently. Homebrew formulas get their tap and
    flatpak apps the remote they were installed from.
    """
    start = time.perf_counter()
    listings = await asyncio.gather(*(m.list_installed() for m in managers))

    packages: dict[str, LockEntry] = {}
    for manager, installed in zip(managers, listings):
        for pkg in installed:
            packages[lock_key(manager.tag, pkg.name)] = LockEntry(
                version=pkg.version, installed_at=now, manager=manager.tag
            )

    for manager, installed in zip(managers, listings):
        if isinstance(manager, HomebrewFormulas) and installed:
            taps = await manager.tap_metadata([p.name for p in installed])
            for name, tap in taps.items():
                entry = packages.get(lock_key(manager.tag, name))
                if entry is not None:
                    entry.tap = tap
        elif isinstance(manager, Flatpak) and installed:
            for name, origin in (await manager.origins()).items():
                entry = packages.get(lock_key(manager.tag, name))
                if entry is not None:
                    entry.source = origin

    log.info(
        "installed_snapshot_complete",
        managers=[m.tag.value for m in managers],
        packages=len(packages),
        duration_ms=int((time.perf_counter() - start) * 1000),
    )
    return packages


def merge_locks(
    previous: Lockfile | None, fresh: dict[str, LockEntry], now: str
) -> Lockfile:
    """Merge a fresh snapshot into the previous lock.

    An entry whose version is unchanged keeps the previous ``installedAt``;
    every other entry is taken from ``fresh``. Packages no longer installed
    are dropped.
    """
    merged: dict[str, LockEntry] = {}
    old = previous.packages if previous else {}

    for key, entry in fresh.items():
        prev = old.get(key)
        if prev is not None and prev.version == entry.version:
            merged[key] = LockEntry(
                version=entry.version,
                installed_at=prev.installed_at,
                manager=entry.manager,
                tap=entry.tap or prev.tap,
                source=entry.source or prev.source,
            )
        else:
            merged[key] = entry

    return Lockfile(last_updated=now, packages=merged)


def diff_locks(previous: Lockfile | None, fresh: dict[str, LockEntry]) -> PackageChanges:
    """Compare a fresh snapshot against the persisted lock.

    Without a previous lock every package counts as added.
    """
    changes = PackageChanges()
    if previous is None:
        changes.added = list(fresh)
        return changes

    for key, entry in fresh.items():
        prev = previous.packages.get(key)
        if prev is None:
            changes.added.append(key)
        elif prev.version != entry.version:
            changes.upgraded.append(VersionChange(key, prev.version, entry.version))

    changes.removed = [key for key in previous.packages if key not in fresh]
    return changes


async def update_lockfile(
    store: LockfileStore, managers: Sequence[PackageManager]
) -> Lockfile:
    """Re-snapshot ``managers``, merge with the stored lock and save it."""
    now = store.clock()
    fresh = await fetch_installed(managers, now)
    lock = merge_locks(store.load(), fresh, now)
    store.save(lock)
    return lock


async def reset_lockfile(
    store: LockfileStore, managers: Sequence[PackageManager]
) -> Lockfile:
    """Regenerate the lock from scratch, discarding every ``installedAt``."""
    now = store.clock()
    lock = Lockfile(last_updated=now, packages=await fetch_installed(managers, now))
    store.save(lock)
    log.info("lockfile_reset", path=str(store.path), packages=len(lock.packages))
    return lock


async def get_changed_packages(
    store: LockfileStore, managers: Sequence[PackageManager]
) -> PackageChanges:
    fresh = await fetch_installed(managers, store.clock())
    return diff_locks(store.load(), fresh)
