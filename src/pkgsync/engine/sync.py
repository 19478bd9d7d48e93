"""Sync: make the installed packages match the declared config."""

from __future__ import annotations

import time
from typing import Iterable

from pkgsync.analysis.orphans import detect_orphans, remove_orphans
from pkgsync.analysis.resolver import resolve
from pkgsync.backends.base import PackageManager, RepositoryManaging
from pkgsync.core.channel import Channel
from pkgsync.core.context import Context
from pkgsync.core.lockfile import update_lockfile
from pkgsync.core.logging import get_logger
from pkgsync.core.models import ManagerType, PackageSet, SyncReport
from pkgsync.core.pkgconfig import DeclaredConfig

log = get_logger(__name__)


def usable(manager: PackageManager) -> bool:
    """Whether sync may drive ``manager``.

    AUR counts even without a helper, which it installs on first use.
    """
    return manager.is_available() or manager.tag is ManagerType.AUR


async def refresh_indexes(
    managers: Iterable[PackageManager], channel: Channel, seen: set[str] | None = None
) -> None:
    """Run ``update()`` once per underlying tool.

    Homebrew formulas and casks share ``brew``, and the AUR helper refreshes
    the same pacman database, so those are refreshed only once.
    """
    seen = set() if seen is None else seen
    for manager in managers:
        if manager.executable in seen:
            continue
        seen.add(manager.executable)
        channel.emit(f"Updating {manager.display_name}...")
        if not await manager.update(channel):
            channel.emit(f"Could not update {manager.display_name}", "yellow")


async def add_repositories(
    package_set: PackageSet, manager: PackageManager, channel: Channel, report: SyncReport
) -> None:
    if not package_set.repositories or not isinstance(manager, RepositoryManaging):
        return

    present = set(await manager.list_repositories())
    for ref in package_set.repositories:
        if ref in present:
            continue
        channel.emit(f"Adding repository: {ref}")
        if await manager.add_repository(ref, channel):
            report.repositories_added.setdefault(manager.tag.value, []).append(ref)
        else:
            log.warning("repository_add_failed", manager=manager.tag.value, repository=ref)
            channel.emit(f"Failed to add repository {ref}", "red")


async def install_missing(
    package_set: PackageSet, manager: PackageManager, channel: Channel, report: SyncReport
) -> None:
    """Install the declared packages that are not installed yet.

    Nothing is run when every package is already present.
    """
    if not package_set.packages:
        return

    names = list(package_set.packages)
    status = await manager.is_installed(names)
    missing = [name for name in names if not status.get(name, False)]

    if not missing:
        channel.emit(f"All {len(names)} packages already installed", "green")
        return

    channel.emit(f"Installing: {', '.join(missing)}")
    if await manager.install(missing, channel):
        report.installed.setdefault(manager.tag.value, []).extend(missing)
        return

    # A batch install can fail part-way; ask again which ones made it.
    after = await manager.is_installed(missing)
    done = [name for name in missing if after.get(name, False)]
    failed = [name for name in missing if not after.get(name, False)]
    if done:
        report.installed.setdefault(manager.tag.value, []).extend(done)
    report.failed.setdefault(manager.tag.value, []).extend(failed)
    log.warning("install_incomplete", manager=manager.tag.value, failed=failed)
    channel.emit(f"Failed to install: {', '.join(failed)}", "red")


async def sync(
    ctx: Context,
    config: DeclaredConfig,
    purge: bool | None = None,
    channel: Channel | None = None,
) -> SyncReport:
    """Install what the config declares, optionally purge the rest, then re-lock.

    Args:
        ctx: Session context.
        config: The declared config.
        purge: Override the config's ``purge`` setting for this run.
        channel: Progress and prompt channel; defaults to the context's.

    Returns:
        What was installed, what failed, what was removed and the new lock.
    """
    channel = channel or ctx.channel
    start = time.perf_counter()
    platform = ctx.platform()
    report = SyncReport()

    sets = resolve(config, platform)
    plan = []
    for package_set in sets:
        manager = ctx.registry.get(package_set.manager)
        if usable(manager):
            plan.append((package_set, manager))
        else:
            log.info("manager_unavailable", manager=package_set.manager.value)

    log.info(
        "sync_start",
        platform=platform.display_name,
        managers=[m.tag.value for _, m in plan],
        packages=sum(len(s.packages) for s, _ in plan),
    )

    if config.settings.auto_update:
        channel.section("Updating package indexes")
        await refresh_indexes((m for _, m in plan), channel)

    for package_set, manager in plan:
        channel.section(f"Syncing {manager.display_name}")
        await add_repositories(package_set, manager, channel, report)
        await install_missing(package_set, manager, channel, report)

    if config.settings.purge if purge is None else purge:
        channel.section("Checking for unlisted packages")
        orphans = await detect_orphans(resolve(config, platform, include_empty=True), ctx.registry)
        if orphans.orphans:
            report.removed = await remove_orphans(
                orphans.orphans,
                ctx.registry,
                channel,
                interactive=config.settings.purge_interactive,
            )
        else:
            channel.emit("No unlisted packages", "green")

    channel.section("Updating lockfile")
    report.lockfile = await update_lockfile(ctx.lock_store, ctx.available_managers())
    channel.emit(f"Locked {len(report.lockfile.packages)} packages")

    log.info(
        "sync_complete",
        installed=sum(len(v) for v in report.installed.values()),
        failed=sum(len(v) for v in report.failed.values()),
        removed=len(report.removed),
        duration_ms=int((time.perf_counter() - start) * 1000),
    )
    return report
