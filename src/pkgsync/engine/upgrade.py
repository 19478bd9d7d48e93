"""Upgrade every available manager and verify that the upgrades took effect.

A bulk upgrade can exit 0 and still leave packages behind (a cask that
needs a manual download, a held package). After the bulk run the
outdated list is queried again, and whatever remains is retried one
package at a time. A package is only reported as upgraded once the
manager no longer lists it as outdated.
"""

from __future__ import annotations

import time
from typing import Sequence

from pkgsync.backends.base import PackageManager
from pkgsync.core.channel import NO, QUIT, YES, Channel
from pkgsync.core.context import Context
from pkgsync.core.lockfile import update_lockfile
from pkgsync.core.logging import get_logger
from pkgsync.core.models import UpgradeResult
from pkgsync.engine.sync import refresh_indexes

log = get_logger(__name__)


async def outdated_names(manager: PackageManager) -> set[str]:
    return {u.name for u in await manager.list_outdated()}


async def upgrade_manager(
    manager: PackageManager, channel: Channel, verify: bool = True
) -> UpgradeResult:
    """Upgrade everything ``manager`` reports as outdated.

    Args:
        manager: The backend to upgrade. Its index should be fresh.
        channel: Progress channel.
        verify: Re-check the outdated list and retry leftovers one by one.
            Without it, the bulk command's exit status decides for all.

    Returns:
        The result, with ``attempted`` split exactly into ``succeeded``
        and ``failed``.
    """
    result = UpgradeResult()
    outdated = await manager.list_outdated()
    if not outdated:
        channel.emit(f"{manager.display_name}: everything is up to date", "green")
        return result

    result.attempted = [u.name for u in outdated]
    channel.emit(f"Found {len(outdated)} outdated packages", "yellow")
    bulk_ok = await manager.upgrade(None, channel)

    if not verify:
        if bulk_ok:
            result.succeeded = list(result.attempted)
        else:
            result.failed = list(result.attempted)
        return result

    remaining = await outdated_names(manager)
    result.succeeded = [name for name in result.attempted if name not in remaining]
    result.still_outdated = [name for name in result.attempted if name in remaining]

    if result.still_outdated:
        channel.emit(
            f"{len(result.still_outdated)} packages still outdated, retrying individually...",
            "yellow",
        )

    for name in list(result.still_outdated):
        channel.emit(f"Retrying {name}...")
        await manager.upgrade([name], channel)
        if name in await outdated_names(manager):
            result.failed.append(name)
            channel.emit(f"  {name}: still outdated", "red")
        else:
            result.succeeded.append(name)
            channel.emit(f"  {name}: upgraded", "green")
        result.still_outdated.remove(name)

    log.info(
        "manager_upgrade_complete",
        manager=manager.tag.value,
        attempted=len(result.attempted),
        succeeded=len(result.succeeded),
        failed=len(result.failed),
    )
    return result


async def _finish(ctx: Context, managers: Sequence[PackageManager], channel: Channel) -> None:
    channel.section("Cleanup")
    for manager in managers:
        await manager.cleanup(channel)

    channel.section("Updating lockfile")
    lock = await update_lockfile(ctx.lock_store, managers)
    channel.emit(f"Locked {len(lock.packages)} packages")


async def upgrade_all(
    ctx: Context, verify: bool = True, channel: Channel | None = None
) -> UpgradeResult:
    """Upgrade every available manager in turn, then clean up and re-lock."""
    channel = channel or ctx.channel
    start = time.perf_counter()
    managers = ctx.available_managers()
    result = UpgradeResult()
    log.info("upgrade_start", managers=[m.tag.value for m in managers], verify=verify)

    refreshed: set[str] = set()

    for manager in managers:
        channel.section(f"Upgrading {manager.display_name}")
        await refresh_indexes([manager], channel, refreshed)
        result.merge(await upgrade_manager(manager, channel, verify))

    await _finish(ctx, managers, channel)

    log.info(
        "upgrade_complete",
        attempted=len(result.attempted),
        succeeded=len(result.succeeded),
        failed=len(result.failed),
        duration_ms=int((time.perf_counter() - start) * 1000),
    )
    return result


async def upgrade_interactive(ctx: Context, channel: Channel | None = None) -> UpgradeResult:
    """Ask about each outdated package before upgrading it.

    ``quit`` skips the rest of the current manager's packages. Results
    come from the exit status of each single-package upgrade.
    """
    channel = channel or ctx.channel
    managers = ctx.available_managers()
    result = UpgradeResult()

    channel.section("Checking for updates")
    await refresh_indexes(managers, channel)

    for manager in managers:
        outdated = await manager.list_outdated()
        if not outdated:
            continue

        channel.section(f"{manager.display_name}: {len(outdated)} outdated")
        for info in outdated:
            answer = await channel.ask(
                f"Upgrade {info.name} ({info.current_version} -> {info.new_version})?",
                (YES, NO, QUIT),
                NO,
            )
            if answer == QUIT:
                log.info("interactive_upgrade_quit", manager=manager.tag.value)
                break
            if answer != YES:
                continue

            result.attempted.append(info.name)
            if await manager.upgrade([info.name], channel):
                result.succeeded.append(info.name)
            else:
                result.failed.append(info.name)
                channel.emit(f"Failed to upgrade {info.name}", "red")

    await _finish(ctx, managers, channel)
    log.info(
        "interactive_upgrade_complete",
        attempted=len(result.attempted),
        succeeded=len(result.succeeded),
        failed=len(result.failed),
    )
    return result
