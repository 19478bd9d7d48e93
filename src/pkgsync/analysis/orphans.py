"""Orphan detection: installed leaves that the declared config does not mention."""

from __future__ import annotations

import time
from typing import Sequence

from pkgsync.backends.base import LeafListing, PackageManager
from pkgsync.backends.homebrew import HomebrewFormulas
from pkgsync.backends.mas import MacAppStore, is_system_app
from pkgsync.backends.registry import ManagerRegistry
from pkgsync.core.channel import NO, YES, Channel, ConsoleChannel
from pkgsync.core.logging import get_logger
from pkgsync.core.models import (
    ORPHAN_TYPES,
    ManagerType,
    OrphanDetectionResult,
    OrphanedPackage,
    PackageSet,
)
from pkgsync.core.names import DeclaredNames

log = get_logger(__name__)


async def user_installed(manager: PackageManager) -> list[str]:
    """Explicitly installed packages, or everything when leaves are unknown."""
    if isinstance(manager, LeafListing):
        return await manager.list_leaves()
    return [p.name for p in await manager.list_installed()]


async def _is_protected(manager: PackageManager, name: str) -> bool:
    if manager.tag is ManagerType.MAS:
        return is_system_app(name)
    if isinstance(manager, HomebrewFormulas):
        return await manager.has_dependents(name)
    return False


async def detect_orphans(
    sets: Sequence[PackageSet], registry: ManagerRegistry
) -> OrphanDetectionResult:
    """Find installed leaves that no package set declares.

    Args:
        sets: Resolved package sets, including empty ones.
        registry: Source of backend instances.

    Returns:
        The orphans sorted by type then name, plus declared and installed
        totals over the managers that were inspected.
    """
    start = time.perf_counter()
    result = OrphanDetectionResult()
    app_names: dict[str, str] = {}

    for package_set in sets:
        manager = registry.get(package_set.manager)
        if not manager.is_available():
            continue

        declared = DeclaredNames(package_set.packages)
        installed = await user_installed(manager)
        result.config_packages += len(declared)
        result.installed_packages += len(installed)

        if isinstance(manager, MacAppStore):
            app_names = {str(app.id): app.name for app in await manager.get_installed_apps()}

        for name in installed:
            if name in declared or await _is_protected(manager, name):
                continue
            result.orphans.append(
                OrphanedPackage(
                    name=name,
                    type=ORPHAN_TYPES[manager.tag],
                    manager=manager.tag,
                    display_name=app_names.get(name) if manager.tag is ManagerType.MAS else None,
                )
            )

    result.orphans.sort(key=lambda o: (o.type, o.name))
    log.info(
        "orphan_detection_complete",
        orphans=len(result.orphans),
        config_packages=result.config_packages,
        installed_packages=result.installed_packages,
        duration_ms=int((time.perf_counter() - start) * 1000),
    )
    return result


async def remove_orphans(
    orphans: Sequence[OrphanedPackage],
    registry: ManagerRegistry,
    channel: Channel | None = None,
    interactive: bool = True,
) -> list[OrphanedPackage]:
    """Uninstall orphans, asking first for each one when ``interactive``.

    Prompts go to the console when no channel is given.
    Every manager that removed something runs ``cleanup()`` once at the end.

    Returns:
        The orphans that were uninstalled.
    """
    if interactive and channel is None:
        channel = ConsoleChannel()

    removed: list[OrphanedPackage] = []
    touched: dict[ManagerType, PackageManager] = {}

    for orphan in orphans:
        if interactive and channel is not None:
            answer = await channel.ask(f"Remove {orphan.type} {orphan.label}?", (YES, NO), NO)
            if answer != YES:
                log.info("orphan_kept", manager=orphan.manager.value, package=orphan.name)
                continue

        manager = registry.get(orphan.manager)
        if await manager.uninstall([orphan.name], channel):
            removed.append(orphan)
            touched[manager.tag] = manager
            if channel:
                channel.emit(f"Removed {orphan.label}", "green")
        elif channel:
            channel.emit(f"Failed to remove {orphan.label}", "red")

    for manager in touched.values():
        await manager.cleanup(channel)

    log.info("orphan_removal_complete", removed=len(removed), candidates=len(orphans))
    return removed
