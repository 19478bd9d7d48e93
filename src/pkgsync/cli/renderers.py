"""Renderers for displaying sync results in the CLI using Rich."""

from __future__ import annotations

from typing import Iterable

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from pkgsync.backends.base import PackageManager
from pkgsync.core.models import (
    DISPLAY_NAMES,
    Lockfile,
    ManagerType,
    OrphanDetectionResult,
    PackageChanges,
    PlatformInfo,
    SyncReport,
    UpgradeResult,
)

console = Console(highlight=False)


def _manager_label(tag: str) -> str:
    try:
        return DISPLAY_NAMES[ManagerType(tag)]
    except ValueError:
        return tag


def lockfile_table(lock: Lockfile) -> Table:
    """Create a Rich Table listing every locked package.

    Args:
        lock: The lockfile to display.

    Returns:
        A Rich Table sorted by manager, then name.
    """
    table = Table(box=box.MINIMAL_HEAVY_HEAD, title=f"Locked packages ({lock.last_updated})")
    table.add_column("Manager", style="bold")
    table.add_column("Name", style="bold")
    table.add_column("Version")
    table.add_column("Source", style="dim")
    table.add_column("Installed At", style="dim")

    for key in sorted(lock.packages):
        entry = lock.packages[key]
        _, _, name = key.partition(":")
        table.add_row(
            DISPLAY_NAMES[entry.manager],
            escape(name),
            escape(entry.version),
            escape(entry.tap or entry.source or ""),
            entry.installed_at,
        )

    return table


def orphan_table(result: OrphanDetectionResult) -> Table:
    """Create a Rich Table of installed packages missing from the config.

    Args:
        result: Output of orphan detection.

    Returns:
        A Rich Table with one row per orphan.
    """
    table = Table(
        box=box.MINIMAL_HEAVY_HEAD,
        title=f"{len(result.orphans)} unlisted of {result.installed_packages} installed",
        caption=f"{result.config_packages} packages declared",
    )
    table.add_column("#", justify="right", style="dim")
    table.add_column("Type", style="bold")
    table.add_column("Name")
    table.add_column("Manager", style="dim")

    for i, orphan in enumerate(result.orphans, 1):
        table.add_row(str(i), orphan.type, escape(orphan.label), DISPLAY_NAMES[orphan.manager])

    return table


def changes_table(changes: PackageChanges) -> Table:
    t = Table(box=box.MINIMAL_HEAVY_HEAD)
    t.add_column("Change", style="bold")
    t.add_column("Package")
    t.add_column("Version")

    for key in changes.added:
        t.add_row("[green]added[/green]", escape(key), "")
    for key in changes.removed:
        t.add_row("[red]removed[/red]", escape(key), "")
    for change in changes.upgraded:
        t.add_row(
            "[yellow]upgraded[/yellow]",
            escape(change.name),
            escape(f"{change.from_version} -> {change.to_version}"),
        )

    return t


def upgrade_summary(result: UpgradeResult) -> Table:
    """Summarise an upgrade run.

    Args:
        result: The upgrade accounting.

    Returns:
        A two-column Rich Table.
    """
    t = Table(box=box.MINIMAL_HEAVY_HEAD, show_header=False)
    t.add_column("Field", style="bold")
    t.add_column("Value")
    t.add_row("Attempted", str(len(result.attempted)))
    t.add_row("[green]Upgraded[/green]", escape(", ".join(result.succeeded)) or "-")
    if result.failed:
        t.add_row("[red]Failed[/red]", escape(", ".join(result.failed)))
    if result.still_outdated:
        t.add_row("[yellow]Still outdated[/yellow]", escape(", ".join(result.still_outdated)))

    return t


def sync_summary(report: SyncReport) -> Table:
    t = Table(box=box.MINIMAL_HEAVY_HEAD)
    t.add_column("Manager", style="bold")
    t.add_column("Installed")
    t.add_column("Failed")

    for tag in sorted(set(report.installed) | set(report.failed)):
        t.add_row(
            _manager_label(tag),
            escape(", ".join(report.installed.get(tag, []))) or "-",
            f"[red]{escape(', '.join(report.failed[tag]))}[/red]" if report.failed.get(tag) else "-",
        )
    for tag, refs in sorted(report.repositories_added.items()):
        t.add_row(_manager_label(tag), escape(f"repositories: {', '.join(refs)}"), "-")
    if report.removed:
        t.add_row("Removed", escape(", ".join(o.label for o in report.removed)), "-")

    return t


def status_table(
    platform: PlatformInfo, managers: Iterable[PackageManager], lock: Lockfile | None
) -> Table:
    """Describe the host: platform, usable managers and lockfile state."""
    t = Table(box=box.MINIMAL_HEAVY_HEAD, show_header=False)
    t.add_column("Field", style="bold")
    t.add_column("Value")
    t.add_row("Platform", platform.display_name)
    if platform.aur_helper:
        t.add_row("AUR helper", platform.aur_helper.value)
    t.add_row("Managers", ", ".join(m.display_name for m in managers) or "[red]none[/red]")
    if lock is None:
        t.add_row("Lockfile", "[yellow]not created yet[/yellow]")
    else:
        t.add_row("Lockfile", f"{len(lock.packages)} packages, updated {lock.last_updated}")

    return t
