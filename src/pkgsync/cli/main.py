"""CLI entry point for pkgsync."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Optional

import typer

from pkgsync.cli.renderers import (
    changes_table,
    console,
    lockfile_table,
    orphan_table,
    status_table,
    sync_summary,
    upgrade_summary,
)
from pkgsync.core.channel import ConsoleChannel
from pkgsync.core.context import Context
from pkgsync.core.errors import (
    EXIT_SYSTEM_ERROR,
    EXIT_TRANSIENT_ERROR,
    EXIT_USER_ERROR,
    PkgSyncError,
    SystemError,
    TransientError,
    UserError,
    format_error_message,
)
from pkgsync.core.logging import configure_logging, get_logger
from pkgsync.engine.service import SyncService

log = get_logger(__name__)

app = typer.Typer(help="pkgsync: keep installed packages in sync with a declared config.")
lock_app = typer.Typer(help="Inspect and maintain the lockfile.")
app.add_typer(lock_app, name="lock")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Also log to stderr"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING"),
) -> None:
    configure_logging(level=log_level, enable_console=verbose, force=True)


def handle_error(error: Exception) -> int:
    """Handle errors and return appropriate exit codes.

    Args:
        error: The exception to handle.

    Returns:
        An integer exit code.
    """
    if isinstance(error, PkgSyncError):
        log.error(
            "cli_error",
            error_type=type(error).__name__,
            message=error.message,
            context=error.context,
            exc_info=True
        )
        console.print(f"\n{format_error_message(error)}\n", style="bold red", markup=False)

        if isinstance(error, TransientError):
            return EXIT_TRANSIENT_ERROR
        elif isinstance(error, UserError):
            return EXIT_USER_ERROR
        elif isinstance(error, SystemError):
            return EXIT_SYSTEM_ERROR
        else:
            return EXIT_USER_ERROR
    else:
        log.error(
            "unexpected_error",
            error=str(error),
            exc_info=True
        )
        console.print(
            f"\n⚠️ Unexpected error occurred: {error}\n",
            style="bold red",
            markup=False,
        )
        return EXIT_SYSTEM_ERROR


def _service() -> SyncService:
    return SyncService(Context(channel=ConsoleChannel(console)))


@app.command()
def sync(
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Package config to sync (default: $PKGSYNC_CONFIG)"
    ),
    purge: Optional[bool] = typer.Option(
        None, "--purge/--no-purge", help="Override the config's purge setting"
    ),
) -> None:
    """Install declared packages, optionally remove unlisted ones, and update the lockfile."""
    try:
        report = asyncio.run(_service().sync(config, purge=purge))
        console.print(sync_summary(report))
        if not report.ok:
            raise typer.Exit(EXIT_USER_ERROR)
        console.print("[green]Sync complete[/green]")
    except typer.Exit:
        raise
    except Exception as e:
        sys.exit(handle_error(e))


@app.command()
def upgrade(
    interactive: bool = typer.Option(
        False, "--interactive", "-i", help="Ask before upgrading each package"
    ),
    no_verify: bool = typer.Option(
        False, "--no-verify", help="Trust the bulk upgrade's exit status"
    ),
) -> None:
    """Upgrade outdated packages across every available manager."""
    try:
        service = _service()
        if interactive:
            result = asyncio.run(service.upgrade_interactive())
        else:
            result = asyncio.run(service.upgrade_all(verify=not no_verify))

        console.print(upgrade_summary(result))
        if not result.ok:
            raise typer.Exit(EXIT_USER_ERROR)
    except typer.Exit:
        raise
    except Exception as e:
        sys.exit(handle_error(e))


@app.command()
def orphans(
    remove: bool = typer.Option(False, "--remove", help="Uninstall the unlisted packages"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Remove without asking"),
    adopt: bool = typer.Option(False, "--adopt", help="Add the unlisted packages to the config"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Package config"),
) -> None:
    """List installed packages that the config does not declare."""
    try:
        service = _service()
        result = asyncio.run(service.detect_orphans(config))

        if not result.orphans:
            console.print("[green]No unlisted packages[/green]")
            return
        console.print(orphan_table(result))

        if adopt:
            for orphan in result.orphans:
                service.adopt_orphan(orphan, config)
            console.print(f"[green]Added {len(result.orphans)} packages to the config[/green]")
        elif remove:
            removed = asyncio.run(service.remove_orphans(result.orphans, interactive=not yes))
            console.print(f"Removed {len(removed)} of {len(result.orphans)} packages")
    except Exception as e:
        sys.exit(handle_error(e))


@app.command()
def status() -> None:
    """Show the detected platform, usable managers and lockfile state."""
    try:
        ctx = Context(channel=ConsoleChannel(console))
        console.print(status_table(ctx.platform(), ctx.available_managers(), ctx.lock_store.load()))
    except Exception as e:
        sys.exit(handle_error(e))


@lock_app.command("update")
def lock_update() -> None:
    """Snapshot installed packages into the lockfile, keeping unchanged timestamps."""
    try:
        lock = asyncio.run(_service().update_lockfile())
        console.print(f"Locked {len(lock.packages)} packages")
    except Exception as e:
        sys.exit(handle_error(e))


@lock_app.command("status")
def lock_status() -> None:
    """Show what changed since the lockfile was written."""
    try:
        changes = asyncio.run(_service().get_changed_packages())
        if changes.is_empty:
            console.print("[green]Lockfile is up to date[/green]")
        else:
            console.print(changes_table(changes))
    except Exception as e:
        sys.exit(handle_error(e))


@lock_app.command("show")
def lock_show() -> None:
    """Print the locked packages."""
    try:
        lock = _service().load_lockfile()
        if lock is None:
            console.print("[yellow]No lockfile yet; run `pkgsync lock update`[/yellow]")
            return
        console.print(lockfile_table(lock))
    except Exception as e:
        sys.exit(handle_error(e))


@lock_app.command("reset")
def lock_reset(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Regenerate the lockfile from scratch, discarding install timestamps."""
    try:
        if not yes and not typer.confirm("Discard all recorded install times?"):
            raise typer.Exit()
        lock = asyncio.run(_service().reset_lockfile())
        console.print(f"Locked {len(lock.packages)} packages")
    except typer.Exit:
        raise
    except Exception as e:
        sys.exit(handle_error(e))


if __name__ == "__main__":
    app()
