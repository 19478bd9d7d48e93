"""Entry points used by the CLI and by embedding applications."""

from __future__ import annotations

import time
from pathlib import Path
from typing import Sequence

from pkgsync.analysis import orphans as orphan_detection
from pkgsync.analysis.resolver import resolve
from pkgsync.core import lockfile
from pkgsync.core.channel import Channel
from pkgsync.core.context import Context
from pkgsync.core.errors import NoPrerequisiteError
from pkgsync.core.logging import get_logger
from pkgsync.core.models import (
    Lockfile,
    ManagerType,
    OperatingSystem,
    OrphanDetectionResult,
    OrphanedPackage,
    PackageChanges,
    SyncReport,
    UpgradeResult,
)
from pkgsync.core.pkgconfig import DeclaredConfig, adopt_orphan, load_config, save_config
from pkgsync.engine import sync as sync_engine
from pkgsync.engine import upgrade as upgrade_engine

log = get_logger(__name__)

# Base managers, at least one of which must exist.
PREREQUISITES = {
    OperatingSystem.DARWIN: (ManagerType.HOMEBREW,),
    OperatingSystem.LINUX: (ManagerType.PACMAN, ManagerType.APT, ManagerType.DNF),
}


class SyncService:
    """Package sync operations bound to one ``Context``.

    Example:
        service = SyncService(Context())
        report = asyncio.run(service.sync(purge=True))
    """

    def __init__(self, ctx: Context | None = None) -> None:
        self.ctx = ctx or Context()

    def load_config(self, path: Path | None = None) -> DeclaredConfig:
        """Load the declared config and apply its host-level settings."""
        config = load_config(path or self.ctx.env.config_path)
        self.ctx.prefer_aur_helper(config.settings.preferred_aur_helper)
        return config

    def _resolve_config(self, config: DeclaredConfig | Path | None) -> DeclaredConfig:
        if isinstance(config, DeclaredConfig):
            self.ctx.prefer_aur_helper(config.settings.preferred_aur_helper)
            return config
        return self.load_config(config)

    def require_prerequisites(self) -> None:
        """Fail unless a base package manager is installed.

        Raises:
            NoPrerequisiteError: On macOS without Homebrew, or Linux
                without pacman, apt or dnf.
        """
        platform = self.ctx.platform()
        required = PREREQUISITES[platform.os]
        if not any(platform.has(m) for m in required):
            log.error("prerequisite_missing", os=platform.os.value, required=[m.value for m in required])
            raise NoPrerequisiteError(
                f"No supported package manager found on {platform.display_name}",
                os=platform.os.value,
                required=[self.ctx.registry.get(m).executable for m in required],
            )

    async def sync(
        self,
        config: DeclaredConfig | Path | None = None,
        purge: bool | None = None,
        channel: Channel | None = None,
    ) -> SyncReport:
        """Sync installed packages with the declared config.

        Args:
            config: A loaded config, a path to one, or None for the default path.
            purge: Force purging on or off for this run.
            channel: Progress and prompt channel.
        """
        declared = self._resolve_config(config)
        self.require_prerequisites()
        return await sync_engine.sync(self.ctx, declared, purge=purge, channel=channel)

    async def upgrade_all(
        self, verify: bool = True, channel: Channel | None = None
    ) -> UpgradeResult:
        self.require_prerequisites()
        return await upgrade_engine.upgrade_all(self.ctx, verify=verify, channel=channel)

    async def upgrade_interactive(self, channel: Channel | None = None) -> UpgradeResult:
        self.require_prerequisites()
        return await upgrade_engine.upgrade_interactive(self.ctx, channel=channel)

    async def detect_orphans(
        self, config: DeclaredConfig | Path | None = None
    ) -> OrphanDetectionResult:
        declared = self._resolve_config(config)
        sets = resolve(declared, self.ctx.platform(), include_empty=True)
        return await orphan_detection.detect_orphans(sets, self.ctx.registry)

    async def remove_orphans(
        self,
        orphans: Sequence[OrphanedPackage],
        interactive: bool = True,
        channel: Channel | None = None,
    ) -> list[OrphanedPackage]:
        return await orphan_detection.remove_orphans(
            orphans, self.ctx.registry, channel or self.ctx.channel, interactive
        )

    def adopt_orphan(
        self, orphan: OrphanedPackage, config_path: Path | None = None
    ) -> DeclaredConfig:
        """Add ``orphan`` to the declared config and save it."""
        path = config_path or self.ctx.env.config_path
        config = adopt_orphan(load_config(path), orphan, self.ctx.platform().distro)
        save_config(config, path)
        return config

    def load_lockfile(self) -> Lockfile | None:
        return self.ctx.lock_store.load()

    async def update_lockfile(self) -> Lockfile:
        start = time.perf_counter()
        lock = await lockfile.update_lockfile(self.ctx.lock_store, self.ctx.available_managers())
        log.info(
            "lockfile_update_complete",
            packages=len(lock.packages),
            duration_ms=int((time.perf_counter() - start) * 1000),
        )
        return lock

    async def reset_lockfile(self) -> Lockfile:
        return await lockfile.reset_lockfile(self.ctx.lock_store, self.ctx.available_managers())

    async def get_changed_packages(self) -> PackageChanges:
        return await lockfile.get_changed_packages(
            self.ctx.lock_store, self.ctx.available_managers()
        )
