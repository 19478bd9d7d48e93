"""Run context: paths, platform detection, backend registry and output channel."""

from __future__ import annotations

from pkgsync.backends.base import PackageManager
from pkgsync.backends.registry import ManagerRegistry
from pkgsync.core.channel import Channel, ConsoleChannel
from pkgsync.core.config import PkgSyncENV, discover_env
from pkgsync.core.lockfile import LockfileStore
from pkgsync.core.logging import get_logger
from pkgsync.core.models import AurHelper, PlatformInfo
from pkgsync.core.platform import PlatformDetector

log = get_logger(__name__)


class Context:
    """Owns the state shared by one pkgsync session.

    Platform detection and backend instances are created lazily and
    cached here; ``reset()`` forgets both.

    Args:
        env: Filesystem locations; discovered from the environment by default.
        detector: Platform detector to use.
        registry: Backend registry to use.
        channel: Default progress and prompt channel.
    """

    def __init__(
        self,
        env: PkgSyncENV | None = None,
        detector: PlatformDetector | None = None,
        registry: ManagerRegistry | None = None,
        channel: Channel | None = None,
    ) -> None:
        self.env = env or discover_env()
        self.detector = detector or PlatformDetector()
        self.registry = registry or ManagerRegistry()
        if self.registry.platform is None:
            self.registry.platform = self.platform
        self.channel = channel or ConsoleChannel()
        self.lock_store = LockfileStore(self.env.lock_path)

    def prefer_aur_helper(self, helper: AurHelper | None) -> None:
        if helper is not None and helper != self.detector.preferred_aur_helper:
            self.detector.preferred_aur_helper = helper
            self.reset()

    def platform(self) -> PlatformInfo:
        return self.detector.info()

    def available_managers(self) -> list[PackageManager]:
        return self.registry.available_managers(self.platform())

    def reset(self) -> None:
        log.debug("context_reset")
        self.detector.clear()
        self.registry.clear()
        self.registry.aur_helper = None
