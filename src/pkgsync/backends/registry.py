"""One backend instance per manager type."""

from __future__ import annotations

from typing import Callable

from pkgsync.backends.apt import Apt
from pkgsync.backends.aur import Aur
from pkgsync.backends.base import PackageManager
from pkgsync.backends.cargo import Cargo
from pkgsync.backends.dnf import Dnf
from pkgsync.backends.flatpak import Flatpak
from pkgsync.backends.homebrew import HomebrewCasks, HomebrewFormulas
from pkgsync.backends.mas import MacAppStore
from pkgsync.backends.pacman import Pacman
from pkgsync.core.logging import get_logger
from pkgsync.core.models import AurHelper, ManagerType, PlatformInfo

log = get_logger(__name__)

BACKENDS: dict[ManagerType, Callable[[], PackageManager]] = {
    ManagerType.HOMEBREW: HomebrewFormulas,
    ManagerType.HOMEBREW_CASKS: HomebrewCasks,
    ManagerType.MAS: MacAppStore,
    ManagerType.PACMAN: Pacman,
    ManagerType.APT: Apt,
    ManagerType.DNF: Dnf,
    ManagerType.FLATPAK: Flatpak,
    ManagerType.CARGO: Cargo,
}


class ManagerRegistry:
    """Creates backends on first use and hands out the same instance afterwards.

    Args:
        aur_helper: Helper the AUR backend drives. When unset it is taken
            from ``platform`` the first time the AUR backend is built, or
            from the first ``PlatformInfo`` passed to ``available_managers``.
        platform: Returns the detected platform; ``Context`` wires in its
            own detector.
    """

    def __init__(
        self,
        aur_helper: AurHelper | None = None,
        platform: Callable[[], PlatformInfo] | None = None,
    ) -> None:
        self.aur_helper = aur_helper
        self.platform = platform
        self._instances: dict[ManagerType, PackageManager] = {}

    def _detected_aur_helper(self) -> AurHelper | None:
        if self.aur_helper is None and self.platform is not None:
            self.aur_helper = self.platform().aur_helper
        return self.aur_helper

    def get(self, manager: ManagerType) -> PackageManager:
        if manager not in self._instances:
            if manager is ManagerType.AUR:
                self._instances[manager] = Aur(self._detected_aur_helper())
            else:
                self._instances[manager] = BACKENDS[manager]()
        return self._instances[manager]

    def register(self, backend: PackageManager) -> None:
        """Use ``backend`` for its tag instead of the built-in class."""
        self._instances[backend.tag] = backend

    def available_managers(self, platform: PlatformInfo) -> list[PackageManager]:
        """Backends usable on ``platform``, in detection order.

        Homebrew casks follow Homebrew whenever it is available, and no
        manager type appears twice.
        """
        if self.aur_helper is None:
            self.aur_helper = platform.aur_helper

        managers: list[PackageManager] = []
        seen: set[ManagerType] = set()

        def add(tag: ManagerType) -> None:
            if tag in seen:
                return
            backend = self.get(tag)
            if backend.is_available():
                seen.add(tag)
                managers.append(backend)

        for tag in platform.available_types:
            add(tag)
            if tag is ManagerType.HOMEBREW and tag in seen:
                add(ManagerType.HOMEBREW_CASKS)

        log.debug("available_managers", managers=[m.tag.value for m in managers])
        return managers

    def clear(self) -> None:
        self._instances.clear()
