"""Environment configuration for pkgsync."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

# Applied to every package-manager invocation so output parsing is stable.
ENV_OVERRIDES = {
    "LANG": "C",
    "LC_ALL": "C",
    "HOMEBREW_NO_COLOR": "1",
    "HOMEBREW_NO_AUTO_UPDATE": "1",
    "HOMEBREW_NO_ENV_HINTS": "1",
    "DEBIAN_FRONTEND": "noninteractive",
}


@dataclass(frozen=True)
class PkgSyncENV:
    """Filesystem locations and defaults for a pkgsync run."""
    home: Path
    config_path: Path
    lock_path: Path
    log_dir: Path
    log_level: str = "INFO"


def _path_from_env(name: str, default: Path) -> Path:
    value = os.environ.get(name)
    return Path(value).expanduser() if value else default


def discover_env() -> PkgSyncENV:
    """Discover the pkgsync environment from ``PKGSYNC_*`` variables."""
    home = _path_from_env("PKGSYNC_HOME", Path.home() / ".config" / "pkgsync")

    return PkgSyncENV(
        home=home,
        config_path=_path_from_env("PKGSYNC_CONFIG", home / "pkg-config.json"),
        lock_path=_path_from_env("PKGSYNC_LOCKFILE", home / "pkg-lock.json"),
        log_dir=_path_from_env("PKGSYNC_LOG_DIR", home / "logs"),
        log_level=os.environ.get("PKGSYNC_LOG_LEVEL", "INFO").upper(),
    )


def command_env() -> dict[str, str]:
    """Get the environment used for package-manager subprocesses.

    Returns:
        A copy of the current environment with ``ENV_OVERRIDES`` applied.
    """
    env = os.environ.copy()
    env.update(ENV_OVERRIDES)

    return env
