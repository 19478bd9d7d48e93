"""Common Homebrew backend functions."""

from __future__ import annotations

import json
from typing import Any, Awaitable, Callable

from pkgsync.core.logging import get_logger
from pkgsync.core.models import UpgradeInfo

log = get_logger(__name__)

Exec = Callable[..., Awaitable[tuple[str, str, int]]]


def parse_outdated_json(data: Any, key: str) -> list[UpgradeInfo]:
    """Convert ``brew outdated --json`` output into UpgradeInfo records.

    Args:
        data: Parsed JSON document.
        key: ``"formulae"`` or ``"casks"``.

    Returns:
        One record per outdated package.
    """
    output: list[UpgradeInfo] = []

    for item in data.get(key) or []:
        installed = item.get("installed_versions") or []
        if isinstance(installed, str):
            installed = [installed]
        output.append(
            UpgradeInfo(
                name=item["name"],
                current_version=str(installed[0]) if installed else "unknown",
                new_version=str(item.get("current_version") or "unknown"),
            )
        )

    return output


async def brew_outdated(exec_: Exec, kind_flag: str, key: str) -> list[UpgradeInfo]:
    """List outdated formulae or casks, falling back to ``--quiet`` output.

    Args:
        exec_: Query runner returning (stdout, stderr, returncode).
        kind_flag: ``"--formula"`` or ``"--cask"``.
        key: JSON key matching ``kind_flag``.

    Returns:
        Outdated packages; an empty list when brew fails.
    """
    out, _, code = await exec_("brew", "outdated", kind_flag, "--json=v2")
    if code == 0 and out:
        try:
            return parse_outdated_json(json.loads(out), key)
        except (json.JSONDecodeError, KeyError, TypeError, AttributeError) as e:
            log.warning(
                "output_parse_failed",
                manager="homebrew",
                command=f"brew outdated {kind_flag} --json=v2",
                error=str(e),
                output_preview=out[:200],
            )
    elif code == 0:
        return []

    out, _, code = await exec_("brew", "outdated", kind_flag, "--quiet")
    if code != 0:
        return []

    return [UpgradeInfo(name=line.strip()) for line in out.splitlines() if line.strip()]
