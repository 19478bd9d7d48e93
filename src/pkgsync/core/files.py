"""JSON document persistence for the config and lockfile."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from pkgsync.core.errors import StorageError
from pkgsync.core.logging import get_logger

log = get_logger(__name__)


def dumps(data: Any) -> str:
    """Serialise ``data`` the way pkgsync writes it to disk."""
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def read_json(path: Path) -> Any:
    """Read and parse a JSON file.

    Raises:
        json.JSONDecodeError: If the file is not valid JSON.
        StorageError: If the file exists but cannot be read.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        log.error("file_read_error", path=str(path), error=str(e))
        raise StorageError(path=str(path), operation="read", error=str(e)) from e
    return json.loads(text)


def write_json(path: Path, data: Any) -> None:
    """Write ``data`` to ``path``, replacing it atomically.

    Raises:
        StorageError: If the directory or file cannot be written.
    """
    tmp = path.with_name(f".{path.name}.tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp.write_text(dumps(data), encoding="utf-8")
        os.replace(tmp, path)
    except OSError as e:
        log.error("file_write_error", path=str(path), error=str(e))
        raise StorageError(path=str(path), operation="write", error=str(e)) from e

    log.debug("file_written", path=str(path))
