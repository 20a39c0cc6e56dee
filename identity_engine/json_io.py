"""
Atomic JSON persistence helpers.

Design constraints
------------------
- Writes are atomic (temp file + ``os.replace``); readers never observe a
  partially written document.
- Files are created owner-only (0600): profiles carry identity and key
  references.
- Serialization is deterministic for a given in-memory payload.
- The previous revision can be kept as a single rolling backup.
"""

from __future__ import annotations

import json
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from .errors import IdentityEngineError

OWNER_ONLY_MODE = 0o600


class JsonIOError(IdentityEngineError):
    """Raised when a JSON document cannot be read or written."""


@dataclass(frozen=True, slots=True)
class JsonWriteOptions:
    """Options controlling JSON serialization."""

    indent: int = 2
    sort_keys: bool = True
    ensure_ascii: bool = False


def read_json(json_path: Path) -> Any:
    """
    Read and decode a JSON document.

    Raises
    ------
    FileNotFoundError
        If the document does not exist (callers decide whether that is an error).
    JsonIOError
        If the document cannot be read or is not valid JSON.
    """
    try:
        text = json_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise
    except OSError as exc:
        raise JsonIOError(f"Failed to read JSON: {json_path} ({exc!s})") from exc
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise JsonIOError(f"Invalid JSON in {json_path}: {exc}") from exc


def write_json_atomic(
    json_path: Path,
    payload: Mapping[str, Any],
    *,
    options: JsonWriteOptions | None = None,
    backup_path: Path | None = None,
) -> None:
    """
    Write JSON atomically with owner-only permissions.

    Parameters
    ----------
    json_path:
        Destination document.
    payload:
        JSON-serializable mapping.
    options:
        Serialization options.
    backup_path:
        If given and ``json_path`` already exists, the current document is
        copied here before being replaced (single rolling backup).

    Raises
    ------
    JsonIOError
        If any step fails. The destination is left at its previous revision.
    """
    opts = options or JsonWriteOptions()
    json_path = json_path.expanduser()
    json_path.parent.mkdir(parents=True, exist_ok=True)

    temp_path = json_path.with_suffix(json_path.suffix + ".tmp")

    try:
        fd = os.open(temp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, OWNER_ONLY_MODE)
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as handle:
            json.dump(
                payload,
                handle,
                indent=opts.indent,
                sort_keys=opts.sort_keys,
                ensure_ascii=opts.ensure_ascii,
            )
            handle.write("\n")
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(temp_path, OWNER_ONLY_MODE)
        if backup_path is not None and json_path.exists():
            copy_backup(json_path, backup_path)
        os.replace(temp_path, json_path)
    except (OSError, TypeError, ValueError) as exc:
        try:
            if temp_path.exists():
                temp_path.unlink(missing_ok=True)
        except OSError:
            pass
        raise JsonIOError(f"Failed to write JSON: {json_path} ({exc!s})") from exc


def copy_backup(source: Path, backup_path: Path) -> None:
    """Replace ``backup_path`` with a copy of ``source`` (atomically, owner-only)."""
    temp_backup = backup_path.with_suffix(backup_path.suffix + ".tmp")
    shutil.copyfile(source, temp_backup)
    os.chmod(temp_backup, OWNER_ONLY_MODE)
    os.replace(temp_backup, backup_path)
