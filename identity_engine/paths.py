"""
Filesystem path policy for the identity engine.

This module is the single choke point for deciding where persisted state
lives:

- All state lives under a data root (default: ``~/.config/git-identity``).
- The profile collection, its rolling backup and engine settings are fixed
  file names under that root.
- Resolved paths must stay inside the data root.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .errors import IdentityEngineError

DATA_ROOT_ENV = "GIT_IDENTITY_HOME"
DATA_ROOT_DIRNAME = "git-identity"

PROFILES_FILENAME = "profiles.json"
BACKUP_SUFFIX = ".bak"
SETTINGS_FILENAME = "settings.json"


class PathSafetyError(IdentityEngineError):
    """Raised when a resolved path would escape the data root."""


@dataclass(frozen=True, slots=True)
class StorePaths:
    """
    Concrete resolved paths for persisted engine state.

    Attributes
    ----------
    data_root:
        Root directory for all engine state.
    profiles_path:
        The profile collection (one JSON document).
    backup_path:
        Single rolling backup of the previous collection revision.
    settings_path:
        Engine settings document.
    """

    data_root: Path
    profiles_path: Path
    backup_path: Path
    settings_path: Path


def default_data_root() -> Path:
    """
    Resolve the default data root.

    Preference order:
    1) ``$GIT_IDENTITY_HOME`` if set
    2) ``$XDG_CONFIG_HOME/git-identity``
    3) ``~/.config/git-identity``
    """
    explicit = os.environ.get(DATA_ROOT_ENV)
    if explicit:
        return Path(explicit).expanduser()

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg).expanduser() / DATA_ROOT_DIRNAME

    return Path.home() / ".config" / DATA_ROOT_DIRNAME


def backup_path_for(path: Path) -> Path:
    """Return the rolling backup path that pairs with ``path``."""
    return path.with_name(path.name + BACKUP_SUFFIX)


def resolve_store_paths(data_root: Path | None = None) -> StorePaths:
    """
    Resolve all persisted-state paths under ``data_root``.

    Raises
    ------
    PathSafetyError
        If a resolved path is not inside the data root.
    """
    root = (data_root or default_data_root()).expanduser().resolve()
    profiles_path = (root / PROFILES_FILENAME).resolve()
    settings_path = (root / SETTINGS_FILENAME).resolve()

    _assert_within(root, profiles_path, purpose="profile collection")
    _assert_within(root, settings_path, purpose="settings")
    return StorePaths(
        data_root=root,
        profiles_path=profiles_path,
        backup_path=backup_path_for(profiles_path),
        settings_path=settings_path,
    )


def ensure_data_root(paths: StorePaths) -> None:
    """Create the data root (owner-only) if it does not already exist."""
    paths.data_root.mkdir(parents=True, exist_ok=True, mode=0o700)


def _assert_within(root: Path, candidate: Path, *, purpose: str) -> None:
    if candidate != root and root not in candidate.parents:
        raise PathSafetyError(f"Resolved {purpose} path escapes data root: {candidate}")
