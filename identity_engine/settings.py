from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from .data_models import ConfigScope
from .json_io import JsonIOError, read_json, write_json_atomic
from .paths import resolve_store_paths

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EngineSettings:
    """
    Persisted engine settings.

    Notes
    -----
    Settings only control defaults. A scope passed to ``apply`` always wins
    over the profile's preferred scope, which wins over ``default_scope``.
    """

    default_scope: ConfigScope
    git_executable: str
    verify_credentials: bool

    @staticmethod
    def defaults() -> "EngineSettings":
        return EngineSettings(
            default_scope=ConfigScope.LOCAL,
            git_executable="git",
            verify_credentials=False,
        )


def settings_path(data_root: Path | None) -> Path:
    return resolve_store_paths(data_root).settings_path


def load_settings(*, data_root: Path | None) -> EngineSettings:
    """
    Load engine settings from disk.

    Parameters
    ----------
    data_root:
        Engine data root. If None, the default data root is used.

    Returns
    -------
    EngineSettings
        Loaded settings. Missing files and unknown values fall back to defaults.
    """
    path = settings_path(data_root)
    defaults = EngineSettings.defaults()
    try:
        payload = read_json(path)
    except FileNotFoundError:
        return defaults
    except JsonIOError as exc:
        logger.warning("Ignoring unreadable settings file %s: %s", path, exc)
        return defaults

    if not isinstance(payload, dict):
        logger.warning("Ignoring settings file %s: top level is not an object", path)
        return defaults

    scope_raw = payload.get("default_scope", defaults.default_scope.value)
    try:
        default_scope = ConfigScope(str(scope_raw))
    except ValueError:
        logger.warning("Unknown default_scope %r in %s; using %s", scope_raw, path, defaults.default_scope.value)
        default_scope = defaults.default_scope

    git_executable = payload.get("git_executable")
    if not isinstance(git_executable, str) or not git_executable.strip():
        git_executable = defaults.git_executable

    verify = payload.get("verify_credentials", defaults.verify_credentials)
    if not isinstance(verify, bool):
        verify = defaults.verify_credentials

    return EngineSettings(
        default_scope=default_scope,
        git_executable=git_executable.strip(),
        verify_credentials=verify,
    )


def save_settings(*, data_root: Path | None, settings: EngineSettings) -> None:
    """
    Save engine settings atomically.

    Parameters
    ----------
    data_root:
        Engine data root. If None, the default data root is used.
    settings:
        Settings to persist.
    """
    payload = {
        "default_scope": settings.default_scope.value,
        "git_executable": settings.git_executable,
        "verify_credentials": settings.verify_credentials,
    }
    write_json_atomic(settings_path(data_root), payload)
