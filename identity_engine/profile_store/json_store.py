"""
JSON-file implementation of ProfileStore.

This module owns the on-disk persistence format for profiles: a single,
human-editable JSON document::

    {
      "schema_version": "git_identity_profiles_v1",
      "default_profile": "work",
      "profiles": [ {record}, ... ]
    }

``default_profile`` is optional. Deleting the default clears it and renaming
it moves it to the new name.

Threading
---------
Mutations are serialized by a per-instance re-entrant lock (single writer).
Every commit is a temp-write + ``os.replace``, so readers always see the last
fully committed document and never a partial write. Concurrent mutation from
several processes is not supported; no file locking is attempted.

Partial failure
---------------
Records that fail to parse or validate are skipped and reported as warnings
by ``list``. They are written back untouched on the next commit so a single
hand-editing mistake never loses data.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Final, Mapping, Sequence

from ..clock import Clock, SystemClock
from ..data_models import Profile
from ..errors import IdentityEngineError, ValidationError
from ..json_io import JsonIOError, write_json_atomic
from ..name_lookup import rank_names
from ..paths import backup_path_for, ensure_data_root, resolve_store_paths
from .api import ProfileListing, ProfileStore
from .errors import DuplicateNameError, InheritanceCycleError, NotFoundError, StorageError
from .inheritance import ancestry, resolve, would_cycle
from .rules import upgrade_record, validate_name, validate_profile, validate_resolved

logger = logging.getLogger(__name__)

SCHEMA_VERSION: Final[str] = "git_identity_profiles_v1"

# (st_ino, st_size, st_mtime_ns) of the committed document.
_Signature = tuple[int, int, int]


@dataclass(frozen=True, slots=True)
class _Snapshot:
    """One committed revision of the collection, as loaded from disk."""

    signature: _Signature | None
    records: Mapping[str, Profile]
    default_name: str | None = None
    invalid_records: tuple[Any, ...] = ()
    warnings: tuple[str, ...] = ()
    resolved: dict[str, Profile] = field(default_factory=dict)


class JsonProfileStore(ProfileStore):
    """
    ProfileStore backed by one JSON document.

    Parameters
    ----------
    profiles_path:
        Path to the profile collection. Created on first commit.
    backup_path:
        Rolling backup of the previous revision. Defaults to
        ``<profiles_path>.bak``.
    clock:
        Source of ``created_at_utc`` / ``updated_at_utc`` timestamps.
    """

    def __init__(
        self,
        profiles_path: Path,
        *,
        backup_path: Path | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._path = profiles_path
        self._backup_path = backup_path or backup_path_for(profiles_path)
        self._clock: Clock = clock or SystemClock()
        self._write_lock = threading.RLock()
        self._cache_lock = threading.Lock()
        self._snapshot: _Snapshot | None = None

    @property
    def path(self) -> Path:
        """Return the on-disk path of the profile collection."""
        return self._path

    @property
    def backup_path(self) -> Path:
        """Return the on-disk path of the rolling backup."""
        return self._backup_path

    # Reads

    def read(self, name: str) -> Profile:
        """See ProfileStore.read."""
        snapshot = self._load_snapshot()
        with self._cache_lock:
            cached = snapshot.resolved.get(name)
        if cached is not None:
            return cached

        resolved = resolve(name, snapshot.records)
        with self._cache_lock:
            snapshot.resolved[name] = resolved
        return resolved

    def read_raw(self, name: str) -> Profile:
        """See ProfileStore.read_raw."""
        record = self._load_snapshot().records.get(name)
        if record is None:
            raise NotFoundError(f"Unknown profile: {name}")
        return record

    def exists(self, name: str) -> bool:
        """See ProfileStore.exists."""
        return name in self._load_snapshot().records

    def list(self) -> ProfileListing:
        """See ProfileStore.list."""
        snapshot = self._load_snapshot()
        profiles = tuple(snapshot.records[name] for name in sorted(snapshot.records))
        return ProfileListing(profiles=profiles, warnings=snapshot.warnings)

    def find(self, fragment: str) -> Sequence[Profile]:
        """See ProfileStore.find."""
        records = self._load_snapshot().records
        return [records[match.name] for match in rank_names(fragment, records)]

    def get_default(self) -> str | None:
        """See ProfileStore.get_default."""
        snapshot = self._load_snapshot()
        if snapshot.default_name in snapshot.records:
            return snapshot.default_name
        return None

    # Mutations

    def create(self, profile: Profile) -> Profile:
        """See ProfileStore.create."""
        validate_profile(profile)
        with self._write_lock:
            snapshot = self._load_snapshot()
            if profile.name in snapshot.records:
                raise DuplicateNameError(f"Profile already exists: {profile.name}")

            now = self._clock.now()
            stored = replace(profile, created_at_utc=now, updated_at_utc=now)
            records = dict(snapshot.records)
            records[stored.name] = stored
            self._check_graph(stored, records, previous=snapshot.records)
            self._commit(records, snapshot, default_name=snapshot.default_name)

        logger.info("Created profile %s", stored.name)
        return stored

    def update(self, profile: Profile) -> Profile:
        """See ProfileStore.update."""
        validate_profile(profile)
        with self._write_lock:
            snapshot = self._load_snapshot()
            existing = snapshot.records.get(profile.name)
            if existing is None:
                raise NotFoundError(f"Unknown profile: {profile.name}")

            now = self._clock.now()
            stored = replace(
                profile,
                created_at_utc=existing.created_at_utc or now,
                updated_at_utc=now,
            )
            records = dict(snapshot.records)
            records[stored.name] = stored
            self._check_graph(stored, records, previous=snapshot.records)
            self._commit(records, snapshot, default_name=snapshot.default_name)

        logger.info("Updated profile %s", stored.name)
        return stored

    def delete(self, name: str) -> None:
        """See ProfileStore.delete."""
        with self._write_lock:
            snapshot = self._load_snapshot()
            if name not in snapshot.records:
                raise NotFoundError(f"Unknown profile: {name}")

            dependents = sorted(r.name for r in snapshot.records.values() if r.extends == name)
            if dependents:
                raise ValidationError(
                    f"Cannot delete profile {name!r}: extended by {', '.join(dependents)}"
                )

            records = dict(snapshot.records)
            del records[name]
            default_name = None if snapshot.default_name == name else snapshot.default_name
            self._commit(records, snapshot, default_name=default_name)

        logger.info("Deleted profile %s", name)

    def rename(self, old_name: str, new_name: str) -> Profile:
        """See ProfileStore.rename."""
        validate_name(new_name)
        with self._write_lock:
            snapshot = self._load_snapshot()
            existing = snapshot.records.get(old_name)
            if existing is None:
                raise NotFoundError(f"Unknown profile: {old_name}")
            if new_name == old_name:
                return existing
            if new_name in snapshot.records:
                raise DuplicateNameError(f"Profile already exists: {new_name}")

            now = self._clock.now()
            records: dict[str, Profile] = {}
            for name, record in snapshot.records.items():
                if name == old_name:
                    record = replace(record, name=new_name, updated_at_utc=now)
                elif record.extends == old_name:
                    record = replace(record, extends=new_name, updated_at_utc=now)
                records[record.name] = record

            default_name = new_name if snapshot.default_name == old_name else snapshot.default_name
            self._commit(records, snapshot, default_name=default_name)

        logger.info("Renamed profile %s to %s", old_name, new_name)
        return records[new_name]

    def set_default(self, name: str | None) -> None:
        """See ProfileStore.set_default."""
        with self._write_lock:
            snapshot = self._load_snapshot()
            if name is not None and name not in snapshot.records:
                raise NotFoundError(f"Unknown profile: {name}")
            self._commit(dict(snapshot.records), snapshot, default_name=name)

        if name is None:
            logger.info("Cleared default profile")
        else:
            logger.info("Default profile set to %s", name)

    # Internals

    def _check_graph(
        self,
        candidate: Profile,
        records: Mapping[str, Profile],
        *,
        previous: Mapping[str, Profile],
    ) -> None:
        """
        Ensure ``records`` (with ``candidate`` staged) keeps the extends graph sound.

        Checks the candidate's parent exists, that no cycle is closed, and that
        the candidate and every profile inheriting from it still resolve to a
        valid identity.
        """
        if would_cycle(candidate, previous):
            raise InheritanceCycleError(
                f"Profile {candidate.name!r} would create an inheritance cycle via "
                f"extends={candidate.extends!r}"
            )
        if candidate.extends is not None and candidate.extends not in records:
            raise ValidationError(
                f"Profile {candidate.name!r} extends unknown profile {candidate.extends!r}"
            )

        for name in sorted(records):
            try:
                chain = ancestry(name, records)
            except (NotFoundError, InheritanceCycleError):
                if name == candidate.name:
                    raise
                # Broken before this edit; reported when that profile is read.
                continue
            if any(link.name == candidate.name for link in chain):
                validate_resolved(resolve(name, records))

    def _commit(
        self,
        records: Mapping[str, Profile],
        snapshot: _Snapshot,
        *,
        default_name: str | None,
    ) -> None:
        payload: dict[str, Any] = {
            "schema_version": SCHEMA_VERSION,
            "profiles": [records[name].to_dict() for name in sorted(records)]
            + list(snapshot.invalid_records),
        }
        if default_name is not None:
            payload["default_profile"] = default_name
        try:
            write_json_atomic(self._path, payload, backup_path=self._backup_path)
        except JsonIOError as exc:
            raise StorageError(str(exc)) from exc
        finally:
            with self._cache_lock:
                self._snapshot = None

    def _load_snapshot(self) -> _Snapshot:
        try:
            with self._path.open("rb") as handle:
                stat = os.fstat(handle.fileno())
                signature: _Signature = (stat.st_ino, stat.st_size, stat.st_mtime_ns)
                with self._cache_lock:
                    cached = self._snapshot
                if cached is not None and cached.signature == signature:
                    return cached
                raw = handle.read()
        except FileNotFoundError:
            with self._cache_lock:
                if self._snapshot is None or self._snapshot.signature is not None:
                    self._snapshot = _Snapshot(signature=None, records={})
                return self._snapshot
        except OSError as exc:
            raise StorageError(f"Failed to read profiles: {self._path} ({exc!s})") from exc

        snapshot = _parse_collection(raw, signature=signature, source=self._path)
        for warning in snapshot.warnings:
            logger.warning("%s", warning)
        with self._cache_lock:
            self._snapshot = snapshot
        return snapshot


def _parse_collection(raw: bytes, *, signature: _Signature, source: Path) -> _Snapshot:
    try:
        document = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise StorageError(f"Invalid JSON in profile collection {source}: {exc}") from exc

    if not isinstance(document, dict) or not isinstance(document.get("profiles"), list):
        raise StorageError(f"Profile collection {source} must be an object with a 'profiles' list")

    records: dict[str, Profile] = {}
    invalid: list[Any] = []
    warnings: list[str] = []
    for index, entry in enumerate(document["profiles"]):
        label = entry.get("name", f"#{index}") if isinstance(entry, dict) else f"#{index}"
        try:
            if not isinstance(entry, dict):
                raise ValidationError("record is not an object")
            profile = Profile.from_dict(upgrade_record(entry))
            validate_profile(profile)
        except IdentityEngineError as exc:
            invalid.append(entry)
            warnings.append(f"Skipping corrupt profile record {label!s}: {exc}")
            continue
        if profile.name in records:
            invalid.append(entry)
            warnings.append(f"Skipping duplicate profile record {profile.name}")
            continue
        records[profile.name] = profile

    default_name = document.get("default_profile")
    if default_name is not None and not isinstance(default_name, str):
        warnings.append(f"Ignoring non-string default_profile {default_name!r}")
        default_name = None
    elif default_name is not None and default_name not in records:
        warnings.append(f"Default profile {default_name!r} is not a valid profile")

    return _Snapshot(
        signature=signature,
        records=records,
        default_name=default_name,
        invalid_records=tuple(invalid),
        warnings=tuple(warnings),
    )


def open_profile_store(data_root: Path | None = None, *, clock: Clock | None = None) -> JsonProfileStore:
    """
    Convenience constructor that ensures the data root exists.

    Parameters
    ----------
    data_root:
        Optional override for the data root.
    clock:
        Optional timestamp source.

    Returns
    -------
    JsonProfileStore
        Ready-to-use store.
    """
    paths = resolve_store_paths(data_root)
    ensure_data_root(paths)
    return JsonProfileStore(paths.profiles_path, backup_path=paths.backup_path, clock=clock)
