"""
ProfileStore public API.

This module defines the persistence surface that the configuration engine
and any listing UI are allowed to call. Callers speak only in typed domain
objects and never depend on the on-disk format.

Notes
-----
- ``read`` returns the inheritance-resolved view; ``read_raw`` returns the
  record exactly as persisted.
- ``list`` follows a partial-failure policy: corrupt records are skipped and
  reported as warnings instead of failing the whole call.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

from ..data_models import Profile, SigningMethod


@dataclass(frozen=True, slots=True)
class ProfileSummary:
    """
    A stable, minimal representation of a profile for listing UIs.

    Attributes
    ----------
    name:
        Unique profile name.
    description:
        Optional description.
    git_user_email:
        Email as persisted (may be None when inherited).
    extends:
        Parent profile name, if any.
    signing_method:
        Declared signing method, or None when the profile declares none.
    pattern_count:
        Number of auto-detection rules owned by the profile.
    """

    name: str
    description: str | None
    git_user_email: str | None
    extends: str | None
    signing_method: SigningMethod | None
    pattern_count: int

    @classmethod
    def from_profile(cls, profile: Profile) -> "ProfileSummary":
        return cls(
            name=profile.name,
            description=profile.description,
            git_user_email=profile.git_user_email,
            extends=profile.extends,
            signing_method=profile.signing.method if profile.signing is not None else None,
            pattern_count=len(profile.pattern_rules),
        )


@dataclass(frozen=True, slots=True)
class ProfileListing:
    """
    Result of listing the store.

    Attributes
    ----------
    profiles:
        Valid records, sorted by name.
    warnings:
        One human-readable message per excluded corrupt record.
    """

    profiles: tuple[Profile, ...]
    warnings: tuple[str, ...] = ()

    def summaries(self) -> list[ProfileSummary]:
        return [ProfileSummary.from_profile(p) for p in self.profiles]


class ProfileStore(Protocol):
    """
    Persistence API for profiles.

    Implementations own persisted state exclusively. Mutations are atomic and
    serialized per store instance.
    """

    def create(self, profile: Profile) -> Profile:
        """
        Persist a new profile.

        Returns
        -------
        Profile
            The stored record, with timestamps filled in.

        Raises
        ------
        DuplicateNameError
            If the name is already taken.
        ValidationError
            If the profile violates invariants.
        """
        raise NotImplementedError

    def read(self, name: str) -> Profile:
        """
        Return the inheritance-resolved view of a profile.

        Raises
        ------
        NotFoundError
            If the profile (or an ancestor) is unknown.
        InheritanceCycleError
            If the ``extends`` chain loops.
        """
        raise NotImplementedError

    def read_raw(self, name: str) -> Profile:
        """Return a profile exactly as persisted (no inheritance merge)."""
        raise NotImplementedError

    def update(self, profile: Profile) -> Profile:
        """
        Replace an existing profile, keeping the prior revision as backup.

        Raises
        ------
        NotFoundError
            If no profile with that name exists.
        ValidationError
            If the profile violates invariants.
        """
        raise NotImplementedError

    def delete(self, name: str) -> None:
        """
        Remove a profile. If it was the default, the default is cleared.

        Raises
        ------
        NotFoundError
            If no profile with that name exists. Persisted state is untouched.
        """
        raise NotImplementedError

    def list(self) -> ProfileListing:
        """Return all valid records sorted by name, plus per-record warnings."""
        raise NotImplementedError

    def exists(self, name: str) -> bool:
        """Return True if a record with ``name`` is persisted."""
        raise NotImplementedError

    def find(self, fragment: str) -> Sequence[Profile]:
        """
        Return records whose name fits ``fragment``, best match first.

        Matching is case-insensitive and tolerates typos; see
        ``identity_engine.name_lookup``.
        """
        raise NotImplementedError

    def rename(self, old_name: str, new_name: str) -> Profile:
        """
        Rename a profile.

        Profiles that extend ``old_name`` are repointed and the default
        profile follows the rename.

        Raises
        ------
        NotFoundError
            If ``old_name`` is unknown.
        DuplicateNameError
            If ``new_name`` is taken.
        ValidationError
            If ``new_name`` is not a valid profile name.
        """
        raise NotImplementedError

    def get_default(self) -> str | None:
        """Return the default profile name, or None when unset."""
        raise NotImplementedError

    def set_default(self, name: str | None) -> None:
        """
        Mark ``name`` as the default profile (None clears it).

        Raises
        ------
        NotFoundError
            If ``name`` is unknown.
        """
        raise NotImplementedError
