"""Domain exceptions for ProfileStore."""

from __future__ import annotations

from ..errors import IdentityEngineError


class ProfileStoreError(IdentityEngineError):
    """Base error for profile store operations."""


class DuplicateNameError(ProfileStoreError):
    """Raised when creating a profile whose name is already taken."""


class NotFoundError(ProfileStoreError):
    """Raised when a profile name is not known to the store."""


class InheritanceCycleError(ProfileStoreError):
    """Raised when an ``extends`` chain loops back on itself."""


class StorageError(ProfileStoreError):
    """Raised when the profile collection cannot be read or written."""
