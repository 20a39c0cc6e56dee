"""
Domain exceptions for the identity engine.

Notes
-----
Engine code avoids raising generic exceptions for expected failures. Every
expected failure maps to a domain exception with a user-facing message; only
true invariant violations (programming errors) may surface as anything else.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .data_models import ConfigurationOperation


class IdentityEngineError(RuntimeError):
    """Base exception for all identity engine domain failures."""


class ValidationError(IdentityEngineError):
    """Raised when a profile or one of its substructures violates invariants."""


class PatternError(IdentityEngineError):
    """Base error for pattern rule construction failures."""


class InvalidRegexError(PatternError):
    """Raised when a regex pattern rule does not compile."""


class SigningConfigError(IdentityEngineError):
    """
    Raised when a signing intent cannot be translated into operations.

    No operations are ever emitted alongside this error.
    """


class CredentialError(IdentityEngineError):
    """Raised by a credential resolver when a key reference cannot be resolved."""


class ExecutorError(IdentityEngineError):
    """
    Raised when a git call made by an executor or remote reader fails.

    Operations before ``operation_index`` have already been applied and are
    not rolled back.

    Attributes
    ----------
    operation_index:
        Index of the failing operation in the submitted list. None when the
        failing git call was not an operation (e.g. reading remotes).
    operation:
        The failing operation, if known.
    """

    def __init__(
        self,
        message: str,
        *,
        operation_index: int | None = None,
        operation: ConfigurationOperation | None = None,
    ) -> None:
        super().__init__(message)
        self.operation_index = operation_index
        self.operation = operation
