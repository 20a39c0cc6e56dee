"""
Credential resolver collaborators.

The engine never reads key material. A resolver only confirms that a key
reference points at something usable; the returned handle is opaque and is
not threaded into configuration operations.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Protocol

from .errors import CredentialError


@dataclass(frozen=True, slots=True)
class KeyMaterialHandle:
    """
    Opaque proof that a key reference resolved.

    Attributes
    ----------
    reference:
        The key reference as configured.
    source:
        Where the reference was found (e.g. ``"file"`` or ``"static"``).
    """

    reference: str
    source: str


class CredentialResolver(Protocol):
    """Resolves key references to opaque handles."""

    def resolve(self, reference: str) -> KeyMaterialHandle:
        """
        Resolve ``reference``.

        Raises
        ------
        CredentialError
            If the reference cannot be resolved.
        """
        ...


@dataclass(frozen=True, slots=True)
class StaticCredentialResolver:
    """Resolver over a fixed set of known references (useful for tests)."""

    known: Mapping[str, str] = field(default_factory=dict)

    def resolve(self, reference: str) -> KeyMaterialHandle:
        source = self.known.get(reference)
        if source is None:
            raise CredentialError(f"Unknown key reference: {reference!r}")
        return KeyMaterialHandle(reference=reference, source=source)


@dataclass(frozen=True, slots=True)
class FileCredentialResolver:
    """
    Resolver that accepts references naming an existing file.

    Literal keys (``key::...``, ``ssh-...``) and hex key ids are accepted as
    ``"literal"`` without touching the filesystem. Everything else is treated
    as a path, with ``~`` and environment variables expanded.
    """

    def resolve(self, reference: str) -> KeyMaterialHandle:
        text = reference.strip()
        if not text:
            raise CredentialError("Empty key reference.")
        if text.startswith(("key::", "ssh-", "ecdsa-", "sk-")) or _looks_like_key_id(text):
            return KeyMaterialHandle(reference=reference, source="literal")

        path = Path(os.path.expandvars(text)).expanduser()
        if not path.is_file():
            raise CredentialError(f"Key file not found: {path}")
        return KeyMaterialHandle(reference=reference, source="file")


def _looks_like_key_id(text: str) -> bool:
    digits = text[2:] if text.lower().startswith("0x") else text
    digits = digits.rstrip("!")
    return len(digits) in (8, 16, 40) and all(c in "0123456789abcdefABCDEF" for c in digits)
