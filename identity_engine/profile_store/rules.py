"""
Profile validation and record normalization for ProfileStore.

This module provides deterministic, syntax-only checks for user-authored
profiles. It performs no filesystem access.

Invariants
----------
- Names match ``^[a-zA-Z][a-zA-Z0-9_-]{0,49}$``
- Emails have exactly one ``@`` with non-empty local part and a dotted domain
- A profile without ``extends`` must carry its own email
- A signing intent other than ``none`` carries a key reference
- Extra git config keys look like ``section[.subsection].name`` and never
  collide with keys the engine manages itself
"""

from __future__ import annotations

import re
from typing import Any, Final, Mapping

from ..data_models import Profile, SigningMethod
from ..errors import ValidationError
from ..matching import infer_kind
from ..signing import MANAGED_SIGNING_KEYS

PROFILE_NAME_RE: Final[re.Pattern[str]] = re.compile(r"^[a-zA-Z][a-zA-Z0-9_-]{0,49}$")
GIT_CONFIG_KEY_RE: Final[re.Pattern[str]] = re.compile(
    r"^[A-Za-z][A-Za-z0-9-]*(\.[^\n]+)?\.[A-Za-z][A-Za-z0-9-]*$"
)
IDENTITY_KEYS: Final[frozenset[str]] = frozenset({"user.name", "user.email"})
LEGACY_GITSIGN_ISSUER: Final[str] = "https://oauth2.sigstore.dev/auth"

# Keys written by older releases, one profile per record.
_LEGACY_PATTERN_KEYS: Final[tuple[str, ...]] = ("repos", "match_patterns", "host_patterns")
_LEGACY_KEY_TYPES: Final[Mapping[str, SigningMethod]] = {
    "ssh": SigningMethod.SSH,
    "gpg": SigningMethod.GPG,
    "x509": SigningMethod.X509,
    "gitsign": SigningMethod.SIGSTORE,
}


def validate_name(name: str) -> None:
    """
    Validate a profile name.

    Raises
    ------
    ValidationError
        If ``name`` does not match the naming rule.
    """
    if not isinstance(name, str) or not PROFILE_NAME_RE.match(name):
        raise ValidationError(
            f"Invalid profile name {name!r}: must start with a letter and contain only "
            "letters, digits, '-' or '_' (max 50 characters)."
        )


def validate_email(email: str) -> None:
    """Validate an email address (syntax only)."""
    if not email or any(ch.isspace() for ch in email):
        raise ValidationError(f"Invalid email address: {email!r}")
    parts = email.split("@")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise ValidationError(f"Invalid email address: {email!r}")
    domain = parts[1]
    if "." not in domain or domain.startswith(".") or domain.endswith("."):
        raise ValidationError(f"Invalid email address: {email!r}")


def validate_profile(profile: Profile) -> None:
    """
    Validate a profile record as it will be persisted.

    Notes
    -----
    Identity fields may be omitted when ``extends`` is set; use
    ``validate_resolved`` on the merged view to check the effective identity.

    Raises
    ------
    ValidationError
        If any invariant is violated.
    """
    validate_name(profile.name)

    if profile.extends is not None:
        validate_name(profile.extends)
    elif profile.git_user_email is None:
        raise ValidationError(f"Profile {profile.name!r} must define git_user_email.")

    if profile.git_user_email is not None:
        validate_email(profile.git_user_email)

    if profile.git_user_name is not None and "\n" in profile.git_user_name:
        raise ValidationError(f"git_user_name must be a single line in profile {profile.name!r}.")

    signing = profile.signing
    if signing is not None and signing.method is not SigningMethod.NONE:
        if not signing.key_reference or not signing.key_reference.strip():
            raise ValidationError(
                f"Signing method {signing.method.value!r} requires a key_reference "
                f"in profile {profile.name!r}."
            )

    for key, value in profile.extra_git_config.items():
        if not GIT_CONFIG_KEY_RE.match(key):
            raise ValidationError(f"Invalid git config key {key!r} in profile {profile.name!r}.")
        if key in IDENTITY_KEYS or key in MANAGED_SIGNING_KEYS:
            raise ValidationError(
                f"Key {key!r} is managed by the engine and cannot be set through "
                f"extra_git_config (profile {profile.name!r})."
            )
        if "\n" in value:
            raise ValidationError(f"Value for {key!r} must be a single line in profile {profile.name!r}.")


def validate_resolved(profile: Profile) -> None:
    """Validate the inheritance-resolved view of a profile."""
    if profile.git_user_email is None:
        raise ValidationError(
            f"Profile {profile.name!r} has no git_user_email after resolving 'extends'."
        )
    validate_email(profile.git_user_email)


def upgrade_record(payload: Mapping[str, Any]) -> dict[str, Any]:
    """
    Normalize a persisted record to the current shape.

    Records written by older releases stored bare pattern strings
    (``repos``, ``match_patterns``, ``host_patterns``) and a flat
    ``key_type`` / ``signing_key`` pair. They are folded into
    ``pattern_rules`` and ``signing``. Current records pass through unchanged.
    """
    record = dict(payload)

    legacy_patterns: list[str] = []
    for key in _LEGACY_PATTERN_KEYS:
        values = record.pop(key, None) or []
        if not isinstance(values, list):
            raise ValidationError(f"{key} must be a list of strings")
        legacy_patterns.extend(str(v).strip() for v in values if str(v).strip())
    if legacy_patterns:
        rules = list(record.get("pattern_rules") or [])
        rules.extend(
            {"kind": infer_kind(pattern).value, "pattern": pattern, "priority": 0}
            for pattern in legacy_patterns
        )
        record["pattern_rules"] = rules

    key_type = record.pop("key_type", None)
    signing_key = record.pop("signing_key", None)
    allowed_signers = record.pop("allowed_signers", None)
    if key_type is not None and "signing" not in record:
        method = _LEGACY_KEY_TYPES.get(str(key_type).lower())
        if method is None:
            raise ValidationError(f"Unknown legacy key_type {key_type!r}")
        if signing_key:
            extra: dict[str, str] = {}
            if allowed_signers and method is SigningMethod.SSH:
                extra["allowed_signers_file"] = str(allowed_signers)
            if method is SigningMethod.X509:
                extra["program"] = "smimesign"
            if method is SigningMethod.SIGSTORE:
                extra["oidc_issuer"] = LEGACY_GITSIGN_ISSUER
            record["signing"] = {
                "method": method.value,
                "key_reference": str(signing_key),
                "extra": extra,
            }
    return record
