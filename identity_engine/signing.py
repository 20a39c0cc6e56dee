"""
Signing dispatch: translate a signing intent into git config operations.

The set of signing methods is closed, so dispatch is one ``if`` chain over
``SigningMethod``. Selection is one-shot per apply cycle.

Contract
--------
- All-or-nothing: every check runs before any operation is assembled. A
  failed check raises ``SigningConfigError`` and nothing is returned.
- Clear-then-set: every batch first clears every signing-related key, then
  sets the keys the chosen method needs. The batch is therefore idempotent
  whatever state an earlier profile left behind.
- Key material is never resolved here. The key reference is emitted as-is.
"""

from __future__ import annotations

import re
from typing import Final, Mapping

from .data_models import ConfigScope, ConfigurationOperation, SigningIntent, SigningMethod
from .errors import SigningConfigError

MANAGED_SIGNING_KEYS: Final[tuple[str, ...]] = (
    "commit.gpgsign",
    "tag.gpgsign",
    "user.signingkey",
    "gpg.format",
    "gpg.program",
    "gpg.ssh.allowedSignersFile",
    "gpg.ssh.program",
    "gpg.x509.program",
    "gitsign.issuer",
    "gitsign.fulcio",
    "gitsign.rekor",
)

DEFAULT_ALLOWED_SIGNERS_FILE: Final[str] = "~/.ssh/allowed_signers"
GITSIGN_PROGRAM: Final[str] = "gitsign"

GPG_KEY_ID_RE: Final[re.Pattern[str]] = re.compile(
    r"^(0[xX])?([0-9A-Fa-f]{8}|[0-9A-Fa-f]{16}|[0-9A-Fa-f]{40})!?$"
)

_ALLOWED_EXTRA: Final[Mapping[SigningMethod, frozenset[str]]] = {
    SigningMethod.NONE: frozenset(),
    SigningMethod.SSH: frozenset({"allowed_signers_file", "program", "sign_tags"}),
    SigningMethod.GPG: frozenset({"program", "sign_tags"}),
    SigningMethod.X509: frozenset({"program", "sign_tags"}),
    SigningMethod.SIGSTORE: frozenset({"oidc_issuer", "fulcio_url", "rekor_url", "sign_tags"}),
}
_TRUE_VALUES: Final[frozenset[str]] = frozenset({"true", "yes", "on", "1"})
_FALSE_VALUES: Final[frozenset[str]] = frozenset({"false", "no", "off", "0"})


def clear_operations(scope: ConfigScope) -> list[ConfigurationOperation]:
    """Return unset operations for every signing-related key."""
    return [ConfigurationOperation.clear(key, scope) for key in MANAGED_SIGNING_KEYS]


def build_signing_operations(
    intent: SigningIntent | None,
    scope: ConfigScope,
) -> list[ConfigurationOperation]:
    """
    Build the ordered operation batch for a signing intent.

    Parameters
    ----------
    intent:
        Signing intent of the resolved profile. None behaves like
        ``SigningMethod.NONE``.
    scope:
        Scope stamped on every emitted operation.

    Returns
    -------
    list[ConfigurationOperation]
        Clear operations followed by the method's set operations.

    Raises
    ------
    SigningConfigError
        If the intent is incomplete or inconsistent. No operations are
        returned in that case.
    """
    if intent is None:
        intent = SigningIntent(method=SigningMethod.NONE)

    _check_extra_keys(intent)

    settings: list[tuple[str, str]]
    if intent.method is SigningMethod.NONE:
        settings = []
    elif intent.method is SigningMethod.SSH:
        settings = _ssh_settings(intent)
    elif intent.method is SigningMethod.GPG:
        settings = _gpg_settings(intent)
    elif intent.method is SigningMethod.X509:
        settings = _x509_settings(intent)
    elif intent.method is SigningMethod.SIGSTORE:
        settings = _sigstore_settings(intent)
    else:
        raise AssertionError(f"unhandled signing method: {intent.method!r}")

    if intent.method is not SigningMethod.NONE:
        settings.append(("commit.gpgsign", "true"))
        if _flag(intent, "sign_tags"):
            settings.append(("tag.gpgsign", "true"))

    operations = clear_operations(scope)
    operations.extend(ConfigurationOperation.assign(key, value, scope) for key, value in settings)
    return operations


def _ssh_settings(intent: SigningIntent) -> list[tuple[str, str]]:
    key_reference = _require_key_reference(intent)
    settings = [
        ("gpg.format", "ssh"),
        ("user.signingkey", key_reference),
        (
            "gpg.ssh.allowedSignersFile",
            _optional_extra(intent, "allowed_signers_file") or DEFAULT_ALLOWED_SIGNERS_FILE,
        ),
    ]
    program = _optional_extra(intent, "program")
    if program is not None:
        settings.append(("gpg.ssh.program", program))
    return settings


def _gpg_settings(intent: SigningIntent) -> list[tuple[str, str]]:
    key_reference = _require_key_reference(intent)
    if not GPG_KEY_ID_RE.match(key_reference):
        raise SigningConfigError(
            f"GPG signing requires a key id (8, 16 or 40 hex digits), got {key_reference!r}."
        )
    settings = [("gpg.format", "openpgp"), ("user.signingkey", key_reference)]
    program = _optional_extra(intent, "program")
    if program is not None:
        settings.append(("gpg.program", program))
    return settings


def _x509_settings(intent: SigningIntent) -> list[tuple[str, str]]:
    key_reference = _require_key_reference(intent)
    program = _required_extra(intent, "program")
    return [
        ("gpg.format", "x509"),
        ("gpg.x509.program", program),
        ("user.signingkey", key_reference),
    ]


def _sigstore_settings(intent: SigningIntent) -> list[tuple[str, str]]:
    key_reference = _require_key_reference(intent)
    issuer = _required_extra(intent, "oidc_issuer")
    settings = [
        ("gpg.format", "x509"),
        ("gpg.x509.program", GITSIGN_PROGRAM),
        ("user.signingkey", key_reference),
        ("gitsign.issuer", _https_url(issuer, "oidc_issuer")),
    ]
    for extra_key, config_key in (("fulcio_url", "gitsign.fulcio"), ("rekor_url", "gitsign.rekor")):
        value = _optional_extra(intent, extra_key)
        if value is not None:
            settings.append((config_key, _https_url(value, extra_key)))
    return settings


def _check_extra_keys(intent: SigningIntent) -> None:
    unknown = sorted(set(intent.extra) - _ALLOWED_EXTRA[intent.method])
    if unknown:
        raise SigningConfigError(
            f"Unsupported signing parameters for {intent.method.value!r}: {', '.join(unknown)}"
        )


def _require_key_reference(intent: SigningIntent) -> str:
    reference = (intent.key_reference or "").strip()
    if not reference:
        raise SigningConfigError(f"Signing method {intent.method.value!r} requires a key reference.")
    return reference


def _optional_extra(intent: SigningIntent, key: str) -> str | None:
    value = intent.extra.get(key)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _required_extra(intent: SigningIntent, key: str) -> str:
    value = _optional_extra(intent, key)
    if value is None:
        raise SigningConfigError(f"Signing method {intent.method.value!r} requires the {key!r} parameter.")
    return value


def _https_url(value: str, key: str) -> str:
    if not value.startswith("https://") or len(value) <= len("https://"):
        raise SigningConfigError(f"Signing parameter {key!r} must be an https URL, got {value!r}.")
    return value


def _flag(intent: SigningIntent, key: str) -> bool:
    value = _optional_extra(intent, key)
    if value is None:
        return False
    lowered = value.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise SigningConfigError(f"Signing parameter {key!r} must be a boolean, got {value!r}.")
