"""Data models for the identity engine.

This module defines the canonical, typed representation of a profile record
and of the configuration operations derived from it. Profiles persisted by the
store are the source of truth; resolved (inherited) views and operation lists
are always derived.

The models are standard-library-only dataclasses. ``PatternRule`` and
``SigningIntent`` are owned substructures of a ``Profile``; they are never
persisted or mutated on their own.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Self

from .errors import InvalidRegexError, ValidationError

ISO_8601_UTC_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


class PatternKind(str, Enum):
    """Supported pattern rule kinds."""

    EXACT = "exact"
    WILDCARD = "wildcard"
    REGEX = "regex"


class SigningMethod(str, Enum):
    """Closed set of commit signing methods."""

    NONE = "none"
    SSH = "ssh"
    GPG = "gpg"
    X509 = "x509"
    SIGSTORE = "sigstore"


class ConfigScope(str, Enum):
    """Breadth of a configuration operation, mirroring git's layered config."""

    LOCAL = "local"
    GLOBAL = "global"
    SYSTEM = "system"

    @property
    def git_flag(self) -> str:
        """Return the ``git config`` flag selecting this scope."""
        return f"--{self.value}"


def datetime_to_iso_utc(dt: datetime) -> str:
    """Serialize a datetime as a UTC ISO-8601 string.

    Parameters
    ----------
    dt
        A timezone-aware datetime.

    Returns
    -------
    str
        ISO-8601 UTC timestamp, normalized to the `Z` suffix.

    Raises
    ------
    ValueError
        If `dt` is naive (has no timezone).
    """

    if dt.tzinfo is None:
        raise ValueError("datetime must be timezone-aware")
    return dt.astimezone(timezone.utc).strftime(ISO_8601_UTC_FORMAT)


def datetime_from_iso_utc(value: str) -> datetime:
    """Parse a ``YYYY-MM-DDTHH:MM:SSZ`` timestamp as an aware UTC datetime."""

    dt = datetime.strptime(value, ISO_8601_UTC_FORMAT)
    return dt.replace(tzinfo=timezone.utc)


def _require_keys(payload: Mapping[str, Any], keys: set[str], *, context: str) -> None:
    missing = keys.difference(payload.keys())
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ValidationError(f"Missing required keys in {context}: {missing_str}")


def _parse_enum(enum_type: type[Enum], raw: object, *, context: str) -> Any:
    try:
        return enum_type(str(raw).strip().lower())
    except ValueError as exc:
        allowed = ", ".join(str(member.value) for member in enum_type)
        raise ValidationError(f"Invalid {context} {raw!r}; expected one of: {allowed}") from exc


def _optional_str(payload: Mapping[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _frozen_map(values: Mapping[str, str]) -> Mapping[str, str]:
    return MappingProxyType(dict(values))


def _parse_priority(raw: object) -> int:
    # JSON booleans and fractional numbers are not priorities.
    if isinstance(raw, bool):
        raise ValidationError(f"Pattern priority must be an integer: {raw!r}")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    if isinstance(raw, str):
        try:
            return int(raw.strip())
        except ValueError as exc:
            raise ValidationError(f"Pattern priority must be an integer: {raw!r}") from exc
    raise ValidationError(f"Pattern priority must be an integer: {raw!r}")


def _string_map(raw: object, *, context: str) -> dict[str, str]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ValidationError(f"{context} must be a mapping of strings")
    return {str(k): str(v) for k, v in raw.items()}


@dataclass(frozen=True, slots=True)
class PatternRule:
    """
    A pattern used to auto-select its owning profile from remote URLs.

    Regex rules are compiled here, once, so an invalid expression fails when
    the rule is built and never at match time.

    Attributes
    ----------
    kind:
        Exact, wildcard or regex.
    pattern:
        Raw pattern text as authored.
    priority:
        User-assigned priority; higher wins during detection.
    profile_name:
        Name of the owning profile.
    """

    kind: PatternKind
    pattern: str
    priority: int = 0
    profile_name: str = ""
    compiled: re.Pattern[str] | None = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.kind, PatternKind):
            object.__setattr__(self, "kind", _parse_enum(PatternKind, self.kind, context="pattern kind"))
        if not isinstance(self.pattern, str) or not self.pattern.strip():
            raise ValidationError("Pattern rules must have a non-empty pattern.")
        if isinstance(self.priority, bool) or not isinstance(self.priority, int):
            raise ValidationError(f"Pattern priority must be an integer: {self.priority!r}")
        if self.kind is PatternKind.REGEX:
            try:
                compiled = re.compile(self.pattern)
            except re.error as exc:
                raise InvalidRegexError(f"Invalid regex pattern {self.pattern!r}: {exc}") from exc
            object.__setattr__(self, "compiled", compiled)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any], *, profile_name: str) -> Self:
        """Construct a rule from its persisted mapping."""

        _require_keys(payload, {"kind", "pattern"}, context="pattern rule")
        priority = _parse_priority(payload.get("priority", 0))
        return cls(
            kind=_parse_enum(PatternKind, payload["kind"], context="pattern kind"),
            pattern=str(payload["pattern"]),
            priority=priority,
            profile_name=profile_name,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert this rule to a JSON-serializable dict (owner is implied)."""

        return {"kind": self.kind.value, "pattern": self.pattern, "priority": self.priority}


@dataclass(frozen=True, slots=True)
class SigningIntent:
    """
    Desired signing method plus a key reference.

    The key reference is opaque to the engine (a key path, key id, vault
    reference or signer identity). It is passed through, never resolved.
    """

    method: SigningMethod
    key_reference: str | None = None
    extra: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.method, SigningMethod):
            object.__setattr__(
                self, "method", _parse_enum(SigningMethod, self.method, context="signing method")
            )
        object.__setattr__(self, "extra", _frozen_map(self.extra))

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Self:
        """Construct a signing intent from its persisted mapping."""

        _require_keys(payload, {"method"}, context="signing")
        return cls(
            method=_parse_enum(SigningMethod, payload["method"], context="signing method"),
            key_reference=_optional_str(payload, "key_reference"),
            extra=_string_map(payload.get("extra"), context="signing.extra"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert this intent to a JSON-serializable dict."""

        payload: dict[str, Any] = {"method": self.method.value}
        if self.key_reference is not None:
            payload["key_reference"] = self.key_reference
        if self.extra:
            payload["extra"] = dict(sorted(self.extra.items()))
        return payload


@dataclass(frozen=True, slots=True)
class ConfigurationOperation:
    """
    A single key/value/scope triple for ``git config``.

    A ``value`` of None means the key is cleared. Both forms are idempotent:
    applying the same operation twice leaves the same state.
    """

    key: str
    value: str | None
    scope: ConfigScope

    @classmethod
    def assign(cls, key: str, value: str, scope: ConfigScope) -> Self:
        return cls(key=key, value=value, scope=scope)

    @classmethod
    def clear(cls, key: str, scope: ConfigScope) -> Self:
        return cls(key=key, value=None, scope=scope)

    @property
    def action(self) -> str:
        """Return ``"set"`` or ``"unset"``."""
        return "unset" if self.value is None else "set"

    def render(self) -> str:
        """Render a stable, human-readable description of the operation."""
        if self.value is None:
            return f"git config {self.scope.git_flag} --unset-all {self.key}"
        return f"git config {self.scope.git_flag} {self.key} {self.value!r}"


@dataclass(frozen=True, slots=True)
class Profile:
    """
    A named bundle of identity, signing and extra git settings.

    Attributes
    ----------
    name:
        Unique profile name.
    git_user_email:
        Value for ``user.email``. May be omitted when inherited via ``extends``.
    git_user_name:
        Value for ``user.name``.
    description:
        Free-form description for listings.
    extends:
        Name of the parent profile whose settings this one inherits.
    scope:
        Preferred scope for ``apply`` when the caller does not choose one.
    pattern_rules:
        Rules used for auto-detection. Always owned by this profile.
    signing:
        Signing intent, or None to leave signing untouched by inheritance.
    extra_git_config:
        Additional ``git config`` keys to set on apply. Stored as a read-only mapping.

    created_at_utc, updated_at_utc:
        Store-managed timestamps.
    """

    name: str
    git_user_email: str | None = None
    git_user_name: str | None = None
    description: str | None = None
    extends: str | None = None
    scope: ConfigScope | None = None
    pattern_rules: tuple[PatternRule, ...] = ()
    signing: SigningIntent | None = None
    extra_git_config: Mapping[str, str] = field(default_factory=dict)
    created_at_utc: datetime | None = None
    updated_at_utc: datetime | None = None

    def __post_init__(self) -> None:
        if self.scope is not None and not isinstance(self.scope, ConfigScope):
            object.__setattr__(self, "scope", _parse_enum(ConfigScope, self.scope, context="scope"))
        # Rules always belong to the profile that declares them.
        owned = tuple(
            rule if rule.profile_name == self.name else replace(rule, profile_name=self.name)
            for rule in self.pattern_rules
        )
        object.__setattr__(self, "pattern_rules", owned)
        object.__setattr__(self, "extra_git_config", _frozen_map(self.extra_git_config))

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Self:
        """Construct a profile from its persisted mapping.

        Raises
        ------
        ValidationError
            If required keys are missing or a field has the wrong shape.
        InvalidRegexError
            If a regex pattern rule does not compile.
        """

        _require_keys(payload, {"name"}, context="profile")
        name = str(payload["name"])

        raw_rules = payload.get("pattern_rules", [])
        if not isinstance(raw_rules, list):
            raise ValidationError(f"pattern_rules must be a list in profile {name!r}")
        rules = []
        for raw in raw_rules:
            if not isinstance(raw, Mapping):
                raise ValidationError(f"Each pattern rule must be a mapping in profile {name!r}")
            rules.append(PatternRule.from_dict(raw, profile_name=name))

        signing_raw = payload.get("signing")
        if signing_raw is not None and not isinstance(signing_raw, Mapping):
            raise ValidationError(f"signing must be a mapping in profile {name!r}")

        scope_raw = payload.get("scope")
        try:
            created = payload.get("created_at_utc")
            updated = payload.get("updated_at_utc")
            created_at = datetime_from_iso_utc(str(created)) if created else None
            updated_at = datetime_from_iso_utc(str(updated)) if updated else None
        except ValueError as exc:
            raise ValidationError(f"Invalid timestamp in profile {name!r}: {exc}") from exc

        return cls(
            name=name,
            git_user_email=_optional_str(payload, "git_user_email"),
            git_user_name=_optional_str(payload, "git_user_name"),
            description=_optional_str(payload, "description"),
            extends=_optional_str(payload, "extends"),
            scope=_parse_enum(ConfigScope, scope_raw, context="scope") if scope_raw else None,
            pattern_rules=tuple(rules),
            signing=SigningIntent.from_dict(signing_raw) if signing_raw is not None else None,
            extra_git_config=_string_map(payload.get("extra_git_config"), context="extra_git_config"),
            created_at_utc=created_at,
            updated_at_utc=updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert this profile to a JSON-serializable dictionary."""

        payload: dict[str, Any] = {"name": self.name}
        for key in ("description", "git_user_name", "git_user_email", "extends"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        if self.scope is not None:
            payload["scope"] = self.scope.value
        payload["pattern_rules"] = [rule.to_dict() for rule in self.pattern_rules]
        if self.signing is not None:
            payload["signing"] = self.signing.to_dict()
        payload["extra_git_config"] = dict(sorted(self.extra_git_config.items()))
        if self.created_at_utc is not None:
            payload["created_at_utc"] = datetime_to_iso_utc(self.created_at_utc)
        if self.updated_at_utc is not None:
            payload["updated_at_utc"] = datetime_to_iso_utc(self.updated_at_utc)
        return payload
