from __future__ import annotations

from datetime import datetime, timezone

import pytest

from identity_engine.data_models import (
    ConfigScope,
    ConfigurationOperation,
    PatternKind,
    PatternRule,
    Profile,
    SigningIntent,
    SigningMethod,
)
from identity_engine.errors import InvalidRegexError, ValidationError


def _full_profile() -> Profile:
    return Profile(
        name="work",
        git_user_email="dev@acme.example",
        git_user_name="Dev Example",
        description="Acme work identity",
        scope=ConfigScope.GLOBAL,
        pattern_rules=(
            PatternRule(kind=PatternKind.WILDCARD, pattern="github.com/acme/*", priority=10),
            PatternRule(kind=PatternKind.REGEX, pattern=r"gitlab\.acme\.example/.*", priority=5),
        ),
        signing=SigningIntent(
            method=SigningMethod.SSH,
            key_reference="~/.ssh/id_ed25519.pub",
            extra={"allowed_signers_file": "~/.ssh/allowed_signers"},
        ),
        extra_git_config={"pull.rebase": "true", "core.autocrlf": "input"},
        created_at_utc=datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
        updated_at_utc=datetime(2026, 1, 3, 3, 4, 5, tzinfo=timezone.utc),
    )


def test_profile_dict_round_trip() -> None:
    profile = _full_profile()
    loaded = Profile.from_dict(profile.to_dict())

    assert loaded == profile
    assert loaded.pattern_rules[1].compiled is not None


def test_rules_are_bound_to_owning_profile() -> None:
    profile = _full_profile()
    assert {rule.profile_name for rule in profile.pattern_rules} == {"work"}


def test_to_dict_omits_unset_optional_fields() -> None:
    payload = Profile(name="minimal", git_user_email="me@example.com").to_dict()

    assert payload == {
        "name": "minimal",
        "git_user_email": "me@example.com",
        "pattern_rules": [],
        "extra_git_config": {},
    }


def test_from_dict_rejects_unknown_signing_method() -> None:
    with pytest.raises(ValidationError) as excinfo:
        Profile.from_dict(
            {"name": "p", "git_user_email": "p@example.com", "signing": {"method": "pgp"}}
        )
    assert "signing method" in str(excinfo.value)


def test_from_dict_rejects_invalid_regex_rule() -> None:
    with pytest.raises(InvalidRegexError):
        Profile.from_dict(
            {
                "name": "p",
                "git_user_email": "p@example.com",
                "pattern_rules": [{"kind": "regex", "pattern": "[unclosed"}],
            }
        )


def test_from_dict_requires_name() -> None:
    with pytest.raises(ValidationError):
        Profile.from_dict({"git_user_email": "p@example.com"})


def test_configuration_operation_forms() -> None:
    set_op = ConfigurationOperation.assign("user.email", "a@b.example", ConfigScope.LOCAL)
    unset_op = ConfigurationOperation.clear("commit.gpgsign", ConfigScope.GLOBAL)

    assert set_op.action == "set"
    assert unset_op.action == "unset"
    assert unset_op.render() == "git config --global --unset-all commit.gpgsign"


@pytest.mark.parametrize("raw", [True, False, 1.9, "high", None, [1]])
def test_rule_priority_rejects_non_integers(raw: object) -> None:
    with pytest.raises(ValidationError):
        PatternRule.from_dict({"kind": "exact", "pattern": "x", "priority": raw}, profile_name="work")


@pytest.mark.parametrize(("raw", "expected"), [(2.0, 2), ("3", 3), (-4, -4)])
def test_rule_priority_accepts_integral_values(raw: object, expected: int) -> None:
    rule = PatternRule.from_dict({"kind": "exact", "pattern": "x", "priority": raw}, profile_name="work")

    assert rule.priority == expected
    assert type(rule.priority) is int


def test_mapping_fields_are_read_only_copies() -> None:
    config = {"pull.rebase": "true"}
    extra = {"program": "/usr/bin/gpg"}
    profile = Profile(
        name="work",
        git_user_email="dev@acme.example",
        signing=SigningIntent(SigningMethod.GPG, key_reference="ABCDEF0123456789", extra=extra),
        extra_git_config=config,
    )
    config["pull.rebase"] = "false"
    extra["program"] = "evil"

    assert profile.extra_git_config == {"pull.rebase": "true"}
    assert profile.signing is not None
    assert profile.signing.extra == {"program": "/usr/bin/gpg"}
    with pytest.raises(TypeError):
        profile.extra_git_config["pull.rebase"] = "false"  # type: ignore[index]
    with pytest.raises(TypeError):
        profile.signing.extra["program"] = "evil"  # type: ignore[index]
    assert Profile.from_dict(profile.to_dict()) == profile
