from __future__ import annotations

import pytest

from identity_engine.data_models import PatternKind, PatternRule, Profile, SigningIntent, SigningMethod
from identity_engine.profile_store.errors import InheritanceCycleError, NotFoundError
from identity_engine.profile_store.inheritance import ancestry, resolve, would_cycle


def _records(*profiles: Profile) -> dict[str, Profile]:
    return {p.name: p for p in profiles}


def test_resolve_merges_child_wins() -> None:
    base = Profile(
        name="base",
        git_user_email="base@example.com",
        git_user_name="Base Name",
        signing=SigningIntent(SigningMethod.GPG, key_reference="ABCDEF0123456789"),
        extra_git_config={"pull.rebase": "true", "init.defaultBranch": "main"},
        pattern_rules=(PatternRule(PatternKind.WILDCARD, "github.com/*"),),
    )
    child = Profile(
        name="child",
        extends="base",
        git_user_email="child@example.com",
        extra_git_config={"pull.rebase": "false"},
    )

    resolved = resolve("child", _records(base, child))

    assert resolved.name == "child"
    assert resolved.extends == "base"
    assert resolved.git_user_email == "child@example.com"
    assert resolved.git_user_name == "Base Name"
    assert resolved.signing == base.signing
    assert resolved.extra_git_config == {"pull.rebase": "false", "init.defaultBranch": "main"}
    assert resolved.pattern_rules == ()


def test_resolve_walks_multi_level_chain() -> None:
    root = Profile(name="root", git_user_email="root@example.com", extra_git_config={"a.b": "1"})
    mid = Profile(name="mid", extends="root", git_user_name="Mid", extra_git_config={"a.b": "2"})
    leaf = Profile(name="leaf", extends="mid")

    resolved = resolve("leaf", _records(root, mid, leaf))

    assert resolved.git_user_email == "root@example.com"
    assert resolved.git_user_name == "Mid"
    assert resolved.extra_git_config == {"a.b": "2"}


def test_resolve_does_not_mutate_records() -> None:
    base = Profile(name="base", git_user_email="b@example.com", extra_git_config={"x.y": "1"})
    child = Profile(name="child", extends="base", extra_git_config={"x.z": "2"})

    resolve("child", _records(base, child))

    assert base.extra_git_config == {"x.y": "1"}
    assert child.extra_git_config == {"x.z": "2"}


def test_self_reference_is_a_cycle() -> None:
    selfish = Profile(name="selfish", extends="selfish", git_user_email="s@example.com")
    with pytest.raises(InheritanceCycleError):
        resolve("selfish", _records(selfish))


def test_longer_cycle_is_detected() -> None:
    a = Profile(name="a", extends="c", git_user_email="a@example.com")
    b = Profile(name="b", extends="a")
    c = Profile(name="c", extends="b")
    with pytest.raises(InheritanceCycleError) as excinfo:
        resolve("a", _records(a, b, c))
    assert "a -> c -> b -> a" in str(excinfo.value)


def test_missing_parent_is_not_found() -> None:
    orphan = Profile(name="orphan", extends="ghost")
    with pytest.raises(NotFoundError):
        ancestry("orphan", _records(orphan))


def test_would_cycle() -> None:
    a = Profile(name="a", git_user_email="a@example.com")
    b = Profile(name="b", extends="a")
    records = _records(a, b)

    assert would_cycle(Profile(name="a", extends="b", git_user_email="a@example.com"), records) is True
    assert would_cycle(Profile(name="c", extends="b"), records) is False
