from __future__ import annotations

import pytest

from identity_engine.data_models import PatternKind
from identity_engine.errors import InvalidRegexError, ValidationError
from identity_engine.matching import (
    EXACT_SPECIFICITY,
    REGEX_SPECIFICITY,
    compile_rule,
    infer_kind,
    matches,
    specificity,
    wildcard_matches,
)


def test_wildcard_matches_org_prefix() -> None:
    assert matches("github.com/org/*", "github.com/org/repo") is True
    assert matches("github.com/org/*", "gitlab.com/org/repo") is False


def test_wildcard_anchors_start_and_end() -> None:
    assert wildcard_matches("github.com/*/api", "github.com/acme/api") is True
    assert wildcard_matches("github.com/*/api", "github.com/acme/api-v2") is False
    assert wildcard_matches("*/api", "github.com/acme/api") is True
    assert wildcard_matches("github.com/*", "xgithub.com/acme") is False


def test_wildcard_middle_segments_consume_in_order() -> None:
    assert wildcard_matches("*acme*api*", "github.com/acme/api") is True
    assert wildcard_matches("*api*acme*", "github.com/acme/api") is False


def test_wildcard_head_and_tail_must_not_overlap() -> None:
    assert wildcard_matches("ab*ba", "aba") is False
    assert wildcard_matches("ab*ba", "abba") is True


def test_wildcard_repeated_middle_segments_do_not_overlap() -> None:
    assert wildcard_matches("*/foo/*/foo/*", "a/foo/foo/b") is False
    assert wildcard_matches("*/foo/*/foo/*", "a/foo/x/foo/b") is True


def test_exact_is_plain_equality() -> None:
    rule = compile_rule(PatternKind.EXACT, "github.com/acme/api")
    assert matches(rule, "github.com/acme/api") is True
    assert matches(rule, "github.com/acme/api2") is False


def test_regex_must_match_the_whole_url() -> None:
    rule = compile_rule(PatternKind.REGEX, r"github\.com/(acme|corp)/.+")
    assert matches(rule, "github.com/corp/tool") is True
    assert matches(rule, "mirror/github.com/corp/tool") is False

    bare = compile_rule(PatternKind.REGEX, r"github\.com/acme")
    assert matches(bare, "github.com/acme") is True
    assert matches(bare, "github.com/acme-evil/x") is False


def test_invalid_regex_fails_at_creation() -> None:
    with pytest.raises(InvalidRegexError):
        compile_rule(PatternKind.REGEX, "github.com/(unclosed")


def test_empty_pattern_is_rejected() -> None:
    with pytest.raises(ValidationError):
        compile_rule(PatternKind.WILDCARD, "   ")


def test_unknown_kind_is_rejected() -> None:
    with pytest.raises(ValidationError):
        compile_rule("glob", "github.com/*")


def test_specificity_ordering() -> None:
    exact = compile_rule(PatternKind.EXACT, "a/b/c")
    regex = compile_rule(PatternKind.REGEX, "a/.*")
    assert specificity(exact) == EXACT_SPECIFICITY
    assert specificity(regex) == REGEX_SPECIFICITY
    assert specificity(exact) > specificity(regex) > specificity("a/b/*") > specificity("a/*")


def test_wildcard_specificity_formula_and_floor() -> None:
    assert specificity("a/b/*") == 25
    assert specificity("a/*") == 15
    assert specificity("*") == 5
    assert specificity("***") == 0


def test_infer_kind() -> None:
    assert infer_kind("github.com/acme/*") is PatternKind.WILDCARD
    assert infer_kind("github.com/acme/api") is PatternKind.EXACT
