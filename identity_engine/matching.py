"""
Pattern matching for profile auto-detection.

Matching is syntax-only and deterministic: it performs no I/O and never
compiles anything at match time (regex rules are compiled when the
``PatternRule`` is built).

Wildcard semantics
------------------
A wildcard pattern is split on ``*``. The first piece must prefix the
candidate unless the pattern starts with ``*``; the last piece must suffix it
unless the pattern ends with ``*``. Middle pieces are located left to right
with a plain substring search that consumes the matched region and never
backtracks. The tail is reserved before the search so middle pieces cannot
overlap it. Because ``*`` is the only metacharacter, leftmost placement of
each piece accepts exactly what a backtracking glob would.
"""

from __future__ import annotations

from typing import Final

from .data_models import PatternKind, PatternRule

EXACT_SPECIFICITY: Final[int] = 1000
REGEX_SPECIFICITY: Final[int] = 500
SEGMENT_WEIGHT: Final[int] = 10
WILDCARD_PENALTY: Final[int] = 5


def compile_rule(
    kind: PatternKind | str,
    pattern: str,
    *,
    priority: int = 0,
    profile_name: str = "",
) -> PatternRule:
    """
    Build a pattern rule, compiling regex rules immediately.

    Raises
    ------
    InvalidRegexError
        If ``kind`` is regex and ``pattern`` does not compile.
    ValidationError
        If the pattern is empty, the priority is not an integer, or the kind
        is unknown.
    """
    return PatternRule(kind=kind, pattern=pattern, priority=priority, profile_name=profile_name)


def infer_kind(pattern: str) -> PatternKind:
    """Classify a bare pattern string as exact or wildcard."""
    return PatternKind.WILDCARD if "*" in pattern else PatternKind.EXACT


def matches(rule: PatternRule | str, candidate: str) -> bool:
    """
    Return True if ``candidate`` satisfies ``rule``.

    A bare string is treated as an exact or wildcard pattern via ``infer_kind``.
    """
    rule = _as_rule(rule)
    if rule.kind is PatternKind.EXACT:
        return rule.pattern == candidate
    if rule.kind is PatternKind.WILDCARD:
        return wildcard_matches(rule.pattern, candidate)
    if rule.kind is PatternKind.REGEX:
        # compiled is always set for regex rules (see PatternRule.__post_init__)
        assert rule.compiled is not None
        return rule.compiled.fullmatch(candidate) is not None
    raise AssertionError(f"unhandled pattern kind: {rule.kind!r}")


def wildcard_matches(pattern: str, candidate: str) -> bool:
    """Match ``candidate`` against a ``*`` wildcard pattern."""
    pieces = pattern.split("*")
    if len(pieces) == 1:
        return pattern == candidate

    head, tail, middle = pieces[0], pieces[-1], pieces[1:-1]
    if not candidate.startswith(head):
        return False

    end = len(candidate) - len(tail)
    if end < len(head) or not candidate.endswith(tail):
        return False

    cursor = len(head)
    for piece in middle:
        if not piece:
            continue
        found = candidate.find(piece, cursor, end)
        if found < 0:
            return False
        cursor = found + len(piece)
    return True


def specificity(rule: PatternRule | str) -> int:
    """
    Rank how concrete a rule is.

    Exact rules score 1000 and regex rules a fixed 500. Wildcard rules score
    ``segments * 10 - wildcards * 5`` floored at 0, where ``segments`` counts
    the non-empty ``/``-separated parts of the pattern.
    """
    rule = _as_rule(rule)
    if rule.kind is PatternKind.EXACT:
        return EXACT_SPECIFICITY
    if rule.kind is PatternKind.REGEX:
        return REGEX_SPECIFICITY
    if rule.kind is PatternKind.WILDCARD:
        return wildcard_specificity(rule.pattern)
    raise AssertionError(f"unhandled pattern kind: {rule.kind!r}")


def wildcard_specificity(pattern: str) -> int:
    segments = sum(1 for part in pattern.split("/") if part)
    wildcards = pattern.count("*")
    return max(0, segments * SEGMENT_WEIGHT - wildcards * WILDCARD_PENALTY)


def _as_rule(rule: PatternRule | str) -> PatternRule:
    if isinstance(rule, PatternRule):
        return rule
    return compile_rule(infer_kind(rule), rule)
