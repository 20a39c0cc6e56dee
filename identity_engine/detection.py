"""
Profile auto-detection from repository remote URLs.

Detection is a pure function of its inputs: no I/O, no clock, no store
access. Callers pass the raw (non-inherited) profile records, because every
pattern rule is owned by the profile that declares it.

Ranking
-------
Candidates are ranked by ``(priority, specificity)`` descending, priority
dominant. Fully equal candidates fall back to profile name (ascending), then
rule declaration order, then remote URL order, so the outcome never depends
on store iteration order.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Final, Iterable, Sequence

from .data_models import PatternRule, Profile
from .matching import matches, specificity

logger = logging.getLogger(__name__)

_SCHEME_RE: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*://")
_PORT_RE: Final[re.Pattern[str]] = re.compile(r":\d+$")


@dataclass(frozen=True, slots=True)
class DetectionResult:
    """
    The best-ranked pattern match for a repository.

    Attributes
    ----------
    profile_name:
        Name of the selected profile.
    matched_pattern:
        Raw text of the winning pattern (for prompts).
    rule:
        The winning rule.
    matched_url:
        Normalized remote URL the rule matched.
    priority:
        Priority of the winning rule.
    specificity:
        Specificity of the winning rule.
    """

    profile_name: str
    matched_pattern: str
    rule: PatternRule
    matched_url: str
    priority: int
    specificity: int


def normalize_remote_url(url: str) -> str:
    """
    Normalize a git remote URL for pattern matching.

    Steps: strip the protocol, strip ``user@`` (turning an scp-style ``:``
    separator into ``/``), drop an explicit port from scheme URLs, strip a
    ``.git`` suffix, strip trailing slashes.

    Examples
    --------
    ``git@github.com:org/repo.git`` -> ``github.com/org/repo``
    ``https://github.com/org/repo/`` -> ``github.com/org/repo``
    """
    text = url.strip()

    scheme = _SCHEME_RE.match(text)
    had_scheme = scheme is not None
    if scheme is not None:
        text = text[scheme.end():]

    authority, sep, path = text.partition("/")
    if "@" in authority:
        authority = authority.rsplit("@", 1)[1]
        if had_scheme:
            authority = _PORT_RE.sub("", authority)
        else:
            authority = authority.replace(":", "/", 1)
    elif had_scheme:
        authority = _PORT_RE.sub("", authority)
    text = authority + sep + path

    text = text.rstrip("/")
    if text.endswith(".git"):
        text = text[: -len(".git")]
    return text.rstrip("/")


def detect(remote_urls: Iterable[str], profiles: Sequence[Profile]) -> DetectionResult | None:
    """
    Pick the best-fit profile for a repository.

    Parameters
    ----------
    remote_urls:
        Remote URLs of the repository, in remote order.
    profiles:
        Raw profile records (each owns its pattern rules).

    Returns
    -------
    DetectionResult | None
        The single best-ranked match across all URLs, or None if no rule
        matches any URL.
    """
    normalized = [normalize_remote_url(u) for u in remote_urls if u and u.strip()]
    if not normalized:
        return None

    best: tuple[tuple[int, int, str, int, int], DetectionResult] | None = None
    for profile in profiles:
        for rule_index, rule in enumerate(profile.pattern_rules):
            for url_index, url in enumerate(normalized):
                if not matches(rule, url):
                    continue
                score = specificity(rule)
                # Lower sorts first: negate priority/specificity for descending rank.
                key = (-rule.priority, -score, profile.name, rule_index, url_index)
                if best is None or key < best[0]:
                    best = (
                        key,
                        DetectionResult(
                            profile_name=profile.name,
                            matched_pattern=rule.pattern,
                            rule=rule,
                            matched_url=url,
                            priority=rule.priority,
                            specificity=score,
                        ),
                    )
                # A rule only needs its first matching URL.
                break

    if best is None:
        logger.debug("No profile matched remotes %s", normalized)
        return None

    result = best[1]
    logger.debug(
        "Detected profile %s via %r (priority=%d, specificity=%d) on %s",
        result.profile_name,
        result.matched_pattern,
        result.priority,
        result.specificity,
        result.matched_url,
    )
    return result
