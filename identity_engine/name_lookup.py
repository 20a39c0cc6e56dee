"""
Ranked, typo-tolerant lookup of profile names.

Scoring
-------
Every score is in ``[0.0, 1.0]`` and comparisons are case-insensitive.

- Equal names score 1.0.
- A query found inside the name scores by position and coverage:
  ``(1 - position / len(name)) * 0.6 + len(query) / len(name) * 0.4``.
- Anything else scores by ``difflib.SequenceMatcher`` similarity, scaled by
  0.8 for queries of two characters or fewer.

The best of the two scorers is kept. Results below ``min_score`` are dropped;
the rest are ordered by score (descending) then name.
"""

from __future__ import annotations

from dataclasses import dataclass
from difflib import SequenceMatcher
from typing import Final, Iterable

DEFAULT_MIN_SCORE: Final[float] = 0.4
DEFAULT_MAX_RESULTS: Final[int] = 10
SHORT_QUERY_LENGTH: Final[int] = 2
SHORT_QUERY_PENALTY: Final[float] = 0.8


@dataclass(frozen=True, slots=True)
class NameMatch:
    """A candidate name and how well it fits the query."""

    name: str
    score: float


def substring_score(query: str, name: str) -> float:
    query, name = query.casefold(), name.casefold()
    if not query or not name:
        return 0.0
    if query == name:
        return 1.0
    position = name.find(query)
    if position < 0:
        return 0.0
    position_score = 1.0 - position / len(name)
    coverage = len(query) / len(name)
    return min(1.0, position_score * 0.6 + coverage * 0.4)


def similarity_score(query: str, name: str) -> float:
    query, name = query.casefold(), name.casefold()
    if not query or not name:
        return 0.0
    ratio = SequenceMatcher(None, query, name).ratio()
    if len(query) <= SHORT_QUERY_LENGTH:
        return ratio * SHORT_QUERY_PENALTY
    return ratio


def score_name(query: str, name: str) -> float:
    """Return the best score any scorer gives ``name`` for ``query``."""
    return max(substring_score(query, name), similarity_score(query, name))


def rank_names(
    query: str,
    names: Iterable[str],
    *,
    min_score: float = DEFAULT_MIN_SCORE,
    max_results: int = DEFAULT_MAX_RESULTS,
) -> list[NameMatch]:
    """
    Rank ``names`` against ``query``.

    Parameters
    ----------
    query:
        Text typed by the user. A blank query matches nothing.
    names:
        Candidate profile names.
    min_score:
        Lowest score kept.
    max_results:
        Upper bound on the number of returned matches.

    Returns
    -------
    list[NameMatch]
        Matches ordered by score (descending), then name.
    """
    query = query.strip()
    if not query:
        return []
    scored = [NameMatch(name=name, score=score_name(query, name)) for name in names]
    kept = [m for m in scored if m.score >= min_score]
    kept.sort(key=lambda m: (-m.score, m.name))
    return kept[:max_results]
