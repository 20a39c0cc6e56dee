"""
``extends`` resolution for persisted profiles.

The ``extends`` graph is user-authored and may contain cycles, so chains are
walked iteratively with an explicit visited-name set, never by recursion.
Merging builds a fresh immutable Profile; input records are never mutated.

Merge rules (child wins)
------------------------
- Scalar fields (identity, description, scope) take the child's value when set.
- ``signing`` is the nearest declared intent.
- ``extra_git_config`` is merged root-first, so nearer profiles override keys.
- Pattern rules are not inherited; each rule stays owned by its declaring profile.
- ``name``, ``extends`` and timestamps are the child's own.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Mapping

from ..data_models import Profile
from .errors import InheritanceCycleError, NotFoundError

_INHERITED_SCALARS = ("git_user_email", "git_user_name", "description", "scope", "signing")


def ancestry(name: str, records: Mapping[str, Profile]) -> list[Profile]:
    """
    Return the ``extends`` chain starting at ``name`` (child first).

    Raises
    ------
    NotFoundError
        If ``name`` or any ancestor is unknown.
    InheritanceCycleError
        If the chain revisits a name, including direct self-reference.
    """
    chain: list[Profile] = []
    visited: set[str] = set()
    current: str | None = name
    while current is not None:
        if current in visited:
            path = " -> ".join([p.name for p in chain] + [current])
            raise InheritanceCycleError(f"Inheritance cycle detected: {path}")
        visited.add(current)
        record = records.get(current)
        if record is None:
            if current == name:
                raise NotFoundError(f"Unknown profile: {name}")
            raise NotFoundError(f"Profile {chain[-1].name!r} extends unknown profile {current!r}")
        chain.append(record)
        current = record.extends
    return chain


def resolve(name: str, records: Mapping[str, Profile]) -> Profile:
    """Return the flattened, inheritance-resolved view of ``name``."""
    chain = ancestry(name, records)
    child = chain[0]
    if len(chain) == 1:
        return child

    merged_extra: dict[str, str] = {}
    for record in reversed(chain):
        merged_extra.update(record.extra_git_config)

    inherited = {}
    for field_name in _INHERITED_SCALARS:
        inherited[field_name] = next(
            (getattr(r, field_name) for r in chain if getattr(r, field_name) is not None),
            None,
        )
    return replace(child, extra_git_config=merged_extra, **inherited)


def would_cycle(candidate: Profile, records: Mapping[str, Profile]) -> bool:
    """Return True if storing ``candidate`` would close an ``extends`` cycle."""
    staged = dict(records)
    staged[candidate.name] = candidate
    try:
        ancestry(candidate.name, staged)
    except InheritanceCycleError:
        return True
    except NotFoundError:
        return False
    return False
