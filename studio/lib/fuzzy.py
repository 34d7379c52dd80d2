from collections.abc import Sequence
from difflib import get_close_matches
from typing import TypeVar

from studio.core.errors import AmbiguousError
from studio.core.models import Idea, Milestone, Task

__all__ = ["find_in_pool", "find_in_pool_exact", "label"]

FUZZY_MATCH_CUTOFF = 0.8

T = TypeVar("T", Task, Idea, Milestone)


def label(item: Task | Idea | Milestone) -> str:
    return item.title if isinstance(item, Idea) else item.name


def _match_uuid_prefix(ref: str, pool: Sequence[T]) -> T | None:
    ref_lower = ref.lower()
    exact = next((item for item in pool if item.id == ref_lower), None)
    if exact:
        return exact
    if len(ref_lower) < 4:
        return None
    matches = [item for item in pool if item.id.startswith(ref_lower)]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        sample = [item.id[:8] for item in matches[:3]]
        raise AmbiguousError(ref, count=len(matches), sample=sample)
    return None


def _match_substring(ref: str, pool: Sequence[T]) -> T | None:
    ref_lower = ref.lower()
    exact = [item for item in pool if label(item).lower() == ref_lower]
    if len(exact) == 1:
        return exact[0]
    if len(exact) > 1:
        pending = [item for item in exact if not getattr(item, "completed", False)]
        if len(pending) == 1:
            return pending[0]
        raise AmbiguousError(ref, count=len(exact), sample=[item.id[:8] for item in exact[:3]])
    matches = [item for item in pool if ref_lower in label(item).lower()]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        sample = [label(item) for item in matches[:3]]
        raise AmbiguousError(ref, count=len(matches), sample=sample)
    return None


def _match_fuzzy(ref: str, pool: Sequence[T]) -> T | None:
    ref_lower = ref.lower()
    matches = get_close_matches(
        ref_lower, [label(item).lower() for item in pool], n=1, cutoff=FUZZY_MATCH_CUTOFF
    )
    if matches:
        match_label = matches[0]
        for item in pool:
            if label(item).lower() == match_label:
                return item
    return None


def find_in_pool(ref: str, pool: Sequence[T]) -> T | None:
    if not pool or not ref.strip():
        return None
    ref = ref.strip()
    return _match_uuid_prefix(ref, pool) or _match_substring(ref, pool) or _match_fuzzy(ref, pool)


def find_in_pool_exact(ref: str, pool: Sequence[T]) -> T | None:
    if not pool or not ref.strip():
        return None
    ref = ref.strip()
    return _match_uuid_prefix(ref, pool) or _match_substring(ref, pool)
