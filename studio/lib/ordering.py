"""Sibling ordering for manual drag ordering.

Three kinds of scope share one engine. An idea scope holds an idea's top-level tasks and
ranks them by ``sort_order``. A subtask scope holds one parent's children and ranks them by
``sub_sort_order``. The today scope holds tasks triaged into Today, minus the task that is
currently "now", and ranks them by ``today_order``.

Only incomplete members are ranked, densely from 1. Completed members trail the ranked
ones, newest completion first.
"""

import dataclasses
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime
from typing import Literal

from studio.core.errors import ValidationError
from studio.core.models import OrderUpdate, Task
from studio.core.types import OrderField, Position

__all__ = [
    "Scope",
    "apply_plan",
    "changed",
    "compact",
    "home_scope",
    "incomplete_sequence",
    "insert_position",
    "is_dense",
    "reorder",
    "scopes_of",
    "settle",
    "sorted_siblings",
]

ScopeKind = Literal["idea", "subtasks", "today"]

_FIELDS: dict[str, OrderField] = {
    "idea": "sort_order",
    "subtasks": "sub_sort_order",
    "today": "today_order",
}

ORDER_FIELDS: frozenset[str] = frozenset(_FIELDS.values())

_MEMBERSHIP_ATTRS = ("completed", "focus_now", "focus_today", "idea_id", "parent_task_id")


@dataclasses.dataclass(frozen=True)
class Scope:
    kind: ScopeKind
    key: str | None = None

    @classmethod
    def idea(cls, idea_id: str | None) -> "Scope":
        return cls("idea", idea_id)

    @classmethod
    def subtasks(cls, parent_task_id: str) -> "Scope":
        return cls("subtasks", parent_task_id)

    @classmethod
    def today(cls) -> "Scope":
        return cls("today")

    @property
    def field(self) -> OrderField:
        return _FIELDS[self.kind]

    def contains(self, task: Task) -> bool:
        if self.kind == "idea":
            return task.parent_task_id is None and task.idea_id == self.key
        if self.kind == "subtasks":
            return task.parent_task_id == self.key
        return task.focus_today and not task.focus_now


def home_scope(task: Task) -> Scope:
    if task.parent_task_id:
        return Scope.subtasks(task.parent_task_id)
    return Scope.idea(task.idea_id)


def scopes_of(task: Task) -> list[Scope]:
    scopes = [home_scope(task)]
    today = Scope.today()
    if today.contains(task):
        scopes.append(today)
    return scopes


def _rank_key(field: OrderField):
    def key(task: Task) -> tuple[bool, int, datetime, str]:
        value = getattr(task, field)
        return (value <= 0, value, task.created_at, task.id)

    return key


def _completed_key(task: Task) -> tuple[bool, float, str]:
    if task.completed_at is None:
        return (True, 0.0, task.id)
    return (False, -task.completed_at.timestamp(), task.id)


def sorted_siblings(tasks: Iterable[Task], scope: Scope) -> list[Task]:
    members = [t for t in tasks if scope.contains(t)]
    pending = sorted((t for t in members if not t.completed), key=_rank_key(scope.field))
    done = sorted((t for t in members if t.completed), key=_completed_key)
    return pending + done


def incomplete_sequence(tasks: Iterable[Task], scope: Scope) -> list[Task]:
    return [t for t in sorted_siblings(tasks, scope) if not t.completed]


def _number(
    sequence: Sequence[Task], field: OrderField, start: int = 1
) -> tuple[list[Task], list[OrderUpdate]]:
    numbered: list[Task] = []
    plan: list[OrderUpdate] = []
    for position, task in enumerate(sequence, start=start):
        if getattr(task, field) != position:
            task = dataclasses.replace(task, **{field: position})
            plan.append(OrderUpdate(id=task.id, order=position))
        numbered.append(task)
    return numbered, plan


def reorder(
    sequence: Sequence[Task], from_index: int, to_index: int, field: OrderField
) -> tuple[list[Task], list[OrderUpdate]]:
    """Move one element and rank the result 1..N.

    Returns the new sequence and the reindex plan: only the entries whose order changed.
    """
    size = len(sequence)
    if not (0 <= from_index < size and 0 <= to_index < size):
        raise ValidationError(f"move {from_index} -> {to_index} out of range for {size} items")
    if from_index == to_index:
        return list(sequence), []
    moved = list(sequence)
    item = moved.pop(from_index)
    moved.insert(to_index, item)
    return _number(moved, field)


def insert_position(
    sequence: Sequence[Task], position: Position, field: OrderField
) -> tuple[int, list[OrderUpdate]]:
    """Order for a new member, plus the shifts existing members need to make room."""
    if position == "top":
        _, shifts = _number(sequence, field, start=2)
        return 1, shifts
    if position == "bottom":
        return len(sequence) + 1, []
    raise ValidationError(f"position must be 'top' or 'bottom', got '{position}'")


def apply_plan(tasks: Iterable[Task], plan: Iterable[OrderUpdate], field: OrderField) -> list[Task]:
    orders = {u.id: u.order for u in plan}
    return [
        dataclasses.replace(t, **{field: orders[t.id]}) if t.id in orders else t for t in tasks
    ]


def compact(tasks: Sequence[Task], scope: Scope) -> tuple[list[Task], list[OrderUpdate]]:
    _, plan = _number(incomplete_sequence(tasks, scope), scope.field)
    return apply_plan(tasks, plan, scope.field), plan


def is_dense(tasks: Iterable[Task], scope: Scope) -> bool:
    orders = sorted(getattr(t, scope.field) for t in incomplete_sequence(tasks, scope))
    return orders == list(range(1, len(orders) + 1))


def _membership_changed(old: Task | None, new: Task | None) -> bool:
    if old is None or new is None:
        return True
    return any(getattr(old, a) != getattr(new, a) for a in _MEMBERSHIP_ATTRS)


def settle(
    before: Sequence[Task],
    after: Sequence[Task],
    within: Callable[[Scope], bool] | None = None,
) -> list[Task]:
    """Re-rank every scope whose membership changed between two snapshots.

    Members entering a scope (re-opened, triaged into Today, released from "now") join at
    the bottom; everyone else keeps their relative order and the scope is renumbered 1..N.
    ``within`` limits the work to the scopes a caller actually holds in full.
    """
    prior = {t.id: t for t in before}
    current = {t.id: t for t in after}
    scopes: list[Scope] = []
    for task_id in prior.keys() | current.keys():
        old, new = prior.get(task_id), current.get(task_id)
        if not _membership_changed(old, new):
            continue
        for task in (old, new):
            if task is None:
                continue
            for scope in scopes_of(task):
                if scope not in scopes and (within is None or within(scope)):
                    scopes.append(scope)

    result = list(after)
    for scope in scopes:
        ranked_before = {t.id for t in prior.values() if scope.contains(t) and not t.completed}
        pending = incomplete_sequence(result, scope)
        staying = [t for t in pending if t.id in ranked_before]
        entering = [t for t in pending if t.id not in ranked_before]
        _, plan = _number(staying + entering, scope.field)
        result = apply_plan(result, plan, scope.field)
    return result


def changed(before: Iterable[Task], after: Iterable[Task]) -> list[Task]:
    prior = {t.id: t for t in before}
    return [t for t in after if prior.get(t.id) != t]
