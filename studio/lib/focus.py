"""Focus state: the global "now" spotlight and the independent "today" bucket.

Every transition takes the cached task list and returns a new one. At most one task holds
``focus_now``; a completed task never does. ``focus_today`` is never touched by "now"
transitions or by completion.
"""

import dataclasses
from collections.abc import Sequence
from datetime import datetime

from studio.core.errors import NotFoundError, ValidationError
from studio.core.models import Task

__all__ = [
    "complete",
    "decode_focus",
    "encode_focus",
    "find",
    "in_today",
    "now_task",
    "remove_from_today",
    "set_now",
    "set_today",
    "toggle_complete",
    "toggle_now",
    "toggle_today",
    "uncomplete",
]

FOCUS_NOW = "now"
FOCUS_TODAY = "today"


def decode_focus(value: str | None) -> tuple[bool, bool]:
    """Legacy focus string ('', 'now', 'today', 'now,today') -> (now, today)."""
    parts = {p.strip().lower() for p in (value or "").split(",") if p.strip()}
    unknown = parts - {FOCUS_NOW, FOCUS_TODAY}
    if unknown:
        raise ValidationError(f"unknown focus value: {', '.join(sorted(unknown))}")
    return FOCUS_NOW in parts, FOCUS_TODAY in parts


def encode_focus(now: bool, today: bool) -> str:
    return ",".join(name for name, on in ((FOCUS_NOW, now), (FOCUS_TODAY, today)) if on)


def in_today(task: Task) -> bool:
    return task.focus_today or task.focus_now


def now_task(tasks: Sequence[Task]) -> Task | None:
    return next((t for t in tasks if t.focus_now), None)


def find(tasks: Sequence[Task], task_id: str) -> Task:
    for task in tasks:
        if task.id == task_id:
            return task
    raise NotFoundError(f"task not found: {task_id}")


def _replace(tasks: Sequence[Task], task_id: str, **changes) -> list[Task]:
    return [dataclasses.replace(t, **changes) if t.id == task_id else t for t in tasks]


def set_now(tasks: Sequence[Task], task_id: str, on: bool) -> list[Task]:
    target = find(tasks, task_id)
    if not on:
        return _replace(tasks, task_id, focus_now=False)
    if target.completed:
        raise ValidationError("a completed task cannot be in focus now")
    return [
        dataclasses.replace(t, focus_now=t.id == task_id)
        if t.id == task_id or t.focus_now
        else t
        for t in tasks
    ]


def toggle_now(tasks: Sequence[Task], task_id: str) -> list[Task]:
    return set_now(tasks, task_id, not find(tasks, task_id).focus_now)


def set_today(tasks: Sequence[Task], task_id: str, on: bool) -> list[Task]:
    find(tasks, task_id)
    return _replace(tasks, task_id, focus_today=on)


def toggle_today(tasks: Sequence[Task], task_id: str) -> list[Task]:
    return set_today(tasks, task_id, not find(tasks, task_id).focus_today)


def remove_from_today(tasks: Sequence[Task], task_id: str) -> list[Task]:
    # a task holding "now" stays visible in Today through the spotlight
    return set_today(tasks, task_id, False)


def complete(tasks: Sequence[Task], task_id: str, at: datetime) -> list[Task]:
    if find(tasks, task_id).completed:
        return list(tasks)
    return _replace(tasks, task_id, completed=True, completed_at=at, focus_now=False)


def uncomplete(tasks: Sequence[Task], task_id: str) -> list[Task]:
    if not find(tasks, task_id).completed:
        return list(tasks)
    return _replace(tasks, task_id, completed=False, completed_at=None)


def toggle_complete(tasks: Sequence[Task], task_id: str, at: datetime) -> list[Task]:
    if find(tasks, task_id).completed:
        return uncomplete(tasks, task_id)
    return complete(tasks, task_id, at)
