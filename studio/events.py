import json
import logging
import sqlite3
import uuid
from typing import Any

from fncli import UsageError, cli

from . import db
from .core.models import Task, TaskEvent
from .lib import ansi, clock
from .lib.converters import format_datetime, row_to_event
from .lib.errors import echo
from .lib.format import format_elapsed

__all__ = ["EVENT_TYPES", "diff_events", "get_events", "log_event"]

logger = logging.getLogger(__name__)

EVENT_TYPES = (
    "created",
    "completed",
    "uncompleted",
    "focused",
    "unfocused",
    "added_to_today",
    "removed_from_today",
    "renamed",
    "note_updated",
    "milestone_changed",
    "deleted",
)


def log_event(
    conn: sqlite3.Connection,
    task_id: str | None,
    idea_id: str | None,
    event_type: str,
    data: dict[str, Any] | None = None,
) -> None:
    """Record an activity row. A failure here never fails the surrounding mutation."""
    try:
        conn.execute(
            "INSERT INTO task_events (id, task_id, idea_id, event_type, event_data, created_at) VALUES (?, ?, ?, ?, ?, ?)",
            (
                str(uuid.uuid4()),
                task_id,
                idea_id,
                event_type,
                json.dumps(data) if data else None,
                format_datetime(clock.now()),
            ),
        )
    except sqlite3.Error as e:
        logger.warning("failed to log %s event for task %s: %s", event_type, task_id, e)


def diff_events(old: Task, new: Task) -> list[tuple[str, dict[str, Any]]]:
    """Activity rows implied by one task's transition."""
    events: list[tuple[str, dict[str, Any]]] = []
    if old.completed != new.completed:
        events.append(("completed" if new.completed else "uncompleted", {"name": new.name}))
    if old.focus_now != new.focus_now:
        events.append(("focused" if new.focus_now else "unfocused", {"name": new.name}))
    if old.focus_today != new.focus_today:
        events.append(
            ("added_to_today" if new.focus_today else "removed_from_today", {"name": new.name})
        )
    if old.name != new.name:
        events.append(("renamed", {"name": new.name, "previous_name": old.name}))
    if old.note != new.note:
        events.append(
            ("note_updated", {"name": new.name, "had_note": bool(old.note), "has_note": bool(new.note)})
        )
    if old.milestone_id != new.milestone_id:
        events.append(
            (
                "milestone_changed",
                {
                    "name": new.name,
                    "previous_milestone_id": old.milestone_id,
                    "new_milestone_id": new.milestone_id,
                },
            )
        )
    return events


def get_events(
    task_id: str | None = None,
    idea_id: str | None = None,
    event_type: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[TaskEvent]:
    clauses = ["1=1"]
    params: list[object] = []
    if task_id:
        clauses.append("task_id = ?")
        params.append(task_id)
    if idea_id:
        clauses.append("idea_id = ?")
        params.append(idea_id)
    if event_type:
        clauses.append("event_type = ?")
        params.append(event_type)
    params.extend([limit, offset])
    with db.get_db() as conn:
        rows = conn.execute(
            f"SELECT id, task_id, idea_id, event_type, event_data, created_at FROM task_events WHERE {' AND '.join(clauses)} ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?",  # noqa: S608
            tuple(params),
        ).fetchall()
    return [row_to_event(r) for r in rows]


@cli("studio", flags={"type_": ["-t", "--type"], "limit": ["-n", "--limit"]})
def activity(type_: str | None = None, limit: int = 20):
    """Show recent task activity"""
    if type_ is not None and type_ not in EVENT_TYPES:
        raise UsageError(f"unknown event type '{type_}', expected one of: {', '.join(EVENT_TYPES)}")
    events = get_events(event_type=type_, limit=limit)
    if not events:
        echo("no activity")
        return
    now = clock.now()
    for e in events:
        name = e.event_data.get("name", "")
        echo(f"{ansi.muted(format_elapsed(e.created_at, now)):<12} {e.event_type:<18} {name}")
