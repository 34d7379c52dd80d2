import logging
import sys
import uuid
from datetime import datetime

from fncli import UsageError, cli

from . import config, db
from .core.errors import NotFoundError, ValidationError
from .core.models import Milestone
from .core.types import UNSET, Unset
from .events import log_event
from .lib import ansi, clock, countdown
from .lib.converters import format_datetime, row_to_milestone
from .lib.errors import echo
from .lib.format import URGENCY_COLORS, format_status
from .lib.parsing import parse_target_date, validate_name

__all__ = [
    "create_milestone",
    "delete_milestone",
    "get_milestone",
    "get_milestones",
    "update_milestone",
]

logger = logging.getLogger(__name__)


# ── domain ───────────────────────────────────────────────────────────────────

_MILESTONE_SELECT = """
SELECT m.id, m.name, m.created_at, m.target_date, m.notes, m.completed, m.completed_at, m.sort_order, m.updated_at,
       (SELECT COUNT(*) FROM tasks t WHERE t.milestone_id = m.id),
       (SELECT COUNT(*) FROM tasks t WHERE t.milestone_id = m.id AND t.completed = 1)
FROM milestones m
"""


def get_milestones() -> list[Milestone]:
    """Milestones by target date (undated last), then sort index, then newest."""
    with db.get_db() as conn:
        rows = conn.execute(
            f"{_MILESTONE_SELECT} ORDER BY m.target_date IS NULL, m.target_date ASC, m.sort_order ASC, m.created_at DESC"  # noqa: S608
        ).fetchall()
    return [row_to_milestone(r) for r in rows]


def get_milestone(milestone_id: str) -> Milestone | None:
    with db.get_db() as conn:
        row = conn.execute(f"{_MILESTONE_SELECT} WHERE m.id = ?", (milestone_id,)).fetchone()  # noqa: S608
    return row_to_milestone(row) if row else None


def create_milestone(
    name: str, target_date: datetime | None = None, notes: str | None = None
) -> Milestone:
    name = validate_name(name)
    now = clock.now()
    milestone_id = str(uuid.uuid4())
    notes = notes.strip() or None if notes else None
    with db.get_db() as conn:
        next_order = conn.execute(
            "SELECT COALESCE(MAX(sort_order), 0) + 1 FROM milestones"
        ).fetchone()[0]
        conn.execute(
            "INSERT INTO milestones (id, name, target_date, notes, sort_order, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                milestone_id,
                name,
                format_datetime(target_date),
                notes,
                next_order,
                format_datetime(now),
                format_datetime(now),
            ),
        )
    return Milestone(
        id=milestone_id,
        name=name,
        created_at=now,
        target_date=target_date,
        notes=notes,
        sort_order=next_order,
        updated_at=now,
    )


def update_milestone(
    milestone_id: str,
    name: str | None = None,
    target_date: datetime | None | Unset = UNSET,
    notes: str | None | Unset = UNSET,
    completed: bool | None = None,
) -> Milestone:
    current = get_milestone(milestone_id)
    if current is None:
        raise NotFoundError(f"milestone not found: {milestone_id}")
    updates: dict[str, object] = {}
    if name is not None:
        updates["name"] = validate_name(name)
    if target_date is not UNSET:
        updates["target_date"] = format_datetime(target_date)
    if notes is not UNSET:
        updates["notes"] = notes.strip() or None if notes else None
    if completed is not None:
        updates["completed"] = completed
        if completed and not current.completed:
            updates["completed_at"] = format_datetime(clock.now())
        elif not completed:
            updates["completed_at"] = None
    if not updates:
        raise ValidationError("no fields to update")
    updates["updated_at"] = format_datetime(clock.now())

    with db.get_db() as conn:
        set_clauses = ", ".join(f"{k} = ?" for k in updates)
        conn.execute(
            f"UPDATE milestones SET {set_clauses} WHERE id = ?",  # noqa: S608
            (*updates.values(), milestone_id),
        )
    updated = get_milestone(milestone_id)
    if updated is None:
        raise NotFoundError(f"milestone not found: {milestone_id}")
    return updated


def delete_milestone(milestone_id: str) -> Milestone:
    """Delete a milestone. Linked tasks and ideas are unlinked, never deleted."""
    milestone = get_milestone(milestone_id)
    if milestone is None:
        raise NotFoundError(f"milestone not found: {milestone_id}")
    with db.get_db() as conn:
        linked = conn.execute(
            "SELECT id, idea_id, name FROM tasks WHERE milestone_id = ?", (milestone_id,)
        ).fetchall()
        conn.execute("DELETE FROM milestones WHERE id = ?", (milestone_id,))
        for task_id, idea_id, task_name in linked:
            log_event(
                conn,
                task_id,
                idea_id,
                "milestone_changed",
                {"name": task_name, "previous_milestone_id": milestone_id, "new_milestone_id": None},
            )
    logger.info("deleted milestone %s, unlinked %d tasks", milestone_id, len(linked))
    return milestone


# ── cli ──────────────────────────────────────────────────────────────────────


def _milestones_view():
    from .store import LocalStore
    from .views import MilestonesView, open_view

    return open_view(MilestonesView(LocalStore()))


@cli("studio milestone", name="add", flags={"due": ["-d", "--due"], "notes": ["-n", "--notes"]})
def milestone_add(name: list[str], due: str | None = None, notes: str | None = None) -> None:
    """Create a milestone (--due '2026-11-01 17:00')"""
    from .render import exit_on_notices

    view = _milestones_view()
    milestone = view.create(" ".join(name) if name else "", parse_target_date(due), notes)
    exit_on_notices(view)
    if milestone:
        echo(format_status("○", milestone.name, milestone.id))


@cli("studio milestone", name="ls")
def milestone_ls() -> None:
    """List milestones with progress and time left"""
    from .render import exit_on_notices, render_milestones

    view = _milestones_view()
    exit_on_notices(view)
    echo(render_milestones(view))


@cli("studio milestone", name="done")
def milestone_done(ref: list[str]) -> None:
    """Toggle a milestone's completion"""
    from .lib.resolve import resolve_milestone
    from .render import exit_on_notices

    m = resolve_milestone(" ".join(ref))
    view = _milestones_view()
    view.toggle_complete(m.id)
    exit_on_notices(view)
    updated = view.milestone(m.id) or m
    echo(format_status(ansi.green("✓") if updated.completed else "○", updated.name, updated.id))


@cli("studio milestone", name="rm")
def milestone_rm(ref: list[str]) -> None:
    """Delete a milestone (linked tasks are kept)"""
    from .lib.resolve import resolve_milestone
    from .render import exit_on_notices

    m = resolve_milestone(" ".join(ref))
    view = _milestones_view()
    view.delete(m.id)
    exit_on_notices(view)
    echo(f"✗ {m.name}")


def _render_left(left: countdown.TimeLeft | None, urgency: countdown.Urgency) -> str:
    return ansi.color(URGENCY_COLORS[urgency], countdown.format_time_left(left))


@cli("studio", name="countdown", flags={"live": ["-l", "--live"]})
def countdown_cmd(ref: list[str], live: bool = False) -> None:
    """Time left until a milestone's target date"""
    from .lib.resolve import resolve_milestone

    m = resolve_milestone(" ".join(ref))
    if m.target_date is None:
        raise UsageError(f"'{m.name}' has no target date")
    thresholds = config.get_urgency_thresholds()
    if not live:
        left = countdown.time_left(m.target_date)
        echo(f"{m.name}  {_render_left(left, countdown.classify(left, thresholds))}")
        return
    try:
        for left in countdown.ticks(m.target_date):
            line = f"{m.name}  {_render_left(left, countdown.classify(left, thresholds))}"
            sys.stdout.write(f"\r\033[K{line}")
            sys.stdout.flush()
    except KeyboardInterrupt:
        pass
    sys.stdout.write("\n")


@cli("studio", flags={"at": ["--at"], "live": ["-l", "--live"]})
def daily(at: str | None = None, live: bool = False) -> None:
    """Time left until today's deadline (--at HH:MM to change it)"""
    if at is not None:
        try:
            config.set_daily_target_time(at)
        except ValueError as e:
            raise ValidationError(str(e)) from e
    target_time = config.get_daily_target_time()
    thresholds = config.get_urgency_thresholds()

    def line(left: countdown.TimeLeft | None) -> str:
        return f"today ends {target_time}  {_render_left(left, countdown.classify(left, thresholds))}"

    if not live:
        echo(line(countdown.daily_time_left(target_time)))
        return
    try:
        for left in countdown.ticks(lambda now: countdown.daily_target(target_time, now)):
            sys.stdout.write(f"\r\033[K{line(left)}")
            sys.stdout.flush()
    except KeyboardInterrupt:
        pass
    sys.stdout.write("\n")
