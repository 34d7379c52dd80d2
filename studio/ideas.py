import dataclasses
import logging
import uuid
from collections.abc import Sequence

from fncli import UsageError, cli

from . import db
from .core.errors import NotFoundError, ValidationError
from .core.models import Idea, OrderUpdate
from .core.types import UNSET, Unset
from .lib import clock
from .lib.converters import format_datetime, row_to_idea
from .lib.errors import echo
from .lib.format import format_progress, format_status
from .lib.parsing import validate_name
from .tasks import fetch_tasks, persist_transition

__all__ = [
    "create_idea",
    "delete_idea",
    "get_idea",
    "get_ideas",
    "plan_idea_move",
    "reorder_ideas",
    "update_idea",
]

logger = logging.getLogger(__name__)

# ── domain ───────────────────────────────────────────────────────────────────

_IDEA_SELECT = """
SELECT i.id, i.title, i.created_at, i.summary, i.milestone_id, i.project_id, i.sort_order, i.updated_at,
       COUNT(t.id), COALESCE(SUM(t.completed), 0)
FROM ideas i
LEFT JOIN tasks t ON t.idea_id = i.id AND t.parent_task_id IS NULL
"""


def get_ideas() -> list[Idea]:
    with db.get_db() as conn:
        rows = conn.execute(
            f"{_IDEA_SELECT} GROUP BY i.id ORDER BY i.sort_order ASC, i.created_at DESC"  # noqa: S608
        ).fetchall()
    return [row_to_idea(r) for r in rows]


def get_idea(idea_id: str) -> Idea | None:
    with db.get_db() as conn:
        row = conn.execute(
            f"{_IDEA_SELECT} WHERE i.id = ? GROUP BY i.id",  # noqa: S608
            (idea_id,),
        ).fetchone()
    return row_to_idea(row) if row else None


def create_idea(
    title: str,
    summary: str | None = None,
    milestone_id: str | None = None,
    project_id: str | None = None,
) -> Idea:
    title = validate_name(title, "title")
    now = clock.now()
    idea_id = str(uuid.uuid4())
    with db.get_db() as conn:
        if milestone_id and not db.row_exists(conn, "milestones", milestone_id):
            raise NotFoundError(f"milestone not found: {milestone_id}")
        count = conn.execute("SELECT COUNT(*) FROM ideas").fetchone()[0]
        conn.execute(
            "INSERT INTO ideas (id, title, summary, milestone_id, project_id, sort_order, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                idea_id,
                title,
                summary.strip() or None if summary else None,
                milestone_id,
                project_id,
                count + 1,
                format_datetime(now),
                format_datetime(now),
            ),
        )
    return Idea(
        id=idea_id,
        title=title,
        created_at=now,
        summary=summary.strip() or None if summary else None,
        milestone_id=milestone_id,
        project_id=project_id,
        sort_order=count + 1,
        updated_at=now,
    )


def update_idea(
    idea_id: str,
    title: str | None = None,
    summary: str | None | Unset = UNSET,
    milestone_id: str | None | Unset = UNSET,
    project_id: str | None | Unset = UNSET,
) -> Idea:
    updates: dict[str, object] = {}
    if title is not None:
        updates["title"] = validate_name(title, "title")
    if summary is not UNSET:
        updates["summary"] = summary.strip() or None if summary else None
    if project_id is not UNSET:
        updates["project_id"] = project_id or None
    if milestone_id is not UNSET:
        updates["milestone_id"] = milestone_id or None
    if not updates:
        raise ValidationError("no fields to update")
    updates["updated_at"] = format_datetime(clock.now())

    with db.get_db() as conn:
        if not db.row_exists(conn, "ideas", idea_id):
            raise NotFoundError(f"idea not found: {idea_id}")
        if updates.get("milestone_id") and not db.row_exists(conn, "milestones", str(updates["milestone_id"])):
            raise NotFoundError(f"milestone not found: {updates['milestone_id']}")
        set_clauses = ", ".join(f"{k} = ?" for k in updates)
        conn.execute(
            f"UPDATE ideas SET {set_clauses} WHERE id = ?",  # noqa: S608
            (*updates.values(), idea_id),
        )
    idea = get_idea(idea_id)
    if idea is None:
        raise NotFoundError(f"idea not found: {idea_id}")
    return idea


def delete_idea(idea_id: str) -> Idea:
    """Delete an idea. Its tasks are unlinked and stay addressable as orphans."""
    idea = get_idea(idea_id)
    if idea is None:
        raise NotFoundError(f"idea not found: {idea_id}")
    with db.get_db() as conn:
        before = fetch_tasks(conn)
        conn.execute("DELETE FROM ideas WHERE id = ?", (idea_id,))
        orphaned = [
            dataclasses.replace(t, idea_id=None) if t.idea_id == idea_id else t for t in before
        ]
        # orphans join the unlinked scope below the tasks already there
        persist_transition(conn, before, orphaned)
        remaining = conn.execute("SELECT id FROM ideas ORDER BY sort_order ASC, created_at DESC").fetchall()
        for position, (other_id,) in enumerate(remaining, start=1):
            conn.execute("UPDATE ideas SET sort_order = ? WHERE id = ?", (position, other_id))
    logger.info("deleted idea %s, unlinked %d tasks", idea_id, idea.task_count)
    return idea


def plan_idea_move(ideas: Sequence[Idea], from_index: int, to_index: int) -> list[OrderUpdate]:
    size = len(ideas)
    if not (0 <= from_index < size and 0 <= to_index < size):
        raise ValidationError(f"move {from_index} -> {to_index} out of range for {size} ideas")
    moved = list(ideas)
    moved.insert(to_index, moved.pop(from_index))
    return [
        OrderUpdate(id=idea.id, order=position)
        for position, idea in enumerate(moved, start=1)
        if idea.sort_order != position
    ]


def reorder_ideas(updates: Sequence[OrderUpdate]) -> None:
    if not updates:
        return
    stamp = format_datetime(clock.now())
    with db.get_db() as conn:
        for u in updates:
            cursor = conn.execute(
                "UPDATE ideas SET sort_order = ?, updated_at = ? WHERE id = ?",
                (u.order, stamp, u.id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"idea not found: {u.id}")


# ── cli ──────────────────────────────────────────────────────────────────────


@cli("studio idea", name="add", flags={"summary": ["-s", "--summary"]})
def idea_add(title: list[str], summary: str | None = None) -> None:
    """Create an idea"""
    title_str = " ".join(title) if title else ""
    idea = create_idea(title_str, summary=summary)
    echo(format_status("◇", idea.title, idea.id))


@cli("studio idea", name="ls")
def idea_ls() -> None:
    """List ideas with progress"""
    ideas = get_ideas()
    if not ideas:
        echo("no ideas")
        return
    for position, idea in enumerate(ideas, start=1):
        progress = format_progress(idea.completed_task_count, idea.task_count)
        echo(f"{position:>3}. {format_status('◇', f'{idea.title}  {progress}', idea.id)}")


@cli(
    "studio idea",
    name="set",
    flags={"title": ["-t", "--title"], "summary": ["-s", "--summary"], "milestone": ["-m", "--milestone"]},
)
def idea_set(
    ref: str,
    title: str | None = None,
    summary: str | None = None,
    milestone: str | None = None,
) -> None:
    """Set title, summary, or milestone on an idea ('-' clears summary or milestone)"""
    from .lib.resolve import resolve_idea, resolve_milestone

    idea = resolve_idea(ref)
    if title is None and summary is None and milestone is None:
        raise UsageError("Nothing to set. Use -t for title, -s for summary, -m for milestone.")
    milestone_id: str | None | Unset = UNSET
    if milestone is not None:
        milestone_id = None if milestone == "-" else resolve_milestone(milestone).id
    summary_val: str | None | Unset = UNSET
    if summary is not None:
        summary_val = None if summary == "-" else summary
    updated = update_idea(idea.id, title=title, summary=summary_val, milestone_id=milestone_id)
    echo(format_status("◇", updated.title, updated.id))


@cli("studio idea", name="rm")
def idea_rm(ref: list[str]) -> None:
    """Delete an idea (its tasks are kept, unlinked)"""
    from .lib.resolve import resolve_idea

    idea = resolve_idea(" ".join(ref))
    delete_idea(idea.id)
    echo(f"✗ {idea.title}")
    if idea.task_count:
        echo(f"  {idea.task_count} task(s) unlinked")


@cli("studio idea", name="move")
def idea_move(ref: str, position: int) -> None:
    """Move an idea to a 1-based position"""
    from .lib.resolve import resolve_idea

    idea = resolve_idea(ref)
    ideas = get_ideas()
    from_index = next(i for i, other in enumerate(ideas) if other.id == idea.id)
    reorder_ideas(plan_idea_move(ideas, from_index, position - 1))
    echo(format_status(f"{position}.", idea.title, idea.id))
