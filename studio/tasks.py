import dataclasses
import logging
import sqlite3
import uuid
from collections.abc import Sequence

from fncli import UsageError, cli

from . import config, db
from .core.errors import NotFoundError, ValidationError
from .core.models import OrderUpdate, Task
from .core.types import UNSET, OrderField, Position, Unset
from .events import diff_events, log_event
from .lib import ansi, clock, focus, ordering
from .lib.converters import format_datetime, row_to_task
from .lib.errors import echo, warn
from .lib.format import format_status, format_task
from .lib.ordering import ORDER_FIELDS, Scope
from .lib.parsing import DELETE_SENTINEL, interpret_rename, validate_name

__all__ = [
    "add_task",
    "delete_task",
    "fetch_tasks",
    "get_subtasks",
    "get_task",
    "get_tasks",
    "persist_transition",
    "reorder_tasks",
    "update_task",
]

logger = logging.getLogger(__name__)

# ── domain ───────────────────────────────────────────────────────────────────

_TASK_COLS = "id, name, created_at, parent_task_id, idea_id, milestone_id, note, completed, completed_at, focus_now, focus_today, sort_order, sub_sort_order, today_order, updated_at"

_FOCUS_FILTERS = {
    "now": "focus_now = 1",
    "today": "(focus_today = 1 OR focus_now = 1)",
}


def fetch_tasks(
    conn: sqlite3.Connection, where: str = "1=1", params: tuple[object, ...] = ()
) -> list[Task]:
    cursor = conn.execute(f"SELECT {_TASK_COLS} FROM tasks WHERE {where}", params)  # noqa: S608
    return [row_to_task(row) for row in cursor.fetchall()]


def _clean_note(note: str | None) -> str | None:
    return note.strip() or None if note else None


def _insert(conn: sqlite3.Connection, task: Task) -> None:
    conn.execute(
        f"INSERT INTO tasks ({_TASK_COLS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",  # noqa: S608
        (
            task.id,
            task.name,
            format_datetime(task.created_at),
            task.parent_task_id,
            task.idea_id,
            task.milestone_id,
            task.note,
            task.completed,
            format_datetime(task.completed_at),
            task.focus_now,
            task.focus_today,
            task.sort_order,
            task.sub_sort_order,
            task.today_order,
            format_datetime(task.updated_at),
        ),
    )


def _write(conn: sqlite3.Connection, tasks: Sequence[Task]) -> None:
    # release "now" before granting it; the partial unique index is checked per statement
    for task in sorted(tasks, key=lambda t: t.focus_now):
        conn.execute(
            "UPDATE tasks SET name = ?, parent_task_id = ?, idea_id = ?, milestone_id = ?, note = ?, completed = ?, completed_at = ?, focus_now = ?, focus_today = ?, sort_order = ?, sub_sort_order = ?, today_order = ?, updated_at = ? WHERE id = ?",
            (
                task.name,
                task.parent_task_id,
                task.idea_id,
                task.milestone_id,
                task.note,
                task.completed,
                format_datetime(task.completed_at),
                task.focus_now,
                task.focus_today,
                task.sort_order,
                task.sub_sort_order,
                task.today_order,
                format_datetime(task.updated_at),
                task.id,
            ),
        )


def persist_transition(
    conn: sqlite3.Connection, before: Sequence[Task], after: Sequence[Task]
) -> list[Task]:
    """Re-rank affected scopes, write changed rows, record their activity."""
    settled = ordering.settle(before, after)
    prior = {t.id: t for t in before}
    stamp = clock.now()
    dirty = [dataclasses.replace(t, updated_at=stamp) for t in ordering.changed(before, settled)]
    _write(conn, dirty)
    for task in dirty:
        for event_type, data in diff_events(prior[task.id], task):
            log_event(conn, task.id, task.idea_id, event_type, data)
    stamped = {t.id: t for t in dirty}
    return [stamped.get(t.id, t) for t in settled]


def add_task(
    name: str,
    idea_id: str | None = None,
    parent_task_id: str | None = None,
    milestone_id: str | None = None,
    note: str | None = None,
    position: Position = "bottom",
    focus_today: bool = False,
) -> Task:
    name = validate_name(name)
    with db.get_db() as conn:
        if parent_task_id:
            parent = next(iter(fetch_tasks(conn, "id = ?", (parent_task_id,))), None)
            if not parent:
                raise NotFoundError(f"parent task not found: {parent_task_id}")
            if parent.parent_task_id:
                raise ValidationError("subtasks cannot have subtasks")
            if idea_id is None:
                idea_id = parent.idea_id
            elif idea_id != parent.idea_id:
                raise ValidationError("a subtask belongs to its parent's idea")
        if idea_id and not db.row_exists(conn, "ideas", idea_id):
            raise NotFoundError(f"idea not found: {idea_id}")
        if milestone_id and not db.row_exists(conn, "milestones", milestone_id):
            raise NotFoundError(f"milestone not found: {milestone_id}")

        tasks = fetch_tasks(conn)
        now = clock.now()
        task = Task(
            id=str(uuid.uuid4()),
            name=name,
            created_at=now,
            parent_task_id=parent_task_id,
            idea_id=idea_id,
            milestone_id=milestone_id,
            note=_clean_note(note),
            focus_today=focus_today,
            updated_at=now,
        )
        scope = ordering.home_scope(task)
        order, shifts = ordering.insert_position(
            ordering.incomplete_sequence(tasks, scope), position, scope.field
        )
        task = dataclasses.replace(task, **{scope.field: order})
        if focus_today:
            today_order = len(ordering.incomplete_sequence(tasks, Scope.today())) + 1
            task = dataclasses.replace(task, today_order=today_order)

        shifted = ordering.apply_plan(tasks, shifts, scope.field)
        _write(
            conn, [dataclasses.replace(t, updated_at=now) for t in ordering.changed(tasks, shifted)]
        )
        _insert(conn, task)
        log_event(
            conn, task.id, task.idea_id, "created", {"name": name, "parent_task_id": parent_task_id}
        )
    return task


def get_task(task_id: str) -> Task | None:
    with db.get_db() as conn:
        tasks = fetch_tasks(conn, "id = ?", (task_id,))
    return tasks[0] if tasks else None


def get_tasks(
    idea_id: str | None = None,
    focus: str | None = None,
    include_completed: bool = True,
    sort_field: OrderField | None = None,
    orphans: bool = False,
) -> list[Task]:
    clauses = []
    params: list[object] = []
    if idea_id:
        clauses.append("idea_id = ?")
        params.append(idea_id)
    elif orphans:
        clauses.append("idea_id IS NULL")
    if focus:
        if focus not in _FOCUS_FILTERS:
            raise ValidationError(f"focus filter must be 'now' or 'today', got '{focus}'")
        clauses.append(_FOCUS_FILTERS[focus])
    if not include_completed:
        clauses.append("completed = 0")
    if sort_field is not None and sort_field not in ORDER_FIELDS:
        raise ValidationError(f"unknown sort field '{sort_field}'")
    order_by = f"{sort_field} ASC, " if sort_field else ""
    where = " AND ".join(clauses) or "1=1"
    with db.get_db() as conn:
        return fetch_tasks(
            conn,
            f"{where} ORDER BY completed ASC, {order_by}sort_order ASC, sub_sort_order ASC, created_at DESC",
            tuple(params),
        )


def get_subtasks(parent_task_id: str) -> list[Task]:
    with db.get_db() as conn:
        return fetch_tasks(conn, "parent_task_id = ?", (parent_task_id,))


def update_task(
    task_id: str,
    name: str | None = None,
    note: str | None | Unset = UNSET,
    completed: bool | None = None,
    focus_now: bool | None = None,
    focus_today: bool | None = None,
    milestone_id: str | None | Unset = UNSET,
) -> Task:
    if name is not None:
        name = validate_name(name)
    if (
        name is None
        and note is UNSET
        and completed is None
        and focus_now is None
        and focus_today is None
        and milestone_id is UNSET
    ):
        raise ValidationError("no fields to update")

    with db.get_db() as conn:
        before = fetch_tasks(conn)
        focus.find(before, task_id)
        changes: dict[str, object] = {}
        if name is not None:
            changes["name"] = name
        if note is not UNSET:
            changes["note"] = _clean_note(note)
        if milestone_id is not UNSET:
            if milestone_id and not db.row_exists(conn, "milestones", milestone_id):
                raise NotFoundError(f"milestone not found: {milestone_id}")
            changes["milestone_id"] = milestone_id or None

        after = [dataclasses.replace(t, **changes) if t.id == task_id else t for t in before]
        if completed is not None:
            after = (
                focus.complete(after, task_id, clock.now())
                if completed
                else focus.uncomplete(after, task_id)
            )
        if focus_today is not None:
            after = focus.set_today(after, task_id, focus_today)
        if focus_now is not None:
            after = focus.set_now(after, task_id, focus_now)

        result = persist_transition(conn, before, after)
    return focus.find(result, task_id)


def reorder_tasks(updates: Sequence[OrderUpdate], field: OrderField = "sort_order") -> None:
    """Apply one sibling set's reindex plan atomically: every row or none."""
    if field not in ORDER_FIELDS:
        raise ValidationError(f"unknown order field '{field}'")
    if not updates:
        return
    ids = [u.id for u in updates]
    if len(set(ids)) != len(ids):
        raise ValidationError("reorder batch lists a task twice")
    if any(u.order < 1 for u in updates):
        raise ValidationError("orders start at 1")
    stamp = format_datetime(clock.now())
    with db.get_db() as conn:
        for u in updates:
            cursor = conn.execute(
                f"UPDATE tasks SET {field} = ?, updated_at = ? WHERE id = ?",  # noqa: S608
                (u.order, stamp, u.id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"task not found: {u.id}")
    logger.debug("reordered %d tasks by %s", len(updates), field)


def delete_task(task_id: str, via: str | None = None) -> Task:
    """Delete a task and its subtasks; siblings close ranks."""
    with db.get_db() as conn:
        before = fetch_tasks(conn)
        target = focus.find(before, task_id)
        removed = {task_id} | {t.id for t in before if t.parent_task_id == task_id}
        data: dict[str, object] = {"task_id": task_id, "name": target.name}
        if via:
            data["via"] = via
        log_event(conn, None, target.idea_id, "deleted", data)
        conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        persist_transition(conn, before, [t for t in before if t.id not in removed])
    if via:
        logger.info("task %s deleted via %s", task_id, via)
    return target


# ── cli ──────────────────────────────────────────────────────────────────────


def _open_view_for(task: Task):
    from .store import LocalStore
    from .views import IdeaDetailView, open_view

    return open_view(IdeaDetailView(LocalStore(), task.idea_id))


@cli("studio")
def today() -> None:
    """Today: the task in focus now, the day's queue, and what got done"""
    from .render import render_notices, render_today
    from .store import LocalStore
    from .views import TodayView, open_view

    view = open_view(TodayView(LocalStore()))
    echo(render_today(view))
    if view.notices:
        warn(render_notices(view.notices))


@cli(
    "studio",
    flags={"idea": ["-i", "--idea"], "under": ["-u", "--under"], "note": ["-n", "--note"]},
)
def add(
    name: list[str],
    idea: str | None = None,
    under: str | None = None,
    note: str | None = None,
    top: bool = False,
    bottom: bool = False,
    today: bool = False,
) -> None:
    """Add a task (--idea REF, --under PARENT for a subtask, --top/--bottom, --today)"""
    from .lib.resolve import resolve_idea, resolve_task

    if top and bottom:
        raise UsageError("pick one of --top or --bottom")
    position = "top" if top else "bottom" if bottom else config.get_new_task_position()
    parent = resolve_task(under) if under else None
    idea_id = resolve_idea(idea).id if idea else None
    task = add_task(
        " ".join(name) if name else "",
        idea_id=idea_id,
        parent_task_id=parent.id if parent else None,
        note=note,
        position=position,
        focus_today=today,
    )
    prefix = "  └ " if task.parent_task_id else ""
    echo(f"{prefix}{format_status('□', task.name, task.id)}")


@cli("studio", flags={"idea": ["-i", "--idea"]})
def ls(idea: str | None = None, orphans: bool = False) -> None:
    """List an idea's tasks (--idea REF), the unlinked ones (--orphans), or every open task"""
    from .ideas import get_ideas
    from .lib.resolve import resolve_idea
    from .render import render_idea, render_notices
    from .store import LocalStore
    from .views import IdeaDetailView, open_view

    if idea or orphans:
        view = open_view(IdeaDetailView(LocalStore(), resolve_idea(idea).id if idea else None))
        if idea:
            echo(render_idea(view))
        else:
            lines = [format_task(t) for t in view.top_level()]
            echo("\n".join(lines) if lines else "no unlinked tasks")
        if view.notices:
            warn(render_notices(view.notices))
        return

    open_tasks = get_tasks(include_completed=False)
    if not open_tasks:
        echo("no open tasks")
        return
    titles = {i.id: i.title for i in get_ideas()}
    groups: dict[str | None, list[Task]] = {}
    for t in open_tasks:
        if not t.parent_task_id:
            groups.setdefault(t.idea_id, []).append(t)
    for idea_id, members in groups.items():
        echo(ansi.bold(titles.get(idea_id, "unlinked") if idea_id else "unlinked"))
        for t in ordering.sorted_siblings(members, Scope.idea(idea_id)):
            echo(f"  {format_task(t)}")


@cli("studio")
def done(ref: list[str]) -> None:
    """Toggle a task's completion"""
    from .lib.resolve import resolve_task
    from .render import exit_on_notices

    task = resolve_task(" ".join(ref))
    view = _open_view_for(task)
    view.toggle_complete(task.id)
    exit_on_notices(view)
    updated = view.task(task.id) or task
    echo(format_status(ansi.green("✓") if updated.completed else "□", updated.name, updated.id))


@cli("studio")
def now(ref: list[str]) -> None:
    """Toggle focus now (at most one task holds it)"""
    from .lib.resolve import resolve_task
    from .render import exit_on_notices

    task = resolve_task(" ".join(ref))
    view = _open_view_for(task)
    view.toggle_now(task.id)
    exit_on_notices(view)
    updated = view.task(task.id) or task
    echo(format_status(ansi.bold("⦿") if updated.focus_now else "□", updated.name, updated.id))


@cli("studio")
def pin(ref: list[str]) -> None:
    """Toggle a task in or out of Today"""
    from .lib.resolve import resolve_task
    from .render import exit_on_notices

    task = resolve_task(" ".join(ref))
    view = _open_view_for(task)
    view.toggle_today(task.id)
    exit_on_notices(view)
    updated = view.task(task.id) or task
    echo(format_status(ansi.yellow("☀") if updated.focus_today else "□", updated.name, updated.id))


@cli("studio")
def unpin(ref: list[str]) -> None:
    """Remove a task from Today (a task in focus now stays visible)"""
    from .lib.resolve import resolve_task
    from .render import exit_on_notices
    from .store import LocalStore
    from .views import TodayView, open_view

    task = resolve_task(" ".join(ref))
    if not task.focus_today:
        raise UsageError(f"'{task.name}' is not in today")
    view = open_view(TodayView(LocalStore()))
    view.remove_from_today(task.id)
    exit_on_notices(view)
    echo(format_status("□", task.name, task.id))


@cli("studio")
def rename(ref: str, name: list[str]) -> None:
    """Rename a task ('xxx' deletes it)"""
    from .lib.resolve import resolve_task
    from .render import exit_on_notices

    task = resolve_task(ref)
    proposed = " ".join(name)
    intent = interpret_rename(task.name, proposed)
    if intent.action == "noop":
        echo(format_status("□", task.name, task.id))
        return
    view = _open_view_for(task)
    view.rename(task.id, proposed)
    exit_on_notices(view)
    if intent.action == "delete":
        warn(f"'{DELETE_SENTINEL}' deletes: removed '{task.name}'")
        echo(f"✗ {task.name}")
        return
    echo(f"→ {intent.name}")


@cli("studio", flags={"text": []})
def note(ref: str, text: list[str] | None = None) -> None:
    """Set a task's note (no text clears it)"""
    from .lib.resolve import resolve_task
    from .render import exit_on_notices

    task = resolve_task(ref)
    view = _open_view_for(task)
    view.set_note(task.id, " ".join(text) if text else None)
    exit_on_notices(view)
    echo(format_status("□", task.name, task.id))


@cli("studio")
def rm(ref: list[str]) -> None:
    """Delete a task and its subtasks"""
    from .lib.resolve import resolve_task
    from .render import exit_on_notices

    task = resolve_task(" ".join(ref))
    view = _open_view_for(task)
    view.delete_task(task.id)
    exit_on_notices(view)
    echo(f"✗ {task.name}")


@cli("studio")
def move(ref: str, position: int, today: bool = False) -> None:
    """Move a task to a 1-based position in its list (--today for the Today queue)"""
    from .lib.resolve import resolve_task
    from .render import exit_on_notices
    from .store import LocalStore
    from .views import TodayView, open_view

    task = resolve_task(ref)
    if task.completed:
        raise UsageError(f"'{task.name}' is done; only open tasks can be moved")
    if today:
        view = open_view(TodayView(LocalStore()))
        scope = Scope.today()
    else:
        view = _open_view_for(task)
        scope = ordering.home_scope(task)
    drag = view.drag_for(scope)
    sequence = [t.id for t in drag.sequence()]
    if task.id not in sequence:
        raise UsageError(f"'{task.name}' is not in that list")
    drag.move(sequence.index(task.id), position - 1)
    exit_on_notices(view)
    echo(format_status(f"{position}.", task.name, task.id))


@cli("studio", flags={"milestone": []})
def link(ref: str, milestone: str | None = None, clear: bool = False) -> None:
    """Link a task to a milestone (--clear unlinks)"""
    from .lib.resolve import resolve_milestone, resolve_task
    from .render import exit_on_notices

    if not milestone and not clear:
        raise UsageError("Usage: studio link <task> <milestone>  or  studio link <task> --clear")
    task = resolve_task(ref)
    target = None if clear else resolve_milestone(milestone or "")
    view = _open_view_for(task)
    view.assign_milestone(task.id, target.id if target else None)
    exit_on_notices(view)
    label = f"→ {target.name}" if target else "unlinked"
    echo(format_status("□", f"{task.name} {ansi.muted(label)}", task.id))
