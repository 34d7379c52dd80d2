import json
from datetime import date, datetime
from typing import Any, cast

from studio.core.models import Idea, Milestone, Task, TaskEvent

TaskRow = tuple[object, ...]
IdeaRow = tuple[object, ...]
MilestoneRow = tuple[object, ...]
EventRow = tuple[object, ...]


def _parse_datetime(val) -> datetime:
    """Parse a datetime value that may be str or numeric timestamp."""
    if isinstance(val, (int, float)):
        return datetime.fromtimestamp(val)
    if isinstance(val, str) and val:
        try:
            return datetime.fromisoformat(val)
        except ValueError:
            return datetime.combine(date.fromisoformat(val), datetime.min.time())
    return datetime.min


def _parse_datetime_optional(val) -> datetime | None:
    """Parse an optional datetime value that may be str or numeric timestamp."""
    if isinstance(val, str) and val:
        try:
            return datetime.fromisoformat(val)
        except ValueError:
            return datetime.combine(date.fromisoformat(val), datetime.min.time())
    elif isinstance(val, (int, float)):
        return datetime.fromtimestamp(val)
    return None


def _opt_str(val) -> str | None:
    return cast(str, val) if val is not None else None


def format_datetime(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


def row_to_task(row: TaskRow) -> Task:
    """
    Converts a raw database row from tasks table into a Task object.
    Expected row format: (id, name, created_at, parent_task_id, idea_id, milestone_id, note,
    completed, completed_at, focus_now, focus_today, sort_order, sub_sort_order, today_order,
    updated_at)
    """
    return Task(
        id=cast(str, row[0]),
        name=cast(str, row[1]),
        created_at=_parse_datetime(row[2]),
        parent_task_id=_opt_str(row[3]),
        idea_id=_opt_str(row[4]),
        milestone_id=_opt_str(row[5]),
        note=_opt_str(row[6]),
        completed=bool(row[7]),
        completed_at=_parse_datetime_optional(row[8]),
        focus_now=bool(row[9]),
        focus_today=bool(row[10]),
        sort_order=int(cast(int, row[11] or 0)),
        sub_sort_order=int(cast(int, row[12] or 0)),
        today_order=int(cast(int, row[13] or 0)),
        updated_at=_parse_datetime_optional(row[14]) if len(row) > 14 else None,
    )


def row_to_idea(row: IdeaRow) -> Idea:
    """
    Converts a raw row into an Idea.
    Expected row format: (id, title, created_at, summary, milestone_id, project_id, sort_order,
    updated_at[, task_count, completed_task_count])
    """
    return Idea(
        id=cast(str, row[0]),
        title=cast(str, row[1]),
        created_at=_parse_datetime(row[2]),
        summary=_opt_str(row[3]),
        milestone_id=_opt_str(row[4]),
        project_id=_opt_str(row[5]),
        sort_order=int(cast(int, row[6] or 0)),
        updated_at=_parse_datetime_optional(row[7]),
        task_count=int(cast(int, row[8] or 0)) if len(row) > 8 else 0,
        completed_task_count=int(cast(int, row[9] or 0)) if len(row) > 9 else 0,
    )


def row_to_milestone(row: MilestoneRow) -> Milestone:
    """
    Converts a raw row into a Milestone.
    Expected row format: (id, name, created_at, target_date, notes, completed, completed_at,
    sort_order, updated_at[, task_count, completed_task_count])
    """
    return Milestone(
        id=cast(str, row[0]),
        name=cast(str, row[1]),
        created_at=_parse_datetime(row[2]),
        target_date=_parse_datetime_optional(row[3]),
        notes=_opt_str(row[4]),
        completed=bool(row[5]),
        completed_at=_parse_datetime_optional(row[6]),
        sort_order=int(cast(int, row[7] or 0)),
        updated_at=_parse_datetime_optional(row[8]),
        task_count=int(cast(int, row[9] or 0)) if len(row) > 9 else 0,
        completed_task_count=int(cast(int, row[10] or 0)) if len(row) > 10 else 0,
    )


def row_to_event(row: EventRow) -> TaskEvent:
    data: dict[str, Any] = {}
    if isinstance(row[4], str) and row[4]:
        try:
            loaded = json.loads(row[4])
        except json.JSONDecodeError:
            loaded = {}
        data = loaded if isinstance(loaded, dict) else {}
    return TaskEvent(
        id=cast(str, row[0]),
        task_id=_opt_str(row[1]),
        idea_id=_opt_str(row[2]),
        event_type=cast(str, row[3]),
        event_data=data,
        created_at=_parse_datetime(row[5]),
    )
