import dataclasses
from datetime import datetime
from typing import Any


@dataclasses.dataclass(frozen=True)
class Task:
    id: str
    name: str
    created_at: datetime
    parent_task_id: str | None = None
    idea_id: str | None = None
    milestone_id: str | None = None
    note: str | None = None
    completed: bool = False
    completed_at: datetime | None = None
    focus_now: bool = False
    focus_today: bool = False
    sort_order: int = 0
    sub_sort_order: int = 0
    today_order: int = 0
    updated_at: datetime | None = None

    @property
    def is_subtask(self) -> bool:
        return self.parent_task_id is not None


@dataclasses.dataclass(frozen=True)
class Idea:
    id: str
    title: str
    created_at: datetime
    summary: str | None = None
    milestone_id: str | None = None
    project_id: str | None = None
    sort_order: int = 0
    updated_at: datetime | None = None
    task_count: int = 0
    completed_task_count: int = 0


@dataclasses.dataclass(frozen=True)
class Milestone:
    id: str
    name: str
    created_at: datetime
    target_date: datetime | None = None
    notes: str | None = None
    completed: bool = False
    completed_at: datetime | None = None
    sort_order: int = 0
    updated_at: datetime | None = None
    task_count: int = 0
    completed_task_count: int = 0


@dataclasses.dataclass(frozen=True)
class TaskEvent:
    id: str
    task_id: str | None
    idea_id: str | None
    event_type: str
    created_at: datetime
    event_data: dict[str, Any] = dataclasses.field(default_factory=dict, hash=False)


@dataclasses.dataclass(frozen=True)
class OrderUpdate:
    id: str
    order: int
