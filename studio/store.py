"""The task-store contract the views talk to, and its sqlite-backed implementation."""

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

from . import ideas, milestones, tasks
from .core.models import Idea, Milestone, OrderUpdate, Task
from .core.types import UNSET, OrderField, Position, Unset

__all__ = ["LocalStore", "TaskStore"]


class TaskStore(Protocol):
    def list_tasks(
        self,
        idea_id: str | None = None,
        focus: str | None = None,
        include_completed: bool = True,
        sort_field: OrderField | None = None,
        orphans: bool = False,
    ) -> list[Task]: ...

    def create_task(
        self,
        name: str,
        idea_id: str | None = None,
        parent_task_id: str | None = None,
        milestone_id: str | None = None,
        note: str | None = None,
        position: Position = "bottom",
        focus_today: bool = False,
    ) -> Task: ...

    def update_task(
        self,
        task_id: str,
        name: str | None = None,
        note: str | None | Unset = UNSET,
        completed: bool | None = None,
        focus_now: bool | None = None,
        focus_today: bool | None = None,
        milestone_id: str | None | Unset = UNSET,
    ) -> Task: ...

    def reorder_tasks(self, updates: Sequence[OrderUpdate], field: OrderField) -> None: ...

    def delete_task(self, task_id: str, via: str | None = None) -> None: ...

    def list_ideas(self) -> list[Idea]: ...

    def get_idea(self, idea_id: str) -> Idea | None: ...

    def update_idea(
        self,
        idea_id: str,
        title: str | None = None,
        summary: str | None | Unset = UNSET,
        milestone_id: str | None | Unset = UNSET,
        project_id: str | None | Unset = UNSET,
    ) -> Idea: ...

    def list_milestones(self) -> list[Milestone]: ...

    def create_milestone(
        self, name: str, target_date: datetime | None = None, notes: str | None = None
    ) -> Milestone: ...

    def update_milestone(
        self,
        milestone_id: str,
        name: str | None = None,
        target_date: datetime | None | Unset = UNSET,
        notes: str | None | Unset = UNSET,
        completed: bool | None = None,
    ) -> Milestone: ...

    def delete_milestone(self, milestone_id: str) -> None: ...


class LocalStore:
    """TaskStore over the local sqlite database."""

    def list_tasks(
        self,
        idea_id: str | None = None,
        focus: str | None = None,
        include_completed: bool = True,
        sort_field: OrderField | None = None,
        orphans: bool = False,
    ) -> list[Task]:
        return tasks.get_tasks(
            idea_id=idea_id,
            focus=focus,
            include_completed=include_completed,
            sort_field=sort_field,
            orphans=orphans,
        )

    def create_task(
        self,
        name: str,
        idea_id: str | None = None,
        parent_task_id: str | None = None,
        milestone_id: str | None = None,
        note: str | None = None,
        position: Position = "bottom",
        focus_today: bool = False,
    ) -> Task:
        return tasks.add_task(
            name,
            idea_id=idea_id,
            parent_task_id=parent_task_id,
            milestone_id=milestone_id,
            note=note,
            position=position,
            focus_today=focus_today,
        )

    def update_task(
        self,
        task_id: str,
        name: str | None = None,
        note: str | None | Unset = UNSET,
        completed: bool | None = None,
        focus_now: bool | None = None,
        focus_today: bool | None = None,
        milestone_id: str | None | Unset = UNSET,
    ) -> Task:
        return tasks.update_task(
            task_id,
            name=name,
            note=note,
            completed=completed,
            focus_now=focus_now,
            focus_today=focus_today,
            milestone_id=milestone_id,
        )

    def reorder_tasks(self, updates: Sequence[OrderUpdate], field: OrderField) -> None:
        tasks.reorder_tasks(updates, field)

    def delete_task(self, task_id: str, via: str | None = None) -> None:
        tasks.delete_task(task_id, via=via)

    def list_ideas(self) -> list[Idea]:
        return ideas.get_ideas()

    def get_idea(self, idea_id: str) -> Idea | None:
        return ideas.get_idea(idea_id)

    def update_idea(
        self,
        idea_id: str,
        title: str | None = None,
        summary: str | None | Unset = UNSET,
        milestone_id: str | None | Unset = UNSET,
        project_id: str | None | Unset = UNSET,
    ) -> Idea:
        return ideas.update_idea(
            idea_id, title=title, summary=summary, milestone_id=milestone_id, project_id=project_id
        )

    def list_milestones(self) -> list[Milestone]:
        return milestones.get_milestones()

    def create_milestone(
        self, name: str, target_date: datetime | None = None, notes: str | None = None
    ) -> Milestone:
        return milestones.create_milestone(name, target_date=target_date, notes=notes)

    def update_milestone(
        self,
        milestone_id: str,
        name: str | None = None,
        target_date: datetime | None | Unset = UNSET,
        notes: str | None | Unset = UNSET,
        completed: bool | None = None,
    ) -> Milestone:
        return milestones.update_milestone(
            milestone_id, name=name, target_date=target_date, notes=notes, completed=completed
        )

    def delete_milestone(self, milestone_id: str) -> None:
        milestones.delete_milestone(milestone_id)
