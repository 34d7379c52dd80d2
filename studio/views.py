"""Cached views over the task store.

Each view owns a cache it mutates optimistically, then confirms with one store call. A
rejected single-field edit puts the pre-edit cache back; a rejected reorder, create or
delete (and any not-found) discards the cache and re-fetches it. Store failures become
notices on the view. Only ValidationError escapes a view command, and it is raised before
the store is called.
"""

import dataclasses
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Literal, TypeVar

from . import config
from .core.errors import ConflictError, NotFoundError, StoreError, ValidationError
from .core.models import Idea, Milestone, Task
from .core.types import UNSET, Position, Unset
from .lib import clock, focus, ordering
from .lib.countdown import TimeLeft, Urgency, classify, daily_time_left, time_left
from .lib.ordering import Scope
from .lib.parsing import interpret_rename, validate_name
from .store import TaskStore

__all__ = [
    "DragReorder",
    "IdeaDetailView",
    "MilestonesView",
    "Notice",
    "TodayView",
    "open_view",
]

logger = logging.getLogger(__name__)

_FAILURES = (StoreError, ConflictError, NotFoundError)

T = TypeVar("T")


@dataclasses.dataclass(frozen=True)
class Notice:
    message: str
    kind: Literal["error", "info"] = "error"


class _View:
    def __init__(self, store: TaskStore):
        self.store = store
        self.notices: list[Notice] = []
        self.generation = 0
        self.closed = False
        self._in_flight: set[str] = set()

    def _fetch(self) -> object:
        raise NotImplementedError

    def _apply(self, snapshot) -> None:
        raise NotImplementedError

    def _current(self, generation: int) -> bool:
        return not self.closed and generation == self.generation

    def _notify(self, message: str, kind: Literal["error", "info"] = "error") -> None:
        self.notices.append(Notice(message, kind))

    def dismiss(self, index: int | None = None) -> None:
        if index is None:
            self.notices.clear()
        elif 0 <= index < len(self.notices):
            del self.notices[index]

    def close(self) -> None:
        """Stop applying responses. Anything still in flight is discarded when it lands."""
        self.closed = True
        self.generation += 1

    def refresh(self) -> bool:
        self.generation += 1
        generation = self.generation
        try:
            snapshot = self._fetch()
        except _FAILURES as e:
            if self._current(generation):
                logger.warning("%s refresh failed: %s", type(self).__name__, e)
                self._notify(f"couldn't load: {e}")
            return False
        if not self._current(generation):
            logger.debug("%s discarded a stale refresh", type(self).__name__)
            return False
        self._apply(snapshot)
        return True

    def _claim(self, key: str) -> bool:
        if key in self._in_flight:
            logger.debug("%s ignored %s while a request for it is in flight", type(self).__name__, key)
            return False
        return True

    def _commit(
        self,
        key: str,
        action: str,
        remote: Callable[[], T],
        restore: Callable[[], None] | None = None,
    ) -> tuple[bool, T | None]:
        """Confirm an optimistic change with one store call.

        On a store failure ``restore`` puts the pre-edit state back; without it, the cache is
        re-fetched instead. A target that vanished, or a change the store rejects as invalid,
        means the cache is stale, so it is re-fetched too. A response that lands after the
        view was closed or refreshed is dropped.
        """
        generation = self.generation
        self._in_flight.add(key)
        try:
            result = remote()
        except (NotFoundError, ValidationError) as e:
            if self._current(generation):
                logger.info("%s: %s, re-syncing", action, e)
                self._notify(f"{action} failed: {e}")
                self.refresh()
            return False, None
        except (StoreError, ConflictError) as e:
            if self._current(generation):
                logger.warning("%s failed: %s", action, e)
                self._notify(f"{action} failed: {e}")
                if restore is not None:
                    restore()
                else:
                    self.refresh()
            return False, None
        finally:
            self._in_flight.discard(key)
        if not self._current(generation):
            logger.debug("discarded stale response to %s", action)
            return False, None
        return True, result


class _TaskView(_View):
    """A view whose cache is a list of tasks."""

    def __init__(self, store: TaskStore):
        super().__init__(store)
        self.tasks: list[Task] = []
        self._drags: dict[Scope, DragReorder] = {}

    def _owns(self, scope: Scope) -> bool:
        raise NotImplementedError

    def drag_for(self, scope: Scope) -> "DragReorder":
        if scope not in self._drags:
            self._drags[scope] = DragReorder(self, scope)
        return self._drags[scope]

    def task(self, task_id: str) -> Task | None:
        return next((t for t in self.tasks if t.id == task_id), None)

    def _merge(self, task: Task) -> None:
        self.tasks = [task if t.id == task.id else t for t in self.tasks]

    def _edit(
        self,
        task_id: str,
        action: str,
        local: Callable[[list[Task]], list[Task]],
        remote: Callable[[], Task],
    ) -> bool:
        if not self._claim(task_id):
            return False
        if self.task(task_id) is None:
            self._notify(f"{action} failed: task not found")
            self.refresh()
            return False
        previous = self.tasks
        self.tasks = ordering.settle(previous, local(previous), within=self._owns)

        def restore() -> None:
            self.tasks = previous

        ok, confirmed = self._commit(task_id, action, remote, restore)
        if ok and confirmed is not None:
            self._merge(confirmed)
        return ok

    def toggle_complete(self, task_id: str) -> bool:
        current = self.task(task_id)
        done = not current.completed if current else True
        return self._edit(
            task_id,
            "complete" if done else "reopen",
            lambda tasks: focus.complete(tasks, task_id, clock.now())
            if done
            else focus.uncomplete(tasks, task_id),
            lambda: self.store.update_task(task_id, completed=done),
        )

    def toggle_now(self, task_id: str) -> bool:
        current = self.task(task_id)
        on = not current.focus_now if current else True
        if on and current and current.completed:
            raise ValidationError("a completed task cannot be in focus now")
        return self._edit(
            task_id,
            "focus" if on else "unfocus",
            lambda tasks: focus.set_now(tasks, task_id, on),
            lambda: self.store.update_task(task_id, focus_now=on),
        )

    def set_today(self, task_id: str, on: bool) -> bool:
        return self._edit(
            task_id,
            "add to today" if on else "remove from today",
            lambda tasks: focus.set_today(tasks, task_id, on),
            lambda: self.store.update_task(task_id, focus_today=on),
        )

    def toggle_today(self, task_id: str) -> bool:
        current = self.task(task_id)
        return self.set_today(task_id, not current.focus_today if current else True)

    def set_note(self, task_id: str, note: str | None) -> bool:
        cleaned = note.strip() or None if note else None
        return self._edit(
            task_id,
            "save note",
            lambda tasks: [dataclasses.replace(t, note=cleaned) if t.id == task_id else t for t in tasks],
            lambda: self.store.update_task(task_id, note=cleaned),
        )

    def assign_milestone(self, task_id: str, milestone_id: str | None) -> bool:
        return self._edit(
            task_id,
            "link milestone",
            lambda tasks: [
                dataclasses.replace(t, milestone_id=milestone_id) if t.id == task_id else t
                for t in tasks
            ],
            lambda: self.store.update_task(task_id, milestone_id=milestone_id),
        )

    def rename(self, task_id: str, proposed: str | None) -> bool:
        """Commit an inline name edit. Blank keeps the old name; 'xxx' deletes the task."""
        current = self.task(task_id)
        if current is None:
            self._notify("rename failed: task not found")
            self.refresh()
            return False
        intent = interpret_rename(current.name, proposed)
        if intent.action == "noop":
            return True
        if intent.action == "delete":
            logger.warning("rename of task %s to the delete sentinel removes it", task_id)
            return self.delete_task(task_id, via="rename")
        name = intent.name or current.name
        return self._edit(
            task_id,
            "rename",
            lambda tasks: [dataclasses.replace(t, name=name) if t.id == task_id else t for t in tasks],
            lambda: self.store.update_task(task_id, name=name),
        )

    def delete_task(self, task_id: str, via: str | None = None) -> bool:
        if not self._claim(task_id):
            return False
        removed = {task_id} | {t.id for t in self.tasks if t.parent_task_id == task_id}
        previous = self.tasks
        self.tasks = ordering.settle(
            previous, [t for t in previous if t.id not in removed], within=self._owns
        )
        ok, _ = self._commit(task_id, "delete", lambda: self.store.delete_task(task_id, via=via))
        return ok


class DragReorder:
    """Drag ordering for one list: an idea's tasks, one parent's subtasks, or Today.

    Only the incomplete members are draggable; indices address that sequence.
    """

    def __init__(self, view: _TaskView, scope: Scope):
        self.view = view
        self.scope = scope

    @property
    def key(self) -> str:
        return f"reorder:{self.scope.kind}:{self.scope.key}"

    def sequence(self) -> list[Task]:
        return ordering.incomplete_sequence(self.view.tasks, self.scope)

    def move(self, from_index: int, to_index: int) -> bool:
        view = self.view
        _, plan = ordering.reorder(self.sequence(), from_index, to_index, self.scope.field)
        if not plan:
            return True
        if not view._claim(self.key):
            return False
        previous = view.tasks
        view.tasks = ordering.apply_plan(previous, plan, self.scope.field)

        def rollback() -> None:
            view.tasks = previous
            view.refresh()

        ok, _ = view._commit(
            self.key,
            "reorder",
            lambda: view.store.reorder_tasks(plan, self.scope.field),
            rollback,
        )
        return ok


class IdeaDetailView(_TaskView):
    """One idea with its tasks, their subtasks, and the milestones they can link to.

    With no idea id the view holds the unlinked tasks instead.
    """

    def __init__(self, store: TaskStore, idea_id: str | None):
        super().__init__(store)
        self.idea_id = idea_id
        self.idea: Idea | None = None
        self.milestones: list[Milestone] = []

    def _fetch(self) -> tuple[Idea | None, list[Task], list[Milestone]]:
        if self.idea_id is None:
            return None, self.store.list_tasks(orphans=True), self.store.list_milestones()
        idea = self.store.get_idea(self.idea_id)
        if idea is None:
            raise NotFoundError(f"idea not found: {self.idea_id}")
        return idea, self.store.list_tasks(idea_id=self.idea_id), self.store.list_milestones()

    def _apply(self, snapshot: tuple[Idea | None, list[Task], list[Milestone]]) -> None:
        self.idea, self.tasks, self.milestones = snapshot

    def _owns(self, scope: Scope) -> bool:
        return scope == Scope.idea(self.idea_id) or scope.kind == "subtasks"

    def top_level(self) -> list[Task]:
        return ordering.sorted_siblings(self.tasks, Scope.idea(self.idea_id))

    def subtasks(self, parent_task_id: str) -> list[Task]:
        return ordering.sorted_siblings(self.tasks, Scope.subtasks(parent_task_id))

    def progress(self) -> int:
        top = self.top_level()
        if not top:
            return 0
        return round(sum(t.completed for t in top) / len(top) * 100)

    def milestone(self, milestone_id: str | None) -> Milestone | None:
        return next((m for m in self.milestones if m.id == milestone_id), None)

    def drag_tasks(self, from_index: int, to_index: int) -> bool:
        return self.drag_for(Scope.idea(self.idea_id)).move(from_index, to_index)

    def drag_subtasks(self, parent_task_id: str, from_index: int, to_index: int) -> bool:
        return self.drag_for(Scope.subtasks(parent_task_id)).move(from_index, to_index)

    def add_task(
        self,
        name: str,
        position: Position = "bottom",
        parent_task_id: str | None = None,
        focus_today: bool = False,
    ) -> Task | None:
        name = validate_name(name)
        if position not in ("top", "bottom"):
            raise ValidationError(f"position must be 'top' or 'bottom', got '{position}'")
        if parent_task_id:
            parent = self.task(parent_task_id)
            if parent is None:
                self._notify("add task failed: parent task not found")
                self.refresh()
                return None
            if parent.parent_task_id:
                raise ValidationError("subtasks cannot have subtasks")
        key = f"create:{parent_task_id or self.idea_id}"
        if not self._claim(key):
            return None
        ok, task = self._commit(
            key,
            "add task",
            lambda: self.store.create_task(
                name,
                idea_id=self.idea_id,
                parent_task_id=parent_task_id,
                position=position,
                focus_today=focus_today,
            ),
        )
        if not ok or task is None:
            return None
        scope = ordering.home_scope(task)
        _, shifts = ordering.insert_position(
            ordering.incomplete_sequence(self.tasks, scope), position, scope.field
        )
        self.tasks = [*ordering.apply_plan(self.tasks, shifts, scope.field), task]
        return task

    def add_subtask(self, parent_task_id: str, name: str, position: Position = "bottom") -> Task | None:
        return self.add_task(name, position=position, parent_task_id=parent_task_id)

    def _edit_idea(self, action: str, remote: Callable[[str], Idea], **changes) -> bool:
        if self.idea is None:
            self._notify(f"{action} failed: idea not loaded")
            return False
        previous = self.idea
        key = f"idea:{previous.id}"
        if not self._claim(key):
            return False
        self.idea = dataclasses.replace(previous, **changes)

        def restore() -> None:
            self.idea = previous

        ok, confirmed = self._commit(key, action, lambda: remote(previous.id), restore)
        if ok and confirmed is not None:
            self.idea = confirmed
        return ok

    def set_title(self, title: str) -> bool:
        title = validate_name(title, "title")
        return self._edit_idea(
            "rename idea", lambda idea_id: self.store.update_idea(idea_id, title=title), title=title
        )

    def set_summary(self, summary: str | None) -> bool:
        cleaned = summary.strip() or None if summary else None
        return self._edit_idea(
            "save summary",
            lambda idea_id: self.store.update_idea(idea_id, summary=cleaned),
            summary=cleaned,
        )

    def assign_idea_milestone(self, milestone_id: str | None) -> bool:
        return self._edit_idea(
            "link milestone",
            lambda idea_id: self.store.update_idea(idea_id, milestone_id=milestone_id),
            milestone_id=milestone_id,
        )


class TodayView(_TaskView):
    """Tasks triaged into Today plus the task in focus now, across every idea."""

    def _fetch(self) -> list[Task]:
        return self.store.list_tasks(focus="today")

    def _apply(self, snapshot: list[Task]) -> None:
        self.tasks = snapshot

    def _owns(self, scope: Scope) -> bool:
        return scope.kind == "today"

    def spotlight(self) -> Task | None:
        now = focus.now_task(self.tasks)
        return now if now and not now.completed else None

    def queue(self) -> list[Task]:
        return ordering.incomplete_sequence(self.tasks, Scope.today())

    def completed_today(self, now: datetime | None = None) -> list[Task]:
        day = (now or clock.now()).date()
        done = [
            t
            for t in self.tasks
            if t.completed and focus.in_today(t) and t.completed_at and t.completed_at.date() == day
        ]
        return sorted(done, key=lambda t: t.completed_at or datetime.min, reverse=True)

    def visible(self, now: datetime | None = None) -> list[Task]:
        spotlight = self.spotlight()
        return [*([spotlight] if spotlight else []), *self.queue(), *self.completed_today(now)]

    def remove_from_today(self, task_id: str) -> bool:
        return self.set_today(task_id, False)

    def drag(self, from_index: int, to_index: int) -> bool:
        return self.drag_for(Scope.today()).move(from_index, to_index)

    def daily_countdown(self, now: datetime | None = None) -> TimeLeft:
        return daily_time_left(config.get_daily_target_time(), now)

    def daily_urgency(self, now: datetime | None = None) -> Urgency:
        return classify(self.daily_countdown(now), config.get_urgency_thresholds())


def _milestone_key(milestone: Milestone) -> tuple[bool, datetime, int, float]:
    return (
        milestone.target_date is None,
        milestone.target_date or datetime.max,
        milestone.sort_order,
        -milestone.created_at.timestamp(),
    )


class MilestonesView(_View):
    def __init__(self, store: TaskStore):
        super().__init__(store)
        self.milestones: list[Milestone] = []

    def _fetch(self) -> list[Milestone]:
        return self.store.list_milestones()

    def _apply(self, snapshot: list[Milestone]) -> None:
        self.milestones = snapshot

    def ordered(self) -> list[Milestone]:
        pending = sorted((m for m in self.milestones if not m.completed), key=_milestone_key)
        done = sorted((m for m in self.milestones if m.completed), key=_milestone_key)
        return pending + done

    def milestone(self, milestone_id: str) -> Milestone | None:
        return next((m for m in self.milestones if m.id == milestone_id), None)

    def countdown(
        self, milestone_id: str, now: datetime | None = None
    ) -> tuple[TimeLeft | None, Urgency] | None:
        m = self.milestone(milestone_id)
        if m is None or m.target_date is None:
            return None
        left = time_left(m.target_date, now)
        return left, classify(left, config.get_urgency_thresholds())

    @staticmethod
    def progress(milestone: Milestone) -> int:
        if not milestone.task_count:
            return 0
        return round(milestone.completed_task_count / milestone.task_count * 100)

    def create(
        self, name: str, target_date: datetime | None = None, notes: str | None = None
    ) -> Milestone | None:
        name = validate_name(name)
        if not self._claim("create"):
            return None
        ok, created = self._commit(
            "create",
            "add milestone",
            lambda: self.store.create_milestone(name, target_date=target_date, notes=notes),
        )
        if ok and created is not None:
            self.milestones = [*self.milestones, created]
        return created if ok else None

    def _edit(self, milestone_id: str, action: str, remote: Callable[[], Milestone], **changes) -> bool:
        current = self.milestone(milestone_id)
        if current is None:
            self._notify(f"{action} failed: milestone not found")
            self.refresh()
            return False
        if not self._claim(milestone_id):
            return False
        previous = self.milestones
        self.milestones = [
            dataclasses.replace(m, **changes) if m.id == milestone_id else m for m in previous
        ]

        def restore() -> None:
            self.milestones = previous

        ok, confirmed = self._commit(milestone_id, action, remote, restore)
        if ok and confirmed is not None:
            self.milestones = [confirmed if m.id == milestone_id else m for m in self.milestones]
        return ok

    def update(
        self,
        milestone_id: str,
        name: str | None = None,
        target_date: datetime | None | Unset = UNSET,
        notes: str | None | Unset = UNSET,
    ) -> bool:
        changes: dict[str, object] = {}
        if name is not None:
            name = validate_name(name)
            changes["name"] = name
        if target_date is not UNSET:
            changes["target_date"] = target_date
        if notes is not UNSET:
            notes = notes.strip() or None if notes else None
            changes["notes"] = notes
        if not changes:
            raise ValidationError("no fields to update")
        return self._edit(
            milestone_id,
            "update milestone",
            lambda: self.store.update_milestone(
                milestone_id, name=name, target_date=target_date, notes=notes
            ),
            **changes,
        )

    def toggle_complete(self, milestone_id: str) -> bool:
        current = self.milestone(milestone_id)
        done = not current.completed if current else True
        return self._edit(
            milestone_id,
            "complete milestone" if done else "reopen milestone",
            lambda: self.store.update_milestone(milestone_id, completed=done),
            completed=done,
            completed_at=clock.now() if done else None,
        )

    def delete(self, milestone_id: str) -> bool:
        if not self._claim(milestone_id):
            return False
        self.milestones = [m for m in self.milestones if m.id != milestone_id]
        ok, _ = self._commit(
            milestone_id, "delete milestone", lambda: self.store.delete_milestone(milestone_id)
        )
        return ok


V = TypeVar("V", bound=_View)


def open_view(view: V) -> V:
    """Load a view's cache; a failed first load leaves a notice and an empty cache."""
    view.refresh()
    return view

