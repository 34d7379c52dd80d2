from datetime import datetime, timedelta

import pytest

from studio.core.errors import ConflictError, NotFoundError, StoreError, ValidationError
from studio.ideas import create_idea
from studio.lib.countdown import Urgency
from studio.lib.ordering import Scope, is_dense
from studio.milestones import create_milestone
from studio.store import LocalStore
from studio.tasks import add_task, delete_task, get_task, get_tasks, update_task
from studio.views import IdeaDetailView, MilestonesView, TodayView, open_view


class FlakyStore(LocalStore):
    """LocalStore that fails chosen calls once, optionally after a side effect."""

    def __init__(self):
        self.failures: dict[str, Exception] = {}
        self.before_failure = None
        self.calls: list[str] = []

    def fail(self, method: str, error: Exception, before=None) -> None:
        self.failures[method] = error
        self.before_failure = before

    def _maybe_fail(self, method: str) -> None:
        self.calls.append(method)
        error = self.failures.pop(method, None)
        if error is None:
            return
        if self.before_failure:
            self.before_failure()
        raise error

    def list_tasks(self, *args, **kwargs):
        self._maybe_fail("list_tasks")
        return super().list_tasks(*args, **kwargs)

    def create_task(self, *args, **kwargs):
        self._maybe_fail("create_task")
        return super().create_task(*args, **kwargs)

    def update_task(self, *args, **kwargs):
        self._maybe_fail("update_task")
        return super().update_task(*args, **kwargs)

    def reorder_tasks(self, *args, **kwargs):
        self._maybe_fail("reorder_tasks")
        return super().reorder_tasks(*args, **kwargs)

    def delete_task(self, *args, **kwargs):
        self._maybe_fail("delete_task")
        return super().delete_task(*args, **kwargs)

    def update_idea(self, *args, **kwargs):
        self._maybe_fail("update_idea")
        return super().update_idea(*args, **kwargs)

    def update_milestone(self, *args, **kwargs):
        self._maybe_fail("update_milestone")
        return super().update_milestone(*args, **kwargs)


@pytest.fixture
def store(tmp_studio_dir):
    return FlakyStore()


@pytest.fixture
def idea(tmp_studio_dir):
    return create_idea("launch")


def _seed(idea, names="ABCD"):
    return [add_task(name, idea_id=idea.id) for name in names]


def _names(tasks):
    return [t.name for t in tasks]


def _incomplete(view):
    return _names(t for t in view.top_level() if not t.completed)


# ── idea detail ──────────────────────────────────────────────────────────────


def test_drag_persists_and_matches_store(store, idea):
    _seed(idea)
    view = open_view(IdeaDetailView(store, idea.id))
    assert view.drag_tasks(0, 2)
    assert _incomplete(view) == ["B", "C", "A", "D"]
    fresh = open_view(IdeaDetailView(LocalStore(), idea.id))
    assert _incomplete(fresh) == ["B", "C", "A", "D"]


def test_noop_drag_skips_the_store(store, idea):
    _seed(idea)
    view = open_view(IdeaDetailView(store, idea.id))
    store.calls.clear()
    assert view.drag_tasks(1, 1)
    assert store.calls == []


def test_drag_indices_skip_completed_tasks(store, idea):
    a, *_ = _seed(idea)
    update_task(a.id, completed=True)
    view = open_view(IdeaDetailView(store, idea.id))
    view.drag_tasks(2, 0)
    assert _incomplete(view) == ["D", "B", "C"]


def test_failed_drag_rolls_back_to_store_state(store, idea):
    _seed(idea)
    view = open_view(IdeaDetailView(store, idea.id))
    store.fail("reorder_tasks", StoreError("connection reset"))
    assert not view.drag_tasks(0, 3)
    assert view.tasks == get_tasks(idea_id=idea.id)
    assert _incomplete(view) == ["A", "B", "C", "D"]
    assert len(view.notices) == 1
    assert "reorder failed" in view.notices[0].message


def test_failed_drag_shows_concurrent_change_after_resync(store, idea):
    _, b, *_ = _seed(idea)
    view = open_view(IdeaDetailView(store, idea.id))
    store.fail(
        "reorder_tasks", StoreError("timeout"), before=lambda: update_task(b.id, completed=True)
    )
    view.drag_tasks(0, 1)
    assert view.tasks == get_tasks(idea_id=idea.id)
    assert _incomplete(view) == ["A", "C", "D"]


def test_failed_field_edit_reverts_only_that_edit(store, idea):
    a, *_ = _seed(idea)
    view = open_view(IdeaDetailView(store, idea.id))
    before = view.tasks
    store.fail("update_task", StoreError("offline"))
    assert not view.toggle_complete(a.id)
    assert view.tasks == before
    assert view.notices[0].kind == "error"
    assert store.calls[-1] == "update_task"


def test_not_found_edit_resyncs(store, idea):
    _, b, *_ = _seed(idea)
    view = open_view(IdeaDetailView(store, idea.id))
    delete_task(b.id)
    assert not view.toggle_now(b.id)
    assert view.task(b.id) is None
    assert _incomplete(view) == ["A", "C", "D"]
    assert "not found" in view.notices[0].message


def test_edit_on_task_missing_from_cache_resyncs(store, idea):
    view = open_view(IdeaDetailView(store, idea.id))
    late = add_task("late", idea_id=idea.id)
    assert not view.toggle_complete("nope")
    assert view.task(late.id) is not None


def test_toggle_complete_keeps_cache_dense(store, idea):
    _, b, *_ = _seed(idea)
    view = open_view(IdeaDetailView(store, idea.id))
    assert view.toggle_complete(b.id)
    assert is_dense(view.tasks, Scope.idea(idea.id))
    assert view.task(b.id).completed
    assert _incomplete(view) == ["A", "C", "D"]


def test_now_on_completed_task_fails_before_store(store, idea):
    a, *_ = _seed(idea, "A")
    update_task(a.id, completed=True)
    view = open_view(IdeaDetailView(store, idea.id))
    store.calls.clear()
    with pytest.raises(ValidationError):
        view.toggle_now(a.id)
    assert store.calls == []


def test_toggle_now_moves_the_spotlight(store, idea):
    a, b, *_ = _seed(idea)
    view = open_view(IdeaDetailView(store, idea.id))
    view.toggle_now(a.id)
    view.toggle_now(b.id)
    assert [t.id for t in view.tasks if t.focus_now] == [b.id]
    assert [t.id for t in get_tasks(focus="now")] == [b.id]


def test_rename_to_sentinel_deletes(store, idea):
    a, *_ = _seed(idea, "AB")
    view = open_view(IdeaDetailView(store, idea.id))
    assert view.rename(a.id, "  XXX ")
    assert view.task(a.id) is None
    assert get_task(a.id) is None
    assert _incomplete(view) == ["B"]
    assert view.task(view.top_level()[0].id).sort_order == 1


def test_rename_blank_keeps_name_without_store_call(store, idea):
    a, *_ = _seed(idea, "A")
    view = open_view(IdeaDetailView(store, idea.id))
    store.calls.clear()
    assert view.rename(a.id, "   ")
    assert store.calls == []
    assert view.task(a.id).name == "A"


def test_rename(store, idea):
    a, *_ = _seed(idea, "A")
    view = open_view(IdeaDetailView(store, idea.id))
    assert view.rename(a.id, " better ")
    assert view.task(a.id).name == "better"
    assert get_task(a.id).name == "better"


def test_failed_delete_resyncs(store, idea):
    a, *_ = _seed(idea, "AB")
    view = open_view(IdeaDetailView(store, idea.id))
    store.fail("delete_task", StoreError("offline"))
    assert not view.delete_task(a.id)
    assert view.task(a.id) is not None


def test_delete_removes_subtasks_locally(store, idea):
    a, *_ = _seed(idea, "A")
    sub = add_task("child", parent_task_id=a.id)
    view = open_view(IdeaDetailView(store, idea.id))
    assert view.delete_task(a.id)
    assert view.task(sub.id) is None
    assert view.tasks == []


def test_add_task_validates_before_store(store, idea):
    view = open_view(IdeaDetailView(store, idea.id))
    store.calls.clear()
    with pytest.raises(ValidationError):
        view.add_task("   ")
    with pytest.raises(ValidationError):
        view.add_task("x", position="middle")
    assert store.calls == []


def test_add_task_top_matches_store(store, idea):
    _seed(idea, "AB")
    view = open_view(IdeaDetailView(store, idea.id))
    view.add_task("C", position="top")
    assert _incomplete(view) == ["C", "A", "B"]
    local = {t.id: t.sort_order for t in view.tasks}
    assert local == {t.id: t.sort_order for t in get_tasks(idea_id=idea.id)}


def test_add_subtask_and_drag_subtasks(store, idea):
    (parent,) = _seed(idea, "P")
    view = open_view(IdeaDetailView(store, idea.id))
    for name in ("one", "two", "three"):
        view.add_subtask(parent.id, name)
    assert _names(view.subtasks(parent.id)) == ["one", "two", "three"]
    view.drag_subtasks(parent.id, 2, 0)
    assert _names(view.subtasks(parent.id)) == ["three", "one", "two"]
    fresh = open_view(IdeaDetailView(LocalStore(), idea.id))
    assert _names(fresh.subtasks(parent.id)) == ["three", "one", "two"]


def test_failed_create_resyncs(store, idea):
    view = open_view(IdeaDetailView(store, idea.id))
    store.fail("create_task", ConflictError("rejected"))
    assert view.add_task("x") is None
    assert view.tasks == []
    assert view.notices


def test_nested_subtask_rejected_before_store(store, idea):
    (parent,) = _seed(idea, "P")
    child = add_task("child", parent_task_id=parent.id)
    view = open_view(IdeaDetailView(store, idea.id))
    store.calls.clear()
    with pytest.raises(ValidationError, match="subtasks cannot have subtasks"):
        view.add_subtask(child.id, "grandchild")
    assert "create_task" not in store.calls
    assert view.notices == []


def test_subtask_under_vanished_parent_resyncs(store, idea):
    (parent,) = _seed(idea, "P")
    view = open_view(IdeaDetailView(store, idea.id))
    delete_task(parent.id)
    store.calls.clear()
    assert view.add_subtask(parent.id, "stray") is None
    assert "create_task" not in store.calls
    assert view.task(parent.id) is None
    assert "parent task not found" in view.notices[0].message


def test_store_rejecting_stale_focus_resyncs(store, idea):
    a, *_ = _seed(idea)
    view = open_view(IdeaDetailView(store, idea.id))
    update_task(a.id, completed=True)
    assert not view.toggle_now(a.id)
    assert "focus failed" in view.notices[0].message
    assert view.task(a.id) == get_task(a.id)
    assert view.task(a.id).completed
    assert not view.task(a.id).focus_now


def test_progress(store, idea):
    a, *_ = _seed(idea, "AB")
    update_task(a.id, completed=True)
    view = open_view(IdeaDetailView(store, idea.id))
    assert view.progress() == 50


def test_idea_edits(store, idea):
    milestone = create_milestone("beta")
    view = open_view(IdeaDetailView(store, idea.id))
    assert view.set_title("relaunch")
    assert view.set_summary("  why  ")
    assert view.assign_idea_milestone(milestone.id)
    assert (view.idea.title, view.idea.summary, view.idea.milestone_id) == (
        "relaunch",
        "why",
        milestone.id,
    )
    assert view.milestone(milestone.id) == milestone


def test_failed_idea_edit_reverts(store, idea):
    view = open_view(IdeaDetailView(store, idea.id))
    store.fail("update_idea", StoreError("offline"))
    assert not view.set_title("relaunch")
    assert view.idea.title == "launch"


def test_missing_idea_leaves_notice(store):
    view = open_view(IdeaDetailView(store, "missing"))
    assert view.idea is None
    assert "couldn't load" in view.notices[0].message


def test_unlinked_tasks_view(store, idea):
    loose = add_task("loose")
    _seed(idea, "A")
    view = open_view(IdeaDetailView(store, None))
    assert [t.id for t in view.top_level()] == [loose.id]


def test_notes_and_milestone_links(store, idea):
    milestone = create_milestone("beta")
    a, *_ = _seed(idea, "A")
    view = open_view(IdeaDetailView(store, idea.id))
    assert view.set_note(a.id, "  remember ")
    assert view.assign_milestone(a.id, milestone.id)
    task = get_task(a.id)
    assert (task.note, task.milestone_id) == ("remember", milestone.id)
    assert view.task(a.id) == task


def test_dismiss_notices(store, idea):
    view = open_view(IdeaDetailView(store, idea.id))
    store.fail("create_task", StoreError("x"))
    view.add_task("a")
    store.fail("create_task", StoreError("y"))
    view.add_task("b")
    view.dismiss(0)
    assert len(view.notices) == 1
    view.dismiss()
    assert view.notices == []


# ── staleness and serialization ──────────────────────────────────────────────


def test_response_after_close_is_dropped(store, idea):
    a, *_ = _seed(idea, "A")
    view = open_view(IdeaDetailView(store, idea.id))
    store.fail("update_task", StoreError("late"), before=view.close)
    view.toggle_complete(a.id)
    assert view.notices == []


def test_refresh_that_lands_after_close_is_dropped(store, idea):
    _seed(idea, "A")
    view = IdeaDetailView(store, idea.id)
    original = store.list_tasks

    def closing_list_tasks(*args, **kwargs):
        view.close()
        return original(*args, **kwargs)

    store.list_tasks = closing_list_tasks
    assert not view.refresh()
    assert view.tasks == []


def test_same_entity_commands_are_serialized(store, idea):
    a, *_ = _seed(idea, "A")
    view = open_view(IdeaDetailView(store, idea.id))
    results = []
    store.fail(
        "update_task", StoreError("slow"), before=lambda: results.append(view.toggle_today(a.id))
    )
    view.toggle_complete(a.id)
    assert results == [False]


# ── today ────────────────────────────────────────────────────────────────────


def test_today_projection(store, idea):
    a = add_task("a", idea_id=idea.id, focus_today=True)
    b = add_task("b", idea_id=idea.id, focus_today=True)
    n = add_task("n", idea_id=idea.id)
    add_task("elsewhere", idea_id=idea.id)
    update_task(n.id, focus_now=True)
    update_task(a.id, completed=True)
    view = open_view(TodayView(store))
    assert view.spotlight().id == n.id
    assert [t.id for t in view.queue()] == [b.id]
    assert [t.id for t in view.completed_today()] == [a.id]
    assert [t.id for t in view.visible()] == [n.id, b.id, a.id]


def test_completed_yesterday_drops_out_of_today(store, idea):
    a = add_task("a", idea_id=idea.id, focus_today=True)
    update_task(a.id, completed=True)
    view = open_view(TodayView(store))
    assert view.completed_today(datetime.now() + timedelta(days=1)) == []


def test_remove_now_task_from_today_keeps_it_visible(store, idea):
    a = add_task("a", idea_id=idea.id, focus_today=True)
    update_task(a.id, focus_now=True)
    view = open_view(TodayView(store))
    assert view.remove_from_today(a.id)
    assert view.spotlight().id == a.id
    assert [t.id for t in view.visible()] == [a.id]


def test_remove_from_today_closes_queue(store, idea):
    a, b, c = (add_task(name, idea_id=idea.id, focus_today=True) for name in "abc")
    view = open_view(TodayView(store))
    view.remove_from_today(b.id)
    assert [(t.id, t.today_order) for t in view.queue()] == [(a.id, 1), (c.id, 2)]
    assert not view.task(b.id).focus_today


def test_today_drag(store, idea):
    other = create_idea("other")
    a = add_task("a", idea_id=idea.id, focus_today=True)
    b = add_task("b", idea_id=other.id, focus_today=True)
    view = open_view(TodayView(store))
    assert view.drag(1, 0)
    assert [t.id for t in view.queue()] == [b.id, a.id]
    fresh = open_view(TodayView(LocalStore()))
    assert [t.id for t in fresh.queue()] == [b.id, a.id]
    assert get_task(a.id).sort_order == 1


def test_failed_today_drag_rolls_back(store, idea):
    a = add_task("a", idea_id=idea.id, focus_today=True)
    b = add_task("b", idea_id=idea.id, focus_today=True)
    view = open_view(TodayView(store))
    store.fail("reorder_tasks", StoreError("offline"))
    assert not view.drag(1, 0)
    assert [t.id for t in view.queue()] == [a.id, b.id]


def test_daily_countdown(store, tmp_studio_dir):
    view = open_view(TodayView(store))
    now = datetime(2026, 3, 2, 16, 0)
    assert view.daily_countdown(now).total == timedelta(hours=1)
    assert view.daily_urgency(now) == Urgency.CRITICAL


# ── milestones ───────────────────────────────────────────────────────────────


def test_milestones_view_orders_completed_last(store, tmp_studio_dir):
    done = create_milestone("done", datetime(2026, 1, 1))
    later = create_milestone("later", datetime(2026, 12, 1))
    undated = create_milestone("undated")
    view = open_view(MilestonesView(store))
    view.toggle_complete(done.id)
    assert [m.id for m in view.ordered()] == [later.id, undated.id, done.id]


def test_milestone_countdown(store, tmp_studio_dir):
    m = create_milestone("beta", datetime(2026, 3, 3, 9, 0))
    undated = create_milestone("someday")
    view = open_view(MilestonesView(store))
    left, urgency = view.countdown(m.id, datetime(2026, 3, 2, 9, 0))
    assert left.days == 1
    assert urgency == Urgency.UPCOMING
    assert view.countdown(m.id, datetime(2026, 3, 4)) == (None, Urgency.OVERDUE)
    assert view.countdown(undated.id) is None


def test_milestone_create_update_delete(store, tmp_studio_dir):
    view = open_view(MilestonesView(store))
    m = view.create("beta")
    assert view.update(m.id, name="gamma", notes=" n ")
    assert view.milestone(m.id).name == "gamma"
    assert view.milestone(m.id).notes == "n"
    with pytest.raises(ValidationError):
        view.update(m.id)
    assert view.delete(m.id)
    assert view.milestones == []


def test_failed_milestone_edit_reverts(store, tmp_studio_dir):
    view = open_view(MilestonesView(store))
    m = view.create("beta")
    store.fail("update_milestone", StoreError("offline"))
    assert not view.toggle_complete(m.id)
    assert not view.milestone(m.id).completed


def test_missing_milestone_edit_resyncs(store, tmp_studio_dir):
    view = open_view(MilestonesView(store))
    m = view.create("beta")
    store.fail("update_milestone", NotFoundError("gone"))
    assert not view.update(m.id, name="x")
    assert view.milestone(m.id).name == "beta"
    assert "gone" in view.notices[0].message


def test_milestone_progress(tmp_studio_dir):
    m = create_milestone("beta")
    a = add_task("a", milestone_id=m.id)
    add_task("b", milestone_id=m.id)
    update_task(a.id, completed=True)
    view = open_view(MilestonesView(LocalStore()))
    assert MilestonesView.progress(view.milestone(m.id)) == 50
