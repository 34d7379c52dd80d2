from studio.events import get_events
from studio.ideas import create_idea
from studio.lib.ordering import Scope, incomplete_sequence
from studio.milestones import create_milestone
from studio.tasks import add_task, get_task, get_tasks, update_task
from tests.conftest import FnCLIRunner


def _order(idea_id):
    return [t.name for t in incomplete_sequence(get_tasks(idea_id=idea_id), Scope.idea(idea_id))]


def test_add_and_list(tmp_studio_dir):
    runner = FnCLIRunner()
    create_idea("launch")

    result = runner.invoke(["add", "write", "post", "-i", "launch"])
    assert result.exit_code == 0
    assert "write post" in result.stdout

    listing = runner.invoke(["ls"])
    assert listing.exit_code == 0
    assert "launch" in listing.stdout
    assert "write post" in listing.stdout


def test_add_defaults_to_top(tmp_studio_dir):
    runner = FnCLIRunner()
    idea = create_idea("launch")
    runner.invoke(["add", "first", "-i", "launch"])
    runner.invoke(["add", "second", "-i", "launch"])
    runner.invoke(["add", "third", "-i", "launch", "--bottom"])
    assert _order(idea.id) == ["second", "first", "third"]


def test_add_rejects_blank_name(tmp_studio_dir):
    result = FnCLIRunner().invoke(["add", "   "])
    assert result.exit_code == 1
    assert "name cannot be empty" in result.stderr
    assert get_tasks() == []


def test_add_subtask(tmp_studio_dir):
    runner = FnCLIRunner()
    idea = create_idea("launch")
    parent = add_task("outline", idea_id=idea.id)
    result = runner.invoke(["add", "intro", "--under", "outline"])
    assert result.exit_code == 0
    assert "└" in result.stdout
    (sub,) = [t for t in get_tasks() if t.parent_task_id == parent.id]
    assert sub.idea_id == idea.id

    detail = runner.invoke(["ls", "--idea", "launch"])
    assert "└" in detail.stdout
    assert "0/1 (0%)" in detail.stdout


def test_today_dashboard(tmp_studio_dir):
    runner = FnCLIRunner()
    runner.invoke(["add", "triaged", "--today"])
    runner.invoke(["add", "spotlight"])
    runner.invoke(["now", "spotlight"])

    result = runner.invoke([])
    assert result.exit_code == 0
    assert "NOW" in result.stdout
    assert "spotlight" in result.stdout
    assert "TODAY" in result.stdout
    assert "triaged" in result.stdout
    assert "left today" in result.stdout


def test_today_empty(tmp_studio_dir):
    result = FnCLIRunner().invoke(["today"])
    assert result.exit_code == 0
    assert "nothing triaged into today" in result.stdout


def test_done_toggles(tmp_studio_dir):
    runner = FnCLIRunner()
    task = add_task("ship")
    result = runner.invoke(["done", "ship"])
    assert result.exit_code == 0
    assert "✓" in result.stdout
    assert get_task(task.id).completed

    runner.invoke(["done", "ship"])
    assert not get_task(task.id).completed


def test_now_is_singleton(tmp_studio_dir):
    runner = FnCLIRunner()
    a = add_task("alpha")
    b = add_task("beta")
    runner.invoke(["now", "alpha"])
    runner.invoke(["now", "beta"])
    assert not get_task(a.id).focus_now
    assert get_task(b.id).focus_now


def test_now_on_completed_task_fails(tmp_studio_dir):
    task = add_task("alpha")
    update_task(task.id, completed=True)
    result = FnCLIRunner().invoke(["now", "alpha"])
    assert result.exit_code == 1
    assert "cannot be in focus now" in result.stderr


def test_pin_and_unpin(tmp_studio_dir):
    runner = FnCLIRunner()
    task = add_task("alpha")
    assert runner.invoke(["pin", "alpha"]).exit_code == 0
    assert get_task(task.id).focus_today

    assert runner.invoke(["unpin", "alpha"]).exit_code == 0
    assert not get_task(task.id).focus_today

    again = runner.invoke(["unpin", "alpha"])
    assert again.exit_code == 1
    assert "is not in today" in again.stderr


def test_unpin_keeps_now_task_on_today(tmp_studio_dir):
    runner = FnCLIRunner()
    runner.invoke(["add", "alpha", "--today"])
    runner.invoke(["now", "alpha"])
    runner.invoke(["unpin", "alpha"])

    result = runner.invoke(["today"])
    assert "NOW" in result.stdout
    assert "alpha" in result.stdout


def test_rename(tmp_studio_dir):
    task = add_task("alpha")
    result = FnCLIRunner().invoke(["rename", "alpha", "better", "name"])
    assert result.exit_code == 0
    assert "→ better name" in result.stdout
    assert get_task(task.id).name == "better name"


def test_rename_to_xxx_deletes(tmp_studio_dir):
    task = add_task("alpha")
    result = FnCLIRunner().invoke(["rename", "alpha", "XXX"])
    assert result.exit_code == 0
    assert "✗ alpha" in result.stdout
    assert "deletes" in result.stderr
    assert get_task(task.id) is None
    (event,) = get_events(event_type="deleted")
    assert event.event_data["via"] == "rename"


def test_note(tmp_studio_dir):
    runner = FnCLIRunner()
    task = add_task("alpha")
    runner.invoke(["note", "alpha", "call", "back"])
    assert get_task(task.id).note == "call back"
    runner.invoke(["note", "alpha"])
    assert get_task(task.id).note is None


def test_rm_deletes_task_and_subtasks(tmp_studio_dir):
    runner = FnCLIRunner()
    parent = add_task("outline")
    add_task("intro", parent_task_id=parent.id)
    result = runner.invoke(["rm", "outline"])
    assert result.exit_code == 0
    assert get_tasks() == []


def test_rm_unknown_task(tmp_studio_dir):
    result = FnCLIRunner().invoke(["rm", "ghost"])
    assert result.exit_code == 1
    assert "No task found" in result.stderr


def test_move(tmp_studio_dir):
    idea = create_idea("launch")
    for name in ("a1", "b2", "c3", "d4"):
        add_task(name, idea_id=idea.id)
    result = FnCLIRunner().invoke(["move", "a1", "3"])
    assert result.exit_code == 0
    assert _order(idea.id) == ["b2", "c3", "a1", "d4"]


def test_move_in_today(tmp_studio_dir):
    runner = FnCLIRunner()
    a = add_task("a1", focus_today=True)
    b = add_task("b2", focus_today=True)
    result = runner.invoke(["move", "b2", "1", "--today"])
    assert result.exit_code == 0
    assert get_task(b.id).today_order == 1
    assert get_task(a.id).today_order == 2


def test_move_completed_task_fails(tmp_studio_dir):
    task = add_task("a1")
    update_task(task.id, completed=True)
    result = FnCLIRunner().invoke(["move", "a1", "1"])
    assert result.exit_code == 1
    assert "only open tasks" in result.stderr


def test_link_and_clear(tmp_studio_dir):
    runner = FnCLIRunner()
    milestone = create_milestone("beta")
    task = add_task("alpha")
    result = runner.invoke(["link", "alpha", "beta"])
    assert result.exit_code == 0
    assert "→ beta" in result.stdout
    assert get_task(task.id).milestone_id == milestone.id

    runner.invoke(["link", "alpha", "--clear"])
    assert get_task(task.id).milestone_id is None


def test_link_requires_target(tmp_studio_dir):
    add_task("alpha")
    result = FnCLIRunner().invoke(["link", "alpha"])
    assert result.exit_code == 1
    assert "Usage" in result.stderr


def test_orphans(tmp_studio_dir):
    runner = FnCLIRunner()
    idea = create_idea("launch")
    add_task("linked", idea_id=idea.id)
    add_task("loose")
    result = runner.invoke(["ls", "--orphans"])
    assert "loose" in result.stdout
    assert "linked" not in result.stdout


def test_activity(tmp_studio_dir):
    runner = FnCLIRunner()
    add_task("alpha")
    runner.invoke(["done", "alpha"])
    result = runner.invoke(["activity"])
    assert result.exit_code == 0
    assert "completed" in result.stdout
    assert "created" in result.stdout


def test_activity_filters_by_type(tmp_studio_dir):
    runner = FnCLIRunner()
    add_task("alpha")
    runner.invoke(["done", "alpha"])
    result = runner.invoke(["activity", "--type", "completed"])
    assert "completed" in result.stdout
    assert "created" not in result.stdout


def test_activity_rejects_unknown_type(tmp_studio_dir):
    result = FnCLIRunner().invoke(["activity", "--type", "exploded"])
    assert result.exit_code == 1
    assert "unknown event type" in result.stderr
