from datetime import datetime

from .core.models import Task
from .lib import ansi, clock
from .lib.countdown import format_time_left
from .lib.errors import exit_error
from .lib.format import URGENCY_COLORS, format_milestone, format_progress, format_task
from .views import IdeaDetailView, MilestonesView, Notice, TodayView

__all__ = ["exit_on_notices", "render_idea", "render_milestones", "render_notices", "render_today"]


def _numbered(tasks: list[Task], indent: str = "  ") -> list[str]:
    lines = []
    position = 0
    for t in tasks:
        if t.completed:
            lines.append(f"{indent}    {format_task(t)}")
            continue
        position += 1
        lines.append(f"{indent}{ansi.muted(f'{position:>2}.')} {format_task(t)}")
    return lines


def render_today(view: TodayView, now: datetime | None = None) -> str:
    now = now or clock.now()
    left = view.daily_countdown(now)
    urgency = view.daily_urgency(now)
    header = f"{ansi.bold(now.strftime('%a · %-d %b %Y'))}  {ansi.color(URGENCY_COLORS[urgency], format_time_left(left, show_seconds=False))} {ansi.muted('left today')}"
    lines = [header, ""]

    spotlight = view.spotlight()
    if spotlight:
        lines.append(f"{ansi.bold('NOW')}  {format_task(spotlight)}")
        lines.append("")

    queue = view.queue()
    if queue:
        lines.append(ansi.bold("TODAY"))
        lines.extend(_numbered(queue))
    elif not spotlight:
        lines.append(ansi.muted("nothing triaged into today"))

    done = view.completed_today(now)
    if done:
        lines.append("")
        lines.append(f"{ansi.bold('DONE')} {ansi.muted(str(len(done)))}")
        lines.extend(f"  {format_task(t)}" for t in done)
    return "\n".join(lines)


def render_idea(view: IdeaDetailView) -> str:
    if view.idea is None:
        return ansi.muted("idea not loaded")
    idea = view.idea
    lines = [f"{ansi.bold(idea.title)}  {ansi.muted(f'{view.progress()}%')}"]
    if idea.summary:
        lines.append(ansi.muted(idea.summary))
    milestone = view.milestone(idea.milestone_id)
    if milestone:
        lines.append(ansi.muted(f"→ {milestone.name}"))
    lines.append("")
    top = view.top_level()
    if not top:
        lines.append(ansi.muted("no tasks"))
    position = 0
    for t in top:
        m = view.milestone(t.milestone_id)
        if t.completed:
            lines.append(f"     {format_task(t, milestone=m)}")
        else:
            position += 1
            lines.append(f"  {ansi.muted(f'{position:>2}.')} {format_task(t, milestone=m)}")
        subs = view.subtasks(t.id)
        if subs:
            done = sum(s.completed for s in subs)
            lines.extend(f"      └ {format_task(s)}" for s in subs)
            lines.append(f"        {ansi.muted(format_progress(done, len(subs)))}")
    return "\n".join(lines)


def render_milestones(view: MilestonesView, now: datetime | None = None) -> str:
    ordered = view.ordered()
    if not ordered:
        return ansi.muted("no milestones")
    lines = []
    for m in ordered:
        timing = view.countdown(m.id, now)
        left, urgency = timing if timing else (None, None)
        lines.append(format_milestone(m, left, urgency))
    return "\n".join(lines)


def render_notices(notices: list[Notice]) -> str:
    return "\n".join(
        ansi.red(f"! {n.message}") if n.kind == "error" else ansi.muted(n.message) for n in notices
    )


def exit_on_notices(view: IdeaDetailView | TodayView | MilestonesView) -> None:
    """A command whose view collected failures reports them and exits non-zero."""
    if view.notices:
        exit_error(render_notices(view.notices))
