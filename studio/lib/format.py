from datetime import datetime

from studio.core.models import Milestone, Task

from . import ansi
from .countdown import TimeLeft, Urgency, format_compact

__all__ = [
    "format_elapsed",
    "format_milestone",
    "format_progress",
    "format_status",
    "format_task",
]

URGENCY_COLORS = {
    Urgency.OVERDUE: "red",
    Urgency.CRITICAL: "red",
    Urgency.SOON: "amber",
    Urgency.UPCOMING: "blue",
    Urgency.LATER: "muted",
}


def format_elapsed(dt: datetime, now: datetime | None = None) -> str:
    """Format a datetime as a human-readable relative string (e.g. '5m ago', '3h ago')."""
    if now is None:
        now = datetime.now()
    s = int((now - dt).total_seconds())
    if s < 60:
        return f"{s}s ago"
    m = s // 60
    if m < 60:
        return f"{m}m ago"
    h = m // 60
    if h < 24:
        return f"{h}h ago"
    d = h // 24
    if d < 7:
        return f"{d}d ago"
    return dt.strftime("%Y-%m-%d")


def format_task(task: Task, show_id: bool = True, milestone: Milestone | None = None) -> str:
    """Format a task for display. Returns: [✓|□] [⦿] [☀] name [🎯 milestone] [id]"""
    parts = [ansi.green("✓") if task.completed else "□"]
    if task.focus_now:
        parts.append(ansi.bold("⦿"))
    if task.focus_today:
        parts.append(ansi.yellow("☀"))
    parts.append(ansi.muted(task.name) if task.completed else task.name)
    if milestone:
        parts.append(ansi.muted(f"→ {milestone.name}"))
    if task.note:
        parts.append(ansi.muted("…"))
    if show_id:
        parts.append(ansi.muted(f"[{task.id[:8]}]"))
    return " ".join(parts)


def format_progress(done: int, total: int) -> str:
    pct = round(done / total * 100) if total else 0
    return f"{done}/{total} ({pct}%)"


def format_milestone(
    milestone: Milestone, left: TimeLeft | None = None, urgency: Urgency | None = None
) -> str:
    parts = [ansi.green("✓") if milestone.completed else "○", milestone.name]
    if milestone.target_date:
        parts.append(ansi.muted(milestone.target_date.strftime("%d/%m %H:%M")))
        if not milestone.completed and urgency is not None:
            parts.append(ansi.color(URGENCY_COLORS[urgency], format_compact(left)))
    parts.append(ansi.muted(format_progress(milestone.completed_task_count, milestone.task_count)))
    parts.append(ansi.muted(f"[{milestone.id[:8]}]"))
    return " ".join(parts)


def format_status(symbol: str, content: str, item_id: str | None = None) -> str:
    id_str = f" {ansi.muted(f'[{item_id[:8]}]')}" if item_id else ""
    return f"{symbol} {content}{id_str}"
