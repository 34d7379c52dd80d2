"""Live countdowns for milestone deadlines and the daily Today deadline."""

import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from studio.core.errors import ValidationError

from . import clock
from .parsing import parse_hhmm

__all__ = [
    "DEFAULT_THRESHOLDS",
    "TICK_SECONDS",
    "TimeLeft",
    "Urgency",
    "classify",
    "daily_target",
    "daily_time_left",
    "format_compact",
    "format_time_left",
    "ticks",
    "time_left",
]

TICK_SECONDS = 1.0
COMPLETED_TEXT = "time's up"
OVERDUE_TEXT = "overdue"


class Urgency(Enum):
    OVERDUE = "overdue"
    CRITICAL = "critical"
    SOON = "soon"
    UPCOMING = "upcoming"
    LATER = "later"


DEFAULT_THRESHOLDS: dict[Urgency, timedelta] = {
    Urgency.CRITICAL: timedelta(hours=4),
    Urgency.SOON: timedelta(hours=24),
    Urgency.UPCOMING: timedelta(days=3),
}


@dataclass(frozen=True)
class TimeLeft:
    days: int
    hours: int
    minutes: int
    seconds: int
    total: timedelta


def time_left(target: datetime, now: datetime | None = None) -> TimeLeft | None:
    """Remaining time until target, or None once the target is reached."""
    now = now or clock.now()
    diff = target - now
    if diff <= timedelta(0):
        return None
    total_sec = int(diff.total_seconds())
    return TimeLeft(
        days=total_sec // 86400,
        hours=(total_sec % 86400) // 3600,
        minutes=(total_sec % 3600) // 60,
        seconds=total_sec % 60,
        total=diff,
    )


def daily_target(target_time: str, now: datetime | None = None) -> datetime:
    """Next occurrence of a wall-clock HH:MM, rolling to tomorrow once it has passed."""
    now = now or clock.now()
    parsed = parse_hhmm(target_time)
    if parsed is None:
        raise ValidationError(f"invalid time '{target_time}', use HH:MM")
    hours, minutes = parsed
    target = now.replace(hour=hours, minute=minutes, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return target


def daily_time_left(target_time: str, now: datetime | None = None) -> TimeLeft:
    now = now or clock.now()
    left = time_left(daily_target(target_time, now), now)
    return left or TimeLeft(0, 0, 0, 0, timedelta(0))


def classify(
    left: TimeLeft | None, thresholds: dict[Urgency, timedelta] | None = None
) -> Urgency:
    if left is None:
        return Urgency.OVERDUE
    limits = thresholds or DEFAULT_THRESHOLDS
    for level in (Urgency.CRITICAL, Urgency.SOON, Urgency.UPCOMING):
        limit = limits.get(level)
        if limit is not None and left.total < limit:
            return level
    return Urgency.LATER


def format_time_left(
    left: TimeLeft | None, show_seconds: bool = True, completed_text: str = COMPLETED_TEXT
) -> str:
    if left is None:
        return completed_text
    parts = []
    if left.days > 0:
        parts.append(f"{left.days}d")
    if left.days > 0 or left.hours > 0:
        parts.append(f"{left.hours}h")
    parts.append(f"{left.minutes}m")
    if show_seconds:
        parts.append(f"{left.seconds}s")
    return " ".join(parts)


def format_compact(left: TimeLeft | None) -> str:
    if left is None:
        return OVERDUE_TEXT
    if left.days > 0:
        return f"{left.days}d {left.hours}h"
    if left.hours > 0:
        return f"{left.hours}h {left.minutes}m"
    return f"{left.minutes}m"


def ticks(
    target: Callable[[datetime], datetime] | datetime,
    interval: float = TICK_SECONDS,
    now: Callable[[], datetime] = clock.now,
    sleep: Callable[[float], None] = time.sleep,
    limit: int | None = None,
) -> Iterator[TimeLeft | None]:
    """Yield the remaining time once per tick.

    A fixed target stops after yielding the terminal None. A callable target is re-anchored
    on every tick (the daily deadline) and never terminates on its own.
    """
    count = 0
    while limit is None or count < limit:
        current = now()
        anchor = target(current) if callable(target) else target
        left = time_left(anchor, current)
        yield left
        count += 1
        if left is None and not callable(target):
            return
        if limit is None or count < limit:
            sleep(interval)
