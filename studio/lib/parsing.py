import re
from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from dateutil import parser as dateutil_parser
from dateutil.parser import ParserError

from studio.core.errors import ValidationError
from studio.core.types import Position

from . import clock

__all__ = [
    "DELETE_SENTINEL",
    "RenameIntent",
    "interpret_rename",
    "parse_hhmm",
    "parse_position",
    "parse_target_date",
    "validate_name",
]

DELETE_SENTINEL = "xxx"

_HHMM_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


def validate_name(name: str | None, what: str = "name") -> str:
    """Return the trimmed name.

    Raises ValidationError if it is empty or whitespace-only.
    """
    if not name or not name.strip():
        raise ValidationError(f"{what} cannot be empty")
    return name.strip()


@dataclass(frozen=True)
class RenameIntent:
    action: Literal["rename", "delete", "noop"]
    name: str | None = None


def interpret_rename(current: str, proposed: str | None) -> RenameIntent:
    """Decide what committing an inline name edit means.

    Blank keeps the previous name, the legacy sentinel 'xxx' deletes the task, an unchanged
    name does nothing.
    """
    trimmed = (proposed or "").strip()
    if not trimmed:
        return RenameIntent("noop")
    if trimmed.lower() == DELETE_SENTINEL:
        return RenameIntent("delete")
    if trimmed == current:
        return RenameIntent("noop")
    return RenameIntent("rename", trimmed)


def parse_hhmm(value: str | None) -> tuple[int, int] | None:
    m = _HHMM_RE.match((value or "").strip())
    if not m:
        return None
    hours, minutes = int(m.group(1)), int(m.group(2))
    if 0 <= hours <= 23 and 0 <= minutes <= 59:
        return hours, minutes
    return None


def parse_position(value: str | None, default: Position = "bottom") -> Position:
    if value is None or value == "":
        return default
    lowered = value.strip().lower()
    if lowered == "top":
        return "top"
    if lowered == "bottom":
        return "bottom"
    raise ValidationError(f"position must be 'top' or 'bottom', got '{value}'")


def parse_target_date(value: str | None) -> datetime | None:
    """Parse a milestone target ('2026-11-01', '2026-11-01 17:00', 'nov 1 9am').

    A bare date lands at midnight.
    """
    if value is None or not value.strip():
        return None
    today = clock.today()
    default = datetime(today.year, today.month, today.day)
    try:
        parsed = dateutil_parser.parse(value, default=default)
    except (ParserError, ValueError, OverflowError) as e:
        raise ValidationError(f"unrecognized date '{value}'") from e
    return parsed.replace(tzinfo=None, microsecond=0)
