import os
from collections.abc import Callable
from dataclasses import dataclass


@dataclass(frozen=True)
class Theme:
    red: str = "\033[38;5;203m"
    green: str = "\033[38;5;114m"
    yellow: str = "\033[38;5;221m"
    blue: str = "\033[38;5;111m"
    amber: str = "\033[38;5;137m"
    muted: str = "\033[90m"
    bold: str = "\033[1m"
    reset: str = "\033[0m"


DEFAULT = Theme()
PLAIN = Theme(**{name: "" for name in Theme.__dataclass_fields__})
_active: Theme = PLAIN if os.environ.get("NO_COLOR") else DEFAULT


def use(theme: Theme) -> None:
    global _active
    _active = theme


_COLORS = {"red", "green", "yellow", "blue", "amber", "muted"}


def __getattr__(name: str) -> Callable[[str], str]:
    if name in _COLORS:

        def _wrap(text: str) -> str:
            return f"{getattr(_active, name)}{text}{_active.reset}"

        _wrap.__name__ = name
        return _wrap
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def color(name: str, text: str) -> str:
    if name not in _COLORS:
        raise ValueError(f"unknown color '{name}'")
    return f"{getattr(_active, name)}{text}{_active.reset}"


def bold(text: str) -> str:
    return f"{_active.bold}{text}{_active.reset}"
