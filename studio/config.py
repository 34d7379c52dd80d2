import logging
from datetime import timedelta
from pathlib import Path

import yaml

from .core.types import Position
from .lib.countdown import DEFAULT_THRESHOLDS, Urgency
from .lib.parsing import parse_hhmm

logger = logging.getLogger(__name__)

STUDIO_DIR = Path.home() / ".studio"
DB_PATH = STUDIO_DIR / "studio.db"
CONFIG_PATH = STUDIO_DIR / "config.yaml"
BACKUP_DIR = STUDIO_DIR / "backups"

DEFAULT_DAILY_TARGET_TIME = "17:00"
DEFAULT_NEW_TASK_POSITION: Position = "top"


class Config:
    """Single-instance config manager. Load once, cache in memory."""

    _instance: "Config | None" = None
    _data: dict[str, object]

    def __new__(cls) -> "Config":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._data = {}
            cls._instance._load()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        cls._instance = None

    def _load(self) -> None:
        """Load config from disk."""
        if not CONFIG_PATH.exists():
            self._data = {}
            return
        try:
            with CONFIG_PATH.open() as f:
                loaded = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.warning("ignoring unreadable config %s: %s", CONFIG_PATH, e)
            loaded = None
        self._data = loaded if isinstance(loaded, dict) else {}

    def _save(self) -> None:
        """Persist config to disk."""
        CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
        with CONFIG_PATH.open("w") as f:
            yaml.dump(self._data, f, default_flow_style=False, allow_unicode=True)

    def get(self, key: str, default: object = None) -> object:
        """Get config value."""
        return self._data.get(key, default)

    def set(self, key: str, value: object) -> None:
        """Set config value and persist."""
        self._data[key] = value
        self._save()


def get_daily_target_time() -> str:
    """Wall-clock deadline for the Today countdown, HH:MM."""
    val = Config().get("daily_target_time")
    if isinstance(val, str) and parse_hhmm(val):
        hours, minutes = parse_hhmm(val) or (0, 0)
        return f"{hours:02d}:{minutes:02d}"
    return DEFAULT_DAILY_TARGET_TIME


def set_daily_target_time(value: str) -> None:
    parsed = parse_hhmm(value)
    if parsed is None:
        raise ValueError(f"invalid time '{value}', use HH:MM")
    Config().set("daily_target_time", f"{parsed[0]:02d}:{parsed[1]:02d}")


def get_urgency_thresholds() -> dict[Urgency, timedelta]:
    """Countdown color thresholds in hours, e.g. {critical: 4, soon: 24, upcoming: 72}."""
    val = Config().get("urgency_thresholds")
    thresholds = dict(DEFAULT_THRESHOLDS)
    if not isinstance(val, dict):
        return thresholds
    for level in (Urgency.CRITICAL, Urgency.SOON, Urgency.UPCOMING):
        hours = val.get(level.value)
        if isinstance(hours, (int, float)) and not isinstance(hours, bool) and hours >= 0:
            thresholds[level] = timedelta(hours=hours)
    return thresholds


def get_new_task_position() -> Position:
    val = Config().get("new_task_position")
    if val == "top":
        return "top"
    if val == "bottom":
        return "bottom"
    return DEFAULT_NEW_TASK_POSITION
