"""Time-of-day greeting."""

from collections.abc import Callable
from datetime import datetime
from enum import Enum

Clock = Callable[[], datetime]


class DayPeriod(Enum):
    """Parts of the day, by local clock hour."""

    MORNING = "morning"  # 06:00 - 11:59
    AFTERNOON = "afternoon"  # 12:00 - 17:59
    EVENING = "evening"  # 18:00 - 21:59
    NIGHT = "night"


def system_clock() -> datetime:
    """Local wall-clock time."""
    return datetime.now()


def period_for_hour(hour: int) -> DayPeriod:
    """Map a 0-23 hour to its part of the day."""
    if 6 <= hour < 12:
        return DayPeriod.MORNING
    if 12 <= hour < 18:
        return DayPeriod.AFTERNOON
    if 18 <= hour < 22:
        return DayPeriod.EVENING
    return DayPeriod.NIGHT


def greeting_text(name: str, now: datetime) -> str:
    """Greet name for the time of day at now."""
    return f"Good {period_for_hour(now.hour).value}, {name}!"
