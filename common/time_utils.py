import time
from collections.abc import Callable
from datetime import datetime

# Injected wherever "now" matters so tests can drive time by hand.
type Clock = Callable[[], float]

SYSTEM_CLOCK: Clock = time.time


def to_unix_timestamp_safe(value: str | datetime | float | None) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return int(value)
    if isinstance(value, datetime):
        return int(value.timestamp())
    if isinstance(value, str):
        if value.strip().isdigit():
            return int(value)
        try:
            if value.endswith("Z"):
                value = value.replace("Z", "+00:00")
            dt = datetime.fromisoformat(value)
            return int(dt.timestamp())
        except ValueError:
            return None
    return None


def seconds_ago(seconds: float, *, clock: Clock = SYSTEM_CLOCK) -> int:
    """Unix timestamp `seconds` before now, floored to whole seconds."""
    return int(clock() - seconds)
