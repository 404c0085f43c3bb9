from dataclasses import dataclass
from datetime import time

from django.conf import settings

DEFAULT_LOW_STOCK_THRESHOLD = 10
DEFAULT_ATTENDANCE_START_TIME = time(9, 0)
DEFAULT_ATTENDANCE_GRACE_MINUTES = 10


def _safe_int(value, *, default, minimum):
    try:
        resolved = int(value)
    except (TypeError, ValueError):
        return default
    return max(minimum, resolved)


def _safe_time(value, *, default: time) -> time:
    if isinstance(value, time):
        return value
    try:
        hours, minutes = str(value).strip().split(":", 1)
        return time(int(hours), int(minutes))
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class RuntimeConfig:
    low_stock_threshold: int
    attendance_start_time: time
    attendance_grace_minutes: int


def get_runtime_config() -> RuntimeConfig:
    return RuntimeConfig(
        low_stock_threshold=_safe_int(
            getattr(settings, "LOW_STOCK_THRESHOLD", DEFAULT_LOW_STOCK_THRESHOLD),
            default=DEFAULT_LOW_STOCK_THRESHOLD,
            minimum=1,
        ),
        attendance_start_time=_safe_time(
            getattr(settings, "ATTENDANCE_START_TIME", DEFAULT_ATTENDANCE_START_TIME),
            default=DEFAULT_ATTENDANCE_START_TIME,
        ),
        attendance_grace_minutes=_safe_int(
            getattr(settings, "ATTENDANCE_GRACE_MINUTES", DEFAULT_ATTENDANCE_GRACE_MINUTES),
            default=DEFAULT_ATTENDANCE_GRACE_MINUTES,
            minimum=0,
        ),
    )
