"""Wall clock used by the pipeline. Services take it as a parameter so tests can pin time."""

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
