import random
from datetime import datetime, timedelta

from app.models.base import utcnow


BASE_SECONDS = 30
CAP_SECONDS = 3600


def compute_backoff_seconds(attempt: int, base: int = BASE_SECONDS, cap: int = CAP_SECONDS) -> int:
    # doubles per attempt up to cap, plus up to a third (max 60s) of jitter
    delay = min(cap, base * 2 ** max(0, attempt - 1))
    return delay + random.randint(0, min(60, delay // 3))


def next_retry_at(attempt: int, now: datetime | None = None) -> datetime:
    return (now or utcnow()) + timedelta(seconds=compute_backoff_seconds(attempt))
