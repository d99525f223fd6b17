"""Dashboard statistics over review states."""
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Optional, Union

from verse_memory.config import MASTERED_THRESHOLD_DAYS, STREAK_LOOKBACK_DAYS
from verse_memory.memory import count_user_cards, list_review_states
from verse_memory.models import MemoryStats, ReviewState
from verse_memory.timeutil import as_utc, utcnow


def count_due_by(states: Iterable[ReviewState], cutoff: datetime) -> int:
    cutoff = as_utc(cutoff)
    return sum(1 for s in states if as_utc(s.due_at) <= cutoff)


def count_mastered(
    states: Iterable[ReviewState], threshold_days: int = MASTERED_THRESHOLD_DAYS,
) -> int:
    return sum(1 for s in states if s.interval_days >= threshold_days)


def compute_review_streak(
    last_reviewed_dates: Iterable[Union[date, datetime]], today: date,
) -> int:
    """Count consecutive days with a review, walking back from today.

    Returns 0 when nothing was reviewed on `today`.
    """
    reviewed = {d.date() if isinstance(d, datetime) else d for d in last_reviewed_dates}
    if isinstance(today, datetime):
        today = today.date()
    streak = 0
    for offset in range(STREAK_LOOKBACK_DAYS):
        if today - timedelta(days=offset) in reviewed:
            streak += 1
        else:
            break
    return streak


def end_of_day(day: date) -> datetime:
    """Last instant of `day` in UTC, the cutoff for "due today"."""
    return datetime.combine(day, time.max, tzinfo=timezone.utc)


def summarize(
    states: list[ReviewState], total_cards: int, now: datetime,
) -> MemoryStats:
    today = as_utc(now).date()
    reviewed_at = [s.last_reviewed_at for s in states if s.last_reviewed_at is not None]
    return MemoryStats(
        total_cards=total_cards,
        due_today=count_due_by(states, end_of_day(today)),
        review_streak=compute_review_streak(reviewed_at, today),
        mastered_cards=count_mastered(states),
    )


def get_memory_stats(db_path: str, user_id: str, now: Optional[datetime] = None) -> MemoryStats:
    """Dashboard numbers for one user, read through the review storage."""
    now = now or utcnow()
    states = list_review_states(db_path, user_id)
    return summarize(states, count_user_cards(db_path, user_id), now)
