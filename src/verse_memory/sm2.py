"""SM-2 style scheduling for memory verse reviews."""
import math
from dataclasses import replace
from datetime import datetime, timedelta

from verse_memory.config import (
    AGAIN_EASE_PENALTY, EASY_BONUS, EASY_EASE_BONUS, FIRST_EASY_INTERVAL,
    FIRST_INTERVAL, HARD_EASE_PENALTY, HARD_GROWTH, MAX_EASE, MIN_EASE,
    SECOND_INTERVAL,
)
from verse_memory.models import Grade, ReviewState


class SchedulerError(Exception):
    """Base class for scheduler failures."""


class InvalidGrade(SchedulerError, ValueError):
    """Grade is not one of again/hard/good/easy."""


class InvalidState(SchedulerError, ValueError):
    """A stored ReviewState violates its invariants."""


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp_ease(value: float) -> float:
    return min(MAX_EASE, max(MIN_EASE, value))


def parse_grade(grade) -> Grade:
    """Accept a Grade or its string value ("again", "hard", ...)."""
    if isinstance(grade, Grade):
        return grade
    if isinstance(grade, str):
        try:
            return Grade(grade.strip().lower())
        except ValueError:
            pass
    raise InvalidGrade(f"Unknown grade: {grade!r}")


def validate_state(state: ReviewState) -> None:
    if not MIN_EASE <= state.ease_factor <= MAX_EASE:
        raise InvalidState(
            f"ease_factor {state.ease_factor} outside [{MIN_EASE}, {MAX_EASE}]"
        )
    if state.interval_days < 1:
        raise InvalidState(f"interval_days must be >= 1, got {state.interval_days}")
    if state.review_count < 0:
        raise InvalidState(f"review_count must be >= 0, got {state.review_count}")


def next_interval_and_ease(
    grade: Grade,
    interval_days: int,
    ease_factor: float,
    review_count: int,
) -> tuple[int, float]:
    """Apply one grade to an interval/ease pair.

    Args:
        grade: Recall outcome for this review.
        interval_days: Interval set by the previous review (>= 1).
        ease_factor: Current ease factor, 1.3-2.5.
        review_count: Number of reviews before this one.

    Returns:
        Tuple of (new interval in whole days, new ease factor).
    """
    if grade is Grade.AGAIN:
        return FIRST_INTERVAL, _clamp_ease(ease_factor - AGAIN_EASE_PENALTY)

    if grade is Grade.HARD:
        interval = max(1, _round_half_up(interval_days * HARD_GROWTH))
        return interval, _clamp_ease(ease_factor - HARD_EASE_PENALTY)

    if grade is Grade.GOOD:
        if review_count == 0:
            interval = FIRST_INTERVAL
        elif review_count == 1:
            interval = SECOND_INTERVAL
        else:
            interval = _round_half_up(interval_days * ease_factor)
        return max(1, interval), ease_factor

    # Easy
    if review_count == 0:
        interval = FIRST_EASY_INTERVAL
    else:
        interval = _round_half_up(interval_days * ease_factor * EASY_BONUS)
    return max(1, interval), _clamp_ease(ease_factor + EASY_EASE_BONUS)


def compute_next_state(current: ReviewState, grade, now: datetime) -> ReviewState:
    """Return the ReviewState that follows grading `current` at `now`.

    The due date is `now` plus the new interval in calendar days. The input
    state is not modified.

    Raises:
        InvalidGrade: grade is not again/hard/good/easy.
        InvalidState: current violates the ease/interval/count bounds.
    """
    grade = parse_grade(grade)
    validate_state(current)
    interval, ease = next_interval_and_ease(
        grade, current.interval_days, current.ease_factor, current.review_count,
    )
    return replace(
        current,
        due_at=now + timedelta(days=interval),
        interval_days=interval,
        ease_factor=ease,
        last_grade=grade,
        review_count=current.review_count + 1,
        last_reviewed_at=now,
    )
