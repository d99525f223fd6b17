"""Data classes for memory decks, cards and their review schedule."""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from verse_memory.config import FIRST_INTERVAL, START_EASE


class Grade(str, Enum):
    """Recall outcome chosen after a review, worst to best."""
    AGAIN = "again"
    HARD = "hard"
    GOOD = "good"
    EASY = "easy"


@dataclass
class Deck:
    id: int
    user_id: str
    title: str
    description: Optional[str] = None
    is_default: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Card:
    id: int
    user_id: str
    deck_id: int
    verse_ref: str
    added_at: Optional[datetime] = None


@dataclass(frozen=True)
class ReviewState:
    """Scheduling record attached one-to-one to a Card.

    last_grade and last_reviewed_at stay None until the first review.
    """
    due_at: datetime
    interval_days: int = FIRST_INTERVAL
    ease_factor: float = START_EASE
    last_grade: Optional[Grade] = None
    review_count: int = 0
    last_reviewed_at: Optional[datetime] = None

    @classmethod
    def initial(cls, created_at: datetime) -> "ReviewState":
        """State for a freshly added card: due immediately."""
        return cls(due_at=created_at)

    @property
    def never_reviewed(self) -> bool:
        return self.last_grade is None


@dataclass
class CardWithReview:
    card: Card
    review: ReviewState
    deck: Optional[Deck] = None


@dataclass
class MemoryStats:
    total_cards: int = 0
    due_today: int = 0
    review_streak: int = 0
    mastered_cards: int = 0
