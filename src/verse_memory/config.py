"""Tuning constants for the memory verse scheduler."""

START_EASE = 2.5
MIN_EASE = 1.3
MAX_EASE = 2.5

AGAIN_EASE_PENALTY = 0.2
HARD_EASE_PENALTY = 0.15
EASY_EASE_BONUS = 0.15

HARD_GROWTH = 1.2
EASY_BONUS = 1.3       # extra multiplier on top of the ease factor
FIRST_INTERVAL = 1     # days
SECOND_INTERVAL = 6
FIRST_EASY_INTERVAL = 4

MASTERED_THRESHOLD_DAYS = 21
STREAK_LOOKBACK_DAYS = 365

DEFAULT_DECK_TITLE = "My Verses"
