"""Memory decks, verse cards and review persistence."""
import sqlite3
from datetime import datetime
from typing import Optional

import structlog

from verse_memory.config import DEFAULT_DECK_TITLE
from verse_memory.db import get_connection
from verse_memory.models import Card, CardWithReview, Deck, Grade, ReviewState
from verse_memory.sm2 import InvalidState, compute_next_state, parse_grade
from verse_memory.timeutil import from_iso, to_iso, utcnow

logger = structlog.get_logger()


class CardNotFound(LookupError):
    """Card is missing or belongs to another user."""


class DeckNotFound(CardNotFound):
    """Deck is missing or belongs to another user."""


class DuplicateCard(ValueError):
    pass


def _deck_from_row(row) -> Deck:
    return Deck(
        id=row["id"],
        user_id=row["user_id"],
        title=row["title"],
        description=row["description"],
        is_default=bool(row["is_default"]),
        created_at=from_iso(row["created_at"]),
        updated_at=from_iso(row["updated_at"]),
    )


def _card_from_row(row) -> Card:
    return Card(
        id=row["id"],
        user_id=row["user_id"],
        deck_id=row["deck_id"],
        verse_ref=row["verse_ref"],
        added_at=from_iso(row["added_at"]),
    )


def _review_from_row(row) -> ReviewState:
    return ReviewState(
        due_at=from_iso(row["due_at"]),
        interval_days=row["interval_days"],
        ease_factor=row["ease_factor"],
        last_grade=Grade(row["last_grade"]) if row["last_grade"] else None,
        review_count=row["review_count"],
        last_reviewed_at=from_iso(row["last_reviewed_at"]),
    )


# --- Review state storage ---


def get_review_state(db_path: str, card_id: int) -> ReviewState:
    conn = get_connection(db_path)
    row = conn.execute("SELECT * FROM memory_reviews WHERE card_id = ?", (card_id,)).fetchone()
    conn.close()
    if row is None:
        raise CardNotFound(f"No review record for card {card_id}")
    return _review_from_row(row)


def _write_review_state(conn, card_id: int, state: ReviewState) -> int:
    cursor = conn.execute(
        """UPDATE memory_reviews SET due_at=?, interval_days=?, ease_factor=?,
        last_reviewed_at=?, last_grade=?, review_count=?, updated_at=?
        WHERE card_id=?""",
        (
            to_iso(state.due_at), state.interval_days, state.ease_factor,
            to_iso(state.last_reviewed_at),
            state.last_grade.value if state.last_grade else None,
            state.review_count, to_iso(utcnow()), card_id,
        ),
    )
    return cursor.rowcount


def put_review_state(db_path: str, card_id: int, state: ReviewState) -> None:
    conn = get_connection(db_path)
    updated = _write_review_state(conn, card_id, state)
    conn.commit()
    conn.close()
    if not updated:
        raise CardNotFound(f"No review record for card {card_id}")


def list_review_states(db_path: str, user_id: str) -> list[ReviewState]:
    conn = get_connection(db_path)
    rows = conn.execute(
        """SELECT r.* FROM memory_reviews r
        JOIN memory_cards c ON r.card_id = c.id
        WHERE c.user_id = ?
        ORDER BY r.due_at""",
        (user_id,),
    ).fetchall()
    conn.close()
    return [_review_from_row(r) for r in rows]


# --- Decks ---


def get_user_decks(db_path: str, user_id: str) -> list[Deck]:
    conn = get_connection(db_path)
    rows = conn.execute(
        "SELECT * FROM memory_decks WHERE user_id = ? ORDER BY is_default DESC, title",
        (user_id,),
    ).fetchall()
    conn.close()
    return [_deck_from_row(r) for r in rows]


def _insert_deck(conn, user_id: str, title: str, description: Optional[str], is_default: bool) -> int:
    now = to_iso(utcnow())
    cursor = conn.execute(
        """INSERT INTO memory_decks (user_id, title, description, is_default, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?)""",
        (user_id, title, description, int(is_default), now, now),
    )
    return cursor.lastrowid


def get_or_create_default_deck(db_path: str, user_id: str) -> Deck:
    conn = get_connection(db_path)
    row = conn.execute(
        "SELECT * FROM memory_decks WHERE user_id = ? AND is_default = 1", (user_id,)
    ).fetchone()
    if row is None:
        deck_id = _insert_deck(conn, user_id, DEFAULT_DECK_TITLE, None, True)
        conn.commit()
        row = conn.execute("SELECT * FROM memory_decks WHERE id = ?", (deck_id,)).fetchone()
        logger.info("default_deck_created", user_id=user_id, deck_id=deck_id)
    conn.close()
    return _deck_from_row(row)


def create_deck(db_path: str, user_id: str, title: str, description: Optional[str] = None) -> Deck:
    title = title.strip()
    if not title:
        raise ValueError("Deck title cannot be empty")
    conn = get_connection(db_path)
    deck_id = _insert_deck(conn, user_id, title, description, False)
    conn.commit()
    row = conn.execute("SELECT * FROM memory_decks WHERE id = ?", (deck_id,)).fetchone()
    conn.close()
    logger.info("deck_created", user_id=user_id, deck_id=deck_id, title=title)
    return _deck_from_row(row)


# --- Cards ---


def add_card(
    db_path: str,
    user_id: str,
    verse_ref: str,
    deck_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Card:
    """Add a verse to a deck together with its initial review record.

    Falls back to the user's default deck. The new card is due immediately.
    """
    verse_ref = verse_ref.strip()
    if not verse_ref:
        raise ValueError("Verse reference cannot be empty")
    if deck_id is None:
        deck_id = get_or_create_default_deck(db_path, user_id).id
    now = now or utcnow()

    conn = get_connection(db_path)
    try:
        deck = conn.execute(
            "SELECT id FROM memory_decks WHERE id = ? AND user_id = ?", (deck_id, user_id)
        ).fetchone()
        if deck is None:
            raise DeckNotFound(f"Deck {deck_id} does not exist")
        existing = conn.execute(
            "SELECT id FROM memory_cards WHERE user_id = ? AND deck_id = ? AND verse_ref = ?",
            (user_id, deck_id, verse_ref),
        ).fetchone()
        if existing:
            raise DuplicateCard("This verse is already in your memory deck")
        initial = ReviewState.initial(now)
        try:
            cursor = conn.execute(
                "INSERT INTO memory_cards (user_id, deck_id, verse_ref, added_at) VALUES (?, ?, ?, ?)",
                (user_id, deck_id, verse_ref, to_iso(now)),
            )
            card_id = cursor.lastrowid
            conn.execute(
                """INSERT INTO memory_reviews
                (card_id, due_at, interval_days, ease_factor, review_count, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (card_id, to_iso(initial.due_at), initial.interval_days, initial.ease_factor,
                 initial.review_count, to_iso(now), to_iso(now)),
            )
        except sqlite3.IntegrityError as e:
            # Lost a race with a concurrent insert or deck delete
            if "UNIQUE" in str(e):
                raise DuplicateCard("This verse is already in your memory deck") from e
            raise DeckNotFound(f"Deck {deck_id} does not exist") from e
        conn.commit()
        row = conn.execute("SELECT * FROM memory_cards WHERE id = ?", (card_id,)).fetchone()
    finally:
        conn.close()
    logger.info("card_added", user_id=user_id, card_id=card_id, deck_id=deck_id, verse_ref=verse_ref)
    return _card_from_row(row)


_CARD_WITH_REVIEW_SQL = """SELECT c.*,
    r.due_at, r.interval_days, r.ease_factor, r.last_reviewed_at, r.last_grade, r.review_count,
    d.id AS d_id, d.user_id AS d_user_id, d.title AS d_title, d.description AS d_description,
    d.is_default AS d_is_default, d.created_at AS d_created_at, d.updated_at AS d_updated_at
    FROM memory_cards c
    JOIN memory_reviews r ON r.card_id = c.id
    JOIN memory_decks d ON c.deck_id = d.id"""


def _card_with_review_from_row(row) -> CardWithReview:
    deck = Deck(
        id=row["d_id"],
        user_id=row["d_user_id"],
        title=row["d_title"],
        description=row["d_description"],
        is_default=bool(row["d_is_default"]),
        created_at=from_iso(row["d_created_at"]),
        updated_at=from_iso(row["d_updated_at"]),
    )
    return CardWithReview(card=_card_from_row(row), review=_review_from_row(row), deck=deck)


def get_due_cards(
    db_path: str, user_id: str, now: Optional[datetime] = None, limit: int = 20,
) -> list[CardWithReview]:
    now = now or utcnow()
    conn = get_connection(db_path)
    rows = conn.execute(
        _CARD_WITH_REVIEW_SQL + """
        WHERE c.user_id = ? AND r.due_at <= ?
        ORDER BY r.due_at ASC, c.id ASC
        LIMIT ?""",
        (user_id, to_iso(now), limit),
    ).fetchall()
    conn.close()
    return [_card_with_review_from_row(r) for r in rows]


def get_deck_cards(db_path: str, user_id: str, deck_id: int) -> list[CardWithReview]:
    conn = get_connection(db_path)
    deck = conn.execute(
        "SELECT id FROM memory_decks WHERE id = ? AND user_id = ?", (deck_id, user_id)
    ).fetchone()
    if deck is None:
        conn.close()
        raise DeckNotFound(f"Deck {deck_id} does not exist")
    rows = conn.execute(
        _CARD_WITH_REVIEW_SQL + """
        WHERE c.deck_id = ? AND c.user_id = ?
        ORDER BY c.added_at DESC, c.id DESC""",
        (deck_id, user_id),
    ).fetchall()
    conn.close()
    return [_card_with_review_from_row(r) for r in rows]


def count_user_cards(db_path: str, user_id: str) -> int:
    conn = get_connection(db_path)
    count = conn.execute("SELECT COUNT(*) FROM memory_cards WHERE user_id = ?", (user_id,)).fetchone()[0]
    conn.close()
    return count


def review_card(
    db_path: str, user_id: str, card_id: int, grade, now: Optional[datetime] = None,
) -> ReviewState:
    """Grade one of the user's cards and persist its next review state in one transaction."""
    grade = parse_grade(grade)
    now = now or utcnow()
    conn = get_connection(db_path)
    try:
        row = conn.execute(
            """SELECT r.* FROM memory_reviews r
            JOIN memory_cards c ON r.card_id = c.id
            WHERE r.card_id = ? AND c.user_id = ?""",
            (card_id, user_id),
        ).fetchone()
        if row is None:
            raise CardNotFound(f"No review record for card {card_id}")
        current = _review_from_row(row)
        try:
            updated = compute_next_state(current, grade, now)
        except InvalidState as e:
            logger.error("review_state_invalid", card_id=card_id, error=str(e))
            raise
        _write_review_state(conn, card_id, updated)
        conn.commit()
    finally:
        conn.close()
    logger.info("review_scheduled",
        user_id=user_id,
        card_id=card_id,
        grade=grade.value,
        interval_days=updated.interval_days,
        ease_factor=updated.ease_factor,
        due_at=to_iso(updated.due_at),
    )
    return updated


def delete_card(db_path: str, user_id: str, card_id: int) -> None:
    conn = get_connection(db_path)
    deleted = conn.execute(
        "DELETE FROM memory_cards WHERE id = ? AND user_id = ?", (card_id, user_id)
    ).rowcount
    conn.commit()
    conn.close()
    if not deleted:
        raise CardNotFound(f"Card {card_id} does not exist")
    logger.info("card_deleted", user_id=user_id, card_id=card_id)
