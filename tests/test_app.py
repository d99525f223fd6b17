from unittest.mock import patch

import pytest
import structlog

from verse_memory.app import (
    SessionExitRequested, cmd_decks, cmd_delete, cmd_newdeck, cmd_review, main,
    run_review_session, session_grade_prompt, session_prompt,
)
from verse_memory.memory import (
    CardNotFound, add_card, get_due_cards, get_review_state, get_user_decks, review_card,
)
from verse_memory.models import Grade


def test_session_prompt_raises_on_q():
    with patch("verse_memory.app.Prompt.ask", return_value="q"):
        with pytest.raises(SessionExitRequested):
            session_prompt("test prompt")


def test_session_prompt_raises_on_menu():
    with patch("verse_memory.app.Prompt.ask", return_value="menu"):
        with pytest.raises(SessionExitRequested):
            session_prompt("test prompt")


def test_session_prompt_returns_normal_input():
    with patch("verse_memory.app.Prompt.ask", return_value="Hello"):
        assert session_prompt("test prompt") == "hello"


@pytest.mark.parametrize("answer,expected", [
    ("1", Grade.AGAIN),
    ("2", Grade.HARD),
    ("3", Grade.GOOD),
    ("4", Grade.EASY),
    ("easy", Grade.EASY),
])
def test_session_grade_prompt(answer, expected):
    with patch("verse_memory.app.Prompt.ask", return_value=answer):
        assert session_grade_prompt() is expected


def test_run_review_session_empty(tmp_db):
    assert run_review_session(tmp_db, "alice", []) == 0


def test_run_review_session_grades_cards(tmp_db, jan1):
    add_card(tmp_db, "alice", "John 3:16", now=jan1)
    add_card(tmp_db, "alice", "Psalm 23:1", now=jan1)
    cards = get_due_cards(tmp_db, "alice", now=jan1)
    with patch("verse_memory.app.Prompt.ask", side_effect=["", "3", "", "4"]):
        assert run_review_session(tmp_db, "alice", cards) == 2
    assert get_review_state(tmp_db, cards[0].card.id).last_grade is Grade.GOOD
    assert get_review_state(tmp_db, cards[1].card.id).last_grade is Grade.EASY


def test_run_review_session_exits_on_q(tmp_db, jan1):
    """User types 'q' on the second verse; the first review is kept."""
    add_card(tmp_db, "alice", "John 3:16", now=jan1)
    add_card(tmp_db, "alice", "Psalm 23:1", now=jan1)
    cards = get_due_cards(tmp_db, "alice", now=jan1)
    with patch("verse_memory.app.Prompt.ask", side_effect=["", "3", "q"]):
        with pytest.raises(SessionExitRequested):
            run_review_session(tmp_db, "alice", cards)
    assert get_review_state(tmp_db, cards[0].card.id).review_count == 1
    assert get_review_state(tmp_db, cards[1].card.id).review_count == 0


def test_main_add_then_quit(tmp_db):
    with patch("verse_memory.app.Prompt.ask", side_effect=["add", "John 3:16", "stats", "quit"]):
        main(["--db", tmp_db, "--user", "alice"])
    decks = get_user_decks(tmp_db, "alice")
    assert len(decks) == 1
    assert decks[0].is_default


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()


def test_main_keeps_log_events_off_stdout(tmp_db, capsys):
    with patch("verse_memory.app.Prompt.ask", side_effect=["add", "John 3:16", "quit"]):
        main(["--db", tmp_db, "--user", "alice", "--log-level", "info"])
    captured = capsys.readouterr()
    assert "Added John 3:16" in captured.out
    assert "card_added" not in captured.out
    assert "default_deck_created" not in captured.out
    assert "card_added" in captured.err


def test_main_default_log_level_is_quiet(tmp_db, capsys):
    with patch("verse_memory.app.Prompt.ask", side_effect=["add", "John 3:16", "quit"]):
        main(["--db", tmp_db, "--user", "alice"])
    captured = capsys.readouterr()
    assert "card_added" not in captured.out
    assert "card_added" not in captured.err


def test_cmd_newdeck_creates_deck(tmp_db, capsys):
    with patch("verse_memory.app.Prompt.ask", side_effect=["Gospels", "Red letters"]):
        cmd_newdeck(tmp_db, "alice")
    decks = get_user_decks(tmp_db, "alice")
    assert [d.title for d in decks] == ["Gospels"]
    assert decks[0].description == "Red letters"
    assert "Created deck 'Gospels'" in capsys.readouterr().out


def test_cmd_newdeck_blank_title(tmp_db, capsys):
    with patch("verse_memory.app.Prompt.ask", side_effect=["  ", ""]):
        cmd_newdeck(tmp_db, "alice")
    assert get_user_decks(tmp_db, "alice") == []
    assert "cannot be empty" in capsys.readouterr().out


def test_cmd_decks_shows_grades(tmp_db, jan1, capsys):
    reviewed = add_card(tmp_db, "alice", "John 3:16", now=jan1)
    add_card(tmp_db, "alice", "Psalm 23:1", now=jan1)
    review_card(tmp_db, "alice", reviewed.id, Grade.GOOD, now=jan1)
    cmd_decks(tmp_db, "alice")
    out = capsys.readouterr().out
    assert "My Verses (default)" in out
    assert "John 3:16" in out
    assert "good" in out
    assert "new" in out


def test_cmd_decks_empty(tmp_db, capsys):
    cmd_decks(tmp_db, "alice")
    assert "No memory decks yet" in capsys.readouterr().out


def test_cmd_delete_own_card(tmp_db, jan1, capsys):
    card = add_card(tmp_db, "alice", "John 3:16", now=jan1)
    with patch("verse_memory.app.IntPrompt.ask", return_value=card.id):
        cmd_delete(tmp_db, "alice")
    assert "Verse removed" in capsys.readouterr().out
    with pytest.raises(CardNotFound):
        get_review_state(tmp_db, card.id)


def test_cmd_delete_other_users_card(tmp_db, jan1, capsys):
    bobs = add_card(tmp_db, "bob", "Romans 8:28", now=jan1)
    with patch("verse_memory.app.IntPrompt.ask", return_value=bobs.id):
        cmd_delete(tmp_db, "alice")
    assert "does not exist" in capsys.readouterr().out
    assert get_review_state(tmp_db, bobs.id).review_count == 0


def test_cmd_review_grades_due_card(tmp_db, jan1, capsys):
    card = add_card(tmp_db, "alice", "John 3:16", now=jan1)
    with patch("verse_memory.app.Prompt.ask", side_effect=["", "4"]):
        cmd_review(tmp_db, "alice")
    assert "next review in" in capsys.readouterr().out
    state = get_review_state(tmp_db, card.id)
    assert state.last_grade is Grade.EASY
    assert state.interval_days == 4


def test_cmd_review_stops_on_q(tmp_db, jan1, capsys):
    card = add_card(tmp_db, "alice", "John 3:16", now=jan1)
    with patch("verse_memory.app.Prompt.ask", side_effect=["menu"]):
        cmd_review(tmp_db, "alice")
    assert "Review stopped" in capsys.readouterr().out
    assert get_review_state(tmp_db, card.id).review_count == 0
