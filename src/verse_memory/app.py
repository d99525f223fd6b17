"""Interactive CLI application."""
import argparse
import getpass
import logging
import os
import sys

import structlog
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt, IntPrompt
from rich.table import Table

from verse_memory.db import init_db, DEFAULT_DB_PATH
from verse_memory.memory import (
    CardNotFound, DeckNotFound, add_card, create_deck, delete_card,
    get_deck_cards, get_due_cards, get_user_decks, review_card,
)
from verse_memory.models import Grade
from verse_memory.sm2 import InvalidState, parse_grade
from verse_memory.stats import get_memory_stats

console = Console()

EXIT_WORDS = ("q", "menu")
GRADE_KEYS = {
    "1": Grade.AGAIN,
    "2": Grade.HARD,
    "3": Grade.GOOD,
    "4": Grade.EASY,
}
GRADE_COLORS = {
    Grade.AGAIN: "red",
    Grade.HARD: "dark_orange",
    Grade.GOOD: "green",
    Grade.EASY: "cyan",
}


class SessionExitRequested(Exception):
    """Raised when the user types q/menu in the middle of a drill."""


def session_prompt(prompt: str, choices: list[str] | None = None) -> str:
    if choices:
        answer = Prompt.ask(prompt, choices=[*choices, *EXIT_WORDS], show_choices=False)
    else:
        answer = Prompt.ask(prompt, default="", show_default=False)
    answer = answer.strip().lower()
    if answer in EXIT_WORDS:
        raise SessionExitRequested()
    return answer


def session_grade_prompt() -> Grade:
    answer = session_prompt(
        "Grade (1=again, 2=hard, 3=good, 4=easy)",
        choices=[*GRADE_KEYS, *(g.value for g in Grade)],
    )
    return GRADE_KEYS.get(answer) or parse_grade(answer)


def setup_logging(level: str | None = None) -> None:
    """Send log events to stderr so they stay out of the rich panels on stdout."""
    level = (level or os.environ.get("VERSE_MEMORY_LOG_LEVEL") or "WARNING").upper()
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level, logging.WARNING)),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def default_user() -> str:
    return os.environ.get("VERSE_MEMORY_USER") or getpass.getuser()


def show_welcome():
    console.print(Panel(
        "[bold]Memory Verses[/bold]\n[dim]Spaced repetition for scripture memory[/dim]",
        title="Welcome", border_style="blue",
    ))


def show_menu():
    console.print("\n[bold]Commands:[/bold]")
    commands = [
        ("review", "Review cards due now"),
        ("add", "Add a verse"),
        ("decks", "List decks and their verses"),
        ("newdeck", "Create a deck"),
        ("delete", "Remove a verse"),
        ("stats", "Memory dashboard"),
        ("quit", "Exit"),
    ]
    for cmd, desc in commands:
        console.print(f"  [cyan]{cmd:<14}[/cyan] {desc}")


def run_review_session(db_path: str, user_id: str, cards: list) -> int:
    """Drill the given cards; returns how many were graded."""
    if not cards:
        console.print("[yellow]No verses due right now![/yellow]")
        return 0
    console.print(f"\n[bold]Review Session[/bold] - {len(cards)} verses\n")
    graded = 0
    for i, item in enumerate(cards, 1):
        console.print(Panel(
            f"[bold]{item.card.verse_ref}[/bold]",
            title=f"Verse {i}/{len(cards)}",
            subtitle=item.deck.title if item.deck else None,
            border_style="cyan",
        ))
        session_prompt("[dim]Recite the verse, then press Enter[/dim]")
        grade = session_grade_prompt()
        updated = review_card(db_path, user_id, item.card.id, grade)
        color = GRADE_COLORS[grade]
        console.print(
            f"[{color}]{grade.value}[/{color}] - next review in "
            f"[bold]{updated.interval_days}[/bold] day(s)\n"
        )
        graded += 1
    return graded


def cmd_review(db_path: str, user_id: str):
    cards = get_due_cards(db_path, user_id, limit=20)
    try:
        run_review_session(db_path, user_id, cards)
    except SessionExitRequested:
        console.print("[dim]Review stopped. Progress so far is saved.[/dim]")


def cmd_add(db_path: str, user_id: str):
    verse_ref = Prompt.ask("Verse reference (e.g. John 3:16)")
    decks = get_user_decks(db_path, user_id)
    deck_id = None
    if len(decks) > 1:
        for d in decks:
            console.print(f"  [cyan]{d.id}[/cyan]) {d.title}")
        deck_id = IntPrompt.ask("Deck", choices=[str(d.id) for d in decks], default=decks[0].id)
    try:
        card = add_card(db_path, user_id, verse_ref, deck_id=deck_id)
    except (DeckNotFound, ValueError) as e:
        console.print(f"[yellow]{e}[/yellow]")
        return
    console.print(f"[green]Added {card.verse_ref}. It is due for review now.[/green]")


def cmd_newdeck(db_path: str, user_id: str):
    title = Prompt.ask("Deck title")
    description = Prompt.ask("Description", default="", show_default=False) or None
    try:
        deck = create_deck(db_path, user_id, title, description)
    except ValueError as e:
        console.print(f"[yellow]{e}[/yellow]")
        return
    console.print(f"[green]Created deck '{deck.title}'.[/green]")


def cmd_decks(db_path: str, user_id: str):
    decks = get_user_decks(db_path, user_id)
    if not decks:
        console.print("[dim]No memory decks yet. Add your first verse to get started![/dim]")
        return
    for deck in decks:
        table = Table(title=deck.title + (" (default)" if deck.is_default else ""))
        table.add_column("ID", justify="right")
        table.add_column("Verse", style="cyan")
        table.add_column("Interval", justify="right")
        table.add_column("Ease", justify="right")
        table.add_column("Last grade")
        table.add_column("Due")
        for item in get_deck_cards(db_path, user_id, deck.id):
            review = item.review
            last = review.last_grade
            table.add_row(
                str(item.card.id),
                item.card.verse_ref,
                f"{review.interval_days}d",
                f"{review.ease_factor:.2f}",
                f"[{GRADE_COLORS[last]}]{last.value}[/{GRADE_COLORS[last]}]" if last else "[dim]new[/dim]",
                review.due_at.strftime("%Y-%m-%d"),
            )
        console.print(table)


def cmd_delete(db_path: str, user_id: str):
    card_id = IntPrompt.ask("Card ID to remove")
    try:
        delete_card(db_path, user_id, card_id)
    except CardNotFound as e:
        console.print(f"[red]{e}[/red]")
        return
    console.print("[green]Verse removed.[/green]")


def cmd_stats(db_path: str, user_id: str):
    stats = get_memory_stats(db_path, user_id)
    console.print(Panel(
        f"Total verses: [bold]{stats.total_cards}[/bold]\n"
        f"Due today: [bold yellow]{stats.due_today}[/bold yellow]\n"
        f"Review streak: [bold]{stats.review_streak}[/bold] day(s)\n"
        f"Mastered: [bold green]{stats.mastered_cards}[/bold green]",
        title="Memory Dashboard", border_style="blue",
    ))


COMMANDS = {
    "review": cmd_review,
    "add": cmd_add,
    "decks": cmd_decks,
    "newdeck": cmd_newdeck,
    "delete": cmd_delete,
    "stats": cmd_stats,
}


def main(argv=None):
    parser = argparse.ArgumentParser(prog="verse-memory")
    parser.add_argument("--db", default=DEFAULT_DB_PATH, help="SQLite database path")
    parser.add_argument("--user", default=None, help="User id (defaults to $VERSE_MEMORY_USER or login name)")
    parser.add_argument("--log-level", default=None, help="Log level for stderr (default WARNING)")
    args = parser.parse_args(argv)
    setup_logging(args.log_level)
    db_path = args.db
    user_id = args.user or default_user()
    init_db(db_path)

    show_welcome()

    while True:
        show_menu()
        choice = Prompt.ask("\n[bold]>[/bold]", default="review").strip().lower()
        try:
            if choice in COMMANDS:
                COMMANDS[choice](db_path, user_id)
            elif choice in ("quit", "exit", "q"):
                console.print("[dim]Keep hiding the word in your heart.[/dim]")
                break
            else:
                console.print("[red]Unknown command. Try again.[/red]")
        except KeyboardInterrupt:
            console.print("\n[dim]Use 'quit' to exit.[/dim]")
        except InvalidState as e:
            console.print(f"[red]Data integrity error: {e}[/red]")
        except Exception as e:
            console.print(f"[red]Error: {e}[/red]")


if __name__ == "__main__":
    main()
