"""
Typer CLI for the ATP mastery engine.

Commands:
    atp-mastery init-db                     - Initialize database tables
    atp-mastery phase --days 30             - Classify days-until-exam
    atp-mastery phase --written 2026-11-20 --oral 2027-01-10
    atp-mastery mastery USER                - Show a user's skill mastery
    atp-mastery add-card USER TYPE ID       - Add a review card
    atp-mastery due USER                    - Show cards due for review
    atp-mastery review USER CARD QUALITY    - Rate a card review (0-5)
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import date
from typing import Annotated, Iterator, Optional

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from atp_mastery.core.exam_phase import classify_exam_phase, days_until_exam, dominant_mode
from atp_mastery.core.exceptions import UnknownCardError
from atp_mastery.core.logging_setup import configure_logging
from atp_mastery.core.mastery import MasteryLevel
from atp_mastery.db.database import init_db, session_scope
from atp_mastery.integrations.notifier import build_notifier
from atp_mastery.review.stats import card_maturity
from atp_mastery.study.mastery_service import MasteryService
from config import get_settings

app = typer.Typer(
    help="ATP mastery engine: mastery tracking, exam gates and spaced review",
    no_args_is_help=True,
)

console = Console()

PHASE_COLORS = {"distant": "green", "approaching": "yellow", "critical": "red"}
GATE_COLORS = {"STUDYING": "dim", "PRACTICING": "cyan", "EXAM_READY": "green"}


def _parse_date(value: str | None, option: str) -> date | None:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise typer.BadParameter(f"Expected YYYY-MM-DD, got {value!r}", param_hint=option)


@contextmanager
def service_scope() -> Iterator[MasteryService]:
    """MasteryService bound to a transactional session; the notifier is closed on exit."""
    settings = get_settings()
    notifier = build_notifier(settings)
    try:
        with session_scope() as session:
            yield MasteryService(session, settings.get_tuning(), notifier)
    finally:
        notifier.close()


@app.command("init-db")
def db_init() -> None:
    """
    Initialize database tables from SQLAlchemy models.

    Safe to run multiple times (idempotent).
    """
    logger.info("Initializing database tables...")
    init_db()
    rprint("[green]✓[/green] Database initialized!")


@app.command("phase")
def show_phase(
    days: Annotated[Optional[int], typer.Option("--days", "-d", help="Days until the exam")] = None,
    written: Annotated[Optional[str], typer.Option("--written", help="Written exam date (YYYY-MM-DD)")] = None,
    oral: Annotated[Optional[str], typer.Option("--oral", help="Oral exam date (YYYY-MM-DD)")] = None,
    today: Annotated[Optional[str], typer.Option("--today", help="Reference date (YYYY-MM-DD)")] = None,
) -> None:
    """Classify the exam phase and pick the dominant exam."""
    tuning = get_settings().get_tuning()

    if days is not None:
        phase = classify_exam_phase(days, tuning)
        label = phase.value if phase else "none"
        rprint(f"Phase: [{PHASE_COLORS.get(label, 'dim')}]{label}[/]")
        return

    reference = _parse_date(today, "--today") or date.today()
    days_written = days_until_exam(_parse_date(written, "--written"), reference)
    days_oral = days_until_exam(_parse_date(oral, "--oral"), reference)

    table = Table(title=f"Exam Phase ({reference.isoformat()})")
    table.add_column("Exam", style="cyan")
    table.add_column("Days", justify="right")
    table.add_column("Phase")

    for name, remaining in (("Written", days_written), ("Oral", days_oral)):
        phase = classify_exam_phase(remaining, tuning)
        label = phase.value if phase else "none"
        table.add_row(
            name,
            "-" if remaining is None else str(remaining),
            f"[{PHASE_COLORS.get(label, 'dim')}]{label}[/]",
        )

    console.print(table)
    mode = dominant_mode(days_written, days_oral, tuning)
    rprint(f"Dominant mode: [bold]{mode.value if mode else 'none'}[/bold]")


@app.command("mastery")
def show_mastery(
    user_id: Annotated[str, typer.Argument(help="User id")],
) -> None:
    """Show a user's per-skill mastery and gate state."""
    with service_scope() as service:
        states = service.get_mastery_states(user_id)

    if not states:
        rprint(f"[yellow]No mastery data for {user_id}[/yellow]")
        return

    table = Table(title=f"Mastery: {user_id}")
    table.add_column("Skill", style="cyan")
    table.add_column("pMastery", justify="right")
    table.add_column("Level")
    table.add_column("Stability", justify="right")
    table.add_column("Attempts", justify="right")
    table.add_column("Gate")
    table.add_column("Next Review")

    for state in states:
        level = MasteryLevel.from_score(state.p_mastery)
        gate = state.gate.value
        table.add_row(
            state.skill_id,
            f"{state.p_mastery:.0%}",
            f"[{level.color}]{level.display_name}[/]",
            f"{state.stability:.2f}",
            str(state.attempt_count),
            f"[{GATE_COLORS.get(gate, 'dim')}]{gate}[/]",
            state.next_review_date.isoformat() if state.next_review_date else "-",
        )

    console.print(table)


@app.command("add-card")
def add_card(
    user_id: Annotated[str, typer.Argument(help="User id")],
    content_type: Annotated[str, typer.Argument(help="case, concept, provision, question or flashcard")],
    content_id: Annotated[str, typer.Argument(help="Content id")],
    title: Annotated[str, typer.Option("--title", "-t", help="Card title")] = "",
    unit: Annotated[Optional[str], typer.Option("--unit", help="ATP unit id")] = None,
    today: Annotated[Optional[str], typer.Option("--today", help="Creation date (YYYY-MM-DD)")] = None,
) -> None:
    """Add reviewable content to a user's SM-2 queue."""
    with service_scope() as service:
        card = service.add_card(
            user_id,
            content_type,
            content_id,
            title=title,
            unit_id=unit,
            today=_parse_date(today, "--today"),
        )
    rprint(f"[green]✓[/green] Card {card.card_id} due {card.next_review_date}")


@app.command("due")
def show_due(
    user_id: Annotated[str, typer.Argument(help="User id")],
    limit: Annotated[Optional[int], typer.Option("--limit", "-l", help="Max cards to show")] = None,
    today: Annotated[Optional[str], typer.Option("--today", help="Reference date (YYYY-MM-DD)")] = None,
) -> None:
    """Show cards due for review, most urgent first."""
    reference = _parse_date(today, "--today") or date.today()
    with service_scope() as service:
        cards = service.due_cards(user_id, reference, limit)

    if not cards:
        rprint("[green]No cards due.[/green]")
        return

    table = Table(title=f"Due Cards: {user_id} ({len(cards)})")
    table.add_column("Card", style="dim")
    table.add_column("Content", style="cyan")
    table.add_column("Type")
    table.add_column("Due")
    table.add_column("EF", justify="right")
    table.add_column("Maturity")

    for card in cards:
        table.add_row(
            card.card_id,
            card.title or card.content_id,
            card.content_type,
            card.next_review_date.isoformat() if card.next_review_date else "new",
            f"{card.easiness_factor:.2f}",
            card_maturity(card).value,
        )

    console.print(table)


@app.command("review")
def review_card(
    user_id: Annotated[str, typer.Argument(help="User id")],
    card_id: Annotated[str, typer.Argument(help="Card id")],
    quality: Annotated[int, typer.Argument(min=0, max=5, help="Recall quality 0-5")],
    today: Annotated[Optional[str], typer.Option("--today", help="Review date (YYYY-MM-DD)")] = None,
) -> None:
    """Apply a quality rating to a card."""
    try:
        with service_scope() as service:
            card = service.review_card(
                user_id, card_id, quality, _parse_date(today, "--today")
            )
    except UnknownCardError as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)

    rprint(
        f"[green]✓[/green] Next review {card.next_review_date} "
        f"(interval {card.interval}d, EF {card.easiness_factor:.2f}, reps {card.repetitions})"
    )


def main() -> None:
    """Entry point for the CLI."""
    configure_logging(get_settings())
    app()


if __name__ == "__main__":
    main()
