"""Laurel CLI — review sessions, deck management, stats and the HTTP server."""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Annotated, Literal

import typer

from laurel.application.config import AppConfig, resolve_config
from laurel.application.deck_importer import import_deck, load_deck_file
from laurel.application.factory import get_card_store
from laurel.application.gamification import level_for_xp
from laurel.application.stats.service import StatsService
from laurel.application.study_service import StudyService
from laurel.domain.errors import DeckImportError, PersistenceError, StoreError
from laurel.domain.models import ReviewResponse, SessionSummary

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="laurel: Spaced repetition flashcards in your terminal.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

decks_app = typer.Typer(help="Create, inspect and import decks.", no_args_is_help=True)
app.add_typer(decks_app, name="decks")

config_app = typer.Typer(help="Manage laurel configuration.")
app.add_typer(config_app, name="config")

RESPONSE_KEYS = {
    "c": ReviewResponse.CORRECT,
    "w": ReviewResponse.WRONG,
    "s": ReviewResponse.SKIPPED,
}


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    user: Annotated[str | None, typer.Option("--user", "-u", help="Study as this user.")] = None,
    backend: Annotated[
        Literal["memory", "sqlite"] | None, typer.Option(help="Card store backend.")
    ] = None,
    db: Annotated[Path | None, typer.Option("--db", help="SQLite database path.")] = None,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 1,
):
    """Global settings for laurel."""
    ctx.ensure_object(dict)
    ctx.obj["overrides"] = {
        "user_id": user,
        "backend": backend,
        "database_path": db,
        "verbose": verbose,
    }


def _config(ctx: typer.Context) -> AppConfig:
    overrides = (ctx.obj or {}).get("overrides", {})
    config = resolve_config(overrides)
    if config.verbose >= 2:
        logging.getLogger("laurel").setLevel(logging.DEBUG)
    return config


def _print_summary(summary: SessionSummary) -> None:
    typer.echo("")
    typer.secho("Session complete!", fg="green", bold=True)
    typer.echo(f"  Cards:    {summary.total_cards}")
    typer.echo(f"  Correct:  {summary.correct_count}")
    typer.echo(f"  Wrong:    {summary.wrong_count}")
    typer.echo(f"  Skipped:  {summary.skipped_count}")
    typer.echo(f"  Accuracy: {summary.accuracy}%")
    typer.echo(f"  Mastery:  +{summary.mastery_gain}")


# ---------------------------------------------------------------------------
# Root commands
# ---------------------------------------------------------------------------


@app.command()
def review(
    ctx: typer.Context,
    deck_id: Annotated[
        str | None, typer.Argument(help="Deck to study. Omit to study every deck.")
    ] = None,
    limit: Annotated[int | None, typer.Option(help="Maximum cards this session.")] = None,
):
    """
    Study the cards due in a deck, or across all decks.

    Each card shows its front; press Enter to reveal the back, then answer
    [c]orrect, [w]rong or [s]kip.
    """
    config = _config(ctx)
    service = StudyService(get_card_store(config), config)

    async def run():
        handle = await service.start_session(config.user_id, deck_id, limit)
        if handle is None:
            typer.secho("Nothing to review right now.", fg="yellow")
            return

        session = handle.session
        while not session.is_complete:
            card = session.current_card()
            typer.echo("")
            typer.secho(
                f"[{session.cursor + 1}/{session.total_cards}] {card.front}", bold=True
            )
            if card.hint:
                typer.echo(f"  hint: {card.hint}")
            typer.prompt("Press Enter to reveal", default="", show_default=False)
            typer.echo(f"  {card.back}")

            key = typer.prompt("[c]orrect / [w]rong / [s]kip").strip().lower()[:1]
            if key not in RESPONSE_KEYS:
                typer.secho("Please answer c, w or s.", fg="red")
                continue

            try:
                outcome = await service.respond(handle.id, RESPONSE_KEYS[key])
            except PersistenceError as e:
                typer.secho(f"Could not save review: {e}", fg="red")
                continue
            if not outcome.is_skipped:
                typer.echo(f"  next review in {outcome.new_interval} day(s)")

        _print_summary(session.summary())
        try:
            await service.end_session(handle.id)
        except PersistenceError as e:
            unsaved = len(handle.pending)
            typer.secho(f"{unsaved} review(s) could not be saved: {e}", fg="red")
            raise typer.Exit(1) from e

    try:
        asyncio.run(run())
    except StoreError as e:
        typer.secho(str(e), fg="red")
        raise typer.Exit(1) from e


@app.command()
def stats(
    ctx: typer.Context,
    days: Annotated[int | None, typer.Option(help="Days of history to show (1-365).")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Show review totals, streak and recent daily activity."""
    config = _config(ctx)
    service = StatsService(get_card_store(config))

    try:
        result = asyncio.run(service.get_learning_stats(config.user_id, days or config.stats_days))
    except ValueError as e:
        typer.secho(str(e), fg="red")
        raise typer.Exit(2) from e

    if json_output:
        data = {
            "total_decks": result.total_decks,
            "total_cards": result.total_cards,
            "total_reviews": result.total_reviews,
            "due_cards": result.due_cards,
            "current_streak": result.current_streak,
            "daily_stats": [
                {
                    "date": s.day.isoformat(),
                    "cards_reviewed": s.cards_reviewed,
                    "correct_answers": s.correct_answers,
                    "wrong_answers": s.wrong_answers,
                    "accuracy": s.accuracy,
                }
                for s in result.daily
            ],
        }
        typer.echo(json.dumps(data, indent=2))
        return

    typer.echo(f"Decks: {result.total_decks}  Cards: {result.total_cards}  Due: {result.due_cards}")
    typer.echo(f"Reviews: {result.total_reviews}  Streak: {result.current_streak} day(s)")
    for s in result.daily:
        typer.echo(f"  {s.day.isoformat()}  {s.cards_reviewed:>4} reviewed  {s.accuracy:>3}%")


@app.command()
def level(
    xp: Annotated[int, typer.Argument(help="Total experience points.", min=0)],
):
    """Look up the level and title for an XP total."""
    info = level_for_xp(xp)
    typer.echo(f"Level {info.level}: {info.title}")
    typer.echo(f"Progress: {info.progress}% toward {info.next_level_xp} XP")


@app.command()
def serve(
    ctx: typer.Context,
    port: Annotated[int | None, typer.Option(help="Port to bind the server to.")] = None,
    host: Annotated[str | None, typer.Option(help="Host to bind the server to.")] = None,
    reload: Annotated[bool, typer.Option(help="Enable auto-reload.")] = False,
):
    """Start the HTTP API server."""
    import uvicorn

    config = _config(ctx)
    host = host or config.host
    port = port or config.port
    typer.secho(f"Starting Laurel Server on http://{host}:{port}", fg="green")
    uvicorn.run("laurel.server:app", host=host, port=port, reload=reload)


# ---------------------------------------------------------------------------
# Decks subgroup
# ---------------------------------------------------------------------------


@decks_app.command("list")
def decks_list(ctx: typer.Context):
    """List your decks with due counts."""
    config = _config(ctx)
    service = StatsService(get_card_store(config))
    overviews = asyncio.run(service.list_deck_overviews(config.user_id))

    if not overviews:
        typer.secho("No decks yet. Try 'laurel decks import FILE'.", fg="yellow")
        return
    for o in overviews:
        typer.echo(f"{o.deck.id}  {o.deck.name}  ({o.counts.due} due / {o.counts.total} cards)")


@decks_app.command("show")
def decks_show(
    ctx: typer.Context,
    deck_id: Annotated[str, typer.Argument(help="Deck to inspect.")],
):
    """Show a deck's settings and per-state card counts."""
    config = _config(ctx)
    service = StatsService(get_card_store(config))
    try:
        o = asyncio.run(service.get_deck_overview(deck_id))
    except StoreError as e:
        typer.secho(str(e), fg="red")
        raise typer.Exit(1) from e

    typer.secho(o.deck.name, bold=True)
    if o.deck.description:
        typer.echo(o.deck.description)
    typer.echo(f"Category: {o.deck.category}")
    typer.echo(
        f"Limits: {o.deck.new_cards_per_day} new / {o.deck.review_cards_per_day} reviews per day"
    )
    c = o.counts
    typer.echo(
        f"Cards: {c.total} total, {c.due} due "
        f"(new {c.new}, learning {c.learning}, review {c.review}, relearning {c.relearning})"
    )


@decks_app.command("import")
def decks_import(
    ctx: typer.Context,
    path: Annotated[Path, typer.Argument(help="YAML deck file.")],
):
    """Create a deck from a YAML file."""
    config = _config(ctx)
    try:
        parsed = load_deck_file(path)
    except DeckImportError as e:
        typer.secho(f"Invalid deck file: {e}", fg="red")
        raise typer.Exit(2) from e

    store = get_card_store(config)
    try:
        deck, cards = asyncio.run(import_deck(store, config.user_id, parsed))
    except StoreError as e:
        typer.secho(str(e), fg="red")
        raise typer.Exit(1) from e
    typer.secho(f"Imported '{deck.name}' ({len(cards)} cards) as {deck.id}", fg="green")


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show(ctx: typer.Context):
    """Display final resolved configuration."""
    config = _config(ctx)
    d = {k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()}
    typer.echo(json.dumps(d, indent=2))
