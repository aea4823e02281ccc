"""
Typer CLI for quiz-elo-sync.

Commands:
    elosync init-db                         - Create database tables
    elosync sync                            - Sync every course visible to the token
    elosync sync COURSE_ID --full           - Re-read one course ignoring the watermark
    elosync status COURSE_ID                - Show last successful sync time
    elosync ranking COURSE_ID               - Show the course leaderboard
    elosync recommend COURSE_ID STUDENT_ID  - Suggest unattempted questions
    elosync info                            - Show configuration

Usage:
    elosync --help
    elosync sync 4242
    elosync recommend 4242 1001 --type READING --count 5
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import Optional, TypeVar

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from config import get_settings
from elosync import __version__
from elosync.canvas.client import CanvasClient
from elosync.db.database import async_session_scope, dispose_engine, init_db
from elosync.errors import CourseSyncError
from elosync.logging_setup import configure_logging
from elosync.services.ranking import (
    get_course_ranking,
    get_recommendations,
    get_recommendations_by_type,
    get_sync_status,
)
from elosync.sync.sync_service import SyncService, SyncStats

T = TypeVar("T")

app = typer.Typer(
    help="quiz-elo-sync CLI: Canvas quizzes -> dual ELO ratings",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Incremental Canvas quiz sync with student and question ratings."""
    configure_logging(level="DEBUG" if verbose else None)


def _run(coro: Awaitable[T]) -> T:
    """Run a coroutine and release pooled connections on the same loop."""

    async def runner() -> T:
        try:
            return await coro
        finally:
            await dispose_engine()

    return asyncio.run(runner())


def _stats_table(title: str, stats: dict) -> Table:
    table = Table(title=title, show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="green")
    for key, value in stats.items():
        table.add_row(key.replace("_", " ").title(), str(value))
    return table


# ========================================
# DATABASE COMMANDS
# ========================================


@app.command("init-db")
def init_database() -> None:
    """Create all tables (idempotent)."""
    _run(init_db())
    rprint("[bold green]✓ Database initialized[/bold green]")


# ========================================
# SYNC COMMANDS
# ========================================


@app.command("sync")
def sync(
    course_id: Optional[str] = typer.Argument(None, help="Canvas course id (all courses when omitted)"),
    full: bool = typer.Option(False, "--full", help="Ignore the watermark and re-read every submission"),
) -> None:
    """
    Sync quizzes and submissions from Canvas and update ratings.

    Examples:
        elosync sync                 # All courses, incremental
        elosync sync 4242            # One course, incremental
        elosync sync 4242 --full     # One course, from the epoch
    """
    settings = get_settings()
    if not settings.has_canvas_configured():
        rprint("[red]✗[/red] CANVAS_API_URL and CANVAS_API_KEY must be set")
        raise typer.Exit(code=1)

    rprint("\n[bold cyan]Canvas -> Ratings Sync[/bold cyan]")
    rprint(f"  Course: {course_id or 'all'}")
    rprint(f"  Mode: {'Full' if full else 'Incremental'}\n")

    async def run_sync():
        await init_db()
        async with CanvasClient() as canvas:
            service = SyncService(canvas=canvas)
            if course_id is None:
                return await service.sync_all_courses(full_sync=full)
            return await service.sync_course(course_id, full_sync=full)

    try:
        outcome = _run(run_sync())
    except CourseSyncError as e:
        rprint(f"\n[red]✗ Sync failed for course {e.course_id} during {e.state}:[/red] {e.cause}")
        raise typer.Exit(code=1)

    if isinstance(outcome, SyncStats):
        console.print(_stats_table(f"Course {course_id}", outcome.to_dict()))
        rprint("\n[bold green]✓ Sync complete![/bold green]")
        return

    for cid, stats in outcome.stats.items():
        console.print(_stats_table(f"Course {cid}", stats))
    if outcome.success:
        rprint(f"\n[bold green]✓ {outcome.message}[/bold green]")
    else:
        rprint(f"\n[yellow]⚠[/yellow] {outcome.message}")
        raise typer.Exit(code=1)


@app.command("status")
def status(course_id: str = typer.Argument(..., help="Canvas course id")) -> None:
    """Show when a course last synced successfully."""

    async def load():
        async with async_session_scope() as session:
            return await get_sync_status(session, course_id)

    info = _run(load())
    table = Table(title="Sync Status")
    table.add_column("Course", style="cyan")
    table.add_column("Name")
    table.add_column("Last Sync", style="green")
    table.add_column("Status")
    table.add_row(
        info.course_id,
        info.course_name or "-",
        info.last_sync.isoformat() if info.last_sync else "-",
        info.status,
    )
    console.print(table)


# ========================================
# RATING COMMANDS
# ========================================


@app.command("ranking")
def ranking(
    course_id: str = typer.Argument(..., help="Canvas course id"),
    limit: int = typer.Option(20, "--limit", "-n", min=1, help="Number of students to show"),
) -> None:
    """Show the course leaderboard."""

    async def load():
        async with async_session_scope() as session:
            return await get_course_ranking(session, course_id, limit=limit)

    entries = _run(load())
    if not entries:
        rprint(f"[yellow]⚠[/yellow] No students found for course {course_id}")
        return

    table = Table(title=f"Ranking - course {course_id}")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Student", style="cyan")
    table.add_column("Name")
    table.add_column("Rating", justify="right", style="green")
    table.add_column("Attempts", justify="right")
    for entry in entries:
        table.add_row(
            str(entry.rank),
            entry.student_id,
            entry.short_name or entry.name or "-",
            f"{entry.rating:.0f}",
            str(entry.attempts),
        )
    console.print(table)


@app.command("recommend")
def recommend(
    course_id: str = typer.Argument(..., help="Canvas course id"),
    student_id: str = typer.Argument(..., help="Canvas user id"),
    type_tag: Optional[str] = typer.Option(None, "--type", "-t", help="Only questions with this type tag"),
    count: int = typer.Option(3, "--count", "-c", min=1, max=20, help="Recommendations per type"),
) -> None:
    """Suggest unattempted questions just above the student's rating."""

    async def load():
        async with async_session_scope() as session:
            if type_tag:
                return {type_tag: await get_recommendations(session, course_id, student_id, type_tag, count)}
            return await get_recommendations_by_type(session, course_id, student_id, count)

    grouped = _run(load())
    if not any(grouped.values()):
        rprint(f"[yellow]⚠[/yellow] Nothing to recommend for student {student_id}")
        return

    for tag, recs in grouped.items():
        if not recs:
            continue
        table = Table(title=f"[{tag}]")
        table.add_column("Quiz", style="dim")
        table.add_column("Title", style="cyan")
        table.add_column("Lesson")
        table.add_column("Rating", justify="right", style="green")
        for rec in recs:
            table.add_row(rec.quiz_id, rec.title, rec.lesson or "-", f"{rec.rating:.0f}")
        console.print(table)


# ========================================
# INFO COMMANDS
# ========================================


@app.command("info")
def show_info() -> None:
    """Show configuration."""
    settings = get_settings()

    table = Table(title="quiz-elo-sync Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Database URL", settings.database_url)
    table.add_row("Canvas URL", settings.canvas_api_url or "Not set")
    table.add_row("Canvas API Key", "***" if settings.canvas_api_key else "Not set")
    table.add_row("Concurrency", str(settings.sync_concurrency))
    table.add_row("Sync Interval", f"{settings.sync_interval_minutes} min")
    table.add_row("Log Level", settings.log_level)

    console.print(table)
    logger.debug("Configuration displayed")


@app.command("version")
def show_version() -> None:
    """Show version information."""
    rprint(f"[bold]quiz-elo-sync[/bold] v{__version__}")
    rprint("  Canvas -> dual ELO ratings")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
