"""CLI interface for moodscope.

Typer-based command-line interface with Rich output formatting.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from moodscope import __version__
from moodscope.exceptions import MoodscopeError
from moodscope.isrc import validate_and_normalize_isrc
from moodscope.project import ProjectManager, Services
from moodscope.prompts import format_audio_features
from moodscope.types import IngestionRequest

__all__ = ["app"]

app = typer.Typer(
    name="moodscope",
    help="Mood and theme discovery over a personal music catalogue.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
console = Console()


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging"),
    ] = False,
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=verbose)],
        force=True,
    )


def _services() -> Services:
    """Locate the project and build its services, exiting on failure."""
    root = ProjectManager.find_project_root()
    if root is None:
        console.print(
            "[yellow]No moodscope project found.[/yellow] Run [bold]moodscope init[/bold] first."
        )
        raise typer.Exit(code=1)
    try:
        return Services(ProjectManager(root))
    except MoodscopeError as e:
        console.print(f"[red]Failed to load project:[/red] {e}")
        raise typer.Exit(code=1) from e


def _normalize_or_exit(isrc: str) -> str:
    normalized = validate_and_normalize_isrc(isrc)
    if normalized is None:
        console.print(f"[red]Invalid ISRC:[/red] {isrc}")
        raise typer.Exit(code=1)
    return normalized


@app.command()
def version() -> None:
    """Show moodscope version."""
    console.print(f"moodscope {__version__}")


@app.command()
def init(
    user: Annotated[
        str,
        typer.Option("--user", "-u", help="Default user id for searches"),
    ] = "",
    embedding: Annotated[
        str,
        typer.Option("--embedding", "-e", help="Embedding provider (tei, openai)"),
    ] = "",
) -> None:
    """Initialize a new moodscope project in the current directory."""
    pm = ProjectManager()
    try:
        project_dir = pm.init(user_id=user, embedding_provider=embedding)
    except (MoodscopeError, OSError) as e:
        console.print(f"[red]Failed to initialize project:[/red] {e}")
        raise typer.Exit(code=1) from e

    console.print(f"[green]Initialized moodscope project[/green] at {project_dir}")

    console.print("\nCreated:")
    console.print(f"  {project_dir / 'config.toml'}")
    console.print(f"  {project_dir / 'index'}")

    console.print("\nNext steps:")
    console.print("  moodscope ingest <ISRC> --title ... --artist ... --album ...")
    console.print("  moodscope search \"<mood or theme>\"")


@app.command()
def status() -> None:
    """Show project status: indexed tracks, providers, backfill progress."""
    root = ProjectManager.find_project_root() or Path.cwd()
    pm = ProjectManager(root)
    try:
        st = pm.status()
    except MoodscopeError as e:
        console.print(f"[red]Failed to read project status:[/red] {e}")
        raise typer.Exit(code=1) from e

    if not st.initialized:
        console.print(
            "[yellow]No moodscope project found.[/yellow] Run [bold]moodscope init[/bold] first."
        )
        raise typer.Exit(code=1)

    console.print(f"[bold]moodscope project:[/bold] {st.root.name}")

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("metric", style="dim")
    table.add_column("value", style="bold")
    table.add_row("Tracks", str(st.track_count))
    if st.config:
        table.add_row("Embedding", f"{st.config.embedding.provider} ({st.config.embedding.model})")
        table.add_row("LLM", st.config.llm.provider)
    if st.backfill:
        state = "complete" if st.backfill.is_complete else "in progress"
        table.add_row(
            "Backfill", f"{state}, {st.backfill.processed_count} processed"
        )
    console.print(table)

    if st.track_count == 0:
        console.print(
            "\n[dim]No tracks indexed yet. Run [bold]moodscope ingest <ISRC>[/bold] to start.[/dim]"
        )


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Mood, theme or feeling to search for")],
    page: Annotated[
        int,
        typer.Option("--page", "-p", help="Zero-based page number"),
    ] = 0,
    page_size: Annotated[
        int | None,
        typer.Option("--page-size", "-n", help="Results per page"),
    ] = None,
    user: Annotated[
        str | None,
        typer.Option("--user", "-u", help="User id for this search"),
    ] = None,
) -> None:
    """Search indexed tracks by mood or theme."""
    services = _services()
    try:
        result = services.discovery.search(query, page=page, page_size=page_size, user_id=user)
    except MoodscopeError as e:
        console.print(f"[red]Search unavailable:[/red] {e}")
        raise typer.Exit(code=1) from e
    finally:
        services.close()

    if not result.ok:
        hint = " (retry later)" if result.retryable else ""
        console.print(f"[red]{result.code.value}:[/red] {result.message}{hint}")
        raise typer.Exit(code=1)

    if len(result.expanded_queries) > 1:
        console.print(f"[dim]Searched as: {'; '.join(result.expanded_queries)}[/dim]")

    if not result.results:
        console.print("[dim]No matching tracks.[/dim]")
        return

    table = Table(box=None, padding=(0, 2))
    table.add_column("#", style="dim", justify="right")
    table.add_column("Title", style="bold")
    table.add_column("Artist")
    table.add_column("Album", style="dim")
    table.add_column("ISRC", style="cyan")
    table.add_column("Score", justify="right")
    first = result.page * result.page_size
    for position, track in enumerate(result.results, start=first + 1):
        table.add_row(
            str(position), track.title, track.artist, track.album, track.isrc, f"{track.score:.4f}"
        )
    console.print(table)

    if result.has_more:
        console.print(f"\n[dim]More results: --page {result.page + 1}[/dim]")


@app.command()
def ingest(
    isrc: Annotated[str, typer.Argument(help="ISRC of the track")],
    title: Annotated[str, typer.Option("--title", "-t", help="Track title")],
    artist: Annotated[str, typer.Option("--artist", "-a", help="Artist name")],
    album: Annotated[str, typer.Option("--album", help="Album title")] = "",
    artwork_url: Annotated[
        str | None,
        typer.Option("--artwork-url", help="Album artwork URL"),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Re-ingest even if recently completed"),
    ] = False,
) -> None:
    """Ingest one track now (fetch signals, interpret, embed, store)."""
    normalized = _normalize_or_exit(isrc)
    services = _services()
    request = IngestionRequest(
        isrc=normalized,
        title=title,
        artist=artist,
        album=album,
        artwork_url=artwork_url,
        force=force,
    )

    console.print(f"Ingesting [bold]{title}[/bold] ({normalized}) ...")
    try:
        summary = services.runtime.run(request)
    except MoodscopeError as e:
        console.print(f"[red]Ingestion failed:[/red] {e}")
        raise typer.Exit(code=1) from e
    finally:
        services.close()

    if summary is None:
        console.print("[dim]Skipped: already ingested recently (use --force).[/dim]")
        return

    flags = [
        ("lyrics", summary.has_lyrics),
        ("audio features", summary.has_audio_features),
        ("interpretation", summary.has_interpretation),
        ("short description", summary.has_short_description),
    ]
    found = ", ".join(name for name, present in flags if present) or "metadata only"
    console.print(f"  [green]Stored {normalized}[/green] ({found}) in {summary.duration_ms}ms")


@app.command()
def schedule(
    isrcs: Annotated[list[str], typer.Argument(help="ISRC(s) to schedule")],
    title: Annotated[str, typer.Option("--title", "-t", help="Track title")] = "",
    artist: Annotated[str, typer.Option("--artist", "-a", help="Artist name")] = "",
    album: Annotated[str, typer.Option("--album", help="Album title")] = "",
) -> None:
    """Schedule background ingestion, skipping invalid or already-indexed ISRCs."""
    services = _services()
    scheduled = 0
    try:
        for isrc in isrcs:
            request = IngestionRequest(isrc=isrc, title=title, artist=artist, album=album)
            result = services.scheduler.schedule_track(request)
            if result.scheduled:
                scheduled += 1
                console.print(f"  [green]Scheduled[/green] {result.isrc}")
            else:
                console.print(f"  [dim]Skipped {isrc or '(empty)'} ({result.reason})[/dim]")
    finally:
        # Wait for the dispatched runs before the process exits
        services.close(wait=True)

    console.print(f"\n{scheduled} of {len(isrcs)} track(s) scheduled")


@app.command()
def backfill(
    reset: Annotated[
        bool,
        typer.Option("--reset", help="Discard saved progress and start over"),
    ] = False,
) -> None:
    """Generate short descriptions for indexed tracks that lack one."""
    services = _services()

    def _on_track(payload, description):  # type: ignore[no-untyped-def]
        if description is None:
            console.print(f"  [red]Failed[/red] {payload.title} ({payload.isrc})")
        else:
            console.print(f"  [green]Described[/green] {payload.title}: {description}")

    try:
        progress = services.backfill.run(reset=reset, on_track=_on_track)
    except MoodscopeError as e:
        console.print(f"[red]Backfill stopped:[/red] {e}")
        raise typer.Exit(code=1) from e

    console.print(
        f"\n[green]Backfill complete[/green]: {progress.success_count} described, "
        f"{progress.skipped_count} skipped, {progress.error_count} failed"
    )


@app.command()
def show(
    isrc: Annotated[str, typer.Argument(help="ISRC of the track")],
) -> None:
    """Show everything stored for one track."""
    normalized = _normalize_or_exit(isrc)
    services = _services()
    try:
        payload = services.index.get_payload(normalized)
    except MoodscopeError as e:
        console.print(f"[red]Lookup failed:[/red] {e}")
        raise typer.Exit(code=1) from e

    if payload is None:
        console.print(f"[yellow]Track not indexed:[/yellow] {normalized}")
        raise typer.Exit(code=1)

    console.print(f"[bold]{payload.title}[/bold] by {payload.artist}")
    if payload.album:
        console.print(f"  Album: {payload.album}")
    console.print(f"  ISRC: {payload.isrc}")
    if payload.short_description:
        console.print(f"\n[italic]{payload.short_description}[/italic]")
    if payload.audio_features.has_any_value():
        console.print(f"\n[dim]Sound:[/dim] {format_audio_features(payload.audio_features)}")
    if payload.interpretation:
        console.print(f"\n[dim]Interpretation:[/dim]\n{payload.interpretation}")
    elif payload.lyrics is None:
        console.print("\n[dim]No lyrics available.[/dim]")
