"""
retell.cli - Typer CLI entry point.

Provides subcommands for scoring retellings, inspecting stories and
running timed practice sessions.
"""

from __future__ import annotations

import asyncio
import random
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, Progress, TextColumn, TimeRemainingColumn
from rich.table import Table

from retell import __version__
from retell.config import (
    BUILTIN_PROFILES,
    CONFIG_FILENAME,
    RetellConfig,
    create_default_config,
    load_config,
    write_config,
)
from retell.exceptions import ConfigError, RetellError, UnsupportedCapabilityError
from retell.history import HistoryStore
from retell.io import read_text, write_json
from retell.logging import configure_logging
from retell.scoring.match import ScoreResult, score_against_keywords, score_story
from retell.stories import Story, filter_stories, load_stories
from retell.utils import format_duration, score_style

app = typer.Typer(
    name="retell",
    help="Timed story retelling practice.\n\n"
    "Narrates a story, gives you time to prepare, captures your retelling "
    "and scores it against the story's keywords.",
    add_completion=False,
)
console = Console()

SAMPLE_STORIES = [
    {
        "id": 1,
        "text": (
            "A young fox lived at the edge of a quiet forest. Every morning it jumped "
            "over the old stone wall to watch the lazy farm dog sleeping in the sun. "
            "One day the dog woke up and chased the fox back into the trees."
        ),
        "difficulty": "easy",
        "keywords": ["fox", "forest", "jumped", "wall", "lazy", "dog", "chased", "trees"],
    }
]


def find_project_dir() -> Path | None:
    """Find the project directory by looking for retell.yaml."""
    current = Path.cwd()
    while current != current.parent:
        if (current / CONFIG_FILENAME).exists():
            return current
        current = current.parent
    return None


def load_project_config() -> RetellConfig:
    """Load the enclosing project's config, or defaults outside a project."""
    project_dir = find_project_dir()
    if project_dir is None:
        return RetellConfig()
    try:
        return load_config(project_dir)
    except ConfigError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)


def read_input(text: str | None, file: Path | None, what: str) -> str:
    """Return inline text or the contents of a file; exit if neither is given."""
    if file is not None:
        if not file.exists():
            console.print(f"[red]Error: {file} not found[/red]")
            raise typer.Exit(1)
        return read_text(file)
    if text is not None:
        return text
    console.print(f"[red]Error: provide {what} as an argument or with --file[/red]")
    raise typer.Exit(1)


def resolve_stories(config: RetellConfig, path: Path | None, difficulty: str | None) -> list[Story]:
    """Load stories from an explicit path or the configured stories_path."""
    if path is None:
        if config.stories_path is None:
            console.print("[red]Error: No story source given and none configured[/red]")
            raise typer.Exit(1)
        path = config.resolve_path(config.stories_path)
    try:
        stories = filter_stories(load_stories(path), difficulty)
    except RetellError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)
    if not stories:
        console.print("[yellow]No matching stories found.[/yellow]")
        raise typer.Exit(1)
    return stories


def print_score(result: ScoreResult, transcript: str | None = None) -> None:
    """Print a score breakdown."""
    style = score_style(result.percentage)
    console.print(f"\nMatch score: [bold {style}]{result.percentage}%[/bold {style}]")
    console.print(
        f"[dim]Keywords {len(result.matched_keywords)}/{result.total_keywords} "
        f"({result.keyword_source}), content words "
        f"{result.content_word_overlap}/{result.story_content_words}[/dim]"
    )
    if result.accuracy_rate is not None:
        console.print(f"[dim]Keyword accuracy {result.accuracy_rate:.0%}[/dim]")

    table = Table(title="Keywords")
    table.add_column("Matched", style="green")
    table.add_column("Partial", style="yellow")
    table.add_column("Missed", style="red")
    table.add_row(
        ", ".join(result.exact_keywords) or "—",
        ", ".join(result.partial_keywords) or "—",
        ", ".join(result.missing_keywords) or "—",
    )
    console.print(table)

    if transcript is not None:
        console.print("\n[cyan]Your retell:[/cyan]")
        console.print(escape(transcript) if transcript else "[dim]No transcript captured.[/dim]")


def version_callback(value: bool) -> None:
    if value:
        console.print(f"retell {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Retell - timed story retelling practice."""
    configure_logging(verbose, console)


@app.command("init")
def init_project(
    name: str = typer.Argument(..., help="Project name"),
    profile: str = typer.Option(
        "exam",
        "--profile",
        "-p",
        help=f"Timing profile: {', '.join(BUILTIN_PROFILES)}",
    ),
    path: str = typer.Option(".", "--path", "-d", help="Directory to create project in"),
) -> None:
    """Create a practice project with a config file and a sample story."""
    project_path = Path(path) / name

    if project_path.exists():
        console.print(f"[red]Error: Directory '{project_path}' already exists[/red]")
        raise typer.Exit(1)
    if profile not in BUILTIN_PROFILES:
        console.print(f"[red]Error: Unknown profile '{profile}'[/red]")
        raise typer.Exit(1)

    config = create_default_config(name, profile)
    write_config(config, project_path / CONFIG_FILENAME)
    write_json(project_path / "stories.json", SAMPLE_STORIES)

    console.print(f"[green]✓[/green] Created project '{name}' with profile '{profile}'")
    console.print(f"[dim]  {project_path}[/dim]")
    console.print("\nNext steps:")
    console.print(f"  cd {name}")
    console.print("  retell practice")


@app.command("stories")
def list_stories(
    path: Path | None = typer.Argument(None, help="Story file (JSON, YAML or text)"),
    difficulty: str | None = typer.Option(None, "--difficulty", "-D", help="easy, medium or hard"),
) -> None:
    """List available stories."""
    stories = resolve_stories(load_project_config(), path, difficulty)

    table = Table(title="Stories")
    table.add_column("ID", style="cyan")
    table.add_column("Difficulty")
    table.add_column("Words", justify="right")
    table.add_column("Keywords", justify="right")
    table.add_column("Opening")

    for story in stories:
        opening = story.text[:60] + ("..." if len(story.text) > 60 else "")
        table.add_row(
            str(story.id),
            story.difficulty or "-",
            str(story.word_count or len(story.text.split())),
            str(len(story.keywords)) if story.keywords else "auto",
            opening,
        )
    console.print(table)


@app.command("keywords")
def show_keywords(
    text: str | None = typer.Argument(None, help="Text to extract keywords from"),
    file: Path | None = typer.Option(None, "--file", "-f", help="Read text from file"),
    max_keywords: int = typer.Option(20, "--max", "-n", help="Number of keywords"),
) -> None:
    """Show the keywords a story would be scored against."""
    from retell.text.keywords import rank_keywords

    source = read_input(text, file, "text")
    settings = load_project_config().scoring

    table = Table(title="Keywords")
    table.add_column("#", justify="right")
    table.add_column("Keyword", style="cyan")
    table.add_column("Weight", justify="right", style="green")
    for i, (token, weight) in enumerate(rank_keywords(source, settings)[:max_keywords], start=1):
        table.add_row(str(i), token, f"{weight:.2f}")
    console.print(table)


@app.command("estimate")
def estimate(
    text: str | None = typer.Argument(None, help="Story text"),
    file: Path | None = typer.Option(None, "--file", "-f", help="Read text from file"),
    wpm: float | None = typer.Option(None, "--wpm", help="Narration words per minute"),
    rate: float | None = typer.Option(None, "--rate", help="Speech rate multiplier"),
) -> None:
    """Estimate narration time and the resulting listening phase."""
    from retell.duration import count_words, estimate_duration_ms

    source = read_input(text, file, "text")
    config = load_project_config()
    narration = config.narration

    try:
        ms = estimate_duration_ms(
            source,
            wpm if wpm is not None else narration.words_per_minute,
            rate if rate is not None else narration.speech_rate,
            narration,
        )
    except ValueError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    listen = max(ms / 1000.0, config.durations.listen_floor_seconds)
    console.print(f"Words: {count_words(source)}")
    console.print(f"Narration estimate: [green]{format_duration(ms / 1000.0)}[/green] ({ms} ms)")
    console.print(f"Listening phase: [cyan]{format_duration(listen)}[/cyan]")


@app.command("score")
def score(
    transcript: str | None = typer.Option(None, "--transcript", "-t", help="Retelling text"),
    transcript_file: Path | None = typer.Option(
        None, "--transcript-file", "-T", help="Read retelling from file"
    ),
    text: str | None = typer.Option(None, "--text", help="Story text"),
    story_file: Path | None = typer.Option(None, "--story-file", "-s", help="Story source"),
    story_id: int | None = typer.Option(None, "--story-id", "-i", help="Story id in source"),
    keywords: list[str] | None = typer.Option(
        None, "--keyword", "-k", help="Explicit keyword (repeatable)"
    ),
) -> None:
    """Score a retelling against a story."""
    retelling = read_input(transcript, transcript_file, "a transcript")
    config = load_project_config()

    if story_file is not None:
        stories = resolve_stories(config, story_file, None)
        if story_id is None:
            story = stories[0]
        else:
            story = next((s for s in stories if s.id == story_id), None)
            if story is None:
                console.print(f"[red]Error: No story with id {story_id}[/red]")
                raise typer.Exit(1)
    elif text is not None:
        story = Story(id=0, text=text)
    else:
        console.print("[red]Error: provide --text or --story-file[/red]")
        raise typer.Exit(1)

    if keywords:
        result = score_against_keywords(story.text, retelling, keywords, config.scoring)
    else:
        result = score_story(story, retelling, config.scoring)
    print_score(result)


@app.command("practice")
def practice(
    path: Path | None = typer.Argument(None, help="Story file (defaults to stories_path)"),
    difficulty: str | None = typer.Option(None, "--difficulty", "-D", help="easy, medium or hard"),
    transcript_file: Path | None = typer.Option(
        None,
        "--transcript-file",
        "-T",
        help="Replay this file line by line as your spoken retelling",
    ),
    narrator: str = typer.Option("system", "--narrator", "-n", help="system, text or none"),
    show_text: bool = typer.Option(
        False, "--show-text", help="Print the story with the text narrator"
    ),
    seed: int | None = typer.Option(None, "--seed", help="Random seed for story choice"),
    no_history: bool = typer.Option(False, "--no-history", help="Do not record this run"),
) -> None:
    """Run a timed listen → prepare → retell → score session."""
    from retell.session.adapters import ScriptedCapture, SystemNarrator, TerminalCue, TextNarrator
    from retell.session.controller import PhaseController

    config = load_project_config()
    stories = resolve_stories(config, path, difficulty)
    wpm = config.narration.words_per_minute * config.narration.speech_rate

    voice = None
    if narrator == "system":
        try:
            voice = SystemNarrator(words_per_minute=int(wpm))
        except UnsupportedCapabilityError as e:
            console.print(f"[yellow]Warning: {escape(str(e))}[/yellow]")
            if e.hint:
                console.print(f"[dim]{e.hint}. Falling back to the text narrator.[/dim]")
            voice = TextNarrator(console, wpm, show_text=show_text)
    elif narrator == "text":
        voice = TextNarrator(console, wpm, show_text=show_text)
    elif narrator != "none":
        console.print(f"[red]Unknown narrator: {narrator}[/red]")
        raise typer.Exit(1)

    capture = None
    if transcript_file is not None:
        lines = read_input(None, transcript_file, "a transcript").splitlines()
        interval = config.durations.speak_seconds / (len(lines) + 1) if lines else 1.0
        capture = ScriptedCapture(lines, interval=interval)
    else:
        console.print(
            "[yellow]Speech capture not available; timing only, "
            "your retell cannot be transcribed.[/yellow]"
        )

    history = None
    if not no_history:
        history = HistoryStore(config.resolve_path(config.history_path))

    controller = PhaseController(
        narrator=voice,
        capture=capture,
        cue=TerminalCue(console),
        config=config,
        on_record=history,
        rng=random.Random(seed) if seed is not None else None,
    )

    try:
        outcome = asyncio.run(_run_session(controller, stories))
    except KeyboardInterrupt:
        console.print("\n[yellow]Session cancelled[/yellow]")
        raise typer.Exit(1)

    if outcome is None:
        console.print("[yellow]Session cancelled[/yellow]")
        raise typer.Exit(1)

    console.print(f"\n[cyan]Story #{outcome.story.id}[/cyan]")
    print_score(outcome.score, outcome.transcript)


async def _run_session(controller, stories: list[Story]):
    controller.start(stories)
    try:
        with Progress(
            TextColumn("{task.description}"),
            BarColumn(),
            TimeRemainingColumn(),
            console=console,
            transient=True,
        ) as progress:
            bar = progress.add_task(controller.phase.label, total=1.0)
            while controller.phase.in_progress:
                progress.update(
                    bar, description=controller.phase.label, completed=controller.progress()
                )
                await asyncio.sleep(0.1)
        return await controller.wait()
    finally:
        await controller.aclose()


@app.command("history")
def show_history(
    limit: int = typer.Option(10, "--limit", "-n", help="Number of recent runs to show"),
) -> None:
    """Show recent practice runs."""
    config = load_project_config()
    store = HistoryStore(config.resolve_path(config.history_path))
    try:
        records = store.load()
    except RetellError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    if not records:
        console.print("[dim]No practice runs recorded yet.[/dim]")
        return

    table = Table(title="Practice History")
    table.add_column("When", style="cyan")
    table.add_column("Story")
    table.add_column("Score", justify="right")
    table.add_column("Keywords", justify="right")
    for record in reversed(records[-limit:]):
        style = score_style(record.score)
        table.add_row(
            record.timestamp.strftime("%Y-%m-%d %H:%M"),
            f"#{record.story_id}",
            f"[{style}]{record.score}%[/{style}]",
            f"{record.matched}/{record.total_keywords}",
        )
    console.print(table)

    summary = store.summary()
    console.print(
        f"\n{summary['count']} run(s), average {summary['average']}%, best {summary['best']}%"
    )


@app.command("report")
def generate_report(
    output: Path | None = typer.Option(None, "--output", "-o", help="Output HTML path"),
    open_browser: bool = typer.Option(False, "--open", help="Open in browser"),
) -> None:
    """Generate an HTML practice history report."""
    from retell.reports.history import generate_history_report

    config = load_project_config()
    store = HistoryStore(config.resolve_path(config.history_path))
    output_path = output or config.resolve_path(Path("reports") / "history.html")

    try:
        result_path = generate_history_report(store, output_path, open_browser=open_browser)
    except RetellError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]✓[/green] History report: {result_path}")


if __name__ == "__main__":
    app()
