"""Click CLI: load config and changeset, run the council, print and save the review."""

import asyncio
import logging
import signal
import sys
from collections.abc import Callable
from pathlib import Path

import click
import yaml
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import AppConfig, load_config
from review_council.changeset import ChangesetError, detect_generated_files, load_git_changeset, parse_unified_diff
from review_council.council import CouncilOrchestrator
from review_council.council_config import parse_council_config
from review_council.errors import CancellationError, CancellationToken, ValidationError
from review_council.models import (
    ChangedFile,
    CouncilConfig,
    CouncilResult,
    LevelConfig,
    ProgressEvent,
    ReviewContext,
    ReviewMetadata,
    Voice,
)
from review_council.output import print_suggestions, print_voice_summary, save_report
from review_council.prompts.builder import PROMPT_TYPES, get_prompt_builder
from review_council.providers.base import ProviderError
from review_council.run_store import InMemoryRunStore
from review_council.tiers import TIER_ALIASES, TIERS, resolve_tier

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _default_council(config: AppConfig, tier: str | None) -> CouncilConfig:
    """Single voice on every level, using the default (or first available) provider."""
    name = config.defaults.default_voice
    if name not in config.available_providers:
        available = sorted(config.available_providers)
        if not available:
            raise ValidationError("No providers available. Check API keys in .env.")
        name = available[0]
    voice = Voice(
        provider=name,
        model=config.models[name].model,
        tier=resolve_tier(tier or config.defaults.default_tier),
    )
    return CouncilConfig(levels={lvl: LevelConfig(enabled=True, voices=[voice]) for lvl in (1, 2, 3)})


def _load_council(path: str | None, config: AppConfig, tier: str | None) -> CouncilConfig:
    if path is None:
        return _default_council(config, tier)
    raw = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    return parse_council_config(raw, default_tier=tier or config.defaults.default_tier)


def _load_changes(diff_file: str | None, worktree: Path, base: str) -> list[ChangedFile]:
    if diff_file:
        return parse_unified_diff(Path(diff_file).read_text(encoding="utf-8"))
    return asyncio.run(load_git_changeset(worktree, base))


def _cancel_on_interrupt(token: CancellationToken) -> Callable[[], None]:
    """Route the first Ctrl+C to the token; a second one interrupts as usual.

    Returns a callable that removes the handler. No-op on Windows, where the
    event loop has no signal handler support.
    """
    if sys.platform == "win32":
        return lambda: None

    loop = asyncio.get_running_loop()

    def _interrupt() -> None:
        loop.remove_signal_handler(signal.SIGINT)
        console.print("[yellow]Cancelling after in-flight calls finish (Ctrl+C again to abort)...[/yellow]")
        token.cancel("Review cancelled by user")

    loop.add_signal_handler(signal.SIGINT, _interrupt)
    return lambda: loop.remove_signal_handler(signal.SIGINT)


def _describe(event: ProgressEvent) -> str:
    who = f"{event.voice_id}: " if event.voice_id else ""
    if isinstance(event.level, int):
        return f"{who}level {event.level} {event.status}"
    return f"{who}{event.message or event.status}"


async def _run_review(
    orchestrator: CouncilOrchestrator,
    council: CouncilConfig,
    context: ReviewContext,
) -> CouncilResult:
    token = CancellationToken()
    restore = _cancel_on_interrupt(token)
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Starting council...", total=None)

        def on_progress(event: ProgressEvent) -> None:
            if event.level == "voice-init" and event.voices:
                progress.print(f"Voices: {', '.join(event.voices)}")
                return
            if event.status in ("completed", "failed") and event.level in ("council", "consolidation"):
                marker = "[green]OK[/green]" if event.status == "completed" else "[red]FAIL[/red]"
                progress.print(f"{marker} {escape(_describe(event))}")
            progress.update(task, description=_describe(event))

        try:
            return await orchestrator.run(council, context, progress=on_progress, cancel_token=token)
        finally:
            restore()


@click.group()
def main() -> None:
    """Review Council -- multi-model, multi-level AI code review."""
    # Reconfigure stdout/stderr to UTF-8 on Windows so model output with
    # non-ASCII characters doesn't crash the render path.
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")
    load_dotenv()


@main.command()
@click.option("--diff", "diff_file", type=click.Path(exists=True, dir_okay=False),
              help="Review this unified diff file instead of running git diff")
@click.option("--base", default="HEAD", show_default=True, help="Git ref to diff the worktree against")
@click.option("--worktree", default=".", type=click.Path(exists=True, file_okay=False),
              help="Repository checkout holding the changes")
@click.option("--council", "council_file", type=click.Path(exists=True, dir_okay=False),
              help="YAML council config (default: single voice from settings)")
@click.option("--tier", default=None,
              help=f"Tier for voices without one: {', '.join(TIERS)} (aliases: {', '.join(TIER_ALIASES)})")
@click.option("--title", default=None, help="Title shown to reviewers")
@click.option("--instructions", default=None, help="Extra review instructions for this run")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def review(
    diff_file: str | None,
    base: str,
    worktree: str,
    council_file: str | None,
    tier: str | None,
    title: str | None,
    instructions: str | None,
    output_path: str | None,
    verbose: bool,
) -> None:
    """Review a changeset with the configured council.

    \b
    Examples:
      review-council review
      review-council review --base main --tier thorough
      review-council review --diff changes.patch --council council.yaml
    """
    _setup_logging(verbose)

    try:
        config = load_config()
    except FileNotFoundError as exc:
        console.print(f"[bold red]Config error:[/bold red] {escape(str(exc))}")
        sys.exit(1)

    worktree_path = Path(worktree).resolve()
    try:
        council = _load_council(council_file, config, tier)
        changed = _load_changes(diff_file, worktree_path, base)
    except (ValidationError, ChangesetError, yaml.YAMLError) as exc:
        console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
        sys.exit(1)

    if not changed:
        console.print("No changes to review.")
        return

    paths = [cf.path for cf in changed]
    context = ReviewContext(
        review_id=f"local-{worktree_path.name}",
        changed_files=changed,
        worktree_path=str(worktree_path),
        metadata=ReviewMetadata(
            title=title or f"Local changes against {base}",
            review_type="local",
        ),
        request_instructions=instructions,
        generated_files=detect_generated_files(paths),
    )

    console.print(f"\n[bold cyan]Review Council[/bold cyan] -- {len(changed)} changed file(s)")

    orchestrator = CouncilOrchestrator.from_app_config(config, InMemoryRunStore())
    try:
        result = asyncio.run(_run_review(orchestrator, council, context))
    except (ProviderError, ValidationError) as exc:
        console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
        sys.exit(1)
    except CancellationError as exc:
        console.print(f"[yellow]{escape(str(exc))}[/yellow]")
        sys.exit(130)

    print_voice_summary(result)
    print_suggestions(result)

    output_dir = Path(output_path) if output_path else config.defaults.output_dir
    saved_path = save_report(result, context, output_dir)
    console.print(f"\n[dim]Saved to: {saved_path}[/dim]")


@main.command()
@click.argument("prompt_type", type=click.Choice(PROMPT_TYPES))
@click.option("--tier", default=None, help="Tier or alias (default: balanced)")
@click.option("--tagged", is_flag=True, help="Keep section tags for inspection")
def prompt(prompt_type: str, tier: str | None, tagged: bool) -> None:
    """Print the assembled prompt template for PROMPT_TYPE."""
    builder = get_prompt_builder(prompt_type, tier)
    text = builder.build_tagged({}) if tagged else builder.build({})
    click.echo(text)


if __name__ == "__main__":
    main()
