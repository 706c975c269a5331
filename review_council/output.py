"""Rich console output and markdown file save for council results."""

import logging
import re
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.text import Text

from review_council.models import CouncilResult, ReviewContext, Suggestion

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_TYPE_STYLES = {
    "bug": "red",
    "security": "bold red",
    "performance": "yellow",
    "design": "magenta",
    "praise": "green",
}


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def format_location(s: Suggestion) -> str:
    if s.is_file_level or s.line_start is None:
        return f"{s.file} (file)"
    span = f"{s.line_start}" if s.line_end in (None, s.line_start) else f"{s.line_start}-{s.line_end}"
    side = " OLD" if s.old_or_new == "OLD" else ""
    return f"{s.file}:{span}{side}"


def _sorted(suggestions: list[Suggestion]) -> list[Suggestion]:
    return sorted(suggestions, key=lambda s: (s.file, s.line_start or 0, -s.confidence))


def print_voice_summary(result: CouncilResult) -> None:
    """One line per voice plus any voices that failed."""
    console.print(Rule("[bold cyan]Reviewers[/bold cyan]"))
    for vr in result.voice_results:
        failed = f", failed levels: {sorted(vr.failed_levels)}" if vr.failed_levels else ""
        console.print(f"  [green]OK  [/green] {vr.voice_id} ({vr.voice.tier}): "
                      f"{len(vr.suggestions)} suggestion(s){failed}")
    for voice_id, err in result.failed_voices.items():
        short_err = err.splitlines()[0][:120] if err else "unknown error"
        console.print(f"  [red]FAIL[/red] {voice_id}: {escape(short_err)}")


def print_suggestions(result: CouncilResult) -> None:
    """Print the summary and every stored suggestion."""
    mode = "consolidated" if result.consolidated else "merged"
    console.print(Rule("[bold green]Council Review[/bold green]"))
    console.print(
        Text(
            f"Suggestions: {len(result.suggestions)} ({mode}) | "
            f"Duration: {result.total_duration_sec:.1f}s | "
            f"Run: {result.run_id}",
            style="dim",
        )
    )
    console.print(Markdown(result.summary))

    for s in _sorted(result.suggestions):
        # Model text may contain square brackets, so no markup strings here.
        body = Text(s.description)
        if s.suggestion:
            body.append("\n\nSuggestion: ", style="bold")
            body.append(s.suggestion)
        title = Text(s.type, style=_TYPE_STYLES.get(s.type, "cyan"))
        title.append(f" {s.title}")
        console.print(
            Panel(
                body,
                title=title,
                subtitle=Text(f"{format_location(s)} | confidence {s.confidence:.2f}"),
                border_style="dim",
            )
        )


def save_report(
    result: CouncilResult,
    context: ReviewContext,
    output_dir: Path,
    slug_override: str | None = None,
) -> Path:
    """Save the review as a markdown file.

    Args:
        result: The completed CouncilResult.
        context: The reviewed changeset, for title and file list.
        output_dir: Directory to save the file in.
        slug_override: Filename stem instead of one derived from the title.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    title = context.metadata.title or "changeset"
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    slug = slug_override if slug_override is not None else (_slug(title) or "review")
    filepath = output_dir / f"{timestamp}_{slug}.md"

    reviewers = ", ".join(vr.voice_id for vr in result.voice_results) or "none"
    lines: list[str] = [
        f"# Code Review: {title[:80]}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Reviewers:** {reviewers}",
        f"**Consolidated:** {'yes' if result.consolidated else 'no'}",
        f"**Files changed:** {len(context.changed_files)}",
        f"**Duration:** {result.total_duration_sec:.1f}s",
    ]
    if result.failed_voices:
        lines.append(f"**Failed reviewers:** {', '.join(result.failed_voices)}")
    lines += ["", "---", "", "## Summary", "", result.summary, ""]

    by_file: dict[str, list[Suggestion]] = {}
    for s in _sorted(result.suggestions):
        by_file.setdefault(s.file, []).append(s)

    lines += [f"## Suggestions ({len(result.suggestions)})", ""]
    if not by_file:
        lines += ["No suggestions.", ""]
    for path, items in by_file.items():
        lines += [f"### {path}", ""]
        for s in items:
            lines.append(f"- **[{s.type}] {s.title}** ({format_location(s)}, confidence {s.confidence:.2f})")
            if s.description:
                lines.append(f"  {s.description}")
            if s.suggestion:
                lines.append(f"  *Suggestion:* {s.suggestion}")
        lines.append("")

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Review saved to: %s", filepath)
    return filepath
