"""Builders for the runtime values interpolated into prompt templates.

Each builder returns a ready-to-insert markdown fragment, or an empty string
when there is nothing to say so the surrounding optional section collapses.
"""

import json

from review_council.diff_hunks import annotate_patch
from review_council.models import ChangedFile, LevelResult, ReviewMetadata, Suggestion

DEFAULT_DIFF_COMMAND = "git-diff-lines"


def build_review_intro(metadata: ReviewMetadata, worktree_path: str | None = None) -> str:
    if metadata.review_type == "local":
        where = f" in {worktree_path}" if worktree_path else ""
        return f"You are reviewing local, uncommitted changes{where}."
    parts = ["You are reviewing"]
    parts.append(f"pull request #{metadata.pr_number}" if metadata.pr_number else "a changeset")
    if metadata.repository:
        parts.append(f"in {metadata.repository}")
    return " ".join(parts) + "."


def build_pr_context(metadata: ReviewMetadata) -> str:
    """Title, description and branch information for the review."""
    heading = "## Review Context" if metadata.review_type == "local" else "## Pull Request Context"
    lines = [heading]
    if metadata.title:
        lines.append(f"**Title:** {metadata.title}")
    if metadata.base_branch and metadata.head_branch:
        lines.append(f"**Branches:** {metadata.head_branch} -> {metadata.base_branch}")
    if metadata.description:
        lines += ["**Description:**", metadata.description.strip()]
    if len(lines) == 1:
        lines.append("(No description provided)")
    return "\n".join(lines)


def merge_instructions(repo_instructions: str | None, request_instructions: str | None) -> str | None:
    """Combine repository defaults and per-request instructions.

    Request instructions take precedence where the two conflict; the prompt
    says so explicitly. Returns None when both are empty.
    """
    if not repo_instructions and not request_instructions:
        return None

    parts: list[str] = []
    if repo_instructions:
        parts.append(
            "These are default instructions for this repository:\n"
            f"<repo_instructions>\n{repo_instructions}\n</repo_instructions>"
        )
    if request_instructions:
        parts.append(
            "These are custom instructions for this analysis run. The following instructions "
            "take precedence over the repo_instructions in areas where they overlap or conflict:\n"
            f"<custom_instructions>\n{request_instructions}\n</custom_instructions>"
        )
    return "\n\n".join(parts)


def build_custom_instructions_section(instructions: str | None) -> str:
    if not instructions or not instructions.strip():
        return ""
    return f"## Custom Instructions\n{instructions.strip()}"


def _script_command(diff_command: str, worktree_path: str | None) -> str:
    if worktree_path:
        return f'{diff_command} --cwd "{worktree_path}"'
    return diff_command


def build_analysis_line_number_guidance(
    diff_command: str = DEFAULT_DIFF_COMMAND,
    worktree_path: str | None = None,
) -> str:
    command = _script_command(diff_command, worktree_path)
    return f"""## Viewing Code Changes

The changes below are shown as an annotated diff with explicit line numbers in two columns:
```
 OLD |  NEW |
  10 |   12 |      context line
  11 |   -- | [-]  deleted line (exists only in base)
  -- |   13 | [+]  added line (exists only in the changes)
```
If you have shell access, the same view is produced by:
```
{command}
```

## Line Number Precision

Your suggestions MUST reference the EXACT line where the issue exists:

1. **Be literal, not conceptual**
   - BAD: Commenting on a function definition (line 10) when the bug is inside its body (line 25)
   - GOOD: Commenting on line 25 where the problematic code is

2. **Use correct line numbers from the annotated diff**
   - For ADDED lines [+]: use the NEW column number
   - For CONTEXT lines: use the NEW column number
   - For DELETED lines [-]: use the OLD column number"""


def build_orchestration_line_number_guidance(
    diff_command: str = DEFAULT_DIFF_COMMAND,
    worktree_path: str | None = None,
) -> str:
    command = _script_command(diff_command, worktree_path)
    return f"""## Line Number Handling

You are receiving pre-computed suggestions. Each suggestion already carries a `line` number
and `old_or_new` value. Your primary focus is curation and synthesis, not line number verification.

- **Preserve line numbers as-is** when passing suggestions through to the output.
- **Preserve `old_or_new` values** from input suggestions.
- **When merging duplicates** that reference the same line, keep the line number and
  `old_or_new` from the suggestion with the richest context.
- **When levels conflict** on the line number for what appears to be the same issue:
  - For **architectural or cross-cutting issues**, prefer the broader level (Level 3 > Level 2 > Level 1).
  - For **precise line-level bugs or typos**, prefer the level closest to the raw diff (often Level 1).

If you need to inspect a file diff and have shell access, use:
```
{command}
```"""


def format_valid_files(paths: list[str]) -> str:
    if not paths:
        return "(No files specified)"
    return "\n".join(f"- {p}" for p in paths)


def build_generated_files_section(paths: list[str]) -> str:
    if not paths:
        return ""
    listing = "\n".join(f"- {p}" for p in paths)
    return (
        "## Generated Files (Skip)\n"
        "The following files are generated (lock files, build output). Do not create suggestions for them:\n"
        f"{listing}"
    )


def build_file_line_counts_section(line_counts: dict[str, int]) -> str:
    """Per-file line counts the AI can check its line numbers against.

    Binary or unreadable files (count -1) are left out.
    """
    lines: list[str] = []
    for path, count in line_counts.items():
        if count == -1:
            continue
        if count == 0:
            lines.append(f"- {path}: 0 lines (empty file)")
        else:
            lines.append(f"- {path}: {count} lines")
    if not lines:
        return ""
    return (
        "## File Line Counts for Validation\n"
        "The following shows the total line count for each changed file. "
        "Verify that all suggestion line numbers are within these bounds:\n"
        + "\n".join(lines)
        + "\n\nIf a suggestion applies to a line beyond the file's length, "
        "make it a file-level suggestion instead."
    )


def build_diff_section(changed_files: list[ChangedFile]) -> str:
    blocks: list[str] = []
    for changed in changed_files:
        annotated = annotate_patch(changed.patch)
        if not annotated:
            blocks.append(f"### {changed.path}\n(no textual changes)")
        else:
            blocks.append(f"### {changed.path}\n```\n{annotated}\n```")
    return "\n\n".join(blocks) if blocks else "(No changes)"


def build_file_context_section(file_contents: dict[str, str]) -> str:
    """Full new-side contents of changed files, numbered like ``cat -n``."""
    blocks: list[str] = []
    for path, content in file_contents.items():
        numbered = "\n".join(
            f"{i:>6}\t{line}" for i, line in enumerate(content.splitlines(), start=1)
        )
        blocks.append(f"### {path}\n```\n{numbered}\n```")
    return "\n\n".join(blocks) if blocks else "(File contents unavailable)"


def build_codebase_context_section(repo_files: list[str]) -> str:
    if not repo_files:
        return "(Repository layout unavailable)"
    return "Files tracked in the repository:\n" + "\n".join(f"- {p}" for p in repo_files)


def _suggestion_line(s: Suggestion) -> str:
    if s.is_file_level or s.line_start is None:
        return f"- [FILE-LEVEL] {s.file} ({s.type}): {s.title}"
    return f"- {s.file}:{s.line_start} ({s.type}): {s.title}"


def build_previous_findings_section(level_results: list[LevelResult]) -> str:
    """Earlier levels' findings, so deeper levels can avoid repeating them."""
    blocks: list[str] = []
    for result in level_results:
        if not result.suggestions:
            continue
        items = "\n".join(_suggestion_line(s) for s in result.suggestions)
        blocks.append(f"**Level {result.level}:**\n{items}")
    if not blocks:
        return ""
    return (
        "## Findings From Earlier Levels\n"
        "These issues were already reported. Build on them instead of repeating them:\n\n"
        + "\n\n".join(blocks)
    )


def format_suggestion_for_orchestration(s: Suggestion, reviewer_label: str | None = None) -> str:
    """One JSON line per suggestion, prefixed with its provenance tags."""
    payload: dict = {
        "file": s.file,
        "type": s.type,
        "title": s.title,
        "description": s.description,
        "confidence": s.confidence,
    }
    if not s.is_file_level and s.line_start is not None:
        payload["line"] = s.line_start
        if s.line_end is not None and s.line_end != s.line_start:
            payload["line_end"] = s.line_end
        payload["old_or_new"] = s.old_or_new or "NEW"
    if s.suggestion:
        payload["suggestion"] = s.suggestion

    tags = ""
    if reviewer_label:
        tags += f"[{reviewer_label}] "
    if s.is_file_level:
        tags += "[FILE-LEVEL] "
    return f"- {tags}{json.dumps(payload, ensure_ascii=False)}"
