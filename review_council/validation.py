"""Suggestion validation against the changed-file set, diff hunks and file lengths."""

import asyncio
import logging
import re
from dataclasses import replace
from pathlib import Path

from review_council.diff_hunks import DiffIndex
from review_council.models import ChangedFile, Suggestion, ValidationResult

logger = logging.getLogger(__name__)

_BINARY_SNIFF_BYTES = 8000
_DUP_SLASH_RE = re.compile(r"/{2,}")


def normalize_path(path: str | None) -> str:
    """Canonical form used to compare suggestion paths with changed files."""
    if not path:
        return ""
    normalized = _DUP_SLASH_RE.sub("/", path.strip().replace("\\", "/"))
    while normalized.startswith("./") or normalized.startswith("/"):
        normalized = normalized[2:] if normalized.startswith("./") else normalized[1:]
    return normalized


def _partition_by_path(
    suggestions: list[Suggestion],
    changed_paths: list[str],
) -> tuple[list[Suggestion], list[Suggestion]]:
    canonical = {normalize_path(p): p for p in changed_paths}
    kept: list[Suggestion] = []
    dropped: list[Suggestion] = []
    for s in suggestions:
        key = normalize_path(s.file)
        if key in canonical:
            kept.append(s if s.file == canonical[key] else replace(s, file=canonical[key]))
        else:
            logger.debug("Dropping suggestion for unchanged file %r: %s", s.file, s.title)
            dropped.append(s)
    return kept, dropped


def validate_suggestion_file_paths(
    suggestions: list[Suggestion],
    changed_paths: list[str],
) -> list[Suggestion]:
    """Keep suggestions whose file is a changed file, rewritten to its canonical path.

    An empty changed-file list drops everything.
    """
    kept, _ = _partition_by_path(suggestions, changed_paths)
    return kept


def _count_lines(full_path: Path) -> int:
    """Line count of a text file; -1 for binary, missing or unreadable files."""
    try:
        data = full_path.read_bytes()
    except OSError:
        return -1
    if not data:
        return 0
    if b"\0" in data[:_BINARY_SNIFF_BYTES]:
        return -1
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        return -1
    lines = text.split("\n")
    return len(lines) - 1 if text.endswith("\n") else len(lines)


async def build_file_line_count_map(worktree_path: str | Path | None, files: list[str]) -> dict[str, int]:
    """Map each changed file to its line count in the worktree.

    Empty file -> 0, trailing newline not counted, binary or unreadable -> -1.
    Returns an empty map when no worktree is available.
    """
    if not worktree_path or not files:
        return {}
    root = Path(worktree_path)
    paths = [f for f in files if f]
    counts = await asyncio.gather(*(asyncio.to_thread(_count_lines, root / f) for f in paths))
    return dict(zip(paths, counts))


def build_diff_indexes(changed_files: list[ChangedFile]) -> dict[str, DiffIndex]:
    return {cf.path: DiffIndex(cf.patch) for cf in changed_files}


def validate_suggestion_sides(
    suggestions: list[Suggestion],
    diff_indexes: dict[str, DiffIndex],
) -> ValidationResult:
    """Reconcile ``old_or_new`` with what the diff says about each line.

    ``OLD`` is kept only for lines deleted from the old side. An ``OLD``
    reference to a line that still exists is converted to ``NEW`` with the
    new-side line number; one that cannot be mapped is dropped.
    """
    result = ValidationResult()
    for s in suggestions:
        index = diff_indexes.get(s.file)
        if s.line_start is None or s.old_or_new != "OLD" or index is None:
            result.valid.append(s)
            continue

        line_end = s.line_end if s.line_end is not None else s.line_start
        if index.is_deleted(s.line_start):
            if index.is_deleted(line_end):
                result.valid.append(s)
            else:
                result.converted.append(replace(s, line_end=s.line_start))
            continue

        new_start = index.old_to_new(s.line_start)
        if new_start is None:
            logger.warning(
                "Dropping suggestion %r: OLD line %d of %s cannot be mapped to the new side",
                s.title, s.line_start, s.file,
            )
            result.dropped.append(s)
            continue

        new_end = index.old_to_new(line_end)
        if new_end is None or new_end < new_start:
            new_end = new_start
        logger.warning(
            "Converting suggestion %r from OLD line %d to NEW line %d in %s",
            s.title, s.line_start, new_start, s.file,
        )
        result.converted.append(replace(s, old_or_new="NEW", line_start=new_start, line_end=new_end))
    return result


def validate_suggestion_line_numbers(
    suggestions: list[Suggestion],
    line_counts: dict[str, int],
    convert_to_file_level: bool = False,
) -> ValidationResult:
    """Check NEW-side line numbers against file lengths.

    File-level suggestions, OLD-side references, files missing from the map
    and binary files (-1) pass through unchanged.
    """
    result = ValidationResult()
    for s in suggestions:
        if s.line_start is None or s.old_or_new == "OLD":
            result.valid.append(s)
            continue

        count = line_counts.get(s.file)
        if count is None or count == -1:
            result.valid.append(s)
            continue

        line_start = s.line_start
        line_end = s.line_end if s.line_end is not None else line_start

        reason = None
        if line_start <= 0:
            reason = f"line_start {line_start} is <= 0"
        elif line_start > count:
            reason = f"line_start {line_start} exceeds file length {count}"
        elif line_end < line_start:
            reason = f"line_end {line_end} is less than line_start {line_start}"
        elif line_end > count:
            reason = f"line_end {line_end} exceeds file length {count}"

        if reason is None:
            result.valid.append(s)
        elif convert_to_file_level:
            logger.warning("[Line Validation] Converting suggestion to file-level: %r (%s)", s.title, reason)
            result.converted.append(
                replace(s, line_start=None, line_end=None, old_or_new=None, is_file_level=True)
            )
        else:
            logger.warning("[Line Validation] Dropping suggestion: %r (%s)", s.title, reason)
            result.dropped.append(s)
    return result


def validate_and_finalize_suggestions(
    suggestions: list[Suggestion],
    changed_files: list[ChangedFile],
    line_counts: dict[str, int],
    diff_indexes: dict[str, DiffIndex] | None = None,
) -> ValidationResult:
    """Run every validation step; callers persist ``valid + converted``.

    ``diff_indexes`` may be shared between calls; it is built from
    ``changed_files`` when omitted.
    """
    total = len(suggestions)
    logger.info("[Validation] Starting validation with %d input suggestions", total)

    in_changeset, off_changeset = _partition_by_path(suggestions, [cf.path for cf in changed_files])
    logger.info(
        "[Validation] After file path validation: %d suggestions (%d filtered)",
        len(in_changeset), total - len(in_changeset),
    )

    if diff_indexes is None:
        diff_indexes = build_diff_indexes(changed_files)
    sides = validate_suggestion_sides(in_changeset, diff_indexes)

    # Side-converted suggestions still go through the line-count check.
    lines = validate_suggestion_line_numbers(
        sides.valid + sides.converted, line_counts, convert_to_file_level=True
    )
    side_converted = {id(s) for s in sides.converted}

    result = ValidationResult(dropped=off_changeset + sides.dropped)
    for s in lines.valid:
        (result.converted if id(s) in side_converted else result.valid).append(s)
    result.converted.extend(lines.converted)
    result.dropped.extend(lines.dropped)

    logger.info(
        "[Validation] Final: %d valid, %d converted, %d dropped",
        len(result.valid), len(result.converted), len(result.dropped),
    )
    if total > 0 and not result.valid and not result.converted:
        logger.warning("[Validation] WARNING: All %d suggestions were filtered out!", total)
    return result
