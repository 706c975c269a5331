"""Unified-diff hunk parsing, range lookup and old/new line reconciliation."""

import logging
import re

from review_council.models import DiffHunk

logger = logging.getLogger(__name__)

HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")

MAX_HUNK_LINES = 100
CONTEXT_PADDING = 20
TRUNCATION_MARKER = "// ... (truncated)"


def parse_hunks(patch: str | None) -> list[DiffHunk]:
    """Split a single-file unified diff into hunks.

    Lines before the first hunk header (``diff --git``, ``---``, ``+++``) are
    ignored. Headers that do not parse are skipped together with their body.
    Never raises: malformed or empty input yields an empty list.
    """
    if not patch:
        return []

    hunks: list[DiffHunk] = []
    current: DiffHunk | None = None
    for line in patch.split("\n"):
        if line.startswith("@@"):
            match = HUNK_HEADER_RE.match(line)
            if match is None:
                current = None
                continue
            current = DiffHunk(
                old_start=int(match.group(1)),
                old_count=int(match.group(2)) if match.group(2) is not None else 1,
                new_start=int(match.group(3)),
                new_count=int(match.group(4)) if match.group(4) is not None else 1,
                header=line,
            )
            hunks.append(current)
        elif current is not None:
            current.content_lines.append(line)
    return hunks


def hunk_range(hunk: DiffHunk, side: str | None = None) -> tuple[int, int]:
    """Inclusive line range of a hunk on the old (LEFT) or new side."""
    if side == "LEFT":
        return hunk.old_start, hunk.old_start + hunk.old_count - 1
    return hunk.new_start, hunk.new_start + hunk.new_count - 1


def _counts_for_side(line: str, side: str | None) -> bool:
    prefix = line[:1]
    if side == "LEFT":
        return prefix in ("-", " ")
    return prefix in ("+", " ")


def _truncate_hunk_content(
    content_lines: list[str],
    line_start: int,
    line_end: int,
    side: str | None,
    start_counter: int,
) -> list[str]:
    """Keep the referenced span plus CONTEXT_PADDING lines on each side."""
    first_index = -1
    last_index = -1
    counter = start_counter

    for i, line in enumerate(content_lines):
        if not _counts_for_side(line, side):
            continue
        if line_start <= counter <= line_end:
            if first_index == -1:
                first_index = i
            last_index = i
        counter += 1

    # Header range overlapped but no body line exists on this side: keep all.
    if first_index == -1:
        first_index = 0
        last_index = len(content_lines) - 1

    keep_start = max(0, first_index - CONTEXT_PADDING)
    keep_end = min(len(content_lines) - 1, last_index + CONTEXT_PADDING)

    result: list[str] = []
    if keep_start > 0:
        result.append(TRUNCATION_MARKER)
    result.extend(content_lines[keep_start:keep_end + 1])
    if keep_end < len(content_lines) - 1:
        result.append(TRUNCATION_MARKER)
    return result


def extract_hunk_for_lines(
    patch: str | None,
    line_start: int,
    line_end: int,
    side: str | None = None,
) -> str | None:
    """Return the hunks overlapping ``[line_start, line_end]`` as diff text.

    Args:
        patch: Unified diff for one file.
        line_start: First referenced line (1-based).
        line_end: Last referenced line (inclusive).
        side: ``"LEFT"`` to match old-side numbers, anything else for new-side.

    Returns:
        The matching hunk(s) with their headers, bodies longer than
        MAX_HUNK_LINES truncated around the range, or None when nothing
        overlaps.
    """
    parts: list[str] = []
    for hunk in parse_hunks(patch):
        hunk_start, hunk_end = hunk_range(hunk, side)
        if line_start > hunk_end or line_end < hunk_start:
            continue

        content_lines = hunk.content_lines
        if len(content_lines) > MAX_HUNK_LINES:
            content_lines = _truncate_hunk_content(
                content_lines,
                line_start,
                line_end,
                side,
                hunk.old_start if side == "LEFT" else hunk.new_start,
            )
        parts.append("\n".join([hunk.header, *content_lines]))

    if not parts:
        return None
    return "\n".join(parts)


def extract_hunk_ranges_for_file(patch: str | None) -> list[tuple[int, int]]:
    """New-side ``(start, end)`` range of every hunk in the patch."""
    return [hunk_range(h) for h in parse_hunks(patch)]


def is_line_in_hunks(ranges: list[tuple[int, int]], line: int) -> bool:
    return any(start <= line <= end for start, end in ranges)


def annotate_patch(patch: str | None) -> str:
    """Render a patch with explicit OLD/NEW line-number columns.

    ::

         OLD | NEW |
          10 |  12 |      context line
          11 |  -- | [-]  deleted line
          -- |  13 | [+]  added line
    """
    rows: list[str] = []
    for hunk in parse_hunks(patch):
        rows.append(hunk.header)
        old_line, new_line = hunk.old_start, hunk.new_start
        old_left, new_left = hunk.old_count, hunk.new_count
        for line in hunk.content_lines:
            prefix, text = line[:1], line[1:]
            if prefix == "-":
                rows.append(f"{old_line:>4} | {'--':>4} | [-]  {text}")
                old_line += 1
                old_left -= 1
            elif prefix == "+":
                rows.append(f"{'--':>4} | {new_line:>4} | [+]  {text}")
                new_line += 1
                new_left -= 1
            elif prefix == " " or (line == "" and old_left > 0 and new_left > 0):
                rows.append(f"{old_line:>4} | {new_line:>4} |      {text}")
                old_line += 1
                new_line += 1
                old_left -= 1
                new_left -= 1
    if not rows:
        return ""
    return "\n".join([" OLD |  NEW |", *rows])


class DiffIndex:
    """Per-file lookup of which lines are added, deleted or context.

    Built once from a patch and read-only afterwards, so one instance can be
    shared by every concurrently running voice.
    """

    def __init__(self, patch: str | None) -> None:
        self.hunks = parse_hunks(patch)
        self.deleted_old: set[int] = set()
        self.added_new: set[int] = set()
        self.context_old_to_new: dict[int, int] = {}
        for hunk in self.hunks:
            self._index_hunk(hunk)

    def _index_hunk(self, hunk: DiffHunk) -> None:
        old_line, new_line = hunk.old_start, hunk.new_start
        old_left, new_left = hunk.old_count, hunk.new_count
        for line in hunk.content_lines:
            prefix = line[:1]
            if prefix == "-":
                self.deleted_old.add(old_line)
                old_line += 1
                old_left -= 1
            elif prefix == "+":
                self.added_new.add(new_line)
                new_line += 1
                new_left -= 1
            elif prefix == " " or (line == "" and old_left > 0 and new_left > 0):
                # Editors sometimes strip the single space of blank context lines.
                self.context_old_to_new[old_line] = new_line
                old_line += 1
                new_line += 1
                old_left -= 1
                new_left -= 1

    def is_deleted(self, old_line: int) -> bool:
        return old_line in self.deleted_old

    def old_to_new(self, old_line: int) -> int | None:
        """Map an old-side line that still exists in the new file to its new number.

        Returns None for deleted lines and for lines inside a hunk that the
        body does not account for.
        """
        if old_line in self.deleted_old:
            return None
        if old_line in self.context_old_to_new:
            return self.context_old_to_new[old_line]

        offset = 0
        for hunk in self.hunks:
            old_end = hunk.old_start + hunk.old_count - 1 if hunk.old_count else hunk.old_start
            if hunk.old_count and hunk.old_start <= old_line <= old_end:
                return None
            if old_line > old_end:
                offset += hunk.new_count - hunk.old_count
        return old_line + offset
