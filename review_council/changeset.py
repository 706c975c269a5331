"""Changed-files provider: split unified diffs per file and read the worktree."""

import asyncio
import fnmatch
import logging
from pathlib import Path

from review_council.models import ChangedFile

logger = logging.getLogger(__name__)

GENERATED_FILE_PATTERNS = (
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "poetry.lock",
    "uv.lock",
    "Cargo.lock",
    "go.sum",
    "*.min.js",
    "*.min.css",
    "*.map",
    "*_pb2.py",
)

MAX_CONTEXT_LINES = 2000
MAX_REPO_FILES = 500


class ChangesetError(RuntimeError):
    """Raised when the changeset cannot be produced (git failure, bad worktree)."""


def _strip_prefix(path: str) -> str:
    path = path.split("\t", 1)[0].strip()
    if path.startswith(("a/", "b/")):
        return path[2:]
    return path


def _path_from_block(lines: list[str]) -> str | None:
    old_path = new_path = None
    for line in lines:
        if line.startswith("--- "):
            old_path = line[4:]
        elif line.startswith("+++ "):
            new_path = line[4:]
            break
        elif line.startswith("@@"):
            break

    if new_path and new_path.strip() != "/dev/null":
        return _strip_prefix(new_path)
    if old_path and old_path.strip() != "/dev/null":
        return _strip_prefix(old_path)

    # Binary files and pure renames only carry the diff --git header.
    header = lines[0] if lines else ""
    if header.startswith("diff --git ") and " b/" in header:
        return header.rsplit(" b/", 1)[1].strip()
    return None


def _split_blocks(text: str) -> list[list[str]]:
    lines = text.split("\n")
    if any(line.startswith("diff --git ") for line in lines):
        starts = [i for i, line in enumerate(lines) if line.startswith("diff --git ")]
    else:
        starts = [
            i for i, line in enumerate(lines[:-1])
            if line.startswith("--- ") and lines[i + 1].startswith("+++ ")
        ]
    bounds = starts + [len(lines)]
    return [lines[bounds[i]:bounds[i + 1]] for i in range(len(starts))]


def parse_unified_diff(text: str | None) -> list[ChangedFile]:
    """Split a multi-file unified diff into one ChangedFile per file.

    Deleted files (``+++ /dev/null``) keep their old path. Blocks without a
    recognisable path are skipped.
    """
    if not text or not text.strip():
        return []

    changed: list[ChangedFile] = []
    for block in _split_blocks(text):
        path = _path_from_block(block)
        if path is None:
            logger.warning("Skipping diff block without a file path: %r", block[0] if block else "")
            continue
        changed.append(ChangedFile(path=path, patch="\n".join(block).rstrip("\n")))
    return changed


def detect_generated_files(paths: list[str]) -> list[str]:
    return [
        p for p in paths
        if any(fnmatch.fnmatch(Path(p).name, pattern) for pattern in GENERATED_FILE_PATTERNS)
    ]


async def _run_git(worktree: str | Path, *args: str) -> str:
    proc = await asyncio.create_subprocess_exec(
        "git",
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=str(worktree),
    )
    stdout, stderr = await proc.communicate()
    if proc.returncode != 0:
        raise ChangesetError(
            f"git {' '.join(args)} failed ({proc.returncode}): {stderr.decode(errors='replace').strip()}"
        )
    return stdout.decode("utf-8", errors="replace")


async def load_git_changeset(worktree: str | Path, base: str = "HEAD") -> list[ChangedFile]:
    """Changed files of ``worktree`` relative to ``base`` via ``git diff``.

    Raises:
        ChangesetError: If git is missing or the command fails.
    """
    try:
        text = await _run_git(worktree, "diff", "--no-color", "--no-ext-diff", base)
    except FileNotFoundError as exc:
        raise ChangesetError(f"Cannot run git: {exc}") from exc
    changed = parse_unified_diff(text)
    logger.info("Loaded %d changed files from %s (base %s)", len(changed), worktree, base)
    return changed


async def list_repository_files(worktree: str | Path | None, limit: int = MAX_REPO_FILES) -> list[str]:
    """Tracked files in the worktree, for codebase-level context.

    Returns an empty list when the worktree is not a git checkout.
    """
    if not worktree:
        return []
    try:
        text = await _run_git(worktree, "ls-files")
    except (ChangesetError, FileNotFoundError) as exc:
        logger.warning("Repository layout unavailable: %s", exc)
        return []
    files = [line for line in text.splitlines() if line]
    if len(files) > limit:
        logger.debug("Repository has %d files, listing the first %d", len(files), limit)
    return files[:limit]


def _read_text(full_path: Path, max_lines: int) -> str | None:
    try:
        data = full_path.read_bytes()
    except OSError:
        return None
    if b"\0" in data[:8000]:
        return None
    lines = data.decode("utf-8", errors="replace").splitlines()
    if len(lines) > max_lines:
        lines = lines[:max_lines] + [f"... ({len(lines) - max_lines} more lines)"]
    return "\n".join(lines)


async def read_changed_file_contents(
    worktree: str | Path | None,
    paths: list[str],
    max_lines: int = MAX_CONTEXT_LINES,
) -> dict[str, str]:
    """New-side contents of changed files. Deleted, binary or unreadable files are left out."""
    if not worktree or not paths:
        return {}
    root = Path(worktree)
    contents = await asyncio.gather(*(asyncio.to_thread(_read_text, root / p, max_lines) for p in paths))
    return {p: c for p, c in zip(paths, contents) if c is not None}
