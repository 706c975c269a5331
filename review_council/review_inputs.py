"""Per-review inputs shared read-only by every voice and the consolidation pass."""

import logging
from dataclasses import dataclass, field

from review_council.changeset import list_repository_files, read_changed_file_contents
from review_council.diff_hunks import DiffIndex
from review_council.models import ReviewContext
from review_council.prompts.context import DEFAULT_DIFF_COMMAND
from review_council.validation import build_diff_indexes, build_file_line_count_map

logger = logging.getLogger(__name__)


@dataclass
class ReviewInputs:
    context: ReviewContext
    line_counts: dict[str, int] = field(default_factory=dict)
    diff_indexes: dict[str, DiffIndex] = field(default_factory=dict)
    file_contents: dict[str, str] = field(default_factory=dict)
    repo_files: list[str] = field(default_factory=list)
    diff_command: str = DEFAULT_DIFF_COMMAND

    @property
    def valid_files(self) -> list[str]:
        return [cf.path for cf in self.context.changed_files]


async def prepare_review_inputs(
    context: ReviewContext,
    diff_command: str = DEFAULT_DIFF_COMMAND,
) -> ReviewInputs:
    """Build line counts, diff indexes and worktree context once per review."""
    paths = [cf.path for cf in context.changed_files]
    generated = set(context.generated_files)
    line_counts = await build_file_line_count_map(context.worktree_path, paths)
    file_contents = await read_changed_file_contents(
        context.worktree_path, [p for p in paths if p not in generated]
    )
    repo_files = await list_repository_files(context.worktree_path)
    logger.debug(
        "Review inputs: %d changed files, %d with line counts, %d with contents",
        len(paths), len(line_counts), len(file_contents),
    )
    return ReviewInputs(
        context=context,
        line_counts=line_counts,
        diff_indexes=build_diff_indexes(context.changed_files),
        file_contents=file_contents,
        repo_files=repo_files,
        diff_command=diff_command,
    )
