"""Pure dataclasses for the review council pipeline. No logic, no deps."""

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Voice:
    provider: str                     # "claude", "openai", "gemini", "grok"
    model: str                        # model id passed to the provider
    tier: str = "balanced"            # resolved capability tier
    timeout_sec: float | None = None  # None -> settings default
    custom_instructions: str | None = None


@dataclass(frozen=True)
class VoiceAssignment:
    voice_id: str                     # "provider-model", suffixed when duplicated
    voice: Voice
    levels: tuple[int, ...]           # ascending, at least one


@dataclass
class LevelConfig:
    enabled: bool
    voices: list[Voice] = field(default_factory=list)


@dataclass
class CouncilConfig:
    levels: dict[int, LevelConfig]
    consolidation: Voice | None = None


@dataclass
class AnalysisRun:
    id: str
    review_id: int | str
    status: RunStatus = RunStatus.PENDING
    parent_run_id: str | None = None
    voice_metadata: dict[str, Any] | None = None


@dataclass
class Suggestion:
    file: str
    type: str
    title: str
    description: str
    confidence: float
    level: int | str                  # 1, 2, 3 or "orchestrated"
    line_start: int | None = None
    line_end: int | None = None
    old_or_new: str | None = "NEW"    # "NEW" | "OLD"; None for file-level
    suggestion: str | None = None     # omitted for praise
    is_file_level: bool = False


@dataclass
class DiffHunk:
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    header: str
    content_lines: list[str] = field(default_factory=list)


@dataclass
class ChangedFile:
    path: str
    patch: str


@dataclass
class ReviewMetadata:
    title: str = ""
    description: str = ""
    repository: str | None = None
    pr_number: int | None = None
    base_branch: str | None = None
    head_branch: str | None = None
    review_type: str = "pr"           # "pr" or "local"


@dataclass
class ReviewContext:
    review_id: int | str
    changed_files: list[ChangedFile]
    worktree_path: str | None = None
    metadata: ReviewMetadata = field(default_factory=ReviewMetadata)
    repo_instructions: str | None = None
    request_instructions: str | None = None
    generated_files: list[str] = field(default_factory=list)


@dataclass
class ProgressEvent:
    level: int | str                  # 1-3, "voice-init", "consolidation", "council"
    status: str                       # "pending", "running", "completed", "failed", ...
    voice_id: str | None = None
    provider: str | None = None
    model: str | None = None
    message: str | None = None
    voices: dict[str, dict[str, Any]] | None = None


@dataclass
class ProviderResponse:
    provider: str
    model: str
    content: str
    latency_sec: float
    token_count: int | None


@dataclass
class LevelResult:
    level: int
    suggestions: list[Suggestion] = field(default_factory=list)
    summary: str | None = None


@dataclass
class VoiceResult:
    voice_id: str
    voice: Voice
    run_id: str
    levels: list[LevelResult] = field(default_factory=list)
    summary: str | None = None
    failed_levels: dict[int, str] = field(default_factory=dict)

    @property
    def suggestions(self) -> list[Suggestion]:
        return [s for lvl in self.levels for s in lvl.suggestions]


@dataclass
class ConsolidationResult:
    run_id: str
    suggestions: list[Suggestion]
    summary: str | None = None


@dataclass
class ValidationResult:
    valid: list[Suggestion] = field(default_factory=list)
    converted: list[Suggestion] = field(default_factory=list)
    dropped: list[Suggestion] = field(default_factory=list)


@dataclass
class CouncilResult:
    run_id: str
    suggestions: list[Suggestion]
    summary: str
    consolidated: bool = False
    consolidation_run_id: str | None = None
    voice_results: list[VoiceResult] = field(default_factory=list)
    failed_voices: dict[str, str] = field(default_factory=dict)
    total_duration_sec: float = 0.0


ProgressSink = Callable[[ProgressEvent], None]
