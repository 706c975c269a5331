"""Level Analyzer: runs one voice through its enabled levels, in order."""

import asyncio
import logging
import re
from collections.abc import Sequence
from typing import Any

from review_council.errors import CancellationError, CancellationToken
from review_council.json_extract import extract_json
from review_council.models import (
    AnalysisRun,
    LevelResult,
    ProgressEvent,
    ProgressSink,
    RunStatus,
    Suggestion,
    Voice,
    VoiceResult,
)
from review_council.prompts import context as ctx
from review_council.prompts.builder import get_prompt_builder
from review_council.providers.base import AIProvider, ProviderError
from review_council.review_inputs import ReviewInputs
from review_council.run_store import RunStore, new_run_id

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.7
MIN_CONFIDENCE = 0.3

_SENTENCE_RE = re.compile(r"^(.+?[.!?])(\s|$)", re.DOTALL)


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _confidence(raw: dict[str, Any]) -> float:
    value = raw.get("confidence")
    if value is None:
        return DEFAULT_CONFIDENCE
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE
    return min(max(confidence, 0.0), 1.0)


def _first_sentence(text: str) -> str:
    text = text.strip()
    match = _SENTENCE_RE.match(text)
    sentence = match.group(1) if match else text.split("\n", 1)[0]
    return sentence[:120]


def _action(raw: dict[str, Any], stype: str) -> str | None:
    if stype == "praise":
        return None
    value = raw.get("suggestion")
    return str(value) if value else None


def _parse_line_suggestion(raw: Any, level: int | str) -> Suggestion | None:
    if not isinstance(raw, dict):
        return None
    line_start = _as_int(raw.get("line", raw.get("line_start")))
    if not raw.get("file") or line_start is None or not raw.get("type") or not raw.get("title"):
        logger.warning("Skipping invalid suggestion: %r", raw)
        return None

    confidence = _confidence(raw)
    if confidence < MIN_CONFIDENCE:
        logger.info("Filtering low confidence suggestion: %s (%.2f)", raw["title"], confidence)
        return None

    line_end = _as_int(raw.get("line_end", raw.get("lineEnd")))
    if line_end is None:
        line_end = line_start
    if line_end < line_start:
        line_start, line_end = line_end, line_start

    side = str(raw.get("old_or_new") or "NEW").upper()
    stype = str(raw["type"])
    return Suggestion(
        file=str(raw["file"]),
        type=stype,
        title=str(raw["title"]),
        description=str(raw.get("description") or ""),
        confidence=confidence,
        level=level,
        line_start=line_start,
        line_end=line_end,
        old_or_new=side if side in ("NEW", "OLD") else "NEW",
        suggestion=_action(raw, stype),
    )


def _parse_file_level_suggestion(raw: Any, level: int | str) -> Suggestion | None:
    if not isinstance(raw, dict) or not raw.get("file") or not raw.get("type"):
        logger.warning("Skipping invalid file-level suggestion: %r", raw)
        return None

    confidence = _confidence(raw)
    if confidence < MIN_CONFIDENCE:
        logger.info("Filtering low confidence file-level suggestion for %s (%.2f)", raw["file"], confidence)
        return None

    description = str(raw.get("description") or "")
    title = str(raw.get("title") or "") or _first_sentence(description)
    if not title:
        logger.warning("Skipping file-level suggestion without title or description: %r", raw)
        return None

    stype = str(raw["type"])
    return Suggestion(
        file=str(raw["file"]),
        type=stype,
        title=title,
        description=description,
        confidence=confidence,
        level=level,
        old_or_new=None,
        suggestion=_action(raw, stype),
        is_file_level=True,
    )


def parse_suggestions(data: dict[str, Any], level: int | str) -> list[Suggestion]:
    """Turn a parsed AI response into Suggestions, dropping malformed or low-confidence items."""
    suggestions: list[Suggestion] = []
    for raw in data.get("suggestions") or []:
        parsed = _parse_line_suggestion(raw, level)
        if parsed is not None:
            suggestions.append(parsed)
    for raw in data.get("fileLevelSuggestions") or data.get("file_level_suggestions") or []:
        parsed = _parse_file_level_suggestion(raw, level)
        if parsed is not None:
            suggestions.append(parsed)
    return suggestions


def parse_response(provider_name: str, content: str, level: int | str) -> tuple[list[Suggestion], str | None]:
    """Extract suggestions and summary from raw model output.

    Raises:
        ProviderError: If no JSON object can be found in the output.
    """
    data = extract_json(content)
    if data is None:
        raise ProviderError(provider_name, f"Level {level} response did not contain valid JSON")
    summary = data.get("summary")
    return parse_suggestions(data, level), str(summary) if summary else None


class LevelAnalyzer:
    """Runs a single voice through levels 1-3 against one changeset.

    Has no concurrency of its own; the council fans out one instance per voice.
    Suggestions are returned, never persisted.
    """

    def __init__(
        self,
        provider: AIProvider,
        run_store: RunStore,
        default_timeout_sec: float,
        progress: ProgressSink | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        self.provider = provider
        self.run_store = run_store
        self.default_timeout_sec = default_timeout_sec
        self.progress = progress
        self.cancel_token = cancel_token

    def _emit(self, level: int | str, status: str, message: str | None = None) -> None:
        if self.progress is not None:
            self.progress(ProgressEvent(level=level, status=status, message=message))

    def _check_cancelled(self) -> None:
        if self.cancel_token is not None:
            self.cancel_token.raise_if_cancelled()

    def build_level_prompt(
        self,
        level: int,
        voice: Voice,
        inputs: ReviewInputs,
        previous: list[LevelResult],
    ) -> str:
        review = inputs.context
        request_instructions = "\n\n".join(
            part for part in (review.request_instructions, voice.custom_instructions) if part
        ) or None
        values: dict[str, Any] = {
            "reviewIntro": ctx.build_review_intro(review.metadata, review.worktree_path),
            "prContext": ctx.build_pr_context(review.metadata),
            "customInstructions": ctx.build_custom_instructions_section(
                ctx.merge_instructions(review.repo_instructions, request_instructions)
            ),
            "lineNumberGuidance": ctx.build_analysis_line_number_guidance(
                inputs.diff_command, review.worktree_path
            ),
            "diff": ctx.build_diff_section(review.changed_files),
            "generatedFiles": ctx.build_generated_files_section(review.generated_files),
            "validFiles": ctx.format_valid_files(inputs.valid_files),
        }
        if level >= 2:
            values["fileContext"] = ctx.build_file_context_section(inputs.file_contents)
            values["fileLineCounts"] = ctx.build_file_line_counts_section(inputs.line_counts)
            values["previousFindings"] = ctx.build_previous_findings_section(previous)
        if level == 3:
            values["codebaseContext"] = ctx.build_codebase_context_section(inputs.repo_files)

        return get_prompt_builder(f"level{level}", voice.tier).build(values)

    async def _run_level(
        self,
        level: int,
        voice: Voice,
        inputs: ReviewInputs,
        previous: list[LevelResult],
    ) -> LevelResult:
        prompt = self.build_level_prompt(level, voice, inputs, previous)
        response = await self.provider.generate(
            prompt,
            timeout_sec=voice.timeout_sec or self.default_timeout_sec,
            model=voice.model,
            tier=voice.tier,
        )
        suggestions, summary = parse_response(self.provider.name(), response.content, level)
        return LevelResult(level=level, suggestions=suggestions, summary=summary)

    async def analyze_all_levels(
        self,
        voice: Voice,
        inputs: ReviewInputs,
        levels: Sequence[int],
        *,
        run_id: str,
        skip_run_creation: bool = False,
        voice_id: str | None = None,
    ) -> VoiceResult:
        """Run every enabled level in ascending order.

        Args:
            voice: The reviewer voice.
            inputs: Shared per-review inputs.
            levels: Levels to run for this voice.
            run_id: Parent run id. Used directly when ``skip_run_creation``.
            skip_run_creation: Reuse the parent run instead of creating a child run.
            voice_id: Identifier recorded on the child run.

        Returns:
            VoiceResult with the union of every successful level.

        Raises:
            ProviderError: If every level failed.
            CancellationError: If the review was cancelled between levels.
        """
        if not levels:
            raise ValueError("analyze_all_levels needs at least one level")
        voice_id = voice_id or f"{voice.provider}-{voice.model}"
        active_run_id = run_id
        if not skip_run_creation:
            active_run_id = new_run_id()
            await self.run_store.create(
                AnalysisRun(
                    id=active_run_id,
                    review_id=inputs.context.review_id,
                    parent_run_id=run_id,
                    voice_metadata={
                        "voice_id": voice_id,
                        "provider": voice.provider,
                        "model": voice.model,
                        "tier": voice.tier,
                        "levels": list(levels),
                    },
                )
            )
            await self.run_store.update(active_run_id, RunStatus.RUNNING)

        result = VoiceResult(voice_id=voice_id, voice=voice, run_id=active_run_id)
        first_error: ProviderError | None = None
        try:
            for level in sorted(levels):
                self._check_cancelled()
                self._emit(level, "running", f"Level {level} analysis started")
                try:
                    level_result = await self._run_level(level, voice, inputs, result.levels)
                except ProviderError as exc:
                    logger.warning("%s: level %d failed: %s", voice_id, level, exc)
                    result.failed_levels[level] = str(exc)
                    first_error = first_error or exc
                    self._emit(level, "failed", str(exc))
                    continue
                result.levels.append(level_result)
                self._emit(
                    level, "completed",
                    f"Level {level}: {len(level_result.suggestions)} suggestion(s)",
                )
        except (CancellationError, asyncio.CancelledError):
            await self.run_store.update(active_run_id, RunStatus.CANCELLED)
            self._emit("council", "cancelled", "Analysis was cancelled")
            raise
        except Exception:
            await self.run_store.update(active_run_id, RunStatus.FAILED)
            raise

        if not result.levels:
            await self.run_store.update(active_run_id, RunStatus.FAILED)
            raise ProviderError(
                first_error.provider_name,
                f"All {len(result.failed_levels)} level(s) failed for {voice_id}: {first_error}",
            )

        result.summary = self._summarize(result)
        if not skip_run_creation:
            await self.run_store.update(active_run_id, RunStatus.COMPLETED)
        logger.info(
            "%s finished: %d suggestion(s) from level(s) %s",
            voice_id, len(result.suggestions), [lr.level for lr in result.levels],
        )
        return result

    @staticmethod
    def _summarize(result: VoiceResult) -> str | None:
        summaries = [lr.summary for lr in result.levels if lr.summary]
        summary = "\n\n".join(summaries) if summaries else None
        if result.failed_levels:
            failed = ", ".join(str(lvl) for lvl in sorted(result.failed_levels))
            note = f"Note: level {failed} failed; results are from the remaining levels."
            summary = f"{summary}\n\n{note}" if summary else note
        return summary
