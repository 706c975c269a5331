"""Council orchestration: parallel voices, consolidation decision, finalisation."""

import asyncio
import logging
import time
from dataclasses import replace
from enum import Enum

from config.config_loader import AppConfig
from review_council.analyzer import LevelAnalyzer
from review_council.consolidation import consolidate
from review_council.council_config import build_voice_assignments, validate_council_config
from review_council.errors import CancellationError, CancellationToken, CouncilConfigError
from review_council.models import (
    AnalysisRun,
    CouncilConfig,
    CouncilResult,
    LevelResult,
    ProgressEvent,
    ProgressSink,
    ReviewContext,
    RunStatus,
    Suggestion,
    Voice,
    VoiceAssignment,
    VoiceResult,
)
from review_council.prompts.context import DEFAULT_DIFF_COMMAND
from review_council.providers.base import AIProvider, ProviderError
from review_council.providers.registry import ProviderFactory, provider_factory
from review_council.review_inputs import ReviewInputs, prepare_review_inputs
from review_council.run_store import RunStore, new_run_id
from review_council.tiers import resolve_tier
from review_council.validation import validate_and_finalize_suggestions

logger = logging.getLogger(__name__)

# At or above this many validated suggestions, a consolidation call is made.
COUNCIL_CONSOLIDATION_THRESHOLD = 8


class CouncilState(str, Enum):
    INITIALIZING = "initializing"
    RUNNING_VOICES = "running-voices"
    SKIPPING_CONSOLIDATION = "skipping-consolidation"
    CONSOLIDATING = "consolidating"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


def summarize_single_voice(result: VoiceResult, count: int) -> str:
    return result.summary or f"Council analysis complete: {count} suggestion(s) from a single reviewer."


def summarize_unconsolidated(results: list[VoiceResult], count: int) -> str:
    summaries = [r.summary for r in results if r.summary]
    if summaries:
        return "\n\n".join(summaries)
    return (
        f"Council analysis complete: {count} suggestion(s) from {len(results)} reviewers "
        "(consolidation skipped)."
    )


def summarize_consolidated(summary: str | None, count: int, reviewers: int) -> str:
    return summary or f"Council analysis complete: {count} suggestion(s) consolidated from {reviewers} reviewers."


def _pick_propagated(group: BaseExceptionGroup) -> BaseException:
    """The exception to re-raise from a failed fan-out: cancellation first."""
    leaves: list[BaseException] = []

    def _collect(exc: BaseException) -> None:
        if isinstance(exc, BaseExceptionGroup):
            for inner in exc.exceptions:
                _collect(inner)
        else:
            leaves.append(exc)

    _collect(group)
    for exc in leaves:
        if isinstance(exc, CancellationError):
            return exc
    return leaves[0]


class CouncilOrchestrator:
    """Coordinates one review: fans out voices, decides on consolidation, stores results.

    Construct one per review; no state is shared between reviews.
    """

    def __init__(
        self,
        run_store: RunStore,
        provider_factory: ProviderFactory,
        *,
        voice_timeout_sec: float,
        consolidation_timeout_sec: float,
        default_consolidation: Voice | None = None,
        diff_command: str = DEFAULT_DIFF_COMMAND,
    ) -> None:
        self.run_store = run_store
        self.provider_factory = provider_factory
        self.voice_timeout_sec = voice_timeout_sec
        self.consolidation_timeout_sec = consolidation_timeout_sec
        self.default_consolidation = default_consolidation
        self.diff_command = diff_command
        self.state = CouncilState.INITIALIZING

    @classmethod
    def from_app_config(cls, app_config: AppConfig, run_store: RunStore) -> "CouncilOrchestrator":
        defaults = app_config.defaults
        default_consolidation = None
        if defaults.consolidation is not None:
            default_consolidation = Voice(
                provider=defaults.consolidation.provider,
                model=defaults.consolidation.model,
                tier=resolve_tier(defaults.consolidation.tier),
            )
        return cls(
            run_store,
            provider_factory(app_config),
            voice_timeout_sec=defaults.voice_timeout_sec,
            consolidation_timeout_sec=defaults.consolidation_timeout_sec,
            default_consolidation=default_consolidation,
            diff_command=defaults.diff_command,
        )

    async def run(
        self,
        config: CouncilConfig,
        context: ReviewContext,
        *,
        run_id: str | None = None,
        progress: ProgressSink | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> CouncilResult:
        """Run the whole council for one changeset.

        Args:
            config: Council configuration. Validated before anything else.
            context: The changeset and review metadata.
            run_id: An existing, already running parent run. Created when None.
            progress: Optional progress sink.
            cancel_token: Optional cooperative cancellation signal.

        Returns:
            CouncilResult with the suggestions that were stored.

        Raises:
            CouncilConfigError: Invalid config; no run is created.
            ProviderError: The sole voice, every voice, or the consolidation call failed.
            CancellationError: The review was cancelled.
        """
        self.state = CouncilState.INITIALIZING
        validate_council_config(config)
        assignments = build_voice_assignments(config)
        consolidation_voice = config.consolidation or self.default_consolidation
        if len(assignments) > 1 and consolidation_voice is None:
            raise CouncilConfigError("consolidation.provider is required")

        try:
            return await self._run(assignments, consolidation_voice, context, run_id, progress, cancel_token)
        except (CancellationError, asyncio.CancelledError):
            self.state = CouncilState.CANCELLED
            raise
        except BaseException:
            self.state = CouncilState.FAILED
            raise

    async def _run(
        self,
        assignments: list[VoiceAssignment],
        consolidation_voice: Voice | None,
        context: ReviewContext,
        run_id: str | None,
        progress: ProgressSink | None,
        cancel_token: CancellationToken | None,
    ) -> CouncilResult:
        start = time.monotonic()
        if run_id is None:
            run_id = new_run_id()
            await self.run_store.create(AnalysisRun(id=run_id, review_id=context.review_id))
            await self.run_store.update(run_id, RunStatus.RUNNING)

        inputs = await prepare_review_inputs(context, self.diff_command)

        self.state = CouncilState.RUNNING_VOICES
        if progress is not None:
            progress(ProgressEvent(
                level="voice-init",
                status="pending",
                voices={
                    a.voice_id: {
                        "provider": a.voice.provider,
                        "model": a.voice.model,
                        "tier": a.voice.tier,
                        "levels": list(a.levels),
                        "status": "pending",
                    }
                    for a in assignments
                },
            ))
        logger.info("Council starting: %d voice(s), run %s", len(assignments), run_id)

        if len(assignments) == 1:
            return await self._run_single_voice(assignments[0], inputs, run_id, progress, cancel_token, start)

        voice_results, failed = await self._run_voices(assignments, inputs, run_id, progress, cancel_token)
        validated = [self._validated(vr, inputs) for vr in voice_results]
        union = [s for vr in validated for s in vr.suggestions]

        if len(union) < COUNCIL_CONSOLIDATION_THRESHOLD:
            self.state = CouncilState.SKIPPING_CONSOLIDATION
            logger.info(
                "Skipping consolidation: %d suggestion(s) < threshold %d",
                len(union), COUNCIL_CONSOLIDATION_THRESHOLD,
            )
            summary = summarize_unconsolidated(validated, len(union))
            return await self._finalize(
                run_id, inputs, union, summary, None, validated, failed, progress, start
            )

        self.state = CouncilState.CONSOLIDATING
        logger.info(
            "Consolidating: %d suggestion(s) >= threshold %d",
            len(union), COUNCIL_CONSOLIDATION_THRESHOLD,
        )
        # Every voice has settled, so the parent is the only active run.
        if cancel_token is not None and cancel_token.cancelled:
            await self.run_store.update(run_id, RunStatus.CANCELLED)
            cancel_token.raise_if_cancelled()
        if consolidation_voice is None:
            raise CouncilConfigError("consolidation.provider is required")
        provider = await self._provider_for_parent(consolidation_voice, run_id)
        consolidated = await consolidate(
            provider,
            self.run_store,
            consolidation_voice,
            inputs,
            validated,
            parent_run_id=run_id,
            timeout_sec=consolidation_voice.timeout_sec or self.consolidation_timeout_sec,
            progress=progress,
            cancel_token=cancel_token,
        )

        self.state = CouncilState.FINALIZING
        checked = validate_and_finalize_suggestions(
            consolidated.suggestions, inputs.context.changed_files, inputs.line_counts, inputs.diff_indexes
        )
        final = checked.valid + checked.converted
        summary = summarize_consolidated(consolidated.summary, len(final), len(validated))
        return await self._finalize(
            run_id, inputs, final, summary, consolidated.run_id, validated, failed, progress, start,
            consolidated=True,
        )

    async def _run_single_voice(
        self,
        assignment: VoiceAssignment,
        inputs: ReviewInputs,
        run_id: str,
        progress: ProgressSink | None,
        cancel_token: CancellationToken | None,
        start: float,
    ) -> CouncilResult:
        provider = await self._provider_for_parent(assignment.voice, run_id)
        analyzer = LevelAnalyzer(
            provider,
            self.run_store,
            self.voice_timeout_sec,
            progress=self._voice_sink(progress, assignment),
            cancel_token=cancel_token,
        )
        result = await analyzer.analyze_all_levels(
            assignment.voice,
            inputs,
            assignment.levels,
            run_id=run_id,
            skip_run_creation=True,
            voice_id=assignment.voice_id,
        )

        self.state = CouncilState.FINALIZING
        checked = validate_and_finalize_suggestions(
            result.suggestions, inputs.context.changed_files, inputs.line_counts, inputs.diff_indexes
        )
        final = checked.valid + checked.converted
        return await self._finalize(
            run_id, inputs, final, summarize_single_voice(result, len(final)), None,
            [result], {}, progress, start,
        )

    async def _provider_for_parent(self, voice: Voice, run_id: str) -> AIProvider:
        """Build a provider against the parent run.

        Construction happens before any analyzer or consolidation step owns a
        run, so a failure here fails the parent directly.
        """
        try:
            return self.provider_factory(voice)
        except ProviderError:
            await self.run_store.update(run_id, RunStatus.FAILED)
            raise

    def _voice_sink(self, progress: ProgressSink | None, assignment: VoiceAssignment) -> ProgressSink:
        def sink(event: ProgressEvent) -> None:
            if progress is not None:
                progress(replace(
                    event,
                    voice_id=assignment.voice_id,
                    provider=assignment.voice.provider,
                    model=assignment.voice.model,
                ))

        return sink

    async def _run_voice(
        self,
        assignment: VoiceAssignment,
        inputs: ReviewInputs,
        run_id: str,
        progress: ProgressSink | None,
        cancel_token: CancellationToken | None,
    ) -> VoiceResult | ProviderError:
        """One voice of a multi-voice council. ProviderError is returned, anything else raised."""
        sink = self._voice_sink(progress, assignment)
        try:
            provider = self.provider_factory(assignment.voice)
            analyzer = LevelAnalyzer(
                provider,
                self.run_store,
                self.voice_timeout_sec,
                progress=sink,
                cancel_token=cancel_token,
            )
            result = await analyzer.analyze_all_levels(
                assignment.voice,
                inputs,
                assignment.levels,
                run_id=run_id,
                voice_id=assignment.voice_id,
            )
        except ProviderError as exc:
            logger.warning("Voice %s failed: %s", assignment.voice_id, exc)
            sink(ProgressEvent(level="council", status="failed", message=str(exc)))
            return exc

        sink(ProgressEvent(
            level="council",
            status="completed",
            message=f"{len(result.suggestions)} suggestion(s)",
        ))
        return result

    async def _run_voices(
        self,
        assignments: list[VoiceAssignment],
        inputs: ReviewInputs,
        run_id: str,
        progress: ProgressSink | None,
        cancel_token: CancellationToken | None,
    ) -> tuple[list[VoiceResult], dict[str, str]]:
        try:
            async with asyncio.TaskGroup() as tg:
                tasks = [
                    tg.create_task(self._run_voice(a, inputs, run_id, progress, cancel_token))
                    for a in assignments
                ]
        except BaseExceptionGroup as group:
            raise _pick_propagated(group) from None

        outcomes = [task.result() for task in tasks]
        results = [o for o in outcomes if isinstance(o, VoiceResult)]
        errors = [o for o in outcomes if isinstance(o, ProviderError)]
        failed = {
            a.voice_id: str(o) for a, o in zip(assignments, outcomes) if isinstance(o, ProviderError)
        }

        logger.info("Voices settled: %d succeeded, %d failed", len(results), len(failed))
        # Only the council sees that no voice survived.
        if not results:
            await self.run_store.update(run_id, RunStatus.FAILED)
            raise errors[0]
        return results, failed

    def _validated(self, result: VoiceResult, inputs: ReviewInputs) -> VoiceResult:
        """Copy of a voice result holding only suggestions that pass validation."""
        checked = validate_and_finalize_suggestions(
            result.suggestions, inputs.context.changed_files, inputs.line_counts, inputs.diff_indexes
        )
        kept = checked.valid + checked.converted
        levels = [
            LevelResult(
                level=lr.level,
                suggestions=[s for s in kept if s.level == lr.level],
                summary=lr.summary,
            )
            for lr in result.levels
        ]
        return replace(result, levels=levels)

    async def _finalize(
        self,
        run_id: str,
        inputs: ReviewInputs,
        suggestions: list[Suggestion],
        summary: str,
        consolidation_run_id: str | None,
        voice_results: list[VoiceResult],
        failed: dict[str, str],
        progress: ProgressSink | None,
        start: float,
        consolidated: bool = False,
    ) -> CouncilResult:
        self.state = CouncilState.FINALIZING
        await self.run_store.store_suggestions(
            inputs.context.review_id,
            run_id,
            suggestions,
            consolidation_run_id,
            inputs.valid_files,
        )
        await self.run_store.update(run_id, RunStatus.COMPLETED)
        self.state = CouncilState.COMPLETED

        if progress is not None:
            progress(ProgressEvent(
                level="council",
                status="completed",
                message=f"{len(suggestions)} suggestion(s)",
            ))
        return CouncilResult(
            run_id=run_id,
            suggestions=suggestions,
            summary=summary,
            consolidated=consolidated,
            consolidation_run_id=consolidation_run_id,
            voice_results=voice_results,
            failed_voices=failed,
            total_duration_sec=time.monotonic() - start,
        )
