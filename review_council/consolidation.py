"""Consolidation pass: one AI call that curates every voice's suggestions."""

import asyncio
import logging
import time

from review_council.analyzer import parse_response
from review_council.errors import CancellationError, CancellationToken
from review_council.models import (
    AnalysisRun,
    ConsolidationResult,
    ProgressEvent,
    ProgressSink,
    RunStatus,
    Voice,
    VoiceResult,
)
from review_council.prompts import context as ctx
from review_council.prompts.builder import get_prompt_builder
from review_council.providers.base import AIProvider, ProviderError
from review_council.review_inputs import ReviewInputs
from review_council.run_store import RunStore, new_run_id

logger = logging.getLogger(__name__)


def _format_level_inputs(voice_results: list[VoiceResult]) -> dict[str, str]:
    """Per-level suggestion listings tagged with an anonymous reviewer label."""
    buckets: dict[int, list[str]] = {1: [], 2: [], 3: []}
    for index, voice_result in enumerate(voice_results, start=1):
        label = f"reviewer-{index}"
        for level_result in voice_result.levels:
            for s in level_result.suggestions:
                buckets.setdefault(level_result.level, []).append(
                    ctx.format_suggestion_for_orchestration(s, label)
                )

    values: dict[str, str] = {}
    for level in (1, 2, 3):
        items = buckets.get(level, [])
        values[f"level{level}Count"] = str(len(items))
        values[f"level{level}Suggestions"] = "\n".join(items) if items else "(none)"
    return values


def build_consolidation_prompt(
    voice: Voice,
    inputs: ReviewInputs,
    voice_results: list[VoiceResult],
) -> str:
    review = inputs.context
    values = {
        "reviewIntro": ctx.build_review_intro(review.metadata, review.worktree_path),
        "prContext": ctx.build_pr_context(review.metadata),
        "customInstructions": ctx.build_custom_instructions_section(
            ctx.merge_instructions(review.repo_instructions, review.request_instructions)
        ),
        "lineNumberGuidance": ctx.build_orchestration_line_number_guidance(
            inputs.diff_command, review.worktree_path
        ),
        "reviewerCount": str(len(voice_results)),
        "validFiles": ctx.format_valid_files(inputs.valid_files),
        **_format_level_inputs(voice_results),
    }
    return get_prompt_builder("orchestration", voice.tier).build(values)


async def consolidate(
    provider: AIProvider,
    run_store: RunStore,
    voice: Voice,
    inputs: ReviewInputs,
    voice_results: list[VoiceResult],
    *,
    parent_run_id: str,
    timeout_sec: float,
    progress: ProgressSink | None = None,
    cancel_token: CancellationToken | None = None,
) -> ConsolidationResult:
    """Run the consolidation call under its own child run.

    On failure or cancellation both the consolidation run and the parent run
    are marked, then the error is re-raised unchanged.

    Raises:
        ProviderError: If the call fails or the response holds no JSON.
        CancellationError: If the review was cancelled before the call.
    """
    run_id = new_run_id()
    await run_store.create(
        AnalysisRun(
            id=run_id,
            review_id=inputs.context.review_id,
            parent_run_id=parent_run_id,
            voice_metadata={
                "role": "consolidation",
                "provider": voice.provider,
                "model": voice.model,
                "tier": voice.tier,
            },
        )
    )

    def emit(status: str, message: str | None = None) -> None:
        if progress is not None:
            progress(ProgressEvent(
                level="consolidation",
                status=status,
                voice_id=f"{voice.provider}-{voice.model}",
                provider=voice.provider,
                model=voice.model,
                message=message,
            ))

    try:
        await run_store.update(run_id, RunStatus.RUNNING)
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        prompt = build_consolidation_prompt(voice, inputs, voice_results)
        logger.info("Running consolidation via %s (%s)", provider.name(), voice.model)
        emit("running", f"Consolidating suggestions from {len(voice_results)} reviewers")

        start = time.monotonic()
        response = await provider.generate(
            prompt, timeout_sec=timeout_sec, model=voice.model, tier=voice.tier
        )
        suggestions, summary = parse_response(provider.name(), response.content, "orchestrated")
    except (CancellationError, asyncio.CancelledError):
        await run_store.update(run_id, RunStatus.CANCELLED)
        await run_store.update(parent_run_id, RunStatus.CANCELLED)
        emit("cancelled", "Analysis was cancelled")
        raise
    except Exception as exc:
        await run_store.update(run_id, RunStatus.FAILED)
        await run_store.update(parent_run_id, RunStatus.FAILED)
        emit("failed", str(exc))
        if isinstance(exc, ProviderError):
            logger.error("Consolidation failed: %s", exc)
        raise

    await run_store.update(run_id, RunStatus.COMPLETED)
    emit("completed", f"{len(suggestions)} consolidated suggestion(s)")
    logger.info(
        "Consolidation complete: %d suggestion(s) in %.1fs",
        len(suggestions), time.monotonic() - start,
    )
    return ConsolidationResult(run_id=run_id, suggestions=suggestions, summary=summary)
