"""Run Store protocol and an in-memory implementation."""

import logging
import uuid
from dataclasses import dataclass, replace
from typing import Protocol

from review_council.models import AnalysisRun, RunStatus, Suggestion

logger = logging.getLogger(__name__)

_TRANSITIONS: dict[RunStatus, set[RunStatus]] = {
    RunStatus.PENDING: {RunStatus.RUNNING, RunStatus.FAILED, RunStatus.CANCELLED},
    RunStatus.RUNNING: {RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED},
}


class RunStateError(ValueError):
    """Raised on a status change that would move a run backwards or out of a terminal state."""


def new_run_id() -> str:
    return str(uuid.uuid4())


class RunStore(Protocol):
    async def create(self, run: AnalysisRun) -> AnalysisRun: ...

    async def update(self, run_id: str, status: RunStatus) -> None: ...

    async def store_suggestions(
        self,
        review_id: int | str,
        run_id: str,
        suggestions: list[Suggestion],
        consolidation_run_id: str | None,
        valid_files: list[str],
    ) -> None: ...


@dataclass
class StoredSuggestions:
    review_id: int | str
    run_id: str
    suggestions: list[Suggestion]
    consolidation_run_id: str | None
    valid_files: list[str]


class InMemoryRunStore:
    """Keeps runs and stored suggestion sets in dicts. Used by the CLI and tests."""

    def __init__(self) -> None:
        self.runs: dict[str, AnalysisRun] = {}
        self.stored: list[StoredSuggestions] = []

    async def create(self, run: AnalysisRun) -> AnalysisRun:
        if run.id in self.runs:
            raise RunStateError(f"Run {run.id} already exists")
        self.runs[run.id] = replace(run)
        logger.debug("Created run %s (parent=%s, status=%s)", run.id, run.parent_run_id, run.status.value)
        return run

    async def update(self, run_id: str, status: RunStatus) -> None:
        run = self.runs.get(run_id)
        if run is None:
            raise KeyError(f"Unknown run: {run_id}")
        if status not in _TRANSITIONS.get(run.status, set()):
            raise RunStateError(f"Run {run_id}: cannot move from {run.status.value} to {status.value}")
        run.status = status
        logger.debug("Run %s -> %s", run_id, status.value)

    async def store_suggestions(
        self,
        review_id: int | str,
        run_id: str,
        suggestions: list[Suggestion],
        consolidation_run_id: str | None,
        valid_files: list[str],
    ) -> None:
        self.stored.append(
            StoredSuggestions(
                review_id=review_id,
                run_id=run_id,
                suggestions=list(suggestions),
                consolidation_run_id=consolidation_run_id,
                valid_files=list(valid_files),
            )
        )
        logger.info("Stored %d suggestions for run %s", len(suggestions), run_id)

    def children_of(self, run_id: str) -> list[AnalysisRun]:
        return [r for r in self.runs.values() if r.parent_run_id == run_id]
