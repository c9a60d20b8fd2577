"""
Pipeline Coordinator

Drives the four stages of a matching run strictly in order:

    Discovery → Extraction → Matching → Summarization

Extraction and Matching fan out across candidates through a BatchRunner;
every collaborator call goes through the RetryExecutor. Per-run progress and
log live in a private run state owned by the coordinator and are handed out
only as immutable PipelineRun snapshots.

Outcomes:
    - zero discovered candidates: every stage complete, empty result
    - every extraction failed: Matching marked ``error``, raw candidates returned
    - summarization failed: logged only, stage still complete, no summary
    - Discovery failed: DiscoveryFailedError (with the partial run attached)
    - cancellation: PipelineCancelledError (with the partial run attached)

Usage:
    coordinator = PipelineCoordinator(discovery, extraction, summarization)
    run = await coordinator.run(profile, progress_callback=on_progress)
"""
from __future__ import annotations

import inspect
import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

from trialscout.core.adapters.base import (
    CriteriaCache,
    DiscoveryAdapter,
    ExtractionAdapter,
    MatchingAdapter,
    SummarizationAdapter,
)
from trialscout.core.execution import (
    BatchRunner,
    CancellationToken,
    ItemResult,
    RetryExecutor,
    RetryPolicy,
)
from trialscout.core.records import (
    STAGE_ORDER,
    CandidateRecord,
    CriteriaSet,
    EvidenceProfile,
    MatchCategory,
    MatchOutcome,
    PipelineRun,
    PipelineStageState,
    StageId,
    StageStatus,
    SummaryArtifact,
)
from trialscout.utils import (
    DiscoveryFailedError,
    PipelineCancelledError,
    PipelineStateError,
    get_logger,
)

logger = get_logger(__name__)

ProgressCallback = Callable[
    [PipelineStageState, Tuple[str, ...]], Union[None, Awaitable[None]]
]

# pending → running → complete | error; running may repeat for progress updates
_STATUS_RANK = {
    StageStatus.PENDING:  0,
    StageStatus.RUNNING:  1,
    StageStatus.COMPLETE: 2,
    StageStatus.ERROR:    2,
}


@dataclass(frozen=True)
class RunOptions:
    """Per-run limits and the caller's cancellation token."""
    max_candidates: int = 5
    extraction_concurrency: int = 3
    matching_concurrency: int = 3
    cancellation_token: Optional[CancellationToken] = None

    def __post_init__(self):
        if self.max_candidates < 1:
            raise ValueError("max_candidates must be at least 1")
        if self.extraction_concurrency < 1 or self.matching_concurrency < 1:
            raise ValueError("concurrency limits must be at least 1")

    @classmethod
    def from_settings(
        cls,
        settings=None,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> "RunOptions":
        if settings is None:
            from trialscout.config import settings
        return cls(
            max_candidates=settings.max_candidates,
            extraction_concurrency=settings.extraction_concurrency,
            matching_concurrency=settings.matching_concurrency,
            cancellation_token=cancellation_token,
        )


class _RunState:
    """Mutable state of one run. Only the coordinator writes to it."""

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self._callback = callback
        self._started = time.monotonic()
        self.stages: Dict[StageId, PipelineStageState] = {
            stage_id: PipelineStageState(stage=stage_id) for stage_id in STAGE_ORDER
        }
        self.log_lines: List[str] = []
        self.candidates: Tuple[CandidateRecord, ...] = ()
        self.outcomes: Tuple[MatchOutcome, ...] = ()
        self.summary: Optional[SummaryArtifact] = None

    def log(self, message: str) -> None:
        timestamp = datetime.now(timezone.utc).isoformat(timespec="seconds")
        self.log_lines.append(f"[{timestamp}] {message}")
        logger.info(message)

    async def transition(
        self,
        stage_id: StageId,
        status: StageStatus,
        progress: Optional[int] = None,
        error: Optional[str] = None,
    ) -> None:
        current = self.stages[stage_id]
        repeat_running = current.status is StageStatus.RUNNING and status is StageStatus.RUNNING
        if not repeat_running and _STATUS_RANK[status] <= _STATUS_RANK[current.status]:
            raise PipelineStateError(
                f"Illegal transition for stage '{stage_id.value}': "
                f"{current.status.value} -> {status.value}",
                details={"stage": stage_id.value},
            )

        state = PipelineStageState(
            stage=stage_id,
            status=status,
            progress=progress if status is StageStatus.RUNNING else None,
            error=error,
        )
        self.stages[stage_id] = state
        await self._emit(state)

    async def start(self, stage_id: StageId) -> None:
        await self.transition(stage_id, StageStatus.RUNNING, progress=0)

    async def advance(self, stage_id: StageId, fraction: float) -> None:
        await self.transition(stage_id, StageStatus.RUNNING, progress=int(math.floor(fraction * 100 + 0.5)))

    async def complete(self, stage_id: StageId) -> None:
        await self.transition(stage_id, StageStatus.COMPLETE)

    async def fail(self, stage_id: StageId, message: str) -> None:
        await self.transition(stage_id, StageStatus.ERROR, error=message)

    async def _emit(self, state: PipelineStageState) -> None:
        if self._callback is None:
            return
        result = self._callback(state, tuple(self.log_lines))
        if inspect.isawaitable(result):
            await result

    def snapshot(self) -> PipelineRun:
        return PipelineRun(
            candidates=self.candidates,
            outcomes=self.outcomes,
            summary=self.summary,
            stages=tuple(self.stages[stage_id] for stage_id in STAGE_ORDER),
            log=tuple(self.log_lines),
            duration_seconds=time.monotonic() - self._started,
        )


def _reason(exc: BaseException) -> str:
    return getattr(exc, "message", None) or str(exc) or type(exc).__name__


class PipelineCoordinator:
    """
    Sequences the matching stages for one evidence profile per run.

    Collaborators are injected; the coordinator holds no per-run state of its
    own, so one instance can serve concurrent runs.
    """

    def __init__(
        self,
        discovery: DiscoveryAdapter,
        extraction: ExtractionAdapter,
        summarization: SummarizationAdapter,
        matcher: Optional[MatchingAdapter] = None,
        retry: Optional[RetryExecutor] = None,
        cache: Optional[CriteriaCache] = None,
    ):
        if matcher is None:
            from trialscout.core.adapters.matcher import RuleBasedMatcher
            matcher = RuleBasedMatcher()

        self.discovery = discovery
        self.extraction = extraction
        self.summarization = summarization
        self.matcher = matcher
        self.retry = retry or RetryExecutor(RetryPolicy.from_settings())
        self.cache = cache

    async def run(
        self,
        profile: EvidenceProfile,
        progress_callback: Optional[ProgressCallback] = None,
        options: Optional[RunOptions] = None,
    ) -> PipelineRun:
        """
        Run the full pipeline.

        Args:
            profile: Patient evidence profile (never mutated)
            progress_callback: Called with ``(stage_state, log_snapshot)`` at every
                stage transition and intra-stage progress update; may be async
            options: Limits and cancellation token (defaults from settings)

        Returns:
            Final PipelineRun; also returned on Extraction exhaustion

        Raises:
            PipelineCancelledError: cancellation was observed
            DiscoveryFailedError: the Discovery call failed
        """
        options = options or RunOptions.from_settings()
        token = options.cancellation_token or CancellationToken()
        state = _RunState(progress_callback)

        logger.info(
            f"PipelineCoordinator: starting run for '{profile.condition}' "
            f"(max_candidates={options.max_candidates})"
        )

        try:
            return await self._execute(profile, state, options, token)
        except PipelineCancelledError as exc:
            state.log(f"Pipeline cancelled: {exc.message}")
            exc.run = state.snapshot()
            raise

    async def _execute(
        self,
        profile: EvidenceProfile,
        state: _RunState,
        options: RunOptions,
        token: CancellationToken,
    ) -> PipelineRun:
        # ── Discovery ────────────────────────────────────────────────────────
        token.raise_if_cancelled()
        candidates = await self._discover(profile, state, options)

        if not candidates:
            state.log("No recruiting trials found for this profile")
            await state.complete(StageId.DISCOVERY)
            for stage_id in STAGE_ORDER[1:]:
                await state.complete(stage_id)
            return state.snapshot()

        state.candidates = candidates
        await state.complete(StageId.DISCOVERY)

        # ── Extraction ───────────────────────────────────────────────────────
        token.raise_if_cancelled()
        extracted = await self._extract(candidates, state, options, token)
        await state.complete(StageId.EXTRACTION)

        if not extracted:
            message = "No eligibility criteria could be extracted"
            state.log(message)
            await state.fail(StageId.MATCHING, message)
            return state.snapshot()

        state.candidates = tuple(candidate for candidate, _ in extracted)

        # ── Matching ─────────────────────────────────────────────────────────
        token.raise_if_cancelled()
        state.outcomes = await self._match(profile, extracted, state, options, token)
        await state.complete(StageId.MATCHING)

        # ── Summarization ────────────────────────────────────────────────────
        token.raise_if_cancelled()
        await self._summarize(profile, state)
        await state.complete(StageId.SUMMARIZATION)

        run = state.snapshot()
        logger.info(
            f"PipelineCoordinator: run finished in {run.duration_seconds:.2f}s "
            f"({len(run.outcomes)} outcome(s))"
        )
        return run

    async def _discover(
        self,
        profile: EvidenceProfile,
        state: _RunState,
        options: RunOptions,
    ) -> Tuple[CandidateRecord, ...]:
        await state.start(StageId.DISCOVERY)
        state.log(
            f"Searching for {profile.condition} trials within "
            f"{profile.max_travel_miles:g} miles of {profile.location_code or 'any location'}"
        )

        try:
            result = await self.retry.run(
                lambda: self.discovery.discover(
                    profile.condition, profile.location_code, profile.max_travel_miles
                ),
                description="discovery",
            )
        except PipelineCancelledError:
            raise
        except Exception as exc:
            reason = _reason(exc)
            logger.error(f"PipelineCoordinator: discovery failed: {reason}")
            state.log(f"Trial search failed: {reason}")
            await state.fail(StageId.DISCOVERY, reason)
            raise DiscoveryFailedError(
                f"Trial search failed: {reason}",
                run=state.snapshot(),
                details={"cause": type(exc).__name__},
            ) from exc

        candidates = tuple(result.candidates[:options.max_candidates])
        if candidates:
            total = max(result.total_found, len(result.candidates))
            state.log(f"Found {total} trials, processing top {len(candidates)}")
        return candidates

    async def _extract(
        self,
        candidates: Sequence[CandidateRecord],
        state: _RunState,
        options: RunOptions,
        token: CancellationToken,
    ) -> List[Tuple[CandidateRecord, CriteriaSet]]:
        await state.start(StageId.EXTRACTION)

        async def extract_one(candidate: CandidateRecord) -> CriteriaSet:
            candidate_id = candidate.candidate_id
            if self.cache is not None:
                cached = self.cache.get(candidate_id)
                if cached is not None:
                    logger.debug(f"PipelineCoordinator: criteria cache hit for {candidate_id}")
                    return cached

            criteria = await self.retry.run(
                lambda: self.extraction.extract(candidate_id),
                description=f"extraction {candidate_id}",
            )
            if self.cache is not None:
                self.cache.set(candidate_id, criteria)
            return criteria

        def log_chunk(results: List[ItemResult]) -> None:
            for item in results:
                if item.ok:
                    state.log(f"Extracted criteria for {item.key}")
                else:
                    logger.warning(
                        f"PipelineCoordinator: dropping {item.key}, extraction failed: "
                        f"{_reason(item.error)}"
                    )
                    state.log(f"Failed to extract criteria for {item.key}: {_reason(item.error)}")

        batch = await BatchRunner(options.extraction_concurrency).run(
            candidates,
            extract_one,
            key=lambda c: c.candidate_id,
            on_chunk=log_chunk,
            on_progress=lambda fraction: state.advance(StageId.EXTRACTION, fraction),
            cancellation=token,
        )
        return [(item.item, item.value) for item in batch.succeeded]

    async def _match(
        self,
        profile: EvidenceProfile,
        extracted: Sequence[Tuple[CandidateRecord, CriteriaSet]],
        state: _RunState,
        options: RunOptions,
        token: CancellationToken,
    ) -> Tuple[MatchOutcome, ...]:
        await state.start(StageId.MATCHING)

        async def match_one(pair: Tuple[CandidateRecord, CriteriaSet]) -> MatchOutcome:
            candidate, criteria = pair
            return await self.retry.run(
                lambda: self.matcher.match(profile, candidate, criteria),
                description=f"matching {candidate.candidate_id}",
            )

        def log_chunk(results: List[ItemResult]) -> None:
            for item in results:
                if item.ok:
                    state.log(f"Matched {item.key}: score {item.value.score}")
                else:
                    logger.warning(
                        f"PipelineCoordinator: dropping {item.key}, matching failed: "
                        f"{_reason(item.error)}"
                    )
                    state.log(f"Failed to match {item.key}: {_reason(item.error)}")

        batch = await BatchRunner(options.matching_concurrency).run(
            extracted,
            match_one,
            key=lambda pair: pair[0].candidate_id,
            on_chunk=log_chunk,
            on_progress=lambda fraction: state.advance(StageId.MATCHING, fraction),
            cancellation=token,
        )

        # sorted() is stable, so ties keep discovery order
        outcomes = sorted(batch.values, key=lambda o: o.score, reverse=True)
        strong = sum(1 for o in outcomes if o.category is MatchCategory.STRONG)
        state.log(f"Matching complete: {len(outcomes)} scored, {strong} strong match(es)")
        return tuple(outcomes)

    async def _summarize(self, profile: EvidenceProfile, state: _RunState) -> None:
        await state.start(StageId.SUMMARIZATION)
        outcomes = state.outcomes

        try:
            summary = await self.retry.run(
                lambda: self.summarization.summarize(outcomes, profile.language),
                description="summarization",
            )
        except PipelineCancelledError:
            raise
        except Exception as exc:
            logger.warning(f"PipelineCoordinator: summarization failed: {_reason(exc)}")
            state.log(f"Summary generation failed: {_reason(exc)}")
            return

        state.summary = summary
        state.log(
            f"Summary ready (~{summary.estimated_duration_seconds}s, {summary.language.value})"
        )
