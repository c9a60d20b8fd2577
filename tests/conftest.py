"""
Pytest Configuration and Fixtures

Shared fixtures and in-memory stage collaborators for TrialScout tests.
"""
import asyncio
from typing import Dict, List, Optional, Sequence

import pytest

from trialscout.core.execution import RetryExecutor, RetryPolicy
from trialscout.core.records import (
    CandidateRecord,
    CriteriaSet,
    Criterion,
    CriterionCategory,
    DiscoveryResult,
    DiseaseStage,
    EvidenceProfile,
    Language,
    Location,
    MatchOutcome,
    SummaryArtifact,
)
from trialscout.utils import ExtractionError, SummarizationError

D = CriterionCategory.DIAGNOSIS
B = CriterionCategory.BIOMARKER
T = CriterionCategory.TREATMENT
O = CriterionCategory.OTHER


# ── Fake collaborators ───────────────────────────────────────────────────────

class FakeDiscovery:
    """Returns a fixed candidate list, or raises."""

    def __init__(self, candidates: Sequence[CandidateRecord] = (), total_found=None, error=None):
        self.candidates = tuple(candidates)
        self.total_found = len(self.candidates) if total_found is None else total_found
        self.error = error
        self.calls: List[tuple] = []

    async def discover(self, condition, location_code, radius_miles):
        self.calls.append((condition, location_code, radius_miles))
        if self.error is not None:
            raise self.error
        return DiscoveryResult(candidates=self.candidates, total_found=self.total_found)


class FakeExtraction:
    """
    Serves criteria by candidate id and tracks peak concurrency.

    Unknown ids raise a fatal not-found error; ids in ``failures`` raise the
    given exception.
    """

    def __init__(
        self,
        criteria: Optional[Dict[str, CriteriaSet]] = None,
        failures: Optional[Dict[str, Exception]] = None,
        delay: float = 0.0,
    ):
        self.criteria = criteria or {}
        self.failures = failures or {}
        self.delay = delay
        self.calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def extract(self, candidate_id: str) -> CriteriaSet:
        self.calls.append(candidate_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if candidate_id in self.failures:
                raise self.failures[candidate_id]
            if candidate_id not in self.criteria:
                raise ExtractionError.not_found(f"No study {candidate_id}", candidate_id=candidate_id)
            return self.criteria[candidate_id]
        finally:
            self.in_flight -= 1


class FakeSummarizer:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.calls: List[tuple] = []

    async def summarize(self, outcomes: Sequence[MatchOutcome], language: Language) -> SummaryArtifact:
        self.calls.append((tuple(outcomes), language))
        if self.error is not None:
            raise self.error
        return SummaryArtifact(
            text=f"{len(outcomes)} trial(s) reviewed.",
            language=language,
            estimated_duration_seconds=2,
        )


async def no_sleep(delay: float) -> None:
    return None


# ── Builders ─────────────────────────────────────────────────────────────────

def make_candidate(candidate_id: str, distance: Optional[float] = 5.0) -> CandidateRecord:
    return CandidateRecord(
        candidate_id=candidate_id,
        title=f"Study {candidate_id}",
        phase="Phase 2",
        status="RECRUITING",
        sponsor="Test Sponsor",
        conditions=("Non-Small Cell Lung Cancer",),
        locations=(Location("Test Hospital", "New York", "NY", "10065", distance),),
        url=f"https://clinicaltrials.gov/study/{candidate_id}",
    )


def make_criteria(candidate_id: str, inclusion=(), exclusion=()) -> CriteriaSet:
    return CriteriaSet(
        candidate_id=candidate_id,
        inclusion=tuple(Criterion(text, cat) for text, cat in inclusion),
        exclusion=tuple(Criterion(text, cat) for text, cat in exclusion),
    )


# Every evidence-bearing rule matches the `profile` fixture: 10+9+8+7+6 = 40 / 48 → 83
STRONG_INCLUSION = (
    ("Histologically confirmed non-small cell lung cancer", D),
    ("Stage IIIB or IV disease", D),
    ("EGFR mutation positive", B),
    ("ECOG performance status 0-1", O),
    ("Prior platinum-based chemotherapy with carboplatin", T),
)

# Diagnosis, stage and ECOG match: 10+8+7 = 25 / 48 → 52
POSSIBLE_INCLUSION = (
    ("Histologically confirmed non-small cell lung cancer", D),
    ("Stage III or IV disease", D),
    ("ECOG performance status 0-2", O),
)


# ── Fixtures ─────────────────────────────────────────────────────────────────

@pytest.fixture
def profile() -> EvidenceProfile:
    """Stage IV NSCLC patient, EGFR positive, ECOG 1, near New York."""
    return EvidenceProfile(
        condition="Non-small cell lung cancer",
        stage=DiseaseStage.IV,
        biomarkers=frozenset({"EGFR"}),
        performance_status=1,
        prior_treatments=frozenset({"Carboplatin"}),
        location_code="10001",
        max_travel_miles=50,
        language=Language.EN,
    )


@pytest.fixture
def strong_criteria() -> CriteriaSet:
    return make_criteria("NCT00000001", inclusion=STRONG_INCLUSION)


@pytest.fixture
def excluded_criteria() -> CriteriaSet:
    """Strong inclusion list, but the trial excludes EGFR alterations."""
    return make_criteria(
        "NCT04613596",
        inclusion=STRONG_INCLUSION,
        exclusion=(
            ("Prior therapy with anti-PD-1 or anti-PD-L1 agents", T),
            ("Known EGFR or ALK genomic alterations", B),
        ),
    )


@pytest.fixture
def fast_retry() -> RetryExecutor:
    """Three attempts, no real waiting."""
    return RetryExecutor(RetryPolicy(max_attempts=3, base_delay=1.0), sleep=no_sleep)


@pytest.fixture
def five_candidates() -> List[CandidateRecord]:
    return [make_candidate(f"NCT0000000{i}", distance=float(i)) for i in range(1, 6)]


@pytest.fixture
def summarization_error() -> SummarizationError:
    return SummarizationError("Speech service unavailable")
