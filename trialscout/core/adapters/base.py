"""
Stage Collaborator Interfaces

The coordinator consumes Discovery, Extraction, Matching and Summarization
through these narrow async interfaces. Implementations signal failures by
raising the matching ``AdapterError`` subclass with an ``ErrorKind``:
rate limits and timeouts are RETRYABLE, everything else FATAL.
"""
from __future__ import annotations

from typing import Optional, Protocol, Sequence, runtime_checkable

from trialscout.core.records import (
    CandidateRecord,
    CriteriaSet,
    DiscoveryResult,
    EvidenceProfile,
    Language,
    MatchOutcome,
    SummaryArtifact,
)


@runtime_checkable
class DiscoveryAdapter(Protocol):
    async def discover(
        self, condition: str, location_code: str, radius_miles: float
    ) -> DiscoveryResult:
        """Find candidate trials for a condition near a location."""
        ...


@runtime_checkable
class ExtractionAdapter(Protocol):
    async def extract(self, candidate_id: str) -> CriteriaSet:
        """Structured eligibility criteria for one candidate."""
        ...


@runtime_checkable
class MatchingAdapter(Protocol):
    async def match(
        self,
        profile: EvidenceProfile,
        candidate: CandidateRecord,
        criteria: CriteriaSet,
    ) -> MatchOutcome:
        """Score one candidate for the profile."""
        ...


@runtime_checkable
class SummarizationAdapter(Protocol):
    async def summarize(
        self, outcomes: Sequence[MatchOutcome], language: Language
    ) -> SummaryArtifact:
        """Plain-language summary of the ranked outcomes."""
        ...


@runtime_checkable
class CriteriaCache(Protocol):
    """Process-wide store of extracted criteria, keyed by candidate id."""

    def get(self, candidate_id: str) -> Optional[CriteriaSet]:
        ...

    def set(self, candidate_id: str, criteria: CriteriaSet) -> None:
        ...
