"""
Pipeline Records - Shared Data Contracts

Defines the records exchanged between the pipeline stages: the patient's
evidence profile, discovered candidate trials, extracted eligibility
criteria, match outcomes, per-stage state and the aggregate run result.

Records produced by a stage are frozen; the coordinator is the only writer
of per-run state and hands out immutable snapshots.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple


# ── Enumerations ─────────────────────────────────────────────────────────────

class DiseaseStage(str, Enum):
    """Self-reported disease stage. UNKNOWN sorts before every known stage."""
    I       = "I"
    II      = "II"
    III     = "III"
    IV      = "IV"
    UNKNOWN = "Unknown"

    @property
    def ordinal(self) -> int:
        return _STAGE_ORDINALS[self]

    @property
    def is_known(self) -> bool:
        return self is not DiseaseStage.UNKNOWN


_STAGE_ORDINALS = {
    DiseaseStage.UNKNOWN: 0,
    DiseaseStage.I:       1,
    DiseaseStage.II:      2,
    DiseaseStage.III:     3,
    DiseaseStage.IV:      4,
}


class Language(str, Enum):
    """Languages the plain-language summary can be produced in."""
    EN = "en"
    ES = "es"
    ZH = "zh"
    FR = "fr"
    DE = "de"


class CriterionCategory(str, Enum):
    """Closed set of eligibility criterion categories."""
    DIAGNOSIS    = "diagnosis"
    BIOMARKER    = "biomarker"
    TREATMENT    = "treatment"
    DEMOGRAPHICS = "demographics"
    OTHER        = "other"


class MatchCategory(str, Enum):
    """Mutually exclusive outcome categories, best first."""
    STRONG           = "strong_match"
    POSSIBLE         = "possible_match"
    FUTURE_POTENTIAL = "future_potential"
    NOT_ELIGIBLE     = "not_eligible"


class StageId(str, Enum):
    """The four fixed pipeline stages, in execution order."""
    DISCOVERY     = "discovery"
    EXTRACTION    = "extraction"
    MATCHING      = "matching"
    SUMMARIZATION = "summarization"

    @property
    def display_name(self) -> str:
        return _STAGE_NAMES[self]


_STAGE_NAMES = {
    StageId.DISCOVERY:     "Finding Trials",
    StageId.EXTRACTION:    "Analyzing Eligibility",
    StageId.MATCHING:      "Matching Your Profile",
    StageId.SUMMARIZATION: "Creating Summary",
}

STAGE_ORDER: Tuple[StageId, ...] = (
    StageId.DISCOVERY,
    StageId.EXTRACTION,
    StageId.MATCHING,
    StageId.SUMMARIZATION,
)


class StageStatus(str, Enum):
    """
    Lifecycle of a single stage within one run.

    PENDING  – not started yet
    RUNNING  – in progress; progress percentage may be reported
    COMPLETE – finished (possibly with non-critical failures)
    ERROR    – finished without usable output
    """
    PENDING  = "pending"
    RUNNING  = "running"
    COMPLETE = "complete"
    ERROR    = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (StageStatus.COMPLETE, StageStatus.ERROR)


# ── Evidence profile ─────────────────────────────────────────────────────────

def _labels(values: Iterable[str]) -> FrozenSet[str]:
    return frozenset(v.strip() for v in values if v and v.strip())


@dataclass(frozen=True)
class EvidenceProfile:
    """
    The patient's self-reported attributes.

    Biomarkers and prior treatments are order-insensitive label sets.
    Never mutated once a pipeline run starts.
    """
    condition: str
    stage: DiseaseStage = DiseaseStage.UNKNOWN
    biomarkers: FrozenSet[str] = frozenset()
    performance_status: int = 0           # ECOG 0-4
    prior_treatments: FrozenSet[str] = frozenset()
    location_code: str = ""               # 5-digit US zipcode
    max_travel_miles: float = 50.0
    language: Language = Language.EN

    def __post_init__(self):
        if not 0 <= self.performance_status <= 4:
            raise ValueError(
                f"performance_status must be between 0 and 4, got {self.performance_status}"
            )
        object.__setattr__(self, "stage", DiseaseStage(self.stage))
        object.__setattr__(self, "language", Language(self.language))
        object.__setattr__(self, "biomarkers", _labels(self.biomarkers))
        object.__setattr__(self, "prior_treatments", _labels(self.prior_treatments))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "condition": self.condition,
            "stage": self.stage.value,
            "biomarkers": sorted(self.biomarkers),
            "performance_status": self.performance_status,
            "prior_treatments": sorted(self.prior_treatments),
            "location_code": self.location_code,
            "max_travel_miles": self.max_travel_miles,
            "language": self.language.value,
        }


# ── Discovery ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Location:
    """A trial site; distance is measured from the profile's location."""
    facility: str
    city: str = ""
    state: str = ""
    zipcode: str = ""
    distance_miles: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "facility": self.facility,
            "city": self.city,
            "state": self.state,
            "zipcode": self.zipcode,
            "distance_miles": self.distance_miles,
        }


@dataclass(frozen=True)
class CandidateRecord:
    """A discovered clinical study. Locations are ordered nearest first."""
    candidate_id: str
    title: str
    phase: str = "N/A"
    status: str = ""
    sponsor: str = "Unknown"
    conditions: Tuple[str, ...] = ()
    interventions: Tuple[str, ...] = ()
    locations: Tuple[Location, ...] = ()
    url: str = ""

    @property
    def nearest_distance(self) -> Optional[float]:
        for location in self.locations:
            if location.distance_miles is not None:
                return location.distance_miles
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "candidate_id": self.candidate_id,
            "title": self.title,
            "phase": self.phase,
            "status": self.status,
            "sponsor": self.sponsor,
            "conditions": list(self.conditions),
            "interventions": list(self.interventions),
            "locations": [loc.to_dict() for loc in self.locations],
            "url": self.url,
        }


@dataclass(frozen=True)
class DiscoveryResult:
    """Response of the Discovery collaborator."""
    candidates: Tuple[CandidateRecord, ...]
    total_found: int = 0


# ── Extraction ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Criterion:
    """One eligibility criterion: free text plus a category tag."""
    text: str
    category: CriterionCategory = CriterionCategory.OTHER

    def to_dict(self) -> Dict[str, str]:
        return {"text": self.text, "category": self.category.value}


@dataclass(frozen=True)
class AgeRange:
    min_age: int = 0
    max_age: int = 120


@dataclass(frozen=True)
class CriteriaSet:
    """Structured eligibility data for one candidate."""
    candidate_id: str
    inclusion: Tuple[Criterion, ...] = ()
    exclusion: Tuple[Criterion, ...] = ()
    age_range: AgeRange = AgeRange()
    accepts_healthy_volunteers: bool = False
    raw_text: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "candidate_id": self.candidate_id,
            "inclusion": [c.to_dict() for c in self.inclusion],
            "exclusion": [c.to_dict() for c in self.exclusion],
            "age_range": {"min": self.age_range.min_age, "max": self.age_range.max_age},
            "accepts_healthy_volunteers": self.accepts_healthy_volunteers,
            "raw_text": self.raw_text,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CriteriaSet":
        def _criteria(items):
            return tuple(
                Criterion(text=c["text"], category=CriterionCategory(c["category"]))
                for c in items
            )

        age = data.get("age_range") or {}
        return cls(
            candidate_id=data["candidate_id"],
            inclusion=_criteria(data.get("inclusion", [])),
            exclusion=_criteria(data.get("exclusion", [])),
            age_range=AgeRange(age.get("min", 0), age.get("max", 120)),
            accepts_healthy_volunteers=bool(data.get("accepts_healthy_volunteers", False)),
            raw_text=data.get("raw_text", ""),
        )


# ── Matching ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class MatchingFactor:
    label: str
    weight: int          # 1-10


@dataclass(frozen=True)
class BlockingFactor:
    label: str
    reason: str


@dataclass(frozen=True)
class MatchOutcome:
    """
    Scored, categorised and explained result for one candidate.

    Produced once per candidate by the scoring engine and never mutated.
    """
    candidate_id: str
    score: int
    category: MatchCategory
    matching_factors: Tuple[MatchingFactor, ...] = ()
    blocking_factors: Tuple[BlockingFactor, ...] = ()
    uncertain_factors: Tuple[str, ...] = ()
    summary: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "candidate_id": self.candidate_id,
            "score": self.score,
            "category": self.category.value,
            "matching_factors": [
                {"factor": f.label, "weight": f.weight} for f in self.matching_factors
            ],
            "blocking_factors": [
                {"factor": f.label, "reason": f.reason} for f in self.blocking_factors
            ],
            "uncertain_factors": list(self.uncertain_factors),
            "summary": self.summary,
        }


# ── Summarization ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SummaryArtifact:
    """Plain-language script returned by the Summarization collaborator."""
    text: str
    language: Language = Language.EN
    estimated_duration_seconds: int = 0
    audio_ref: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "language": self.language.value,
            "estimated_duration_seconds": self.estimated_duration_seconds,
            "audio_ref": self.audio_ref,
        }


# ── Pipeline state ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PipelineStageState:
    """State of one stage; progress is only meaningful while RUNNING."""
    stage: StageId
    status: StageStatus = StageStatus.PENDING
    progress: Optional[int] = None
    error: Optional[str] = None

    @property
    def name(self) -> str:
        return self.stage.display_name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.stage.value,
            "name": self.name,
            "status": self.status.value,
            "progress": self.progress,
            "error": self.error,
        }


@dataclass(frozen=True)
class PipelineRun:
    """
    Aggregate result of one pipeline run.

    Outcomes are sorted by score descending; ties keep discovery order.
    """
    candidates: Tuple[CandidateRecord, ...] = ()
    outcomes: Tuple[MatchOutcome, ...] = ()
    summary: Optional[SummaryArtifact] = None
    stages: Tuple[PipelineStageState, ...] = ()
    log: Tuple[str, ...] = ()
    duration_seconds: float = 0.0

    def stage(self, stage_id: StageId) -> PipelineStageState:
        for state in self.stages:
            if state.stage is stage_id:
                return state
        raise KeyError(stage_id)

    @property
    def overall_progress(self) -> int:
        from trialscout.core.pipeline.progress import calculate_overall_progress
        return calculate_overall_progress(self.stages)

    @property
    def status_message(self) -> str:
        from trialscout.core.pipeline.progress import status_message
        return status_message(self.stages)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "candidates": [c.to_dict() for c in self.candidates],
            "outcomes": [o.to_dict() for o in self.outcomes],
            "summary": self.summary.to_dict() if self.summary else None,
            "stages": [s.to_dict() for s in self.stages],
            "log": list(self.log),
            "duration_seconds": round(self.duration_seconds, 3),
        }
