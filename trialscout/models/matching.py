"""
API Models - request and response schemas for the matching endpoints.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from trialscout.core.records import DiseaseStage, EvidenceProfile, Language


class ProfileRequest(BaseModel):
    """Patient's self-reported profile submitted for matching."""
    condition: str = Field(..., min_length=3, description="Diagnosis, e.g. 'non-small cell lung cancer'")
    stage: DiseaseStage = Field(DiseaseStage.UNKNOWN, description="Disease stage I-IV or Unknown")
    biomarkers: List[str] = Field(default_factory=list, description="Known biomarkers, e.g. 'EGFR'")
    performance_status: int = Field(0, ge=0, le=4, description="ECOG performance status 0-4")
    prior_treatments: List[str] = Field(default_factory=list)
    zipcode: str = Field(..., pattern=r"^\d{5}$", description="5-digit US zipcode")
    travel_radius_miles: float = Field(50, ge=10, le=500)
    language: Language = Language.EN

    @field_validator("condition")
    @classmethod
    def strip_condition(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 3:
            raise ValueError("condition must be at least 3 characters")
        return v

    def to_profile(self) -> EvidenceProfile:
        return EvidenceProfile(
            condition=self.condition,
            stage=self.stage,
            biomarkers=frozenset(self.biomarkers),
            performance_status=self.performance_status,
            prior_treatments=frozenset(self.prior_treatments),
            location_code=self.zipcode,
            max_travel_miles=self.travel_radius_miles,
            language=self.language,
        )


class MatchResponse(BaseModel):
    """Completed (or exhausted) pipeline run."""
    candidates: List[Dict[str, Any]]
    outcomes: List[Dict[str, Any]]
    summary: Optional[Dict[str, Any]] = None
    stages: List[Dict[str, Any]]
    log: List[str]
    duration_seconds: float
    overall_progress: int
    status_message: str


class StageInfo(BaseModel):
    id: str
    name: str
    weight: int


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    timestamp: str
    uptime_seconds: float
