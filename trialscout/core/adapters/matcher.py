"""
Rule-based matching collaborator.

Runs the local ScoringEngine behind the async matching interface so the
Matching stage can later be pointed at an external reasoning service
without touching the coordinator.
"""
from typing import Optional

from trialscout.core.records import CandidateRecord, CriteriaSet, EvidenceProfile, MatchOutcome
from trialscout.core.scoring import ScoringEngine
from trialscout.utils import MatchingError


class RuleBasedMatcher:
    def __init__(self, engine: Optional[ScoringEngine] = None):
        self.engine = engine or ScoringEngine()

    async def match(
        self,
        profile: EvidenceProfile,
        candidate: CandidateRecord,
        criteria: CriteriaSet,
    ) -> MatchOutcome:
        if criteria.candidate_id != candidate.candidate_id:
            raise MatchingError(
                f"Criteria for {criteria.candidate_id} passed for candidate {candidate.candidate_id}",
                details={"candidate_id": candidate.candidate_id},
            )
        return self.engine.score(profile, criteria)
