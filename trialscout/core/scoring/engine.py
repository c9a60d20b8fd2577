"""
Scoring Engine

Pure, synchronous and deterministic: ``(EvidenceProfile, CriteriaSet)`` in,
``MatchOutcome`` out. No I/O, no shared state.

Usage:
    from trialscout.core.scoring import ScoringEngine

    engine = ScoringEngine()
    outcome = engine.score(profile, criteria)
    print(outcome.score, outcome.category, outcome.summary)

Scoring:
    1. Hard exclusions and performance-status conflicts become blocking
       factors. Any blocking factor caps the outcome:
       score = max(0, 20 - 10 × blocking), category = not eligible.
    2. Otherwise score = round(100 × matched weight / 48) - 5 × uncertain,
       clamped to [0, 100].
    3. Category bands are fixed: ≥75 strong, ≥50 possible, ≥25 future
       potential, below that not eligible.
"""
from __future__ import annotations

import math
from typing import List, Sequence

from trialscout.core.records import (
    BlockingFactor,
    CriteriaSet,
    EvidenceProfile,
    MatchCategory,
    MatchingFactor,
    MatchOutcome,
)
from trialscout.utils import get_logger
from .rules import (
    TOTAL_CATEGORY_WEIGHT,
    RuleResult,
    rule_biomarkers,
    rule_diagnosis,
    rule_hard_exclusions,
    rule_performance_status,
    rule_stage,
    rule_treatments,
)

logger = get_logger(__name__)

# ── Category thresholds (inclusive lower bounds) ─────────────────────────────
STRONG_THRESHOLD   = 75
POSSIBLE_THRESHOLD = 50
FUTURE_THRESHOLD   = 25

# ── Score shaping ────────────────────────────────────────────────────────────
BLOCKED_BASE_SCORE  = 20
BLOCKING_PENALTY    = 10
UNCERTAINTY_PENALTY = 5

# Evaluation order; exclusions first so blocking factors lead the list
_RULES = (
    rule_hard_exclusions,
    rule_performance_status,
    rule_diagnosis,
    rule_stage,
    rule_biomarkers,
    rule_treatments,
)


def category_for_score(score: int) -> MatchCategory:
    """Map a final score onto its category band."""
    if score >= STRONG_THRESHOLD:
        return MatchCategory.STRONG
    if score >= POSSIBLE_THRESHOLD:
        return MatchCategory.POSSIBLE
    if score >= FUTURE_THRESHOLD:
        return MatchCategory.FUTURE_POTENTIAL
    return MatchCategory.NOT_ELIGIBLE


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def weighted_score(matching: Sequence[MatchingFactor], uncertain_count: int) -> int:
    matched_weight = sum(f.weight for f in matching)
    score = _round_half_up(100 * matched_weight / TOTAL_CATEGORY_WEIGHT)
    score -= UNCERTAINTY_PENALTY * uncertain_count
    return max(0, min(100, score))


def blocked_score(blocking_count: int) -> int:
    return max(0, BLOCKED_BASE_SCORE - BLOCKING_PENALTY * blocking_count)


def _sentence(text: str) -> str:
    return text.strip().rstrip(".")


def summarize(
    category: MatchCategory,
    matching: Sequence[MatchingFactor],
    blocking: Sequence[BlockingFactor],
) -> str:
    """
    Plain-language, informational summary for one outcome.

    Parameterised by the top blocking factor (first raised) or the top
    matching factor (highest weight, earliest on ties).
    """
    if category is MatchCategory.NOT_ELIGIBLE and blocking:
        return (
            f"This trial may not be a good fit right now. {_sentence(blocking[0].reason)}. "
            "Consider discussing alternative options with your doctor."
        )

    top = max(matching, key=lambda f: f.weight).label if matching else "Your profile"

    if category is MatchCategory.STRONG:
        return (
            f"This trial looks like a strong match for you. {_sentence(top)}, which aligns "
            "well with what the trial is looking for. Talk to your doctor about whether "
            "this could be a good option."
        )
    if category is MatchCategory.POSSIBLE:
        return (
            f"This trial could potentially be a fit for you. {_sentence(top)}, but a few "
            "details would need to be confirmed. Your doctor can help determine if you qualify."
        )
    if category is MatchCategory.FUTURE_POTENTIAL:
        return (
            "This trial might become an option in the future. Right now, there are some "
            "differences between your situation and what the trial requires. Your doctor "
            "can explain more about what might need to change."
        )
    return (
        "Based on the information available, this trial does not appear to match your "
        "profile right now. Your doctor can help you explore other options."
    )


class ScoringEngine:
    """
    Turns evidence and eligibility criteria into a ranked, explained outcome.

    Stateless; one instance can be shared between concurrent matching workers.
    """

    def score(self, profile: EvidenceProfile, criteria: CriteriaSet) -> MatchOutcome:
        """
        Score one candidate.

        Args:
            profile: Patient evidence profile
            criteria: Extracted eligibility criteria for the candidate

        Returns:
            A complete MatchOutcome keyed by ``criteria.candidate_id``
        """
        matching: List[MatchingFactor] = []
        blocking: List[BlockingFactor] = []
        uncertain: List[str] = []

        for rule in _RULES:
            result: RuleResult = rule(profile, criteria)
            matching.extend(result.matching)
            blocking.extend(result.blocking)
            uncertain.extend(result.uncertain)

        if blocking:
            score = blocked_score(len(blocking))
            category = MatchCategory.NOT_ELIGIBLE
        else:
            score = weighted_score(matching, len(uncertain))
            category = category_for_score(score)

        logger.debug(
            f"ScoringEngine [{criteria.candidate_id}]: score={score} category={category.value} "
            f"matching={len(matching)} blocking={len(blocking)} uncertain={len(uncertain)}"
        )

        return MatchOutcome(
            candidate_id=criteria.candidate_id,
            score=score,
            category=category,
            matching_factors=tuple(matching),
            blocking_factors=tuple(blocking),
            uncertain_factors=tuple(uncertain),
            summary=summarize(category, matching, blocking),
        )
