"""
Eligibility Scoring Rules

Each rule is a pure function ``(EvidenceProfile, CriteriaSet) -> RuleResult``
contributing matching, blocking and uncertain factors. Rules are evaluated
independently and merged by the scoring engine.

Only evidence the profile actually carries is assessed: diagnosis,
biomarkers, prior treatments, disease stage and performance status.
Demographic and "other" criteria have nothing to be compared with and are
left out of the uncertain list.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from trialscout.core.records import (
    BlockingFactor,
    CriteriaSet,
    Criterion,
    CriterionCategory,
    EvidenceProfile,
    MatchingFactor,
)
from .text import (
    clip,
    condition_matches,
    first_overlap,
    mentions_performance_status,
    parse_performance_range,
    parse_stages,
)

# ── Category weights (matching factor weight 1-10) ──────────────────────────
WEIGHT_DIAGNOSIS          = 10
WEIGHT_BIOMARKER          = 9
WEIGHT_STAGE              = 8
WEIGHT_PERFORMANCE_STATUS = 7
WEIGHT_TREATMENT          = 6
WEIGHT_DEMOGRAPHICS       = 5
WEIGHT_OTHER              = 3

CATEGORY_WEIGHTS = {
    "diagnosis":          WEIGHT_DIAGNOSIS,
    "biomarker":          WEIGHT_BIOMARKER,
    "stage":              WEIGHT_STAGE,
    "performance_status": WEIGHT_PERFORMANCE_STATUS,
    "treatment":          WEIGHT_TREATMENT,
    "demographics":       WEIGHT_DEMOGRAPHICS,
    "other":              WEIGHT_OTHER,
}

# Denominator of the weighted score (48)
TOTAL_CATEGORY_WEIGHT = sum(CATEGORY_WEIGHTS.values())


@dataclass
class RuleResult:
    """Factors contributed by one rule."""
    matching: List[MatchingFactor] = field(default_factory=list)
    blocking: List[BlockingFactor] = field(default_factory=list)
    uncertain: List[str] = field(default_factory=list)


def _first_mentioning_performance(criteria: List[Criterion]) -> Optional[Criterion]:
    for criterion in criteria:
        if mentions_performance_status(criterion.text):
            return criterion
    return None


# ── Rule 1: Hard exclusions on biomarkers and treatments ─────────────────────

def rule_hard_exclusions(profile: EvidenceProfile, criteria: CriteriaSet) -> RuleResult:
    """
    Any biomarker / treatment exclusion overlapping the profile blocks eligibility.
    """
    result = RuleResult()

    for criterion in criteria.exclusion:
        if criterion.category is CriterionCategory.BIOMARKER:
            hit = first_overlap(profile.biomarkers, criterion.text)
            label = "Biomarker"
        elif criterion.category is CriterionCategory.TREATMENT:
            hit = first_overlap(profile.prior_treatments, criterion.text)
            label = "Treatment History"
        else:
            continue

        if hit is not None:
            result.blocking.append(BlockingFactor(
                label=label,
                reason=f"The trial excludes: {clip(criterion.text, 80)} (you reported {hit})",
            ))

    return result


# ── Rule 2: Performance status (ECOG) ────────────────────────────────────────

def rule_performance_status(profile: EvidenceProfile, criteria: CriteriaSet) -> RuleResult:
    """
    The first inclusion criterion mentioning ECOG / performance status gives
    the allowed range; exclusion criteria give excluded ranges.

    A requirement that is absent or cannot be parsed counts as satisfied.
    """
    result = RuleResult()
    ps = profile.performance_status

    required = _first_mentioning_performance(list(criteria.inclusion))
    if required is not None:
        allowed = parse_performance_range(required.text)
        if allowed is not None and not allowed[0] <= ps <= allowed[1]:
            result.blocking.append(BlockingFactor(
                label="Performance Status",
                reason=f"ECOG score {ps} outside required range ({allowed[0]}-{allowed[1]})",
            ))

    for criterion in criteria.exclusion:
        if not mentions_performance_status(criterion.text):
            continue
        excluded = parse_performance_range(criterion.text)
        if excluded is not None and excluded[0] <= ps <= excluded[1]:
            result.blocking.append(BlockingFactor(
                label="Performance Status",
                reason=f"ECOG score {ps} falls in the excluded range ({excluded[0]}-{excluded[1]})",
            ))

    if not result.blocking:
        result.matching.append(MatchingFactor(
            label=f"ECOG score {ps} meets requirements",
            weight=WEIGHT_PERFORMANCE_STATUS,
        ))
    return result


# ── Rule 3: Diagnosis ────────────────────────────────────────────────────────

def rule_diagnosis(profile: EvidenceProfile, criteria: CriteriaSet) -> RuleResult:
    result = RuleResult()
    diagnosis_criteria = [
        c for c in criteria.inclusion if c.category is CriterionCategory.DIAGNOSIS
    ]
    if not diagnosis_criteria:
        return result

    if any(condition_matches(profile.condition, c.text) for c in diagnosis_criteria):
        result.matching.append(MatchingFactor(
            label="Diagnosis matches trial requirements",
            weight=WEIGHT_DIAGNOSIS,
        ))
    else:
        result.uncertain.append("Diagnosis alignment needs confirmation")
    return result


# ── Rule 4: Disease stage ────────────────────────────────────────────────────

def rule_stage(profile: EvidenceProfile, criteria: CriteriaSet) -> RuleResult:
    """The first inclusion criterion naming stages decides."""
    result = RuleResult()

    for criterion in criteria.inclusion:
        accepted = parse_stages(criterion.text)
        if not accepted:
            continue

        if not profile.stage.is_known:
            result.uncertain.append("Disease stage needs confirmation")
        elif profile.stage.ordinal in accepted:
            result.matching.append(MatchingFactor(
                label=f"Stage {profile.stage.value} disease fits trial requirements",
                weight=WEIGHT_STAGE,
            ))
        else:
            result.uncertain.append(f"Stage requirement: {clip(criterion.text, 50)}")
        break

    return result


# ── Rule 5: Biomarker inclusions ─────────────────────────────────────────────

def rule_biomarkers(profile: EvidenceProfile, criteria: CriteriaSet) -> RuleResult:
    result = RuleResult()
    for criterion in criteria.inclusion:
        if criterion.category is not CriterionCategory.BIOMARKER:
            continue
        if first_overlap(profile.biomarkers, criterion.text) is not None:
            result.matching.append(MatchingFactor(
                label=f"Biomarker match: {clip(criterion.text, 40)}",
                weight=WEIGHT_BIOMARKER,
            ))
        else:
            result.uncertain.append(clip(criterion.text, 50))
    return result


# ── Rule 6: Treatment inclusions ─────────────────────────────────────────────

def rule_treatments(profile: EvidenceProfile, criteria: CriteriaSet) -> RuleResult:
    result = RuleResult()
    for criterion in criteria.inclusion:
        if criterion.category is not CriterionCategory.TREATMENT:
            continue
        if first_overlap(profile.prior_treatments, criterion.text) is not None:
            result.matching.append(MatchingFactor(
                label=f"Prior treatment: {clip(criterion.text, 40)}",
                weight=WEIGHT_TREATMENT,
            ))
        else:
            result.uncertain.append(clip(criterion.text, 50))
    return result
