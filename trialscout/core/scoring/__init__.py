"""
Scoring Layer

Deterministic eligibility scoring of one candidate against a profile.

Usage:
    from trialscout.core.scoring import ScoringEngine

    outcome = ScoringEngine().score(profile, criteria)
"""
from .engine import ScoringEngine, category_for_score, summarize
from .rules import CATEGORY_WEIGHTS, TOTAL_CATEGORY_WEIGHT

__all__ = [
    "ScoringEngine",
    "category_for_score",
    "summarize",
    "CATEGORY_WEIGHTS",
    "TOTAL_CATEGORY_WEIGHT",
]
