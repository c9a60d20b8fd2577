"""
Stage Collaborators

Interfaces consumed by the pipeline coordinator plus the default
implementations: ClinicalTrials.gov discovery and extraction, the rule-based
matcher, the advocate script summarizer and the criteria caches.
"""
from .base import (
    CriteriaCache,
    DiscoveryAdapter,
    ExtractionAdapter,
    MatchingAdapter,
    SummarizationAdapter,
)
from .cache import DiskCriteriaCache, InMemoryCriteriaCache
from .clinicaltrials import ClinicalTrialsDiscovery, ClinicalTrialsExtraction, ClinicalTrialsGovClient
from .advocate import ScriptSummarizer, validate_script
from .matcher import RuleBasedMatcher

__all__ = [
    "CriteriaCache",
    "DiscoveryAdapter",
    "ExtractionAdapter",
    "MatchingAdapter",
    "SummarizationAdapter",
    "DiskCriteriaCache",
    "InMemoryCriteriaCache",
    "ClinicalTrialsDiscovery",
    "ClinicalTrialsExtraction",
    "ClinicalTrialsGovClient",
    "ScriptSummarizer",
    "validate_script",
    "RuleBasedMatcher",
]
