"""
Eligibility Text Parser

Turns a ClinicalTrials.gov ``eligibilityModule`` into a CriteriaSet:

    - the free text is split into inclusion / exclusion sections at their
      headings; every bullet or numbered line becomes one criterion
    - each criterion is tagged with the first matching keyword category
    - ``minimumAge`` / ``maximumAge`` ("18 Years", "6 Months") become whole years
"""
import re
from typing import Any, Dict, List, Optional, Tuple

from trialscout.core.records import AgeRange, CriteriaSet, Criterion, CriterionCategory
from trialscout.utils import ExtractionError

# ── Section headings and bullets ─────────────────────────────────────────────
_INCLUSION_HEADING = re.compile(r"^(key\s+)?inclusion\s+criteria\b", re.IGNORECASE)
_EXCLUSION_HEADING = re.compile(r"^(key\s+)?exclusion\s+criteria\b", re.IGNORECASE)
_BULLET = re.compile(r"^(?:[*\-•·]+|\(?\d{1,2}[.)]|\(?[a-z][.)])\s+", re.IGNORECASE)

# ── Category keywords, evaluated in order ────────────────────────────────────
_CATEGORY_RULES: Tuple[Tuple[CriterionCategory, re.Pattern], ...] = (
    (CriterionCategory.DEMOGRAPHICS, re.compile(
        r"\bage\b|\byears old\b|\byears of age\b|\bmale\b|\bfemale\b|\bwomen\b|\bmen\b"
        r"|pregnan|breast-?feeding|lactat|childbearing|contracepti",
        re.IGNORECASE,
    )),
    (CriterionCategory.TREATMENT, re.compile(
        r"\bprior\b|\bprevious(ly)?\b|therap|treatment|chemotherap|radiotherap|radiation"
        r"|surgery|surgical|\binhibitor|\btki\b|\breceived\b|regimen|lines? of",
        re.IGNORECASE,
    )),
    (CriterionCategory.BIOMARKER, re.compile(
        r"\begfr\b|\balk\b|\bros1\b|\bbraf\b|\bkras\b|\bher2\b|\bbrca[12]?\b|pd-?l1|\bmsi\b"
        r"|\btmb\b|mutation|biomarker|expression|amplification|fusion|rearrangement"
        r"|receptor|positive|negative",
        re.IGNORECASE,
    )),
    (CriterionCategory.DIAGNOSIS, re.compile(
        r"diagnos|histolog|cytolog|carcinoma|cancer|tumou?r|\bstage\b|metasta|lymphoma"
        r"|leuka?emia|myeloma|melanoma|sarcoma|neoplasm|\bnsclc\b|malignan",
        re.IGNORECASE,
    )),
)

_AGE = re.compile(r"(\d+)\s*(year|month|week|day)s?", re.IGNORECASE)
_UNITS_PER_YEAR = {"year": 1, "month": 12, "week": 52, "day": 365}

DEFAULT_AGE_RANGE = AgeRange()


def categorize(text: str) -> CriterionCategory:
    """Tag a criterion with the first matching keyword category."""
    for category, pattern in _CATEGORY_RULES:
        if pattern.search(text):
            return category
    return CriterionCategory.OTHER


def parse_age(value: Optional[str], default: int) -> int:
    """Parse "18 Years" / "6 Months" into whole years; ``default`` if missing."""
    if not value:
        return default
    match = _AGE.search(value)
    if not match:
        return default
    amount, unit = int(match.group(1)), match.group(2).lower()
    return amount // _UNITS_PER_YEAR[unit]


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("yes", "true", "accepts healthy volunteers")
    return False


def split_sections(text: str) -> Tuple[List[str], List[str]]:
    """
    Split free eligibility text into inclusion and exclusion criterion lines.

    Text before any heading counts as inclusion. Lines ending in ':' introduce
    nested lists and are skipped.
    """
    inclusion: List[str] = []
    exclusion: List[str] = []
    current = inclusion

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        if _INCLUSION_HEADING.match(line):
            current = inclusion
            continue
        if _EXCLUSION_HEADING.match(line):
            current = exclusion
            continue

        line = _BULLET.sub("", line).strip()
        if not line or line.endswith(":"):
            continue
        current.append(line)

    return inclusion, exclusion


def parse_eligibility(candidate_id: str, module: Optional[Dict[str, Any]]) -> CriteriaSet:
    """
    Build a CriteriaSet from an ``eligibilityModule``.

    Raises:
        ExtractionError: (fatal) the module carries no eligibility text
    """
    module = module or {}
    text = (module.get("eligibilityCriteria") or "").strip()
    if not text:
        raise ExtractionError(
            f"No eligibility criteria published for {candidate_id}",
            code="MALFORMED_RESPONSE",
            details={"candidate_id": candidate_id},
        )

    inclusion, exclusion = split_sections(text)

    return CriteriaSet(
        candidate_id=candidate_id,
        inclusion=tuple(Criterion(line, categorize(line)) for line in inclusion),
        exclusion=tuple(Criterion(line, categorize(line)) for line in exclusion),
        age_range=AgeRange(
            min_age=parse_age(module.get("minimumAge"), DEFAULT_AGE_RANGE.min_age),
            max_age=parse_age(module.get("maximumAge"), DEFAULT_AGE_RANGE.max_age),
        ),
        accepts_healthy_volunteers=_parse_bool(module.get("healthyVolunteers")),
        raw_text=text,
    )
