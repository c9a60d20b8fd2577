"""
Criterion Text Helpers

Normalisation and small parsers used by the scoring rules. Matching is a
textual heuristic: labels are lower-cased, stripped of punctuation and
compared as substrings in either direction.
"""
from __future__ import annotations

import re
from typing import FrozenSet, Iterable, Optional, Set, Tuple

_NON_ALNUM = re.compile(r"[^a-z0-9]")
_TOKEN = re.compile(r"[a-z0-9]+")

# Labels this short ("ER", "PR") only match as whole tokens
_MIN_SUBSTRING_LEN = 3

_STOPWORDS = frozenset({
    "and", "the", "with", "for", "of", "or", "not", "any", "disease",
    "confirmed", "histologically", "cytologically", "patients", "patient",
})


def normalize(text: str) -> str:
    """Lower-case and drop every non-alphanumeric character."""
    return _NON_ALNUM.sub("", text.lower())


def tokens(text: str) -> Set[str]:
    return set(_TOKEN.findall(text.lower()))


def overlaps(label: str, criterion_text: str) -> bool:
    """
    True when the normalised label and criterion contain one another.

    Very short labels are compared as whole tokens so that "ER" does not
    match inside "therapy".
    """
    norm_label = normalize(label)
    norm_text = normalize(criterion_text)
    if not norm_label or not norm_text:
        return False

    if len(norm_label) < _MIN_SUBSTRING_LEN or len(norm_text) < _MIN_SUBSTRING_LEN:
        return norm_label in tokens(criterion_text) or norm_text in tokens(label)

    return norm_label in norm_text or norm_text in norm_label


def first_overlap(labels: Iterable[str], criterion_text: str) -> Optional[str]:
    """First label (alphabetical, for determinism) overlapping the criterion."""
    for label in sorted(labels):
        if overlaps(label, criterion_text):
            return label
    return None


def significant_tokens(text: str) -> FrozenSet[str]:
    return frozenset(t for t in tokens(text) if len(t) >= 3 and t not in _STOPWORDS)


def condition_matches(condition: str, criterion_text: str) -> bool:
    """Substring overlap, or every significant condition word appears in the criterion."""
    if overlaps(condition, criterion_text):
        return True
    wanted = significant_tokens(condition)
    return bool(wanted) and wanted <= tokens(criterion_text)


def clip(text: str, limit: int) -> str:
    text = text.strip()
    if len(text) <= limit:
        return text
    return text[:limit - 3].rstrip() + "..."


# ── Performance status (ECOG 0-4) ────────────────────────────────────────────

_PS_MENTION = re.compile(r"ecog|who performance|performance status|\bps\b", re.IGNORECASE)
_OTHER_SCALES = re.compile(r"karnofsky|lansky|\bkps\b", re.IGNORECASE)

_D = r"(?<!\d)([0-4])(?!\d)"
_PS_PATTERNS = (
    (re.compile(_D + r"\s*or\s*(?:less|lower|better|below)"), "le"),
    (re.compile(_D + r"\s*or\s*(?:more|higher|greater|worse|above)"), "ge"),
    (re.compile(r"(?:≤|<=|=<|less than or equal to|no (?:more|greater|higher) than|at most|up to)\s*" + _D), "le"),
    (re.compile(r"(?:≥|>=|=>|greater than or equal to|at least)\s*" + _D), "ge"),
    (re.compile(r"(?:<|less than|lower than)\s*" + _D), "lt"),
    (re.compile(r"(?:>|greater than|more than|higher than)\s*" + _D), "gt"),
    (re.compile(r"(?<!\d)([0-4](?:\s*(?:,\s*)?(?:-|–|to|or|and|,)\s*[0-4])+)(?!\d)"), "list"),
    (re.compile(_D), "single"),
)

# Only the text shortly after the mention is considered
_PS_WINDOW = 48


def mentions_performance_status(text: str) -> bool:
    return bool(_PS_MENTION.search(text)) and not _OTHER_SCALES.search(text)


def parse_performance_range(text: str) -> Optional[Tuple[int, int]]:
    """
    Extract the ECOG range a criterion refers to, as (low, high) inclusive.

    Returns None when the text does not mention ECOG / performance status or
    no range can be read from it.
    """
    if not mentions_performance_status(text):
        return None

    lowered = text.lower()
    mention = _PS_MENTION.search(lowered)
    window = lowered[mention.end():mention.end() + _PS_WINDOW]

    for pattern, form in _PS_PATTERNS:
        match = pattern.search(window)
        if match is None:
            continue
        if form == "list":
            values = [int(d) for d in re.findall(r"[0-4]", match.group(1))]
            return min(values), max(values)

        value = int(match.group(1))
        if form == "le":
            return 0, value
        if form == "ge":
            return value, 4
        if form == "lt":
            return (0, value - 1) if value > 0 else None
        if form == "gt":
            return (value + 1, 4) if value < 4 else None
        return value, value

    return None


# ── Disease stage ────────────────────────────────────────────────────────────

_STAGE_TOKEN = r"(?:IV|I{1,3}|[1-4])[A-C]?\d?"
_STAGE_RE = re.compile(
    r"\bstages?\s+(" + _STAGE_TOKEN + r"(?:\s*(?:,\s*)?(?:,|/|-|–|or|and|to)\s*" + _STAGE_TOKEN + r")*)\b",
    re.IGNORECASE,
)
_STAGE_VALUE = re.compile(r"(IV|I{1,3}|[1-4])", re.IGNORECASE)
_ROMAN = {"i": 1, "ii": 2, "iii": 3, "iv": 4}


def parse_stages(text: str) -> FrozenSet[int]:
    """
    Stage ordinals (1-4) named by a criterion such as "Stage IIIB or IV".

    Sub-stage letters are ignored; "II-IV" and "2 to 4" expand to ranges.
    """
    match = _STAGE_RE.search(text)
    if match is None:
        return frozenset()

    group = match.group(1)
    values = []
    for raw in _STAGE_VALUE.findall(group):
        raw = raw.lower()
        values.append(int(raw) if raw.isdigit() else _ROMAN[raw])

    if len(values) >= 2 and re.search(r"-|–|\bto\b", group):
        return frozenset(range(min(values), max(values) + 1))
    return frozenset(values)
