"""
Patient Advocate Script

Default Summarization collaborator. Builds a short, compassionate,
plain-language script from the ranked outcomes; speech synthesis is not
performed, so ``audio_ref`` is always None.

Template selection:
    any strong match    → top match score and summary, count of other strong matches
    any possible match  → count of possible matches
    otherwise           → encouragement to keep looking with the care team
"""
import math
import re
from dataclasses import dataclass, field
from typing import List, Sequence

from trialscout.core.records import Language, MatchCategory, MatchOutcome, SummaryArtifact
from trialscout.utils import get_logger

logger = get_logger(__name__)

REQUIRED_DISCLAIMER = (
    "This information is for educational purposes only and should not replace professional "
    "medical advice. Please discuss these options with your healthcare provider before making "
    "any decisions about clinical trial participation."
)

GREETINGS = {
    Language.EN: "Hello",
    Language.ES: "Hola",
    Language.ZH: "你好",
    Language.FR: "Bonjour",
    Language.DE: "Guten Tag",
}

WORDS_PER_MINUTE = 150

# ── Script quality limits ────────────────────────────────────────────────────
MIN_SCRIPT_WORDS = 100
MAX_SCRIPT_WORDS = 300
MAX_AVG_SENTENCE_WORDS = 25

_SENTENCE_SPLIT = re.compile(r"[.!?]+")


def _strong_match_script(greeting: str, strong: Sequence[MatchOutcome]) -> str:
    top = strong[0]
    paragraphs = [
        f"{greeting}. I've found some promising clinical trial options that could be a good "
        "fit for you.",
        f"The top match is a trial that scores {top.score} out of 100. {top.summary}",
    ]
    if len(strong) > 1:
        paragraphs.append(
            f"I also found {len(strong) - 1} other strong matches worth discussing with your doctor."
        )
    paragraphs += [
        "Here's what I recommend as next steps: First, print or save these results. Then, "
        "schedule a conversation with your oncologist or care team to review these options "
        "together. They can help determine which trial, if any, might be right for your "
        "specific situation.",
        f"Remember: {REQUIRED_DISCLAIMER}",
    ]
    return "\n\n".join(paragraphs)


def _possible_match_script(greeting: str, possible: Sequence[MatchOutcome]) -> str:
    return "\n\n".join([
        f"{greeting}. I've reviewed available clinical trials and found some possible options "
        "worth exploring.",
        f"I found {len(possible)} trials that could potentially be a fit for you. While they're "
        "not perfect matches, they're worth discussing with your doctor. Some details about your "
        "medical history would need to be confirmed to determine final eligibility.",
        "Your next step is to share these results with your healthcare team. They know your "
        "complete medical history and can help identify which trials, if any, make sense to pursue.",
        REQUIRED_DISCLAIMER,
    ])


def _no_match_script(greeting: str) -> str:
    return "\n\n".join([
        f"{greeting}. I've searched through available clinical trials, and while I didn't find a "
        "strong match right now, please don't be discouraged.",
        "Clinical trials are constantly opening and closing, and new options become available "
        "regularly. Your situation may also change over time, which could open up new possibilities.",
        "Here's what you can do: Talk to your doctor about other treatment options available to "
        "you. You might also consider checking back in a few months, as new trials often open up.",
        "Stay hopeful, and remember that you have a healthcare team supporting you through this "
        "journey.",
        REQUIRED_DISCLAIMER,
    ])


def build_script(outcomes: Sequence[MatchOutcome], language: Language) -> str:
    """Pick the template for the best category present and fill it in."""
    greeting = GREETINGS.get(Language(language), GREETINGS[Language.EN])
    strong = [o for o in outcomes if o.category is MatchCategory.STRONG]
    possible = [o for o in outcomes if o.category is MatchCategory.POSSIBLE]

    if strong:
        script = _strong_match_script(greeting, strong)
    elif possible:
        script = _possible_match_script(greeting, possible)
    else:
        script = _no_match_script(greeting)

    if "educational purposes only" not in script:
        script += f"\n\n{REQUIRED_DISCLAIMER}"
    return script


def word_count(text: str) -> int:
    return len(text.split())


def estimate_duration(text: str) -> int:
    """Spoken duration in seconds at 150 words per minute."""
    return int(math.floor(word_count(text) / WORDS_PER_MINUTE * 60 + 0.5))


@dataclass
class ScriptValidation:
    issues: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.issues


def validate_script(text: str) -> ScriptValidation:
    """Check length, disclaimer presence and sentence complexity."""
    result = ScriptValidation()
    words = word_count(text)

    if words < MIN_SCRIPT_WORDS:
        result.issues.append(f"Script too short (< {MIN_SCRIPT_WORDS} words)")
    if words > MAX_SCRIPT_WORDS:
        result.issues.append(f"Script too long (> {MAX_SCRIPT_WORDS} words)")
    if "educational purposes" not in text:
        result.issues.append("Missing required disclaimer")

    sentences = [s for s in _SENTENCE_SPLIT.split(text) if s.strip()]
    if sentences and words / len(sentences) > MAX_AVG_SENTENCE_WORDS:
        result.issues.append("Sentences too complex for 8th-grade reading level")

    return result


class ScriptSummarizer:
    """Summarization collaborator producing the advocate script."""

    async def summarize(
        self, outcomes: Sequence[MatchOutcome], language: Language
    ) -> SummaryArtifact:
        language = Language(language)
        text = build_script(outcomes, language)

        validation = validate_script(text)
        if not validation.valid:
            logger.debug(f"ScriptSummarizer: script issues: {', '.join(validation.issues)}")

        return SummaryArtifact(
            text=text,
            language=language,
            estimated_duration_seconds=estimate_duration(text),
            audio_ref=None,
        )
