"""Citation detection for a brand and its competitors over one response."""

import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

import structlog

from engine.citation.matcher import CitationType, EntityMatcher, KnownEntity

logger = structlog.get_logger(__name__)


class Sentiment(str, Enum):
    """Sentiment of the sentence around a mention."""

    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


POSITIVE_INDICATORS = [
    "excellent",
    "great",
    "outstanding",
    "impressive",
    "innovative",
    "leading",
    "best",
    "top",
    "popular",
    "powerful",
    "premier",
    "trusted",
    "reliable",
    "recommended",
    "recommend",
    "praised",
    "acclaimed",
    "award-winning",
    "renowned",
    "robust",
    "successful",
    "effective",
    "efficient",
    "intuitive",
    "superior",
    "favorite",
    "standout",
]

NEGATIVE_INDICATORS = [
    "poor",
    "bad",
    "worst",
    "disappointing",
    "problematic",
    "issues",
    "complaints",
    "criticized",
    "concerns",
    "lacking",
    "lacks",
    "clunky",
    "expensive",
    "overpriced",
    "struggling",
    "failed",
    "controversial",
    "unreliable",
    "questionable",
    "inferior",
    "subpar",
    "outdated",
    "inadequate",
    "avoid",
]

_POSITIVE_PATTERN = re.compile(
    r"(?<!\w)(?:" + "|".join(re.escape(w) for w in POSITIVE_INDICATORS) + r")(?!\w)",
    re.IGNORECASE,
)
_NEGATIVE_PATTERN = re.compile(
    r"(?<!\w)(?:" + "|".join(re.escape(w) for w in NEGATIVE_INDICATORS) + r")(?!\w)",
    re.IGNORECASE,
)

# "1. Foo", "2) Bar", "### 3. Baz"
_LIST_ITEM = re.compile(r"^\s*(?:#{1,6}\s+)?(?:\*\*)?(\d{1,3})[.)]\s+\S")
_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+|\n+")


@dataclass
class CitationAnalysis:
    """Structured citation record for one entity in one response."""

    cited: bool = False
    citation_type: CitationType | None = None
    confidence: float = 0.0
    sentiment: Sentiment | None = None
    position: int | None = None  # 1-based rank in a numbered list
    competitors_mentioned: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "cited": self.cited,
            "citation_type": self.citation_type.value if self.citation_type else None,
            "confidence": self.confidence,
            "sentiment": self.sentiment.value if self.sentiment else None,
            "position": self.position,
            "competitors_mentioned": self.competitors_mentioned,
        }


def sentence_at(text: str, offset: int) -> str:
    """The sentence (or line) containing a character offset."""
    start = 0
    for match in _SENTENCE_BREAK.finditer(text):
        if match.start() >= offset:
            return text[start : match.start()]
        start = match.end()
    return text[start:]


def classify_sentiment(sentence: str) -> Sentiment:
    """Lexicon vote over one sentence; ties are neutral."""
    positive = len(_POSITIVE_PATTERN.findall(sentence))
    negative = len(_NEGATIVE_PATTERN.findall(sentence))
    if positive > negative:
        return Sentiment.POSITIVE
    if negative > positive:
        return Sentiment.NEGATIVE
    return Sentiment.NEUTRAL


class CitationDetector:
    """Runs the entity matcher for a brand and every competitor over one response."""

    def __init__(self, matcher: EntityMatcher | None = None):
        self.matcher = matcher or EntityMatcher()

    def detect(
        self,
        text: str | None,
        brand_name: str,
        brand_domain: str | None = None,
        competitors: Sequence[KnownEntity] = (),
    ) -> CitationAnalysis:
        """
        Detect a citation of the brand in a response.

        Args:
            text: Response text from an answer engine
            brand_name: Entity to look for
            brand_domain: Entity domain, if known
            competitors: Other known entities, also reported when cited

        Returns:
            CitationAnalysis; a "not cited" record on empty or malformed text
        """
        try:
            return self._detect(text or "", brand_name, brand_domain, competitors)
        except Exception as e:
            logger.warning("citation_detection_failed", entity=brand_name, error=str(e))
            return CitationAnalysis()

    def _detect(
        self,
        text: str,
        brand_name: str,
        brand_domain: str | None,
        competitors: Sequence[KnownEntity],
    ) -> CitationAnalysis:
        if not text.strip():
            return CitationAnalysis()

        brand = KnownEntity(brand_name, brand_domain)
        competitors = [c for c in competitors if c.name and c.name != brand_name]

        competitors_mentioned = []
        for competitor in competitors:
            others = [brand] + [c for c in competitors if c is not competitor]
            if self.matcher.match(text, competitor.name, competitor.domain, others).cited:
                competitors_mentioned.append(competitor.name)

        result = self.matcher.match(text, brand_name, brand_domain, competitors)
        if not result.cited:
            return CitationAnalysis(competitors_mentioned=competitors_mentioned)

        offset = result.offset or 0
        return CitationAnalysis(
            cited=True,
            citation_type=result.citation_type,
            confidence=result.confidence,
            sentiment=classify_sentiment(sentence_at(text, offset)),
            position=self._list_position(text, brand, competitors),
            competitors_mentioned=competitors_mentioned,
        )

    def _list_position(
        self,
        text: str,
        entity: KnownEntity,
        others: Sequence[KnownEntity],
    ) -> int | None:
        """1-based rank of the first numbered-list item mentioning the entity."""
        rank = 0
        for line in text.splitlines():
            item = _LIST_ITEM.match(line)
            if item is None:
                continue
            # A list restarting at 1 is a new list
            if int(item.group(1)) == 1:
                rank = 0
            rank += 1
            if self.matcher.match(line, entity.name, entity.domain, others).cited:
                return rank
        return None


def detect_citation(
    text: str | None,
    brand_name: str,
    brand_domain: str | None = None,
    competitors: Sequence[KnownEntity] = (),
) -> CitationAnalysis:
    """Convenience function to detect one brand citation."""
    return CitationDetector().detect(text, brand_name, brand_domain, competitors)
