"""Lexical entity matching over free-text answers."""

import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import urlsplit

import structlog

logger = structlog.get_logger(__name__)


class CitationType(str, Enum):
    """How an entity was found in a response.

    Values are lowercase snake_case on the wire and in the graph, like every
    other enum in the API.
    """

    URL = "url"  # Link whose host is the entity domain
    EXACT_NAME = "exact_name"  # Whole-word name match
    PARTIAL = "partial"  # Name inside a longer word, or a suffix-stripped variant
    DOMAIN = "domain"  # Bare domain text without a link


TIER_CONFIDENCE: dict[CitationType, float] = {
    CitationType.URL: 1.0,
    CitationType.EXACT_NAME: 0.9,
    CitationType.PARTIAL: 0.7,
    CitationType.DOMAIN: 0.5,
}

URL_PATTERN = re.compile(r"https?://[^\s<>\"'()\[\]{}|\\^`]+", re.IGNORECASE)

# Corporate suffixes stripped when generating name variants
NAME_SUFFIXES = [
    " Inc",
    " Inc.",
    " LLC",
    " Ltd",
    " Ltd.",
    " Co",
    " Co.",
    " Corp",
    " Corp.",
    " Corporation",
    " Company",
    " Technologies",
    " Software",
    " Solutions",
    " Group",
    " Holdings",
]

MIN_VARIANT_LENGTH = 3


@dataclass
class KnownEntity:
    """A brand or competitor the matcher can look for."""

    name: str
    domain: str | None = None

    def to_dict(self) -> dict:
        return {"name": self.name, "domain": self.domain}


@dataclass
class TierHit:
    """One detection tier that fired."""

    citation_type: CitationType
    offset: int  # Character offset of the first occurrence

    @property
    def confidence(self) -> float:
        return TIER_CONFIDENCE[self.citation_type]


@dataclass
class MatchResult:
    """Outcome of matching one entity against one text."""

    cited: bool = False
    citation_type: CitationType | None = None
    confidence: float = 0.0
    offset: int | None = None  # Earliest mention in the text
    tiers: list[TierHit] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "cited": self.cited,
            "citation_type": self.citation_type.value if self.citation_type else None,
            "confidence": self.confidence,
            "tiers": [t.citation_type.value for t in self.tiers],
        }


def normalize_domain(domain: str | None) -> str:
    """Lowercase a domain and drop scheme, www prefix, path and port."""
    if not domain:
        return ""
    value = domain.strip().lower()
    if "://" in value:
        value = urlsplit(value).netloc or value.split("://", 1)[1]
    value = value.split("/", 1)[0].split(":", 1)[0]
    if value.startswith("www."):
        value = value[4:]
    return value.strip(".")


def generate_name_variations(name: str) -> list[str]:
    """Suffix- and article-stripped variants of an entity name, excluding the name itself."""
    variations: list[str] = []
    name = name.strip()
    name_lower = name.lower()

    for suffix in NAME_SUFFIXES:
        if name_lower.endswith(suffix.lower()):
            base = name[: -len(suffix)].strip().rstrip(",")
            if len(base) >= MIN_VARIANT_LENGTH and base not in variations:
                variations.append(base)

    if name_lower.startswith("the "):
        without_the = name[4:].strip()
        if len(without_the) >= MIN_VARIANT_LENGTH and without_the not in variations:
            variations.append(without_the)

    return variations


def _whole_word(term: str) -> re.Pattern[str]:
    return re.compile(rf"(?<!\w){re.escape(term)}(?!\w)", re.IGNORECASE)


def _is_word_char(char: str) -> bool:
    return char.isalnum() or char == "_"


def _blank_spans(text: str, spans: list[tuple[int, int]]) -> str:
    """Replace spans with spaces, keeping offsets stable."""
    if not spans:
        return text
    chars = list(text)
    for start, end in spans:
        for i in range(start, end):
            chars[i] = " "
    return "".join(chars)


class EntityMatcher:
    """Four-tier lexical matcher: URL, exact name, partial name, bare domain.

    Every tier is evaluated independently and the highest-confidence tier
    is reported. Names of other known entities that contain the target
    name (e.g. "Salesforce Tower" when looking for "Salesforce") are masked
    out before the name tiers run.
    """

    def match(
        self,
        text: str | None,
        name: str | None,
        domain: str | None = None,
        others: Sequence[KnownEntity] = (),
    ) -> MatchResult:
        """Match an entity against text. Never raises; bad input is "not cited"."""
        try:
            return self._match(text or "", (name or "").strip(), normalize_domain(domain), others)
        except Exception as e:
            logger.warning("entity_match_failed", entity=name, error=str(e))
            return MatchResult()

    def _match(
        self,
        text: str,
        name: str,
        domain: str,
        others: Sequence[KnownEntity],
    ) -> MatchResult:
        if not text or (not name and not domain):
            return MatchResult()

        hits: list[TierHit] = []
        url_spans: list[tuple[int, int]] = []

        # URL tier
        url_offset: int | None = None
        for url_match in URL_PATTERN.finditer(text):
            url_spans.append(url_match.span())
            if domain and url_offset is None and self._url_matches(url_match.group(0), domain):
                url_offset = url_match.start()
        if domain and url_offset is None:
            lowered = text.lower()
            for marker in (f"://{domain}", f"://www.{domain}"):
                pos = lowered.find(marker)
                if pos != -1:
                    url_offset = max(0, lowered.rfind(" ", 0, pos) + 1)
                    break
        if url_offset is not None:
            hits.append(TierHit(CitationType.URL, url_offset))

        # Name tiers run on text with links and longer competing names blanked
        if name:
            name_text = _blank_spans(text, url_spans)
            name_text = self._mask_longer_names(name_text, name, others)

            exact = _whole_word(name).search(name_text)
            if exact:
                hits.append(TierHit(CitationType.EXACT_NAME, exact.start()))

            partial_offset = self._partial_offset(name_text, name)
            if partial_offset is not None:
                hits.append(TierHit(CitationType.PARTIAL, partial_offset))

        # Domain tier
        if domain:
            bare_text = _blank_spans(text, url_spans)
            pattern = re.compile(
                rf"(?<![\w-])(?:www\.)?{re.escape(domain)}(?![\w-])", re.IGNORECASE
            )
            domain_match = pattern.search(bare_text)
            if domain_match:
                hits.append(TierHit(CitationType.DOMAIN, domain_match.start()))

        if not hits:
            return MatchResult()

        best = max(hits, key=lambda h: h.confidence)
        return MatchResult(
            cited=True,
            citation_type=best.citation_type,
            confidence=best.confidence,
            offset=min(h.offset for h in hits),
            tiers=hits,
        )

    def _url_matches(self, url: str, domain: str) -> bool:
        try:
            host = (urlsplit(url).hostname or "").lower()
        except ValueError:
            return False
        if host.startswith("www."):
            host = host[4:]
        return host == domain or host.endswith("." + domain)

    def _mask_longer_names(self, text: str, name: str, others: Sequence[KnownEntity]) -> str:
        name_lower = name.lower()
        spans: list[tuple[int, int]] = []
        for other in others:
            other_name = (other.name or "").strip()
            if len(other_name) <= len(name) or name_lower not in other_name.lower():
                continue
            spans.extend(m.span() for m in _whole_word(other_name).finditer(text))
        return _blank_spans(text, spans)

    def _partial_offset(self, text: str, name: str) -> int | None:
        lowered = text.lower()
        name_lower = name.lower()

        # Substring without word boundaries, e.g. "AcmeCloud" for "Acme"
        start = 0
        while True:
            pos = lowered.find(name_lower, start)
            if pos == -1:
                break
            end = pos + len(name_lower)
            before = lowered[pos - 1] if pos > 0 else " "
            after = lowered[end] if end < len(lowered) else " "
            if _is_word_char(before) or _is_word_char(after):
                return pos
            start = pos + 1

        for variant in generate_name_variations(name):
            variant_match = _whole_word(variant).search(text)
            if variant_match:
                return variant_match.start()
        return None


def match_entity(
    text: str | None,
    name: str | None,
    domain: str | None = None,
    others: Sequence[KnownEntity] = (),
) -> MatchResult:
    """Convenience function to match one entity."""
    return EntityMatcher().match(text, name, domain, others)
