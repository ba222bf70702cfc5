"""Structural citability score.

A point rubric over the content body (no external calls):

    schema markup ............ 15
    FAQ section .............. 10
    headings (5 each, max) ... 15
    direct answer ............ 15
    structured list ........... 5
    keyword density 1-3% ..... 10  (partial credit outside the band)
    brand mentions ............ 5  (2.5 per mention)
    word count 800-2000 ...... 15  (partial credit outside the band)
    readability grade 8-12 ... 10  (partial credit outside the band)
"""

import re
from dataclasses import dataclass, field

import structlog
from bs4 import BeautifulSoup

logger = structlog.get_logger(__name__)

DEFAULT_STRUCTURAL_WEIGHT = 0.2

POINTS_SCHEMA = 15
POINTS_FAQ = 10
POINTS_PER_HEADING = 5
MAX_HEADING_POINTS = 15
POINTS_DIRECT_ANSWER = 15
POINTS_LISTS = 5
MAX_KEYWORD_POINTS = 10
POINTS_PER_BRAND_MENTION = 2.5
MAX_BRAND_POINTS = 5
MAX_WORD_COUNT_POINTS = 15
MAX_READABILITY_POINTS = 10

DIRECT_ANSWER_PATTERNS = [
    re.compile(p)
    for p in (
        r"\bis\b",
        r"\bare\b",
        r"\bthe best\b",
        r"\brefers to\b",
        r"\bmeans\b",
        r"\bdefined as\b",
        r"\bprovides\b",
        r"\boffers\b",
        r"\benables\b",
    )
]

HEADING_LINE = re.compile(r"^#{1,6}\s+.+$", re.MULTILINE)
FAQ_HEADING = re.compile(r"#{1,3}\s*(faq|frequently\s+asked|common\s+questions)", re.IGNORECASE)
FAQ_LINE = re.compile(r"\bQ:\s", re.IGNORECASE)
BULLET_LIST = re.compile(r"^\s*[-*+]\s+.+$", re.MULTILINE)
NUMBERED_LIST = re.compile(r"^\s*\d+[.)]\s+.+$", re.MULTILINE)
FRONT_MATTER = re.compile(r"^---[\s\S]*?---\s*")
FENCED_JSON = re.compile(r"```(?:json|jsonld|json-ld)?\s*([\s\S]*?)```", re.IGNORECASE)
SENTENCE_SPLIT = re.compile(r"[.!?]+")


@dataclass
class StructuralFactors:
    """Raw measurements behind the structural score."""

    has_schema_markup: bool = False
    has_faq_section: bool = False
    heading_count: int = 0
    has_direct_answers: bool = False
    has_structured_lists: bool = False
    keyword_density: float = 0.0  # Percent of words
    brand_mention_count: int = 0
    word_count: int = 0
    readability_grade: float = 0.0

    def to_dict(self) -> dict:
        return {
            "has_schema_markup": self.has_schema_markup,
            "has_faq_section": self.has_faq_section,
            "heading_count": self.heading_count,
            "has_direct_answers": self.has_direct_answers,
            "has_structured_lists": self.has_structured_lists,
            "keyword_density": self.keyword_density,
            "brand_mention_count": self.brand_mention_count,
            "word_count": self.word_count,
            "readability_grade": self.readability_grade,
        }


@dataclass
class StructuralScore:
    """Structural sub-score with its factors and point breakdown."""

    score: int
    weight: float = DEFAULT_STRUCTURAL_WEIGHT
    factors: StructuralFactors = field(default_factory=StructuralFactors)
    points: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "weight": self.weight,
            "factors": self.factors.to_dict(),
            "points": {k: round(v, 2) for k, v in self.points.items()},
        }

    def show_the_math(self) -> str:
        """Generate human-readable calculation breakdown."""
        lines = [
            "=" * 50,
            "STRUCTURAL SCORE",
            "=" * 50,
            f"Total Score: {self.score}/100 (weight {self.weight:.0%})",
            "-" * 50,
        ]
        for name, value in self.points.items():
            lines.append(f"{name}: {value:g}")
        return "\n".join(lines)


def strip_markdown(text: str) -> str:
    """Plain text for word and sentence counting."""
    text = re.sub(r"```[\s\S]*?```", "", text)
    text = re.sub(r"#{1,6}\s+", "", text)
    text = re.sub(r"\*{1,2}([^*]+)\*{1,2}", r"\1", text)
    text = re.sub(r"\[([^\]]+)\]\([^)]+\)", r"\1", text)
    text = re.sub(r"`[^`]+`", "", text)
    return text


def split_sections(body: str) -> list[str]:
    """Split markdown into the preamble plus one chunk per heading."""
    body = FRONT_MATTER.sub("", body, count=1)
    sections: list[str] = []
    current: list[str] = []
    for line in body.split("\n"):
        if HEADING_LINE.match(line) and current:
            sections.append("\n".join(current))
            current = []
        current.append(line)
    if current:
        sections.append("\n".join(current))
    return [s for s in sections if s.strip()]


def count_syllables(word: str) -> int:
    """Vowel-group syllable estimate, good enough for a grade-level approximation."""
    cleaned = re.sub(r"[^a-z]", "", word.lower())
    if len(cleaned) <= 2:
        return 1

    count = len(re.findall(r"[aeiouy]+", cleaned)) or 1

    # Silent trailing e
    if cleaned.endswith("e") and count > 1:
        count -= 1

    # Consonant + "le" ending ("table")
    if cleaned.endswith("le") and len(cleaned) > 2 and cleaned[-3] not in "aeiouy":
        count += 1

    return max(1, count)


def calculate_readability_grade(body: str) -> float:
    """
    Approximate Flesch-Kincaid grade level.

    FK = 0.39 * (words / sentences) + 11.8 * (syllables / words) - 15.59

    Sentences are counted per section, so moving sections around does not
    change the grade.
    """
    words: list[str] = []
    sentence_count = 0
    for section in split_sections(body) or [body]:
        plain = strip_markdown(section).strip()
        words.extend(w for w in plain.split() if w)
        sentence_count += len([s for s in SENTENCE_SPLIT.split(plain) if s.strip()])

    if not words:
        return 0.0

    sentence_count = max(1, sentence_count)
    syllables = sum(count_syllables(w) for w in words)
    grade = 0.39 * (len(words) / sentence_count) + 11.8 * (syllables / len(words)) - 15.59
    return round(max(0.0, grade), 1)


def _schema_text_has_markers(text: str) -> bool:
    return '"@type"' in text or "@context" in text


def detect_schema_markup(body: str, schema_markup: str = "") -> bool:
    """True when JSON-LD is supplied separately or embedded in the body."""
    if schema_markup.strip() and _schema_text_has_markers(schema_markup):
        return True

    if "ld+json" in body.lower():
        soup = BeautifulSoup(body, "html.parser")
        for script in soup.find_all("script", type="application/ld+json"):
            if _schema_text_has_markers(script.get_text()):
                return True

    return any(
        "@context" in block and '"@type"' in block for block in FENCED_JSON.findall(body)
    )


def _lead_paragraph(section: str) -> str:
    for line in section.split("\n"):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        return stripped[:500].lower()
    return ""


def has_direct_answer(body: str) -> bool:
    """True when the lead paragraph of any section opens with a direct-answer pattern."""
    for section in split_sections(body):
        lead = _lead_paragraph(section)
        if lead and any(p.search(lead) for p in DIRECT_ANSWER_PATTERNS):
            return True
    return False


def _count_term(text: str, term: str) -> int:
    term = term.strip()
    if not term:
        return 0
    return len(re.findall(rf"\b{re.escape(term)}\b", text, re.IGNORECASE))


def keyword_points(density: float) -> float:
    if 1 <= density <= 3:
        return MAX_KEYWORD_POINTS
    if 0 < density < 1:
        return round(density * 10)
    if 3 < density <= 5:
        return round(10 - (density - 3) * 3)
    return 0


def word_count_points(word_count: int) -> float:
    if 800 <= word_count <= 2000:
        return MAX_WORD_COUNT_POINTS
    if 0 < word_count < 800:
        return round((word_count / 800) * 15)
    if 2000 < word_count <= 3000:
        return round(15 - ((word_count - 2000) / 1000) * 10)
    return 0


def readability_points(grade: float) -> float:
    if 8 <= grade <= 12:
        return MAX_READABILITY_POINTS
    if 5 <= grade < 8:
        return round(((grade - 5) / 3) * 10)
    if 12 < grade <= 16:
        return round(10 - ((grade - 12) / 4) * 10)
    return 0


def calculate_structural_score(
    body: str,
    schema_markup: str = "",
    brand_name: str = "",
    keywords: list[str] | None = None,
    weight: float = DEFAULT_STRUCTURAL_WEIGHT,
) -> StructuralScore:
    """
    Score the structure of a content body.

    Args:
        body: Markdown content
        schema_markup: JSON-LD supplied alongside the body, if any
        brand_name: Brand whose mentions are counted
        keywords: Target keywords for density
        weight: Weight of this sub-score in the composite

    Returns:
        StructuralScore clamped to 0-100
    """
    keywords = keywords or []
    word_count = sum(len(strip_markdown(section).split()) for section in split_sections(body))

    keyword_hits = sum(_count_term(body, k) for k in keywords)
    keyword_density = round(keyword_hits / word_count * 100, 2) if word_count else 0.0

    factors = StructuralFactors(
        has_schema_markup=detect_schema_markup(body, schema_markup),
        has_faq_section=bool(FAQ_HEADING.search(body) or FAQ_LINE.search(body)),
        heading_count=len(HEADING_LINE.findall(body)),
        has_direct_answers=has_direct_answer(body),
        has_structured_lists=bool(BULLET_LIST.search(body) or NUMBERED_LIST.search(body)),
        keyword_density=keyword_density,
        brand_mention_count=_count_term(body, brand_name),
        word_count=word_count,
        readability_grade=calculate_readability_grade(body),
    )

    points = {
        "schema_markup": POINTS_SCHEMA if factors.has_schema_markup else 0,
        "faq_section": POINTS_FAQ if factors.has_faq_section else 0,
        "headings": min(MAX_HEADING_POINTS, factors.heading_count * POINTS_PER_HEADING),
        "direct_answers": POINTS_DIRECT_ANSWER if factors.has_direct_answers else 0,
        "structured_lists": POINTS_LISTS if factors.has_structured_lists else 0,
        "keyword_density": keyword_points(factors.keyword_density),
        "brand_mentions": min(
            MAX_BRAND_POINTS, factors.brand_mention_count * POINTS_PER_BRAND_MENTION
        ),
        "word_count": word_count_points(factors.word_count),
        "readability": readability_points(factors.readability_grade),
    }

    score = round(min(100, max(0, sum(points.values()))))

    logger.debug("structural_score_calculated", score=score, word_count=word_count)
    return StructuralScore(score=score, weight=weight, factors=factors, points=points)
