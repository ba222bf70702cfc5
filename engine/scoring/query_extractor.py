"""Derive probe questions from a content body.

Sources, by confidence:
- FAQ "Q:" lines (0.9)
- H2/H3 headings rewritten as questions (0.8)
- The first substantive paragraph as a "What is ...?" question (0.7)
- Configured keywords as "What is the best ...?" (0.6)

Everything is regex and string work; no model calls.
"""

import re
from dataclasses import dataclass
from enum import StrEnum


class QuerySource(StrEnum):
    """Where an extracted query came from."""

    HEADING = "heading"
    FAQ = "faq"
    TOPIC = "topic"
    KEYWORD = "keyword"


SOURCE_CONFIDENCE: dict[QuerySource, float] = {
    QuerySource.FAQ: 0.9,
    QuerySource.HEADING: 0.8,
    QuerySource.TOPIC: 0.7,
    QuerySource.KEYWORD: 0.6,
}

DEFAULT_MAX_QUERIES = 5

HEADING_PATTERN = re.compile(r"^#{2,3}\s+(.+)$", re.MULTILINE)
FAQ_PATTERN = re.compile(
    r"^(?:\*{0,2})Q[:.]\s*\*{0,2}\s*(.+?)(?:\*{0,2})\s*$",
    re.MULTILINE | re.IGNORECASE,
)
FRONT_MATTER_PATTERN = re.compile(r"^---[\s\S]*?---\s*")

MIN_HEADING_LENGTH = 4
MIN_FAQ_LENGTH = 5
MIN_KEYWORD_LENGTH = 2
TOPIC_SNIPPET_CHARS = 120
MIN_TOPIC_LENGTH = 20


@dataclass
class ExtractedQuery:
    """A candidate probe question."""

    query: str
    source: QuerySource
    confidence: float

    def to_dict(self) -> dict:
        return {"query": self.query, "source": self.source.value, "confidence": self.confidence}


def heading_to_question(heading: str) -> str:
    """
    Rewrite a heading as a question.

    "Best CRM Features" -> "What are best CRM Features?"
    "How to Choose a CRM" -> "How to Choose a CRM?"
    "Why Onboarding Matters" -> "Why does Onboarding matter?"
    """
    trimmed = heading.strip()

    if trimmed.endswith("?"):
        return trimmed

    how_to = re.match(r"^how\s+to\s+(.+)", trimmed, re.IGNORECASE)
    if how_to:
        return f"How to {how_to.group(1)}?"

    why = re.match(r"^why\s+(.+?)\s+(matters?|is\s+important)", trimmed, re.IGNORECASE)
    if why:
        return f"Why does {why.group(1)} matter?"

    if re.match(r"^(why\s+|when\s+to\s+|(what|where|which|who)\s+)", trimmed, re.IGNORECASE):
        return f"{trimmed}?"

    # Plural if the last word ends in "s" but not "ss"/"us"
    last_word = trimmed.split()[-1] if trimmed.split() else ""
    plural = last_word.endswith("s") and not last_word.endswith(("ss", "us"))
    verb = "are" if plural else "is"
    return f"What {verb} {trimmed[:1].lower()}{trimmed[1:]}?"


def extract_topic_query(markdown: str) -> str | None:
    """Frame the first substantive paragraph as a "What is ...?" question."""
    body = FRONT_MATTER_PATTERN.sub("", markdown, count=1)

    for line in body.split("\n"):
        trimmed = line.strip()
        if not trimmed or trimmed.startswith(("#", "![", "---")):
            continue

        # First 120 chars, cut back to the last whole word
        snippet = re.sub(r"\s+\S*$", "", trimmed[:TOPIC_SNIPPET_CHARS]).strip()
        if len(snippet) > MIN_TOPIC_LENGTH:
            first_sentence = re.split(r"[.!?]", snippet)[0].strip().lower()
            return f"What is {first_sentence}?"

    return None


def _normalize(query: str) -> str:
    lowered = re.sub(r"[^a-z0-9\s]", "", query.lower())
    return re.sub(r"\s+", " ", lowered).strip()


def deduplicate_queries(queries: list[ExtractedQuery]) -> list[ExtractedQuery]:
    """Keep the first query for each normalized text."""
    seen: set[str] = set()
    unique = []
    for query in queries:
        normalized = _normalize(query.query)
        if normalized and normalized not in seen:
            seen.add(normalized)
            unique.append(query)
    return unique


def extract_queries(
    markdown: str,
    keywords: list[str] | None = None,
    max_queries: int = DEFAULT_MAX_QUERIES,
) -> list[ExtractedQuery]:
    """
    Extract probe questions from markdown content.

    Args:
        markdown: Content body
        keywords: Target keywords
        max_queries: Maximum number of queries returned

    Returns:
        Deduplicated queries sorted by confidence, highest first
    """
    queries: list[ExtractedQuery] = []

    for match in HEADING_PATTERN.finditer(markdown):
        heading = match.group(1).strip()
        if len(heading) < MIN_HEADING_LENGTH:
            continue
        queries.append(
            ExtractedQuery(
                heading_to_question(heading),
                QuerySource.HEADING,
                SOURCE_CONFIDENCE[QuerySource.HEADING],
            )
        )

    for match in FAQ_PATTERN.finditer(markdown):
        question = match.group(1).strip()
        if len(question) < MIN_FAQ_LENGTH:
            continue
        queries.append(
            ExtractedQuery(
                question if question.endswith("?") else f"{question}?",
                QuerySource.FAQ,
                SOURCE_CONFIDENCE[QuerySource.FAQ],
            )
        )

    topic = extract_topic_query(markdown)
    if topic:
        queries.append(
            ExtractedQuery(topic, QuerySource.TOPIC, SOURCE_CONFIDENCE[QuerySource.TOPIC])
        )

    for keyword in keywords or []:
        keyword = keyword.strip()
        if len(keyword) < MIN_KEYWORD_LENGTH:
            continue
        queries.append(
            ExtractedQuery(
                f"What is the best {keyword}?",
                QuerySource.KEYWORD,
                SOURCE_CONFIDENCE[QuerySource.KEYWORD],
            )
        )

    # sorted() is stable, so equal-confidence queries keep document order
    unique = sorted(deduplicate_queries(queries), key=lambda q: -q.confidence)
    return unique[: max(0, max_queries)]
