"""Probe categories and their prompt templates."""

from dataclasses import dataclass
from enum import StrEnum


class ProbeCategory(StrEnum):
    """Kinds of probe question."""

    BEST_OF = "best-of"
    COMPARISON = "comparison"
    RECOMMENDATION = "recommendation"
    HOW_TO = "how-to"
    REVIEW = "review"
    ALTERNATIVES = "alternatives"
    DIRECT = "direct"


PROMPT_TEMPLATES: dict[ProbeCategory, str] = {
    ProbeCategory.BEST_OF: "What are the best {query}?",
    ProbeCategory.COMPARISON: "Compare the leading {query}.",
    ProbeCategory.RECOMMENDATION: "What {query} would you recommend?",
    ProbeCategory.HOW_TO: "Explain {query} step by step.",
    ProbeCategory.REVIEW: "Give an honest review of {query}.",
    ProbeCategory.ALTERNATIVES: "What are the top alternatives to {query}?",
    # The query already is a question
    ProbeCategory.DIRECT: "{query}",
}


@dataclass
class ProbeQuery:
    """A probe question and its category. The text is the identity key."""

    text: str
    category: ProbeCategory = ProbeCategory.BEST_OF

    def to_dict(self) -> dict:
        return {"text": self.text, "category": self.category.value}


def build_probe_prompt(query: str, category: ProbeCategory | str) -> str:
    """Render the prompt sent to a provider for a query and category."""
    template = PROMPT_TEMPLATES[ProbeCategory(category)]
    return template.format(query=query)


def default_queries_for_keywords(keywords: list[str]) -> list[ProbeQuery]:
    """Expand each keyword into best-of, comparison and recommendation probes."""
    queries: list[ProbeQuery] = []
    for keyword in keywords:
        keyword = keyword.strip()
        if not keyword:
            continue
        queries.append(ProbeQuery(f"best {keyword}", ProbeCategory.BEST_OF))
        queries.append(ProbeQuery(f"{keyword} vs alternatives", ProbeCategory.COMPARISON))
        queries.append(ProbeQuery(f"recommended {keyword}", ProbeCategory.RECOMMENDATION))
    return queries
