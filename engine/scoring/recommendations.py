"""Rule-based recommendations from the three sub-scores."""

from dataclasses import dataclass
from enum import StrEnum

from engine.scoring.competitive_gap import CompetitiveGapScore
from engine.scoring.structural import StructuralScore
from engine.scoring.validation import CitationValidationScore


class Priority(StrEnum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RecommendationCategory(StrEnum):
    CONTENT = "content"
    STRUCTURE = "structure"
    SCHEMA = "schema"
    COMPETITIVE = "competitive"


PRIORITY_ORDER = {
    Priority.CRITICAL: 0,
    Priority.HIGH: 1,
    Priority.MEDIUM: 2,
    Priority.LOW: 3,
}

# Thresholds
LOW_CITATION_SCORE = 30
KEYWORD_DENSITY_MIN = 1
KEYWORD_DENSITY_MAX = 3
MAX_READABILITY_GRADE = 14
MIN_WORD_COUNT = 800


@dataclass
class Recommendation:
    """An actionable fix."""

    priority: Priority
    category: RecommendationCategory
    title: str
    description: str
    impact: str

    def to_dict(self) -> dict:
        return {
            "priority": self.priority.value,
            "category": self.category.value,
            "title": self.title,
            "description": self.description,
            "impact": self.impact,
        }


def generate_recommendations(
    structural: StructuralScore,
    citation: CitationValidationScore,
    competitive: CompetitiveGapScore,
) -> list[Recommendation]:
    """Apply threshold rules and sort by priority (critical first)."""
    factors = structural.factors
    recs: list[Recommendation] = []

    if citation.score < LOW_CITATION_SCORE:
        recs.append(
            Recommendation(
                Priority.CRITICAL,
                RecommendationCategory.CONTENT,
                "Content is not being cited by answer engines",
                "Your content rarely appears in generated answers. Answer common questions "
                "directly in the first paragraph with clear, factual statements that can be "
                "quoted as an authoritative answer.",
                "Could improve citation rate by 30-50%",
            )
        )

    if not factors.has_schema_markup:
        recs.append(
            Recommendation(
                Priority.HIGH,
                RecommendationCategory.SCHEMA,
                "Add JSON-LD structured data",
                "Schema markup helps answer engines validate and extract structured "
                "information. Add FAQPage, Article or HowTo schema as appropriate.",
                "Improves extraction accuracy by 15-25%",
            )
        )

    if factors.keyword_density < KEYWORD_DENSITY_MIN:
        recs.append(
            Recommendation(
                Priority.HIGH,
                RecommendationCategory.CONTENT,
                "Increase keyword usage",
                f"Keyword density is {factors.keyword_density}%, below the 1-3% target. "
                "Work target keywords into headings, opening paragraphs and answer statements.",
                "Stronger topic relevance signals",
            )
        )

    if factors.keyword_density > KEYWORD_DENSITY_MAX:
        recs.append(
            Recommendation(
                Priority.MEDIUM,
                RecommendationCategory.CONTENT,
                "Reduce keyword stuffing",
                f"Keyword density of {factors.keyword_density}% exceeds the 3% threshold. "
                "Over-optimized text is less likely to be quoted.",
                "Avoids quality filter penalties",
            )
        )

    if not factors.has_faq_section:
        recs.append(
            Recommendation(
                Priority.MEDIUM,
                RecommendationCategory.STRUCTURE,
                "Add a FAQ section",
                "Question and answer pairs are easy to lift into generated answers. Add 3-5 "
                "questions your audience asks, each with a 2-3 sentence answer.",
                "FAQ sections increase extraction by 20-30%",
            )
        )

    if factors.readability_grade > MAX_READABILITY_GRADE:
        recs.append(
            Recommendation(
                Priority.MEDIUM,
                RecommendationCategory.CONTENT,
                "Simplify the language",
                f"Readability is grade {factors.readability_grade}. Target grade 8-12 with "
                "shorter sentences and common vocabulary.",
                "Simpler language is quoted more accurately",
            )
        )

    if (
        competitive.top_competitor
        and competitive.top_competitor_rate > competitive.your_citation_rate
    ):
        gap = round(competitive.top_competitor_rate - competitive.your_citation_rate, 1)
        recs.append(
            Recommendation(
                Priority.HIGH,
                RecommendationCategory.COMPETITIVE,
                f"Competitor {competitive.top_competitor} cited {gap}% more",
                f"{competitive.top_competitor} has a {competitive.top_competitor_rate}% "
                f"citation rate against your {competitive.your_citation_rate}%. Study their "
                "content structure, heading patterns and direct-answer format.",
                f"Closing the gap could add {gap} percentage points of citations",
            )
        )

    if factors.word_count < MIN_WORD_COUNT:
        recs.append(
            Recommendation(
                Priority.MEDIUM,
                RecommendationCategory.CONTENT,
                "Expand thin content",
                f"Content is only {factors.word_count} words. Aim for 1000-1500 words of "
                "comprehensive coverage.",
                "Comprehensive content is more likely to be cited as a primary source",
            )
        )

    if not factors.has_direct_answers:
        recs.append(
            Recommendation(
                Priority.HIGH,
                RecommendationCategory.CONTENT,
                "Lead with a direct answer",
                "No section opens with a clear, direct answer. Open each section with a "
                "definitive statement that can stand on its own.",
                "Direct opening answers are 2-3x more likely to be cited",
            )
        )

    # sorted() is stable, so rules keep their order within a priority
    return sorted(recs, key=lambda r: PRIORITY_ORDER[r.priority])
