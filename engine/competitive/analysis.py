"""Competitive analysis: competitor profiles, SWOT-style insights and recommendations."""

import re
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum

import structlog

from engine.citation.detector import Sentiment
from engine.citation.matcher import KnownEntity
from engine.observation.models import AskOptions, ProviderError
from engine.observation.orchestrator import ProbeOrchestrator, ProbeResult
from engine.observation.prompts import ProbeCategory, ProbeQuery
from engine.observation.providers import AnswerProvider

logger = structlog.get_logger(__name__)

ANALYSIS_OPTIONS = AskOptions(temperature=0.3, max_tokens=2000)

# Category thresholds (fraction of probes in the category)
STRONG_CATEGORY_RATE = 0.6
WEAK_CATEGORY_RATE = 0.2
BRAND_STRENGTH_RATE = 0.7
MIN_WEAKNESS_PROBES = 2

# Percentage points a competitor must lead by to count as a threat
THREAT_MARGIN = 20
STUDY_TOP_COMPETITOR_RATE = 50

MAX_PATTERN_SAMPLES = 10
PATTERN_SYSTEM_PROMPT = (
    "You are a citation pattern analyst. Identify the phrases, contexts and "
    "patterns that lead to a brand being cited in answer-engine responses. "
    "Return a bullet list of patterns."
)


class InsightType(StrEnum):
    OPPORTUNITY = "opportunity"
    THREAT = "threat"
    STRENGTH = "strength"
    WEAKNESS = "weakness"


@dataclass
class CompetitorProfile:
    """How often and how well one competitor is cited."""

    name: str
    domain: str | None
    citation_rate: int  # Integer percent
    avg_position: float | None
    avg_sentiment: Sentiment
    strong_categories: list[str] = field(default_factory=list)
    weak_categories: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "domain": self.domain,
            "citation_rate": self.citation_rate,
            "avg_position": self.avg_position,
            "avg_sentiment": self.avg_sentiment.value,
            "strong_categories": self.strong_categories,
            "weak_categories": self.weak_categories,
        }


@dataclass
class CompetitiveInsight:
    """One opportunity, threat, strength or weakness."""

    type: InsightType
    title: str
    description: str
    related_competitor: str | None
    suggested_action: str
    category: str | None = None

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "title": self.title,
            "description": self.description,
            "related_competitor": self.related_competitor,
            "suggested_action": self.suggested_action,
            "category": self.category,
        }


@dataclass
class CompetitiveAnalysis:
    """Full competitive analysis for a brand."""

    brand_citation_rate: int
    competitors: list[CompetitorProfile] = field(default_factory=list)
    insights: list[CompetitiveInsight] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    probe_results: list[ProbeResult] = field(default_factory=list)
    failures: list[ProviderError] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "brand_citation_rate": self.brand_citation_rate,
            "competitors": [c.to_dict() for c in self.competitors],
            "insights": [i.to_dict() for i in self.insights],
            "recommendations": self.recommendations,
            "probe_count": len(self.probe_results),
            "failures": [f.to_dict() for f in self.failures],
        }


def dominant_sentiment(sentiments: Sequence[Sentiment]) -> Sentiment:
    """Majority sentiment; ties go to positive, then neutral."""
    if not sentiments:
        return Sentiment.NEUTRAL
    counts = Counter(sentiments)
    positive = counts[Sentiment.POSITIVE]
    neutral = counts[Sentiment.NEUTRAL]
    negative = counts[Sentiment.NEGATIVE]
    if positive >= neutral and positive >= negative:
        return Sentiment.POSITIVE
    if neutral >= negative:
        return Sentiment.NEUTRAL
    return Sentiment.NEGATIVE


def average_position(positions: Sequence[int]) -> float | None:
    valid = [p for p in positions if p > 0]
    if not valid:
        return None
    return round(sum(valid) / len(valid), 1)


def _rate_percent(cited: int, total: int) -> int:
    return round(cited / total * 100) if total else 0


def build_competitor_profile(
    competitor: KnownEntity,
    results: Sequence[ProbeResult],
    categories: Sequence[str],
) -> CompetitorProfile:
    """Aggregate one competitor's citations over every probe result."""
    cited_total = 0
    sentiments: list[Sentiment] = []
    positions: list[int] = []
    category_cited: Counter[str] = Counter()
    category_total: Counter[str] = Counter()

    for result in results:
        category = result.category.value
        category_total[category] += 1
        citation = result.competitor_citations.get(competitor.name)
        if citation is None or not citation.cited:
            continue
        cited_total += 1
        category_cited[category] += 1
        if citation.sentiment:
            sentiments.append(citation.sentiment)
        if citation.position is not None:
            positions.append(citation.position)

    strong, weak = [], []
    for category in categories:
        total = category_total[category]
        if total == 0:
            continue
        rate = category_cited[category] / total
        if rate >= STRONG_CATEGORY_RATE:
            strong.append(category)
        elif rate <= WEAK_CATEGORY_RATE:
            weak.append(category)

    return CompetitorProfile(
        name=competitor.name,
        domain=competitor.domain,
        citation_rate=_rate_percent(cited_total, len(results)),
        avg_position=average_position(positions),
        avg_sentiment=dominant_sentiment(sentiments),
        strong_categories=strong,
        weak_categories=weak,
    )


def generate_insights(
    brand_citation_rate: int,
    results: Sequence[ProbeResult],
    profiles: Sequence[CompetitorProfile],
) -> list[CompetitiveInsight]:
    """Apply the opportunity, threat, strength and weakness rules."""
    insights: list[CompetitiveInsight] = []

    # Opportunity: nobody cited
    for result in results:
        if result.brand_citation.cited or result.competitors_cited():
            continue
        insights.append(
            CompetitiveInsight(
                type=InsightType.OPPORTUNITY,
                title=f'Unclaimed query: "{result.query}"',
                description=(
                    f'No brand is cited for "{result.query}" on {result.provider}. '
                    "This is a greenfield opportunity."
                ),
                related_competitor=None,
                suggested_action=(
                    f'Create authoritative content targeting "{result.query}" '
                    "with direct, factual answers."
                ),
                category=result.category.value,
            )
        )

    # Threat: a competitor well ahead of the brand
    for profile in profiles:
        if profile.citation_rate <= brand_citation_rate + THREAT_MARGIN:
            continue
        strong = ", ".join(profile.strong_categories) or "general"
        insights.append(
            CompetitiveInsight(
                type=InsightType.THREAT,
                title=f"{profile.name} dominates with {profile.citation_rate}% citation rate",
                description=(
                    f"{profile.name} is cited {profile.citation_rate - brand_citation_rate} "
                    f"percentage points more often. Strongest categories: {strong}."
                ),
                related_competitor=profile.name,
                suggested_action=(
                    f"Analyze {profile.name}'s content in their strong categories and publish "
                    "competing content with more specific, data-driven answers."
                ),
            )
        )

    brand_cited: Counter[str] = Counter()
    brand_total: Counter[str] = Counter()
    for result in results:
        brand_total[result.category.value] += 1
        if result.brand_citation.cited:
            brand_cited[result.category.value] += 1

    # Strength: brand cited in most probes of a category
    for category, total in brand_total.items():
        cited = brand_cited[category]
        if cited / total >= BRAND_STRENGTH_RATE:
            insights.append(
                CompetitiveInsight(
                    type=InsightType.STRENGTH,
                    title=f'Strong citation performance in "{category}" queries',
                    description=(
                        f'Brand is cited in {_rate_percent(cited, total)}% of "{category}" '
                        "probes. This category is a competitive advantage."
                    ),
                    related_competitor=None,
                    suggested_action=(
                        f'Keep producing "{category}" content and expand into related subtopics.'
                    ),
                    category=category,
                )
            )

    # Weakness: brand never cited in a category probed at least twice
    for category, total in brand_total.items():
        if total < MIN_WEAKNESS_PROBES or brand_cited[category] > 0:
            continue
        leader = next((p for p in profiles if category in p.strong_categories), None)
        description = f'Brand was never cited across {total} "{category}" probes.'
        if leader:
            description += f" {leader.name} performs well here."
        insights.append(
            CompetitiveInsight(
                type=InsightType.WEAKNESS,
                title=f'Zero citations in "{category}" queries',
                description=description,
                related_competitor=leader.name if leader else None,
                suggested_action=(
                    f'Create targeted "{category}" content with direct answers, '
                    "structured data and specific claims."
                ),
                category=category,
            )
        )

    return insights


def generate_recommendations(
    insights: Sequence[CompetitiveInsight],
    profiles: Sequence[CompetitorProfile],
) -> list[str]:
    """Turn insights into recommendations: opportunities, threats, weaknesses, top competitor."""
    recommendations: list[str] = []

    opportunities = [i for i in insights if i.type == InsightType.OPPORTUNITY]
    if opportunities:
        recommendations.append(
            f"Target {len(opportunities)} unclaimed queries where no competitor is cited. "
            "These are the fastest path to answer-engine visibility."
        )

    for threat in (i for i in insights if i.type == InsightType.THREAT):
        if threat.related_competitor:
            recommendations.append(threat.suggested_action)

    weak_categories = [
        i.category for i in insights if i.type == InsightType.WEAKNESS and i.category
    ]
    if weak_categories:
        recommendations.append(
            f"Prioritize content for weak categories: {', '.join(weak_categories)}. "
            "Focus on direct factual answers with structured data."
        )

    top: CompetitorProfile | None = None
    for profile in profiles:
        if top is None or profile.citation_rate > top.citation_rate:
            top = profile
    if top and top.citation_rate > STUDY_TOP_COMPETITOR_RATE:
        recommendations.append(
            f"Study {top.name}'s content structure and citation patterns. They reach a "
            f"{top.citation_rate}% citation rate with {top.avg_sentiment.value} sentiment."
        )

    if not recommendations:
        recommendations.append(
            "Continue monitoring citation performance and expand probe coverage "
            "to find new opportunities."
        )
    return recommendations


def summarize_results(
    brand: KnownEntity,
    competitors: Sequence[KnownEntity],
    results: Sequence[ProbeResult],
    categories: Sequence[str],
    failures: Sequence[ProviderError] = (),
) -> CompetitiveAnalysis:
    """Build profiles, insights and recommendations from finished probes."""
    brand_rate = _rate_percent(sum(1 for r in results if r.brand_citation.cited), len(results))
    profiles = [build_competitor_profile(c, results, categories) for c in competitors]
    insights = generate_insights(brand_rate, results, profiles)
    return CompetitiveAnalysis(
        brand_citation_rate=brand_rate,
        competitors=profiles,
        insights=insights,
        recommendations=generate_recommendations(insights, profiles),
        probe_results=list(results),
        failures=list(failures),
    )


class CompetitiveAnalyzer:
    """Runs a probe set for a brand and its competitors and analyzes the outcome."""

    def __init__(self, orchestrator: ProbeOrchestrator):
        self.orchestrator = orchestrator

    async def analyze(
        self,
        brand: KnownEntity,
        competitors: Sequence[KnownEntity],
        queries: Sequence[ProbeQuery],
        providers: Sequence[AnswerProvider] | None = None,
    ) -> CompetitiveAnalysis:
        """
        Probe every query on every provider and analyze citations.

        Raises:
            NoProvidersEnabledError: if there is no provider to ask
        """
        batch = await self.orchestrator.probe_many(
            queries, brand, competitors, providers=providers, options=ANALYSIS_OPTIONS
        )

        # Unique categories in query order
        categories = list(dict.fromkeys(ProbeCategory(q.category).value for q in queries))
        analysis = summarize_results(brand, competitors, batch.results, categories, batch.failures)

        logger.info(
            "competitive_analysis_completed",
            brand=brand.name,
            competitors=len(competitors),
            probes=len(batch.results),
            failures=len(batch.failures),
            brand_rate=analysis.brand_citation_rate,
        )
        return analysis


async def analyze_competitor_content(
    provider: AnswerProvider,
    competitor: KnownEntity,
    cited_responses: Sequence[str],
) -> list[str]:
    """Ask a provider which patterns lead to a competitor being cited."""
    if not cited_responses:
        return []

    samples = "\n\n".join(
        f"--- Response {i} ---\n{text}"
        for i, text in enumerate(cited_responses[:MAX_PATTERN_SAMPLES], start=1)
    )
    prompt = (
        f'Analyze how "{competitor.name}" ({competitor.domain or "no domain"}) is cited in '
        "these answer-engine responses. For each pattern note the context (list, "
        "comparison, standalone recommendation), the attributes associated with the "
        "brand, and the phrasing around the mention.\n\n"
        f"{samples}\n\nReturn ONLY a bullet list of concise citation patterns."
    )
    try:
        response = await provider.ask(
            prompt,
            AskOptions(temperature=0.2, max_tokens=1500, system_prompt=PATTERN_SYSTEM_PROMPT),
        )
    except Exception as e:
        logger.warning(
            "competitor_pattern_analysis_failed",
            competitor=competitor.name,
            provider=provider.name,
            error=str(e),
        )
        return []
    if not response.success:
        logger.warning(
            "competitor_pattern_analysis_failed",
            competitor=competitor.name,
            provider=provider.name,
            error=response.error.message if response.error else None,
        )
        return []

    patterns = (re.sub(r"^[-*]\s*", "", line).strip() for line in response.text.split("\n"))
    return [p for p in patterns if len(p) > 10]
