"""Composite citability score: structural + citation validation + competitive gap."""

from collections.abc import Sequence
from dataclasses import dataclass, field

import structlog

from api.config import ScoringSettings
from engine.citation.matcher import KnownEntity
from engine.scoring.competitive_gap import (
    CitationObservation,
    CompetitiveGapScore,
    analyze_competitive_gap,
)
from engine.scoring.recommendations import Recommendation, generate_recommendations
from engine.scoring.structural import StructuralScore, calculate_structural_score
from engine.scoring.validation import CitationValidationScore, CitationValidator

logger = structlog.get_logger(__name__)


@dataclass
class AEOScore:
    """Weighted citability score with its parts and recommendations."""

    overall: int
    structural: StructuralScore
    citation_validation: CitationValidationScore
    competitive_gap: CompetitiveGapScore
    recommendations: list[Recommendation] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "overall": self.overall,
            "structural": self.structural.to_dict(),
            "citation_validation": self.citation_validation.to_dict(),
            "competitive_gap": self.competitive_gap.to_dict(),
            "recommendations": [r.to_dict() for r in self.recommendations],
        }


def combine_scores(
    structural: float,
    citation: float,
    competitive: float,
    weights: ScoringSettings | None = None,
) -> int:
    """Weighted sum of the three sub-scores, rounded."""
    weights = weights or ScoringSettings()
    return round(
        structural * weights.structural_weight
        + citation * weights.citation_weight
        + competitive * weights.competitive_weight
    )


class CompositeScorer:
    """Scores one piece of content end to end."""

    def __init__(
        self,
        validator: CitationValidator | None = None,
        settings: ScoringSettings | None = None,
    ):
        self.validator = validator
        self.settings = settings or ScoringSettings()

    async def score(
        self,
        body: str,
        brand: KnownEntity,
        keywords: list[str] | None = None,
        competitors: Sequence[KnownEntity] = (),
        schema_markup: str = "",
        skip_validation: bool = False,
    ) -> AEOScore:
        """
        Score content for citability.

        Args:
            body: Markdown content
            brand: Brand name and domain
            keywords: Target keywords
            competitors: Competitors to compare against
            schema_markup: JSON-LD supplied alongside the body
            skip_validation: Skip probing (citation sub-score is 0)

        Returns:
            AEOScore with sub-scores and sorted recommendations
        """
        keywords = keywords or []
        weights = self.settings

        structural = calculate_structural_score(
            body, schema_markup, brand.name, keywords, weight=weights.structural_weight
        )

        if skip_validation or self.validator is None:
            citation = CitationValidationScore(weight=weights.citation_weight)
        else:
            citation = await self.validator.validate(body, brand, keywords, competitors)
            citation.weight = weights.citation_weight

        observations = [
            CitationObservation(r.query, r.provider, r.cited, r.competitors_cited)
            for r in citation.probe_results
        ]
        competitive = analyze_competitive_gap(
            brand.name,
            [c.name for c in competitors],
            observations,
            weight=weights.competitive_weight,
        )

        overall = combine_scores(structural.score, citation.score, competitive.score, weights)
        recommendations = generate_recommendations(structural, citation, competitive)

        logger.info(
            "content_scored",
            brand=brand.name,
            overall=overall,
            structural=structural.score,
            citation=citation.score,
            competitive=competitive.score,
        )
        return AEOScore(
            overall=overall,
            structural=structural,
            citation_validation=citation,
            competitive_gap=competitive,
            recommendations=recommendations,
        )
