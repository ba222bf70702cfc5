"""Competitive gap sub-score from existing citation results."""

from collections.abc import Sequence
from dataclasses import dataclass, field

DEFAULT_COMPETITIVE_WEIGHT = 0.3
INSUFFICIENT_DATA_SCORE = 50
GAP_MULTIPLIER = 1.5


@dataclass
class CitationObservation:
    """Whether the brand and which competitors were cited in one probe."""

    query: str
    provider: str
    brand_cited: bool
    competitors_cited: list[str] = field(default_factory=list)


@dataclass
class CompetitorRate:
    name: str
    rate: float  # Percent, one decimal

    def to_dict(self) -> dict:
        return {"name": self.name, "rate": self.rate}


@dataclass
class CompetitiveGapScore:
    """How the brand's citation rate compares with its competitors'."""

    score: int
    weight: float = DEFAULT_COMPETITIVE_WEIGHT
    your_citation_rate: float = 0.0
    avg_competitor_citation_rate: float = 0.0
    top_competitor: str | None = None
    top_competitor_rate: float = 0.0
    competitor_rates: list[CompetitorRate] = field(default_factory=list)
    gap_analysis: str = ""

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "weight": self.weight,
            "your_citation_rate": self.your_citation_rate,
            "avg_competitor_citation_rate": self.avg_competitor_citation_rate,
            "top_competitor": self.top_competitor,
            "top_competitor_rate": self.top_competitor_rate,
            "competitor_rates": [c.to_dict() for c in self.competitor_rates],
            "gap_analysis": self.gap_analysis,
        }


def _percent(count: int, total: int) -> float:
    return round(count / total * 100, 1)


def _gap_explanation(
    brand_name: str,
    your_rate: float,
    avg_rate: float,
    top: CompetitorRate | None,
) -> str:
    if your_rate >= avg_rate and your_rate > 0:
        return (
            f"{brand_name} leads with a {your_rate}% citation rate vs competitor average "
            f"of {avg_rate}%. Maintain current content strategy."
        )
    if your_rate == 0 and avg_rate == 0:
        return (
            "Neither you nor competitors are being cited. This is a greenfield "
            "opportunity to establish answer-engine visibility."
        )
    if your_rate == 0:
        return (
            f"{brand_name} is not being cited while competitors average {avg_rate}%. "
            "Immediate content restructuring required."
        )
    deficit = round(avg_rate - your_rate, 1)
    top_name = top.name if top else "Unknown"
    top_rate = top.rate if top else 0.0
    return (
        f"{brand_name} trails competitors by {deficit} percentage points. {top_name} leads "
        f"at {top_rate}% citation rate. Focus on matching their content depth and "
        "direct-answer patterns."
    )


def analyze_competitive_gap(
    brand_name: str,
    competitors: Sequence[str],
    results: Sequence[CitationObservation],
    weight: float = DEFAULT_COMPETITIVE_WEIGHT,
) -> CompetitiveGapScore:
    """
    Compare the brand's citation rate with each competitor's over the same results.

    Score is 100 when the brand is at or above the competitor average,
    otherwise 100 minus 1.5x the gap in percentage points, floored at 0.
    No results means a neutral 50.
    """
    if not results:
        return CompetitiveGapScore(
            score=INSUFFICIENT_DATA_SCORE,
            weight=weight,
            gap_analysis="Insufficient data. Run citation validation probes first.",
        )

    total = len(results)
    your_rate = _percent(sum(1 for r in results if r.brand_cited), total)

    counts = {name: 0 for name in competitors}
    for result in results:
        for name in result.competitors_cited:
            if name in counts:
                counts[name] += 1

    rates = sorted(
        (CompetitorRate(name, _percent(count, total)) for name, count in counts.items()),
        key=lambda c: -c.rate,
    )
    avg_rate = round(sum(c.rate for c in rates) / len(rates), 1) if rates else 0.0
    top = rates[0] if rates else None

    if avg_rate <= your_rate:
        score = 100
    else:
        score = max(0, round(100 - (avg_rate - your_rate) * GAP_MULTIPLIER))

    return CompetitiveGapScore(
        score=score,
        weight=weight,
        your_citation_rate=your_rate,
        avg_competitor_citation_rate=avg_rate,
        top_competitor=top.name if top else None,
        top_competitor_rate=top.rate if top else 0.0,
        competitor_rates=rates,
        gap_analysis=_gap_explanation(brand_name, your_rate, avg_rate, top),
    )
