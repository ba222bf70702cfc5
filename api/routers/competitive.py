"""Competitive analysis endpoints."""

from fastapi import APIRouter

from api.deps import OrchestratorDep, RegistryDep, select_providers
from api.exceptions import NoProvidersEnabledError, ValidationError
from api.schemas.competitive import CompetitiveAnalysisRequest, CompetitorPatternsRequest
from api.schemas.responses import ERROR_RESPONSES
from engine.competitive.analysis import CompetitiveAnalyzer, analyze_competitor_content
from engine.observation.prompts import ProbeQuery, default_queries_for_keywords

router = APIRouter(prefix="/competitive", tags=["competitive"], responses=ERROR_RESPONSES)


@router.post("/analyze")
async def analyze(
    body: CompetitiveAnalysisRequest, orchestrator: OrchestratorDep, registry: RegistryDep
) -> dict:
    """
    Probe every query on every provider and compare the brand with its competitors.

    Returns competitor profiles, SWOT insights and recommendations.
    """
    queries = [ProbeQuery(q.text, q.category) for q in body.queries]
    if not queries:
        queries = default_queries_for_keywords(body.keywords)
    if not queries:
        raise ValidationError("Provide queries or keywords to generate them", field="queries")

    providers = select_providers(registry, body.providers)
    analysis = await CompetitiveAnalyzer(orchestrator).analyze(
        body.brand.to_entity(),
        [c.to_entity() for c in body.competitors],
        queries,
        providers,
    )
    return analysis.to_dict()


@router.post("/patterns")
async def competitor_patterns(body: CompetitorPatternsRequest, registry: RegistryDep) -> dict:
    """Citation patterns a provider finds in answers that cite a competitor."""
    if body.provider:
        providers = select_providers(registry, [body.provider])
    else:
        providers = registry.select(1)
    if not providers:
        raise NoProvidersEnabledError()
    provider = providers[0]

    patterns = await analyze_competitor_content(
        provider, body.competitor.to_entity(), body.responses
    )
    return {
        "competitor": body.competitor.name,
        "provider": provider.name,
        "patterns": patterns,
        "count": len(patterns),
    }
