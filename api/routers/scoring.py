"""Content scoring endpoints."""

from fastapi import APIRouter

from api.deps import OrchestratorDep, SettingsDep
from api.schemas.responses import ERROR_RESPONSES
from api.schemas.scoring import CompositeScoreRequest, StructuralScoreRequest, ValidateRequest
from engine.scoring.composite import CompositeScorer
from engine.scoring.structural import calculate_structural_score
from engine.scoring.validation import CitationValidator

router = APIRouter(prefix="/scoring", tags=["scoring"], responses=ERROR_RESPONSES)


def _validator(orchestrator: OrchestratorDep, settings: SettingsDep) -> CitationValidator:
    scoring = settings.scoring
    return CitationValidator(
        orchestrator,
        max_queries=scoring.max_probe_queries,
        max_providers=scoring.max_validation_providers,
        weight=scoring.citation_weight,
    )


@router.post("/structural")
async def structural(body: StructuralScoreRequest, settings: SettingsDep) -> dict:
    """Structural sub-score, with the per-factor points."""
    score = calculate_structural_score(
        body.content,
        body.schema_markup,
        body.brand_name,
        body.keywords,
        weight=settings.scoring.structural_weight,
    )
    return {**score.to_dict(), "breakdown": score.show_the_math()}


@router.post("/validate")
async def validate(
    body: ValidateRequest, orchestrator: OrchestratorDep, settings: SettingsDep
) -> dict:
    """
    Citation validation sub-score.

    Extracts questions from the content and probes up to the configured
    number of providers. Provider failures are listed, not raised.
    """
    validator = _validator(orchestrator, settings)
    score = await validator.validate(
        body.content,
        body.brand.to_entity(),
        body.keywords,
        [c.to_entity() for c in body.competitors],
    )
    return score.to_dict()


@router.post("/score")
async def score(
    body: CompositeScoreRequest, orchestrator: OrchestratorDep, settings: SettingsDep
) -> dict:
    """Full citability score with recommendations."""
    validate_content = settings.scoring.auto_validate and not body.skip_validation
    scorer = CompositeScorer(_validator(orchestrator, settings), settings.scoring)
    result = await scorer.score(
        body.content,
        body.brand.to_entity(),
        body.keywords,
        [c.to_entity() for c in body.competitors],
        body.schema_markup,
        skip_validation=not validate_content,
    )
    return result.to_dict()
