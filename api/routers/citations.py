"""Citation detection endpoints."""

from fastapi import APIRouter

from api.schemas.citation import DetectRequest
from engine.citation.detector import CitationDetector

router = APIRouter(prefix="/citations", tags=["citations"])


@router.post("/detect")
async def detect(body: DetectRequest) -> dict:
    """Detect whether and how the brand is cited in a response text."""
    brand = body.brand.to_entity()
    competitors = [c.to_entity() for c in body.competitors]
    analysis = CitationDetector().detect(body.text, brand.name, brand.domain, competitors)
    return {"brand": brand.to_dict(), "citation": analysis.to_dict()}
