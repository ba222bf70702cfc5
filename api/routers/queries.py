"""Probe query extraction endpoints."""

from fastapi import APIRouter

from api.schemas.citation import ExtractQueriesRequest
from engine.scoring.query_extractor import extract_queries

router = APIRouter(prefix="/queries", tags=["queries"])


@router.post("/extract")
async def extract(body: ExtractQueriesRequest) -> dict:
    """
    Extract probe questions from markdown content.

    Sources are FAQ questions, headings, the opening paragraph and
    target keywords, in decreasing confidence.
    """
    queries = extract_queries(body.content, body.keywords, body.max_queries)
    return {"queries": [q.to_dict() for q in queries], "count": len(queries)}
