"""Schemas for citation detection and query extraction."""

from pydantic import BaseModel, Field

from engine.citation.matcher import KnownEntity


class EntityIn(BaseModel):
    """A brand or competitor."""

    name: str = Field(..., min_length=1, max_length=200)
    domain: str | None = Field(None, max_length=253, description="e.g. hubspot.com")

    def to_entity(self) -> KnownEntity:
        return KnownEntity(self.name.strip(), self.domain or None)


class DetectRequest(BaseModel):
    """Detect citations of a brand in one response text."""

    text: str
    brand: EntityIn
    competitors: list[EntityIn] = Field(default_factory=list)


class ExtractQueriesRequest(BaseModel):
    """Extract probe questions from markdown content."""

    content: str
    keywords: list[str] = Field(default_factory=list)
    max_queries: int = Field(5, ge=1, le=20)
