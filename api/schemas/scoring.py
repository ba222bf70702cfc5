"""Schemas for the scoring endpoints."""

from pydantic import BaseModel, Field

from api.schemas.citation import EntityIn


class StructuralScoreRequest(BaseModel):
    """Score markdown content without probing."""

    content: str
    schema_markup: str = Field("", description="JSON-LD supplied alongside the content")
    brand_name: str = ""
    keywords: list[str] = Field(default_factory=list)


class ValidateRequest(BaseModel):
    """Probe answer engines with questions extracted from content."""

    content: str
    brand: EntityIn
    keywords: list[str] = Field(default_factory=list)
    competitors: list[EntityIn] = Field(default_factory=list)


class CompositeScoreRequest(BaseModel):
    """Full citability score."""

    content: str
    brand: EntityIn
    keywords: list[str] = Field(default_factory=list)
    competitors: list[EntityIn] = Field(default_factory=list)
    schema_markup: str = ""
    skip_validation: bool = Field(False, description="Skip probing; citation sub-score is 0")
