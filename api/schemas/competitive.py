"""Schemas for competitive analysis and batch probing."""

from pydantic import BaseModel, Field

from api.schemas.citation import EntityIn
from engine.monitoring.scheduler import ScheduleFrequency
from engine.observation.prompts import ProbeCategory


class ProbeQueryIn(BaseModel):
    text: str = Field(..., min_length=1, max_length=500)
    category: ProbeCategory = ProbeCategory.BEST_OF


class CompetitiveAnalysisRequest(BaseModel):
    """Analyze a brand against competitors.

    Queries are generated from keywords when none are given.
    """

    brand: EntityIn
    competitors: list[EntityIn] = Field(default_factory=list)
    queries: list[ProbeQueryIn] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    providers: list[str] | None = Field(None, description="Provider names (default: all enabled)")


class BatchRunRequest(BaseModel):
    """Run a set of probes now and record the results in the knowledge graph."""

    brand: EntityIn
    competitors: list[EntityIn] = Field(default_factory=list)
    probes: list[ProbeQueryIn] = Field(..., min_length=1)
    providers: list[str] | None = None
    record: bool = Field(True, description="Ingest results into the knowledge graph")


class JobCreateRequest(BaseModel):
    """Schedule a recurring recorded batch for a brand.

    Probes are generated from keywords when none are given.
    """

    id: str = Field(..., min_length=1, max_length=64, pattern=r"^[A-Za-z0-9][A-Za-z0-9_-]*$")
    name: str = Field(..., min_length=1, max_length=200)
    brand: EntityIn
    competitors: list[EntityIn] = Field(default_factory=list)
    probes: list[ProbeQueryIn] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    providers: list[str] | None = None
    frequency: ScheduleFrequency | None = Field(None, description="Default: monitoring setting")
    hour: int | None = Field(None, ge=0, le=23, description="UTC hour")


class CompetitorPatternsRequest(BaseModel):
    """Ask one provider how answer engines cite a competitor."""

    competitor: EntityIn
    responses: list[str] = Field(..., min_length=1, description="Answer texts citing it")
    provider: str | None = Field(None, description="Provider to ask (default: first enabled)")
