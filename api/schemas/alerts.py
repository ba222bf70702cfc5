"""Schemas for alert endpoints."""

from pydantic import BaseModel, Field


class AlertBrandRequest(BaseModel):
    """A brand already recorded in the knowledge graph."""

    brand: str = Field(..., min_length=1, max_length=200, description="Canonical name or alias")


class AlertUpdate(BaseModel):
    is_read: bool
