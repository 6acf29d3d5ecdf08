"""
API Schemas — Request and Response Models

Pydantic models for the CareGuard API. Violation models carry the
position and category of a flagged span, never its text.
"""

from __future__ import annotations

from typing import Optional
from pydantic import BaseModel, Field

from careguard.types import BoundaryTag, QueryType


# ============================================================
# SHARED
# ============================================================

class CitationModel(BaseModel):
    document_id: str
    document_title: str
    chunk_text: str = ""
    relevance_score: float = 0.0
    document_date: Optional[str] = None
    professional_name: Optional[str] = None


class ViolationModel(BaseModel):
    layer: str
    category: str
    offset: int
    length: int
    reason: str


# ============================================================
# FILTER
# ============================================================

class FilterRequest(BaseModel):
    """POST /filter request body."""
    text: str = Field(..., min_length=1, max_length=50_000,
                      description="The generated response to filter.")
    boundary_check: BoundaryTag = Field(...,
                                        description="The generator's self-reported scope.")
    citations: list[CitationModel] = Field(default_factory=list)
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    query_type: QueryType = QueryType.GENERAL

    model_config = {"json_schema_extra": {"examples": [
        {"text": "Your records show a prescription for metformin.",
         "boundary_check": "understanding", "query_type": "factual"},
    ]}}


class RawFilterRequest(BaseModel):
    """POST /filter/raw request body."""
    raw_output: str = Field(..., min_length=1, max_length=50_000,
                            description="Raw generator output, BOUNDARY_CHECK line included.")
    citations: list[CitationModel] = Field(default_factory=list)
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    query_type: QueryType = QueryType.GENERAL


class FilterResponse(BaseModel):
    """POST /filter and /filter/raw response body."""
    text: str
    outcome: str
    boundary_check: str
    query_type: str
    confidence: float
    citations: list[CitationModel]
    violations: list[ViolationModel]
    categories: dict[str, int]
    regenerate: bool = False
    diff_spans: Optional[list[dict]] = None


# ============================================================
# SANITIZE
# ============================================================

class SanitizeRequest(BaseModel):
    """POST /sanitize request body."""
    text: str = Field(..., max_length=50_000, description="The raw patient query.")


class ModificationModel(BaseModel):
    kind: str
    description: str


class SanitizeResponse(BaseModel):
    text: str
    was_modified: bool
    modifications: list[ModificationModel]
    prompt: str


# ============================================================
# PATTERNS / HEALTH
# ============================================================

class PatternInfo(BaseModel):
    id: str
    group: str
    category: Optional[str] = None
    description: str


class PatternsResponse(BaseModel):
    core_version: str
    total_patterns: int
    rephrase_rules: int
    patterns: list[PatternInfo]


class HealthResponse(BaseModel):
    status: str
    version: str
    core_version: str
    pattern_count: int
    rephrase_rule_count: int
