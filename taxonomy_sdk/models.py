"""
Taxonomy SDK: Data Models
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class EvaluationResponse(BaseModel):
    """Result of a POST /evaluate call."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    success: bool
    prompt: str = ""
    response: str = ""
    operation_risk: str = "Medium"       # Low | Medium | High
    verdict: Optional[str] = None        # APPROVE | APPROVE WITH CONDITIONS | REJECT | WORKAROUND | PARTIAL
    confidence: Optional[str] = None     # High | Med | Low
    risks: list[str] = []
    workaround: Optional[str] = None
    workaround_type: Optional[str] = None
    workaround_context: Optional[dict[str, Any]] = None
    partial_items: list[dict[str, Any]] = []
    error: Optional[str] = None
    raw: dict = {}                       # full response body
