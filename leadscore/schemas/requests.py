# leadscore/schemas/requests.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from leadscore.schemas.lead import LeadRecord


class ScoringRequest(BaseModel):
    # Policy document, see leadscore.services.policies.parse_engine_policy
    policy: Dict[str, Any] = Field(default_factory=dict)

    # Leads to score and the existing records they are compared against
    leads: List[LeadRecord] = Field(min_length=1)
    existing: List[LeadRecord] = Field(default_factory=list)


class CompareRequest(BaseModel):
    policy: Dict[str, Any] = Field(default_factory=dict)
    lead_a: LeadRecord
    lead_b: LeadRecord


class PriorityRequest(BaseModel):
    policy: Dict[str, Any] = Field(default_factory=dict)
    subscores: Dict[str, float]
    lead_id: Optional[str] = None
