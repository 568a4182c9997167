# leadscore/schemas/__init__.py
"""
Pydantic schemas for lead records and CLI/worker payloads.
"""

from leadscore.schemas.lead import LeadRecord
from leadscore.schemas.requests import CompareRequest, PriorityRequest, ScoringRequest

__all__ = [
    "LeadRecord",
    "CompareRequest",
    "PriorityRequest",
    "ScoringRequest",
]
