from __future__ import annotations

from typing import Iterable, List, Protocol, Sequence, runtime_checkable

from leadscore.schemas.lead import LeadRecord
from leadscore.services.decision_engine import Decision
from leadscore.services.duplicate_scoring import LookbackWindow


@runtime_checkable
class CandidateFinder(Protocol):
    """Supplies the existing records a lead should be compared against."""

    async def find_candidates(self, lead: LeadRecord, window: LookbackWindow) -> Sequence[LeadRecord]:
        ...


@runtime_checkable
class DecisionStore(Protocol):
    """Versioned decision storage.

    ``persist_decision`` must write only when the stored version still equals
    ``expected_version`` and raise ConcurrentDecisionConflict otherwise.
    Version 0 means no decision has been stored for the lead yet.
    """

    async def current_version(self, lead_id: str) -> int:
        ...

    async def persist_decision(self, decision: Decision, expected_version: int) -> int:
        ...


@runtime_checkable
class LeadStore(Protocol):
    async def get_leads(self, ids: Iterable[str]) -> List[LeadRecord]:
        ...
