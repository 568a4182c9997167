# leadscore/db/store.py
from __future__ import annotations

import json
from typing import Any, AsyncContextManager, Callable, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import bindparam, text
from sqlalchemy.ext.asyncio import AsyncSession

from leadscore.core.config import settings
from leadscore.core.exceptions import ConcurrentDecisionConflict
from leadscore.core.logging import get_logger
from leadscore.db.session import session_scope
from leadscore.schemas.lead import LeadRecord
from leadscore.services.decision_engine import Decision
from leadscore.services.duplicate_scoring import LookbackWindow
from leadscore.services.merge import MergedRecord

logger = get_logger(__name__)

SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]

_LEAD_COLUMNS = (
    "id", "created_at", "name", "email", "phone", "company", "address",
    "city", "postal_code", "source", "notes", "submission_rate",
)


def _row_dict(row: Any) -> Dict[str, Any]:
    mapping = getattr(row, "_mapping", None)
    return dict(mapping) if mapping is not None else dict(vars(row))


def _row_to_lead(row: Any) -> LeadRecord:
    data = _row_dict(row)
    extra = data.pop("extra", None) or {}
    if isinstance(extra, str):
        extra = json.loads(extra)
    data.pop("merged_into", None)
    return LeadRecord.model_validate({**extra, **data})


class SqlLeadStore:
    """Postgres-backed candidate finder, lead store and versioned decision store.

    Expected tables (names configurable through settings)::

        leads(id text pk, created_at timestamptz, <contact columns>,
              submission_rate float, extra jsonb, merged_into text null)
        lead_decisions(lead_id text pk, version int, outcome text,
                       payload jsonb, decided_at timestamptz)

    Every call runs in its own session so concurrent scoring tasks never
    share one.
    """

    def __init__(
        self,
        session_factory: SessionFactory = session_scope,
        *,
        leads_table: Optional[str] = None,
        decisions_table: Optional[str] = None,
        candidate_limit: int = 1000,
    ):
        self._session = session_factory
        self.candidate_limit = candidate_limit
        leads = leads_table or settings.leads_table
        decisions = decisions_table or settings.decisions_table
        columns = ", ".join(_LEAD_COLUMNS)

        self._select_candidates = text(
            f"""
            SELECT {columns}, extra
            FROM {leads}
            WHERE id <> :lead_id
              AND merged_into IS NULL
              AND created_at >= :window_start
              AND created_at <= :window_end
            ORDER BY created_at DESC, id
            LIMIT :limit
            """
        )
        self._select_leads = text(
            f"""
            SELECT {columns}, extra
            FROM {leads}
            WHERE id IN :ids
            """
        ).bindparams(bindparam("ids", expanding=True))
        self._select_version = text(
            f"SELECT version FROM {decisions} WHERE lead_id = :lead_id"
        )
        self._insert_decision = text(
            f"""
            INSERT INTO {decisions} (lead_id, version, outcome, payload, decided_at)
            VALUES (:lead_id, 1, :outcome, CAST(:payload AS jsonb), :decided_at)
            ON CONFLICT (lead_id) DO NOTHING
            RETURNING version
            """
        )
        self._update_decision = text(
            f"""
            UPDATE {decisions}
            SET version = version + 1,
                outcome = :outcome,
                payload = CAST(:payload AS jsonb),
                decided_at = :decided_at
            WHERE lead_id = :lead_id
              AND version = :expected_version
            RETURNING version
            """
        )
        self._update_primary = text(
            f"""
            UPDATE {leads}
            SET {", ".join(f"{c} = :{c}" for c in _LEAD_COLUMNS if c not in ("id", "created_at"))},
                extra = CAST(:extra AS jsonb)
            WHERE id = :id
            """
        )
        self._tombstone = text(
            f"""
            UPDATE {leads}
            SET merged_into = :primary_id
            WHERE id IN :ids
            """
        ).bindparams(bindparam("ids", expanding=True))

    async def find_candidates(self, lead: LeadRecord, window: LookbackWindow) -> List[LeadRecord]:
        async with self._session() as session:
            res = await session.execute(
                self._select_candidates,
                {
                    "lead_id": lead.id,
                    "window_start": window.start,
                    "window_end": window.end,
                    "limit": self.candidate_limit,
                },
            )
            rows = res.fetchall()
        return [_row_to_lead(r) for r in rows]

    async def get_leads(self, ids: Iterable[str]) -> List[LeadRecord]:
        ids = list(dict.fromkeys(ids))
        if not ids:
            return []
        async with self._session() as session:
            res = await session.execute(self._select_leads, {"ids": ids})
            rows = res.fetchall()
        return [_row_to_lead(r) for r in rows]

    async def current_version(self, lead_id: str) -> int:
        async with self._session() as session:
            res = await session.execute(self._select_version, {"lead_id": lead_id})
            row = res.first()
        return int(row.version) if row is not None else 0

    async def persist_decision(self, decision: Decision, expected_version: Optional[int]) -> int:
        """Compare-and-swap write of ``decision``; returns the new version."""
        expected_version = expected_version or 0
        params = {
            "lead_id": decision.lead_id,
            "outcome": decision.outcome.value,
            "payload": json.dumps(decision.to_dict()),
            "decided_at": decision.decided_at,
        }
        async with self._session() as session:
            if expected_version == 0:
                res = await session.execute(self._insert_decision, params)
            else:
                res = await session.execute(
                    self._update_decision,
                    {**params, "expected_version": expected_version},
                )
            row = res.first()
            if row is None:
                logger.warning(
                    "store.decision_conflict",
                    lead_id=decision.lead_id,
                    expected_version=expected_version,
                )
                raise ConcurrentDecisionConflict(decision.lead_id, expected_version)

        logger.debug("store.decision_persisted", lead_id=decision.lead_id, version=int(row.version))
        return int(row.version)

    async def apply_merge(self, merged: MergedRecord) -> None:
        """Write the merged values onto the primary and tombstone the secondaries."""
        record = merged.record
        params: Dict[str, Any] = {c: getattr(record, c) for c in _LEAD_COLUMNS if c != "created_at"}
        params["extra"] = json.dumps(record.model_extra or {}, default=str)
        secondaries: Sequence[str] = [i for i in merged.source_ids if i != record.id]

        async with self._session() as session:
            await session.execute(self._update_primary, params)
            await session.execute(self._tombstone, {"primary_id": record.id, "ids": list(secondaries)})

        logger.info("store.merge_applied", primary_id=record.id, tombstoned=list(secondaries))
