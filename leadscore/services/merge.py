from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple

from leadscore.core.exceptions import IncompleteMergeSpec, LeaseError, MergeError
from leadscore.core.logging import get_logger
from leadscore.schemas.lead import LeadRecord
from leadscore.services.policies import MergeStrategy

logger = get_logger(__name__)


@dataclass(frozen=True)
class MergeLease:
    """Proof that ``holder`` has exclusive use of ``record_ids`` until ``expires_at``."""

    holder: str
    record_ids: FrozenSet[str]
    expires_at: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "record_ids", frozenset(self.record_ids))

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.now(timezone.utc)) >= self.expires_at

    def covers(self, ids: Iterable[str]) -> bool:
        return set(ids) <= self.record_ids


@dataclass(frozen=True)
class FieldResolution:
    field: str
    value: Any
    source_id: Optional[str]
    rule: str
    candidates: Tuple[str, ...] = ()


@dataclass(frozen=True)
class MergedRecord:
    record: LeadRecord
    source_ids: Tuple[str, ...]
    strategy: MergeStrategy
    resolutions: Tuple[FieldResolution, ...] = field(default_factory=tuple)

    def resolution(self, name: str) -> Optional[FieldResolution]:
        for item in self.resolutions:
            if item.field == name:
                return item
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record": self.record.model_dump(mode="json"),
            "source_ids": list(self.source_ids),
            "strategy": self.strategy.value,
            "resolutions": [
                {
                    "field": r.field,
                    "value": r.value,
                    "source_id": r.source_id,
                    "rule": r.rule,
                    "candidates": list(r.candidates),
                }
                for r in self.resolutions
            ],
        }


def _check_group(primary: LeadRecord, secondaries: Sequence[LeadRecord]) -> Tuple[str, ...]:
    if not secondaries:
        raise MergeError("Merge needs at least one secondary record", details={"primary_id": primary.id})
    ids = tuple([primary.id] + [s.id for s in secondaries])
    repeated = sorted({i for i in ids if ids.count(i) > 1})
    if repeated:
        raise MergeError(
            f"Record(s) appear more than once in the merge group: {', '.join(repeated)}",
            details={"repeated_ids": repeated},
        )
    return ids


def _check_lease(lease: MergeLease, ids: Sequence[str], now: datetime) -> None:
    if lease.is_expired(now):
        raise LeaseError(
            f"Merge lease held by {lease.holder} expired at {lease.expires_at.isoformat()}",
            details={"holder": lease.holder},
        )
    if not lease.covers(ids):
        uncovered = sorted(set(ids) - lease.record_ids)
        raise LeaseError(
            f"Merge lease does not cover record(s): {', '.join(uncovered)}",
            details={"holder": lease.holder, "uncovered": uncovered},
        )


def _field_order(sources: Sequence[LeadRecord]) -> List[str]:
    ordered: Dict[str, None] = {}
    for source in sources:
        for name in source.contact_fields():
            ordered.setdefault(name, None)
    return list(ordered)


def _normalized(value: Any) -> str:
    return str(value).strip()


def merge(
    primary: LeadRecord,
    secondaries: Sequence[LeadRecord],
    strategy: MergeStrategy,
    manual_field_map: Optional[Mapping[str, str]] = None,
    lease: Optional[MergeLease] = None,
    now: Optional[datetime] = None,
) -> MergedRecord:
    """Combine a merge group into one record.

    ``newest`` and ``oldest`` take the non-empty value from the most recently
    or earliest created source; ties go to the primary, then input order.
    ``manual`` needs ``manual_field_map`` (field -> source id) for every field
    that two or more sources fill, even when their values agree. A field
    that only one source fills is carried over unless the map points it
    elsewhere. The merged record keeps the primary's id and creation time;
    source records are left untouched.
    """
    try:
        strategy = MergeStrategy(strategy)
    except ValueError:
        raise MergeError(f"Unknown merge strategy {strategy!r}", details={"strategy": strategy}) from None

    ids = _check_group(primary, secondaries)
    now = now or datetime.now(timezone.utc)
    if lease is not None:
        _check_lease(lease, ids, now)

    sources = [primary, *secondaries]
    by_id = {s.id: s for s in sources}
    field_map = dict(manual_field_map or {})

    outside = sorted(f for f, source_id in field_map.items() if source_id not in by_id)
    if outside:
        raise IncompleteMergeSpec(
            outside,
            message="Mapped source is not part of the merge group for field(s): " + ", ".join(outside),
        )

    if strategy is MergeStrategy.NEWEST:
        ranked = sorted(enumerate(sources), key=lambda p: (-p[1].created_at.timestamp(), p[0]))
    else:
        ranked = sorted(enumerate(sources), key=lambda p: (p[1].created_at.timestamp(), p[0]))
    ranked_sources = [s for _, s in ranked]

    resolutions: List[FieldResolution] = []
    unmapped: List[str] = []
    for name in _field_order(sources):
        filled = [s for s in sources if s.has_value(name)]
        candidates = tuple(s.id for s in filled)

        if not filled:
            resolutions.append(FieldResolution(name, None, None, "empty"))
            continue
        if strategy is MergeStrategy.MANUAL and (len(filled) > 1 or name in field_map):
            chosen_id = field_map.get(name)
            if chosen_id is None or not by_id[chosen_id].has_value(name):
                unmapped.append(name)
                continue
            chosen = by_id[chosen_id]
            resolutions.append(FieldResolution(name, chosen.field_value(name), chosen.id, "manual", candidates))
            continue
        if len(filled) == 1:
            only = filled[0]
            resolutions.append(FieldResolution(name, only.field_value(name), only.id, "single_source", candidates))
            continue

        distinct = {_normalized(s.field_value(name)) for s in filled}
        chosen = next(s for s in ranked_sources if s.has_value(name))
        rule = "agreement" if len(distinct) == 1 else strategy.value
        resolutions.append(FieldResolution(name, chosen.field_value(name), chosen.id, rule, candidates))

    if unmapped:
        raise IncompleteMergeSpec(unmapped)

    data: Dict[str, Any] = {
        "id": primary.id,
        "created_at": primary.created_at,
        "submission_rate": primary.submission_rate,
    }
    data.update({r.field: r.value for r in resolutions})
    record = LeadRecord.model_validate(data)

    logger.info(
        "merge.complete",
        primary_id=primary.id,
        source_ids=list(ids),
        strategy=strategy.value,
        holder=lease.holder if lease else None,
    )

    return MergedRecord(
        record=record,
        source_ids=ids,
        strategy=strategy,
        resolutions=tuple(resolutions),
    )
