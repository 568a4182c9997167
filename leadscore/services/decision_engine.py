from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple

from leadscore.core.exceptions import DecisionError
from leadscore.core.logging import get_logger
from leadscore.services.duplicate_scoring import DuplicateScoreResult
from leadscore.services.policies import DuplicateAction, EngineConfig
from leadscore.services.validation_engine import ValidationResult

logger = get_logger(__name__)


class Outcome(str, Enum):
    PENDING = "pending"
    VALIDATED = "validated"
    REJECTED = "rejected"
    MERGE_CANDIDATE = "merge_candidate"


@dataclass(frozen=True)
class ScoreSnapshot:
    validation_score: int
    max_duplicate_score: int
    issues: Tuple[str, ...]


@dataclass(frozen=True)
class ManualOverride:
    actor: str
    reason: str
    previous_outcome: Outcome
    at: datetime


@dataclass(frozen=True)
class Decision:
    lead_id: str
    outcome: Outcome
    snapshot: ScoreSnapshot
    decided_at: datetime
    reason: str
    duplicate_action: Optional[DuplicateAction] = None
    merge_candidate_ids: Tuple[str, ...] = ()
    override: Optional[ManualOverride] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "lead_id": self.lead_id,
            "outcome": self.outcome.value,
            "merge_candidate_ids": list(self.merge_candidate_ids),
            "snapshot": {
                "validation_score": self.snapshot.validation_score,
                "max_duplicate_score": self.snapshot.max_duplicate_score,
                "issues": list(self.snapshot.issues),
            },
            "decided_at": self.decided_at.isoformat(),
            "reason": self.reason,
            "duplicate_action": self.duplicate_action.value if self.duplicate_action else None,
            "override": None,
        }
        if self.override:
            data["override"] = {
                "actor": self.override.actor,
                "reason": self.override.reason,
                "previous_outcome": self.override.previous_outcome.value,
                "at": self.override.at.isoformat(),
            }
        return data


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def decide(
    lead_id: str,
    validation: ValidationResult,
    duplicates: Iterable[DuplicateScoreResult],
    config: EngineConfig,
    decided_at: Optional[datetime] = None,
) -> Decision:
    """Turn a lead's scores into an outcome.

    Rules are evaluated in order and the first match wins:

    1. any duplicate at or above ``minimum_match_score`` -> merge_candidate
    2. validation score at or below ``auto_reject_threshold`` -> rejected
    3. validation score at or above ``auto_approve_threshold`` -> validated
    4. otherwise pending

    Pure given ``decided_at``; callers persisting the result must go through
    the store's version check.
    """
    duplicates = [d for d in duplicates if d.candidate_id != lead_id]
    scoring = config.scoring
    rules = config.validation

    snapshot = ScoreSnapshot(
        validation_score=validation.validation_score,
        max_duplicate_score=max((d.aggregate_score for d in duplicates), default=0),
        issues=tuple(i.value for i in validation.issues),
    )
    decided_at = decided_at or _utcnow()

    matches = sorted(
        (d for d in duplicates if d.aggregate_score >= scoring.minimum_match_score),
        key=lambda d: (-d.aggregate_score, d.candidate_id),
    )
    if matches:
        outcome, reason = Outcome.MERGE_CANDIDATE, "duplicate_score_at_or_above_minimum_match_score"
    elif validation.validation_score <= rules.auto_reject_threshold:
        outcome, reason = Outcome.REJECTED, "validation_score_at_or_below_auto_reject_threshold"
    elif validation.validation_score >= rules.auto_approve_threshold:
        outcome, reason = Outcome.VALIDATED, "validation_score_at_or_above_auto_approve_threshold"
    else:
        outcome, reason = Outcome.PENDING, "awaiting_review"

    logger.info(
        "decision.made",
        lead_id=lead_id,
        outcome=outcome.value,
        validation_score=snapshot.validation_score,
        max_duplicate_score=snapshot.max_duplicate_score,
    )

    return Decision(
        lead_id=lead_id,
        outcome=outcome,
        snapshot=snapshot,
        decided_at=decided_at,
        reason=reason,
        duplicate_action=scoring.duplicate_action,
        merge_candidate_ids=tuple(d.candidate_id for d in matches),
    )


def override(
    decision: Decision,
    outcome: Outcome,
    actor: str,
    reason: str,
    merge_candidate_ids: Iterable[str] = (),
    now: Optional[datetime] = None,
) -> Decision:
    """Manually move a decision to another outcome.

    This is the only way to leave merge_candidate without performing a merge.
    """
    outcome = Outcome(outcome)
    if not actor or not actor.strip():
        raise DecisionError("Manual override requires an actor", details={"lead_id": decision.lead_id})
    if not reason or not reason.strip():
        raise DecisionError("Manual override requires a reason", details={"lead_id": decision.lead_id})
    if outcome is decision.outcome:
        raise DecisionError(
            f"Decision for lead {decision.lead_id} is already {outcome.value}",
            details={"lead_id": decision.lead_id, "outcome": outcome.value},
        )

    ids: Tuple[str, ...] = ()
    if outcome is Outcome.MERGE_CANDIDATE:
        ids = tuple(dict.fromkeys(i for i in merge_candidate_ids if i and i != decision.lead_id))
        if not ids:
            raise DecisionError(
                "Override to merge_candidate needs at least one candidate id",
                details={"lead_id": decision.lead_id},
            )

    now = now or _utcnow()
    logger.info(
        "decision.override",
        lead_id=decision.lead_id,
        actor=actor,
        reason=reason,
        previous_outcome=decision.outcome.value,
        outcome=outcome.value,
    )
    return replace(
        decision,
        outcome=outcome,
        merge_candidate_ids=ids,
        decided_at=now,
        reason="manual_override",
        override=ManualOverride(
            actor=actor.strip(),
            reason=reason.strip(),
            previous_outcome=decision.outcome,
            at=now,
        ),
    )
