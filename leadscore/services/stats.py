from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Tuple

from leadscore.services.decision_engine import Decision, Outcome
from leadscore.services.duplicate_scoring import round_half_up
from leadscore.services.validation_engine import ValidationResult

TOP_ISSUES = 5


@dataclass(frozen=True)
class ValidationStats:
    total_leads: int
    validated_leads: int
    rejected_leads: int
    pending_leads: int
    merge_candidate_leads: int
    validation_rate: int
    average_validation_score: int
    average_duplicate_score: int
    common_issues: Tuple[Tuple[str, int], ...]
    duplicate_rate: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_leads": self.total_leads,
            "validated_leads": self.validated_leads,
            "rejected_leads": self.rejected_leads,
            "pending_leads": self.pending_leads,
            "merge_candidate_leads": self.merge_candidate_leads,
            "validation_rate": self.validation_rate,
            "average_validation_score": self.average_validation_score,
            "average_duplicate_score": self.average_duplicate_score,
            "common_issues": [{"issue": i, "count": c} for i, c in self.common_issues],
            "duplicate_rate": self.duplicate_rate,
        }


def _percent(part: int, total: int) -> int:
    return round_half_up(part / total * 100) if total else 0


def _mean(values: List[float]) -> int:
    return round_half_up(sum(values) / len(values)) if values else 0


def summarize(decisions: Iterable[Decision], validations: Iterable[ValidationResult]) -> ValidationStats:
    """Aggregate figures for a set of scored leads.

    Outcome counts and the average duplicate score come from the decisions;
    scores, issues and the duplicate rate come from the validation results.
    """
    decisions = list(decisions)
    validations = list(validations)

    outcomes = Counter(d.outcome for d in decisions)
    total = len(decisions)

    issues = Counter(i.value for v in validations for i in v.issues)
    # ties ordered by issue name
    common = tuple(sorted(issues.items(), key=lambda kv: (-kv[1], kv[0]))[:TOP_ISSUES])

    with_duplicates = sum(1 for v in validations if v.potential_duplicates)

    return ValidationStats(
        total_leads=total,
        validated_leads=outcomes[Outcome.VALIDATED],
        rejected_leads=outcomes[Outcome.REJECTED],
        pending_leads=outcomes[Outcome.PENDING],
        merge_candidate_leads=outcomes[Outcome.MERGE_CANDIDATE],
        validation_rate=_percent(outcomes[Outcome.VALIDATED], total),
        average_validation_score=_mean([v.validation_score for v in validations]),
        average_duplicate_score=_mean([d.snapshot.max_duplicate_score for d in decisions]),
        common_issues=common,
        duplicate_rate=_percent(with_duplicates, len(validations)),
    )
