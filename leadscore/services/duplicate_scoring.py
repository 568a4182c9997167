from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from leadscore.core.exceptions import MissingFieldError, ZeroActiveRulesWarning
from leadscore.core.logging import get_logger
from leadscore.schemas.lead import LeadRecord
from leadscore.services.normalization import normalize
from leadscore.services.policies import Comparator, MatchRule, ScoringConfig
from leadscore.services.similarity import gated_similarity, passes_threshold, similarity

logger = get_logger(__name__)


@dataclass(frozen=True)
class RuleContribution:
    field: str
    comparator: Comparator
    similarity: float
    threshold: float
    weight: float
    passed: bool
    contribution: float
    missing_field: bool = False


@dataclass(frozen=True)
class DuplicateScoreResult:
    lead_id: str
    candidate_id: str
    contributions: Tuple[RuleContribution, ...]
    raw_score: float
    aggregate_score: int
    warnings: Tuple[str, ...] = ()

    @property
    def zero_active_rules(self) -> bool:
        return ZeroActiveRulesWarning.code in self.warnings

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for item in data["contributions"]:
            item["comparator"] = item["comparator"].value
        return data


@dataclass(frozen=True)
class LookbackWindow:
    start: datetime
    end: datetime


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def lookback_window(lead: LeadRecord, config: ScoringConfig) -> LookbackWindow:
    """Creation-time window in which candidate duplicates of ``lead`` are searched."""
    return LookbackWindow(
        start=lead.created_at - timedelta(days=config.lookback_period_days),
        end=lead.created_at,
    )


def _rule_similarity(
    rule: MatchRule,
    lead_a: LeadRecord,
    lead_b: LeadRecord,
    config: ScoringConfig,
) -> Tuple[float, bool]:
    try:
        raw_a = lead_a.require(rule.field)
        raw_b = lead_b.require(rule.field)
    except MissingFieldError as e:
        logger.debug("duplicate_scoring.missing_field", field=e.field, lead_id=e.lead_id)
        return 0.0, True

    try:
        a = normalize(rule.field, raw_a, config)
        b = normalize(rule.field, raw_b, config)
        return similarity(rule.comparator, a, b), False
    except Exception as e:
        logger.warning(
            "duplicate_scoring.comparator_failed",
            field=rule.field,
            comparator=rule.comparator.value,
            lead_id=lead_a.id,
            candidate_id=lead_b.id,
            error=str(e),
        )
        return 0.0, False


def aggregate(
    lead_a: LeadRecord,
    lead_b: LeadRecord,
    rules: Sequence[MatchRule],
    config: ScoringConfig,
) -> DuplicateScoreResult:
    """Weighted, threshold-gated duplicate score of a candidate pair.

    Each active rule contributes ``similarity * weight`` when the similarity
    reaches the rule threshold and nothing otherwise; the sum is divided by
    the total active weight. Normalization and every comparator are
    symmetric, so swapping the two leads yields the same score.
    """
    active = [rule for rule in rules if rule.active]
    if not active:
        logger.warning(
            "duplicate_scoring.zero_active_rules",
            lead_id=lead_a.id,
            candidate_id=lead_b.id,
        )
        return DuplicateScoreResult(
            lead_id=lead_a.id,
            candidate_id=lead_b.id,
            contributions=(),
            raw_score=0.0,
            aggregate_score=0,
            warnings=(ZeroActiveRulesWarning.code,),
        )

    contributions = []
    for rule in active:
        score, missing = _rule_similarity(rule, lead_a, lead_b, config)
        contributions.append(RuleContribution(
            field=rule.field,
            comparator=rule.comparator,
            similarity=score,
            threshold=rule.threshold,
            weight=rule.weight,
            passed=not missing and passes_threshold(score, rule),
            contribution=gated_similarity(score, rule) * rule.weight,
            missing_field=missing,
        ))

    total_weight = sum(rule.weight for rule in active)
    raw = sum(c.contribution for c in contributions) / total_weight
    raw = min(max(raw, 0.0), 100.0)

    return DuplicateScoreResult(
        lead_id=lead_a.id,
        candidate_id=lead_b.id,
        contributions=tuple(contributions),
        raw_score=raw,
        aggregate_score=round_half_up(raw),
    )


def score_candidates(
    lead: LeadRecord,
    candidates: Iterable[LeadRecord],
    rules: Sequence[MatchRule],
    config: ScoringConfig,
) -> List[DuplicateScoreResult]:
    """Score ``lead`` against each candidate, best match first."""
    results = [
        aggregate(lead, candidate, rules, config)
        for candidate in candidates
        if candidate.id != lead.id
    ]
    results.sort(key=lambda r: (-r.raw_score, r.candidate_id))
    return results
