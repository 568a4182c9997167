from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from leadscore.core.config import settings
from leadscore.core.exceptions import ConfigError, EngineError, LeaseError, MergeError
from leadscore.core.logging import bind_run_id, get_logger
from leadscore.schemas.lead import LeadRecord
from leadscore.services.collaborators import CandidateFinder, DecisionStore, LeadStore
from leadscore.services.decision_engine import Decision, decide
from leadscore.services.duplicate_scoring import (
    DuplicateScoreResult,
    aggregate,
    lookback_window,
    score_candidates,
)
from leadscore.services.merge import MergedRecord, MergeLease, merge
from leadscore.services.policies import (
    EngineConfig,
    EnginePolicy,
    MatchRule,
    MergeStrategy,
    PriorityModel,
    ScoringConfig,
)
from leadscore.services.priority import Priority, PriorityResult, classify, classify_priority
from leadscore.services.validation_engine import ValidationResult, validate

logger = get_logger(__name__)

__all__ = [
    "BatchResult",
    "LeadFailure",
    "LeadOutcome",
    "LeadScoringEngine",
    "classify_priority",
    "compare_leads",
    "decide",
    "score_lead",
]


def score_lead(
    lead: LeadRecord,
    rules: Sequence[MatchRule],
    config: EngineConfig,
    candidates: Iterable[LeadRecord] = (),
) -> ValidationResult:
    duplicates = score_candidates(lead, candidates, rules, config.scoring)
    return validate(lead, config.validation, duplicates)


def compare_leads(
    lead_a: LeadRecord,
    lead_b: LeadRecord,
    rules: Sequence[MatchRule],
    config: ScoringConfig,
) -> DuplicateScoreResult:
    return aggregate(lead_a, lead_b, rules, config)


@dataclass(frozen=True)
class LeadOutcome:
    lead_id: str
    decision: Decision
    validation: ValidationResult
    duplicates: Tuple[DuplicateScoreResult, ...]
    version: Optional[int] = None


@dataclass(frozen=True)
class LeadFailure:
    lead_id: str
    code: str
    message: str


@dataclass(frozen=True)
class BatchResult:
    run_id: str
    processed: Tuple[LeadOutcome, ...]
    failed: Tuple[LeadFailure, ...]

    @property
    def total(self) -> int:
        return len(self.processed) + len(self.failed)


class LeadScoringEngine:
    """Runs the scoring pipeline against external candidate and decision stores.

    Scoring itself is pure; the engine only sequences collaborator calls and
    never retries. A ConcurrentDecisionConflict from the decision store is
    surfaced to the caller, which should re-fetch and score again.
    """

    def __init__(
        self,
        rules: Sequence[MatchRule],
        config: EngineConfig,
        *,
        priority_model: Optional[PriorityModel] = None,
        candidate_finder: Optional[CandidateFinder] = None,
        decision_store: Optional[DecisionStore] = None,
        lead_store: Optional[LeadStore] = None,
        max_concurrent: Optional[int] = None,
    ):
        self.rules = tuple(rules)
        self.config = config
        self.priority_model = priority_model
        self.candidate_finder = candidate_finder
        self.decision_store = decision_store
        self.lead_store = lead_store
        self.max_concurrent = settings.scoring_max_concurrent if max_concurrent is None else max_concurrent
        if self.max_concurrent < 1:
            raise ConfigError("max_concurrent must be at least 1", details={"max_concurrent": self.max_concurrent})

    @classmethod
    def from_policy(cls, policy: EnginePolicy, **kwargs) -> "LeadScoringEngine":
        kwargs.setdefault("priority_model", policy.priority)
        return cls(policy.rules, policy.config, **kwargs)

    def score_lead(self, lead: LeadRecord, candidates: Iterable[LeadRecord] = ()) -> ValidationResult:
        return score_lead(lead, self.rules, self.config, candidates)

    def compare_leads(self, lead_a: LeadRecord, lead_b: LeadRecord) -> DuplicateScoreResult:
        return compare_leads(lead_a, lead_b, self.rules, self.config.scoring)

    def decide(self, lead_id: str, validation: ValidationResult, duplicates: Iterable[DuplicateScoreResult]) -> Decision:
        return decide(lead_id, validation, duplicates, self.config)

    def classify(self, subscores: Mapping[str, float]) -> PriorityResult:
        if self.priority_model is None:
            raise ConfigError("No priority model configured")
        return classify(subscores, self.priority_model)

    def classify_priority(self, subscores: Mapping[str, float]) -> Priority:
        return self.classify(subscores).priority

    async def merge_leads(
        self,
        primary_id: str,
        secondary_ids: Sequence[str],
        strategy: Optional[MergeStrategy] = None,
        manual_field_map: Optional[Mapping[str, str]] = None,
        lease: Optional[MergeLease] = None,
    ) -> MergedRecord:
        if lease is None:
            raise LeaseError("merge_leads requires a lease over the whole merge group")
        if self.lead_store is None:
            raise ConfigError("merge_leads needs a lead store")

        wanted = [primary_id, *secondary_ids]
        records = {r.id: r for r in await self.lead_store.get_leads(wanted)}
        missing = [i for i in wanted if i not in records]
        if missing:
            raise MergeError(
                f"Unknown lead id(s): {', '.join(missing)}",
                details={"missing_ids": missing},
            )

        return merge(
            records[primary_id],
            [records[i] for i in secondary_ids],
            strategy or self.config.scoring.merge_strategy,
            manual_field_map=manual_field_map,
            lease=lease,
        )

    async def _candidates(self, lead: LeadRecord) -> List[LeadRecord]:
        if self.candidate_finder is None:
            return []
        window = lookback_window(lead, self.config.scoring)
        return list(await self.candidate_finder.find_candidates(lead, window))

    async def process_lead(self, lead: LeadRecord) -> LeadOutcome:
        """Score one lead and persist its decision with a version check."""
        expected = None
        if self.decision_store is not None:
            expected = await self.decision_store.current_version(lead.id)

        candidates = await self._candidates(lead)
        duplicates = score_candidates(lead, candidates, self.rules, self.config.scoring)
        validation = validate(lead, self.config.validation, duplicates)
        decision = decide(lead.id, validation, duplicates, self.config)

        version = None
        if self.decision_store is not None:
            version = await self.decision_store.persist_decision(decision, expected)

        logger.info(
            "scoring.lead_processed",
            lead_id=lead.id,
            outcome=decision.outcome.value,
            candidates=len(candidates),
            version=version,
        )
        return LeadOutcome(
            lead_id=lead.id,
            decision=decision,
            validation=validation,
            duplicates=tuple(duplicates),
            version=version,
        )

    async def process_batch(self, leads: Sequence[LeadRecord], run_id: Optional[str] = None) -> BatchResult:
        """Process leads concurrently, at most ``max_concurrent`` at a time.

        A failing lead is recorded and does not affect the others.
        Cancellation propagates; a lead cancelled before its persist call has
        stored nothing.
        """
        run_id = run_id or uuid.uuid4().hex
        bind_run_id(run_id)
        semaphore = asyncio.Semaphore(self.max_concurrent)

        async def _run(lead: LeadRecord):
            async with semaphore:
                try:
                    return await self.process_lead(lead)
                except EngineError as e:
                    logger.warning("scoring.lead_failed", lead_id=lead.id, code=e.code, error=e.message)
                    return LeadFailure(lead_id=lead.id, code=e.code, message=e.message)
                except Exception as e:
                    logger.error("scoring.lead_error", lead_id=lead.id, error=str(e), exc_info=True)
                    return LeadFailure(lead_id=lead.id, code="unexpected_error", message=str(e))

        logger.info("scoring.start", leads=len(leads), max_concurrent=self.max_concurrent)
        try:
            results = await asyncio.gather(*(_run(lead) for lead in leads))
        finally:
            bind_run_id(None)

        processed = tuple(r for r in results if isinstance(r, LeadOutcome))
        failed = tuple(r for r in results if isinstance(r, LeadFailure))
        logger.info("scoring.complete", run_id=run_id, processed=len(processed), failed=len(failed))
        return BatchResult(run_id=run_id, processed=processed, failed=failed)
