# leadscore/services/__init__.py
"""
Scoring, validation, decision and merge services.
"""

# Import key service functions and classes for convenient access
from leadscore.services.decision_engine import Decision, Outcome, decide, override
from leadscore.services.duplicate_scoring import DuplicateScoreResult, aggregate, score_candidates
from leadscore.services.engine import (
    BatchResult,
    LeadScoringEngine,
    classify_priority,
    compare_leads,
    score_lead,
)
from leadscore.services.merge import MergedRecord, MergeLease, merge
from leadscore.services.policies import (
    EngineConfig,
    EnginePolicy,
    MatchRule,
    PriorityModel,
    ScoringConfig,
    ValidationConfig,
    load_engine_policy,
    parse_engine_policy,
)
from leadscore.services.priority import Priority, classify
from leadscore.services.stats import ValidationStats, summarize
from leadscore.services.validation_engine import ValidationIssue, ValidationResult, validate

__all__ = [
    # Policies
    "EngineConfig",
    "EnginePolicy",
    "MatchRule",
    "PriorityModel",
    "ScoringConfig",
    "ValidationConfig",
    "load_engine_policy",
    "parse_engine_policy",
    # Duplicate scoring
    "DuplicateScoreResult",
    "aggregate",
    "compare_leads",
    "score_candidates",
    # Validation
    "ValidationIssue",
    "ValidationResult",
    "score_lead",
    "validate",
    # Decisions
    "Decision",
    "Outcome",
    "decide",
    "override",
    # Merge
    "MergedRecord",
    "MergeLease",
    "merge",
    # Priority
    "Priority",
    "classify",
    "classify_priority",
    # Engine
    "BatchResult",
    "LeadScoringEngine",
    # Statistics
    "ValidationStats",
    "summarize",
]
