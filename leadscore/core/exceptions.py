# leadscore/core/exceptions.py
from __future__ import annotations

from typing import Any, Dict, Optional, Sequence


class EngineError(Exception):
    """Base exception for all scoring engine errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)


class ConfigError(EngineError):
    """Configuration that cannot be repaired by clamping."""
    def __init__(self, message: str = "Invalid configuration", **kwargs):
        kwargs.setdefault("code", "invalid_config")
        super().__init__(message, **kwargs)


class MissingFieldError(EngineError):
    """A lead lacks a field a comparison asked for."""
    def __init__(self, field: str, lead_id: Optional[str] = None, **kwargs):
        kwargs.setdefault("code", "missing_field")
        kwargs.setdefault("details", {"field": field, "lead_id": lead_id})
        super().__init__(f"Lead {lead_id} has no value for '{field}'", **kwargs)
        self.field = field
        self.lead_id = lead_id


class MergeError(EngineError):
    """Structurally invalid merge request."""
    def __init__(self, message: str = "Invalid merge request", **kwargs):
        kwargs.setdefault("code", "invalid_merge")
        super().__init__(message, **kwargs)


class IncompleteMergeSpec(MergeError):
    """Manual merge is missing a source choice for one or more fields."""
    def __init__(self, missing_fields: Sequence[str], message: Optional[str] = None, **kwargs):
        self.missing_fields = tuple(missing_fields)
        kwargs.setdefault("code", "incomplete_merge_spec")
        kwargs.setdefault("details", {"missing_fields": list(self.missing_fields)})
        super().__init__(
            message or "Choose a source for field(s): " + ", ".join(self.missing_fields),
            **kwargs,
        )


class LeaseError(MergeError):
    """Caller does not hold a lease over every record in the merge group."""
    def __init__(self, message: str = "Merge lease does not cover the merge group", **kwargs):
        kwargs.setdefault("code", "lease_required")
        super().__init__(message, **kwargs)


class DecisionError(EngineError):
    """Invalid decision transition."""
    def __init__(self, message: str = "Invalid decision transition", **kwargs):
        kwargs.setdefault("code", "invalid_transition")
        super().__init__(message, **kwargs)


class ConcurrentDecisionConflict(EngineError):
    """Another scoring run persisted a decision for this lead first."""
    def __init__(self, lead_id: str, expected_version: int, **kwargs):
        kwargs.setdefault("code", "decision_conflict")
        kwargs.setdefault("details", {"lead_id": lead_id, "expected_version": expected_version})
        super().__init__(
            f"Decision for lead {lead_id} changed since version {expected_version}",
            **kwargs,
        )
        self.lead_id = lead_id
        self.expected_version = expected_version


class ZeroActiveRulesWarning(UserWarning):
    """No active match rules; duplicate scores are defined as 0."""
    code = "zero_active_rules"


class StoreError(EngineError):
    """Storage adapter failure."""
    def __init__(self, message: str = "Store operation failed", **kwargs):
        kwargs.setdefault("code", "store_error")
        super().__init__(message, **kwargs)
