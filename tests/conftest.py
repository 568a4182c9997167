# tests/conftest.py
from datetime import datetime, timedelta, timezone

import pytest

from leadscore.schemas.lead import LeadRecord
from leadscore.services.policies import EngineConfig, MatchRule, ScoringConfig, ValidationConfig

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _lead(lead_id="lead-1", days_ago=0, **fields):
    data = {
        "id": lead_id,
        "created_at": BASE_TIME - timedelta(days=days_ago),
        "name": "Jane Doe",
        "email": "jane.doe@acme.io",
        "phone": "(512) 555-0123",
        "company": "Acme Corp",
    }
    data.update(fields)
    return LeadRecord(**data)


def _scoring(**overrides):
    data = dict(
        lookback_period_days=30,
        duplicate_action="flag",
        minimum_match_score=70,
        merge_strategy="newest",
        case_sensitive=False,
        ignore_special_chars=True,
        normalize_phone=True,
        email_domain_check=True,
    )
    data.update(overrides)
    return ScoringConfig(**data)


def _validation(**overrides):
    data = dict(
        duplicate_threshold=50,
        email_validation=True,
        phone_validation=True,
        company_validation=True,
        spam_detection=True,
        auto_reject_threshold=40,
        auto_approve_threshold=90,
    )
    data.update(overrides)
    return ValidationConfig(**data)


@pytest.fixture
def make_lead():
    return _lead


@pytest.fixture
def scoring_config():
    return _scoring


@pytest.fixture
def validation_config():
    return _validation


@pytest.fixture
def engine_config():
    def _make(scoring=None, validation=None):
        return EngineConfig(scoring=scoring or _scoring(), validation=validation or _validation())
    return _make


@pytest.fixture
def contact_rules():
    return (
        MatchRule(field="email", comparator="exact", weight=10),
        MatchRule(field="phone", comparator="exact", weight=8),
        MatchRule(field="name", comparator="fuzzy", threshold=60, weight=6),
    )


@pytest.fixture
def policy_document():
    return {
        "matching_rules": [
            {"field": "email", "comparator": "exact", "weight": 10},
            {"field": "phone", "comparator": "exact", "weight": 8},
            {"field": "name", "match_type": "fuzzy", "threshold": 60, "weight": 6, "enabled": True},
        ],
        "scoring": {
            "lookback_period_days": 30,
            "duplicate_action": "flag",
            "minimum_match_score": 70,
            "merge_strategy": "newest",
            "case_sensitive": False,
            "ignore_special_chars": True,
            "normalize_phone": True,
            "email_domain_check": True,
        },
        "validation": {
            "duplicate_threshold": 50,
            "email_validation": True,
            "phone_validation": True,
            "company_validation": True,
            "spam_detection": True,
            "auto_reject_threshold": 40,
            "auto_approve_threshold": 90,
        },
        "priority": {
            "weights": {"engagement": 30, "fit": 25, "interest": 20, "budget": 15, "timeline": 10},
            "high_threshold": 75,
            "medium_threshold": 50,
        },
    }
