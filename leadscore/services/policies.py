from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Sequence, Tuple, Type, TypeVar, Union

from leadscore.core.exceptions import ConfigError
from leadscore.core.logging import get_logger

logger = get_logger(__name__)

E = TypeVar("E", bound=Enum)


class Comparator(str, Enum):
    EXACT = "exact"
    FUZZY = "fuzzy"
    PHONETIC = "phonetic"


class DuplicateAction(str, Enum):
    MERGE = "merge"
    FLAG = "flag"
    REJECT = "reject"
    UPDATE = "update"


class MergeStrategy(str, Enum):
    NEWEST = "newest"
    OLDEST = "oldest"
    MANUAL = "manual"


PRIORITY_SUBSCORES: Tuple[str, ...] = ("engagement", "fit", "interest", "budget", "timeline")

DEFAULT_SPAM_KEYWORDS: FrozenSet[str] = frozenset({
    "viagra", "casino", "lottery", "free money", "click here", "crypto giveaway",
    "winner", "work from home", "buy now", "seo services",
})

DEFAULT_DISPOSABLE_DOMAINS: FrozenSet[str] = frozenset({
    "mailinator.com", "guerrillamail.com", "10minutemail.com", "tempmail.com",
    "temp-mail.org", "yopmail.com", "trashmail.com", "sharklasers.com",
    "getnada.com", "dispostable.com", "maildrop.cc", "throwawaymail.com",
})

DEFAULT_PLACEHOLDER_COMPANIES: FrozenSet[str] = frozenset({
    "n/a", "na", "none", "null", "nil", "test", "testing", "unknown", "company",
    "my company", "abc", "xyz", "asdf", "qwerty", "-", ".", "self", "no company",
})


def _coerce_enum(enum_cls: Type[E], value: Any, name: str) -> E:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        allowed = [m.value for m in enum_cls]
        raise ConfigError(
            f"Unknown {name} {value!r}; expected one of {allowed}",
            details={"field": name, "value": value, "allowed": allowed},
        ) from None


def _clamp(name: str, value: float, low: float, high: float, *, context: str) -> float:
    clamped = min(max(value, low), high)
    if clamped != value:
        logger.warning(
            "config.clamped",
            setting=name,
            context=context,
            value=value,
            clamped_to=clamped,
        )
    return clamped


def _lower_set(values: Iterable[str]) -> FrozenSet[str]:
    return frozenset(v.strip().lower() for v in values if v and v.strip())


@dataclass(frozen=True)
class MatchRule:
    field: str
    comparator: Comparator
    threshold: float = 100.0
    weight: float = 1.0
    active: bool = True

    def __post_init__(self) -> None:
        if not self.field or not str(self.field).strip():
            raise ConfigError("Match rule field must be a non-empty name", details={"field": self.field})
        object.__setattr__(self, "field", str(self.field).strip())
        comparator = _coerce_enum(Comparator, self.comparator, "comparator")
        object.__setattr__(self, "comparator", comparator)
        if comparator is Comparator.EXACT:
            threshold = 100.0
        else:
            threshold = _clamp("threshold", float(self.threshold), 0.0, 100.0, context=self.field)
        object.__setattr__(self, "threshold", threshold)
        object.__setattr__(self, "weight", _clamp("weight", float(self.weight), 1.0, 10.0, context=self.field))
        object.__setattr__(self, "active", bool(self.active))


@dataclass(frozen=True)
class ScoringConfig:
    lookback_period_days: int
    duplicate_action: DuplicateAction
    minimum_match_score: float
    merge_strategy: MergeStrategy
    case_sensitive: bool
    ignore_special_chars: bool
    normalize_phone: bool
    email_domain_check: bool

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "lookback_period_days",
            int(_clamp("lookback_period_days", int(self.lookback_period_days), 1, 3650, context="scoring")),
        )
        object.__setattr__(self, "duplicate_action", _coerce_enum(DuplicateAction, self.duplicate_action, "duplicate_action"))
        object.__setattr__(self, "merge_strategy", _coerce_enum(MergeStrategy, self.merge_strategy, "merge_strategy"))
        object.__setattr__(
            self,
            "minimum_match_score",
            _clamp("minimum_match_score", float(self.minimum_match_score), 0.0, 100.0, context="scoring"),
        )


@dataclass(frozen=True)
class ValidationConfig:
    duplicate_threshold: float
    email_validation: bool
    phone_validation: bool
    company_validation: bool
    spam_detection: bool
    auto_reject_threshold: float
    auto_approve_threshold: float
    spam_keywords: FrozenSet[str] = DEFAULT_SPAM_KEYWORDS
    disposable_domains: FrozenSet[str] = DEFAULT_DISPOSABLE_DOMAINS
    placeholder_companies: FrozenSet[str] = DEFAULT_PLACEHOLDER_COMPANIES
    max_submissions_per_hour: float = 10.0

    def __post_init__(self) -> None:
        for name in ("duplicate_threshold", "auto_reject_threshold", "auto_approve_threshold"):
            object.__setattr__(self, name, _clamp(name, float(getattr(self, name)), 0.0, 100.0, context="validation"))
        if self.auto_reject_threshold >= self.auto_approve_threshold:
            raise ConfigError(
                "auto_reject_threshold must be lower than auto_approve_threshold",
                details={
                    "auto_reject_threshold": self.auto_reject_threshold,
                    "auto_approve_threshold": self.auto_approve_threshold,
                },
            )
        object.__setattr__(self, "spam_keywords", _lower_set(self.spam_keywords))
        object.__setattr__(self, "disposable_domains", _lower_set(self.disposable_domains))
        object.__setattr__(self, "placeholder_companies", _lower_set(self.placeholder_companies))
        object.__setattr__(
            self,
            "max_submissions_per_hour",
            _clamp("max_submissions_per_hour", float(self.max_submissions_per_hour), 1.0, 1_000_000.0, context="validation"),
        )


@dataclass(frozen=True)
class EngineConfig:
    scoring: ScoringConfig
    validation: ValidationConfig


@dataclass(frozen=True)
class PriorityModel:
    """Weights for the five priority sub-scores and the band thresholds.

    Weights are kept as configured; the classifier renormalizes them by
    their sum, so they need not add up to 100.
    """

    weights: Mapping[str, float]
    high_threshold: float
    medium_threshold: float

    def __post_init__(self) -> None:
        unknown = sorted(set(self.weights) - set(PRIORITY_SUBSCORES))
        if unknown:
            raise ConfigError(
                f"Unknown priority weight(s): {', '.join(unknown)}",
                details={"unknown": unknown, "allowed": list(PRIORITY_SUBSCORES)},
            )
        weights = {
            key: _clamp(f"{key}_weight", float(self.weights.get(key, 0.0)), 0.0, float("inf"), context="priority")
            for key in PRIORITY_SUBSCORES
        }
        if sum(weights.values()) <= 0:
            raise ConfigError("Priority weights must not all be zero", details={"weights": weights})
        object.__setattr__(self, "weights", weights)
        high = _clamp("high_threshold", float(self.high_threshold), 0.0, 100.0, context="priority")
        medium = _clamp("medium_threshold", float(self.medium_threshold), 0.0, 100.0, context="priority")
        if medium > high:
            raise ConfigError(
                "medium_threshold must not exceed high_threshold",
                details={"high_threshold": high, "medium_threshold": medium},
            )
        object.__setattr__(self, "high_threshold", high)
        object.__setattr__(self, "medium_threshold", medium)


@dataclass(frozen=True)
class EnginePolicy:
    rules: Tuple[MatchRule, ...]
    config: EngineConfig
    priority: Optional[PriorityModel] = None


def _require(raw: Mapping[str, Any], keys: Sequence[str], section: str) -> None:
    missing = [k for k in keys if k not in raw]
    if missing:
        raise ConfigError(
            f"Policy section '{section}' is missing: {', '.join(missing)}",
            details={"section": section, "missing": missing},
        )


def parse_match_rules(raw: Iterable[Mapping[str, Any]]) -> Tuple[MatchRule, ...]:
    rules = []
    for item in raw:
        # "match_type"/"enabled" are the keys the dashboard settings use
        comparator = item.get("comparator", item.get("match_type"))
        if comparator is None or "field" not in item:
            raise ConfigError("Match rule needs 'field' and 'comparator'", details={"rule": dict(item)})
        rules.append(MatchRule(
            field=item["field"],
            comparator=comparator,
            threshold=item.get("threshold", 100.0),
            weight=item.get("weight", 1.0),
            active=item.get("active", item.get("enabled", True)),
        ))
    return tuple(rules)


_SCORING_KEYS = (
    "lookback_period_days", "duplicate_action", "minimum_match_score", "merge_strategy",
    "case_sensitive", "ignore_special_chars", "normalize_phone", "email_domain_check",
)


def parse_scoring_config(raw: Mapping[str, Any]) -> ScoringConfig:
    _require(raw, _SCORING_KEYS, "scoring")
    return ScoringConfig(
        lookback_period_days=int(raw["lookback_period_days"]),
        duplicate_action=raw["duplicate_action"],
        minimum_match_score=float(raw["minimum_match_score"]),
        merge_strategy=raw["merge_strategy"],
        case_sensitive=bool(raw["case_sensitive"]),
        ignore_special_chars=bool(raw["ignore_special_chars"]),
        normalize_phone=bool(raw["normalize_phone"]),
        email_domain_check=bool(raw["email_domain_check"]),
    )


_VALIDATION_KEYS = (
    "duplicate_threshold", "email_validation", "phone_validation", "company_validation",
    "spam_detection", "auto_reject_threshold", "auto_approve_threshold",
)


def parse_validation_config(raw: Mapping[str, Any]) -> ValidationConfig:
    _require(raw, _VALIDATION_KEYS, "validation")
    optional: Dict[str, Any] = {}
    for key in ("spam_keywords", "disposable_domains", "placeholder_companies"):
        if key in raw:
            optional[key] = frozenset(raw[key])
    if "max_submissions_per_hour" in raw:
        optional["max_submissions_per_hour"] = float(raw["max_submissions_per_hour"])
    return ValidationConfig(
        duplicate_threshold=float(raw["duplicate_threshold"]),
        email_validation=bool(raw["email_validation"]),
        phone_validation=bool(raw["phone_validation"]),
        company_validation=bool(raw["company_validation"]),
        spam_detection=bool(raw["spam_detection"]),
        auto_reject_threshold=float(raw["auto_reject_threshold"]),
        auto_approve_threshold=float(raw["auto_approve_threshold"]),
        **optional,
    )


def parse_priority_model(raw: Mapping[str, Any]) -> PriorityModel:
    _require(raw, ("weights", "high_threshold", "medium_threshold"), "priority")
    return PriorityModel(
        weights={k: float(v) for k, v in dict(raw["weights"]).items()},
        high_threshold=float(raw["high_threshold"]),
        medium_threshold=float(raw["medium_threshold"]),
    )


def parse_engine_policy(raw: Mapping[str, Any]) -> EnginePolicy:
    _require(raw, ("matching_rules", "scoring", "validation"), "policy")
    priority = raw.get("priority")
    return EnginePolicy(
        rules=parse_match_rules(raw["matching_rules"]),
        config=EngineConfig(
            scoring=parse_scoring_config(raw["scoring"]),
            validation=parse_validation_config(raw["validation"]),
        ),
        priority=parse_priority_model(priority) if priority else None,
    )


def load_engine_policy(path: Union[str, Path]) -> EnginePolicy:
    p = Path(path)
    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read policy file {p}: {e}", details={"path": str(p)}) from e
    return parse_engine_policy(raw)
