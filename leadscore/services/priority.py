from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping

from leadscore.core.exceptions import ConfigError
from leadscore.core.logging import get_logger
from leadscore.services.policies import PRIORITY_SUBSCORES, PriorityModel

logger = get_logger(__name__)


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class PriorityResult:
    overall_score: float
    priority: Priority
    normalized_weights: Dict[str, float]
    subscores: Dict[str, float]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall_score": self.overall_score,
            "priority": self.priority.value,
            "normalized_weights": dict(self.normalized_weights),
            "subscores": dict(self.subscores),
        }


def normalized_weights(model: PriorityModel) -> Dict[str, float]:
    total = sum(model.weights.values())
    return {key: model.weights[key] / total for key in PRIORITY_SUBSCORES}


def _clamped_subscores(subscores: Mapping[str, float]) -> Dict[str, float]:
    values = {}
    for key in PRIORITY_SUBSCORES:
        raw = subscores.get(key)
        if raw is None:
            logger.debug("priority.missing_subscore", subscore=key)
            values[key] = 0.0
            continue
        values[key] = min(max(float(raw), 0.0), 100.0)
    return values


def classify(subscores: Mapping[str, float], model: PriorityModel) -> PriorityResult:
    """Weighted overall score of the five sub-scores and its priority band.

    Weights are divided by their actual sum, so a model whose weights add up
    to 80 or 120 still yields an overall score in [0, 100].
    """
    unknown = sorted(set(subscores) - set(PRIORITY_SUBSCORES))
    if unknown:
        logger.warning("priority.unknown_subscores", subscores=unknown)

    weights = normalized_weights(model)
    values = _clamped_subscores(subscores)
    overall = sum(values[key] * weights[key] for key in PRIORITY_SUBSCORES)
    overall = min(max(overall, 0.0), 100.0)

    if overall >= model.high_threshold:
        band = Priority.HIGH
    elif overall >= model.medium_threshold:
        band = Priority.MEDIUM
    else:
        band = Priority.LOW

    return PriorityResult(
        overall_score=overall,
        priority=band,
        normalized_weights=weights,
        subscores=values,
    )


def _threshold(thresholds: Mapping[str, float], band: str) -> float:
    for key in (band, f"{band}_threshold"):
        if key in thresholds:
            return float(thresholds[key])
    raise ConfigError(f"Missing priority threshold '{band}'", details={"thresholds": dict(thresholds)})


def classify_priority(
    subscores: Mapping[str, float],
    weights: Mapping[str, float],
    thresholds: Mapping[str, float],
) -> Priority:
    model = PriorityModel(
        weights=dict(weights),
        high_threshold=_threshold(thresholds, "high"),
        medium_threshold=_threshold(thresholds, "medium"),
    )
    return classify(subscores, model).priority
