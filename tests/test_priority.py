import pytest

from leadscore.core.exceptions import ConfigError
from leadscore.services.policies import PriorityModel
from leadscore.services.priority import Priority, classify, classify_priority

WEIGHTS = {"engagement": 30, "fit": 25, "interest": 20, "budget": 15, "timeline": 10}
THRESHOLDS = {"high": 75, "medium": 50}


def test_bands():
    assert classify_priority({k: 90 for k in WEIGHTS}, WEIGHTS, THRESHOLDS) is Priority.HIGH
    assert classify_priority({k: 80 for k in WEIGHTS}, WEIGHTS, THRESHOLDS) is Priority.HIGH
    assert classify_priority({k: 60 for k in WEIGHTS}, WEIGHTS, THRESHOLDS) is Priority.MEDIUM
    assert classify_priority({k: 10 for k in WEIGHTS}, WEIGHTS, THRESHOLDS) is Priority.LOW


def test_weights_are_renormalized():
    # Same proportions at a different total must give the same result
    doubled = {k: v * 2 for k, v in WEIGHTS.items()}
    model_a = PriorityModel(WEIGHTS, 75, 50)
    model_b = PriorityModel(doubled, 75, 50)
    subscores = {"engagement": 80, "fit": 40, "interest": 100, "budget": 0, "timeline": 55}

    a, b = classify(subscores, model_a), classify(subscores, model_b)
    assert a.overall_score == pytest.approx(b.overall_score)
    assert sum(a.normalized_weights.values()) == pytest.approx(1.0)


def test_weights_not_summing_to_100():
    model = PriorityModel({"engagement": 1, "fit": 1}, high_threshold=75, medium_threshold=50)
    result = classify({"engagement": 100, "fit": 50}, model)
    assert result.overall_score == pytest.approx(75.0)
    assert result.priority is Priority.HIGH


def test_subscores_clamped_and_missing_count_zero():
    model = PriorityModel(WEIGHTS, 75, 50)
    result = classify({"engagement": 250, "fit": -40}, model)
    assert result.subscores["engagement"] == 100.0
    assert result.subscores["fit"] == 0.0
    assert result.subscores["timeline"] == 0.0
    assert result.overall_score == pytest.approx(30.0)
    assert 0.0 <= result.overall_score <= 100.0


def test_negative_weight_clamped():
    model = PriorityModel({"engagement": -5, "fit": 10}, 75, 50)
    assert model.weights["engagement"] == 0.0


def test_zero_weights_rejected():
    with pytest.raises(ConfigError):
        PriorityModel({"engagement": 0, "fit": 0}, 75, 50)


def test_unknown_weight_rejected():
    with pytest.raises(ConfigError):
        PriorityModel({"engagement": 10, "vibes": 5}, 75, 50)


def test_inverted_thresholds_rejected():
    with pytest.raises(ConfigError):
        classify_priority({}, WEIGHTS, {"high": 40, "medium": 60})


def test_missing_threshold():
    with pytest.raises(ConfigError):
        classify_priority({}, WEIGHTS, {"high": 75})


def test_threshold_key_aliases():
    thresholds = {"high_threshold": 75, "medium_threshold": 50}
    assert classify_priority({k: 60 for k in WEIGHTS}, WEIGHTS, thresholds) is Priority.MEDIUM
