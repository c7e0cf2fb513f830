import math
from pathlib import Path

import pytest

from stipend_flights.cache import PersistentCache
from stipend_flights.cost_model import (
    DEFAULT_TIERS,
    SOURCE_DISTANCE,
    SOURCE_SAME_LOCATION,
    FlightCostModel,
    apply_tiers,
    calibrate_tiers,
    round_to_step,
)
from stipend_flights.models import DistanceTier, FlightCostEntry, FlightCostMetadata, validate_tiers


@pytest.fixture
def model(tmp_path: Path) -> FlightCostModel:
    return FlightCostModel(PersistentCache(tmp_path / "cache.json"))


def test_round_to_step_half_up():
    assert round_to_step(1002.4) == 1000
    assert round_to_step(1002.5) == 1005
    assert round_to_step(1007.6) == 1010


def test_zero_distance_is_free_and_not_cached(model):
    assert model.estimate(0, "Seoul", "Seoul") == 0
    assert len(model.cache) == 0


def test_estimate_is_multiple_of_five_and_positive(model):
    cost = model.estimate(8600, "Seoul", "Barcelona")
    assert cost > 0
    assert cost % 5 == 0


def test_apply_tiers_by_hand():
    # 700 km: 500 km in the first tier, 200 km in the second
    expected = 0.55 * 500 ** 0.90 + 0.35 * 200 ** 0.88
    assert apply_tiers(700, DEFAULT_TIERS) == pytest.approx(expected)


def test_estimate_matches_formula(model):
    distance = 1000.0
    raw = (50 + apply_tiers(distance, DEFAULT_TIERS)) * (1 + math.log10(distance) / 11.5)
    assert model.estimate(distance, "A", "B") == round_to_step(raw)


def test_cost_non_decreasing_with_distance(model):
    distances = [10, 100, 499, 500, 501, 1200, 1500, 3000, 4000, 6000, 8000, 12000, 18000]
    costs = [model._compute(d, DEFAULT_TIERS) for d in distances]
    assert costs == sorted(costs)


def test_second_call_returns_memoized_value(model):
    first = model.estimate(9000, "Seoul", "Barcelona")

    # Changing tiers after the fact must not change the memoized answer
    model.tiers = tuple(DistanceTier(t.threshold_km, t.factor * 3, t.exponent) for t in model.tiers)
    second = model.estimate(9000, "Seoul", "Barcelona")
    assert second == first


def test_memo_persists_across_instances(tmp_path: Path):
    path = tmp_path / "cache.json"
    first = FlightCostModel(PersistentCache(path)).estimate(5000, "Paris", "Dubai")
    entries = PersistentCache(path).get_all_entries()
    assert len(entries) == 1
    entry = FlightCostEntry.from_dict(next(iter(entries.values())).value)
    assert entry.cost == first
    assert entry.metadata.is_training is False


def test_calibration_moves_against_large_overestimate():
    calibrated = calibrate_tiers(DEFAULT_TIERS, avg_error=80)
    for before, after in zip(DEFAULT_TIERS, calibrated):
        assert after.factor == pytest.approx(max(0.05, before.factor - 0.03))
        assert after.exponent == pytest.approx(max(0.5, before.exponent - 0.02))


def test_calibration_moves_up_for_underestimate():
    calibrated = calibrate_tiers(DEFAULT_TIERS, avg_error=-35)
    for before, after in zip(DEFAULT_TIERS, calibrated):
        assert after.factor == pytest.approx(before.factor + 0.02)
        assert after.exponent == pytest.approx(min(1.0, before.exponent + 0.015))


def test_small_error_leaves_tiers_alone():
    assert calibrate_tiers(DEFAULT_TIERS, avg_error=5) == list(DEFAULT_TIERS)


def test_calibration_clamps():
    tiers = [DistanceTier(100, 0.06, 0.51), DistanceTier(math.inf, 0.5, 0.99)]
    down = calibrate_tiers(tiers, avg_error=500)
    assert down[0].factor == 0.05
    assert down[0].exponent == 0.5
    up = calibrate_tiers(tiers, avg_error=-500)
    assert up[1].exponent == 1.0
    for tier in down + up:
        assert tier.factor >= 0.05
        assert 0.5 <= tier.exponent <= 1.0


def test_training_overestimate_lowers_future_estimates(model):
    distance = 9000.0
    baseline = model._compute(distance, DEFAULT_TIERS)

    # Actual fares far below the model: error = estimate - actual > 50
    model.record_observation(distance * 1.02, "Seoul", "Rome", baseline - 300, observed_on="2025-01-01")
    model.record_observation(distance * 0.97, "Seoul", "Milan", baseline - 250, observed_on="2025-01-02")

    assert model.average_training_error(distance) > 50
    assert model.estimate(distance, "Seoul", "Barcelona") < baseline


def test_training_entries_outside_tolerance_are_ignored(model):
    model.record_observation(2000, "A", "B", 10, observed_on="2025-01-01")
    assert model.average_training_error(9000) is None


def test_training_entries_from_older_tier_version_are_ignored(model):
    stale = FlightCostEntry(
        cost=1500.0,
        metadata=FlightCostMetadata(
            is_training=True,
            tier_version="flight-cost-v0",
            timestamp=0,
            distance_km=9000.0,
            actual_price=1000.0,
            error=500.0,
        ),
    )
    model.cache.set("stale-training", stale.to_dict())

    assert model.average_training_error(9000.0) is None
    baseline = model._compute(9000.0, DEFAULT_TIERS)
    assert model.estimate(9000.0, "Seoul", "Barcelona") == baseline


def test_training_entry_carries_actual_and_error(model):
    entry = model.record_observation(3000, "Seoul", "Tokyo", 400, observed_on="2025-02-01")
    assert entry.metadata.is_training is True
    assert entry.metadata.actual_price == 400
    assert entry.metadata.error == pytest.approx(entry.cost - 400)


def test_record_observation_drops_route_memo(model):
    model.estimate(3000, "Seoul", "Tokyo")
    key = model._memo_key(3000, "Seoul", "Tokyo")
    assert model.cache.has(key)
    model.record_observation(3000, "Seoul", "Tokyo", 400)
    assert not model.cache.has(key)


def test_record_observation_rejects_zero_distance(model):
    with pytest.raises(ValueError):
        model.record_observation(0, "Seoul", "Seoul", 100)


def test_training_metadata_requires_actual_price():
    with pytest.raises(ValueError):
        FlightCostMetadata(is_training=True, tier_version="v", timestamp=0, distance_km=1.0)


def test_estimate_route(model):
    price, source = model.estimate_route("Seoul, South Korea", "Barcelona, Spain")
    assert source == SOURCE_DISTANCE
    assert price > 0

    assert model.estimate_route("Seoul", "seoul") == (0.0, SOURCE_SAME_LOCATION)

    price, source = model.estimate_route("Seoul", "Qwxyzville")
    assert price is None
    assert "Unknown city" in source


def test_validate_tiers():
    validate_tiers(DEFAULT_TIERS)
    with pytest.raises(ValueError):
        validate_tiers([DistanceTier(500, 0.5, 0.9), DistanceTier(400, 0.5, 0.9), DistanceTier(math.inf, 0.1, 0.9)])
    with pytest.raises(ValueError):
        validate_tiers([DistanceTier(500, 0.5, 0.9)])
    with pytest.raises(ValueError):
        validate_tiers([])
