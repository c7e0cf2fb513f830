"""Tiered, self-calibrating distance-based airfare estimate"""

import math
import time
from datetime import date
from typing import Iterable, List, Optional, Sequence, Tuple

from loguru import logger

from .cache import PersistentCache, create_hash_key
from .config import (
    BASE_COST,
    CALIBRATION_STEPS,
    DISTANCE_TIERS,
    FLIGHT_COST_TIER_VERSION,
    LOG_SCALE_DIVISOR,
    MAX_TIER_EXPONENT,
    MIN_TIER_EXPONENT,
    MIN_TIER_FACTOR,
    ROUNDING_STEP,
    TRAINING_DISTANCE_TOLERANCE,
)
from .geo import CityDirectory, normalize_city
from .models import DistanceTier, FlightCostEntry, FlightCostMetadata, validate_tiers

DEFAULT_TIERS: Tuple[DistanceTier, ...] = tuple(DistanceTier(*t) for t in DISTANCE_TIERS)

SOURCE_SAME_LOCATION = "Distance-based (Same location)"
SOURCE_DISTANCE = "Distance-based calculation"


def round_to_step(value: float, step: int = ROUNDING_STEP) -> float:
    """Round half up to the nearest multiple of step"""
    return float(math.floor(value / step + 0.5) * step)


def apply_tiers(distance_km: float, tiers: Sequence[DistanceTier]) -> float:
    """Sum factor * slice**exponent over the slice of distance inside each tier"""
    cost = 0.0
    lower = 0.0
    for tier in tiers:
        if distance_km <= lower:
            break
        slice_km = min(distance_km, tier.threshold_km) - lower
        cost += tier.factor * slice_km ** tier.exponent
        lower = tier.threshold_km
    return cost


def log_scale(distance_km: float) -> float:
    return 1 + math.log10(distance_km) / LOG_SCALE_DIVISOR


def calibrate_tiers(tiers: Sequence[DistanceTier], avg_error: float) -> List[DistanceTier]:
    """
    Nudge every tier against the observed average error.

    ``avg_error`` is estimate minus actual: a positive value means the model
    overestimates, so factors and exponents move down. Factors never go below
    MIN_TIER_FACTOR and exponents stay inside [MIN_TIER_EXPONENT,
    MAX_TIER_EXPONENT].
    """
    for threshold, factor_step, exponent_step in CALIBRATION_STEPS:
        if abs(avg_error) > threshold:
            break
    else:
        return list(tiers)

    sign = -1.0 if avg_error > 0 else 1.0
    return [
        DistanceTier(
            threshold_km=tier.threshold_km,
            factor=max(MIN_TIER_FACTOR, tier.factor + sign * factor_step),
            exponent=min(
                MAX_TIER_EXPONENT,
                max(MIN_TIER_EXPONENT, tier.exponent + sign * exponent_step),
            ),
        )
        for tier in tiers
    ]


class FlightCostModel:
    """
    Round-trip airfare estimate from great-circle distance.

    Estimates are memoized in the shared PersistentCache. Scraped prices
    recorded with record_observation() become training entries; estimates
    for distances within 10% of a training entry are calibrated against the
    average error of those entries.
    """

    def __init__(
        self,
        cache: PersistentCache,
        tiers: Sequence[DistanceTier] = DEFAULT_TIERS,
        base_cost: float = BASE_COST,
        cities: Optional[CityDirectory] = None,
    ):
        validate_tiers(tiers)
        self.cache = cache
        self.tiers = tuple(tiers)
        self.base_cost = base_cost
        self.cities = cities or CityDirectory()

    def _memo_key(self, distance_km: float, origin: str, destination: str) -> str:
        return create_hash_key(
            [
                FLIGHT_COST_TIER_VERSION,
                normalize_city(origin),
                normalize_city(destination),
                f"{distance_km:.1f}",
            ]
        )

    def _compute(self, distance_km: float, tiers: Sequence[DistanceTier]) -> float:
        raw = (self.base_cost + apply_tiers(distance_km, tiers)) * log_scale(distance_km)
        return max(0.0, round_to_step(raw))

    def _training_entries(self) -> Iterable[FlightCostEntry]:
        for entry in self.cache.get_all_entries().values():
            value = entry.value
            if not isinstance(value, dict):
                continue
            meta = value.get("metadata")
            if not isinstance(meta, dict) or not meta.get("is_training"):
                continue
            # errors were measured against another version's coefficients
            if meta.get("tier_version") != FLIGHT_COST_TIER_VERSION:
                continue
            try:
                yield FlightCostEntry.from_dict(value)
            except (KeyError, TypeError, ValueError):
                continue

    def average_training_error(self, distance_km: float) -> Optional[float]:
        """Mean error of training entries within tolerance of distance_km"""
        tolerance = distance_km * TRAINING_DISTANCE_TOLERANCE
        errors = [
            e.metadata.error
            for e in self._training_entries()
            if abs(e.metadata.distance_km - distance_km) <= tolerance
        ]
        if not errors:
            return None
        return sum(errors) / len(errors)

    def calibrated_tiers(self, distance_km: float) -> List[DistanceTier]:
        avg_error = self.average_training_error(distance_km)
        if avg_error is None:
            return list(self.tiers)
        tiers = calibrate_tiers(self.tiers, avg_error)
        if tiers != list(self.tiers):
            logger.debug(
                f"Calibrated tiers for {distance_km:.0f} km (avg error {avg_error:+.1f})"
            )
        return tiers

    def estimate(self, distance_km: float, origin: str, destination: str) -> float:
        """
        Estimated round-trip price, rounded to the nearest $5.

        Args:
            distance_km: Great-circle distance between the two cities
            origin: Origin city, part of the memo key
            destination: Destination city, part of the memo key

        Returns:
            0 for the same city (nothing cached), otherwise the memoized or
            freshly computed estimate
        """
        if distance_km <= 0:
            return 0.0

        key = self._memo_key(distance_km, origin, destination)
        cached = self.cache.get(key)
        if isinstance(cached, dict):
            try:
                entry = FlightCostEntry.from_dict(cached)
            except (KeyError, TypeError, ValueError):
                entry = None
            if entry is not None and not entry.metadata.is_training:
                logger.debug(f"Cost memo hit: {origin} → {destination} = ${entry.cost:.0f}")
                return entry.cost

        cost = self._compute(distance_km, self.calibrated_tiers(distance_km))
        entry = FlightCostEntry(
            cost=cost,
            metadata=FlightCostMetadata(
                is_training=False,
                tier_version=FLIGHT_COST_TIER_VERSION,
                timestamp=int(time.time() * 1000),
                distance_km=distance_km,
            ),
        )
        self.cache.set(key, entry.to_dict())
        logger.info(f"📐 Estimated {origin} → {destination} ({distance_km:.0f} km): ${cost:.0f}")
        return cost

    def record_observation(
        self,
        distance_km: float,
        origin: str,
        destination: str,
        actual_price: float,
        observed_on: Optional[str] = None,
    ) -> FlightCostEntry:
        """
        Store a scraped price as a training entry.

        The error is measured against the uncalibrated tiers so that repeated
        observations describe the base model's bias rather than the previous
        correction. The memoized estimate for the same route is dropped so the
        next estimate picks up the new signal.
        """
        if distance_km <= 0:
            raise ValueError("Training observations need a positive distance")

        observed_on = observed_on or date.today().isoformat()
        estimate = self._compute(distance_km, self.tiers)
        entry = FlightCostEntry(
            cost=estimate,
            metadata=FlightCostMetadata(
                is_training=True,
                tier_version=FLIGHT_COST_TIER_VERSION,
                timestamp=int(time.time() * 1000),
                distance_km=distance_km,
                actual_price=float(actual_price),
                error=estimate - float(actual_price),
            ),
        )
        key = create_hash_key(
            [
                FLIGHT_COST_TIER_VERSION,
                "training",
                normalize_city(origin),
                normalize_city(destination),
                observed_on,
            ]
        )
        self.cache.set(key, entry.to_dict())
        self.cache.delete(self._memo_key(distance_km, origin, destination))
        logger.info(
            f"💾 Training entry {origin} → {destination}: actual ${actual_price:.0f}, "
            f"model ${estimate:.0f} (error {entry.metadata.error:+.0f})"
        )
        return entry

    def estimate_route(self, origin: str, destination: str) -> Tuple[Optional[float], str]:
        """
        Estimate by city names.

        Returns:
            Tuple of (price or None when a city is unknown, source tag)
        """
        distance = self.cities.distance_km(origin, destination)
        if distance is None:
            return None, f"{SOURCE_DISTANCE} (Unknown city)"
        if distance == 0:
            return 0.0, SOURCE_SAME_LOCATION
        return self.estimate(distance, origin, destination), SOURCE_DISTANCE
