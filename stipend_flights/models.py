"""Data models and enums for the stipend flight pricer"""

import math
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple


class CircuitState(Enum):
    """Circuit breaker states"""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, skip provider
    HALF_OPEN = "half_open"  # Testing if recovered


class ErrorType(Enum):
    """Error categories for different handling strategies"""

    TRANSIENT = "transient"  # Retry
    RATE_LIMIT = "rate_limit"  # Backoff and retry
    AUTH_FAILURE = "auth_failure"  # Bad credentials
    PERMANENT = "permanent"  # Don't retry


class SearchState(Enum):
    """Steps of a single Google Flights search"""

    INIT = "init"
    ORIGIN_SET = "origin_set"
    DESTINATION_SET = "destination_set"
    DATES_SET = "dates_set"
    SUBMITTED = "submitted"
    FILTERS_APPLIED = "filters_applied"
    RESULTS_READY = "results_ready"
    FAILED = "failed"


def _clean_city(name: str) -> str:
    return " ".join(name.replace(",", " ").split())


@dataclass(frozen=True)
class Query:
    """A round-trip flight search request"""

    origin: str
    destination: str
    outbound_date: str
    return_date: str
    include_budget: bool = False

    def normalized(self) -> "Query":
        """Copy with comma-free, whitespace-collapsed city names"""
        return replace(
            self,
            origin=_clean_city(self.origin),
            destination=_clean_city(self.destination),
        )

    def cache_parts(self, version: str) -> List[str]:
        q = self.normalized()
        return [
            version,
            q.origin.lower(),
            q.destination.lower(),
            q.outbound_date,
            q.return_date,
            "budget" if q.include_budget else "alliances",
        ]


@dataclass(frozen=True)
class FlightRecord:
    """One result row scraped from the results page.

    ``stops == -1`` means the stop count could not be read, not nonstop.
    """

    price: float
    airlines: Tuple[str, ...] = ()
    departure_time: Optional[str] = None
    arrival_time: Optional[str] = None
    duration: Optional[str] = None
    stops: int = -1
    origin: Optional[str] = None
    destination: Optional[str] = None
    is_top_flight: bool = False
    booking_caution: Optional[str] = None
    arrival_time_calculated: bool = False

    def identity_key(self) -> Tuple[Any, ...]:
        return (
            self.price,
            self.origin,
            self.destination,
            self.departure_time,
            self.arrival_time,
            self.duration,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["airlines"] = list(self.airlines)
        return data


@dataclass(frozen=True)
class DistanceTier:
    """Cost coefficients for one distance bucket, open up to ``threshold_km``"""

    threshold_km: float
    factor: float
    exponent: float


def validate_tiers(tiers: Sequence[DistanceTier]) -> None:
    """
    Check that tiers partition [0, inf).

    Raises:
        ValueError: If thresholds are not strictly increasing or the last
            tier is not unbounded
    """
    if not tiers:
        raise ValueError("At least one distance tier is required")
    previous = 0.0
    for tier in tiers:
        if tier.threshold_km <= previous:
            raise ValueError(
                f"Tier thresholds must be strictly increasing: {tier.threshold_km} <= {previous}"
            )
        previous = tier.threshold_km
    if not math.isinf(tiers[-1].threshold_km):
        raise ValueError("Last distance tier must have an infinite threshold")


@dataclass
class FlightCostMetadata:
    is_training: bool
    tier_version: str
    timestamp: int
    distance_km: float
    actual_price: Optional[float] = None
    error: Optional[float] = None

    def __post_init__(self):
        if self.is_training and (self.actual_price is None or self.error is None):
            raise ValueError("Training entries must carry actual_price and error")


@dataclass
class FlightCostEntry:
    """Cache value written by the cost model"""

    cost: float
    metadata: FlightCostMetadata

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FlightCostEntry":
        return cls(cost=data["cost"], metadata=FlightCostMetadata(**data["metadata"]))


@dataclass
class PriceResult:
    """Price handed to the stipend calculator; ``price`` is None when unusable"""

    price: Optional[float]
    source: str
    records: List[FlightRecord] = field(default_factory=list, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"price": self.price, "source": self.source}
