"""Stipend Flights
Round-trip airfare for conference travel stipends: live Google Flights
scraping with Amadeus and distance-based fallbacks
"""

__version__ = "0.3.0"

from .amadeus_client import AmadeusClient
from .cache import PersistentCache, create_hash_key
from .circuit_breaker import BreakerRegistry, CircuitBreaker
from .cost_model import FlightCostModel
from .exceptions import (
    AmadeusError,
    BrowserLaunchError,
    CircuitOpenError,
    DateSelectionError,
    LocationInputError,
    StipendFlightsError,
)
from .extractor import average_price, extract_flights
from .geo import CityDirectory
from .models import CircuitState, ErrorType, FlightRecord, PriceResult, Query, SearchState
from .pricing import FlightPricer, flight_cost_for_trip, scrape_flight_price, scrape_many
from .search import SearchOrchestrator
from .session import BrowserSession
from .date_utils import travel_dates, validate_trip_dates

__all__ = [
    "__version__",
    "AmadeusClient",
    "PersistentCache",
    "create_hash_key",
    "BreakerRegistry",
    "CircuitBreaker",
    "FlightCostModel",
    "AmadeusError",
    "BrowserLaunchError",
    "CircuitOpenError",
    "DateSelectionError",
    "LocationInputError",
    "StipendFlightsError",
    "average_price",
    "extract_flights",
    "CityDirectory",
    "CircuitState",
    "ErrorType",
    "FlightRecord",
    "PriceResult",
    "Query",
    "SearchState",
    "FlightPricer",
    "flight_cost_for_trip",
    "scrape_flight_price",
    "scrape_many",
    "SearchOrchestrator",
    "BrowserSession",
    "travel_dates",
    "validate_trip_dates",
]
