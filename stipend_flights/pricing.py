"""Flight price entry points: live scrape, secondary API, distance estimate"""

import asyncio
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

import httpx
from loguru import logger

from .amadeus_client import AmadeusClient
from .artifacts import ArtifactStore
from .cache import PersistentCache, create_hash_key
from .circuit_breaker import BreakerRegistry
from .config import DEFAULT_ARTIFACT_DIR, DEFAULT_CACHE_FILE, GOOGLE_FLIGHTS_CACHE_VERSION, GOOGLE_FLIGHTS_URL
from .cost_model import SOURCE_SAME_LOCATION, FlightCostModel
from .date_utils import format_date, validate_trip_dates
from .exceptions import AmadeusError, CircuitOpenError
from .extractor import average_price
from .geo import CityDirectory
from .models import FlightRecord, PriceResult, Query
from .search import SearchOrchestrator
from .session import BrowserSession

SOURCE_GOOGLE = "Google Flights"
SOURCE_GOOGLE_EMPTY = "Google Flights (No results)"
SOURCE_GOOGLE_ERROR = "Google Flights error"
SOURCE_AMADEUS = "Amadeus API"
SOURCE_AMADEUS_EMPTY = "Amadeus API - No results"
SOURCE_AMADEUS_ERROR = "Amadeus API error"
SOURCE_INVALID_DATES = "Invalid travel dates"
SOURCE_NULL = "Scraping returned null"
SOURCE_FAILED = "Scraping failed"

GOOGLE_PROVIDER = "google_flights"
AMADEUS_PROVIDER = "amadeus"

TripDates = Union[Mapping[str, str], Sequence[str]]


def unpack_dates(dates: TripDates) -> Tuple[str, str]:
    """{"outbound": ..., "return": ...} or (outbound, return) -> ISO strings"""
    if isinstance(dates, Mapping):
        outbound, return_date = dates["outbound"], dates["return"]
    else:
        outbound, return_date = dates
    return str(outbound), str(return_date)


class FlightPricer:
    """
    Provider fallback chain for one or many queries.

    Order: cache → Google Flights scrape → Amadeus (when credentials are
    set) → distance-based estimate. Live prices are cached and recorded as
    cost-model training observations. One pricer can be shared by concurrent
    queries; each provider is guarded by its own circuit breaker.
    """

    def __init__(
        self,
        cache: Optional[PersistentCache] = None,
        cities: Optional[CityDirectory] = None,
        headless: bool = True,
        use_amadeus: bool = True,
        estimate_on_failure: bool = True,
        amadeus: Optional[AmadeusClient] = None,
        artifact_dir: Optional[Path] = DEFAULT_ARTIFACT_DIR,
        breakers: Optional[BreakerRegistry] = None,
    ):
        self.cache = cache if cache is not None else PersistentCache(DEFAULT_CACHE_FILE)
        self.cities = cities or CityDirectory()
        self.cost_model = FlightCostModel(self.cache, cities=self.cities)
        self.headless = headless
        self.use_amadeus = use_amadeus
        self.estimate_on_failure = estimate_on_failure
        self.amadeus = amadeus
        self.artifact_dir = artifact_dir
        self.breakers = breakers or BreakerRegistry()

    def _cache_key(self, query: Query) -> str:
        return create_hash_key(query.cache_parts(GOOGLE_FLIGHTS_CACHE_VERSION))

    def cached_price(self, query: Query) -> Optional[PriceResult]:
        value = self.cache.get(self._cache_key(query))
        if isinstance(value, dict) and isinstance(value.get("price"), (int, float)):
            return PriceResult(price=float(value["price"]), source=value.get("source") or SOURCE_GOOGLE)
        return None

    async def scrape_google_flights(self, query: Query) -> Tuple[Optional[float], str, List[FlightRecord]]:
        """Run one browser search; raises on browser or step failure"""
        artifacts = ArtifactStore(self.artifact_dir, query) if self.artifact_dir else None
        async with BrowserSession(headless=self.headless) as session:
            page = await session.new_page()
            await session.navigate(GOOGLE_FLIGHTS_URL)
            records = await SearchOrchestrator(page, query, artifacts).run()

        price = average_price(records)
        if price is None:
            return None, SOURCE_GOOGLE_EMPTY, []
        return price, SOURCE_GOOGLE, records

    async def query_amadeus(self, query: Query) -> Tuple[Optional[float], Optional[str]]:
        """
        Returns:
            (price, source); source is None when Amadeus is not configured
        """
        client = self.amadeus or AmadeusClient.from_env(cache=self.cache)
        if client is None:
            return None, None

        origin_code = self.cities.airport_code(query.origin)
        destination_code = self.cities.airport_code(query.destination)
        try:
            if not origin_code or not destination_code:
                logger.warning(f"⚠️ No airport code for {query.origin} / {query.destination}, skipping Amadeus")
                return None, SOURCE_AMADEUS_ERROR
            price = await client.search_price(
                origin_code,
                destination_code,
                query.outbound_date,
                query.return_date,
                include_budget=query.include_budget,
            )
        finally:
            if client is not self.amadeus:
                await client.aclose()

        if price is None:
            return None, SOURCE_AMADEUS_EMPTY
        return price, SOURCE_AMADEUS

    async def _guarded(self, provider: str, call, query: Query):
        """Run a provider call under its circuit breaker; failures propagate"""
        breaker = self.breakers.get(provider)
        await breaker.before_call()
        try:
            result = await call(query)
        except Exception:
            await breaker.record_failure()
            raise
        await breaker.record_success()
        return result

    def _record_training(self, query: Query, price: float) -> None:
        distance = self.cities.distance_km(query.origin, query.destination)
        if not distance:
            return
        self.cost_model.record_observation(
            distance, query.origin, query.destination, price, observed_on=query.outbound_date
        )

    def _remember(self, query: Query, price: float, source: str) -> None:
        self.cache.set(self._cache_key(query), {"price": price, "source": source})
        self._record_training(query, price)

    async def _live_price(self, query: Query) -> Tuple[Optional[PriceResult], str]:
        """Google Flights, then Amadeus; returns (result or None, last source tried)"""
        route = f"{query.origin} → {query.destination}"
        try:
            price, source, records = await self._guarded(GOOGLE_PROVIDER, self.scrape_google_flights, query)
        except CircuitOpenError as e:
            logger.warning(f"⚠️ {e}")
            price, source, records = None, SOURCE_GOOGLE_ERROR, []
        except Exception as e:
            logger.error(f"❌ Google Flights scrape failed for {route}: {e!r}")
            price, source, records = None, SOURCE_GOOGLE_ERROR, []

        if price is not None:
            logger.success(f"✓ {route}: ${price:.0f} from {len(records)} flights")
            self._remember(query, price, source)
            return PriceResult(price=price, source=source, records=records), source

        if not self.use_amadeus:
            return None, source

        try:
            amadeus_price, amadeus_source = await self._guarded(AMADEUS_PROVIDER, self.query_amadeus, query)
        except CircuitOpenError as e:
            logger.warning(f"⚠️ {e}")
            amadeus_price, amadeus_source = None, SOURCE_AMADEUS_ERROR
        except (AmadeusError, httpx.HTTPError) as e:
            logger.error(f"❌ Amadeus search failed for {route}: {e}")
            amadeus_price, amadeus_source = None, SOURCE_AMADEUS_ERROR

        if amadeus_price is not None:
            self._remember(query, amadeus_price, amadeus_source)
            return PriceResult(price=amadeus_price, source=amadeus_source), amadeus_source
        return None, amadeus_source or source

    async def price(self, query: Query) -> PriceResult:
        """
        Best available price for a query.

        Every provider failure is logged and turned into the next fallback;
        the result is a live price, an estimate, or price=None with the last
        source that was tried. Log lines emitted meanwhile carry the route.
        """
        route = f"{query.origin} → {query.destination}"
        with logger.contextualize(route=route):
            return await self._price(query, route)

    async def _price(self, query: Query, route: str) -> PriceResult:
        if self.cities.distance_km(query.origin, query.destination) == 0:
            logger.info(f"Same location {route}, no flight needed")
            return PriceResult(price=0.0, source=SOURCE_SAME_LOCATION)

        valid, error = validate_trip_dates(query.outbound_date, query.return_date)
        if valid:
            query = replace(
                query,
                outbound_date=format_date(query.outbound_date),
                return_date=format_date(query.return_date),
            )
            cached = self.cached_price(query)
            if cached is not None:
                logger.info(f"💾 Cache hit {route}: ${cached.price:.0f} ({cached.source})")
                return cached

            result, source = await self._live_price(query)
            if result is not None:
                return result
        else:
            logger.error(f"❌ {error}")
            source = SOURCE_INVALID_DATES

        if not self.estimate_on_failure:
            return PriceResult(price=None, source=source)

        estimate, estimate_source = self.cost_model.estimate_route(query.origin, query.destination)
        if estimate is None:
            logger.warning(f"⚠️ No price for {route} ({source}; {estimate_source})")
            return PriceResult(price=None, source=source)
        return PriceResult(price=estimate, source=estimate_source)


async def scrape_flight_price(
    origin: str,
    destination: str,
    dates: TripDates,
    *,
    include_budget: bool = False,
    cache: Optional[PersistentCache] = None,
    headless: bool = True,
    use_amadeus: bool = True,
    estimate_on_failure: bool = True,
    pricer: Optional[FlightPricer] = None,
) -> PriceResult:
    """
    Round-trip price for origin → destination on the given dates.

    Args:
        origin: Origin city ("Seoul, South Korea" or "Seoul")
        destination: Destination city
        dates: {"outbound": "YYYY-MM-DD", "return": "YYYY-MM-DD"} or a pair
        include_budget: Keep non-alliance carriers (skips the alliance filter)
        cache: Shared cache; defaults to DEFAULT_CACHE_FILE
        headless: Run the browser without a window
        use_amadeus: Try Amadeus when the scrape yields nothing
        estimate_on_failure: Fall back to the distance-based estimate

    Returns:
        PriceResult with price None when nothing usable was found
    """
    outbound, return_date = unpack_dates(dates)
    pricer = pricer or FlightPricer(
        cache=cache,
        headless=headless,
        use_amadeus=use_amadeus,
        estimate_on_failure=estimate_on_failure,
    )
    return await pricer.price(Query(origin, destination, outbound, return_date, include_budget))


async def flight_cost_for_trip(origin: str, destination: str, dates: TripDates, **kwargs) -> Tuple[float, str]:
    """
    Price and source for the stipend calculator; never raises.

    A missing price becomes (0, "Scraping returned null") and any unexpected
    error (0, "Scraping failed").
    """
    try:
        result = await scrape_flight_price(origin, destination, dates, **kwargs)
    except Exception as e:
        logger.exception(f"❌ Flight pricing crashed for {origin} → {destination}: {e}")
        return 0.0, SOURCE_FAILED
    if result.price is None:
        return 0.0, SOURCE_NULL
    return result.price, result.source


async def scrape_many(
    queries: Sequence[Query],
    concurrency: int = 2,
    pricer: Optional[FlightPricer] = None,
    **pricer_kwargs,
) -> List[PriceResult]:
    """
    Price several queries with at most ``concurrency`` browsers at once.

    Results come back in query order. All queries share one cache and one set
    of circuit breakers, so a provider that keeps failing is skipped for the
    rest of the batch until its breaker times out.
    """
    pricer = pricer or FlightPricer(**pricer_kwargs)
    semaphore = asyncio.Semaphore(max(1, concurrency))
    summary: Dict[str, int] = {}

    async def run_one(index: int, query: Query) -> PriceResult:
        async with semaphore:
            logger.info(f"[{index + 1}/{len(queries)}] {query.origin} → {query.destination}")
            result = await pricer.price(query)
            summary[result.source] = summary.get(result.source, 0) + 1
            return result

    results = await asyncio.gather(*(run_one(i, q) for i, q in enumerate(queries)))
    logger.info(f"Batch complete: {len(results)} queries, sources {summary}")
    return list(results)
