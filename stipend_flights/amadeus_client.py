"""API client for the Amadeus flight-offers search"""

import math
import os
import time
from typing import Any, Dict, List, Optional

import httpx
import orjson
from loguru import logger

from .airlines import is_major_carrier
from .cache import PersistentCache, create_hash_key
from .config import (
    AMADEUS_BASE_URL,
    AMADEUS_CACHE_MAX_AGE,
    AMADEUS_CACHE_VERSION,
    AMADEUS_KEY_ENV,
    AMADEUS_MAJOR_CARRIERS_CACHE_VERSION,
    AMADEUS_MAX_OFFERS,
    AMADEUS_MAX_PRICE,
    AMADEUS_OFFERS_PATH,
    AMADEUS_SECRET_ENV,
    AMADEUS_TIMEOUT,
    AMADEUS_TOKEN_PATH,
    MAX_RETRIES,
)
from .exceptions import AmadeusAuthError, AmadeusError
from .models import ErrorType
from .retry import retry_with_backoff

TOKEN_EXPIRY_BUFFER = 60  # seconds


def _offer_carriers(offer: Dict[str, Any]) -> List[str]:
    codes = list(offer.get("validatingAirlineCodes") or [])
    for itinerary in offer.get("itineraries") or []:
        for segment in itinerary.get("segments") or []:
            if segment.get("carrierCode"):
                codes.append(segment["carrierCode"])
    return codes


def _offer_price(offer: Dict[str, Any]) -> Optional[float]:
    price = offer.get("price") or {}
    try:
        value = float(price.get("total") or price.get("grandTotal"))
    except (TypeError, ValueError):
        return None
    return value if value > 0 else None


def average_offer_price(offers: List[Dict[str, Any]], include_budget: bool = False) -> Optional[float]:
    """
    Rounded mean price of the usable offers.

    Unless include_budget is set, offers touching a non-alliance carrier are
    left out; when no offer is all-alliance, every offer counts.
    """
    priced = [(offer, _offer_price(offer)) for offer in offers]
    priced = [(offer, price) for offer, price in priced if price is not None]
    if not priced:
        return None

    pool = priced
    if not include_budget:
        major = [
            (offer, price)
            for offer, price in priced
            if _offer_carriers(offer) and all(is_major_carrier(c) for c in _offer_carriers(offer))
        ]
        if major:
            logger.debug(f"Filtered to {len(major)} alliance offers out of {len(priced)}")
            pool = major
        else:
            logger.debug("No all-alliance offers, averaging every offer")

    mean = sum(price for _, price in pool) / len(pool)
    return float(math.floor(mean + 0.5))


class AmadeusClient:
    """
    Amadeus Self-Service flight-offers client.

    - OAuth2 client-credentials token, reused until shortly before expiry
    - Exponential backoff retry on transient and rate-limit errors
    - 6 hour result cache in the shared PersistentCache
    """

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        base_url: str = AMADEUS_BASE_URL,
        timeout: float = AMADEUS_TIMEOUT,
        cache: Optional[PersistentCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize API client.

        Args:
            api_key: Amadeus client id
            api_secret: Amadeus client secret
            base_url: Test or production API host
            timeout: Request timeout in seconds
            cache: Optional cache for search results
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.api_key = api_key
        self.api_secret = api_secret
        self.cache = cache
        self.client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)
        self._token: Optional[str] = None
        self._token_expiry = 0.0

    @classmethod
    def from_env(cls, **kwargs) -> Optional["AmadeusClient"]:
        """Client built from AMADEUS_API_KEY / AMADEUS_API_SECRET, or None when unset"""
        api_key = os.environ.get(AMADEUS_KEY_ENV)
        api_secret = os.environ.get(AMADEUS_SECRET_ENV)
        if not api_key or not api_secret:
            logger.debug("Amadeus credentials not set, secondary source disabled")
            return None
        return cls(api_key, api_secret, **kwargs)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            data = orjson.loads(response.content)
        except orjson.JSONDecodeError as e:
            raise AmadeusError(f"Invalid JSON from Amadeus: {e}", response.status_code) from e
        if not isinstance(data, dict):
            raise AmadeusError("Unexpected Amadeus response shape", response.status_code)
        return data

    async def _get_token(self) -> str:
        if self._token and time.monotonic() < self._token_expiry:
            return self._token

        logger.info("🔑 Requesting Amadeus access token")
        response = await self.client.post(
            AMADEUS_TOKEN_PATH,
            data={
                "grant_type": "client_credentials",
                "client_id": self.api_key,
                "client_secret": self.api_secret,
            },
        )
        if response.status_code in (400, 401, 403):
            raise AmadeusAuthError(
                f"Token request rejected: {response.status_code}", response.status_code
            )
        if response.status_code >= 400:
            raise AmadeusError(f"Token request failed: {response.status_code}", response.status_code)

        data = self._json(response)
        token = data.get("access_token")
        if not token:
            raise AmadeusAuthError("Token response has no access_token", response.status_code)

        expires_in = float(data.get("expires_in") or 0)
        self._token = token
        self._token_expiry = time.monotonic() + expires_in - TOKEN_EXPIRY_BUFFER
        return token

    async def _fetch_offers(self, params: Dict[str, Any]) -> Dict[str, Any]:
        token = await self._get_token()
        request_id = f"{params['originLocationCode']}-{params['destinationLocationCode']}"
        logger.info(f"🔍 [{request_id}] Amadeus flight-offers search")

        start_time = time.time()
        response = await self.client.get(
            AMADEUS_OFFERS_PATH,
            params=params,
            headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
        )
        logger.debug(f"   ← Response {response.status_code} ({time.time() - start_time:.2f}s)")

        if response.status_code == 401:
            self._token = None
            raise AmadeusAuthError("Access token rejected", 401)
        if response.status_code >= 400:
            logger.error(f"❌ [{request_id}] HTTP {response.status_code} ERROR")
            raise AmadeusError(f"Flight search failed: {response.status_code}", response.status_code)

        return self._json(response)

    def _cache_key(
        self, origin_code: str, destination_code: str, outbound: str, return_date: str, include_budget: bool
    ) -> str:
        version = AMADEUS_CACHE_VERSION if include_budget else AMADEUS_MAJOR_CARRIERS_CACHE_VERSION
        return create_hash_key([version, origin_code, destination_code, outbound, return_date, "1"])

    async def search_price(
        self,
        origin_code: str,
        destination_code: str,
        outbound: str,
        return_date: str,
        *,
        include_budget: bool = False,
    ) -> Optional[float]:
        """
        Average round-trip economy price for one adult.

        Returns:
            Rounded price, or None when Amadeus has no offers

        Raises:
            AmadeusError: On authentication failure or once retries are exhausted
            httpx.TransportError: If the network keeps failing
        """
        key = self._cache_key(origin_code, destination_code, outbound, return_date, include_budget)
        if self.cache is not None:
            entry = self.cache.get_entry(key)
            if entry is not None and entry.age_seconds < AMADEUS_CACHE_MAX_AGE:
                logger.info(f"💾 Amadeus cache hit: {origin_code} → {destination_code}")
                return entry.value.get("price") if isinstance(entry.value, dict) else None

        params = {
            "originLocationCode": origin_code,
            "destinationLocationCode": destination_code,
            "departureDate": outbound,
            "returnDate": return_date,
            "adults": 1,
            "currencyCode": "USD",
            "max": AMADEUS_MAX_OFFERS,
            "nonStop": "false",
            "travelClass": "ECONOMY",
            "maxPrice": AMADEUS_MAX_PRICE,
        }
        data = await retry_with_backoff(
            self._fetch_offers,
            params,
            max_retries=MAX_RETRIES,
            retry_on=(AmadeusError, httpx.TransportError),
            give_up_on=(ErrorType.AUTH_FAILURE, ErrorType.PERMANENT),
        )

        offers = data.get("data") or []
        price = average_offer_price(offers, include_budget=include_budget)
        if price is None:
            logger.warning(f"⚠️ Amadeus returned no usable offers for {origin_code} → {destination_code}")
            return None

        logger.success(f"✅ Amadeus price {origin_code} → {destination_code}: ${price:.0f} ({len(offers)} offers)")
        if self.cache is not None:
            self.cache.set(key, {"price": price, "source": "Amadeus API"})
        return price
