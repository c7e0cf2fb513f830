"""Configuration constants for the stipend flight pricer"""

import math
import os
from pathlib import Path

# Google Flights
GOOGLE_FLIGHTS_URL = "https://flights.google.com?curr=USD"
VIEWPORT = {"width": 1280, "height": 800}
BROWSER_LOCALE = "en-US"

# Timeouts (milliseconds, Playwright convention)
NAVIGATION_TIMEOUT_MS = 60000
ORIGIN_FIELD_TIMEOUT_MS = 10000
SUGGESTIONS_TIMEOUT_MS = 5000
RESULTS_SIGNAL_TIMEOUT_MS = 30000
CALENDAR_OPEN_DELAY_MS = 2000
MONTH_PAGE_DELAY_MS = 500
RETURN_DATE_DELAY_MS = 1000
FILTER_OPTIONS_TIMEOUT_MS = 3000
PROGRESS_APPEAR_TIMEOUT_MS = 2000
PROGRESS_SETTLE_TIMEOUT_MS = 10000
TYPE_DELAY_MS = 200
CLICK_DELAY_MS = 100

# Calendar paging bound
MAX_MONTH_TURNS = 24

# Generic retry configuration
MAX_RETRIES = 3
INITIAL_BACKOFF = 1.0
MAX_BACKOFF = 60.0
BACKOFF_MULTIPLIER = 2.0
JITTER_RANGE = (0.8, 1.2)

# Alliance filter retry configuration
FILTER_MAX_ATTEMPTS = 5
FILTER_INITIAL_BACKOFF = 1.5
FILTER_MAX_BACKOFF = 8.0
FILTER_BACKOFF_MULTIPLIER = 1.5
FILTER_RELOAD_AFTER = 2  # Reload page once this many attempts have failed

# Circuit breaker configuration (batch runs)
CIRCUIT_BREAKER_THRESHOLD = 3
CIRCUIT_BREAKER_TIMEOUT = 300

# Cost model
BASE_COST = 50.0
LOG_SCALE_DIVISOR = 11.5
ROUNDING_STEP = 5
TRAINING_DISTANCE_TOLERANCE = 0.10
MIN_TIER_FACTOR = 0.05
MIN_TIER_EXPONENT = 0.5
MAX_TIER_EXPONENT = 1.0
# (error threshold, factor step, exponent step), checked largest first
CALIBRATION_STEPS = (
    (50.0, 0.03, 0.02),
    (30.0, 0.02, 0.015),
    (10.0, 0.01, 0.01),
)
# (threshold_km, factor, exponent)
DISTANCE_TIERS = (
    (500.0, 0.55, 0.90),  # short-haul
    (1500.0, 0.35, 0.88),  # regional
    (4000.0, 0.20, 0.90),  # medium-haul
    (8000.0, 0.15, 0.92),  # long-haul
    (math.inf, 0.12, 0.95),  # ultra-long-haul
)
EARTH_RADIUS_KM = 6371.0

# Cache key version tags (bump to invalidate old entries)
FLIGHT_COST_TIER_VERSION = "flight-cost-v3"
GOOGLE_FLIGHTS_CACHE_VERSION = "google-flights-v2"
AMADEUS_CACHE_VERSION = "amadeus-v1"
AMADEUS_MAJOR_CARRIERS_CACHE_VERSION = "amadeus-major-carriers-v1"
AMADEUS_CACHE_MAX_AGE = 6 * 60 * 60  # seconds

# Files
DEFAULT_CACHE_FILE = Path(
    os.environ.get("STIPEND_FLIGHTS_CACHE", "./cache/flight_prices.json")
)
DEFAULT_ARTIFACT_DIR = Path("./logs/screenshots")
DEFAULT_LOG_FILE = Path("./logs/stipend_flights.log")
LOG_ROTATION = "100 MB"
LOG_RETENTION = "30 days"

# Amadeus Self-Service API
AMADEUS_BASE_URL = "https://test.api.amadeus.com"
AMADEUS_TOKEN_PATH = "/v1/security/oauth2/token"
AMADEUS_OFFERS_PATH = "/v2/shopping/flight-offers"
AMADEUS_TIMEOUT = 15.0
AMADEUS_MAX_OFFERS = 100
AMADEUS_MAX_PRICE = 5000
AMADEUS_KEY_ENV = "AMADEUS_API_KEY"
AMADEUS_SECRET_ENV = "AMADEUS_API_SECRET"

# Travel dates around a conference
PRE_CONFERENCE_DAYS = 1
POST_CONFERENCE_DAYS = 1

# City name fuzzy matching
CITY_MATCH_CUTOFF = 0.8
