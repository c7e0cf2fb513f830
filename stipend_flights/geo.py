"""City coordinates, airport codes and great-circle distance"""

import csv
import difflib
import math
from pathlib import Path
from typing import Dict, NamedTuple, Optional

from loguru import logger

from .config import CITY_MATCH_CUTOFF, EARTH_RADIUS_KM


class City(NamedTuple):
    lat: float
    lng: float
    airport: Optional[str] = None


# Conference destinations seen in practice; extend with load_csv()
BUILTIN_CITIES: Dict[str, City] = {
    "seoul": City(37.5665, 126.9780, "ICN"),
    "tokyo": City(35.6762, 139.6503, "HND"),
    "osaka": City(34.6937, 135.5023, "KIX"),
    "beijing": City(39.9042, 116.4074, "PEK"),
    "shanghai": City(31.2304, 121.4737, "PVG"),
    "hong kong": City(22.3193, 114.1694, "HKG"),
    "taipei": City(25.0330, 121.5654, "TPE"),
    "singapore": City(1.3521, 103.8198, "SIN"),
    "bangkok": City(13.7563, 100.5018, "BKK"),
    "kuala lumpur": City(3.1390, 101.6869, "KUL"),
    "jakarta": City(-6.2088, 106.8456, "CGK"),
    "manila": City(14.5995, 120.9842, "MNL"),
    "sydney": City(-33.8688, 151.2093, "SYD"),
    "melbourne": City(-37.8136, 144.9631, "MEL"),
    "auckland": City(-36.8485, 174.7633, "AKL"),
    "dubai": City(25.2048, 55.2708, "DXB"),
    "istanbul": City(41.0082, 28.9784, "IST"),
    "tel aviv": City(32.0853, 34.7818, "TLV"),
    "delhi": City(28.6139, 77.2090, "DEL"),
    "mumbai": City(19.0760, 72.8777, "BOM"),
    "bangalore": City(12.9716, 77.5946, "BLR"),
    "london": City(51.5074, -0.1278, "LHR"),
    "paris": City(48.8566, 2.3522, "CDG"),
    "berlin": City(52.5200, 13.4050, "BER"),
    "amsterdam": City(52.3676, 4.9041, "AMS"),
    "brussels": City(50.8503, 4.3517, "BRU"),
    "barcelona": City(41.3874, 2.1686, "BCN"),
    "madrid": City(40.4168, -3.7038, "MAD"),
    "lisbon": City(38.7223, -9.1393, "LIS"),
    "rome": City(41.9028, 12.4964, "FCO"),
    "zurich": City(47.3769, 8.5417, "ZRH"),
    "vienna": City(48.2082, 16.3738, "VIE"),
    "prague": City(50.0755, 14.4378, "PRG"),
    "warsaw": City(52.2297, 21.0122, "WAW"),
    "stockholm": City(59.3293, 18.0686, "ARN"),
    "helsinki": City(60.1699, 24.9384, "HEL"),
    "copenhagen": City(55.6761, 12.5683, "CPH"),
    "dublin": City(53.3498, -6.2603, "DUB"),
    "new york": City(40.7128, -74.0060, "JFK"),
    "boston": City(42.3601, -71.0589, "BOS"),
    "washington": City(38.9072, -77.0369, "IAD"),
    "chicago": City(41.8781, -87.6298, "ORD"),
    "miami": City(25.7617, -80.1918, "MIA"),
    "austin": City(30.2672, -97.7431, "AUS"),
    "denver": City(39.7392, -104.9903, "DEN"),
    "seattle": City(47.6062, -122.3321, "SEA"),
    "san francisco": City(37.7749, -122.4194, "SFO"),
    "los angeles": City(34.0522, -118.2437, "LAX"),
    "toronto": City(43.6532, -79.3832, "YYZ"),
    "vancouver": City(49.2827, -123.1207, "YVR"),
    "montreal": City(45.5017, -73.5673, "YUL"),
    "mexico city": City(19.4326, -99.1332, "MEX"),
    "sao paulo": City(-23.5505, -46.6333, "GRU"),
    "buenos aires": City(-34.6037, -58.3816, "EZE"),
    "cape town": City(-33.9249, 18.4241, "CPT"),
    "nairobi": City(-1.2921, 36.8219, "NBO"),
    "lagos": City(6.5244, 3.3792, "LOS"),
    "cairo": City(30.0444, 31.2357, "CAI"),
}


def normalize_city(name: str) -> str:
    """'Seoul, South Korea' -> 'seoul'"""
    return " ".join(name.split(",")[0].lower().split())


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in kilometres"""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(a), math.sqrt(1 - a))


class CityDirectory:
    """Lookup of city coordinates with exact, then fuzzy, name matching"""

    def __init__(self, cities: Optional[Dict[str, City]] = None):
        self.cities: Dict[str, City] = dict(BUILTIN_CITIES if cities is None else cities)

    def load_csv(self, path: Path) -> int:
        """
        Merge cities from a CSV with ``city``, ``lat``, ``lng`` and optional
        ``iata`` columns.

        Returns:
            Number of rows added
        """
        added = 0
        with open(path, newline="", encoding="utf-8") as f:
            for row in csv.DictReader(f):
                try:
                    city = City(float(row["lat"]), float(row["lng"]), row.get("iata") or None)
                except (KeyError, TypeError, ValueError):
                    continue
                self.cities[normalize_city(row.get("city", ""))] = city
                added += 1
        logger.info(f"Loaded {added} cities from {path}")
        return added

    def find(self, name: str) -> Optional[City]:
        key = normalize_city(name)
        if not key:
            return None
        if key in self.cities:
            return self.cities[key]
        matches = difflib.get_close_matches(key, self.cities.keys(), n=1, cutoff=CITY_MATCH_CUTOFF)
        if matches:
            logger.debug(f"Fuzzy city match: '{name}' -> '{matches[0]}'")
            return self.cities[matches[0]]
        return None

    def airport_code(self, name: str) -> Optional[str]:
        """IATA code for a city; three-letter codes pass through"""
        stripped = name.strip()
        if len(stripped) == 3 and stripped.isalpha() and stripped.isupper():
            return stripped
        city = self.find(name)
        return city.airport if city else None

    def distance_km(self, origin: str, destination: str) -> Optional[float]:
        """Great-circle distance, or None when either city is unknown"""
        if normalize_city(origin) == normalize_city(destination):
            return 0.0
        a, b = self.find(origin), self.find(destination)
        if a is None or b is None:
            missing = origin if a is None else destination
            logger.warning(f"⚠️ No coordinates for '{missing}'")
            return None
        return haversine_km(a.lat, a.lng, b.lat, b.lng)
