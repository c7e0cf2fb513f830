"""Parse a Google Flights results snapshot into FlightRecords.

Everything here is a pure function over HTML (parsed with selectolax), so the
extractor can run on ``page.content()`` output or on saved snapshots. Each
field has an ordered list of strategies; ``first_result`` returns the first
one that yields a value.
"""

import math
import re
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, TypeVar

from loguru import logger
from selectolax.lexbor import LexborHTMLParser, LexborNode

from .airlines import AIRLINE_CODES, looks_like_airline, process_airline_names
from .models import FlightRecord

T = TypeVar("T")
Extractor = Callable[[LexborNode], Optional[T]]

PRICE_MARKER = 'span[aria-label*="US dollars"]'
PRICE_LABEL = re.compile(r"([\d,]+)\s+US dollars")
PRICE_TEXT = re.compile(r"\$\s*([\d,]+)")
DURATION_START = re.compile(r"^\d+\s*hr")
DURATION = re.compile(r"^\d+\s*hr(?:\s*\d+\s*min)?$")
DURATION_LABEL = re.compile(r"Total duration\s+(\d+\s*hr(?:\s*\d+\s*min)?)", re.IGNORECASE)
TIME_TOKEN = re.compile(r"\d{1,2}:\d{2}\s*(?:AM|PM)")
TIME_CELL = re.compile(r"^\d{1,2}:\d{2}\s*(?:AM|PM)(?:\+\d)?$")
DEPART_LABEL = re.compile(r"(?:depart\w*|leaves?)\D*?(\d{1,2}:\d{2}\s*(?:AM|PM))", re.IGNORECASE)
ARRIVE_LABEL = re.compile(r"arriv\w*\D*?(\d{1,2}:\d{2}\s*(?:AM|PM))", re.IGNORECASE)
STOPS_TEXT = re.compile(r"^(\d+)\s+stops?\b")
STOPS_LABEL = re.compile(r"^(?:(Nonstop)|(\d+)\s+stops?)\s+flight", re.IGNORECASE)
AIRPORT_CODE = re.compile(r"\b([A-Z]{3})\b")
ROUTE_TEXT = re.compile(r"\b([A-Z]{3})\s*[–-]\s*([A-Z]{3})\b")
AIRLINE_LABEL_PATTERNS = (
    re.compile(r"flight with ([A-Z][^.]*?)(?:\.|$)"),
    re.compile(r"operated by ([A-Z][^.,]*)", re.IGNORECASE),
    re.compile(r"carriers?:\s*([^.]+)", re.IGNORECASE),
    re.compile(r"\b((?:[A-Z][A-Za-z]+ )+(?:Airlines|Airways))\b"),
)
AIRLINE_TEXT_FALLBACKS = (
    re.compile(r"carriers?:\s*([A-Z][A-Za-z .&]+)", re.IGNORECASE),
    re.compile(r"operated by\s+([A-Z][A-Za-z .&]+)", re.IGNORECASE),
)
# Three-letter airline designators that look like airport codes
AIRLINE_ICAO_CODES = {"ANA", "JAL", "KAL", "KLM", "LUF", "UAL", "AAL", "DAL"}
TOP_SECTION_TITLES = (
    "top departing flights",
    "best departing flights",
    "top returning flights",
    "best returning flights",
    "top flights",
    "best flights",
)
CAUTION_PHRASES = ("self transfer", "separate tickets", "multiple airlines")
BOOKING_CAUTION = "Multiple airlines, separate tickets"


def _text(node: LexborNode) -> str:
    raw = node.text(deep=True, separator=" ", strip=True) or ""
    return " ".join(raw.replace("\u202f", " ").replace("\xa0", " ").split())


def _label(node: LexborNode) -> str:
    value = node.attributes.get("aria-label") or ""
    return value.replace("\u202f", " ").replace("\xa0", " ")


def _labels(row: LexborNode) -> List[str]:
    labels = [_label(n) for n in row.css("[aria-label]")]
    own = _label(row)
    if own:
        labels.insert(0, own)
    return [label for label in labels if label]


def _cell_texts(row: LexborNode) -> List[str]:
    return [_text(n) for n in row.css("div, span")]


def first_result(strategies: Sequence[Extractor], row: LexborNode) -> Optional[T]:
    """Run strategies in order and return the first non-None result"""
    for strategy in strategies:
        value = strategy(row)
        if value is not None:
            return value
    return None


# -- price -------------------------------------------------------------------

def _positive(value: str) -> Optional[float]:
    try:
        number = float(value.replace(",", ""))
    except ValueError:
        return None
    return number if number > 0 else None


def price_from_label(row: LexborNode) -> Optional[float]:
    for node in row.css(PRICE_MARKER):
        match = PRICE_LABEL.search(_label(node))
        if match:
            price = _positive(match.group(1))
            if price is not None:
                return price
    return None


def price_from_text(row: LexborNode) -> Optional[float]:
    match = PRICE_TEXT.search(_text(row))
    return _positive(match.group(1)) if match else None


PRICE_STRATEGIES = (price_from_label, price_from_text)


# -- airlines ----------------------------------------------------------------

def airlines_from_logos(row: LexborNode) -> List[str]:
    names = []
    for img in row.css("img[alt]"):
        alt = (img.attributes.get("alt") or "").strip()
        if alt and looks_like_airline(alt):
            names.append(alt)
    return names


def airlines_from_labels(row: LexborNode) -> List[str]:
    names = []
    for label in _labels(row):
        for pattern in AIRLINE_LABEL_PATTERNS:
            for match in pattern.finditer(label):
                names.extend(re.split(r"\s+and\s+|,\s*", match.group(1)))
    return names


def airlines_from_text(row: LexborNode) -> List[str]:
    return [t for t in (_text(n) for n in row.css("span")) if looks_like_airline(t)]


def airlines_from_codes(row: LexborNode) -> Optional[List[str]]:
    names = [AIRLINE_CODES[t] for t in _cell_texts(row) if t in AIRLINE_CODES]
    return process_airline_names(names) or None


def airlines_from_row_text(row: LexborNode) -> Optional[List[str]]:
    text = _text(row)
    for pattern in AIRLINE_TEXT_FALLBACKS:
        match = pattern.search(text)
        if match:
            names = process_airline_names([match.group(1)])
            if names:
                return names
    return None


AIRLINE_FALLBACKS = (airlines_from_codes, airlines_from_row_text)


def extract_airlines(row: LexborNode) -> List[str]:
    """
    Combine logo, label and text signals; fall back to code and free-text
    patterns. An unidentifiable carrier yields an empty list.
    """
    candidates = airlines_from_logos(row) + airlines_from_labels(row) + airlines_from_text(row)
    names = process_airline_names(candidates)
    if names:
        return names
    return first_result(AIRLINE_FALLBACKS, row) or []


# -- times -------------------------------------------------------------------

def _clean_time(text: str) -> Optional[str]:
    match = TIME_TOKEN.search(text)
    if not match:
        return None
    return re.sub(r"\s*(AM|PM)$", r" \1", match.group(0))


def _unique(values: Iterable[Optional[str]]) -> List[str]:
    seen = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen


def times_from_labels(row: LexborNode) -> Optional[Tuple[str, Optional[str]]]:
    departure = arrival = None
    for label in _labels(row):
        if departure is None:
            match = DEPART_LABEL.search(label)
            if match:
                departure = _clean_time(match.group(1))
        if arrival is None:
            match = ARRIVE_LABEL.search(label)
            if match:
                arrival = _clean_time(match.group(1))
    if departure and arrival:
        return departure, arrival
    return None


def times_from_rows(row: LexborNode) -> Optional[Tuple[str, Optional[str]]]:
    for grid_row in row.css('[role="row"]'):
        times = _unique(
            _clean_time(t) for t in (_text(n) for n in grid_row.css("div, span")) if TIME_CELL.match(t)
        )
        if len(times) >= 2:
            return times[0], times[-1]
    return None


def times_from_tokens(row: LexborNode) -> Optional[Tuple[str, Optional[str]]]:
    times = _unique(_clean_time(t) for t in _cell_texts(row) if TIME_CELL.match(t))
    if not times:
        return None
    if len(times) == 1:
        return times[0], times[0]
    return times[0], times[-1]


TIME_STRATEGIES = (times_from_labels, times_from_rows, times_from_tokens)


def duration_minutes(duration: str) -> Optional[int]:
    match = re.match(r"^(\d+)\s*hr(?:\s*(\d+)\s*min)?$", duration.strip())
    if not match:
        return None
    return int(match.group(1)) * 60 + int(match.group(2) or 0)


def add_duration(time_text: str, duration: str) -> Optional[str]:
    """'10:00 PM' + '3 hr 15 min' -> '1:15 AM+1'"""
    match = re.match(r"^(\d{1,2}):(\d{2})\s*(AM|PM)$", time_text.strip())
    minutes = duration_minutes(duration)
    if not match or minutes is None:
        return None
    hour = int(match.group(1)) % 12 + (12 if match.group(3) == "PM" else 0)
    total = hour * 60 + int(match.group(2)) + minutes
    days, total = divmod(total, 24 * 60)
    hour24, minute = divmod(total, 60)
    meridiem = "PM" if hour24 >= 12 else "AM"
    hour12 = hour24 % 12 or 12
    suffix = f"+{days}" if days else ""
    return f"{hour12}:{minute:02d} {meridiem}{suffix}"


# -- duration, stops, route, caution -----------------------------------------

def duration_from_cells(row: LexborNode) -> Optional[str]:
    for text in _cell_texts(row):
        if DURATION.match(text):
            return text
    return None


def duration_from_label(row: LexborNode) -> Optional[str]:
    for label in _labels(row):
        match = DURATION_LABEL.search(label)
        if match:
            return " ".join(match.group(1).split())
    return None


DURATION_STRATEGIES = (duration_from_cells, duration_from_label)


def stops_from_text(row: LexborNode) -> Optional[int]:
    texts = _cell_texts(row)
    if any(t == "Nonstop" for t in texts):
        return 0
    for text in texts:
        match = STOPS_TEXT.match(text)
        if match:
            return int(match.group(1))
    return None


def stops_from_label(row: LexborNode) -> Optional[int]:
    for node in row.css('span[aria-label$="stop flight."], span[aria-label$="stops flight."]'):
        match = STOPS_LABEL.match(_label(node))
        if match:
            return 0 if match.group(1) else int(match.group(2))
    return None


STOP_STRATEGIES = (stops_from_text, stops_from_label)


def _airport_codes(values: Iterable[str]) -> List[str]:
    return [c for c in values if c not in AIRLINE_ICAO_CODES]


def route_from_labels(row: LexborNode) -> Optional[Tuple[str, str]]:
    for label in _labels(row):
        lowered = label.lower()
        if not any(word in lowered for word in ("leaves", "arrives", "airport")):
            continue
        codes = _airport_codes(AIRPORT_CODE.findall(label))
        if len(codes) >= 2:
            return codes[0], codes[1]
    return None


def route_from_dash(row: LexborNode) -> Optional[Tuple[str, str]]:
    for text in _cell_texts(row):
        match = ROUTE_TEXT.search(text)
        if match and not {match.group(1), match.group(2)} & AIRLINE_ICAO_CODES:
            return match.group(1), match.group(2)
    return None


def route_from_codes(row: LexborNode) -> Optional[Tuple[str, str]]:
    codes = _unique(_airport_codes(t for t in _cell_texts(row) if re.fullmatch(r"[A-Z]{3}", t)))
    if len(codes) >= 2:
        return codes[0], codes[-1]
    return None


ROUTE_STRATEGIES = (route_from_labels, route_from_dash, route_from_codes)


def booking_caution(row: LexborNode) -> Optional[str]:
    lowered = _text(row).lower()
    if any(phrase in lowered for phrase in CAUTION_PHRASES):
        return BOOKING_CAUTION
    return None


# -- rows and sections -------------------------------------------------------

def is_candidate_row(li: LexborNode) -> bool:
    """List item with a price marker and a duration, not a "more flights" control"""
    text = _text(li)
    has_price = li.css_first(PRICE_MARKER) is not None or "$" in text
    if not has_price:
        return False
    if not any(DURATION_START.match(t) for t in (_text(d) for d in li.css("div"))):
        return False
    if li.css_first('button[aria-label*="more flights"]') is not None:
        return False
    return "view more flights" not in text.lower()


def _is_top_title(title: str) -> bool:
    lowered = title.lower()
    return any(t in lowered for t in TOP_SECTION_TITLES)


def _section_of(row: LexborNode, last_heading_top: Optional[bool]) -> bool:
    """Top/other tag from the enclosing region, else the last heading above the row"""
    node = row.parent
    while node is not None:
        if node.attributes.get("role") in ("region", "tabpanel"):
            kinds = {_is_top_title(_text(h)) for h in node.css("h3")}
            if len(kinds) == 1:
                return kinds.pop()
            break
        node = node.parent
    return bool(last_heading_top)


def parse_row(row: LexborNode, is_top: bool) -> Optional[FlightRecord]:
    """One FlightRecord, or None when the row has no positive price"""
    price = first_result(PRICE_STRATEGIES, row)
    if price is None:
        return None

    duration = first_result(DURATION_STRATEGIES, row)
    departure, arrival = first_result(TIME_STRATEGIES, row) or (None, None)
    calculated = False
    if departure and duration and (arrival is None or arrival == departure):
        computed = add_duration(departure, duration)
        if computed:
            arrival, calculated = computed, True

    stops = first_result(STOP_STRATEGIES, row)
    origin, destination = first_result(ROUTE_STRATEGIES, row) or (None, None)

    return FlightRecord(
        price=price,
        airlines=tuple(extract_airlines(row)),
        departure_time=departure,
        arrival_time=arrival,
        duration=duration,
        stops=-1 if stops is None else stops,
        origin=origin,
        destination=destination,
        is_top_flight=is_top,
        booking_caution=booking_caution(row),
        arrival_time_calculated=calculated,
    )


def iter_candidate_rows(tree: LexborHTMLParser):
    """Yield (row, is_top) in document order, innermost candidate rows only"""
    root = tree.body or tree.root
    if root is None:
        return
    last_heading_top: Optional[bool] = None
    for node in root.traverse():
        if node.tag == "h3":
            last_heading_top = _is_top_title(_text(node))
        elif node.tag == "li" and is_candidate_row(node):
            own_html = node.html
            if any(inner.html != own_html and is_candidate_row(inner) for inner in node.css("li")):
                continue
            yield node, _section_of(node, last_heading_top)


def dedupe(records: Iterable[FlightRecord]) -> List[FlightRecord]:
    """Drop records whose identity key was already seen, keeping the first"""
    seen = set()
    unique = []
    for record in records:
        key = record.identity_key()
        if key in seen:
            continue
        seen.add(key)
        unique.append(record)
    return unique


def extract_flights(html: str) -> List[FlightRecord]:
    """
    All distinct flight rows on a results page.

    Rows that fail to parse are dropped individually; an empty list means the
    page had no recognisable results.
    """
    tree = LexborHTMLParser(html)
    records = []
    dropped = 0
    for row, is_top in iter_candidate_rows(tree):
        try:
            record = parse_row(row, is_top)
        except (AttributeError, IndexError, TypeError, ValueError) as e:
            logger.debug(f"Dropping unparseable row: {e}")
            record = None
        if record is None:
            dropped += 1
            continue
        records.append(record)

    unique = dedupe(records)
    logger.info(
        f"✈️ Extracted {len(unique)} flights "
        f"({len(records) - len(unique)} duplicates, {dropped} rows dropped)"
    )
    return unique


def average_price(records: Sequence[FlightRecord]) -> Optional[float]:
    """Mean price of top flights, or of all rows when none are tagged top"""
    if not records:
        return None
    pool = [r for r in records if r.is_top_flight] or list(records)
    mean = sum(r.price for r in pool) / len(pool)
    return float(math.floor(mean + 0.5))
