"""Airline name classification, splitting and de-duplication"""

import re
from typing import Iterable, List, Optional, Set

# Two-letter IATA codes that appear alone in result rows
AIRLINE_CODES = {
    "KE": "Korean Air",
    "OZ": "Asiana Airlines",
    "JL": "Japan Airlines",
    "NH": "All Nippon Airways",
    "KL": "KLM Royal Dutch Airlines",
    "AF": "Air France",
    "UA": "United Airlines",
    "AA": "American Airlines",
    "DL": "Delta Air Lines",
    "CX": "Cathay Pacific",
    "SQ": "Singapore Airlines",
}

# Names that may be glued together without a separator
KNOWN_AIRLINES = (
    "All Nippon Airways",
    "Asiana Airlines",
    "Japan Airlines",
    "China Airlines",
    "Korean Air",
    "Delta",
    "United",
    "American",
    "ANA",
    "JAL",
)

# Brands whose own spelling has a lower->upper case change
CAMEL_CASE_BRANDS = (
    "easyJet",
    "JetBlue",
    "WestJet",
    "AirAsia",
    "IndiGo",
    "SkyWest",
    "SunExpress",
    "EgyptAir",
    "SriLankan",
    "SpiceJet",
    "airBaltic",
    "VivaAerobus",
)

SHORT_BRANDS = {"ANA", "JAL", "KLM", "SAS", "TAP", "LOT"}

# Alliance membership by IATA carrier code
ALLIANCE_MEMBERS = {
    "Star Alliance": frozenset({
        "AC", "NH", "OZ", "OS", "AV", "BR", "CA", "CM", "MS", "ET",
        "LH", "SK", "SQ", "SA", "LX", "TP", "TG", "TK", "UA", "ZH",
    }),
    "Oneworld": frozenset({
        "AA", "BA", "CX", "AY", "IB", "JL", "LA", "MH", "QF", "QR", "RJ", "UL", "S7",
    }),
    "SkyTeam": frozenset({
        "SU", "AR", "AM", "AF", "AZ", "CI", "MU", "CZ", "OK", "DL",
        "KE", "KL", "ME", "SV", "RO", "VN", "MF",
    }),
}

AIRLINE_HINT = re.compile(
    r"\b(?:Air|Airlines?|Airways|Aer|Aviation)\b|Korean Air|Asiana|Delta|United|American|"
    r"\bANA\b|\bJAL\b|All Nippon|Japan Airlines|Lufthansa|Emirates|Qantas|Cathay|\bKLM\b|"
    r"Iberia|Finnair|Ryanair|Vueling|Jet",
)

NON_AIRLINE_PHRASES = (
    "nonstop",
    "international airport",
    "airport",
    "terminal",
    "departure",
    "self transfer",
    "separate tickets",
    "multiple airlines",
    "missed connections",
    "price unavailable",
    "unknown emissions",
    "co2",
    "emissions",
    "avoids",
    "trees absorb",
)
NON_AIRLINE_PATTERNS = (
    re.compile(r"\bstops?\b", re.IGNORECASE),
    re.compile(r"\bhr\b", re.IGNORECASE),
    re.compile(r"\bmin\b", re.IGNORECASE),
    re.compile(r"\bkg\b", re.IGNORECASE),
    re.compile(r"^(?:Mon|Tue|Wed|Thu|Fri|Sat|Sun),"),
    re.compile(r"\b\d{4}\b"),
    re.compile(r"\d{1,2}:\d{2}"),
    re.compile(r"[+%$]"),
    re.compile(r"^[A-Z]{3}\b"),
)
MAX_NAME_LENGTH = 60

OPERATED_BY = re.compile(r"\boperated\s+by\b", re.IGNORECASE)
CAMEL_BOUNDARY = re.compile(r"(?<=[a-z])(?=[A-Z])")
GENERIC_WORDS = {
    "air", "airline", "airlines", "airways", "lines", "international",
    "the", "and", "china", "royal", "national", "southern", "eastern",
}


def airline_alliance(code: str) -> Optional[str]:
    for alliance, members in ALLIANCE_MEMBERS.items():
        if code.upper() in members:
            return alliance
    return None


def is_major_carrier(code: str) -> bool:
    return airline_alliance(code) is not None


def is_non_airline_text(text: str) -> bool:
    """True for stop counts, times, airports, emissions and booking notes"""
    text = text.strip()
    if not text or len(text) > MAX_NAME_LENGTH:
        return True
    first_word = text.split()[0]
    if first_word in SHORT_BRANDS:
        return False
    lowered = text.lower()
    if any(phrase in lowered for phrase in NON_AIRLINE_PHRASES):
        return True
    return any(pattern.search(text) for pattern in NON_AIRLINE_PATTERNS)


def looks_like_airline(text: str) -> bool:
    return not is_non_airline_text(text) and bool(AIRLINE_HINT.search(text))


def _protected_spans(text: str):
    spans = []
    for brand in CAMEL_CASE_BRANDS:
        for match in re.finditer(re.escape(brand), text):
            spans.append(match.span())
    return spans


def _split_camel(text: str) -> List[str]:
    spans = _protected_spans(text)
    cuts = [
        m.start()
        for m in CAMEL_BOUNDARY.finditer(text)
        if not any(start < m.start() < end for start, end in spans)
    ]
    pieces = []
    previous = 0
    for cut in cuts:
        pieces.append(text[previous:cut])
        previous = cut
    pieces.append(text[previous:])
    return [p.strip() for p in pieces if p.strip()]


def _split_known(text: str) -> List[str]:
    starts = []
    taken: Set[int] = set()
    for name in sorted(KNOWN_AIRLINES, key=len, reverse=True):
        for match in re.finditer(rf"\b{re.escape(name)}\b", text):
            span = set(range(*match.span()))
            if span & taken:
                continue
            taken |= span
            starts.append(match.start())
    if len(starts) < 2:
        return [text]
    bounds = sorted(set([0] + sorted(starts)[1:]))
    pieces = [text[a:b] for a, b in zip(bounds, bounds[1:] + [len(text)])]
    return [p.strip() for p in pieces if p.strip()]


def split_concatenated_names(text: str) -> List[str]:
    """
    Undo airline names glued together by the results markup.

    "Korean AirChina Airlines" -> ["Korean Air", "China Airlines"]
    "Delta Air Lines, United"  -> ["Delta Air Lines", "United"]
    """
    names = []
    for chunk in text.split(","):
        for piece in _split_camel(chunk.strip()):
            names.extend(_split_known(piece))
    return names


def _distinctive_words(name: str) -> Set[str]:
    return {
        w for w in re.findall(r"[a-z]+", name.lower()) if len(w) > 2 and w not in GENERIC_WORDS
    }


def _contains(longer: str, shorter: str) -> bool:
    return re.search(rf"\b{re.escape(shorter.lower())}\b", longer.lower()) is not None


def same_airline(a: str, b: str) -> bool:
    if a.lower() == b.lower():
        return True
    shorter, longer = sorted((a, b), key=len)
    if _contains(longer, shorter):
        return True
    return bool(_distinctive_words(a) & _distinctive_words(b))


def preferred_name(a: str, b: str) -> str:
    """Longer form wins unless the shorter one is a multi-word brand itself"""
    shorter, longer = sorted((a, b), key=len)
    if len(shorter.split()) >= 2:
        return shorter
    return longer


def process_airline_names(candidates: Iterable[str]) -> List[str]:
    """
    Clean raw airline strings into a de-duplicated list, first-seen order.

    Strips "operated by", splits concatenations, drops non-airline text and
    merges variants of the same carrier.
    """
    names: List[str] = []
    for raw in candidates:
        if not raw:
            continue
        text = OPERATED_BY.sub(" ", raw)
        for piece in split_concatenated_names(text):
            piece = " ".join(piece.strip(" .·-").split())
            if not piece or is_non_airline_text(piece):
                continue
            for i, existing in enumerate(names):
                if same_airline(existing, piece):
                    names[i] = preferred_name(existing, piece)
                    break
            else:
                names.append(piece)
    return names
