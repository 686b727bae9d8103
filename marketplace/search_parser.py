"""
marketplace/search_parser.py

Free-text search helpers ("3 bedroom flat for rent in lekki under 2m").

parse_search_text() turns a search phrase into structured filter hints.
The query pipeline applies a hint only when the caller did not set the
matching explicit parameter. Words that are not part of a recognised phrase
become text terms matched against title, location, state, description and
property type.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Optional, Tuple

from marketplace.coerce import NUMBER_WORDS, parse_count

ABBREVIATIONS = {
    "ph": "port harcourt",
    "abj": "abuja",
    "lag": "lagos",
    "selfcon": "self contain",
    "self-con": "self contain",
    "apt": "apartment",
    "tolet": "rent",
    "lekki ph1": "lekki phase 1",
    "vi": "victoria island",
}

_MULTIPLIERS = {"k": 1_000, "m": 1_000_000, "b": 1_000_000_000}
_AMOUNT = r"[\d.,]+[kmb]?"
_COUNT = r"(\d+|" + "|".join(NUMBER_WORDS) + r")"

_BED_TERMS = ("bed", "bedroom", "bedrooms", "beds")
_BATH_TERMS = ("bath", "baths", "bathroom", "bathrooms", "toilet", "toilets", "wc")

_BETWEEN = rf"between\s+({_AMOUNT})\s+(?:and|to)\s+({_AMOUNT})"
_UNDER = rf"(?:under|below|less than)\s+({_AMOUNT})"
_OVER = rf"(?:above|over|greater than|more than)\s+({_AMOUNT})"
_BEDS = rf"\b{_COUNT}\s*-?\s*(?:{'|'.join(_BED_TERMS)})\b"
_BATHS = rf"\b{_COUNT}\s*-?\s*(?:{'|'.join(_BATH_TERMS)})\b"
_CATEGORY = r"\b(?:for\s+)?((?:to\s+)?let|lease|rent(?:al)?|sale|buy)\b"

# Descriptive words that say nothing about which listing is meant
NOISE_WORDS = frozenset((
    "nice", "beautiful", "lovely", "modern", "good", "newly", "built", "awesome",
    "affordable", "cheap", "luxury", "expensive",
    "a", "an", "the", "in", "at", "on", "of", "with", "and", "near", "around",
    "for", "to", "i", "me", "want", "need", "looking",
))

# Room words left over when only a count was typed ("2 room", "two bedrooms")
STRUCTURAL_WORDS = frozenset(_BED_TERMS + _BATH_TERMS + ("room", "rooms"))


def parse_amount(text: Optional[str]) -> Optional[int]:
    """Parse "500k", "1.5m", "2,000,000" into an integer amount."""
    if not text:
        return None
    match = re.search(r"([\d,.]+)\s*([kmb])?", text.lower().replace(" ", ""))
    if not match:
        return None
    try:
        value = float(match.group(1).replace(",", ""))
    except ValueError:
        return None
    if match.group(2):
        value *= _MULTIPLIERS[match.group(2)]
    return round(value)


def normalize_query(text: str) -> str:
    """Lowercase and expand common local abbreviations."""
    if not text:
        return ""
    out = text.lower()
    # Longest first so "lekki ph1" wins over "ph"
    for abbr in sorted(ABBREVIATIONS, key=len, reverse=True):
        out = re.sub(rf"\b{re.escape(abbr)}\b", ABBREVIATIONS[abbr], out)
    return re.sub(r"\s{2,}", " ", out).strip()


def extract_price_range(text: str) -> Dict[str, int]:
    between = re.search(_BETWEEN, text)
    if between:
        low, high = parse_amount(between.group(1)), parse_amount(between.group(2))
        return {key: value for key, value in (("min_price", low), ("max_price", high)) if value is not None}

    under = re.search(_UNDER, text)
    if under and parse_amount(under.group(1)) is not None:
        return {"max_price": parse_amount(under.group(1))}

    over = re.search(_OVER, text)
    if over and parse_amount(over.group(1)) is not None:
        return {"min_price": parse_amount(over.group(1))}

    return {}


def extract_room_counts(text: str) -> Dict[str, int]:
    counts = {}
    beds = re.search(_BEDS, text)
    if beds:
        counts["bedrooms"] = parse_count(beds.group(1))
    baths = re.search(_BATHS, text)
    if baths:
        counts["bathrooms"] = parse_count(baths.group(1))
    return {key: value for key, value in counts.items() if value is not None}


def extract_purchase_category(text: str) -> Optional[str]:
    match = re.search(_CATEGORY, text)
    if not match:
        return None
    term = match.group(1)
    if "let" in term or "rent" in term or "lease" in term:
        return "Rent"
    return "Sale"


def extract_sort(text: str) -> Optional[Dict[str, str]]:
    if re.search(r"\b(luxury|expensive)\b", text):
        return {"sort": "price", "direction": "desc"}
    if re.search(r"\b(cheap|affordable)\b", text):
        return {"sort": "price", "direction": "asc"}
    return None


def extract_text_terms(text: str) -> Tuple[str, ...]:
    """
    Words left after the structured phrases and noise words are removed
    ("3 bedroom flat in lekki" -> ("flat", "lekki")).

    Returns () when only numbers and room words remain, so "2 room" stays a
    pure count filter.
    """
    remaining = text
    for pattern in (_BETWEEN, _UNDER, _OVER, _BEDS, _BATHS, _CATEGORY):
        remaining = re.sub(pattern, " ", remaining)

    terms = []
    for word in re.findall(r"[^\W_]+", remaining):
        if word not in NOISE_WORDS and word not in terms:
            terms.append(word)

    if all(word[0].isdigit() or word in NUMBER_WORDS or word in STRUCTURAL_WORDS for word in terms):
        return ()
    return tuple(terms)


def parse_search_text(text: Optional[str]) -> Dict[str, Any]:
    """
    Extract filter hints from a free-text search phrase.

    Returns a dict with any of: min_price, max_price, bedrooms, bathrooms,
    purchase_category, sort, direction, text_terms. Empty dict for blank input.
    """
    normalized = normalize_query(text or "")
    if not normalized:
        return {}

    hints: Dict[str, Any] = {}
    hints.update(extract_price_range(normalized))
    hints.update(extract_room_counts(normalized))

    category = extract_purchase_category(normalized)
    if category:
        hints["purchase_category"] = category

    sort = extract_sort(normalized)
    if sort:
        hints.update(sort)

    terms = extract_text_terms(normalized)
    if terms:
        hints["text_terms"] = terms

    return hints
