"""
marketplace/listing_query.py

Listing query pipeline shared by every listing view (public search, agent,
agency and admin dashboards, favourites).

Flow:
1. parse_query_request() turns raw query-string values into a typed
   QueryRequest. This is the only place lenient parsing happens: bad numbers
   and sentinel strings ("all statuses") become "no filter".
2. ListingQueryEngine.query() runs a COUNT(*) and one ordered, LIMIT/OFFSET
   SELECT over the same filters. Ties are always broken on property_id.

Ordering rules (all in SQL):
- price orders numerically on listing_price(); prices that do not parse sort
  after every numeric price in both directions
- for other keys NULL is the largest value: last ascending, first descending
- text keys use the locale_nocase collation (case-insensitive first)

Text matching (location and free-text terms) goes through fold_text() so case
folding covers non-ASCII letters.
"""

from __future__ import annotations

import math
import sqlite3
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from marketplace import config
from marketplace.coerce import parse_count_filter, parse_price, to_int
from marketplace.db import StoreError, now_timestamp
from marketplace.search_parser import parse_search_text

SORTABLE_KEYS = (
    "property_id",
    "title",
    "location",
    "property_type",
    "price",
    "status",
    "date_listed",
    "purchase_category",
    "bedrooms",
    "bathrooms",
)
# Keys ordered with the locale_nocase collation
TEXT_SORT_KEYS = ("title", "location", "property_type", "status", "purchase_category")
# Columns a free-text term may match
TEXT_SEARCH_COLUMNS = ("title", "location", "state", "description", "property_type")
DEFAULT_SORT_KEY = "date_listed"
DEFAULT_DIRECTION = "desc"
DIRECTIONS = ("asc", "desc")

# Status values meaning "do not filter on status"
STATUS_ALL = ("all", "all statuses")


@dataclass(frozen=True)
class QueryRequest:
    """Typed, validated listing query. Built per request and discarded."""
    location: Optional[str] = None
    property_type: Optional[str] = None
    subtype: Optional[str] = None
    bedrooms: Optional[Tuple[str, int]] = None
    bathrooms: Optional[Tuple[str, int]] = None
    purchase_category: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    status: Optional[str] = None
    agent_id: Optional[int] = None
    agency_id: Optional[int] = None
    featured_only: bool = False
    # Leftover words from the free-text "q" phrase, each must match
    text_terms: Tuple[str, ...] = ()
    # Scoping applied by the server, never read from the query string
    visible_statuses: Optional[Tuple[str, ...]] = None
    favourites_of: Optional[int] = None
    sort_key: str = DEFAULT_SORT_KEY
    sort_direction: str = DEFAULT_DIRECTION
    page: int = 1
    limit: int = 20

    def __post_init__(self):
        if self.page < 1:
            raise ValueError(f"page must be >= 1, got {self.page}")
        if self.limit < 1:
            raise ValueError(f"limit must be > 0, got {self.limit}")
        if self.sort_key not in SORTABLE_KEYS:
            raise ValueError(f"sort_key must be one of {SORTABLE_KEYS}, got {self.sort_key!r}")
        if self.sort_direction not in DIRECTIONS:
            raise ValueError(f"sort_direction must be 'asc' or 'desc', got {self.sort_direction!r}")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def scoped(self, **changes: Any) -> "QueryRequest":
        """Return a copy with server-side scoping applied."""
        return replace(self, **changes)


@dataclass
class QueryResult:
    items: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0
    total_pages: int = 1
    page: int = 1
    limit: int = 20


# ---------------------------------------------------------
# Request parsing (the single lenient boundary)
# ---------------------------------------------------------
def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _first(params: Mapping[str, Any], *names: str) -> Optional[str]:
    for name in names:
        value = _text(params.get(name))
        if value is not None:
            return value
    return None


def _parse_sort(raw_sort: Optional[str], raw_direction: Optional[str]) -> Tuple[str, str]:
    """
    Resolve (sort_key, direction). An unsupported key leaves the default
    ordering untouched. "price_desc" style values are accepted.
    """
    direction = raw_direction.lower() if raw_direction else None
    if direction not in DIRECTIONS:
        direction = None

    if not raw_sort:
        return DEFAULT_SORT_KEY, direction or DEFAULT_DIRECTION

    key = raw_sort.lower()
    if key in SORTABLE_KEYS:
        return key, direction or "asc"

    for suffix in DIRECTIONS:
        base = key[: -len(suffix) - 1]
        if key.endswith(f"_{suffix}") and base in SORTABLE_KEYS:
            return base, direction or suffix

    if config.IS_DEV:
        print(f"[LISTINGS] Ignoring unsupported sort key {raw_sort!r}")
    return DEFAULT_SORT_KEY, DEFAULT_DIRECTION


def parse_query_request(
    params: Mapping[str, Any],
    default_limit: int,
    max_limit: Optional[int] = None,
) -> QueryRequest:
    """
    Build a QueryRequest from query-string parameters.

    Accepted names: search|location, propertyType|property_type, subtype,
    bedrooms, bathrooms, purchase_category|purchaseCategory, min_price,
    max_price, status, agent_id, agency_id, featured, q, sort|sortBy,
    direction, page, limit.

    Never raises for bad input: unparseable values are dropped.
    """
    max_limit = max_limit or config.MAX_PAGE_LIMIT

    # Free-text hints only fill parameters the caller left empty
    hints = parse_search_text(_text(params.get("q")))

    def value(*names: str) -> Optional[Any]:
        explicit = _first(params, *names)
        if explicit is not None:
            return explicit
        return hints.get(names[-1])

    status = _text(params.get("status"))
    if status and status.lower() in STATUS_ALL:
        status = None

    purchase_category = value("purchaseCategory", "purchase_category")
    if purchase_category and str(purchase_category).lower() == "all":
        purchase_category = None

    explicit_sort = _first(params, "sortBy", "sort")
    if explicit_sort is not None:
        sort_key, direction = _parse_sort(explicit_sort, _first(params, "direction"))
    else:
        sort_key, direction = _parse_sort(hints.get("sort"), _first(params, "direction") or hints.get("direction"))

    page = to_int(params.get("page"))
    limit = to_int(params.get("limit"))
    if limit is None or limit < 1:
        limit = default_limit

    featured = _text(params.get("featured"))

    return QueryRequest(
        location=_first(params, "search", "location"),
        property_type=_first(params, "propertyType", "property_type"),
        subtype=_first(params, "subtype"),
        bedrooms=parse_count_filter(value("bedrooms")),
        bathrooms=parse_count_filter(value("bathrooms")),
        purchase_category=purchase_category,
        min_price=parse_price(value("min_price")),
        max_price=parse_price(value("max_price")),
        status=status,
        agent_id=to_int(params.get("agent_id")),
        agency_id=to_int(params.get("agency_id")),
        featured_only=bool(featured) and featured.lower() in ("1", "true", "yes"),
        text_terms=tuple(hints.get("text_terms", ())),
        sort_key=sort_key,
        sort_direction=direction,
        page=page if page is not None and page >= 1 else 1,
        limit=min(limit, max_limit),
    )


# ---------------------------------------------------------
# Engine
# ---------------------------------------------------------
def _like_pattern(text: str) -> str:
    """Casefolded, escaped LIKE pattern; compare against fold_text(column)."""
    folded = text.casefold()
    escaped = folded.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _folded_like(column: str) -> str:
    return f"fold_text(l.{column}) LIKE ? ESCAPE '\\'"


def order_by_clause(sort_key: str, direction: str) -> str:
    """ORDER BY for a validated sort key, tie-broken on property_id ascending."""
    if sort_key not in SORTABLE_KEYS or direction not in DIRECTIONS:
        raise ValueError(f"Unsupported ordering {sort_key!r} {direction!r}")
    sql_direction = direction.upper()

    if sort_key == "price":
        # Unpriced rows go last whatever the direction
        terms = ["listing_price(l.price) IS NULL", f"listing_price(l.price) {sql_direction}"]
    else:
        collate = " COLLATE locale_nocase" if sort_key in TEXT_SORT_KEYS else ""
        terms = [f"l.{sort_key} IS NULL {sql_direction}", f"l.{sort_key}{collate} {sql_direction}"]

    if sort_key != "property_id":
        terms.append("l.property_id ASC")
    return " ORDER BY " + ", ".join(terms)


class ListingQueryEngine:
    """Filter, order and paginate the listings table."""

    def build_filters(self, request: QueryRequest, now: Optional[datetime] = None) -> Tuple[str, List[Any]]:
        """Return (WHERE clause, params) for a request. Conditions are AND-combined."""
        conditions: List[str] = []
        params: List[Any] = []

        if request.location:
            pattern = _like_pattern(request.location)
            conditions.append(f"({_folded_like('location')} OR {_folded_like('state')})")
            params.extend([pattern, pattern])

        for term in request.text_terms:
            pattern = _like_pattern(term)
            conditions.append("(" + " OR ".join(_folded_like(c) for c in TEXT_SEARCH_COLUMNS) + ")")
            params.extend([pattern] * len(TEXT_SEARCH_COLUMNS))

        if request.property_type:
            conditions.append("l.property_type = ?")
            params.append(request.property_type)

        if request.subtype:
            conditions.append("l.subtype = ?")
            params.append(request.subtype)

        for column, room_filter in (("bedrooms", request.bedrooms), ("bathrooms", request.bathrooms)):
            if room_filter is not None:
                operator, count = room_filter
                conditions.append(f"l.{column} {'>' if operator == '>' else '='} ?")
                params.append(count)

        if request.purchase_category:
            conditions.append("l.purchase_category = ? COLLATE NOCASE")
            params.append(request.purchase_category)

        # NULL from listing_price() fails both comparisons, excluding unpriced rows
        if request.min_price is not None:
            conditions.append("listing_price(l.price) >= ?")
            params.append(request.min_price)
        if request.max_price is not None:
            conditions.append("listing_price(l.price) <= ?")
            params.append(request.max_price)

        if request.status:
            conditions.append("l.status = ? COLLATE NOCASE")
            params.append(request.status)

        if request.visible_statuses is not None:
            if request.visible_statuses:
                placeholders = ", ".join("?" for _ in request.visible_statuses)
                conditions.append(f"LOWER(l.status) IN ({placeholders})")
                params.extend(s.lower() for s in request.visible_statuses)
            else:
                conditions.append("0")

        if request.agent_id is not None:
            conditions.append("l.agent_id = ?")
            params.append(request.agent_id)

        if request.agency_id is not None:
            conditions.append("l.agency_id = ?")
            params.append(request.agency_id)

        if request.featured_only:
            conditions.append("l.is_featured = 1 AND l.featured_expires_at > ?")
            params.append(now_timestamp(now))

        where = f" WHERE {' AND '.join(conditions)}" if conditions else ""
        return where, params

    def query(
        self,
        conn: sqlite3.Connection,
        request: QueryRequest,
        now: Optional[datetime] = None,
    ) -> QueryResult:
        """
        Run a listing query.

        The connection must come from db.prepare_connection() so listing_price,
        fold_text and locale_nocase are registered.

        Returns:
            QueryResult with the requested page, the pre-pagination total and
            total_pages (at least 1). A page past the end yields no items.

        Raises:
            StoreError: If the COUNT or SELECT fails
        """
        where, params = self.build_filters(request, now)

        if request.favourites_of is not None:
            source = (
                " FROM listings l "
                "JOIN favourites f ON f.property_id = l.property_id AND f.user_id = ?"
            )
            columns = "l.*, f.created_at AS favourited_at"
            params = [request.favourites_of] + params
        else:
            source = " FROM listings l"
            columns = "l.*"

        order_by = order_by_clause(request.sort_key, request.sort_direction)

        try:
            cur = conn.cursor()
            cur.execute("SELECT COUNT(*)" + source + where, params)
            total = cur.fetchone()[0]
            cur.execute(
                f"SELECT {columns}{source}{where}{order_by} LIMIT ? OFFSET ?",
                params + [request.limit, request.offset],
            )
            items = [dict(row) for row in cur.fetchall()]
        except sqlite3.Error as e:
            print(f"[LISTINGS] Query failed: {e}")
            raise StoreError("Listing query failed") from e

        total_pages = max(1, math.ceil(total / request.limit))

        if config.IS_DEV:
            print(f"[LISTINGS] Query: filters={len(params)}, sort={request.sort_key} {request.sort_direction}, "
                  f"page={request.page}/{total_pages}, limit={request.limit}, total={total}")

        return QueryResult(
            items=items,
            total=total,
            total_pages=total_pages,
            page=request.page,
            limit=request.limit,
        )
