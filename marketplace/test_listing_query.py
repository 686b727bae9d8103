"""
marketplace/test_listing_query.py

ListingQueryEngine: filtering, ordering and pagination over an in-memory store,
plus the lenient query-string parsing in front of it.

Run:
    pytest marketplace/test_listing_query.py -v
"""

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from marketplace.db import StoreError, init_db, prepare_connection, to_timestamp
from marketplace.listing_query import (
    DEFAULT_DIRECTION,
    DEFAULT_SORT_KEY,
    ListingQueryEngine,
    QueryRequest,
    order_by_clause,
    parse_query_request,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def conn():
    connection = prepare_connection(sqlite3.connect(":memory:"))
    init_db(connection)
    yield connection
    connection.close()


@pytest.fixture
def engine():
    return ListingQueryEngine()


def insert(conn, **fields):
    row = {"agent_id": 1, "title": "Listing", "status": "available"}
    row.update(fields)
    columns = ", ".join(row)
    placeholders = ", ".join("?" for _ in row)
    cur = conn.execute(f"INSERT INTO listings ({columns}) VALUES ({placeholders})", tuple(row.values()))
    conn.commit()
    return cur.lastrowid


def ids(result):
    return [item["property_id"] for item in result.items]


# ---------------------------------------------------------
# Ordering
# ---------------------------------------------------------
class TestOrdering:

    def test_price_ascending_puts_unpriced_rows_last(self, conn, engine):
        for price in (None, 500, "N/A", 100):
            insert(conn, price=price)
        request = parse_query_request({"status": "all", "sort": "price", "direction": "asc"}, default_limit=20)
        result = engine.query(conn, request)
        assert [item["price"] for item in result.items] == [100, 500, None, "N/A"]

    def test_price_descending_still_puts_unpriced_rows_last(self, conn, engine):
        for price in (None, 500, "N/A", 100):
            insert(conn, price=price)
        result = engine.query(conn, QueryRequest(sort_key="price", sort_direction="desc"))
        assert [item["price"] for item in result.items] == [500, 100, None, "N/A"]

    def test_formatted_prices_sort_numerically(self, conn, engine):
        insert(conn, price="₦2,500,000")
        insert(conn, price="900000")
        insert(conn, price="$1,200.50")
        result = engine.query(conn, QueryRequest(sort_key="price", sort_direction="asc"))
        assert [item["price"] for item in result.items] == ["$1,200.50", 900000, "₦2,500,000"]

    def test_null_is_largest_for_other_keys(self, conn, engine):
        first = insert(conn, bedrooms=2)
        empty = insert(conn, bedrooms=None)
        third = insert(conn, bedrooms=4)
        asc = engine.query(conn, QueryRequest(sort_key="bedrooms", sort_direction="asc"))
        desc = engine.query(conn, QueryRequest(sort_key="bedrooms", sort_direction="desc"))
        assert ids(asc) == [first, third, empty]
        assert ids(desc) == [empty, third, first]

    def test_text_sort_is_case_insensitive(self, conn, engine):
        banana = insert(conn, title="banana")
        apple = insert(conn, title="Apple")
        cherry = insert(conn, title="cherry")
        result = engine.query(conn, QueryRequest(sort_key="title", sort_direction="asc"))
        assert ids(result) == [apple, banana, cherry]

    def test_ties_break_on_property_id(self, conn, engine):
        created = [insert(conn, location="Lekki") for _ in range(5)]
        for direction in ("asc", "desc"):
            result = engine.query(conn, QueryRequest(sort_key="location", sort_direction=direction))
            assert ids(result) == created

    def test_default_order_is_newest_first(self, conn, engine):
        old = insert(conn, date_listed="2026-01-01T00:00:00")
        new = insert(conn, date_listed="2026-02-01T00:00:00")
        result = engine.query(conn, parse_query_request({}, default_limit=20))
        assert ids(result) == [new, old]

    def test_repeated_queries_return_the_same_order(self, conn, engine):
        for price in ("N/A", 300, None, 300, "1,000"):
            insert(conn, price=price)
        request = QueryRequest(sort_key="price", sort_direction="asc")
        first = ids(engine.query(conn, request))
        assert ids(engine.query(conn, request)) == first
        assert first == [2, 4, 5, 1, 3]

    def test_order_by_uses_locale_collation_for_text(self):
        clause = order_by_clause("title", "desc")
        assert clause == " ORDER BY l.title IS NULL DESC, l.title COLLATE locale_nocase DESC, l.property_id ASC"

    def test_order_by_rejects_unknown_keys(self):
        with pytest.raises(ValueError):
            order_by_clause("password", "asc")


# ---------------------------------------------------------
# Pagination
# ---------------------------------------------------------
class TestPagination:

    def test_last_partial_page(self, conn, engine):
        for _ in range(25):
            insert(conn)
        result = engine.query(conn, QueryRequest(page=3, limit=10))
        assert len(result.items) == 5
        assert result.total == 25
        assert result.total_pages == 3

    def test_page_past_the_end_is_empty(self, conn, engine):
        for _ in range(3):
            insert(conn)
        result = engine.query(conn, QueryRequest(page=4, limit=2))
        assert result.items == []
        assert result.total == 3
        assert result.total_pages == 2

    def test_no_matches_reports_one_page(self, conn, engine):
        result = engine.query(conn, QueryRequest())
        assert result.items == []
        assert result.total == 0
        assert result.total_pages == 1

    def test_pages_cover_every_row_exactly_once(self, conn, engine):
        for index in range(23):
            insert(conn, price=(index * 37) % 11 if index % 4 else None)
        seen = []
        for page in range(1, 4):
            result = engine.query(conn, QueryRequest(sort_key="price", sort_direction="asc", page=page, limit=10))
            seen.extend(ids(result))
        assert sorted(seen) == list(range(1, 24))
        assert len(seen) == len(set(seen))

    def test_page_is_limited_in_sql(self, conn, engine):
        for _ in range(30):
            insert(conn)
        statements = []
        conn.set_trace_callback(statements.append)
        result = engine.query(conn, QueryRequest(page=2, limit=10))
        conn.set_trace_callback(None)
        assert len(result.items) == 10
        assert result.total == 30
        select = [s for s in statements if s.startswith("SELECT l.*")]
        assert len(select) == 1
        assert "LIMIT" in select[0] and "OFFSET" in select[0]
        assert any(s.startswith("SELECT COUNT(*)") for s in statements)


# ---------------------------------------------------------
# Filters
# ---------------------------------------------------------
class TestFilters:

    def test_location_matches_location_or_state(self, conn, engine):
        lekki = insert(conn, location="Lekki Phase 1", state="Lagos")
        ikeja = insert(conn, location="Ikeja", state="Lagos")
        insert(conn, location="Wuse", state="Abuja")
        assert set(ids(engine.query(conn, QueryRequest(location="lekki")))) == {lekki}
        assert set(ids(engine.query(conn, QueryRequest(location="lagos")))) == {lekki, ikeja}

    def test_location_folds_non_ascii_case(self, conn, engine):
        ikoyi = insert(conn, location="ìkoyi")
        insert(conn, location="Ikeja")
        assert ids(engine.query(conn, QueryRequest(location="ÌKOYI"))) == [ikoyi]

    def test_free_text_words_must_all_match(self, conn, engine):
        lekki = insert(conn, title="3 bedroom flat", location="Lekki", state="Lagos", bedrooms=3)
        insert(conn, title="3 bedroom flat", location="Ikeja", state="Lagos", bedrooms=3)
        insert(conn, title="3 bedroom flat", location="Wuse", state="Abuja", bedrooms=3)
        request = parse_query_request({"q": "3 bedroom flat in lekki", "status": "all"}, default_limit=20)
        assert request.text_terms == ("flat", "lekki")
        assert ids(engine.query(conn, request)) == [lekki]

    def test_free_text_matches_description_and_type(self, conn, engine):
        pool = insert(conn, description="Has a swimming POOL", property_type="Duplex")
        insert(conn, description="No pool here", property_type="Flat")
        request = parse_query_request({"q": "duplex with pool"}, default_limit=20)
        assert ids(engine.query(conn, request)) == [pool]

    def test_counts_alone_do_not_add_text_filters(self, conn, engine):
        three = insert(conn, title="Lovely home", bedrooms=3)
        request = parse_query_request({"q": "3 bedroom"}, default_limit=20)
        assert request.text_terms == ()
        assert ids(engine.query(conn, request)) == [three]

    def test_location_wildcards_are_literal(self, conn, engine):
        insert(conn, location="Ikoyi")
        assert engine.query(conn, QueryRequest(location="%")).total == 0

    def test_price_bounds_are_inclusive_and_skip_unpriced(self, conn, engine):
        low = insert(conn, price=100)
        mid = insert(conn, price="₦500")
        insert(conn, price=900)
        insert(conn, price="Contact us")
        result = engine.query(conn, QueryRequest(min_price=100, max_price=500))
        assert set(ids(result)) == {low, mid}

    def test_bedrooms_exact_and_greater_than(self, conn, engine):
        two = insert(conn, bedrooms=2)
        three = insert(conn, bedrooms=3)
        four = insert(conn, bedrooms=4)
        assert ids(engine.query(conn, QueryRequest(bedrooms=("=", 3)))) == [three]
        assert set(ids(engine.query(conn, QueryRequest(bedrooms=(">", 2))))) == {three, four}
        assert two not in ids(engine.query(conn, QueryRequest(bedrooms=(">", 2))))

    def test_status_and_category_ignore_case(self, conn, engine):
        rent = insert(conn, purchase_category="Rent", status="Available")
        insert(conn, purchase_category="Sale", status="sold")
        result = engine.query(conn, QueryRequest(purchase_category="rent", status="available"))
        assert ids(result) == [rent]

    def test_visible_statuses_scope(self, conn, engine):
        public = insert(conn, status="available")
        insert(conn, status="pending")
        assert ids(engine.query(conn, QueryRequest(visible_statuses=("available",)))) == [public]
        assert engine.query(conn, QueryRequest(visible_statuses=())).total == 0

    def test_featured_only_excludes_expired(self, conn, engine):
        active = insert(conn, is_featured=1, featured_expires_at=to_timestamp(NOW + timedelta(days=2)))
        insert(conn, is_featured=1, featured_expires_at=to_timestamp(NOW - timedelta(days=2)))
        insert(conn)
        assert ids(engine.query(conn, QueryRequest(featured_only=True), now=NOW)) == [active]

    def test_agent_and_agency_scope(self, conn, engine):
        mine = insert(conn, agent_id=7, agency_id=3)
        colleague = insert(conn, agent_id=8, agency_id=3)
        insert(conn, agent_id=9, agency_id=4)
        assert ids(engine.query(conn, QueryRequest(agent_id=7))) == [mine]
        assert set(ids(engine.query(conn, QueryRequest(agency_id=3)))) == {mine, colleague}

    def test_filters_combine_with_and(self, conn, engine):
        match = insert(conn, location="Lekki", bedrooms=3, price=1_000_000)
        insert(conn, location="Lekki", bedrooms=2, price=1_000_000)
        insert(conn, location="Ikeja", bedrooms=3, price=1_000_000)
        result = engine.query(conn, QueryRequest(location="lekki", bedrooms=("=", 3), max_price=2_000_000))
        assert ids(result) == [match]

    def test_favourites_variant_joins_the_users_saves(self, conn, engine):
        saved = insert(conn, title="Saved")
        insert(conn, title="Not saved")
        conn.execute("INSERT INTO favourites (user_id, property_id, created_at) VALUES (?, ?, ?)",
                     (42, saved, "2026-02-01T10:00:00"))
        conn.execute("INSERT INTO favourites (user_id, property_id, created_at) VALUES (?, ?, ?)",
                     (43, saved + 1, "2026-02-01T10:00:00"))
        conn.commit()
        result = engine.query(conn, QueryRequest(favourites_of=42))
        assert ids(result) == [saved]
        assert result.items[0]["favourited_at"] == "2026-02-01T10:00:00"

    def test_store_failure_raises_store_error(self, engine):
        empty = prepare_connection(sqlite3.connect(":memory:"))
        try:
            with pytest.raises(StoreError):
                engine.query(empty, QueryRequest())
        finally:
            empty.close()


# ---------------------------------------------------------
# Query-string parsing
# ---------------------------------------------------------
class TestParseQueryRequest:

    def test_unknown_sort_key_keeps_default_ordering(self):
        request = parse_query_request({"sort": "agent_password", "direction": "asc"}, default_limit=20)
        assert (request.sort_key, request.sort_direction) == (DEFAULT_SORT_KEY, DEFAULT_DIRECTION)

    def test_sort_suffix_form(self):
        request = parse_query_request({"sort": "price_desc"}, default_limit=20)
        assert (request.sort_key, request.sort_direction) == ("price", "desc")

    @pytest.mark.parametrize("status", ["all", "All Statuses", "ALL"])
    def test_all_status_means_no_filter(self, status):
        assert parse_query_request({"status": status}, default_limit=20).status is None

    def test_bad_numbers_are_dropped(self):
        request = parse_query_request(
            {"min_price": "cheap", "bedrooms": "lots", "page": "-2", "limit": "zero"},
            default_limit=12,
        )
        assert request.min_price is None
        assert request.bedrooms is None
        assert request.page == 1
        assert request.limit == 12

    def test_limit_is_capped(self):
        assert parse_query_request({"limit": "5000"}, default_limit=20, max_limit=100).limit == 100

    def test_number_words_and_greater_than(self):
        request = parse_query_request({"bedrooms": "three", "bathrooms": ">2"}, default_limit=20)
        assert request.bedrooms == ("=", 3)
        assert request.bathrooms == (">", 2)

    def test_free_text_fills_only_missing_params(self):
        request = parse_query_request({"q": "cheap 3 bedroom flat for rent under 2m", "bedrooms": "4"}, default_limit=20)
        assert request.bedrooms == ("=", 4)
        assert request.max_price == 2_000_000
        assert request.purchase_category == "Rent"
        assert (request.sort_key, request.sort_direction) == ("price", "asc")

    def test_explicit_sort_beats_free_text(self):
        request = parse_query_request({"q": "luxury duplex", "sort": "title"}, default_limit=20)
        assert (request.sort_key, request.sort_direction) == ("title", "asc")

    def test_query_request_rejects_invalid_values(self):
        with pytest.raises(ValueError):
            QueryRequest(page=0)
        with pytest.raises(ValueError):
            QueryRequest(sort_key="password")
