"""
marketplace/test_search_parser.py

Free-text search hints and lenient value coercion.
"""

import pytest

from marketplace.coerce import compare_text, fold_text, parse_count_filter, parse_price, to_int, to_number
from marketplace.search_parser import extract_text_terms, normalize_query, parse_amount, parse_search_text


@pytest.mark.parametrize("text,expected", [
    ("500k", 500_000),
    ("1.5m", 1_500_000),
    ("2,000,000", 2_000_000),
    ("1b", 1_000_000_000),
    ("", None),
    ("abc", None),
])
def test_parse_amount(text, expected):
    assert parse_amount(text) == expected


def test_normalize_expands_abbreviations():
    assert normalize_query("Apt in Lekki PH1") == "apartment in lekki phase 1"
    assert normalize_query("selfcon in PH") == "self contain in port harcourt"


def test_price_ranges():
    assert parse_search_text("flat under 500k") == {"max_price": 500_000, "text_terms": ("flat",)}
    assert parse_search_text("between 1m and 2m") == {"min_price": 1_000_000, "max_price": 2_000_000}
    assert parse_search_text("duplex above 20m")["min_price"] == 20_000_000


def test_room_counts_digits_and_words():
    hints = parse_search_text("three bedroom house with 2 toilets")
    assert hints["bedrooms"] == 3
    assert hints["bathrooms"] == 2


@pytest.mark.parametrize("text,category", [
    ("flat to let in yaba", "Rent"),
    ("shop for lease", "Rent"),
    ("2 bed for rent", "Rent"),
    ("land for sale", "Sale"),
    ("buy a house", "Sale"),
])
def test_purchase_category(text, category):
    assert parse_search_text(text)["purchase_category"] == category


def test_sort_qualifiers():
    assert parse_search_text("luxury apartment")["direction"] == "desc"
    assert parse_search_text("affordable apartment")["direction"] == "asc"
    assert "sort" not in parse_search_text("apartment")


def test_blank_text_gives_no_hints():
    assert parse_search_text(None) == {}
    assert parse_search_text("   ") == {}


def test_leftover_words_become_text_terms():
    hints = parse_search_text("3 bedroom flat in lekki")
    assert hints["bedrooms"] == 3
    assert hints["text_terms"] == ("flat", "lekki")


def test_noise_words_are_not_text_terms():
    assert parse_search_text("nice modern duplex for sale")["text_terms"] == ("duplex",)
    assert extract_text_terms("lovely apartment apartment in the vi") == ("apartment", "vi")


@pytest.mark.parametrize("text", ["3 bedroom", "two bedrooms", "2 room", "a 4 bed", "5"])
def test_counts_and_room_words_alone_give_no_text_terms(text):
    assert extract_text_terms(normalize_query(text)) == ()


class TestCoerce:

    @pytest.mark.parametrize("value,expected", [
        ("₦2,500,000", 2_500_000),
        ("$1,200.50", 1200.5),
        (300, 300),
        ("N/A", None),
        ("", None),
        (None, None),
    ])
    def test_parse_price(self, value, expected):
        assert parse_price(value) == expected

    def test_to_number_rejects_bools_and_nan(self):
        assert to_number(True) is None
        assert to_number(float("nan")) is None
        assert to_number("inf") is None
        assert to_number(" 4.5 ") == 4.5

    def test_to_int_needs_integral_values(self):
        assert to_int("3") == 3
        assert to_int(2.0) == 2
        assert to_int("2.5") is None

    @pytest.mark.parametrize("value,expected", [
        ("3", ("=", 3)),
        ("three", ("=", 3)),
        (">2", (">", 2)),
        ("> two", (">", 2)),
        ("many", None),
        (">", None),
        (None, None),
    ])
    def test_parse_count_filter(self, value, expected):
        assert parse_count_filter(value) == expected

    def test_fold_text_handles_non_ascii_case(self):
        assert fold_text("ÌKOYI") == fold_text("ìkoyi") == "ìkoyi"
        assert fold_text(None) is None

    def test_compare_text_is_case_insensitive_first(self):
        assert compare_text("apple", "Banana") < 0
        assert compare_text("Lekki", "lekki") != 0
        assert compare_text("lekki", "lekki") == 0
