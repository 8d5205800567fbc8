"""Search query building: filters, sort selection and pagination arithmetic."""

import pytest
from pymongo import ASCENDING, DESCENDING

from search import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    MAX_SKIP,
    build_filter,
    build_pagination,
    build_search,
    build_sort,
    total_pages,
)


# ─── build_filter ────────────────────────────────────────────────

def test_empty_filter_matches_everything():
    assert build_filter() == {}


def test_keywords_match_name_description_or_category():
    query = build_filter(keywords="  lamp ")
    pattern = {"$regex": "lamp", "$options": "i"}
    assert query == {"$or": [{"name": pattern}, {"description": pattern}, {"category": pattern}]}


def test_blank_keywords_are_ignored():
    assert build_filter(keywords="   ") == {}


def test_keywords_are_regex_escaped():
    query = build_filter(keywords="4K(55)")
    assert query["$or"][0]["name"]["$regex"] == r"4K\(55\)"


def test_category_is_anchored_exact_match():
    query = build_filter(category="Kitchen")
    assert query == {"category": {"$regex": "^Kitchen$", "$options": "i"}}


def test_price_bounds_are_inclusive():
    assert build_filter(min_price="10", max_price=20) == {"price": {"$gte": 10.0, "$lte": 20.0}}


def test_non_numeric_price_bounds_are_ignored():
    assert build_filter(min_price="cheap", max_price="nan") == {}
    assert build_filter(min_price=True) == {}


def test_filters_compose():
    query = build_filter(keywords="desk", category="furniture", max_price="300")
    assert set(query) == {"$or", "category", "price"}
    assert query["price"] == {"$lte": 300.0}


# ─── build_sort ──────────────────────────────────────────────────

def test_sort_orders():
    assert build_sort("category") == [("category", ASCENDING), ("name", ASCENDING)]
    assert build_sort("lowestPrice") == [("price", ASCENDING), ("name", ASCENDING)]
    assert build_sort("newest") == [("createdOn", DESCENDING), ("name", ASCENDING)]
    assert build_sort("name") == [("name", ASCENDING)]


def test_unknown_sort_falls_back_to_name():
    assert build_sort("highestPrice") == [("name", ASCENDING)]
    assert build_sort(None) == [("name", ASCENDING)]


# ─── build_pagination ────────────────────────────────────────────

def test_pagination_defaults():
    assert build_pagination() == (DEFAULT_PAGE_SIZE, 1, 0)


def test_pagination_skip_offset():
    assert build_pagination("2", "2") == (2, 2, 2)
    assert build_pagination(10, 3) == (10, 3, 20)


def test_pagination_clamps_to_minimum_one():
    assert build_pagination(0, -4) == (1, 1, 0)


def test_pagination_invalid_values_use_defaults():
    assert build_pagination("lots", "first") == (DEFAULT_PAGE_SIZE, 1, 0)


def test_page_size_is_capped():
    size, _, _ = build_pagination(10_000)
    assert size == MAX_PAGE_SIZE


@pytest.mark.parametrize("page_size", [1, 5, MAX_PAGE_SIZE])
def test_huge_page_number_keeps_skip_within_int64(page_size):
    size, number, skip = build_pagination(page_size, "1e19")
    assert size == page_size
    assert 0 <= skip <= MAX_SKIP
    assert skip == (number - 1) * size
    assert skip + size > MAX_SKIP


def test_total_pages():
    assert total_pages(0, 5) == 1
    assert total_pages(5, 5) == 1
    assert total_pages(6, 5) == 2
    assert total_pages(7, 2) == 4


def test_build_search_reads_wire_names():
    query = build_search({"keywords": "mat", "sortBy": "lowestPrice", "pageSize": "3", "pageNumber": "2"})
    assert query.limit == 3
    assert query.skip == 3
    assert query.page_number == 2
    assert query.sort[0] == ("price", ASCENDING)
    assert "$or" in query.filter
