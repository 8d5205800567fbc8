"""
Product search query building.

Turns loosely-typed search parameters (usually raw query-string values) into
a MongoDB filter, sort specification and skip/limit window. Nothing here
touches the database; database.search_products() runs the result.
"""

import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pymongo import ASCENDING, DESCENDING

DEFAULT_PAGE_SIZE = 5
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_NUMBER = 1
# skip is sent as a BSON int64
MAX_SKIP = 2**63 - 1

SortSpec = List[Tuple[str, int]]

SORT_ORDERS: Dict[str, SortSpec] = {
    "category": [("category", ASCENDING), ("name", ASCENDING)],
    "lowestPrice": [("price", ASCENDING), ("name", ASCENDING)],
    "newest": [("createdOn", DESCENDING), ("name", ASCENDING)],
    "name": [("name", ASCENDING)],
}


@dataclass(frozen=True)
class SearchQuery:
    filter: Dict[str, Any]
    sort: SortSpec
    skip: int
    limit: int
    page_size: int
    page_number: int


def _clean_text(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def _parse_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _parse_int(value: Any, default: int) -> int:
    number = _parse_number(value)
    if number is None:
        return default
    return int(number)


def build_filter(
    keywords: Any = None,
    category: Any = None,
    min_price: Any = None,
    max_price: Any = None,
) -> Dict[str, Any]:
    """Compose the product filter; every condition is optional."""
    query: Dict[str, Any] = {}

    keywords = _clean_text(keywords)
    if keywords:
        pattern = {"$regex": re.escape(keywords), "$options": "i"}
        query["$or"] = [
            {"name": pattern},
            {"description": pattern},
            {"category": pattern},
        ]

    category = _clean_text(category)
    if category:
        query["category"] = {"$regex": f"^{re.escape(category)}$", "$options": "i"}

    price: Dict[str, float] = {}
    low = _parse_number(min_price)
    if low is not None:
        price["$gte"] = low
    high = _parse_number(max_price)
    if high is not None:
        price["$lte"] = high
    if price:
        query["price"] = price

    return query


def build_sort(sort_by: Any = None) -> SortSpec:
    """Unknown sort keys fall back to name ascending."""
    order = SORT_ORDERS.get(sort_by) if isinstance(sort_by, str) else None
    return list(order or SORT_ORDERS["name"])


def build_pagination(page_size: Any = None, page_number: Any = None) -> Tuple[int, int, int]:
    """Return (page_size, page_number, skip)."""
    size = _parse_int(page_size, DEFAULT_PAGE_SIZE)
    size = min(max(size, 1), MAX_PAGE_SIZE)
    number = max(_parse_int(page_number, DEFAULT_PAGE_NUMBER), 1)
    number = min(number, MAX_SKIP // size + 1)
    return size, number, (number - 1) * size


def total_pages(total: int, page_size: int) -> int:
    return max(1, math.ceil(total / page_size))


def build_search(params: Mapping[str, Any]) -> SearchQuery:
    """Build a SearchQuery from request parameters named as on the wire."""
    size, number, skip = build_pagination(params.get("pageSize"), params.get("pageNumber"))
    return SearchQuery(
        filter=build_filter(
            params.get("keywords"),
            params.get("category"),
            params.get("minPrice"),
            params.get("maxPrice"),
        ),
        sort=build_sort(params.get("sortBy")),
        skip=skip,
        limit=size,
        page_size=size,
        page_number=number,
    )
