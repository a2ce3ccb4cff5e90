"""Pagination helpers shared by the stores and list endpoints."""

import math
from typing import Any, Dict, List, Tuple

DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100


def normalize_page(page: int, page_size: int) -> Tuple[int, int]:
    """Clamp page (1-indexed) and page_size into their valid ranges."""
    if page is None or page < 1:
        page = 1
    if page_size is None or page_size <= 0:
        page_size = DEFAULT_PAGE_SIZE
    page_size = min(page_size, MAX_PAGE_SIZE)
    return page, page_size


def page_offset(page: int, page_size: int) -> int:
    return (page - 1) * page_size


def build_page(items: List[Any], page: int, page_size: int, total_items: int) -> Dict:
    """
    Wrap one page of results in the list envelope used by every list endpoint.

    Returns:
        Dict with ``items``, ``page``, ``page_size``, ``total_items``, ``total_pages``
    """
    return {
        "items": items,
        "page": page,
        "page_size": page_size,
        "total_items": total_items,
        "total_pages": math.ceil(total_items / page_size) if total_items else 0,
    }


def escape_like(value: str) -> str:
    """Escape LIKE-special characters (%, _) so they match literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
