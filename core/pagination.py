import math
from typing import Any, Optional, Sequence

from pydantic import BaseModel


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


def clamp_page(page: Optional[Any], limit: Optional[Any], *, default_limit: int, max_limit: int) -> tuple[int, int]:
    """Coerce raw page/limit values into `page >= 1` and `1 <= limit <= max_limit`."""
    try:
        page_num = int(page) if page is not None else 1
    except (TypeError, ValueError):
        page_num = 1
    try:
        limit_num = int(limit) if limit is not None else default_limit
    except (TypeError, ValueError):
        limit_num = default_limit
    if limit_num == 0:
        limit_num = default_limit
    return max(1, page_num), min(max_limit, max(1, limit_num))


def paginate(items: Sequence, page: int, limit: int) -> tuple[list, Pagination]:
    offset = (page - 1) * limit
    total = len(items)
    return list(items[offset:offset + limit]), Pagination(
        page=page,
        limit=limit,
        total=total,
        total_pages=math.ceil(total / limit) or 1,
    )
