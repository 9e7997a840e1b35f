"""
Paged list results

List operations return a Page: the slice of rows plus the page number,
limit, total matching rows and total pages.
"""

import math
from collections.abc import Sequence
from typing import Generic, TypeVar

from pydantic import BaseModel

from procurement_ledger.kernel.errors import ValidationError

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    """One page of results"""

    items: list[T]
    page: int
    limit: int
    total: int
    total_pages: int


def resolve_page_params(
    page: int | None, limit: int | None, default_limit: int, max_limit: int
) -> tuple[int, int]:
    """
    Validate and default page/limit

    Limits above max_limit are clamped; a page or limit below 1 is an error.
    """
    page = 1 if page is None else page
    limit = default_limit if limit is None else limit
    if page < 1:
        raise ValidationError("page must be >= 1", field="page")
    if limit < 1:
        raise ValidationError("limit must be >= 1", field="limit")
    return page, min(limit, max_limit)


def paginate(rows: Sequence[T], page: int, limit: int) -> Page[T]:
    """Slice `rows` (already filtered and sorted) into one page"""
    total = len(rows)
    start = (page - 1) * limit
    return Page[T](
        items=list(rows[start : start + limit]),
        page=page,
        limit=limit,
        total=total,
        total_pages=math.ceil(total / limit) if total else 0,
    )
