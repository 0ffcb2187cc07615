"""Page/limit helpers shared by list endpoints"""

import math
from typing import Optional

from fastapi import Query

from ..config import MAX_PAGE_LIMIT


class PageParams:
    """1-based page/limit pair; the default limit varies per endpoint"""

    def __init__(self, page: int = 1, limit: int = 20):
        self.page = page
        self.limit = limit

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def page_params(default_limit: int):
    """Build a dependency that reads page/limit with the given default"""

    def dependency(
        page: int = Query(1, ge=1),
        limit: Optional[int] = Query(None, ge=1, le=MAX_PAGE_LIMIT),
    ) -> PageParams:
        return PageParams(page=page, limit=limit or default_limit)

    return dependency


def pagination_meta(params: PageParams, total: int) -> dict:
    return {
        "page": params.page,
        "limit": params.limit,
        "total": total,
        "pages": math.ceil(total / params.limit) if params.limit else 0,
    }
