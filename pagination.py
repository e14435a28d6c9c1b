import math
from typing import List

from pydantic import BaseModel


class PageInfo(BaseModel):
    current_page: int
    page_size: int
    total_items: int
    total_pages: int
    first_item: int
    last_item: int
    can_prev_page: bool
    can_next_page: bool
    pages: List[int]

    @property
    def offset(self) -> int:
        return (self.current_page - 1) * self.page_size


def paginate(total_items: int, page_size: int, current_page: int) -> PageInfo:
    """Clamp ``current_page`` into range and compute the visible window."""
    if page_size < 1:
        raise ValueError("page_size must be at least 1")
    total_items = max(total_items, 0)
    total_pages = math.ceil(total_items / page_size)
    page = min(max(current_page, 1), max(total_pages, 1))

    first_item = min(total_items, (page - 1) * page_size + 1)
    last_item = min(total_items, page * page_size)

    return PageInfo(
        current_page=page,
        page_size=page_size,
        total_items=total_items,
        total_pages=total_pages,
        first_item=first_item,
        last_item=last_item,
        can_prev_page=page > 1,
        can_next_page=page < total_pages,
        pages=list(range(1, total_pages + 1)),
    )
