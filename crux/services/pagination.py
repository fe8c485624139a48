from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy import Select, func, select

from crux.schemas.options import QueryOptions
from crux.schemas.page import PageMeta

_LOG = logging.getLogger("crux.pagination")


@dataclass(frozen=True)
class Pagination:
    query: Select
    meta: Optional[PageMeta] = None

    @property
    def paginated(self) -> bool:
        return self.meta is not None


def page_to_offset(page: int, page_size: int) -> int:
    return page_size * (page - 1)


def offset_to_page(offset: int, page_size: int) -> int:
    return offset // page_size + 1


def total_pages(total_entries: int, page_size: int) -> int:
    # An empty set still has one (empty) page.
    return max(1, math.ceil(total_entries / page_size))


def count_statement(stmt: Select) -> Select:
    return select(func.count()).select_from(stmt.order_by(None).subquery())


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def paginate(
    stmt: Select,
    options: QueryOptions,
    *,
    count: Callable[[Select], int],
    default_page_size: int,
) -> Pagination:
    """Bound ``stmt`` to the requested page or offset.

    ``page`` wins over ``offset``. A page below 1 or a negative offset leaves
    the statement unbounded. ``count`` is called once with the unbounded
    statement; the requested page is clamped to the last page and the offset
    to the number of entries.
    """
    page = options.page
    offset = options.offset
    use_page = _is_int(page) and page > 0
    use_offset = not use_page and _is_int(offset) and offset >= 0
    if not use_page and not use_offset:
        return Pagination(query=stmt)

    page_size = options.page_size or default_page_size
    total_entries = int(count(stmt))
    pages = total_pages(total_entries, page_size)
    if use_page:
        page = min(page, pages)
        offset = page_to_offset(page, page_size)
    else:
        offset = min(offset, total_entries)
        # An offset equal to a full last page would otherwise report one page past the end.
        page = min(offset_to_page(offset, page_size), pages)

    meta = PageMeta(
        page=page,
        page_size=page_size,
        total_entries=total_entries,
        total_pages=pages,
    )
    _LOG.debug(
        "paginate page=%s page_size=%s offset=%s total_entries=%s total_pages=%s",
        page,
        page_size,
        offset,
        total_entries,
        pages,
    )
    return Pagination(query=stmt.offset(offset).limit(page_size), meta=meta)
