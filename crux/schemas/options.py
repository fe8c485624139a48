from pydantic import BaseModel, PositiveInt
from typing import Any, Literal, Optional

Dir = Literal["asc", "desc"]

CONTROL_KEYS = frozenset(
    {
        "exclude_deleted",
        "only_deleted",
        "offset",
        "page",
        "page_size",
        "order_by",
        "select",
    }
)

class SortClause(BaseModel):
    field: str
    dir: Dir = "asc"

class QueryOptions(BaseModel):
    exclude_deleted: bool = False
    only_deleted: bool = False
    # page/offset are taken as given; anything but a usable int disables pagination.
    page: Any = None
    offset: Any = None
    page_size: Optional[PositiveInt] = None
    order_by: Any = None
    select: Any = None
