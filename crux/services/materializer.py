from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from sqlalchemy import Select

from crux.schemas.page import Page, PageMeta

_LOG = logging.getLogger("crux.materializer")


def ensure_typed_list(rows: Any, model: type) -> list:
    if isinstance(rows, list) and rows and isinstance(rows[0], model):
        return rows
    if rows:
        _LOG.warning("discarding result that is not a list of %s: %r", model.__name__, type(rows))
    return []


def materialize(
    stmt: Select,
    meta: Optional[PageMeta],
    *,
    execute: Callable[[Select], Any],
    model: type,
) -> list | Page:
    entries = ensure_typed_list(execute(stmt), model)
    if meta is None:
        return entries
    return Page.from_meta(meta, entries)
