from __future__ import annotations

from typing import Any, Iterable

from sqlalchemy import Select, asc, desc
from sqlalchemy.inspection import inspect as sa_inspect
from sqlalchemy.orm import load_only
from sqlalchemy.sql.elements import ClauseElement

from crux.core.config import settings
from crux.core.errors import UnknownFieldError
from crux.schemas.options import SortClause

_DIRECTIONS = {"asc": asc, "desc": desc}


def column_names(model: type) -> list[str]:
    return [attr.key for attr in sa_inspect(model).column_attrs]


def _column(model: type, field: str):
    if field not in sa_inspect(model).column_attrs:
        raise UnknownFieldError(model, str(field))
    return getattr(model, field)


def apply_soft_delete(
    stmt: Select,
    model: type,
    *,
    exclude_deleted: bool = False,
    only_deleted: bool = False,
    field: str | None = None,
) -> Select:
    # Both flags stack: the resulting query can never match a row.
    if not exclude_deleted and not only_deleted:
        return stmt
    marker = _column(model, field or settings.CRUX_SOFT_DELETE_FIELD)
    if exclude_deleted:
        stmt = stmt.where(marker.is_(None))
    if only_deleted:
        stmt = stmt.where(marker.is_not(None))
    return stmt


def apply_filters(stmt: Select, model: type, pairs: Iterable[tuple[str, Any]]) -> Select:
    for field, value in pairs:
        col = _column(model, field)
        stmt = stmt.where(col.is_(None) if value is None else col == value)
    return stmt


def _is_expression(expr: Any) -> bool:
    return isinstance(expr, ClauseElement) or hasattr(expr, "__clause_element__")


def _is_sort_pair(expr: Any) -> bool:
    return (
        isinstance(expr, tuple)
        and len(expr) == 2
        and isinstance(expr[0], str)
        and isinstance(expr[1], str)
        and expr[1].lower() in _DIRECTIONS
    )


def _order_clauses(model: type, expr: Any) -> list:
    if _is_expression(expr):
        return [expr]
    if isinstance(expr, SortClause):
        return [_DIRECTIONS[expr.dir](_column(model, expr.field))]
    if isinstance(expr, str):
        if expr.startswith("-"):
            return [desc(_column(model, expr[1:]))]
        return [asc(_column(model, expr))]
    if _is_sort_pair(expr):
        field, direction = expr
        return [_DIRECTIONS[direction.lower()](_column(model, field))]
    if isinstance(expr, (list, tuple)):
        clauses = []
        for item in expr:
            clauses.extend(_order_clauses(model, item))
        return clauses
    raise TypeError(f"unsupported order_by expression: {expr!r}")


def apply_order_by(stmt: Select, model: type, expr: Any) -> Select:
    """Replace the ordering of ``stmt`` with ``expr``; ``None`` keeps it as is."""
    if expr is None:
        return stmt
    return stmt.order_by(None).order_by(*_order_clauses(model, expr))


def apply_select(stmt: Select, model: type, fields: Any) -> Select:
    """Restrict loaded columns to ``fields``; rows stay ``model`` instances."""
    if fields is None:
        return stmt
    if isinstance(fields, str) or _is_expression(fields):
        fields = [fields]
    attrs = [item if _is_expression(item) else _column(model, item) for item in fields]
    if not attrs:
        return stmt
    return stmt.options(load_only(*attrs))
