from __future__ import annotations

from collections.abc import Mapping
from typing import Any


def normalize_filters(filters) -> list[tuple[str, Any]]:
    """Return filters as an ordered list of (field, value) pairs.

    Accepts ``None``, a mapping of field -> value, or a sequence of pairs.
    Field names are not checked here.
    """
    if filters is None:
        return []
    if isinstance(filters, Mapping):
        return [(key, value) for key, value in filters.items()]
    if isinstance(filters, (str, bytes)):
        raise TypeError("filters must be a mapping or a sequence of (field, value) pairs")
    pairs: list[tuple[str, Any]] = []
    for item in filters:
        try:
            key, value = item
        except (TypeError, ValueError):
            raise TypeError(f"filter entry must be a (field, value) pair, got {item!r}") from None
        pairs.append((key, value))
    return pairs
