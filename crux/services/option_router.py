from __future__ import annotations

from typing import Any, Mapping

from crux.schemas.options import CONTROL_KEYS, QueryOptions

# Consumed by the handle itself (get/get_by), never forwarded.
HANDLE_KEYS = frozenset({"preloads"})


def clean_options(options: Mapping[str, Any] | None) -> dict[str, Any]:
    """Drop every key this library consumes before a repository call."""
    if not options:
        return {}
    return {k: v for k, v in options.items() if k not in CONTROL_KEYS and k not in HANDLE_KEYS}


def split_options(options: Mapping[str, Any] | None) -> tuple[QueryOptions, dict[str, Any]]:
    options = dict(options or {})
    control = {k: v for k, v in options.items() if k in CONTROL_KEYS}
    return QueryOptions(**control), clean_options(options)
