"""Changesets: validated attribute changes for a record about to be written.

A handle resolves its changeset builder once, in this order:

* an explicit ``changeset`` callable ``(record, attrs) -> Changeset``,
* a pydantic model class, used to validate ``attrs``,
* a ``changeset`` classmethod defined on the mapped model,
* :func:`cast_changes`, which only checks ``attrs`` against the mapped columns.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from pydantic import BaseModel, ValidationError
from sqlalchemy.inspection import inspect as sa_inspect


@dataclass
class Changeset:
    record: Any
    changes: dict[str, Any] = field(default_factory=dict)
    errors: dict[str, list[str]] = field(default_factory=dict)

    @property
    def valid(self) -> bool:
        return not self.errors

    def add_error(self, key: str, message: str) -> None:
        self.errors.setdefault(key, []).append(message)

    def apply(self) -> Any:
        for key, value in self.changes.items():
            setattr(self.record, key, value)
        return self.record


ChangesetBuilder = Callable[[Any, Mapping[str, Any]], Changeset]


def _is_new(record: Any) -> bool:
    state = sa_inspect(record)
    return state.transient or state.pending


def _generated(column) -> bool:
    if column.default is not None or column.server_default is not None:
        return True
    return bool(column.primary_key and column.autoincrement in (True, "auto"))


def cast_changes(model: type, record: Any, attrs: Mapping[str, Any]) -> Changeset:
    mapper = sa_inspect(model)
    columns = {attr.key: attr.columns[0] for attr in mapper.column_attrs}
    cs = Changeset(record=record)
    for key, value in dict(attrs or {}).items():
        column = columns.get(key)
        if column is None:
            cs.add_error(str(key), "is not a field")
            continue
        if value is None and not column.nullable:
            cs.add_error(key, "can't be null")
            continue
        cs.changes[key] = value

    if _is_new(record):
        for key, column in columns.items():
            if column.nullable or _generated(column):
                continue
            if key in cs.changes or key in cs.errors:
                continue
            if getattr(record, key, None) is None:
                cs.add_error(key, "can't be blank")
    return cs


def _pydantic_builder(schema: type[BaseModel]) -> ChangesetBuilder:
    def build(record: Any, attrs: Mapping[str, Any]) -> Changeset:
        try:
            validated = schema.model_validate(dict(attrs or {}))
        except ValidationError as exc:
            cs = Changeset(record=record)
            for err in exc.errors():
                loc = err.get("loc") or ()
                cs.add_error(str(loc[0]) if loc else "__root__", err.get("msg", "is invalid"))
            return cs
        return Changeset(record=record, changes=validated.model_dump(exclude_unset=True))

    return build


def resolve_changeset_builder(model: type, changeset: Any = None) -> ChangesetBuilder:
    if isinstance(changeset, type) and issubclass(changeset, BaseModel):
        return _pydantic_builder(changeset)
    if changeset is not None:
        return changeset
    model_changeset = getattr(model, "changeset", None)
    if callable(model_changeset):
        return model_changeset
    return lambda record, attrs: cast_changes(model, record, attrs)


@dataclass
class WriteResult:
    ok: bool
    record: Any = None
    errors: dict[str, list[str]] = field(default_factory=dict)

    @classmethod
    def invalid(cls, cs: Changeset) -> "WriteResult":
        return cls(ok=False, record=cs.record, errors=cs.errors)
