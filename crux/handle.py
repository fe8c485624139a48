"""CRUD handle bound to one mapped model.

Build one per model and keep it around; configuration is frozen at
construction::

    baguettes = Crux(Baguette, SessionRepo(db), order_by="name", select=["name", "kind"])

    baguettes.find_by({"kind": "baguepi"}, prefix="francaise", exclude_deleted=True)
    page = baguettes.find_by({"kind": "baguepi"}, page=2, page_size=15)
    result = baguettes.create({"name": "tradition"})

Options recognised by the read operations (``exclude_deleted``,
``only_deleted``, ``page``, ``offset``, ``page_size``, ``order_by``,
``select``) are consumed here; every other keyword is forwarded to the
repository.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping

from sqlalchemy import Select, select as sa_select
from sqlalchemy.inspection import inspect as sa_inspect

from crux.core.config import settings
from crux.core.errors import InvalidChangesError, MultipleRecordsFound, OperationDisabledError, RecordNotFound
from crux.db.repo import Repo
from crux.schemas.options import QueryOptions
from crux.schemas.page import Page
from crux.services import pagination
from crux.services.changes import Changeset, WriteResult, resolve_changeset_builder
from crux.services.filters import normalize_filters
from crux.services.materializer import materialize
from crux.services.option_router import clean_options, split_options
from crux.services.query_modifiers import (
    apply_filters,
    apply_order_by,
    apply_select,
    apply_soft_delete,
    column_names,
)

_LOG = logging.getLogger("crux.handle")

OPERATIONS = frozenset(
    {
        "change",
        "create",
        "create_if_not_exist",
        "update",
        "update_or_raise",
        "delete",
        "get",
        "get_or_raise",
        "get_by",
        "get_by_or_raise",
        "find_by",
        "all",
        "stream",
        "preload",
        "exists",
        "count",
        "count_by",
        "to_schema_params",
    }
)

# Add new write operations here as well.
WRITE_OPERATIONS = frozenset(
    {
        "change",
        "create",
        "create_if_not_exist",
        "update",
        "update_or_raise",
        "delete",
    }
)


def excluded(except_: Iterable[str], operation: str) -> bool:
    return operation in set(except_ or ())


@dataclass(frozen=True)
class CruxConfig:
    page_size: int
    order_by: Any = None
    select: Any = None
    read_only: bool = False
    excluded: frozenset = field(default_factory=frozenset)


def _disabled(name: str, model: type):
    def _raise(*args, **kwargs):
        raise OperationDisabledError(name, model)

    _raise.__name__ = name
    return _raise


class Crux:
    def __init__(
        self,
        model: type,
        repo: Repo,
        *,
        page_size: int | None = None,
        order_by: Any = None,
        select: Any = None,
        read_only: bool = False,
        exclude: Iterable[str] = (),
        changeset: Any = None,
    ):
        if page_size is not None and (not isinstance(page_size, int) or page_size <= 0):
            raise ValueError("page_size must be a positive integer")
        unknown = set(exclude or ()) - OPERATIONS
        if unknown:
            raise ValueError("Unknown operations in exclude: " + ", ".join(sorted(unknown)))

        except_ = frozenset(exclude or ())
        if read_only:
            except_ = except_ | WRITE_OPERATIONS

        self._model = model
        self._repo = repo
        self._config = CruxConfig(
            page_size=page_size or settings.CRUX_PAGE_SIZE,
            order_by=order_by,
            select=select,
            read_only=bool(read_only),
            excluded=except_,
        )
        self._changeset = resolve_changeset_builder(model, changeset)
        self._init_query = sa_select(model)

        for name in sorted(OPERATIONS):
            if excluded(except_, name):
                setattr(self, name, _disabled(name, model))
        if except_:
            _LOG.info("crux handle for %s without: %s", model.__name__, ", ".join(sorted(except_)))

    # configuration

    @property
    def schema_module(self) -> type:
        return self._model

    @property
    def repo(self) -> Repo:
        return self._repo

    @property
    def config(self) -> CruxConfig:
        return self._config

    @property
    def page_size(self) -> int:
        return self._config.page_size

    @property
    def order_by(self) -> Any:
        return self._config.order_by

    @property
    def select(self) -> Any:
        return self._config.select

    @property
    def read_only(self) -> bool:
        return self._config.read_only

    @property
    def excluded(self) -> frozenset:
        return self._config.excluded

    def init_query(self) -> Select:
        return self._init_query

    page_to_offset = staticmethod(pagination.page_to_offset)
    offset_to_page = staticmethod(pagination.offset_to_page)

    # helpers

    def _scoped(self, filters: Any, qo: QueryOptions) -> Select:
        """Soft-delete scope first, then the equality filters."""
        base = filters if isinstance(filters, Select) else self._init_query
        stmt = apply_soft_delete(
            base,
            self._model,
            exclude_deleted=qo.exclude_deleted,
            only_deleted=qo.only_deleted,
        )
        if isinstance(filters, Select):
            return stmt
        return apply_filters(stmt, self._model, normalize_filters(filters))

    def _projection(self, qo: QueryOptions) -> Any:
        return qo.select if qo.select is not None else self._config.select

    def _ordering(self, qo: QueryOptions) -> Any:
        return qo.order_by if qo.order_by is not None else self._config.order_by

    def _pk_statement(self, id: Any) -> Select:
        pk_columns = sa_inspect(self._model).primary_key
        values = id if isinstance(id, tuple) else (id,)
        if len(values) != len(pk_columns):
            raise ValueError(f"{self._model.__name__} primary key has {len(pk_columns)} column(s)")
        stmt = self._init_query
        for column, value in zip(pk_columns, values):
            stmt = stmt.where(column == value)
        return stmt

    def _one_or_none(self, stmt: Select, repo_options: dict[str, Any]) -> Any:
        rows = self._repo.execute(stmt.limit(2), **repo_options)
        if len(rows) > 1:
            raise MultipleRecordsFound(f"Expected at most one {self._model.__name__}, got several")
        return rows[0] if rows else None

    def _preloaded(self, record: Any, preloads: Any, repo_options: dict[str, Any]) -> Any:
        if record is None or not preloads:
            return record
        return self._repo.preload(record, preloads, **repo_options)

    def _exists(self, presence: Any, options: Mapping[str, Any]) -> bool:
        qo, repo_options = split_options(options)
        stmt = self._scoped(presence, qo)
        return self._repo.exists(stmt, **repo_options)

    def _get_by(self, clauses: Any, options: Mapping[str, Any]) -> Any:
        qo, repo_options = split_options(options)
        stmt = self._scoped(clauses, qo)
        stmt = apply_select(stmt, self._model, self._projection(qo))
        record = self._one_or_none(stmt, repo_options)
        return self._preloaded(record, options.get("preloads"), repo_options)

    def _create(self, attrs: Mapping[str, Any] | None, options: Mapping[str, Any]) -> WriteResult:
        cs = self._changeset(self._model(), attrs or {})
        if not cs.valid:
            return WriteResult.invalid(cs)
        record = self._repo.insert(cs.apply(), **clean_options(options))
        return WriteResult(ok=True, record=record)

    def _update(self, record: Any, attrs: Mapping[str, Any], options: Mapping[str, Any]) -> WriteResult:
        cs = self._changeset(record, attrs or {})
        if not cs.valid:
            return WriteResult.invalid(cs)
        saved = self._repo.update(cs.apply(), **clean_options(options))
        return WriteResult(ok=True, record=saved)

    def _count(self, filters: Any, options: Mapping[str, Any]) -> int:
        qo, repo_options = split_options(options)
        return self._repo.count(self._scoped(filters, qo), **repo_options)

    # writes

    def change(self, record: Any, attrs: Mapping[str, Any] | None = None) -> Changeset:
        """Build a changeset for ``record`` without writing anything."""
        return self._changeset(record, attrs or {})

    def create(self, attrs: Mapping[str, Any] | None = None, **options) -> WriteResult:
        return self._create(attrs, options)

    def create_if_not_exist(
        self,
        presence_attrs: Mapping[str, Any],
        creation_attrs: Mapping[str, Any] | None = None,
        **options,
    ) -> WriteResult:
        """Return the row matching ``presence_attrs``, creating it when absent.

        ``creation_attrs`` defaults to ``presence_attrs``.
        """
        if self._exists(presence_attrs, options):
            return WriteResult(ok=True, record=self._get_by(presence_attrs, options))
        attrs = presence_attrs if creation_attrs is None else creation_attrs
        return self._create(dict(attrs), options)

    def update(self, record: Any, attrs: Mapping[str, Any], **options) -> WriteResult:
        return self._update(record, attrs, options)

    def update_or_raise(self, record: Any, attrs: Mapping[str, Any], **options) -> Any:
        result = self._update(record, attrs, options)
        if not result.ok:
            raise InvalidChangesError(result.errors, record=result.record)
        return result.record

    def delete(self, record: Any, **options) -> WriteResult:
        return WriteResult(ok=True, record=self._repo.delete(record, **clean_options(options)))

    # single reads

    def get(self, id: Any, **options) -> Any:
        """Fetch by primary key; ``None`` when absent.

        ``preloads`` names relationships to load, ``select`` overrides the
        default projection.
        """
        return self._get(id, options)

    def _get(self, id: Any, options: Mapping[str, Any]) -> Any:
        qo, repo_options = split_options(options)
        fields = self._projection(qo)
        if fields is None:
            record = self._repo.get_by_id(self._model, id, **repo_options)
        else:
            stmt = apply_select(self._pk_statement(id), self._model, fields)
            record = self._one_or_none(stmt, repo_options)
        return self._preloaded(record, options.get("preloads"), repo_options)

    def get_or_raise(self, id: Any, **options) -> Any:
        record = self._get(id, options)
        if record is None:
            raise RecordNotFound(f"{self._model.__name__} {id!r} not found")
        return record

    def get_by(self, clauses: Any, **options) -> Any:
        """First row matching ``clauses``; raises if more than one matches."""
        return self._get_by(clauses, options)

    def get_by_or_raise(self, clauses: Any, **options) -> Any:
        record = self._get_by(clauses, options)
        if record is None:
            raise RecordNotFound(f"No {self._model.__name__} matching {normalize_filters(clauses)!r}")
        return record

    # multi reads

    def find_by(self, filters: Any = None, **options) -> list | Page:
        """Fetch every row matching ``filters`` (a mapping, pairs or a ``Select``).

        Returns a list, or a :class:`Page` when ``page`` or ``offset`` is given.
        """
        return self._find_by(filters, options)

    def _find_by(self, filters: Any, options: Mapping[str, Any]) -> list | Page:
        qo, repo_options = split_options(options)
        stmt = self._scoped(filters, qo)
        paged = pagination.paginate(
            stmt,
            qo,
            count=lambda s: self._repo.count(s, **repo_options),
            default_page_size=self._config.page_size,
        )
        stmt = apply_order_by(paged.query, self._model, self._ordering(qo))
        stmt = apply_select(stmt, self._model, self._projection(qo))
        return materialize(
            stmt,
            paged.meta,
            execute=lambda s: self._repo.execute(s, **repo_options),
            model=self._model,
        )

    def all(self, **options) -> list | Page:
        return self._find_by({}, options)

    def stream(self, filters: Any = None, **options) -> Iterator[Any]:
        """Lazily iterate rows matching ``filters``; no ordering or pagination."""
        qo, repo_options = split_options(options)
        stmt = self._scoped(filters, qo)
        return self._repo.stream(stmt, **repo_options)

    # sugar

    def preload(self, records: Any, preloads: Iterable[str], **options) -> Any:
        return self._repo.preload(records, preloads, **clean_options(options))

    def exists(self, presence_attrs: Any, **options) -> bool:
        return self._exists(presence_attrs, options)

    def count(self, query: Any = None, **options) -> int:
        """Count rows of ``query`` (a statement or filters); the whole table when omitted."""
        return self._count(query, options)

    def count_by(self, filters: Any, **options) -> int:
        return self._count(filters, options)

    def to_schema_params(self, params: Mapping[str, Any], with_assoc: bool = True) -> dict[str, Any]:
        """Keep only the keys of ``params`` that name model fields.

        Relationships count as fields unless ``with_assoc`` is false.
        """
        allowed = column_names(self._model)
        if with_assoc:
            allowed += [rel.key for rel in sa_inspect(self._model).relationships]
        return {key: params[key] for key in allowed if key in params}
