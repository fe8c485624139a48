from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterable, Iterator, Protocol

from sqlalchemy import Select, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from crux.core.errors import UnknownOptionError
from crux.services.pagination import count_statement

_LOG = logging.getLogger("crux.repo")


class Repo(Protocol):
    def execute(self, stmt: Select, **options) -> list: ...

    def count(self, stmt: Select, **options) -> int: ...

    def exists(self, stmt: Select, **options) -> bool: ...

    def get_by_id(self, model: type, id: Any, **options) -> Any: ...

    def insert(self, record: Any, **options) -> Any: ...

    def update(self, record: Any, **options) -> Any: ...

    def delete(self, record: Any, **options) -> Any: ...

    def stream(self, stmt: Select, **options) -> Iterator[Any]: ...

    def preload(self, records: Any, preloads: Iterable[str], **options) -> Any: ...


class SessionRepo:
    """Repository over a single SQLAlchemy session.

    Supported options:

    * ``prefix`` - schema name substituted for the model's default schema,
    * ``execution_options`` - passed through to SQLAlchemy as is,
    * ``yield_per`` - batch size used while streaming.

    Any other key raises :class:`UnknownOptionError`.
    """

    ALLOWED_OPTIONS = frozenset({"prefix", "execution_options", "yield_per"})

    def __init__(self, db: Session):
        self.db = db

    def _execution_options(self, options: dict[str, Any]) -> dict[str, Any]:
        unknown = set(options) - self.ALLOWED_OPTIONS
        if unknown:
            raise UnknownOptionError(unknown)
        exec_opts = dict(options.get("execution_options") or {})
        prefix = options.get("prefix")
        if prefix:
            exec_opts["schema_translate_map"] = {None: prefix}
        if options.get("yield_per"):
            exec_opts["yield_per"] = int(options["yield_per"])
        return exec_opts

    def execute(self, stmt: Select, **options) -> list:
        exec_opts = self._execution_options(options)
        return list(self.db.scalars(stmt, execution_options=exec_opts).all())

    def count(self, stmt: Select, **options) -> int:
        exec_opts = self._execution_options(options)
        return int(self.db.scalar(count_statement(stmt), execution_options=exec_opts) or 0)

    def exists(self, stmt: Select, **options) -> bool:
        exec_opts = self._execution_options(options)
        exists_stmt = select(stmt.order_by(None).exists())
        return bool(self.db.scalar(exists_stmt, execution_options=exec_opts))

    def get_by_id(self, model: type, id: Any, **options) -> Any:
        exec_opts = self._execution_options(options)
        return self.db.get(model, id, execution_options=exec_opts)

    def stream(self, stmt: Select, **options) -> Iterator[Any]:
        exec_opts = self._execution_options(options)
        exec_opts.setdefault("yield_per", 500)
        return iter(self.db.scalars(stmt, execution_options=exec_opts))

    @contextmanager
    def _routed(self, exec_opts: dict[str, Any], what: str) -> Iterator[None]:
        """Run a unit of work on the session's connection and commit it.

        ``Session.connection(execution_options=...)`` is ignored once a read
        has already procured the connection, so the options are set on the
        current connection in place. They last until the commit or rollback
        that ends the transaction. Loaded attributes are kept across that
        commit; reloading them later would go through an unrouted connection.
        """
        if exec_opts:
            self.db.connection().execution_options(**exec_opts)
        expire_on_commit = self.db.expire_on_commit
        try:
            yield
            self.db.expire_on_commit = False
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            _LOG.warning("%s failed; session rolled back", what)
            raise
        finally:
            self.db.expire_on_commit = expire_on_commit

    def _write(self, record: Any, options: dict[str, Any], *, remove: bool = False) -> Any:
        exec_opts = self._execution_options(options)
        with self._routed(exec_opts, f"write of {type(record).__name__}"):
            if remove:
                self.db.delete(record)
            else:
                self.db.add(record)
            self.db.flush()
            if not remove:
                self.db.refresh(record)
        return record

    def insert(self, record: Any, **options) -> Any:
        return self._write(record, options)

    def update(self, record: Any, **options) -> Any:
        return self._write(record, options)

    def delete(self, record: Any, **options) -> Any:
        return self._write(record, options, remove=True)

    def preload(self, records: Any, preloads: Iterable[str], **options) -> Any:
        exec_opts = self._execution_options(options)
        names = list(preloads or [])
        if records is None or not names:
            return records
        targets = records if isinstance(records, list) else [records]
        if not exec_opts:
            for record in targets:
                self.db.refresh(record, attribute_names=names)
            return records
        with self._routed(exec_opts, "preload"):
            for record in targets:
                self.db.refresh(record, attribute_names=names)
        return records
