"""SQL gateway — the same Gateway contract served straight from a database.

Used for self-hosted deployments and by the test suite (in-memory
SQLite). Tables come from crmboard.models; queries are translated to
SQLAlchemy Core. Sessions are short-lived and synchronous, one per call,
and run on the default executor so the event loop stays free (calls are
serialized for SQLite).

Authentication in this mode accepts company API tokens (adv_live_...):
an active token resolves to the user who created it.
"""

import asyncio
import logging
import mimetypes
import threading
from datetime import datetime
from pathlib import Path

from sqlalchemy import String, delete, func, insert, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ..database import UTCDateTime
from ..errors import RemoteError, ValidationFailure
from ..models import Base
from ..models.base import new_id
from .base import Gateway, Query

log = logging.getLogger("crmboard.gateway")


def _coerce(column, value):
    if isinstance(column.type, UTCDateTime) and isinstance(value, str):
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    return value


def _clause(column, op: str, value):
    if op == "eq":
        return column == _coerce(column, value)
    if op == "neq":
        return column != _coerce(column, value)
    if op == "is":
        return column.is_(None) if value is None else column.is_(value)
    if op == "in":
        return column.in_([_coerce(column, v) for v in value])
    if op == "ilike":
        return column.ilike(str(value).replace("*", "%"))
    if op == "gte":
        return column >= _coerce(column, value)
    if op == "lte":
        return column <= _coerce(column, value)
    if op == "gt":
        return column > _coerce(column, value)
    if op == "lt":
        return column < _coerce(column, value)
    raise ValidationFailure(f"Unsupported operator: {op}")


class SqlGateway(Gateway):
    def __init__(self, session_factory: sessionmaker, storage_root: str = ".crmboard/storage",
                 public_base_url: str = "http://localhost:8000"):
        self.session_factory = session_factory
        self.storage_root = Path(storage_root)
        self.public_base_url = public_base_url.rstrip("/")
        # SQLite connections cannot be shared by concurrent worker threads
        bind = session_factory.kw.get("bind")
        self._serial = threading.Lock() if bind is not None and bind.dialect.name == "sqlite" else None

    async def _run(self, fn):
        """Run a blocking session block on the default executor."""
        if self._serial is not None:
            def work():
                with self._serial:
                    return fn()
        else:
            work = fn
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, work)

    def _table(self, name: str):
        try:
            return Base.metadata.tables[name]
        except KeyError:
            raise RemoteError(f"Unknown table: {name}", status_code=404) from None

    def _column(self, table, name: str):
        try:
            return table.c[name]
        except KeyError:
            raise ValidationFailure(f"Unknown column {name!r} on {table.name}") from None

    def _where(self, table, query: Query) -> list:
        clauses = []
        for column, op, value in query.filters:
            clauses.append(_clause(self._column(table, column), op, value))
        for group in query.or_groups:
            clauses.append(or_(*[_clause(self._column(table, c), op, v) for c, op, v in group]))
        return clauses

    def _pk(self, table):
        return list(table.primary_key.columns)[0]

    # ── Tables ──────────────────────────────────────────────────────

    async def select(self, query: Query) -> list[dict]:
        table = self._table(query.table)
        stmt = select(table).where(*self._where(table, query))
        for column, ascending in query.order_by:
            col = self._column(table, column)
            stmt = stmt.order_by(col.asc() if ascending else col.desc())
        if query.limit_n is not None:
            stmt = stmt.limit(query.limit_n)

        def _do():
            with self.session_factory() as db:
                try:
                    return [dict(r._mapping) for r in db.execute(stmt)]
                except SQLAlchemyError as e:
                    raise RemoteError(f"Select on {query.table} failed: {e}") from e

        return await self._run(_do)

    async def count(self, query: Query) -> int:
        table = self._table(query.table)
        stmt = select(func.count()).select_from(table).where(*self._where(table, query))

        def _do():
            with self.session_factory() as db:
                try:
                    return int(db.execute(stmt).scalar() or 0)
                except SQLAlchemyError as e:
                    raise RemoteError(f"Count on {query.table} failed: {e}") from e

        return await self._run(_do)

    async def insert(self, table_name: str, rows: dict | list[dict]) -> list[dict]:
        table = self._table(table_name)
        pk = self._pk(table)
        payload = []
        for row in rows if isinstance(rows, list) else [rows]:
            row = {k: _coerce(table.c[k], v) for k, v in row.items() if k in table.c}
            if row.get(pk.name) is None and isinstance(pk.type, String):
                row[pk.name] = new_id()
            payload.append(row)
        ids = [r[pk.name] for r in payload]

        def _do():
            with self.session_factory() as db:
                try:
                    for row in payload:
                        db.execute(insert(table).values(**row))
                    db.commit()
                    result = db.execute(select(table).where(pk.in_(ids)))
                    return {r._mapping[pk.name]: dict(r._mapping) for r in result}
                except SQLAlchemyError as e:
                    db.rollback()
                    raise RemoteError(f"Insert into {table_name} failed: {e}") from e

        by_id = await self._run(_do)
        return [by_id[i] for i in ids if i in by_id]

    async def update(self, query: Query, values: dict) -> list[dict]:
        table = self._table(query.table)
        pk = self._pk(table)
        values = {k: _coerce(table.c[k], v) for k, v in values.items() if k in table.c}
        where = self._where(table, query)

        def _do():
            with self.session_factory() as db:
                try:
                    ids = list(db.execute(select(pk).where(*where)).scalars())
                    if not ids:
                        return []
                    db.execute(update(table).where(pk.in_(ids)).values(**values))
                    db.commit()
                    return [dict(r._mapping) for r in db.execute(select(table).where(pk.in_(ids)))]
                except SQLAlchemyError as e:
                    db.rollback()
                    raise RemoteError(f"Update on {query.table} failed: {e}") from e

        return await self._run(_do)

    async def delete(self, query: Query) -> int:
        table = self._table(query.table)
        stmt = delete(table).where(*self._where(table, query))

        def _do():
            with self.session_factory() as db:
                try:
                    result = db.execute(stmt)
                    db.commit()
                    return result.rowcount or 0
                except SQLAlchemyError as e:
                    db.rollback()
                    raise RemoteError(f"Delete on {query.table} failed: {e}") from e

        return await self._run(_do)

    # ── Auth ────────────────────────────────────────────────────────

    async def get_user(self, access_token: str) -> dict | None:
        if not access_token:
            return None
        q = Query("api_tokens").eq("token", access_token).eq("is_active", True)
        token = await self.select_one(q)
        if not token:
            return None
        return {"id": token["created_by"], "empresa_id": token["empresa_id"]}

    # ── Storage (local directory) ───────────────────────────────────

    def _path(self, bucket: str, path: str) -> Path:
        target = (self.storage_root / bucket / path).resolve()
        root = (self.storage_root / bucket).resolve()
        if root not in target.parents:
            raise RemoteError(f"Invalid storage path: {path}", status_code=400)
        return target

    async def upload(self, bucket: str, path: str, content: bytes, content_type: str) -> str:
        target = self._path(bucket, path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
        log.debug(f"Stored {len(content)} bytes at {bucket}/{path} ({content_type or mimetypes.guess_type(path)[0]})")
        return path

    async def remove(self, bucket: str, paths: list[str]) -> None:
        for p in paths:
            self._path(bucket, p).unlink(missing_ok=True)

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.public_base_url}/storage/v1/object/public/{bucket}/{path}"
