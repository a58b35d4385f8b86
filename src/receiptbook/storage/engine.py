"""
receiptbook.storage.engine
~~~~~~~~~~~~~~~~~~~~~~~~~~
Async adapter over a single SQLite connection.

The connection runs in autocommit mode: every statement issued outside a
transaction is committed on its own, and ``run_in_transaction`` wraps a unit
of work in an explicit ``BEGIN IMMEDIATE`` / ``COMMIT`` / ``ROLLBACK``.

Blocking ``sqlite3`` calls run in a worker thread (``asyncio.to_thread``) and
are serialised by a ``threading.Lock``. Transactions are serialised by an
``asyncio.Lock``; statements issued outside a transaction wait on the same
lock so they never land inside another task's open transaction. Statements
issued from inside the unit of work are recognised through a context
variable and run straight away.

Usage::

    engine = StorageEngine(tmp_path / "receipts.db")
    await engine.initialize()
    new_id = await engine.insert(Receipt(store_name="SuperMart"))
    rows   = await engine.query_where(ReceiptItem, {"receipt_id": new_id})
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import threading
from contextvars import ContextVar
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, Mapping, Sequence, TypeVar

from ..exceptions import (
    StorageInitError, StorageQueryError, StorageTransactionError, StorageWriteError,
)
from .schema import DEFAULT_TABLES, TableSpec

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

T = TypeVar("T")

MEMORY = ":memory:"

# tokens of the transactions the current task is running inside
_active_transactions: ContextVar[frozenset] = ContextVar(
    "receiptbook_active_transactions", default=frozenset(),
)


# ---------------------------------------------------------------------------
# Statement helpers (run in the worker thread, connection lock held)
# ---------------------------------------------------------------------------

def _execute(conn: sqlite3.Connection, sql: str, params: tuple = ()) -> int:
    return conn.execute(sql, params).rowcount


def _insert(conn: sqlite3.Connection, sql: str, params: tuple) -> int:
    return int(conn.execute(sql, params).lastrowid)


def _fetch(conn: sqlite3.Connection, sql: str, params: tuple) -> list[sqlite3.Row]:
    return conn.execute(sql, params).fetchall()


class StorageEngine:
    """
    Owns one SQLite connection and the schema described by ``tables``.

    Args:
        db_path:         Database file, or ``":memory:"``.
        tables:          Table descriptions; one per entity class.
        journal_mode:    SQLite journal mode applied on open.
        busy_timeout_ms: Wait time for file locks held by other processes.
    """

    def __init__(
        self,
        db_path: Path | str,
        *,
        tables: Iterable[TableSpec] = DEFAULT_TABLES,
        journal_mode: str = "WAL",
        busy_timeout_ms: int = 5000,
    ) -> None:
        self.db_path: Path | str = db_path if str(db_path) == MEMORY else Path(db_path)
        self.journal_mode = journal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self._tables: dict[type, TableSpec] = {t.entity: t for t in tables}
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()
        self._tx_lock = asyncio.Lock()
        # identifies the open transaction; None when there is none
        self._tx_token: object | None = None
        # (entity, id before insert) for rows inserted in the open transaction
        self._assigned: list[tuple[Any, int]] | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self._conn is not None

    async def initialize(self) -> None:
        """
        Open the connection and create missing tables and indexes.

        Safe to call more than once. Raises ``StorageInitError`` if the file
        cannot be created or opened, or the schema cannot be applied.
        """
        async with self._tx_lock:
            if self._conn is not None:
                return
            try:
                self._conn = await asyncio.to_thread(self._open)
            except (sqlite3.Error, OSError) as exc:
                raise StorageInitError(
                    f"Cannot initialise database at {self.db_path}", cause=exc,
                ) from exc
        logger.debug("Database ready: %s", self.db_path)

    def _open(self) -> sqlite3.Connection:
        if self.db_path != MEMORY:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            self.db_path, check_same_thread=False, isolation_level=None,
        )
        try:
            conn.row_factory = sqlite3.Row
            conn.execute(f"PRAGMA journal_mode={self.journal_mode}")
            conn.execute(f"PRAGMA busy_timeout={int(self.busy_timeout_ms)}")
            conn.executescript("".join(t.create_sql() for t in self._tables.values()))
        except sqlite3.Error:
            conn.close()
            raise
        return conn

    async def close(self) -> None:
        if self._owns_transaction():
            raise StorageTransactionError("Cannot close the engine inside a transaction")
        async with self._tx_lock:
            with self._lock:
                if self._conn is not None:
                    self._conn.close()
                    self._conn = None
        logger.debug("Database closed: %s", self.db_path)

    async def __aenter__(self) -> "StorageEngine":
        await self.initialize()
        return self

    async def __aexit__(self, *_) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _owns_transaction(self) -> bool:
        # Tasks spawned inside a unit of work inherit the context; a token
        # from an earlier transaction no longer matches.
        token = self._tx_token
        return token is not None and token in _active_transactions.get()

    def _call(self, fn: Callable[..., T], *args: Any) -> T:
        with self._lock:
            if self._conn is None:
                raise StorageInitError("Database is not initialised; call initialize() first")
            return fn(self._conn, *args)

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        if not self.is_initialized:
            raise StorageInitError("Database is not initialised; call initialize() first")
        if self._owns_transaction():
            return await asyncio.to_thread(self._call, fn, *args)
        async with self._tx_lock:
            return await asyncio.to_thread(self._call, fn, *args)

    def _table_for(self, entity: Any) -> TableSpec:
        cls = entity if isinstance(entity, type) else type(entity)
        try:
            return self._tables[cls]
        except KeyError:
            raise TypeError(f"No table registered for {cls.__name__}") from None

    @staticmethod
    def _params(table: TableSpec, row: Any, *extra: Any) -> tuple:
        try:
            return table.to_params(row) + extra
        except (AttributeError, TypeError, ValueError) as exc:
            raise StorageWriteError(
                f"Cannot store {type(row).__name__} in {table.name}", cause=exc,
            ) from exc

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert(self, row: Any) -> int:
        """Insert ``row``, set ``row.id`` to the new surrogate key and return it."""
        table = self._table_for(row)
        cols = ", ".join(table.column_names)
        marks = ", ".join("?" for _ in table.columns)
        sql = f"INSERT INTO {table.name} ({cols}) VALUES ({marks})"
        try:
            new_id = await self._run(_insert, sql, self._params(table, row))
        except sqlite3.Error as exc:
            raise StorageWriteError(f"Insert into {table.name} failed", cause=exc) from exc
        if self._assigned is not None and self._owns_transaction():
            self._assigned.append((row, row.id))
        row.id = new_id
        return new_id

    async def update(self, row: Any) -> int:
        """
        Write every column of the row with ``row.id``.

        Returns the number of rows affected; an unknown id is a no-op that
        returns 0.
        """
        table = self._table_for(row)
        assignments = ", ".join(f"{name} = ?" for name in table.column_names)
        sql = f"UPDATE {table.name} SET {assignments} WHERE id = ?"
        try:
            return await self._run(_execute, sql, self._params(table, row, row.id))
        except sqlite3.Error as exc:
            raise StorageWriteError(f"Update of {table.name} #{row.id} failed", cause=exc) from exc

    async def delete_by_id(self, entity_type: type, row_id: int) -> int:
        """Delete one row by primary key. Returns 0 or 1."""
        table = self._table_for(entity_type)
        try:
            return await self._run(_execute, f"DELETE FROM {table.name} WHERE id = ?", (row_id,))
        except sqlite3.Error as exc:
            raise StorageWriteError(f"Delete of {table.name} #{row_id} failed", cause=exc) from exc

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def query_all(
        self, entity_type: type, order_by: Sequence[str] | None = None,
    ) -> list:
        return await self.query_where(entity_type, {}, order_by)

    async def query_where(
        self,
        entity_type: type,
        where: Mapping[str, Any],
        order_by: Sequence[str] | None = None,
    ) -> list:
        """
        Rows whose attributes equal every value in ``where``.

        ``order_by`` lists attribute names; a leading ``-`` sorts that
        attribute descending. Without it rows come back in id order.
        Unknown attribute names raise ``ValueError``.
        """
        table = self._table_for(entity_type)
        sql, params = self._select_sql(table, where, order_by)
        try:
            rows = await self._run(_fetch, sql, params)
        except sqlite3.Error as exc:
            raise StorageQueryError(f"Query on {table.name} failed", cause=exc) from exc
        return [table.from_row(r) for r in rows]

    @staticmethod
    def _select_sql(
        table: TableSpec,
        where: Mapping[str, Any],
        order_by: Sequence[str] | None,
    ) -> tuple[str, tuple]:
        converters = {c.attr: c.to_db for c in table.columns}
        clauses: list[str] = []
        params: list[Any] = []
        for attr, value in where.items():
            col = table.column_for(attr)
            if value is None:
                clauses.append(f"{col} IS NULL")
            else:
                clauses.append(f"{col} = ?")
                params.append(converters.get(attr, lambda v: v)(value))

        terms = []
        for key in order_by or ("id",):
            desc = key.startswith("-")
            col = table.column_for(key.lstrip("-"))
            terms.append(f"{col} {'DESC' if desc else 'ASC'}")

        sql = f"SELECT * FROM {table.name}"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY " + ", ".join(terms)
        return sql, tuple(params)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def run_in_transaction(
        self, unit_of_work: Callable[["StorageEngine"], Awaitable[T]],
    ) -> T:
        """
        Run ``unit_of_work(engine)`` so that all of its writes commit or none do.

        Any exception raised inside rolls the transaction back and is
        re-raised as ``StorageTransactionError`` with the original as
        ``cause``. Ids assigned by inserts inside a rolled-back transaction
        are reset to their previous values. Called from inside another
        transaction, the unit of work simply joins it.
        """
        if self._owns_transaction():
            return await unit_of_work(self)
        if not self.is_initialized:
            raise StorageInitError("Database is not initialised; call initialize() first")

        async with self._tx_lock:
            self._tx_token = object()
            ctx_token = _active_transactions.set(
                _active_transactions.get() | {self._tx_token},
            )
            assigned: list[tuple[Any, int]] = []
            self._assigned = assigned
            try:
                await self._settle(self._call, _execute, "BEGIN IMMEDIATE")
                result = await unit_of_work(self)
                await self._settle(self._call, _execute, "COMMIT")
            except StorageTransactionError:
                await self._settle(self._rollback, assigned)
                raise
            except Exception as exc:
                await self._settle(self._rollback, assigned)
                raise StorageTransactionError("Transaction rolled back", cause=exc) from exc
            except BaseException:
                # a cancellation that arrives during COMMIT finds nothing to undo
                await self._settle(self._rollback, assigned)
                raise
            finally:
                self._assigned = None
                self._tx_token = None
                _active_transactions.reset(ctx_token)
        logger.debug("Transaction committed on %s", self.db_path)
        return result

    @staticmethod
    async def _settle(fn: Callable[..., T], *args: Any) -> T:
        """
        Run ``fn`` in a worker thread and wait for it to finish even if the
        calling task is cancelled meanwhile; the cancellation is re-raised
        afterwards.
        """
        job = asyncio.ensure_future(asyncio.to_thread(fn, *args))
        cancelled = False
        while not job.done():
            try:
                await asyncio.shield(job)
            except asyncio.CancelledError:
                cancelled = True
        result = job.result()
        if cancelled:
            raise asyncio.CancelledError
        return result

    def _rollback(self, assigned: list[tuple[Any, int]]) -> bool:
        """
        Roll back the open transaction, if any, and restore the ids its
        inserts assigned. Runs in the worker thread. Returns True when a
        ROLLBACK was issued.
        """
        with self._lock:
            if self._conn is None or not self._conn.in_transaction:
                return False
            try:
                self._conn.execute("ROLLBACK")
            except sqlite3.Error as exc:
                logger.error("Rollback failed on %s: %s", self.db_path, exc)
                return False
        for entity, previous_id in reversed(assigned):
            entity.id = previous_id
        logger.warning("Transaction rolled back on %s", self.db_path)
        return True


__all__ = ["StorageEngine", "MEMORY"]
