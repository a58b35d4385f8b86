"""
tests/test_engine.py
~~~~~~~~~~~~~~~~~~~~
Tests for receiptbook.storage.engine — StorageEngine.
"""

from __future__ import annotations

import asyncio
import sqlite3
import time
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from receiptbook.exceptions import (
    StorageInitError, StorageQueryError, StorageTransactionError, StorageWriteError,
)
from receiptbook.models import Receipt, ReceiptItem
import receiptbook.storage.engine as engine_mod
from receiptbook.storage.engine import MEMORY, StorageEngine


def _receipt(name: str = "SuperMart", **kw) -> Receipt:
    return Receipt(store_name=name, **kw)


# ---------------------------------------------------------------------------
# initialize
# ---------------------------------------------------------------------------

class TestInitialize:
    async def test_creates_tables_and_index(self, engine, db_path):
        conn = sqlite3.connect(db_path)
        names = {r[0] for r in conn.execute("SELECT name FROM sqlite_master")}
        conn.close()
        assert {"Receipts", "ReceiptItems", "idx_ReceiptItems_receiptId"} <= names

    async def test_is_idempotent(self, engine):
        await engine.insert(_receipt())
        await engine.initialize()
        assert len(await engine.query_all(Receipt)) == 1

    async def test_reopen_on_existing_file(self, db_path):
        async with StorageEngine(db_path) as first:
            await first.insert(_receipt())
        async with StorageEngine(db_path) as second:
            assert len(await second.query_all(Receipt)) == 1

    async def test_creates_parent_directories(self, tmp_path):
        path = tmp_path / "a" / "b" / "receipts.db"
        async with StorageEngine(path) as eng:
            assert eng.is_initialized
        assert path.exists()

    async def test_unopenable_path_raises_init_error(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x", encoding="utf-8")
        eng = StorageEngine(blocker / "receipts.db")
        with pytest.raises(StorageInitError) as exc_info:
            await eng.initialize()
        assert isinstance(exc_info.value.cause, OSError)
        assert not eng.is_initialized

    async def test_operations_before_initialize_rejected(self, db_path):
        eng = StorageEngine(db_path)
        with pytest.raises(StorageInitError):
            await eng.insert(_receipt())
        with pytest.raises(StorageInitError):
            await eng.query_all(Receipt)
        with pytest.raises(StorageInitError):
            await eng.run_in_transaction(lambda e: e.query_all(Receipt))

    async def test_operations_after_close_rejected(self, db_path):
        eng = StorageEngine(db_path)
        await eng.initialize()
        await eng.close()
        with pytest.raises(StorageInitError):
            await eng.delete_by_id(Receipt, 1)

    async def test_in_memory_database(self):
        async with StorageEngine(MEMORY) as eng:
            new_id = await eng.insert(_receipt())
            assert new_id == 1


# ---------------------------------------------------------------------------
# insert / update / delete
# ---------------------------------------------------------------------------

class TestWrites:
    async def test_insert_assigns_sequential_ids(self, engine):
        a, b = _receipt("A"), _receipt("B")
        assert await engine.insert(a) == 1
        assert await engine.insert(b) == 2
        assert (a.id, b.id) == (1, 2)

    async def test_update_writes_all_columns(self, engine):
        r = _receipt(image_path="old.jpg")
        await engine.insert(r)
        r.store_name = "MegaMart"
        r.image_path = None
        assert await engine.update(r) == 1
        [found] = await engine.query_where(Receipt, {"id": r.id})
        assert found.store_name == "MegaMart"
        assert found.image_path is None

    async def test_update_missing_row_is_noop(self, engine):
        ghost = _receipt()
        ghost.id = 42
        assert await engine.update(ghost) == 0
        assert await engine.query_all(Receipt) == []

    async def test_delete_counts(self, engine):
        r = _receipt()
        await engine.insert(r)
        assert await engine.delete_by_id(Receipt, r.id) == 1
        assert await engine.delete_by_id(Receipt, r.id) == 0

    async def test_unregistered_entity_type(self, engine):
        with pytest.raises(TypeError):
            await engine.insert(object())

    async def test_constraint_violation_raises_write_error(self, engine):
        item = ReceiptItem(product_name="Milk")
        item.receipt_id = None  # receiptId is NOT NULL
        with pytest.raises(StorageWriteError) as exc_info:
            await engine.insert(item)
        assert isinstance(exc_info.value.cause, sqlite3.IntegrityError)
        assert item.id == 0

    @pytest.mark.parametrize("bad_date", ["2024-03-15", datetime(2024, 3, 15).date()])
    async def test_unconvertible_value_raises_write_error(self, engine, bad_date):
        r = _receipt(purchase_date=bad_date)
        with pytest.raises(StorageWriteError) as exc_info:
            await engine.insert(r)
        assert isinstance(exc_info.value.cause, AttributeError)
        assert r.id == 0
        assert await engine.query_all(Receipt) == []

    async def test_unconvertible_value_on_update_raises_write_error(self, engine):
        r = _receipt()
        await engine.insert(r)
        r.created_at = "yesterday"
        with pytest.raises(StorageWriteError):
            await engine.update(r)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

class TestQueries:
    async def test_query_all_empty(self, engine):
        assert await engine.query_all(ReceiptItem) == []

    async def test_default_order_is_insertion(self, engine):
        for name in ("C", "A", "B"):
            await engine.insert(_receipt(name))
        assert [r.store_name for r in await engine.query_all(Receipt)] == ["C", "A", "B"]

    async def test_descending_order(self, engine):
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        for days in (1, 3, 2):
            await engine.insert(_receipt(f"D{days}", created_at=base + timedelta(days=days)))
        rows = await engine.query_all(Receipt, order_by=("-created_at",))
        assert [r.store_name for r in rows] == ["D3", "D2", "D1"]

    async def test_where_matches_all_conditions(self, engine):
        for rid, name in ((1, "Milk"), (1, "Eggs"), (2, "Milk")):
            await engine.insert(ReceiptItem(receipt_id=rid, product_name=name))
        rows = await engine.query_where(ReceiptItem, {"receipt_id": 1, "product_name": "Milk"})
        assert len(rows) == 1
        assert rows[0].receipt_id == 1

    async def test_where_none_matches_null(self, engine):
        await engine.insert(_receipt(None))
        await engine.insert(_receipt("Named"))
        rows = await engine.query_where(Receipt, {"store_name": None})
        assert len(rows) == 1
        assert rows[0].store_name is None

    async def test_unknown_column_rejected(self, engine):
        with pytest.raises(ValueError):
            await engine.query_where(Receipt, {"storeName; DROP TABLE Receipts": 1})
        with pytest.raises(ValueError):
            await engine.query_all(Receipt, order_by=("-nope",))

    async def test_query_error_wrapped(self, engine, db_path):
        conn = sqlite3.connect(db_path)
        conn.execute("DROP TABLE ReceiptItems")
        conn.commit()
        conn.close()
        with pytest.raises(StorageQueryError):
            await engine.query_all(ReceiptItem)

    async def test_values_round_trip(self, engine):
        purchased = datetime(2024, 3, 15, 10, 30)
        created = datetime(2024, 3, 15, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        r = _receipt(purchase_date=purchased, created_at=created)
        await engine.insert(r)
        item = ReceiptItem(receipt_id=r.id, product_name="Cheese", price=Decimal("12.345"))
        await engine.insert(item)

        [found] = await engine.query_all(Receipt)
        assert found.purchase_date == purchased
        assert found.created_at == created
        assert found.created_at.utcoffset() == timedelta(0)

        [found_item] = await engine.query_all(ReceiptItem)
        assert found_item.price == Decimal("12.345")
        assert found_item.quantity == 1

    async def test_null_quantity_read_as_one(self, engine, db_path):
        conn = sqlite3.connect(db_path)
        conn.execute("INSERT INTO ReceiptItems (receiptId, quantity) VALUES (1, NULL)")
        conn.commit()
        conn.close()
        [item] = await engine.query_all(ReceiptItem)
        assert item.quantity == 1
        assert item.price == Decimal(0)


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------

class TestTransactions:
    async def test_commit_returns_result(self, engine):
        async def work(eng):
            await eng.insert(_receipt("A"))
            await eng.insert(_receipt("B"))
            return "done"

        assert await engine.run_in_transaction(work) == "done"
        assert len(await engine.query_all(Receipt)) == 2

    async def test_failure_rolls_back_and_wraps(self, engine):
        boom = ValueError("boom")
        r = _receipt()

        async def work(eng):
            await eng.insert(r)
            raise boom

        with pytest.raises(StorageTransactionError) as exc_info:
            await engine.run_in_transaction(work)
        assert exc_info.value.cause is boom
        assert exc_info.value.__cause__ is boom
        assert await engine.query_all(Receipt) == []

    async def test_assigned_ids_reset_on_rollback(self, engine):
        existing = _receipt("Existing")
        await engine.insert(existing)
        fresh = _receipt("Fresh")

        async def work(eng):
            await eng.insert(fresh)
            existing.store_name = "Changed"
            await eng.update(existing)
            raise RuntimeError("abort")

        with pytest.raises(StorageTransactionError):
            await engine.run_in_transaction(work)
        assert fresh.id == 0
        assert existing.id == 1
        [stored] = await engine.query_all(Receipt)
        assert stored.store_name == "Existing"

    async def test_nested_transaction_joins_outer(self, engine):
        async def inner(eng):
            await eng.insert(_receipt("inner"))

        async def outer(eng):
            await eng.run_in_transaction(inner)
            raise RuntimeError("outer fails")

        with pytest.raises(StorageTransactionError):
            await engine.run_in_transaction(outer)
        assert await engine.query_all(Receipt) == []

    async def test_transaction_error_not_double_wrapped(self, engine):
        async def inner(eng):
            raise KeyError("x")

        async def outer(eng):
            await eng.run_in_transaction(inner)

        with pytest.raises(StorageTransactionError) as exc_info:
            await engine.run_in_transaction(outer)
        assert isinstance(exc_info.value.cause, KeyError)

    async def test_concurrent_transactions_are_serialised(self, engine):
        async def work(eng, name):
            first = _receipt(f"{name}-1")
            await eng.insert(first)
            await asyncio.sleep(0.01)
            await eng.insert(_receipt(f"{name}-2"))
            return first.id

        ids = await asyncio.gather(
            engine.run_in_transaction(lambda e: work(e, "a")),
            engine.run_in_transaction(lambda e: work(e, "b")),
        )
        names = [r.store_name for r in await engine.query_all(Receipt)]
        assert names == ["a-1", "a-2", "b-1", "b-2"]
        assert sorted(ids) == [1, 3]

    async def test_outside_reads_wait_for_open_transaction(self, engine):
        started = asyncio.Event()

        async def work(eng):
            await eng.insert(_receipt("uncommitted"))
            started.set()
            await asyncio.sleep(0.05)
            raise RuntimeError("roll back")

        async def reader():
            await started.wait()
            return await engine.query_all(Receipt)

        tx_result, seen = await asyncio.gather(
            engine.run_in_transaction(work), reader(), return_exceptions=True,
        )
        assert isinstance(tx_result, StorageTransactionError)
        assert seen == []

    async def test_cancellation_rolls_back(self, engine):
        started = asyncio.Event()

        async def work(eng):
            await eng.insert(_receipt("cancelled"))
            started.set()
            await asyncio.sleep(10)

        task = asyncio.create_task(engine.run_in_transaction(work))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert await engine.query_all(Receipt) == []

    async def test_cancellation_during_commit_keeps_ids(self, engine, monkeypatch):
        real_execute = engine_mod._execute

        def slow_commit(conn, sql, params=()):
            if sql == "COMMIT":
                time.sleep(0.3)
            return real_execute(conn, sql, params)

        monkeypatch.setattr(engine_mod, "_execute", slow_commit)
        r = _receipt("committed")

        async def work(eng):
            await eng.insert(r)

        task = asyncio.create_task(engine.run_in_transaction(work))
        await asyncio.sleep(0.1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert r.id == 1
        assert [s.id for s in await engine.query_all(Receipt)] == [1]

    async def test_spawned_task_does_not_outlive_transaction(self, engine):
        gate = asyncio.Event()
        spawned = []

        async def first(eng):
            async def late_insert():
                await gate.wait()
                await eng.insert(_receipt("late"))

            spawned.append(asyncio.create_task(late_insert()))

        await engine.run_in_transaction(first)

        async def second(eng):
            await eng.insert(_receipt("rolled back"))
            gate.set()
            await asyncio.sleep(0.05)
            raise RuntimeError("abort")

        with pytest.raises(StorageTransactionError):
            await engine.run_in_transaction(second)
        await spawned[0]

        assert [r.store_name for r in await engine.query_all(Receipt)] == ["late"]

    async def test_tasks_spawned_inside_share_the_transaction(self, engine):
        async def work(eng):
            await asyncio.gather(eng.insert(_receipt("a")), eng.insert(_receipt("b")))
            raise RuntimeError("abort")

        with pytest.raises(StorageTransactionError):
            await asyncio.wait_for(engine.run_in_transaction(work), timeout=5)
        assert await engine.query_all(Receipt) == []
