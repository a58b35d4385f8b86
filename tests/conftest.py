"""
tests/conftest.py
~~~~~~~~~~~~~~~~~
Shared pytest fixtures for the receiptbook test suite.
All databases live under tmp_path, never under ~/.receiptbook.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from decimal import Decimal

import pytest
import pytest_asyncio

from receiptbook.config import Config
from receiptbook.models import Receipt, ReceiptItem
from receiptbook.storage.engine import StorageEngine
from receiptbook.storage.repository import SQLiteReceiptRepository


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

@pytest.fixture
def default_config() -> Config:
    return Config(_env_file=None)  # type: ignore[call-arg]


@pytest.fixture
def tmp_config(tmp_path) -> Config:
    return Config(_env_file=None, home=tmp_path / "home", project="default")  # type: ignore[call-arg]


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------

@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "test.db"


@pytest_asyncio.fixture
async def engine(db_path):
    eng = StorageEngine(db_path)
    await eng.initialize()
    yield eng
    await eng.close()


@pytest_asyncio.fixture
async def repo(engine) -> SQLiteReceiptRepository:
    return SQLiteReceiptRepository(engine)


@pytest.fixture
def inject_item_fault(db_path):
    """
    Install a trigger that aborts any insert of an item named ``Boom``.

    Uses a second connection to the same file, so the engine under test
    sees a genuine SQLite failure.
    """
    def _install() -> None:
        conn = sqlite3.connect(db_path)
        conn.executescript("""
            CREATE TRIGGER IF NOT EXISTS fail_on_boom
            BEFORE INSERT ON ReceiptItems
            WHEN NEW.productName = 'Boom'
            BEGIN
                SELECT RAISE(ABORT, 'injected fault');
            END;
        """)
        conn.close()
    return _install


# ---------------------------------------------------------------------------
# Model helpers
# ---------------------------------------------------------------------------

T0 = datetime(2024, 3, 15, 10, 30)


@pytest.fixture
def sample_receipt() -> Receipt:
    return Receipt(
        store_name="SuperMart",
        purchase_date=T0,
        image_path="images/supermart-0315.jpg",
        created_at=datetime(2024, 3, 15, 9, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def sample_item() -> ReceiptItem:
    return ReceiptItem(
        product_name="Milk",
        price=Decimal("3.99"),
        category="dairy",
        quantity=2,
    )

