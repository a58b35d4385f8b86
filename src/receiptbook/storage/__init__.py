"""
receiptbook.storage
~~~~~~~~~~~~~~~~~~~
Persistence layer for receipts and receipt items.

Default backend: SQLite at ``~/.receiptbook/default/receiptbook.db``.

Usage::

    from receiptbook.storage import open_repository

    repo = await open_repository()              # initialised SQLite repository
    receipt_id = await repo.save_with_items(receipt, items)
    for r in await repo.get_all():
        print(r.store_name, r.created_at)
    await repo.close()
"""

from __future__ import annotations

from pathlib import Path

from .base import ReceiptRepository
from .engine import StorageEngine
from .repository import SQLiteReceiptRepository


def get_repository(db_path: Path | str | None = None) -> SQLiteReceiptRepository:
    """Return the default SQLite repository (not yet initialised)."""
    return SQLiteReceiptRepository(db_path=db_path)


async def open_repository(db_path: Path | str | None = None) -> SQLiteReceiptRepository:
    """
    Return an initialised SQLite repository.

    Raises ``StorageInitError`` when the database cannot be opened, in which
    case no repository is handed out.
    """
    repo = get_repository(db_path)
    await repo.initialize()
    return repo


__all__ = [
    "ReceiptRepository",
    "SQLiteReceiptRepository",
    "StorageEngine",
    "get_repository",
    "open_repository",
]
