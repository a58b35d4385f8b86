"""
receiptbook
~~~~~~~~~~~
Local receipt book: receipts and their items in an embedded SQLite file.

Typical usage::

    from receiptbook import Receipt, ReceiptItem, open_repository

    repo = await open_repository()
    receipt_id = await repo.save_with_items(
        Receipt(store_name="SuperMart"),
        [ReceiptItem(product_name="Milk", price=Decimal("3.99"), quantity=2)],
    )
    receipt = await repo.get_with_items(receipt_id)
"""

from .config import Config, StorageConfig, cfg
from .exceptions import (
    ReceiptbookError,
    StorageError,
    StorageInitError,
    StorageQueryError,
    StorageTransactionError,
    StorageWriteError,
)
from .models import Receipt, ReceiptItem
from .storage import (
    ReceiptRepository,
    SQLiteReceiptRepository,
    StorageEngine,
    get_repository,
    open_repository,
)
from .viewmodels import CounterService, CounterViewModel, Observable

__all__ = [
    # Configuration
    "Config",
    "StorageConfig",
    "cfg",
    # Models
    "Receipt",
    "ReceiptItem",
    # Storage
    "ReceiptRepository",
    "SQLiteReceiptRepository",
    "StorageEngine",
    "get_repository",
    "open_repository",
    # View models
    "Observable",
    "CounterService",
    "CounterViewModel",
    # Exceptions
    "ReceiptbookError",
    "StorageError",
    "StorageInitError",
    "StorageWriteError",
    "StorageQueryError",
    "StorageTransactionError",
]
