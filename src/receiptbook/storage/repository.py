"""
receiptbook.storage.repository
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
SQLite-backed receipt repository built on ``StorageEngine``.

Deleting a receipt does not delete its items. Callers that want the items
gone remove them with ``delete_item_by_id``; otherwise they stay behind as
orphans and remain readable through ``get_items_for``.

Default path: ``~/.receiptbook/default/receiptbook.db``
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from ..config import Config, cfg
from ..models import Receipt, ReceiptItem
from .engine import StorageEngine
from .project import default_db_path

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class SQLiteReceiptRepository:
    """
    Persistent SQLite storage implementing ``ReceiptRepository``.

    Args:
        engine:  An existing engine to share. Built from ``db_path`` and
                 ``config`` when omitted.
        db_path: Database file. Default: the current project's database.
        config:  Settings for journal mode and busy timeout.

    Raises ``ValueError`` when no ``db_path`` is given and
    ``RECEIPTBOOK_PROJECT`` names an invalid project.
    """

    def __init__(
        self,
        engine: StorageEngine | None = None,
        *,
        db_path: Path | str | None = None,
        config: Config | None = None,
    ) -> None:
        if engine is None:
            config = config or cfg
            storage = config.get_storage_config()
            engine = StorageEngine(
                db_path if db_path else default_db_path(config=config),
                journal_mode=storage.journal_mode,
                busy_timeout_ms=storage.busy_timeout_ms,
            )
        self._engine = engine

    @property
    def engine(self) -> StorageEngine:
        return self._engine

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        await self._engine.initialize()

    async def close(self) -> None:
        await self._engine.close()

    async def __aenter__(self) -> "SQLiteReceiptRepository":
        await self.initialize()
        return self

    async def __aexit__(self, *_) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Receipts
    # ------------------------------------------------------------------

    async def get_all(self) -> list[Receipt]:
        return await self._engine.query_all(Receipt, order_by=("-created_at", "-id"))

    async def get_by_id(self, receipt_id: int) -> Receipt | None:
        rows = await self._engine.query_where(Receipt, {"id": receipt_id})
        return rows[0] if rows else None

    async def get_with_items(self, receipt_id: int) -> Receipt | None:
        receipt = await self.get_by_id(receipt_id)
        if receipt is None:
            return None
        receipt.items = await self.get_items_for(receipt_id)
        for item in receipt.items:
            item.receipt = receipt
        return receipt

    async def save(self, receipt: Receipt) -> int:
        if receipt.id == 0:
            return await self._engine.insert(receipt)
        await self._engine.update(receipt)
        return receipt.id

    async def delete_by_id(self, receipt_id: int) -> int:
        return await self._engine.delete_by_id(Receipt, receipt_id)

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    async def get_items_for(self, receipt_id: int) -> list[ReceiptItem]:
        return await self._engine.query_where(ReceiptItem, {"receipt_id": receipt_id})

    async def save_item(self, item: ReceiptItem) -> int:
        if item.id == 0:
            return await self._engine.insert(item)
        await self._engine.update(item)
        return item.id

    async def delete_item_by_id(self, item_id: int) -> int:
        return await self._engine.delete_by_id(ReceiptItem, item_id)

    # ------------------------------------------------------------------
    # Composite save
    # ------------------------------------------------------------------

    async def save_with_items(self, receipt: Receipt, items: Iterable[ReceiptItem]) -> int:
        """
        Save ``receipt`` and ``items`` in a single transaction.

        On failure the transaction is rolled back, ``receipt.id`` is back to
        its value before the call and ``StorageTransactionError`` is raised.
        The items' ``receipt_id`` fields may already have been overwritten;
        retry with freshly prepared objects.
        """
        items = list(items)

        async def _write(_engine: StorageEngine) -> int:
            receipt_id = await self.save(receipt)
            for item in items:
                item.receipt_id = receipt_id
            for item in items:
                await self.save_item(item)
            return receipt_id

        receipt_id = await self._engine.run_in_transaction(_write)
        logger.info("Saved receipt %d with %d item(s)", receipt_id, len(items))
        return receipt_id


__all__ = ["SQLiteReceiptRepository"]
