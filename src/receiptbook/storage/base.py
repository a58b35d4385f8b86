"""
receiptbook.storage.base
~~~~~~~~~~~~~~~~~~~~~~~~
Abstract repository interface.
"""

from __future__ import annotations

from typing import Iterable, Protocol, runtime_checkable

from ..models import Receipt, ReceiptItem


@runtime_checkable
class ReceiptRepository(Protocol):
    """Storage abstraction for the receipt aggregate."""

    async def get_all(self) -> list[Receipt]:
        """All receipts, newest ``created_at`` first. ``items`` left empty."""
        ...

    async def get_by_id(self, receipt_id: int) -> Receipt | None:
        """The receipt with this id, or ``None``. ``items`` left empty."""
        ...

    async def get_with_items(self, receipt_id: int) -> Receipt | None:
        """The receipt with ``items`` loaded, or ``None`` if it does not exist."""
        ...

    async def save(self, receipt: Receipt) -> int:
        """Insert when ``receipt.id == 0``, otherwise update. Returns the id."""
        ...

    async def delete_by_id(self, receipt_id: int) -> int:
        """
        Remove the receipt row only; its items are left in place.
        Returns the number of rows removed.
        """
        ...

    async def get_items_for(self, receipt_id: int) -> list[ReceiptItem]:
        """Items whose ``receipt_id`` matches, in insertion order."""
        ...

    async def save_item(self, item: ReceiptItem) -> int:
        """Insert when ``item.id == 0``, otherwise update. Returns the id."""
        ...

    async def delete_item_by_id(self, item_id: int) -> int:
        """Remove one item. Returns the number of rows removed."""
        ...

    async def save_with_items(self, receipt: Receipt, items: Iterable[ReceiptItem]) -> int:
        """
        Save the receipt and every item in one transaction.

        Each item's ``receipt_id`` is overwritten with the receipt's id.
        Either everything is written or nothing is.
        """
        ...

    async def close(self) -> None:
        ...
