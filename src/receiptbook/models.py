"""
receiptbook.models
~~~~~~~~~~~~~~~~~~
Entity models for receipts and their line items.

Key design decisions
--------------------
* ``id == 0`` means "not yet persisted". The storage engine assigns the
  surrogate key on insert; callers never set it by hand.

* ``Receipt.items`` and ``ReceiptItem.receipt`` are in-memory navigation
  only. They are never written as columns and are excluded from equality,
  so a receipt read back without its items still compares equal to the
  one that was saved.

* ``created_at`` is stamped from the module clock when the object is
  constructed and is never re-derived on update.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional


def _utcnow() -> datetime:
    """Clock used for ``Receipt.created_at``. Tests may replace it."""
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


# ---------------------------------------------------------------------------
# ReceiptItem
# ---------------------------------------------------------------------------

@dataclass
class ReceiptItem:
    """A single product line belonging to a receipt."""

    id:           int = 0
    receipt_id:   int = 0
    product_name: Optional[str] = None
    price:        Decimal = field(default_factory=Decimal)
    category:     Optional[str] = None
    quantity:     int = 1
    receipt:      Optional["Receipt"] = field(default=None, compare=False, repr=False)

    @property
    def is_new(self) -> bool:
        return self.id == 0

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity

    def to_dict(self) -> dict:
        return {
            "id":           self.id,
            "receipt_id":   self.receipt_id,
            "product_name": self.product_name,
            "price":        str(self.price),
            "category":     self.category,
            "quantity":     self.quantity,
        }


# ---------------------------------------------------------------------------
# Receipt
# ---------------------------------------------------------------------------

@dataclass
class Receipt:
    """
    A purchase receipt.

    ``items`` is empty unless the receipt was loaded through
    ``get_with_items()`` or filled in by the caller before a composite save.
    """

    id:            int = 0
    store_name:    Optional[str] = None
    purchase_date: Optional[datetime] = None
    image_path:    Optional[str] = None
    created_at:    datetime = field(default_factory=lambda: _utcnow())
    items:         List[ReceiptItem] = field(default_factory=list, compare=False, repr=False)

    @property
    def is_new(self) -> bool:
        return self.id == 0

    @property
    def total(self) -> Decimal:
        """Sum of the loaded items' line totals."""
        return sum((item.line_total for item in self.items), Decimal(0))

    def to_dict(self) -> dict:
        return {
            "id":            self.id,
            "store_name":    self.store_name,
            "purchase_date": _iso(self.purchase_date),
            "image_path":    self.image_path,
            "created_at":    _iso(self.created_at),
            "items":         [item.to_dict() for item in self.items],
            "total":         str(self.total),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)


__all__ = ["Receipt", "ReceiptItem"]
