"""
receiptbook.storage.schema
~~~~~~~~~~~~~~~~~~~~~~~~~~
Table descriptions for the SQLite engine.

Tables
------
Receipts      — one row per receipt, surrogate integer id
ReceiptItems  — line items; ``receiptId`` points at ``Receipts.id`` and is
                indexed, but no FOREIGN KEY constraint is declared:
                referential integrity is kept by the write path.

Each table maps Python attribute names (``receipt_id``) to stored column
names (``receiptId``). Timestamps are stored as ISO-8601 text (aware values
normalised to UTC), decimals as their exact string form.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Optional

from ..models import Receipt, ReceiptItem


# ---------------------------------------------------------------------------
# Value converters
# ---------------------------------------------------------------------------

def _identity(v: Any) -> Any:
    return v


def _dt_to_db(v: Optional[datetime]) -> Optional[str]:
    if v is None:
        return None
    if v.tzinfo is not None:
        v = v.astimezone(timezone.utc)
    return v.isoformat()


def _dt_from_db(v: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(v) if v else None


def _dec_to_db(v: Optional[Decimal]) -> Optional[str]:
    return str(v) if v is not None else None


def _dec_from_db(v: Optional[str]) -> Decimal:
    return Decimal(str(v)) if v is not None else Decimal(0)


def _qty_from_db(v: Optional[int]) -> int:
    return int(v) if v is not None else 1


# ---------------------------------------------------------------------------
# Table description
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Column:
    """One stored column and how to convert it to and from the entity."""

    name:    str
    attr:    str
    decl:    str
    to_db:   Callable[[Any], Any] = _identity
    from_db: Callable[[Any], Any] = _identity


@dataclass(frozen=True)
class TableSpec:
    """
    Everything the engine needs to know about one entity table.

    ``columns`` excludes the ``id`` primary key, which every table has.
    """

    name:    str
    entity:  type
    columns: tuple[Column, ...]
    indexes: tuple[str, ...] = field(default_factory=tuple)   # attribute names

    # -- DDL ---------------------------------------------------------------

    def create_sql(self) -> str:
        cols = ",\n    ".join(f"{c.name} {c.decl}" for c in self.columns)
        ddl = (
            f"CREATE TABLE IF NOT EXISTS {self.name} (\n"
            f"    id INTEGER PRIMARY KEY AUTOINCREMENT,\n"
            f"    {cols}\n"
            f");\n"
        )
        for attr in self.indexes:
            col = self.column_for(attr)
            ddl += (
                f"CREATE INDEX IF NOT EXISTS idx_{self.name}_{col} "
                f"ON {self.name} ({col});\n"
            )
        return ddl

    # -- Column lookup -----------------------------------------------------

    def column_for(self, attr: str) -> str:
        """Stored column name for an attribute; ``ValueError`` if unknown."""
        if attr == "id":
            return "id"
        for c in self.columns:
            if c.attr == attr:
                return c.name
        raise ValueError(f"{self.entity.__name__} has no column {attr!r}")

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    # -- Row conversion ----------------------------------------------------

    def to_params(self, entity: Any) -> tuple:
        return tuple(c.to_db(getattr(entity, c.attr)) for c in self.columns)

    def from_row(self, row: sqlite3.Row) -> Any:
        values = {c.attr: c.from_db(row[c.name]) for c in self.columns}
        return self.entity(id=row["id"], **values)


# ---------------------------------------------------------------------------
# Receipt tables
# ---------------------------------------------------------------------------

RECEIPTS = TableSpec(
    name="Receipts",
    entity=Receipt,
    columns=(
        Column("storeName",    "store_name",    "TEXT"),
        Column("purchaseDate", "purchase_date", "TEXT", _dt_to_db, _dt_from_db),
        Column("imagePath",    "image_path",    "TEXT"),
        Column("createdAt",    "created_at",    "TEXT", _dt_to_db, _dt_from_db),
    ),
)

RECEIPT_ITEMS = TableSpec(
    name="ReceiptItems",
    entity=ReceiptItem,
    columns=(
        Column("receiptId",   "receipt_id",   "INTEGER NOT NULL"),
        Column("productName", "product_name", "TEXT"),
        Column("price",       "price",        "TEXT",              _dec_to_db, _dec_from_db),
        Column("category",    "category",     "TEXT"),
        Column("quantity",    "quantity",     "INTEGER DEFAULT 1", _identity,  _qty_from_db),
    ),
    indexes=("receipt_id",),
)

DEFAULT_TABLES: tuple[TableSpec, ...] = (RECEIPTS, RECEIPT_ITEMS)


__all__ = ["Column", "TableSpec", "RECEIPTS", "RECEIPT_ITEMS", "DEFAULT_TABLES"]
