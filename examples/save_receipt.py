"""
examples/save_receipt.py
~~~~~~~~~~~~~~~~~~~~~~~~
Save one receipt with its items and read it back.

Usage
-----
    python -m examples.save_receipt
    python -m examples.save_receipt --store "Corner Shop" --db /tmp/test.db
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from decimal import Decimal
from pathlib import Path

logging.basicConfig(level=logging.INFO, format="%(levelname)s  %(name)s — %(message)s")

from receiptbook import Receipt, ReceiptItem, SQLiteReceiptRepository


async def save_receipt(store: str, db_path: Path | None = None) -> int:
    receipt = Receipt(store_name=store)
    items = [
        ReceiptItem(product_name="Milk",  price=Decimal("3.99"), quantity=2, category="dairy"),
        ReceiptItem(product_name="Bread", price=Decimal("2.49"), category="bakery"),
    ]

    async with SQLiteReceiptRepository(db_path=db_path) as repo:
        receipt_id = await repo.save_with_items(receipt, items)
        stored = await repo.get_with_items(receipt_id)

    W = 44
    print("\n" + "─" * W)
    print(f"  Receipt #{stored.id}  {stored.store_name}")
    print("─" * W)
    for item in stored.items:
        print(f"  {item.product_name:<18} {item.quantity:>3} x {item.price:>7}")
    print("─" * W)
    print(f"  {'Total':<18} {stored.total:>13.2f}\n")
    return receipt_id


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Save a sample receipt.")
    parser.add_argument("--store", default="SuperMart")
    parser.add_argument("--db", default=None, help="SQLite database path.")
    args = parser.parse_args()
    asyncio.run(save_receipt(args.store, Path(args.db) if args.db else None))
