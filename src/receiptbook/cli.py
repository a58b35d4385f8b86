"""
receiptbook.cli
~~~~~~~~~~~~~~~
Command-line interface for receiptbook.

Entry point registered in pyproject.toml::

    [project.scripts]
    receiptbook = "receiptbook.cli:main"

Usage examples
--------------
    receiptbook --version

    # Save a receipt with two items
    receiptbook --add --store SuperMart --date 2024-03-15T10:30 \\
        --item "Milk;3.99;2;dairy" --item "Bread;2.49"

    # List, show, delete
    receiptbook --list
    receiptbook --show 1 --json
    receiptbook --delete 1
    receiptbook --delete-item 4

    # Use a custom DB path or another project
    receiptbook --list --db /tmp/receipts.db
    receiptbook --list --project groceries-2025
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import datetime
from decimal import Decimal, InvalidOperation
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

from receiptbook.config import cfg
from receiptbook.exceptions import StorageError
from receiptbook.models import Receipt, ReceiptItem
from receiptbook.storage import SQLiteReceiptRepository
from receiptbook.storage.project import resolve_project


def parse_item(text: str) -> ReceiptItem:
    """
    Parse ``"name;price[;quantity[;category]]"`` into a new ReceiptItem.

    Raises ``ValueError`` on malformed input.
    """
    parts = [p.strip() for p in text.split(";")]
    if len(parts) < 2 or len(parts) > 4 or not parts[0]:
        raise ValueError(f"Item must look like 'name;price[;quantity[;category]]': {text!r}")
    try:
        price = Decimal(parts[1])
    except InvalidOperation:
        raise ValueError(f"Invalid price {parts[1]!r} in item {text!r}") from None
    quantity = int(parts[2]) if len(parts) > 2 and parts[2] else 1
    category = parts[3] if len(parts) > 3 and parts[3] else None
    return ReceiptItem(product_name=parts[0], price=price, quantity=quantity, category=category)


# ---------------------------------------------------------------------------
# CLI class
# ---------------------------------------------------------------------------

class ReceiptbookCLI:

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = db_path

    def _repository(self) -> SQLiteReceiptRepository:
        return SQLiteReceiptRepository(db_path=self.db_path)

    # ------------------------------------------------------------------
    # Utility
    # ------------------------------------------------------------------

    def print_version(self) -> None:
        try:
            print(f"receiptbook version: {version('receiptbook')}")
        except PackageNotFoundError:
            print("receiptbook version: unknown")

    def _run(self, coro) -> int:
        try:
            return asyncio.run(coro)
        except StorageError as exc:
            print(f"[error] {exc}", file=sys.stderr)
            return 1

    # ------------------------------------------------------------------
    # Add
    # ------------------------------------------------------------------

    def add_receipt(
        self,
        store_name: str,
        purchase_date: str | None = None,
        image_path: str | None = None,
        item_args: list[str] | None = None,
    ) -> int:
        """Save a receipt and its items in one transaction. Returns exit code."""
        try:
            items = [parse_item(s) for s in item_args or []]
            date = datetime.fromisoformat(purchase_date) if purchase_date else None
        except ValueError as exc:
            print(f"[error] {exc}", file=sys.stderr)
            return 1

        receipt = Receipt(store_name=store_name, purchase_date=date, image_path=image_path)
        return self._run(self._add(receipt, items))

    async def _add(self, receipt: Receipt, items: list[ReceiptItem]) -> int:
        async with self._repository() as repo:
            receipt_id = await repo.save_with_items(receipt, items)
        print(f"✓  Saved receipt #{receipt_id}  {receipt.store_name}  ({len(items)} item(s))")
        return 0

    # ------------------------------------------------------------------
    # List / show
    # ------------------------------------------------------------------

    def list_receipts(self) -> int:
        return self._run(self._list())

    async def _list(self) -> int:
        async with self._repository() as repo:
            receipts = await repo.get_all()
        if not receipts:
            print("No receipts stored.")
            return 0
        for r in receipts:
            date = r.purchase_date.date() if r.purchase_date else "—"
            print(f"#{r.id:<5} {date!s:<12} {r.store_name or '—'}")
        print(f"{len(receipts)} receipt(s).")
        return 0

    def show_receipt(self, receipt_id: int, as_json: bool = False) -> int:
        return self._run(self._show(receipt_id, as_json))

    async def _show(self, receipt_id: int, as_json: bool) -> int:
        async with self._repository() as repo:
            receipt = await repo.get_with_items(receipt_id)
        if receipt is None:
            print(f"[error] Receipt #{receipt_id} not found", file=sys.stderr)
            return 1
        if as_json:
            print(receipt.to_json())
            return 0

        W   = 50
        div = "─" * W
        print(f"Receipt #{receipt.id}  {receipt.store_name or '—'}")
        print(div)
        print(f"  Purchased : {receipt.purchase_date or '—'}")
        print(f"  Created   : {receipt.created_at}")
        print(f"  Image     : {receipt.image_path or '—'}")
        print(div)
        for item in receipt.items:
            print(
                f"  {item.product_name or '—':<22} {item.quantity:>3} x "
                f"{item.price:>8}  {item.category or ''}"
            )
        print(div)
        print(f"  Total     : {receipt.total:.2f}")
        return 0

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete_receipt(self, receipt_id: int) -> int:
        return self._run(self._delete(receipt_id, item=False))

    def delete_item(self, item_id: int) -> int:
        return self._run(self._delete(item_id, item=True))

    async def _delete(self, row_id: int, item: bool) -> int:
        async with self._repository() as repo:
            if item:
                removed = await repo.delete_item_by_id(row_id)
            else:
                removed = await repo.delete_by_id(row_id)
        print(f"{removed} row(s) removed.")
        return 0


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="receiptbook: store receipts and their items in a local database.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--version", action="store_true",
        help="Show package version and exit.",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Enable debug logging.",
    )
    parser.add_argument(
        "--db", default=None, metavar="FILE",
        help="SQLite database path (default: ~/.receiptbook/<project>/receiptbook.db).",
    )
    parser.add_argument(
        "--project", default=None, metavar="NAME",
        help="Project whose database to use when --db is not given.",
    )

    # -- Adding -----------------------------------------------------------
    add_group = parser.add_argument_group("Adding receipts")
    add_group.add_argument(
        "--add", action="store_true",
        help="Save a new receipt built from --store, --date, --image and --item.",
    )
    add_group.add_argument(
        "--store", default=None, metavar="NAME",
        help="Store name of the new receipt.",
    )
    add_group.add_argument(
        "--date", default=None, metavar="ISO",
        help="Purchase date/time in ISO format, e.g. 2024-03-15T10:30.",
    )
    add_group.add_argument(
        "--image", default=None, metavar="PATH",
        help="Path of the receipt image.",
    )
    add_group.add_argument(
        "--item", action="append", default=None, metavar="SPEC",
        help="Item as 'name;price[;quantity[;category]]'. Repeatable.",
    )

    # -- Reading / deleting -----------------------------------------------
    read_group = parser.add_argument_group("Reading and deleting")
    read_group.add_argument(
        "--list", action="store_true",
        help="List all receipts, newest first.",
    )
    read_group.add_argument(
        "--show", type=int, default=None, metavar="ID",
        help="Show one receipt with its items.",
    )
    read_group.add_argument(
        "--json", action="store_true",
        help="With --show: print JSON instead of a table.",
    )
    read_group.add_argument(
        "--delete", type=int, default=None, metavar="ID",
        help="Delete a receipt (its items are kept).",
    )
    read_group.add_argument(
        "--delete-item", type=int, default=None, metavar="ID",
        help="Delete a single receipt item.",
    )

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args   = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, cfg.log_level.upper()),
        format="%(levelname)-8s %(name)s — %(message)s",
    )

    if args.version:
        ReceiptbookCLI().print_version()
        return 0

    try:
        db_path = Path(args.db) if args.db else resolve_project(args.project).db_path
    except ValueError as exc:
        print(f"[error] {exc}", file=sys.stderr)
        return 1
    cli = ReceiptbookCLI(db_path=db_path)

    if args.add:
        if not args.store:
            print("[error] --add requires --store", file=sys.stderr)
            return 1
        return cli.add_receipt(
            store_name=args.store,
            purchase_date=args.date,
            image_path=args.image,
            item_args=args.item,
        )

    if args.list:
        return cli.list_receipts()

    if args.show is not None:
        return cli.show_receipt(args.show, as_json=args.json)

    if args.delete is not None:
        return cli.delete_receipt(args.delete)

    if args.delete_item is not None:
        return cli.delete_item(args.delete_item)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
