"""
receiptbook.exceptions
~~~~~~~~~~~~~~~~~~~~~~
Exception hierarchy for the receiptbook library.

A read that finds nothing is not an error: repository reads return ``None``
or an empty list so callers can tell "no data" apart from "failure".
"""

from __future__ import annotations


class ReceiptbookError(Exception):
    """Base exception for all receiptbook errors."""

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause
        self.message = message

    def __str__(self) -> str:
        if self.cause:
            return f"{self.message} (caused by {type(self.cause).__name__}: {self.cause})"
        return self.message


class StorageError(ReceiptbookError):
    """Base class for failures reported by the storage engine."""


class StorageInitError(StorageError):
    """
    Raised when the database file cannot be opened or the schema cannot be
    created, and when an operation is attempted before ``initialize()``.
    """


class StorageWriteError(StorageError):
    """Raised when a single-row insert, update or delete fails."""


class StorageQueryError(StorageError):
    """Raised when a read query fails at the engine level."""


class StorageTransactionError(StorageError):
    """
    Raised when a unit of work fails inside ``run_in_transaction``.

    The transaction has been rolled back; ``cause`` holds the original
    exception.
    """
