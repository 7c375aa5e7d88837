"""Error hierarchy shared by the store, the engine and the UI layer."""

from __future__ import annotations


class KakeiboError(Exception):
    """Base class for every recoverable kakeibo failure."""


class StoreError(KakeiboError):
    """A read or write against the persistence store failed."""


class ValidationError(KakeiboError):
    """User input was rejected before any write was attempted."""


class CategoryInUseError(KakeiboError):
    """A category still referenced by transactions cannot be deleted."""

    def __init__(self, name: str, count: int):
        super().__init__(f"category '{name}' is used by {count} transaction(s)")
        self.name = name
        self.count = count


class CsvFormatError(KakeiboError):
    """The CSV header does not match the selected import kind."""


class NothingToImportError(KakeiboError):
    """No valid rows were left after validating a CSV import."""
