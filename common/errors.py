from __future__ import annotations

from datetime import date
from pathlib import Path


class DiviError(Exception):
    """Base class for everything the sync tool raises on purpose."""


class FetchError(DiviError):
    def __init__(self, url: str, message: str, status: int | None = None):
        self.url = url
        self.status = status
        super().__init__(f"{url}: {message}")


class NotFound(DiviError):
    """No report was published for this date. Expected, not a failure."""

    def __init__(self, date: date, url: str | None = None):
        self.date = date
        self.url = url
        where = f" at {url}" if url else ""
        super().__init__(f"no report for {date.isoformat()}{where}")


class ParseError(DiviError):
    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(f"{url}: {message}")


class SchemaError(DiviError):
    def __init__(self, row_index: int, message: str):
        self.row_index = row_index
        super().__init__(f"row {row_index}: {message}")


class StorageError(DiviError):
    def __init__(self, path: Path | str, message: str):
        self.path = Path(path)
        super().__init__(f"{path}: {message}")
