"""Error taxonomy shared by the stores, the form collector and the API."""

from __future__ import annotations

from typing import Any


class ConfigEditorError(Exception):
    """Base class for errors surfaced to the caller."""


class ValidationError(ConfigEditorError):
    """Client-supplied data failed coercion for a named field."""

    def __init__(self, field: str | None, message: str) -> None:
        super().__init__(message)
        self.field = field
        self.message = message


class Unauthenticated(ConfigEditorError):
    pass


class NotFound(ConfigEditorError):
    def __init__(self, record_id: Any) -> None:
        super().__init__(f"Config {record_id} not found")
        self.record_id = record_id


class StorageError(ConfigEditorError):
    """Backing store unreachable or rejected the operation."""
