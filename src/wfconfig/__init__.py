"""Workflow config editor kernel: schema, coercion and form mapping."""

from .errors import ConfigEditorError, NotFound, StorageError, Unauthenticated, ValidationError
from .field_kinds import EDITABLE_FIELDS, FieldKind, kind_of
from .form import FieldControl, collect_form, render_record

__all__ = [
    "ConfigEditorError",
    "EDITABLE_FIELDS",
    "FieldControl",
    "FieldKind",
    "NotFound",
    "StorageError",
    "Unauthenticated",
    "ValidationError",
    "collect_form",
    "kind_of",
    "render_record",
]
