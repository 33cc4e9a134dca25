"""Editor controller state.

The editor holds at most one current record. Every transition returns a new
``EditorState``; nothing is kept between requests except what the caller
passes back in.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Iterable, Mapping

STATUS_OK = "ok"
STATUS_ERROR = "error"


@dataclass(frozen=True)
class EditorState:
    records: tuple[dict, ...] = ()
    current_id: int | None = None
    draft: Mapping[str, str] | None = None
    status: str = ""
    status_kind: str = ""


def record_label(record: Mapping[str, Any]) -> str:
    return f"#{record.get('id')}  ·  {record.get('env') or ''}  ·  {record.get('bot_id') or ''}"


def _find(records: Iterable[dict], record_id: Any) -> dict | None:
    for record in records:
        if record.get("id") == record_id:
            return record
    return None


def loaded(records: Iterable[dict], keep_id: int | None = None) -> EditorState:
    """State after a full reload; keeps ``keep_id`` selected when it still exists."""
    items = tuple(records)
    count = len(items)
    status = f"{count} record{'s' if count != 1 else ''} loaded"
    current_id = None
    if keep_id is not None and _find(items, keep_id) is not None:
        current_id = keep_id
    elif items:
        current_id = items[0].get("id")
    return EditorState(records=items, current_id=current_id, status=status)


def select(state: EditorState, record_id: int) -> EditorState:
    # Switching records drops unsaved edits.
    if _find(state.records, record_id) is None:
        return replace(state, status=f"Error: Config {record_id} not found", status_kind=STATUS_ERROR)
    return replace(state, current_id=record_id, draft=None)


def current(state: EditorState) -> dict | None:
    if state.current_id is None:
        return None
    return _find(state.records, state.current_id)


def save_failed(state: EditorState, draft: Mapping[str, str], message: str) -> EditorState:
    return replace(state, draft=dict(draft), status=f"Error: {message}", status_kind=STATUS_ERROR)


def saved(state: EditorState) -> EditorState:
    return replace(state, draft=None, status="✓  Saved", status_kind=STATUS_OK)
