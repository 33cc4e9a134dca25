"""JSON text helpers for jsonb columns edited as text."""

from __future__ import annotations

import json
import math
from decimal import Decimal
from typing import Any


class JsonValueTypeError(TypeError):
    """Raised when a value cannot be stored in a jsonb column."""


def check_json_value(obj: Any, path: str = "$") -> None:
    if isinstance(obj, dict):
        for key, value in obj.items():
            if not isinstance(key, str):
                raise JsonValueTypeError(
                    f"Unsupported key type at {path}: {type(key).__name__}"
                )
            check_json_value(value, f"{path}.{key}")
        return
    if isinstance(obj, list):
        for idx, item in enumerate(obj):
            check_json_value(item, f"{path}[{idx}]")
        return
    if obj is None:
        return
    if isinstance(obj, float):
        if not math.isfinite(obj):
            raise ValueError(f"Non-finite float at {path}: {obj!r}")
        return
    if isinstance(obj, (str, int, bool)):
        return
    raise JsonValueTypeError(
        f"Unsupported type at {path}: {type(obj).__name__}"
    )


def _default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    raise JsonValueTypeError(f"Unsupported type: {type(value).__name__}")


def pretty_dumps(obj: Any) -> str:
    """Serialize for the editor.

    Rules:
    - 2-space indentation.
    - Keys keep the order they were received in.
    - Non-ASCII preserved.
    """
    return json.dumps(obj, indent=2, ensure_ascii=False, default=_default)


def parse_json_text(text: str) -> Any:
    """Parse editor text; raises ``ValueError`` with the parser message."""
    try:
        value = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"{exc.msg} (line {exc.lineno}, column {exc.colno})") from exc
    check_json_value(value)
    return value


def dumps_for_storage(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, allow_nan=False, default=_default)
