"""Update payload validation for workflow_config rows."""

from __future__ import annotations

import re
from typing import Any

from wfconfig.coerce import coerce_value, matches_kind, unknown_fields
from wfconfig.errors import ValidationError
from wfconfig.field_kinds import EDITABLE_FIELDS

_RECORD_ID_RE = re.compile(r"[0-9]{1,19}")
_BIGINT_MAX = 2**63 - 1


def parse_record_id(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw if 0 <= raw <= _BIGINT_MAX else None
    if not isinstance(raw, str) or not _RECORD_ID_RE.fullmatch(raw.strip()):
        return None
    value = int(raw.strip(), 10)
    if value > _BIGINT_MAX:
        return None
    return value


def _issue(field: str | None, message: str) -> dict:
    return {"field": field, "message": message}


def validate_config_payload(data: Any) -> tuple[list[dict], dict]:
    """Validate and coerce an API update body.

    Returns ``(errors, clean)``. ``clean`` only holds allow-listed fields and is
    complete when ``errors`` is empty.
    """
    if not isinstance(data, dict):
        return [_issue(None, "Config data must be an object")], {}
    errors: list[dict] = []
    clean: dict = {}
    for key in unknown_fields(data):
        # id and created_at are echoed back by clients that PUT a whole row.
        if key in ("id", "created_at"):
            continue
        errors.append(_issue(key, f"Unknown field: {key}"))
    for field in EDITABLE_FIELDS:
        if field not in data:
            errors.append(_issue(field, f"Missing field: {field}"))
            continue
        try:
            clean[field] = coerce_value(field, data[field])
        except ValidationError as exc:
            errors.append(_issue(exc.field, exc.message))
    return errors, clean


def require_update_payload(payload: Any) -> None:
    """Store-side check: exactly the allow-list, values already coerced."""
    if not isinstance(payload, dict):
        raise ValidationError(None, "Config data must be an object")
    extra = unknown_fields(payload)
    if extra:
        raise ValidationError(extra[0], f"Field is not editable: {extra[0]}")
    for field in EDITABLE_FIELDS:
        if field not in payload:
            raise ValidationError(field, f"Missing field: {field}")
        if not matches_kind(field, payload[field]):
            raise ValidationError(field, f"Value for {field} does not match its declared kind")
