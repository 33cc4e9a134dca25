"""Render config records into form controls and collect them back."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Mapping

from .coerce import coerce_value
from .errors import ValidationError
from .field_kinds import EDITABLE_FIELDS, FieldKind, is_multiline_text, kind_of
from .json_text import pretty_dumps


@dataclass(frozen=True)
class FieldControl:
    name: str
    kind: FieldKind | None
    widget: str
    value: str

    @property
    def editable(self) -> bool:
        return self.kind is not None and self.kind.editable


def display_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (dict, list)):
        return pretty_dumps(value)
    return str(value)


def _widget_for(name: str, kind: FieldKind | None) -> str:
    if kind is None:
        return "opaque"
    if kind in (FieldKind.IDENTIFIER, FieldKind.READ_ONLY):
        return "display"
    if kind is FieldKind.JSON:
        return "json"
    if kind in (FieldKind.INTEGER, FieldKind.NUMERIC):
        return "number"
    if is_multiline_text(name):
        return "textarea"
    return "input"


def render_field(name: str, value: Any) -> FieldControl:
    kind = kind_of(name)
    if kind is FieldKind.JSON:
        text = pretty_dumps(value)
    else:
        text = display_value(value)
    return FieldControl(name=name, kind=kind, widget=_widget_for(name, kind), value=text)


def render_record(record: Mapping[str, Any], draft: Mapping[str, str] | None = None) -> list[FieldControl]:
    """Build one control per field present in ``record``.

    ``draft`` holds raw control values from a failed save; editable controls
    show those instead of the stored values.
    """
    controls = []
    for name, value in record.items():
        control = render_field(name, value)
        if draft is not None and control.editable and name in draft:
            control = FieldControl(name=name, kind=control.kind, widget=control.widget, value=draft[name])
        controls.append(control)
    return controls


def ui_state(controls: list[FieldControl]) -> dict[str, str]:
    return {control.name: control.value for control in controls}


def collect_form(state: Mapping[str, str]) -> dict[str, Any]:
    """Turn raw control values into a typed update payload.

    Only allow-listed fields are read; identifier, read-only and unknown
    entries in ``state`` are ignored. The first invalid field aborts the
    collection.
    """
    payload: dict[str, Any] = {}
    for field in EDITABLE_FIELDS:
        if field not in state:
            raise ValidationError(field, f"Missing field: {field}")
        payload[field] = coerce_value(field, state[field])
    return payload
