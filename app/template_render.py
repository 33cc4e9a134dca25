from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

from wfconfig.form import FieldControl

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"


def _field_label(name: str) -> str:
    return name.replace("_", " ")


def _input_step(control: FieldControl) -> str:
    return "1" if control.kind is not None and control.kind.value == "integer" else "any"


def _textarea_rows(control: FieldControl) -> int:
    lines = control.value.count("\n") + 1
    return max(4, min(lines + 1, 30))


@lru_cache(maxsize=1)
def _env() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIR)),
        autoescape=select_autoescape(["html"]),
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["field_label"] = _field_label
    env.filters["input_step"] = _input_step
    env.filters["textarea_rows"] = _textarea_rows
    return env


def render_page(name: str, context: dict[str, Any]) -> str:
    return _env().get_template(name).render(**context)
