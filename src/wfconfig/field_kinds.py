"""Schema descriptor for the workflow_config table.

Every consumer (form rendering, form collection, API payload validation and
SQL generation) reads the column kinds from ``CONFIG_FIELDS``. The editable
allow-list is derived from it, never declared separately.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable


class FieldKind(str, Enum):
    IDENTIFIER = "id"
    READ_ONLY = "readonly"
    TEXT = "text"
    INTEGER = "integer"
    NUMERIC = "numeric"
    JSON = "json"

    @property
    def editable(self) -> bool:
        return self not in (FieldKind.IDENTIFIER, FieldKind.READ_ONLY)


# Order matters: it is the column order of the UPDATE statement and of the
# editor form.
CONFIG_FIELDS: tuple[tuple[str, FieldKind], ...] = (
    ("id", FieldKind.IDENTIFIER),
    ("created_at", FieldKind.READ_ONLY),
    ("env", FieldKind.TEXT),
    ("bot_id", FieldKind.TEXT),
    ("language_rules", FieldKind.JSON),
    ("language_confidence", FieldKind.NUMERIC),
    ("llm_prompt_language_detector", FieldKind.TEXT),
    ("llm_prompt_return_schema", FieldKind.JSON),
    ("tipus_resposta", FieldKind.INTEGER),
    ("json_structured_output_parser_0", FieldKind.JSON),
    ("json_structured_output_parser_1", FieldKind.JSON),
    ("json_structured_output_parser_2", FieldKind.JSON),
    ("prompt_system_message_ca", FieldKind.TEXT),
    ("prompt_system_message_es", FieldKind.TEXT),
    ("prompt_system_message_fr", FieldKind.TEXT),
    ("prompt_system_message_en", FieldKind.TEXT),
    ("user_prompt_templates_ca", FieldKind.JSON),
    ("user_prompt_templates_es", FieldKind.JSON),
    ("user_prompt_templates_fr", FieldKind.JSON),
    ("user_prompt_templates_en", FieldKind.JSON),
    ("llm_get_language", FieldKind.TEXT),
    ("llm_get_response", FieldKind.TEXT),
    ("llm_get_response_temperature", FieldKind.NUMERIC),
    ("db_vectorial_collection", FieldKind.TEXT),
    ("qdrant_top_k", FieldKind.INTEGER),
    ("embeddings_model_name", FieldKind.TEXT),
    ("whatsapp_max_chars", FieldKind.INTEGER),
    ("whatsapp_send_delay_seconds", FieldKind.INTEGER),
    ("whatsapp_labels_ca", FieldKind.JSON),
    ("whatsapp_labels_es", FieldKind.JSON),
    ("whatsapp_labels_fr", FieldKind.JSON),
    ("whatsapp_labels_en", FieldKind.JSON),
)

FIELD_KINDS: dict[str, FieldKind] = dict(CONFIG_FIELDS)

EDITABLE_FIELDS: tuple[str, ...] = tuple(name for name, kind in CONFIG_FIELDS if kind.editable)

IDENTIFIER_FIELD = "id"

# Long prompt bodies get a multi-line control even though they are plain text.
MULTILINE_TEXT_PREFIXES = ("prompt_system_message_", "llm_prompt_")


def kind_of(field_name: str) -> FieldKind | None:
    return FIELD_KINDS.get(field_name)


def is_editable(field_name: str) -> bool:
    kind = kind_of(field_name)
    return kind is not None and kind.editable


def is_multiline_text(field_name: str) -> bool:
    return kind_of(field_name) is FieldKind.TEXT and field_name.startswith(MULTILINE_TEXT_PREFIXES)


def fields_of_kind(kind: FieldKind) -> list[str]:
    return [name for name, field_kind in CONFIG_FIELDS if field_kind is kind]


def schema_drift(columns: Iterable[str]) -> tuple[list[str], list[str]]:
    """Compare live table columns against the registry.

    Returns ``(missing_in_table, unknown_in_registry)``. Both lists empty means
    the table and the registry agree.
    """
    present = set(columns)
    missing = [name for name, _ in CONFIG_FIELDS if name not in present]
    unknown = sorted(col for col in present if col not in FIELD_KINDS)
    return missing, unknown
