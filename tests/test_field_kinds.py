import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from wfconfig.field_kinds import (
    CONFIG_FIELDS,
    EDITABLE_FIELDS,
    FieldKind,
    fields_of_kind,
    is_editable,
    is_multiline_text,
    kind_of,
    schema_drift,
)


class TestFieldKinds(unittest.TestCase):
    def test_kind_lookup(self) -> None:
        self.assertIs(kind_of("id"), FieldKind.IDENTIFIER)
        self.assertIs(kind_of("created_at"), FieldKind.READ_ONLY)
        self.assertIs(kind_of("env"), FieldKind.TEXT)
        self.assertIs(kind_of("qdrant_top_k"), FieldKind.INTEGER)
        self.assertIs(kind_of("language_confidence"), FieldKind.NUMERIC)
        self.assertIs(kind_of("whatsapp_labels_en"), FieldKind.JSON)

    def test_unknown_field_is_none(self) -> None:
        self.assertIsNone(kind_of("not_a_column"))
        self.assertFalse(is_editable("not_a_column"))

    def test_allow_list_is_derived_from_registry(self) -> None:
        expected = [name for name, kind in CONFIG_FIELDS if kind not in (FieldKind.IDENTIFIER, FieldKind.READ_ONLY)]
        self.assertEqual(list(EDITABLE_FIELDS), expected)
        self.assertNotIn("id", EDITABLE_FIELDS)
        self.assertNotIn("created_at", EDITABLE_FIELDS)
        self.assertEqual(len(EDITABLE_FIELDS), 30)

    def test_update_column_order(self) -> None:
        self.assertEqual(EDITABLE_FIELDS[:4], ("env", "bot_id", "language_rules", "language_confidence"))
        self.assertEqual(EDITABLE_FIELDS[-1], "whatsapp_labels_en")

    def test_kind_groups(self) -> None:
        self.assertEqual(fields_of_kind(FieldKind.NUMERIC), ["language_confidence", "llm_get_response_temperature"])
        self.assertEqual(len(fields_of_kind(FieldKind.INTEGER)), 4)
        self.assertEqual(len(fields_of_kind(FieldKind.JSON)), 13)

    def test_multiline_text(self) -> None:
        self.assertTrue(is_multiline_text("prompt_system_message_ca"))
        self.assertTrue(is_multiline_text("llm_prompt_language_detector"))
        self.assertFalse(is_multiline_text("env"))
        # json kind is never treated as multiline text
        self.assertFalse(is_multiline_text("llm_prompt_return_schema"))

    def test_schema_drift(self) -> None:
        columns = [name for name, _ in CONFIG_FIELDS]
        self.assertEqual(schema_drift(columns), ([], []))
        missing, unknown = schema_drift([c for c in columns if c != "qdrant_top_k"] + ["updated_at"])
        self.assertEqual(missing, ["qdrant_top_k"])
        self.assertEqual(unknown, ["updated_at"])


if __name__ == "__main__":
    unittest.main()
