import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from wfconfig import editor


RECORDS = [
    {"id": 1, "env": "prod", "bot_id": "alpha"},
    {"id": 2, "env": "dev", "bot_id": "beta"},
]


class TestEditorState(unittest.TestCase):
    def test_loaded_selects_first_record(self) -> None:
        state = editor.loaded(RECORDS)
        self.assertEqual(state.current_id, 1)
        self.assertEqual(state.status, "2 records loaded")
        self.assertEqual(editor.current(state)["bot_id"], "alpha")

    def test_loaded_keeps_selection_after_reload(self) -> None:
        self.assertEqual(editor.loaded(RECORDS, keep_id=2).current_id, 2)
        self.assertEqual(editor.loaded(RECORDS, keep_id=99).current_id, 1)

    def test_empty_table(self) -> None:
        state = editor.loaded([])
        self.assertIsNone(state.current_id)
        self.assertIsNone(editor.current(state))
        self.assertEqual(state.status, "0 records loaded")

    def test_single_record_status(self) -> None:
        self.assertEqual(editor.loaded(RECORDS[:1]).status, "1 record loaded")

    def test_select_discards_draft(self) -> None:
        state = editor.save_failed(editor.loaded(RECORDS), {"env": "edited"}, "Invalid JSON")
        self.assertEqual(state.draft, {"env": "edited"})
        switched = editor.select(state, 2)
        self.assertEqual(switched.current_id, 2)
        self.assertIsNone(switched.draft)

    def test_select_unknown_record(self) -> None:
        state = editor.select(editor.loaded(RECORDS), 42)
        self.assertEqual(state.current_id, 1)
        self.assertEqual(state.status_kind, editor.STATUS_ERROR)
        self.assertIn("42", state.status)

    def test_save_failed_keeps_edits_and_record(self) -> None:
        state = editor.loaded(RECORDS)
        failed = editor.save_failed(state, {"env": "edited"}, "Invalid integer value for qdrant_top_k")
        self.assertEqual(failed.status, "Error: Invalid integer value for qdrant_top_k")
        self.assertEqual(editor.current(failed), RECORDS[0])
        self.assertEqual(failed.draft, {"env": "edited"})

    def test_saved_clears_draft(self) -> None:
        state = editor.saved(editor.save_failed(editor.loaded(RECORDS), {"env": "x"}, "boom"))
        self.assertIsNone(state.draft)
        self.assertEqual(state.status_kind, editor.STATUS_OK)

    def test_record_label(self) -> None:
        self.assertEqual(editor.record_label(RECORDS[0]), "#1  ·  prod  ·  alpha")


if __name__ == "__main__":
    unittest.main()
