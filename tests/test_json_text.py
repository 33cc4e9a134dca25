import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from wfconfig.json_text import JsonValueTypeError, check_json_value, dumps_for_storage, parse_json_text, pretty_dumps


class TestJsonText(unittest.TestCase):
    def test_pretty_uses_two_spaces_and_keeps_key_order(self) -> None:
        obj = {"b": 1, "a": {"d": [1, 2]}}
        expected = '{\n  "b": 1,\n  "a": {\n    "d": [\n      1,\n      2\n    ]\n  }\n}'
        self.assertEqual(pretty_dumps(obj), expected)

    def test_non_ascii_preserved(self) -> None:
        out = pretty_dumps({"label": "Benvinguda a l'àrea"})
        self.assertIn("àrea", out)
        self.assertNotIn("\\u", out)

    def test_parse_error_carries_parser_message(self) -> None:
        with self.assertRaises(ValueError) as ctx:
            parse_json_text("{a:1}")
        self.assertIn("Expecting property name", str(ctx.exception))

    def test_parse_rejects_nan(self) -> None:
        with self.assertRaises(ValueError):
            parse_json_text('{"x": NaN}')

    def test_check_rejects_unsupported_type(self) -> None:
        with self.assertRaises(JsonValueTypeError):
            check_json_value({"bad": {1, 2}})
        with self.assertRaises(JsonValueTypeError):
            check_json_value({1: "int key"})

    def test_storage_dump_is_compact(self) -> None:
        self.assertEqual(dumps_for_storage({"k": "v"}), '{"k": "v"}')
        self.assertEqual(dumps_for_storage(None), "null")


if __name__ == "__main__":
    unittest.main()
