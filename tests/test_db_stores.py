import os
import sys
import unittest
from contextlib import contextmanager
from decimal import Decimal
from unittest.mock import patch


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

import psycopg2

import app.stores_db as stores_db
from app.db import _redact_params
from app.stores_db import DbConfigStore, DbSessionGate, build_update_params, build_update_sql
from wfconfig.errors import NotFound, StorageError, ValidationError
from wfconfig.field_kinds import CONFIG_FIELDS, EDITABLE_FIELDS, FieldKind, kind_of
from wfconfig.form import collect_form, render_record, ui_state

USE_DB = os.getenv("USE_DB", "0") == "1"
DB_URL = os.getenv("DATABASE_URL")


@contextmanager
def _fake_conn():
    yield object()


def _payload() -> dict:
    payload = {}
    for field in EDITABLE_FIELDS:
        kind = kind_of(field)
        if kind is FieldKind.TEXT:
            payload[field] = f"{field}-text"
        elif kind is FieldKind.INTEGER:
            payload[field] = 4
        elif kind is FieldKind.NUMERIC:
            payload[field] = Decimal("0.5")
        else:
            payload[field] = {"k": "v"}
    return payload


class TestUpdateSql(unittest.TestCase):
    def test_single_statement_covers_all_editable_columns(self) -> None:
        sql = build_update_sql("public.workflow_config")
        self.assertTrue(sql.startswith("update public.workflow_config\nset\n  env = %s,"))
        self.assertIn("language_rules = %s::jsonb", sql)
        self.assertIn("language_confidence = %s::numeric", sql)
        self.assertIn("tipus_resposta = %s::integer", sql)
        self.assertTrue(sql.endswith("where id = %s::bigint"))
        self.assertEqual(sql.count("%s"), len(EDITABLE_FIELDS) + 1)
        self.assertNotIn("created_at", sql)

    def test_params_follow_column_order(self) -> None:
        params = build_update_params(9, _payload())
        self.assertEqual(len(params), len(EDITABLE_FIELDS) + 1)
        self.assertEqual(params[0], "env-text")
        self.assertEqual(params[2], '{"k": "v"}')
        self.assertEqual(params[3], Decimal("0.5"))
        self.assertEqual(params[-1], 9)

    def test_rejects_unsafe_table_name(self) -> None:
        with self.assertRaises(ValueError):
            DbConfigStore(table="workflow_config; drop table x")


class TestDbConfigStore(unittest.TestCase):
    def test_update_reports_not_found(self) -> None:
        store = DbConfigStore(table="public.workflow_config")
        with patch.object(stores_db, "get_conn", _fake_conn), patch.object(stores_db, "execute", return_value=0) as execute:
            with self.assertRaises(NotFound):
                store.update_record(404, _payload())
        self.assertEqual(execute.call_count, 1)

    def test_update_success(self) -> None:
        store = DbConfigStore(table="public.workflow_config")
        with patch.object(stores_db, "get_conn", _fake_conn), patch.object(stores_db, "execute", return_value=1) as execute:
            store.update_record(3, _payload())
        args, kwargs = execute.call_args
        self.assertEqual(args[2][-1], 3)
        self.assertEqual(kwargs["query_name"], "workflow_config.update")

    def test_missing_field_never_reaches_db(self) -> None:
        store = DbConfigStore(table="public.workflow_config")
        payload = _payload()
        del payload["env"]
        with patch.object(stores_db, "get_conn", _fake_conn), patch.object(stores_db, "execute", return_value=1) as execute:
            with self.assertRaises(ValidationError):
                store.update_record(3, payload)
        execute.assert_not_called()

    def test_driver_errors_become_storage_errors(self) -> None:
        store = DbConfigStore(table="public.workflow_config")
        with patch.object(stores_db, "get_conn", _fake_conn), patch.object(
            stores_db, "fetch_all", side_effect=psycopg2.OperationalError("server closed the connection")
        ):
            with self.assertRaises(StorageError) as ctx:
                store.list_records()
        self.assertIn("server closed the connection", str(ctx.exception))
        self.assertIsInstance(ctx.exception.__cause__, psycopg2.OperationalError)

    def test_verify_schema_detects_drift(self) -> None:
        store = DbConfigStore(table="public.workflow_config")
        rows = [{"column_name": name} for name, _ in CONFIG_FIELDS if name != "qdrant_top_k"]
        with patch.object(stores_db, "get_conn", _fake_conn), patch.object(stores_db, "fetch_all", return_value=rows):
            self.assertEqual(store.verify_schema(), (["qdrant_top_k"], []))
            with self.assertRaises(StorageError):
                store.verify_schema(strict=True)


class TestDbSessionGate(unittest.TestCase):
    def test_non_uuid_token_skips_query(self) -> None:
        gate = DbSessionGate()
        with patch.object(stores_db, "fetch_one") as fetch_one:
            self.assertIsNone(gate.authenticate("not-a-uuid"))
            self.assertIsNone(gate.authenticate(None))
        fetch_one.assert_not_called()

    def test_login_maps_procedure_row(self) -> None:
        gate = DbSessionGate()
        row = {
            "ok": True,
            "session_token": "6f1c2f7e-6a51-4d0e-9a3c-1f2b3c4d5e6f",
            "user_id": 12,
            "username": "ada",
            "role": "admin",
        }
        with patch.object(stores_db, "get_conn", _fake_conn), patch.object(stores_db, "fetch_one", return_value=row) as fetch_one:
            session = gate.login("ada", "pw")
        self.assertEqual(session["session_token"], row["session_token"])
        self.assertEqual(session["user_id"], 12)
        self.assertTrue(fetch_one.call_args.kwargs["secret"])

    def test_login_rejected(self) -> None:
        gate = DbSessionGate()
        with patch.object(stores_db, "get_conn", _fake_conn), patch.object(stores_db, "fetch_one", return_value={"ok": False}):
            self.assertIsNone(gate.login("ada", "wrong"))


class TestQueryLogRedaction(unittest.TestCase):
    def test_secret_params_masked(self) -> None:
        self.assertEqual(_redact_params(["ada", "pw"], secret=True), ["<redacted>", "<redacted>"])

    def test_long_strings_shortened(self) -> None:
        redacted = _redact_params(["x" * 200, b"abc", 5])
        self.assertTrue(redacted[0].startswith("x" * 40))
        self.assertLess(len(redacted[0]), 60)
        self.assertEqual(redacted[1], "<bytes:3>")
        self.assertEqual(redacted[2], 5)


class TestDbConfigStoreLive(unittest.TestCase):
    @unittest.skipUnless(USE_DB and DB_URL, "DB test requires USE_DB=1 and DATABASE_URL")
    def test_update_round_trip(self) -> None:
        store = DbConfigStore()
        records = store.list_records()
        if not records:
            self.skipTest("workflow_config has no rows")
        record = records[0]
        payload = collect_form(ui_state(render_record(record)))
        store.update_record(record["id"], payload)
        self.assertEqual(store.get_record(record["id"])["env"], record["env"])
        with self.assertRaises(NotFound):
            store.update_record(-1, payload)


if __name__ == "__main__":
    unittest.main()
