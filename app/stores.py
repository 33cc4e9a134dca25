"""In-memory config store and session gate for dev and tests."""

from __future__ import annotations

import copy
import json
import secrets
import threading
import time
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError

from wfconfig.coerce import coerce_value
from wfconfig.errors import NotFound
from wfconfig.field_kinds import CONFIG_FIELDS, FieldKind

from app.config_validation import require_update_payload

SESSION_TTL_S = 12 * 60 * 60
_hasher = PasswordHasher()

_KIND_DEFAULTS: dict[FieldKind, Any] = {
    FieldKind.TEXT: "",
    FieldKind.INTEGER: 0,
    FieldKind.NUMERIC: Decimal("0"),
    FieldKind.JSON: {},
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


class MemoryConfigStore:
    def __init__(self) -> None:
        self._rows: Dict[int, dict] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def insert(self, data: dict | None = None) -> dict:
        """Add a row the way an out-of-band seed script would."""
        data = data or {}
        with self._lock:
            record_id = data.get("id")
            if record_id is None:
                record_id = self._next_id
            record_id = int(record_id)
            self._next_id = max(self._next_id, record_id + 1)
            record: dict = {}
            for name, kind in CONFIG_FIELDS:
                if kind is FieldKind.IDENTIFIER:
                    record[name] = record_id
                elif kind is FieldKind.READ_ONLY:
                    record[name] = data.get(name) or _now()
                elif name in data:
                    record[name] = coerce_value(name, copy.deepcopy(data[name]))
                else:
                    record[name] = copy.deepcopy(_KIND_DEFAULTS[kind])
            self._rows[record_id] = record
            return copy.deepcopy(record)

    def list_records(self) -> list[dict]:
        with self._lock:
            return [copy.deepcopy(self._rows[key]) for key in sorted(self._rows)]

    def get_record(self, record_id: int) -> dict | None:
        with self._lock:
            record = self._rows.get(record_id)
            return copy.deepcopy(record) if record else None

    def update_record(self, record_id: int, payload: dict) -> None:
        require_update_payload(payload)
        with self._lock:
            record = self._rows.get(record_id)
            if record is None:
                raise NotFound(record_id)
            record.update(copy.deepcopy(payload))


def load_seed_records(store: MemoryConfigStore, path: str | Path) -> int:
    items = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(items, list):
        raise ValueError(f"Seed file must contain a JSON array: {path}")
    for item in items:
        store.insert(item)
    return len(items)


class MemorySessionGate:
    def __init__(self, ttl_s: float = SESSION_TTL_S) -> None:
        self._users: Dict[str, dict] = {}
        self._sessions: Dict[str, dict] = {}
        self._ttl_s = ttl_s
        self._lock = threading.Lock()

    def add_user(self, username: str, password: str, role: str = "editor", user_id: str | None = None) -> dict:
        user = {
            "user_id": user_id or str(uuid.uuid4()),
            "username": username,
            "role": role,
            "password_hash": _hasher.hash(password),
        }
        with self._lock:
            self._users[username] = user
        return {"user_id": user["user_id"], "username": username, "role": role}

    def login(self, username: str | None, password: str | None) -> dict | None:
        if not isinstance(username, str) or not isinstance(password, str):
            return None
        with self._lock:
            user = self._users.get(username)
        if user is None:
            return None
        try:
            _hasher.verify(user["password_hash"], password)
        except (VerifyMismatchError, InvalidHash, VerificationError):
            return None
        token = str(uuid.UUID(bytes=secrets.token_bytes(16), version=4))
        session = {
            "user_id": user["user_id"],
            "username": user["username"],
            "role": user["role"],
            "expires_at": time.time() + self._ttl_s,
        }
        with self._lock:
            self._sessions[token] = session
        return {"session_token": token, "user_id": session["user_id"], "username": session["username"], "role": session["role"]}

    def authenticate(self, token: str | None) -> dict | None:
        if not token:
            return None
        with self._lock:
            session = self._sessions.get(token)
            if session is None:
                return None
            if session["expires_at"] <= time.time():
                del self._sessions[token]
                return None
        return {"user_id": session["user_id"], "username": session["username"], "role": session["role"]}

    def logout(self, token: str | None) -> None:
        if not token:
            return
        with self._lock:
            self._sessions.pop(token, None)


def parse_dev_users(raw: str) -> list[tuple[str, str, str]]:
    """Parse ``user:password[:role]`` entries separated by commas."""
    users = []
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        parts = entry.split(":")
        if len(parts) < 2 or not parts[0] or not parts[1]:
            raise ValueError(f"Invalid dev user entry: {entry!r}")
        role = parts[2] if len(parts) > 2 and parts[2] else "editor"
        users.append((parts[0], parts[1], role))
    return users
