"""FastAPI app for the workflow_config editor."""

from __future__ import annotations

import os
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


_load_env_file(ROOT / "app" / ".env")

import functools
import logging
import time

import anyio

from wfconfig import editor
from wfconfig.errors import ConfigEditorError, NotFound, StorageError, Unauthenticated, ValidationError
from wfconfig.form import collect_form, render_record

from app.auth import DEFAULT_COOKIE_NAME, SessionAuthMiddleware, get_session_token
from app.config_validation import parse_record_id, validate_config_payload
from app.db import close_pool, fetch_one, get_conn, get_db_ms, get_db_stats, reset_db_stats
from app.stores import SESSION_TTL_S, MemoryConfigStore, MemorySessionGate, load_seed_records, parse_dev_users
from app.stores_db import DbConfigStore, DbSessionGate
from app.template_render import render_page

logger = logging.getLogger("wfconfig")
logging.basicConfig(level=logging.INFO)

APP_ENV = os.getenv("APP_ENV", os.getenv("NODE_ENV", "dev")).strip().lower() or "dev"
IS_PRODUCTION = APP_ENV == "production"
USE_DB = os.getenv("USE_DB", "").strip() == "1"
STRICT_SCHEMA = os.getenv("WFCONFIG_STRICT_SCHEMA", "").strip() == "1"
COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "").strip() or DEFAULT_COOKIE_NAME
REQ_SLOW_MS = float(os.getenv("WFCONFIG_REQ_SLOW_MS", "250"))
MAX_BODY_BYTES = int(os.getenv("WFCONFIG_MAX_BODY_BYTES", str(2 * 1024 * 1024)))
HOST = os.getenv("HOST", "127.0.0.1").strip() or "127.0.0.1"
PORT = int(os.getenv("PORT", "3000"))

if USE_DB:
    config_store = DbConfigStore()
    session_gate = DbSessionGate()
else:
    config_store = MemoryConfigStore()
    session_gate = MemorySessionGate()
    _seed_file = os.getenv("WFCONFIG_SEED_FILE", "").strip()
    if _seed_file:
        logger.info("memory_seed file=%s records=%s", _seed_file, load_seed_records(config_store, _seed_file))
    for _username, _password, _role in parse_dev_users(os.getenv("WFCONFIG_DEV_USERS", "")):
        session_gate.add_user(_username, _password, role=_role)

logger.info("use_db=%s app_env=%s cookie=%s", USE_DB, APP_ENV, COOKIE_NAME)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    if USE_DB:
        try:
            await _run(config_store.verify_schema, strict=STRICT_SCHEMA)
        except StorageError as exc:
            if STRICT_SCHEMA:
                raise
            logger.error("config_schema_check_failed error=%s", exc)
    yield
    if USE_DB:
        close_pool()


app = FastAPI(title="Workflow Config Editor", lifespan=lifespan)
app.add_middleware(SessionAuthMiddleware, get_gate=lambda: session_gate, cookie_name=COOKIE_NAME)
app.mount("/static", StaticFiles(directory=str(ROOT / "public")), name="static")


async def _run(fn, *args, **kwargs):
    return await anyio.to_thread.run_sync(functools.partial(fn, *args, **kwargs))


@app.middleware("http")
async def timing_middleware(request: Request, call_next):
    reset_db_stats()
    start = time.perf_counter()
    response = await call_next(request)
    total_ms = (time.perf_counter() - start) * 1000
    auth_ms = getattr(request.state, "auth_ms", 0.0)
    db_ms = get_db_ms()
    db_stats = get_db_stats()
    route = request.scope.get("route")
    route_name = getattr(route, "name", None) or "unknown"
    logger.info(
        "%s %s %s route=%s total_ms=%.1f auth_ms=%.1f db_ms=%.1f db_q=%s",
        request.method,
        request.url.path,
        response.status_code,
        route_name,
        total_ms,
        auth_ms,
        db_ms,
        db_stats.get("queries", 0),
    )
    if total_ms >= REQ_SLOW_MS:
        logger.warning(
            "slow_request method=%s path=%s route=%s total_ms=%.1f db_ms=%.1f status=%s",
            request.method,
            request.url.path,
            route_name,
            total_ms,
            db_ms,
            response.status_code,
        )
    return response


# Same defaults helmet applies with its CSP disabled.
SECURITY_HEADERS = {
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Origin-Agent-Cluster": "?1",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-XSS-Protection": "0",
}
_BODY_METHODS = {"POST", "PUT", "PATCH"}


def _declared_length(request: Request) -> int | None:
    raw = request.headers.get("content-length")
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


@app.middleware("http")
async def body_limit_middleware(request: Request, call_next):
    if request.method in _BODY_METHODS:
        length = _declared_length(request)
        if length is not None and length > MAX_BODY_BYTES:
            logger.warning("request_body_too_large path=%s bytes=%s", request.url.path, length)
            return JSONResponse({"error": "Request body too large"}, status_code=413)
    return await call_next(request)


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


def _error_response(message: str, status: int = 400, field: str | None = None, errors: list | None = None) -> JSONResponse:
    body: dict[str, Any] = {"error": message}
    if field is not None:
        body["field"] = field
    if errors:
        body["errors"] = errors
    return JSONResponse(jsonable_encoder(body), status_code=status)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return _error_response(exc.message, status=400, field=exc.field)


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return _error_response(str(exc), status=404)


@app.exception_handler(Unauthenticated)
async def unauthenticated_handler(request: Request, exc: Unauthenticated):
    return _error_response("Unauthorized", status=401)


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error("storage_error path=%s error=%s", request.url.path, exc)
    return _error_response(str(exc) or "Storage unavailable", status=503)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error path=%s", request.url.path)
    return _error_response(str(exc) or "Internal server error", status=500)


async def _safe_json(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        return {}


def _public_user(session: dict) -> dict:
    return {"id": session.get("user_id"), "username": session.get("username"), "role": session.get("role")}


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        COOKIE_NAME,
        token,
        httponly=True,
        samesite="lax",
        secure=IS_PRODUCTION,
        max_age=SESSION_TTL_S,
        path="/",
    )


async def _logout_quietly(token: str | None) -> None:
    if not token:
        return
    try:
        await _run(session_gate.logout, token)
    except ConfigEditorError as exc:
        logger.warning("logout_cleanup_failed error=%s", exc)


@app.get("/health")
async def health() -> dict:
    return {"ok": True}


@app.get("/ops/db_ping")
async def db_ping() -> dict:
    if not USE_DB:
        return {"ok": True, "db": False}
    start = time.perf_counter()

    def _ping() -> None:
        with get_conn() as conn:
            fetch_one(conn, "select 1 as ok", query_name="ops.db_ping")

    await _run(_ping)
    elapsed_ms = (time.perf_counter() - start) * 1000
    return {"ok": True, "ms": round(elapsed_ms, 2)}


# JSON API


@app.post("/api/login")
async def api_login(request: Request):
    body = await _safe_json(request)
    body = body if isinstance(body, dict) else {}
    username = body.get("username")
    session = await _run(session_gate.login, username, body.get("password"))
    if not session:
        logger.warning("auth_login_failed username=%s", username if isinstance(username, str) else None)
        return _error_response("Invalid credentials", status=401)
    response = JSONResponse({"user": jsonable_encoder(_public_user(session))})
    _set_session_cookie(response, session["session_token"])
    logger.info("auth_login username=%s role=%s", session.get("username"), session.get("role"))
    return response


@app.post("/api/logout")
async def api_logout(request: Request):
    await _logout_quietly(get_session_token(request, COOKIE_NAME))
    response = JSONResponse({"ok": True})
    response.delete_cookie(COOKIE_NAME, path="/")
    return response


@app.get("/api/session")
async def api_session(request: Request):
    token = get_session_token(request, COOKIE_NAME)
    session = await _run(session_gate.authenticate, token) if token else None
    if not session:
        return {"loggedIn": False}
    return JSONResponse(jsonable_encoder({"loggedIn": True, "user": _public_user(session)}))


@app.get("/api/configs")
async def api_list_configs(request: Request):
    records = await _run(config_store.list_records)
    return JSONResponse(jsonable_encoder(records))


@app.put("/api/configs/{record_id}")
async def api_update_config(request: Request, record_id: str):
    parsed_id = parse_record_id(record_id)
    if parsed_id is None:
        return _error_response("Invalid id", status=400)
    try:
        body = await request.json()
    except ValueError:
        return _error_response("Invalid JSON body", status=400)
    errors, clean = validate_config_payload(body)
    if errors:
        logger.warning("config_validation_failed id=%s fields=%s", parsed_id, [e.get("field") for e in errors])
        return _error_response(errors[0]["message"], status=400, field=errors[0]["field"], errors=errors)
    await _run(config_store.update_record, parsed_id, clean)
    logger.info("config_saved id=%s user=%s", parsed_id, (request.state.user or {}).get("username"))
    return {"ok": True}


# HTML editor

_LOGIN_ERRORS = {"unavailable": "Session service unavailable"}


def _login_page(username: str = "", error: str = "", status: int = 200) -> HTMLResponse:
    return HTMLResponse(render_page("login.html", {"username": username, "error": error}), status_code=status)


def _editor_page(request: Request, state: editor.EditorState, status: int = 200) -> HTMLResponse:
    record = editor.current(state)
    context = {
        "user": request.state.user,
        "options": [{"id": r.get("id"), "label": editor.record_label(r)} for r in state.records],
        "current_id": state.current_id,
        "controls": render_record(record, state.draft) if record else [],
        "status": state.status,
        "status_kind": state.status_kind,
    }
    return HTMLResponse(render_page("editor.html", context), status_code=status)


@app.get("/")
async def index():
    return RedirectResponse("/editor", status_code=303)


@app.get("/login")
async def login_page(error: str = ""):
    return _login_page(error=_LOGIN_ERRORS.get(error, ""))


@app.post("/login")
async def login_form(request: Request):
    form = await request.form()
    username = str(form.get("username") or "").strip()
    password = str(form.get("password") or "")
    try:
        session = await _run(session_gate.login, username, password)
    except StorageError as exc:
        logger.error("auth_login_storage_error error=%s", exc)
        return _login_page(username, str(exc), status=503)
    if not session:
        logger.warning("auth_login_failed username=%s", username)
        return _login_page(username, "Invalid credentials", status=401)
    response = RedirectResponse("/editor", status_code=303)
    _set_session_cookie(response, session["session_token"])
    return response


@app.post("/logout")
async def logout_form(request: Request):
    await _logout_quietly(get_session_token(request, COOKIE_NAME))
    response = RedirectResponse("/login", status_code=303)
    response.delete_cookie(COOKIE_NAME, path="/")
    return response


@app.get("/editor")
async def editor_page(request: Request, id: str | None = None, saved: str | None = None):
    records = await _run(config_store.list_records)
    wanted = parse_record_id(id) if id else None
    state = editor.loaded(records, keep_id=wanted)
    if wanted is not None and state.current_id != wanted:
        state = editor.select(state, wanted)
    elif saved:
        state = editor.saved(state)
    return _editor_page(request, state)


def _form_state(form) -> dict[str, str]:
    # Browsers submit textarea line breaks as CRLF.
    return {key: value.replace("\r\n", "\n") for key, value in form.items() if isinstance(value, str)}


@app.post("/editor/{record_id}")
async def editor_save(request: Request, record_id: str):
    parsed_id = parse_record_id(record_id)
    draft = _form_state(await request.form())
    records = await _run(config_store.list_records)
    state = editor.loaded(records, keep_id=parsed_id)
    if parsed_id is None or state.current_id != parsed_id:
        state = editor.select(state, parsed_id if parsed_id is not None else record_id)
        return _editor_page(request, state, status=400 if parsed_id is None else 404)
    try:
        payload = collect_form(draft)
        await _run(config_store.update_record, parsed_id, payload)
    except ValidationError as exc:
        logger.warning("config_validation_failed id=%s field=%s", parsed_id, exc.field)
        return _editor_page(request, editor.save_failed(state, draft, exc.message), status=400)
    except NotFound as exc:
        return _editor_page(request, editor.save_failed(state, draft, str(exc)), status=404)
    except StorageError as exc:
        logger.error("config_save_failed id=%s error=%s", parsed_id, exc)
        return _editor_page(request, editor.save_failed(state, draft, str(exc)), status=503)
    logger.info("config_saved id=%s user=%s", parsed_id, (request.state.user or {}).get("username"))
    return RedirectResponse(f"/editor?id={parsed_id}&saved=1", status_code=303)


def run() -> None:
    import uvicorn

    uvicorn.run("app.main:app", host=HOST, port=PORT, reload=False)


if __name__ == "__main__":
    run()
