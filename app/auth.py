"""Session cookie auth middleware."""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, Optional

import anyio
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse

from wfconfig.errors import StorageError

logger = logging.getLogger("wfconfig.auth")

DEFAULT_COOKIE_NAME = "workflow_session"
API_PROTECTED_PREFIXES = ("/api/configs",)
PAGE_PROTECTED_PREFIXES = ("/editor",)


def get_session_token(request: Request, cookie_name: str) -> Optional[str]:
    token = request.cookies.get(cookie_name, "")
    return token.strip() or None


def _matches(path: str, prefixes: Iterable[str]) -> bool:
    return any(path == prefix or path.startswith(prefix + "/") for prefix in prefixes)


class SessionAuthMiddleware(BaseHTTPMiddleware):
    """Gate protected routes on a valid session cookie.

    API routes answer 401 JSON; editor pages redirect to the login page.
    ``get_gate`` is called per request so the gate can be swapped at runtime.
    """

    def __init__(self, app, get_gate: Callable[[], object], cookie_name: str = DEFAULT_COOKIE_NAME) -> None:
        super().__init__(app)
        self._get_gate = get_gate
        self._cookie_name = cookie_name

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        is_api = _matches(path, API_PROTECTED_PREFIXES)
        is_page = _matches(path, PAGE_PROTECTED_PREFIXES)
        if request.method == "OPTIONS" or not (is_api or is_page):
            return await call_next(request)

        start = time.perf_counter()
        token = get_session_token(request, self._cookie_name)
        try:
            session = await anyio.to_thread.run_sync(self._get_gate().authenticate, token) if token else None
        except StorageError as exc:
            logger.error("auth_session_check_failed path=%s error=%s", path, exc)
            if is_api:
                return JSONResponse({"error": str(exc)}, status_code=503)
            return RedirectResponse("/login?error=unavailable", status_code=303)

        if not session:
            logger.warning("auth_invalid_session path=%s has_token=%s", path, bool(token))
            if is_api:
                return JSONResponse({"error": "Unauthorized"}, status_code=401)
            return RedirectResponse("/login", status_code=303)

        request.state.user = session
        request.state.session_token = token
        request.state.auth_ms = (time.perf_counter() - start) * 1000
        return await call_next(request)
