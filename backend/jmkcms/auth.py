"""Admin session gate and FastAPI security dependency.

The admin area is protected by a single shared password. A successful
login sets the `admin_session` cookie to the sentinel value
`authenticated`; any other value, or no cookie, is unauthenticated.

This is deliberately minimal and only suitable for a low-value internal
CMS: there is one secret compared in plaintext, no per-user accounts and
no server-side session state (see DESIGN.md).
"""

import hmac
import logging
from typing import Mapping, Optional

from fastapi import Depends, HTTPException, Request

from .config import settings
from .schemas import ActionResult

logger = logging.getLogger("jmkcms.auth")

ADMIN_SESSION_COOKIE = "admin_session"
ADMIN_SESSION_VALUE = "authenticated"
ADMIN_SESSION_MAX_AGE = 60 * 60 * 24 * 7


class SessionGate:
    """Reads and writes the admin session cookie.

    `response` arguments only need Starlette's `set_cookie` and
    `delete_cookie` methods, so tests can pass a mock.
    """

    def __init__(self, admin_password: Optional[str], secure_cookie: bool = False):
        self.admin_password = admin_password or ""
        self.secure_cookie = secure_cookie

    def is_authenticated(self, cookies: Mapping[str, str]) -> bool:
        return cookies.get(ADMIN_SESSION_COOKIE) == ADMIN_SESSION_VALUE

    def login(self, response, password: str) -> ActionResult:
        """Compare `password` with the configured secret and set the cookie on match."""
        if not self.admin_password:
            logger.error("admin login attempted but ADMIN_PASSWORD is not configured")
            return ActionResult.fail("관리자 비밀번호가 설정되지 않았습니다. 서버 설정을 확인해주세요.")
        if not hmac.compare_digest((password or "").encode("utf-8"), self.admin_password.encode("utf-8")):
            logger.warning("admin login failed: wrong password")
            return ActionResult.fail("비밀번호가 올바르지 않습니다.")
        response.set_cookie(
            ADMIN_SESSION_COOKIE,
            ADMIN_SESSION_VALUE,
            max_age=ADMIN_SESSION_MAX_AGE,
            path="/",
            httponly=True,
            samesite="lax",
            secure=self.secure_cookie,
        )
        logger.info("admin login succeeded")
        return ActionResult.ok("로그인에 성공했습니다.")

    def logout(self, response) -> None:
        response.delete_cookie(ADMIN_SESSION_COOKIE, path="/")


def get_session_gate() -> SessionGate:
    """FastAPI dependency building the gate from current settings."""
    return SessionGate(settings.ADMIN_PASSWORD, secure_cookie=settings.SESSION_COOKIE_SECURE)


def require_admin(request: Request, gate: SessionGate = Depends(get_session_gate)) -> None:
    """FastAPI dependency that rejects requests without an admin session (401)."""
    if not gate.is_authenticated(request.cookies):
        raise HTTPException(status_code=401, detail="admin authentication required")
