"""
Session cookie — identifies the browser's wizard session across the OAuth redirect.

The cookie holds a short JWT whose `sid` claim is an opaque random session id.
There are no user accounts: the signature only stops a client from picking
someone else's session id.
"""

import logging
import secrets
from datetime import datetime, timezone, timedelta
from typing import Optional

from jose import JWTError, jwt
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from adwizard.config import get_settings

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


def new_session_id() -> str:
    return secrets.token_urlsafe(24)


def create_session_token(session_id: str) -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "sid": session_id,
        "iat": now,
        "exp": now + timedelta(days=settings.session_max_age_days),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def decode_session_token(token: str) -> Optional[str]:
    """Session id from a cookie value, or None if missing, forged or expired."""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return None
    sid = payload.get("sid")
    return sid if isinstance(sid, str) and sid else None


class SessionCookieMiddleware(BaseHTTPMiddleware):
    """Attach request.state.session_id; mint and set the cookie when absent or invalid."""

    async def dispatch(self, request: Request, call_next) -> Response:
        settings = get_settings()
        cookie = request.cookies.get(settings.session_cookie_name)
        session_id = decode_session_token(cookie) if cookie else None
        minted = session_id is None
        if minted:
            session_id = new_session_id()

        request.state.session_id = session_id
        response = await call_next(request)

        if minted:
            response.set_cookie(
                settings.session_cookie_name,
                create_session_token(session_id),
                max_age=settings.session_max_age_days * 24 * 3600,
                httponly=True,
                samesite="lax",
                secure=settings.is_production,
            )
        return response


def get_session_id(request: Request) -> str:
    """Dependency: the session id resolved by SessionCookieMiddleware."""
    return request.state.session_id
