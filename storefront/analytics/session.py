"""
Session Identity

One provider, created at startup, resolves the opaque per-browser-session
token attached to every activity event.
"""

import secrets
import time
from typing import Optional

from fastapi import Request

from storefront.config import get_settings

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"
_MAX_TOKEN_LENGTH = 100


def new_session_token() -> str:
    """Token of the form "<epoch-ms>-<9 base36 chars>" """
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"{int(time.time() * 1000)}-{suffix}"


class SessionIdentityProvider:
    """
    Resolve or mint the visitor session token.

    The token is read from the session header first, then the session
    cookie; a request carrying neither gets a fresh token, which the
    tracking route sets as a session cookie.
    """

    def __init__(self, cookie_name: Optional[str] = None, header_name: Optional[str] = None):
        tracking = get_settings().tracking
        self.cookie_name = cookie_name or tracking.session_cookie
        self.header_name = header_name or tracking.session_header

    def existing(self, request: Request) -> Optional[str]:
        for candidate in (request.headers.get(self.header_name), request.cookies.get(self.cookie_name)):
            if candidate and candidate.strip() and len(candidate) <= _MAX_TOKEN_LENGTH:
                return candidate.strip()
        return None

    def resolve(self, request: Request) -> str:
        return self.existing(request) or new_session_token()


def client_fingerprint(request: Request):
    """
    (user agent, IP) for an incoming request.

    The IP is the first X-Forwarded-For hop when present, otherwise the
    socket peer. Either value is "Unknown" when missing.
    """
    user_agent = request.headers.get("user-agent") or "Unknown"
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded and forwarded.split(",")[0].strip():
        ip_address = forwarded.split(",")[0].strip()
    elif request.client and request.client.host:
        ip_address = request.client.host
    else:
        ip_address = "Unknown"
    return user_agent, ip_address
