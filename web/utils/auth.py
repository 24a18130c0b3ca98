import base64
import binascii
import logging
import secrets
from functools import wraps

from aiohttp import hdrs, web

from web.server import auth_users_key

logger = logging.getLogger("auth")

REALM = "torrent-stream"


def decode_basic(header: str):
    """Return (login, password) from a ``Basic`` Authorization header."""
    scheme, _, encoded = header.strip().partition(" ")
    if scheme.lower() != "basic" or not encoded:
        raise ValueError("Not a Basic authorization header")
    decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
    login, sep, password = decoded.partition(":")
    if not sep:
        raise ValueError("Missing ':' between login and password")
    return login, password


def check_credentials(users: dict, header) -> bool:
    if not header:
        return False
    try:
        login, password = decode_basic(header)
    except (ValueError, binascii.Error):
        return False
    expected = users.get(login)
    if expected is None:
        return False
    return secrets.compare_digest(expected.encode(), password.encode())


def require_auth(handler):
    """
    Reject requests without valid Basic credentials for the app's user table.
    """
    @wraps(handler)
    async def wrapper(request: web.Request):
        if not check_credentials(request.app[auth_users_key], request.headers.get(hdrs.AUTHORIZATION)):
            logger.warning(f"Rejected credentials from {request.remote}")
            return web.Response(
                status=401,
                text="Authentication required.",
                headers={hdrs.WWW_AUTHENTICATE: f'Basic realm="{REALM}"'},
            )
        return await handler(request)
    return wrapper
