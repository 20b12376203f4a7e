# rotur/api/v1/deps.py
import secrets

from fastapi import Depends, Header, Query, Request

from rotur.core.errors import Forbidden, Unauthorized


def ok(data=None) -> dict:
    """Success envelope shared by every endpoint."""
    return {"success": True, "data": data}


# ------------------------------------------------------------------------------
# Application components (created once by create_app and kept on app.state)
# ------------------------------------------------------------------------------
def get_settings(request: Request):
    return request.app.state.settings


def get_store(request: Request):
    return request.app.state.store


def get_notifier(request: Request):
    return request.app.state.notifier


def get_ofsf(request: Request):
    return request.app.state.ofsf


def get_keys(request: Request):
    return request.app.state.keys


def get_engine(request: Request):
    return request.app.state.engine


def get_links(request: Request):
    return request.app.state.links


def _bearer(authorization: str | None) -> str | None:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization.split(" ", 1)[1].strip() or None
    return None


# ------------------------------------------------------------------------------
# Authentication
# ------------------------------------------------------------------------------
def get_optional_username(
    request: Request,
    authorization: str | None = Header(default=None),
    auth: str | None = Query(default=None),
) -> str | None:
    """
    Resolve the caller from their user key, or None when no key was sent.

    The key is read from:
    1. Authorization header (Bearer key) - preferred method
    2. `auth` query parameter - for clients that cannot set headers

    Raises:
        Unauthorized (401): A key was sent but matches no account (AUTH_INVALID_TOKEN)
        Forbidden (403): The account is banned (ACCOUNT_BANNED)
    """
    token = _bearer(authorization) or auth
    if not token:
        return None
    store = request.app.state.store
    username = store.users.username_for_token(token)
    user = store.users.lookup(username) if username else None
    if user is None:
        raise Unauthorized("Invalid authentication key", code="AUTH_INVALID_TOKEN")
    if user.get("sys.banned"):
        raise Forbidden("Account is banned", code="ACCOUNT_BANNED")
    return username


def get_current_username(username: str | None = Depends(get_optional_username)) -> str:
    """
    Like `get_optional_username`, but a key is mandatory.

    Usage:
        @router.get("/protected")
        def protected(me: str = Depends(get_current_username)):
            ...
    """
    if username is None:
        raise Unauthorized("Authentication required")
    return username


def require_admin(request: Request, authorization: str | None = Header(default=None)) -> str:
    """
    Admin endpoints are authorized by the configured ADMIN_TOKEN bearer.

    Raises:
        Unauthorized (401): No bearer token (AUTH_REQUIRED)
        Forbidden (403): Wrong token, or admin endpoints disabled (FORBIDDEN_ADMIN_ONLY)
    """
    token = _bearer(authorization)
    if not token:
        raise Unauthorized("Authentication required")
    expected = request.app.state.settings.admin_token
    if not expected or not secrets.compare_digest(token.encode(), expected.encode()):
        raise Forbidden("Admin only", code="FORBIDDEN_ADMIN_ONLY")
    return "admin"
