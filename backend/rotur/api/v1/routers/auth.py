# rotur/api/v1/routers/auth.py
from fastapi import APIRouter, Depends, Header

from rotur.api.v1.deps import get_current_username, get_store, ok
from rotur.schemas.accounts import LoginIn, RegisterIn
from rotur.services import accounts

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register")
def register(body: RegisterIn, store=Depends(get_store)):
    """
    Register a new account.

    Args:
        body: Request body containing:
            - username: str (3-20 chars, letters, digits and underscores)
            - password: str (32-hex client-side hash)
            - email: str | None (optional, must be unique if provided)

    Returns:
        dict: Success envelope with the private user view, including the
        `key` token used to authenticate later calls.

    Error codes:
        - BAD_INPUT: Invalid username or password hash
        - USERNAME_EXISTS: Username already taken
        - EMAIL_EXISTS: Email already registered
    """
    return ok(accounts.register(store, body.username, body.password, body.email))


@router.post("/login")
def login(
    body: LoginIn,
    store=Depends(get_store),
    origin: str | None = Header(default=None),
    user_agent: str | None = Header(default=None),
):
    """
    Verify credentials and record the login.

    The login history entry keeps the request's Origin and User-Agent headers.

    Error codes:
        - NOT_FOUND: No such user
        - AUTH_INVALID_PASSWORD: Hash does not match
        - ACCOUNT_BANNED: Account is banned
    """
    return ok(accounts.login(store, body.username, body.password, origin or "", user_agent or ""))


@router.get("/me")
def me(me: str = Depends(get_current_username), store=Depends(get_store)):
    return ok(accounts.get_user(store, me, viewer=me))
