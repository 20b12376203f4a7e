# rotur/schemas/accounts.py
"""
Pydantic schemas for registration, login and user-document endpoints.
"""
from typing import Any, Optional, Union

from pydantic import BaseModel


class RegisterIn(BaseModel):
    """
    Request model for account registration.
    The password is the client-side hash, never the plain password.
    """
    username: str  # 3-20 chars of [a-z0-9_], stored lowercased
    password: str  # 32-hex client hash
    email: Optional[str] = None  # Optional, unique case-insensitively


class LoginIn(BaseModel):
    username: str
    password: str  # 32-hex client hash


class UpdateUserIn(BaseModel):
    """Set one user-defined key on the caller's document."""
    key: str  # Must not be locked or start with "sys."
    value: Any = None  # Any JSON value; strings are capped at 1000 chars


class TransferIn(BaseModel):
    """
    Credit transfer to another user.
    The amount may be sent as a number or a numeric string.
    """
    to: str  # Recipient username
    amount: Union[float, str]  # At least 0.01, rounded to 2 decimals
    note: Optional[str] = None  # Shown on both transaction records, max 50 chars
