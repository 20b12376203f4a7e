# rotur/schemas/admin.py
"""
Pydantic schemas for admin endpoints.
Admin calls are authorized by the ADMIN_TOKEN bearer, not by a user key.
"""
from typing import Any, Optional, Union

from pydantic import BaseModel, Field


class AdminUserUpdateIn(BaseModel):
    """
    Admin write of one user key.
    Unlike the user endpoint, "sys." keys are allowed (locked keys are still refused).
    """
    key: str
    value: Any = None


class MintIn(BaseModel):
    amount: Union[float, str]  # Credits created from the fountain
    note: str = "mint"


class AdminTransferIn(BaseModel):
    """Transfer between two arbitrary users, with the same rules as a user transfer."""
    from_user: str = Field(alias="from")  # Sender username
    to: str  # Recipient username
    amount: Union[float, str]
    note: Optional[str] = None

    model_config = {"populate_by_name": True}


class StandingIn(BaseModel):
    username: str
    level: str  # good, warning, suspended or banned
    reason: str


class StandingRecoverIn(BaseModel):
    username: str
    reason: str


class KeyGrantIn(BaseModel):
    username: str  # User to add as a holder without charging


class ItemOwnerIn(BaseModel):
    username: str  # New owner


class SystemIn(BaseModel):
    info: dict[str, Any] = {}  # Free-form system metadata
