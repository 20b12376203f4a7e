# rotur/schemas/groups.py
"""
Pydantic schemas for group endpoints.
Update bodies are applied with `exclude_unset`, so omitted fields are left alone.
"""
from typing import Optional, Union

from pydantic import BaseModel


class GroupIn(BaseModel):
    """New group; the caller becomes its owner."""
    tag: str  # Alphanumeric, max 20 chars, unique regardless of case
    name: str  # Max 50 chars
    description: str = ""  # Max 500 chars
    icon_url: str = ""  # http(s) URL or empty
    banner_url: str = ""  # http(s) URL or empty
    public: bool = False  # Listed in search and open to joins
    join_policy: str = "OPEN"  # OPEN, REQUEST or INVITE


class GroupUpdateIn(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    icon_url: Optional[str] = None
    banner_url: Optional[str] = None
    public: Optional[bool] = None
    join_policy: Optional[str] = None


class RoleIn(BaseModel):
    name: str  # "Owner" is reserved
    description: str = ""
    assign_on_join: bool = False
    self_assignable: bool = False
    permissions: list[str] = []  # Names from rotur.services.groups.PERMISSIONS


class RoleUpdateIn(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    assign_on_join: Optional[bool] = None
    self_assignable: Optional[bool] = None
    permissions: Optional[list[str]] = None
    benefits: Optional[list[str]] = None


class AnnouncementIn(BaseModel):
    title: str  # Max 100 chars
    body: str = ""  # Max 2000 chars
    ping_members: bool = False


class TipIn(BaseModel):
    amount: Union[float, str]  # At least 0.01
