# rotur/schemas/keys.py
"""
Pydantic schemas for access-key endpoints.
"""
from typing import Any, Union

from pydantic import BaseModel


class KeyIn(BaseModel):
    """
    New access key.
    Subscription keys bill their holders every `frequency` x `period`.
    """
    name: str  # Unique among all keys
    price: Union[int, str] = 0  # Non-negative whole credits
    description: str = ""
    subscription: bool = False  # Recurring billing
    frequency: Union[int, str] = 1  # Periods between charges, at least 1
    period: str = "month"  # day, week, month or year


class KeyUpdateIn(BaseModel):
    """Owner edit of one field: data, webhook, price or name."""
    field: str
    value: Any = None


class KeyRevokeIn(BaseModel):
    username: str  # Holder to remove
