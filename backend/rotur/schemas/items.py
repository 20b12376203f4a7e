# rotur/schemas/items.py
from typing import Any, Optional, Union

from pydantic import BaseModel


class ItemIn(BaseModel):
    """
    New marketplace item.
    Names are ASCII only and unique regardless of case.
    """
    name: str  # Max 50 chars
    description: str = ""  # Max 500 chars
    price: Union[int, str] = 0  # Non-negative whole credits
    selling: bool = False  # Listed for sale immediately
    private_data: Any = None  # Visible to the owner only


class ItemTransferIn(BaseModel):
    username: str  # New owner


class ItemPriceIn(BaseModel):
    price: Union[int, str]


class ItemUpdateIn(BaseModel):
    """Owner edit; only the fields actually sent are applied."""
    description: Optional[str] = None
    private_data: Any = None
