# rotur/schemas/profile.py
"""
Pydantic schemas for statuses and private notes.
"""
from typing import Optional

from pydantic import BaseModel


class StatusIn(BaseModel):
    """
    New status: either a simple sentence or an activity, never both.
    Limits are checked by the service.
    """
    content: Optional[str] = None  # Simple status, max 250 chars
    activity_name: Optional[str] = None  # Max 100 chars
    activity_description: Optional[str] = None  # Max 500 chars
    activity_image: Optional[str] = None  # http(s) URL, max 500 chars


class NoteIn(BaseModel):
    note: str  # Max 300 chars
