# rotur/schemas/posts.py
from typing import Optional, Union

from pydantic import BaseModel


class PostIn(BaseModel):
    """New post. Length limits are enforced by the service (they depend on the author)."""
    content: str
    attachment: Optional[str] = None  # http(s) URL, max 500 chars
    os: Optional[str] = None  # Name of a registered system
    profile_only: bool = False  # Hidden from public feeds


class ReplyIn(BaseModel):
    content: str


class RateIn(BaseModel):
    rating: Union[int, str]  # 1 like, 0 unlike
