# rotur/models/post.py
"""Post records."""
MAX_CONTENT = 300
MAX_CONTENT_PREMIUM = 600
MAX_REPLY = 300
MAX_ATTACHMENT = 500


def is_public(post: dict) -> bool:
    """Public posts appear in feeds; profile-only posts stay on the author's profile."""
    return not post.get("profile_only")


def to_net(post: dict) -> dict:
    out = dict(post)
    out.setdefault("replies", [])
    out.setdefault("likes", [])
    return out
