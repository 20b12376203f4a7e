# rotur/models/item.py
"""Marketplace item records. Transfer history timestamps are in seconds."""
MAX_NAME = 50
MAX_DESCRIPTION = 500


def to_net(item: dict, viewer: str | None = None) -> dict:
    out = dict(item)
    if viewer is None or viewer.lower() != str(item.get("owner", "")).lower():
        out.pop("private_data", None)
    return out
