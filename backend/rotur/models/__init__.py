# rotur/models/__init__.py
"""
Record helpers for the JSON documents held by the store.

Records stay plain dicts (they are persisted verbatim and user documents are
open-ended); these modules hold the field conventions, limits and outward
views for each kind of record:
- user: tiers, credits, transactions, standing, reserved keys
- key: access keys and holder views
- post: posts, replies and feed visibility
- item: marketplace items
"""
from . import item, key, post, user
