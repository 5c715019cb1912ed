"""
Server side of client cache reconciliation.

Clients keep a local copy of the inventory. Instead of guessing which cached
rows are stale, they ask which of their ids still exist and poll a cheap
fingerprint of their scope to know when to refresh.
"""

import hashlib
from typing import Any, Dict, Iterable

from sqlalchemy import func

from utilities.campus_helpers import campus_query
from utilities.database import InventoryItem


def scope_state() -> Dict[str, Any]:
    """Item count, last change and an etag for the current user's scope."""
    count, last_updated, max_id = campus_query(InventoryItem).with_entities(
        func.count(InventoryItem.id),
        func.max(InventoryItem.updated_at),
        func.max(InventoryItem.id),
    ).one()
    last_iso = last_updated.isoformat() if last_updated else None
    fingerprint = f"{count}:{max_id or 0}:{last_iso or ''}"
    return {
        "count": count,
        "last_updated": last_iso,
        "etag": hashlib.sha1(fingerprint.encode("utf-8")).hexdigest(),
    }


def check_item_ids(item_ids: Iterable[int]) -> Dict[str, Any]:
    """Split cached ids into those still visible to the caller and those to purge."""
    wanted = list(item_ids)
    if not wanted:
        return {"existing": [], "purge": []}
    found = {
        item_id
        for (item_id,) in campus_query(InventoryItem)
        .filter(InventoryItem.id.in_(wanted))
        .with_entities(InventoryItem.id)
    }
    return {
        "existing": [item_id for item_id in wanted if item_id in found],
        "purge": [item_id for item_id in wanted if item_id not in found],
    }
