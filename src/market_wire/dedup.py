"""Per-feed record of items already emitted.

Items are marked only once they clear the scoring gate, so a feed entry that
scores too low now is scored again on later polls.  Once marked, an item is
never emitted again.
"""

from __future__ import annotations

from .logging_utils import get_logger
from .normalize import feed_key
from .state_store import StateStore

log = get_logger("dedup")

INIT_SENTINEL = "__init__"


class DedupGate:
    def __init__(self, store: StateStore):
        self.store = store

    async def ensure_initialized(self, feed_url: str) -> str:
        """Return the set key for ``feed_url``, creating the set on first sight."""
        key = feed_key(feed_url)
        if not await self.store.exists(key):
            await self.store.sadd(key, INIT_SENTINEL)
            await self.store.srem(key, INIT_SENTINEL)
            log.debug("dedup_set_initialized key=%s url=%s", key, feed_url)
        return key

    async def seen(self, key: str, item_id: str) -> bool:
        return await self.store.sismember(key, item_id)

    async def mark_seen(self, key: str, item_id: str) -> None:
        await self.store.sadd(key, item_id)
