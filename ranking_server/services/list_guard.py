"""
Single-writer guard per personal list.

Every mutation of one (user, category) list (finalizing an insertion,
deleting, reconciling) runs while holding that list's guard, so concurrent
requests against the same list are serialized. Comparison steps do not hold
it: they only touch the in-memory comparator and the item's own document.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from enum import Enum
from typing import Dict, Tuple

from ranking.errors import ListBusy
from ranking.models import Category

logger = logging.getLogger(__name__)


class ListActivity(str, Enum):
    IDLE = "idle"
    INSERTING = "inserting"
    DELETING = "deleting"
    RECONCILING = "reconciling"
    LOADING = "loading"


ListKey = Tuple[str, str]


class ListGuard:
    """asyncio.Lock per (user_id, category) plus the activity currently holding it."""

    def __init__(self):
        self._locks: Dict[ListKey, asyncio.Lock] = {}
        self._activity: Dict[ListKey, ListActivity] = {}

    @staticmethod
    def _key(user_id: str, category: Category) -> ListKey:
        return (user_id, Category(category).value)

    def activity(self, user_id: str, category: Category) -> ListActivity:
        return self._activity.get(self._key(user_id, category), ListActivity.IDLE)

    @asynccontextmanager
    async def hold(self, user_id: str, category: Category, activity: ListActivity, wait: bool = True):
        """Hold the list's guard for the duration of the block. wait=False raises ListBusy instead of queueing."""
        key = self._key(user_id, category)
        lock = self._locks.setdefault(key, asyncio.Lock())
        if not wait and lock.locked():
            raise ListBusy(f"List {key} is busy ({self.activity(user_id, category).value})")
        async with lock:
            self._activity[key] = activity
            logger.debug("[list_guard] ACQUIRED list=%s activity=%s", key, activity.value)
            try:
                yield
            finally:
                self._activity[key] = ListActivity.IDLE
                logger.debug("[list_guard] RELEASED list=%s", key)
