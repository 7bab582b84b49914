"""
Rating store: one document per RatedItem under users/{user_id}/rankings/{item_id}.
"""

import asyncio
import logging
from typing import Iterable, List, Optional

from ranking.models import Category, RatedItem, utc_now_iso

from .document_store import DocumentStore

logger = logging.getLogger(__name__)


def rankings_collection(user_id: str) -> str:
    return f"users/{user_id}/rankings"


def rating_path(user_id: str, item_id: str) -> str:
    return f"{rankings_collection(user_id)}/{item_id}"


def _require_user(user_id: Optional[str]) -> str:
    if user_id is None or not user_id.strip():
        raise ValueError("user_id is required")
    return user_id.strip()


class RatingStore:
    """Reads and writes a user's RatedItem documents."""

    def __init__(self, docs: DocumentStore):
        self._docs = docs

    async def list_items(self, user_id: str, category: Optional[Category] = None) -> List[RatedItem]:
        user_id = _require_user(user_id)
        out = []
        for doc_id, data in await self._docs.list(rankings_collection(user_id)):
            data.setdefault("id", doc_id)
            try:
                item = RatedItem.from_document(data)
            except ValueError as e:
                logger.warning("[ratings] SKIP_UNREADABLE user=%s doc=%s error=%s", user_id, doc_id, e)
                continue
            if category is None or item.category == category:
                out.append(item)
        return out

    async def get_item(self, user_id: str, item_id: str) -> Optional[RatedItem]:
        user_id = _require_user(user_id)
        data = await self._docs.get(rating_path(user_id, item_id))
        if data is None:
            return None
        data.setdefault("id", item_id)
        return RatedItem.from_document(data)

    async def find_by_external(
        self,
        user_id: str,
        external_id: str,
        category: Optional[Category] = None,
    ) -> List[RatedItem]:
        if not external_id:
            return []
        return [i for i in await self.list_items(user_id, category) if i.external_id == external_id]

    async def save_item(self, user_id: str, item: RatedItem) -> None:
        user_id = _require_user(user_id)
        item.updated_at = utc_now_iso()
        await self._docs.set(rating_path(user_id, item.id), item.to_document())

    async def save_items(self, user_id: str, items: Iterable[RatedItem]) -> None:
        """Write several items concurrently; raises the first failure after all attempts finish."""
        items = list(items)
        if not items:
            return
        results = await asyncio.gather(
            *(self.save_item(user_id, item) for item in items),
            return_exceptions=True,
        )
        errors = [r for r in results if isinstance(r, Exception)]
        if errors:
            logger.warning("[ratings] SAVE_FAILED user=%s failed=%s/%s", user_id, len(errors), len(items))
            raise errors[0]

    async def delete_item(self, user_id: str, item_id: str) -> bool:
        user_id = _require_user(user_id)
        return await self._docs.delete(rating_path(user_id, item_id))
