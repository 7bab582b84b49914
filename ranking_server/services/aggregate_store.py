"""
Community aggregate store: one document per content id under ratings/{content_id}.

Every mutation is a single read-modify-write transaction over the document
store. A mutation may carry a ContributionStamp naming the rating document it
accounts for; the rating document is read in the same transaction, and the
mutation only applies if its communityScore still holds the expected value.
The stamp then records the new counted value (or deletes the rating document),
so replaying the same mutation after a crash or a retry is a no-op.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from ranking.errors import InvalidScore
from ranking.models import Category, CommunityAggregate, RatingState, utc_now_iso
from ranking.stages import aggregate_math

from .document_store import DocumentStore, Transaction
from .rating_store import rating_path

logger = logging.getLogger(__name__)

AGGREGATES_COLLECTION = "ratings"


def aggregate_path(content_id: str) -> str:
    return f"{AGGREGATES_COLLECTION}/{content_id}"


@dataclass
class ContributionStamp:
    """
    Ledger update applied to users/{user_id}/rankings/{item_id} together with
    an aggregate mutation.

    expected: communityScore the rating document must hold for the mutation to apply.
    counted: communityScore to write afterwards (ignored when delete is set).
    """

    user_id: str
    item_id: str
    expected: Optional[float]
    counted: Optional[float] = None
    state: Optional[RatingState] = None
    delete: bool = False

    @property
    def path(self) -> str:
        return rating_path(self.user_id, self.item_id)


@dataclass
class AggregateWrite:
    """Outcome of one aggregate mutation."""

    content_id: str
    aggregate: Optional[CommunityAggregate]
    applied: bool


def _parse(content_id: str, data: Optional[dict]) -> Optional[CommunityAggregate]:
    if data is None:
        return None
    try:
        return CommunityAggregate.from_document(content_id, data)
    except ValueError as e:
        # Unreadable numbers: hand back an invalid record so the arithmetic reseeds it.
        logger.warning("[aggregates] UNREADABLE content_id=%s error=%s", content_id, e)
        return CommunityAggregate(
            content_id=content_id,
            total_score=float("nan"),
            rating_count=-1,
            average_rating=float("nan"),
        )


def _same_value(a: Optional[float], b: Optional[float]) -> bool:
    if a is None or b is None:
        return a is None and b is None
    return abs(a - b) <= 1e-9


Mutation = Callable[[Optional[CommunityAggregate]], Optional[CommunityAggregate]]


class CommunityAggregateStore:
    """Transactional add/replace/remove over CommunityAggregate documents."""

    def __init__(self, docs: DocumentStore):
        self._docs = docs

    async def get(self, content_id: str) -> Optional[CommunityAggregate]:
        return _parse(content_id, await self._docs.get(aggregate_path(content_id)))

    async def list_all(self) -> List[CommunityAggregate]:
        return [
            _parse(doc_id, data)
            for doc_id, data in await self._docs.list(AGGREGATES_COLLECTION)
        ]

    async def _apply(
        self,
        content_id: str,
        mutate: Mutation,
        stamps: List[ContributionStamp],
        op: str,
    ) -> AggregateWrite:
        path = aggregate_path(content_id)

        async def txn_fn(txn: Transaction) -> AggregateWrite:
            rating_docs = []
            for stamp in stamps:
                rating_docs.append(await txn.get(stamp.path))
            data = await txn.get(path)
            existing = _parse(content_id, data)
            for stamp, rating_doc in zip(stamps, rating_docs):
                if rating_doc is None or not _same_value(rating_doc.get("communityScore"), stamp.expected):
                    return AggregateWrite(content_id, existing, applied=False)
            result = mutate(existing)
            if result is None:
                txn.delete(path)
            else:
                txn.set(path, result.to_document())
            for stamp, rating_doc in zip(stamps, rating_docs):
                if stamp.delete:
                    txn.delete(stamp.path)
                    continue
                rating_doc["communityScore"] = stamp.counted
                if stamp.state is not None:
                    rating_doc["state"] = stamp.state.value
                rating_doc["updatedAt"] = utc_now_iso()
                txn.set(stamp.path, rating_doc)
            return AggregateWrite(content_id, result, applied=True)

        write = await self._docs.run_transaction(txn_fn)
        if write.applied:
            logger.info(
                "[aggregates] %s content_id=%s count=%s",
                op, content_id, write.aggregate.rating_count if write.aggregate else 0,
            )
        else:
            logger.info("[aggregates] %s_SKIPPED content_id=%s already accounted", op, content_id)
        return write

    async def add_rating(
        self,
        content_id: str,
        score: float,
        title: Optional[str] = None,
        category: Optional[Category] = None,
        stamp: Optional[ContributionStamp] = None,
    ) -> Optional[AggregateWrite]:
        """Count one new rating. Returns None (no-op) for a non-finite score."""
        try:
            aggregate_math.require_finite(score, f"add_rating {content_id}")
        except InvalidScore as e:
            logger.warning("[aggregates] REJECTED %s", e)
            return None
        return await self._apply(
            content_id,
            lambda existing: aggregate_math.add_rating(existing, content_id, score, title, category),
            [stamp] if stamp is not None else [],
            "ADD",
        )

    async def replace_rating(
        self,
        content_id: str,
        old_score: float,
        new_score: float,
        title: Optional[str] = None,
        category: Optional[Category] = None,
        stamp: Optional[ContributionStamp] = None,
        released: Optional[ContributionStamp] = None,
    ) -> Optional[AggregateWrite]:
        """
        Move one counted rating from old_score to new_score. None (no-op) on a non-finite score.

        released: stamp for another rating document whose contribution this
        rating takes over; its communityScore is cleared in the same transaction.
        """
        try:
            aggregate_math.require_finite(old_score, f"replace_rating old {content_id}")
            aggregate_math.require_finite(new_score, f"replace_rating new {content_id}")
        except InvalidScore as e:
            logger.warning("[aggregates] REJECTED %s", e)
            return None
        return await self._apply(
            content_id,
            lambda existing: aggregate_math.replace_rating(
                existing, content_id, old_score, new_score, title, category
            ),
            [s for s in (stamp, released) if s is not None],
            "REPLACE",
        )

    async def remove_rating(
        self,
        content_id: str,
        score: float,
        stamp: Optional[ContributionStamp] = None,
    ) -> Optional[AggregateWrite]:
        """Uncount one rating; the record is deleted when its count reaches 0."""
        try:
            aggregate_math.require_finite(score, f"remove_rating {content_id}")
        except InvalidScore as e:
            logger.warning("[aggregates] REJECTED %s", e)
            return None
        return await self._apply(
            content_id,
            lambda existing: aggregate_math.remove_rating(existing, content_id, score),
            [stamp] if stamp is not None else [],
            "REMOVE",
        )
