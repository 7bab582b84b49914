"""
Aggregate arithmetic — the read-modify-write step of every community transaction.

Each function takes the currently stored record (or None) and returns the
record to write, or None to delete it. Stores wrap these in their own
transaction primitive; nothing here touches I/O.
"""

import logging
import math
from typing import Dict, Iterable, Optional

from ..errors import CorruptAggregate, InvalidScore
from ..models.aggregate import CommunityAggregate
from ..models.rated_item import RatedItem, utc_now_iso
from ..models.sentiment import Category

logger = logging.getLogger(__name__)


def require_finite(value: float, context: str = "") -> float:
    if value is None or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise InvalidScore(value, context)
    return float(value)


def validate(record: CommunityAggregate) -> CommunityAggregate:
    """Raise CorruptAggregate if the stored numbers break the invariants."""
    if not record.is_valid():
        raise CorruptAggregate(
            record.content_id,
            f"total={record.total_score} count={record.rating_count} avg={record.average_rating}",
        )
    return record


def seed(
    content_id: str,
    score: float,
    title: Optional[str] = None,
    category: Optional[Category] = None,
) -> CommunityAggregate:
    """A fresh record holding exactly one rating."""
    return CommunityAggregate(
        content_id=content_id,
        total_score=score,
        rating_count=1,
        average_rating=score,
        title=title,
        category=category,
        updated_at=utc_now_iso(),
    )


def _with_totals(record: CommunityAggregate, total: float, count: int, **display) -> CommunityAggregate:
    average = total / count if count > 0 else float("nan")
    updates = {
        "total_score": total,
        "rating_count": count,
        "average_rating": average,
        "updated_at": utc_now_iso(),
    }
    for key, value in display.items():
        if value is not None:
            updates[key] = value
    return record.model_copy(update=updates)


def _reseed_if_corrupt(candidate: CommunityAggregate, score: float, title, category) -> CommunityAggregate:
    if candidate.is_valid() and candidate.rating_count > 0:
        return candidate
    logger.warning(
        "[aggregates] NON_FINITE_RESULT content_id=%s total=%s count=%s, reseeding from single rating",
        candidate.content_id, candidate.total_score, candidate.rating_count,
    )
    return seed(candidate.content_id, score, title or candidate.title, category or candidate.category)


def add_rating(
    existing: Optional[CommunityAggregate],
    content_id: str,
    score: float,
    title: Optional[str] = None,
    category: Optional[Category] = None,
) -> CommunityAggregate:
    """Count one more rating. A missing or corrupt record is (re)seeded from this rating."""
    score = require_finite(score, f"add_rating {content_id}")
    if existing is None:
        return seed(content_id, score, title, category)
    try:
        validate(existing)
    except CorruptAggregate as e:
        logger.warning("[aggregates] %s, reseeding from single rating", e)
        return seed(content_id, score, title or existing.title, category or existing.category)
    candidate = _with_totals(
        existing,
        existing.total_score + score,
        existing.rating_count + 1,
        title=title,
        category=category,
    )
    return _reseed_if_corrupt(candidate, score, title, category)


def replace_rating(
    existing: Optional[CommunityAggregate],
    content_id: str,
    old_score: float,
    new_score: float,
    title: Optional[str] = None,
    category: Optional[Category] = None,
) -> CommunityAggregate:
    """
    Move one already-counted rating from old_score to new_score; count unchanged.
    A missing, corrupt, or empty record falls back to add_rating semantics.
    """
    old_score = require_finite(old_score, f"replace_rating old {content_id}")
    new_score = require_finite(new_score, f"replace_rating new {content_id}")
    if existing is None:
        logger.info("[aggregates] REPLACE_MISSING content_id=%s, adding as fresh rating", content_id)
        return seed(content_id, new_score, title, category)
    if not existing.is_valid() or existing.rating_count == 0:
        logger.warning(
            "[aggregates] REPLACE_ON_INVALID content_id=%s count=%s total=%s, reseeding",
            content_id, existing.rating_count, existing.total_score,
        )
        return seed(content_id, new_score, title or existing.title, category or existing.category)
    candidate = _with_totals(
        existing,
        existing.total_score + (new_score - old_score),
        existing.rating_count,
        title=title,
        category=category,
    )
    return _reseed_if_corrupt(candidate, new_score, title, category)


def remove_rating(
    existing: Optional[CommunityAggregate],
    content_id: str,
    score: float,
) -> Optional[CommunityAggregate]:
    """
    Uncount one rating. Returns None when the record should be deleted: the
    count reached 0, there was nothing stored, or the stored record is corrupt
    (no single rating remains to reseed from).
    """
    score = require_finite(score, f"remove_rating {content_id}")
    if existing is None:
        logger.info("[aggregates] REMOVE_MISSING content_id=%s, nothing to remove", content_id)
        return None
    if not existing.is_valid():
        logger.warning("[aggregates] REMOVE_ON_CORRUPT content_id=%s, deleting record", content_id)
        return None
    count = max(0, existing.rating_count - 1)
    if count == 0:
        return None
    candidate = _with_totals(existing, existing.total_score - score, count)
    if not candidate.is_valid():
        logger.warning("[aggregates] REMOVE_NON_FINITE content_id=%s, deleting record", content_id)
        return None
    return candidate


def rebuild_from_ratings(items: Iterable[RatedItem]) -> Dict[str, CommunityAggregate]:
    """
    Recompute aggregates from scratch: every placed item contributes its
    current score once under its content key. Pending items never count.
    """
    out: Dict[str, CommunityAggregate] = {}
    for item in items:
        if not item.placed:
            continue
        if not math.isfinite(item.score):
            logger.warning("[aggregates] REBUILD_SKIP item=%s non-finite score", item.id)
            continue
        key = item.content_key
        out[key] = add_rating(out.get(key), key, item.score, item.title, item.category)
    return out
