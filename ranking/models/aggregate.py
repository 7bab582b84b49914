"""
Community aggregate model — the cross-user running rating for one content id.

Stored as ratings/{content_id}. Invariants: rating_count >= 0, total_score and
average_rating finite; a record whose count reaches 0 is deleted, never kept.
"""

import math
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .sentiment import Category


class CommunityAggregate(BaseModel):
    """Running total/count/average for one content identity."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    content_id: str
    total_score: float
    rating_count: int
    average_rating: float
    title: Optional[str] = None
    category: Optional[Category] = None
    updated_at: Optional[str] = None

    def is_valid(self) -> bool:
        """False when the stored numbers break the aggregate invariants."""
        if self.rating_count < 0:
            return False
        if not math.isfinite(self.total_score) or not math.isfinite(self.average_rating):
            return False
        return True

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")

    @classmethod
    def from_document(cls, content_id: str, data: Dict[str, Any]) -> "CommunityAggregate":
        """Build from a stored dict; missing numbers become NaN/-1 so is_valid() flags them."""
        payload = dict(data)
        payload["contentId"] = content_id
        payload.setdefault("totalScore", float("nan"))
        payload.setdefault("ratingCount", -1)
        payload.setdefault("averageRating", float("nan"))
        return cls.model_validate(payload)


class LeaderboardEntry(BaseModel):
    """A community aggregate with its confidence-adjusted leaderboard score."""

    content_id: str
    title: Optional[str] = None
    category: Optional[Category] = None
    average_rating: float
    rating_count: int
    total_score: float
    adjusted_score: float
