"""
RatedItem model — one user's rating of one content entity.

Stored as users/{user_id}/rankings/{id}. Field names on the document are
camelCase (externalId, originalScore, comparisonsCount, ...); build from a
stored dict with RatedItem.from_document() and write with to_document().
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from .sentiment import Category, Sentiment


class RatingState(str, Enum):
    """
    Lifecycle marker relative to the community aggregate.

    pending / comparing: visible to the user, never counted in the aggregate.
    committed: counted exactly once.
    updated: score moved after commit; the aggregate is adjusted by delta.
    """

    PENDING = "pending"
    COMPARING = "comparing"
    COMMITTED = "committed"
    UPDATED = "updated"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class RatedItem(BaseModel):
    """
    A single rating inside a user's personal list.

    community_score is the value currently counted for this item in its
    CommunityAggregate (None = never counted). It is stamped inside the same
    transaction that mutates the aggregate, so comparing it with score tells
    exactly which aggregate change is still outstanding.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    external_id: Optional[str] = None
    title: str
    tier: Sentiment
    category: Category = Category.MOVIE
    genres: List[str] = Field(default_factory=list)
    score: float = 0.0
    original_score: Optional[float] = None
    comparisons_count: int = 0
    state: RatingState = RatingState.PENDING
    community_score: Optional[float] = None
    placed: bool = False
    comparison: Optional[Dict[str, Any]] = None
    updated_at: str = Field(default_factory=utc_now_iso)

    @model_validator(mode="after")
    def snapshot_original_score(self):
        if self.original_score is None:
            self.original_score = self.score
        return self

    @property
    def content_key(self) -> str:
        """Community aggregate key: external content id, else the internal id."""
        return self.external_id or self.id

    @property
    def is_counted(self) -> bool:
        return self.community_score is not None

    def same_content(self, other: "RatedItem") -> bool:
        """True if other is this item or rates the same external content."""
        if other.id == self.id:
            return True
        return bool(self.external_id) and other.external_id == self.external_id

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> "RatedItem":
        return cls.model_validate(data)
