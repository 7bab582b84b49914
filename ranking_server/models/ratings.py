"""Rating and comparison-session Pydantic models."""

from typing import List, Optional

from pydantic import BaseModel, Field

from ranking.models import Category, Sentiment
from ranking.stages import Pick

from .common import AggregateCard, RatedItemCard, ScoreChangeCard


class StartRatingRequest(BaseModel):
    user_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    external_id: Optional[str] = None
    category: Category = Category.MOVIE
    tier: Sentiment
    genres: List[str] = []


class RerankRequest(BaseModel):
    user_id: str = Field(min_length=1)
    tier: Sentiment


class CompareRequest(BaseModel):
    pick: Pick


class ReopenRequest(BaseModel):
    user_id: str = Field(min_length=1)
    item_id: str


class InsertionResultResponse(BaseModel):
    item: RatedItemCard
    rank: Optional[int] = None
    changes: List[ScoreChangeCard] = []
    aggregate: Optional[AggregateCard] = None


class SessionResponse(BaseModel):
    """
    State of a comparison session. While comparing, `compare_with` is the
    existing item to judge against `item`; once finished, `result` is set.
    """

    status: str  # "comparing" | "finished"
    session_id: str
    user_id: str
    item: RatedItemCard
    compare_with: Optional[RatedItemCard] = None
    comparisons: int = 0
    candidates_count: int = 0
    rerank_of: Optional[str] = None
    result: Optional[InsertionResultResponse] = None


class DuplicateResponse(BaseModel):
    status: str = "duplicate"
    external_id: Optional[str] = None


class PersonalListResponse(BaseModel):
    user_id: str
    category: Category
    items: List[RatedItemCard]
    pending: List[RatedItemCard] = []


class DeletionResponse(BaseModel):
    deleted: RatedItemCard
    changes: List[ScoreChangeCard] = []
    aggregate: Optional[AggregateCard] = None


class ResumeResponse(BaseModel):
    user_id: str
    category: Category
    added: List[str] = []
    replaced: List[str] = []
    retired_duplicates: List[str] = []
    awaiting_comparison: List[RatedItemCard] = []
    rescored: int = 0
