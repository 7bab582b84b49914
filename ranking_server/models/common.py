"""Shared response models: rated item cards and score changes."""

from typing import List, Optional

from pydantic import BaseModel

from ranking.models import Category, RatingState, Sentiment


class RatedItemCard(BaseModel):
    id: str
    external_id: Optional[str] = None
    title: str
    tier: Sentiment
    category: Category
    genres: List[str] = []
    score: float
    original_score: Optional[float] = None
    comparisons_count: int = 0
    state: RatingState
    placed: bool = False
    rank: Optional[int] = None  # 1-indexed within the tier, placed items only


class ScoreChangeCard(BaseModel):
    item_id: str
    title: str
    old_score: float
    new_score: float


class AggregateCard(BaseModel):
    content_id: str
    title: Optional[str] = None
    category: Optional[Category] = None
    total_score: float
    rating_count: int
    average_rating: float
