"""Pydantic request/response models for the API."""

from .common import AggregateCard, RatedItemCard, ScoreChangeCard
from .community import LeaderboardResponse
from .ratings import (
    CompareRequest,
    DeletionResponse,
    DuplicateResponse,
    InsertionResultResponse,
    PersonalListResponse,
    ReopenRequest,
    RerankRequest,
    ResumeResponse,
    SessionResponse,
    StartRatingRequest,
)

__all__ = [
    "AggregateCard",
    "RatedItemCard",
    "ScoreChangeCard",
    "LeaderboardResponse",
    "CompareRequest",
    "DeletionResponse",
    "DuplicateResponse",
    "InsertionResultResponse",
    "PersonalListResponse",
    "ReopenRequest",
    "RerankRequest",
    "ResumeResponse",
    "SessionResponse",
    "StartRatingRequest",
]
