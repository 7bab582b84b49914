"""
Pairwise-comparison ranking core.

Single entry point for the ranking package:
- models/: RankingConfig, RatedItem, CommunityAggregate, Sentiment bands
- stages/: score model, comparator, personal list, aggregate arithmetic, leaderboard
- errors: the error kinds shared with the service layer

Pure and synchronous: no store or network access happens here.
"""

from .errors import (
    CorruptAggregate,
    DuplicateRating,
    InvalidScore,
    ListBusy,
    RankingError,
    RatingNotFound,
    SessionNotFound,
    StoreUnavailable,
    TransactionConflict,
)
from .models import (
    DEFAULT_CONFIG,
    Category,
    CommunityAggregate,
    LeaderboardEntry,
    RankingConfig,
    RatedItem,
    RatingState,
    ScoreChange,
    Sentiment,
    SentimentBand,
    resolve_config,
)
from .stages import (
    Comparator,
    ComparatorCheckpoint,
    PersonalList,
    Pick,
    build_leaderboard,
    initial_score,
    score,
    select_candidates,
)

__all__ = [
    "DEFAULT_CONFIG",
    "Category",
    "CommunityAggregate",
    "Comparator",
    "ComparatorCheckpoint",
    "CorruptAggregate",
    "DuplicateRating",
    "InvalidScore",
    "LeaderboardEntry",
    "ListBusy",
    "PersonalList",
    "Pick",
    "RankingConfig",
    "RankingError",
    "RatedItem",
    "RatingNotFound",
    "RatingState",
    "ScoreChange",
    "Sentiment",
    "SentimentBand",
    "SessionNotFound",
    "StoreUnavailable",
    "TransactionConflict",
    "build_leaderboard",
    "initial_score",
    "resolve_config",
    "score",
    "select_candidates",
]
