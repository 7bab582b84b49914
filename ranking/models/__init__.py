"""Data models for the ranking core."""

from .aggregate import CommunityAggregate, LeaderboardEntry
from .config import DEFAULT_CONFIG, RankingConfig, resolve_config
from .diff import ScoreChange
from .rated_item import RatedItem, RatingState, utc_now_iso
from .sentiment import Category, Sentiment, SentimentBand

__all__ = [
    "DEFAULT_CONFIG",
    "Category",
    "CommunityAggregate",
    "LeaderboardEntry",
    "RankingConfig",
    "RatedItem",
    "RatingState",
    "ScoreChange",
    "Sentiment",
    "SentimentBand",
    "resolve_config",
    "utc_now_iso",
]
