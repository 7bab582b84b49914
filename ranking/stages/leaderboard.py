"""
Community leaderboard — ranks aggregates by a Bayesian confidence-adjusted score.

adjusted = (c * mu + total) / (c + count)

mu is the global mean over every rating in every aggregate; c is the median
rating count, so an item needs about as many ratings as a typical item before
its own average dominates the prior.
"""

from typing import Iterable, List, Optional, Tuple

from ..models.aggregate import CommunityAggregate, LeaderboardEntry
from ..models.config import RankingConfig, resolve_config
from ..models.sentiment import Category
from .score_model import round_score


def global_prior(
    aggregates: List[CommunityAggregate],
    config: Optional[RankingConfig] = None,
) -> Tuple[float, float]:
    """Return (mu, c) over the given aggregates, with config defaults when empty."""
    config = resolve_config(config)
    total_score = sum(a.total_score for a in aggregates)
    total_count = sum(a.rating_count for a in aggregates)
    mu = total_score / total_count if total_count > 0 else config.default_global_mean
    counts = sorted(a.rating_count for a in aggregates)
    c = float(counts[len(counts) // 2]) if counts else config.default_prior_strength
    return mu, c


def adjusted_score(
    aggregate: CommunityAggregate,
    mu: float,
    c: float,
    precision: int = 1,
) -> float:
    bayes = (c * mu + aggregate.total_score) / (c + aggregate.rating_count)
    return round_score(bayes, precision)


def build_leaderboard(
    aggregates: Iterable[CommunityAggregate],
    category: Optional[Category] = None,
    limit: Optional[int] = None,
    config: Optional[RankingConfig] = None,
) -> List[LeaderboardEntry]:
    """
    Leaderboard for one category (or all), best first. Invalid or empty
    aggregates are skipped; the prior is computed over every valid aggregate
    regardless of category.
    """
    config = resolve_config(config)
    valid = [a for a in aggregates if a.is_valid() and a.rating_count > 0]
    mu, c = global_prior(valid, config)
    entries = [
        LeaderboardEntry(
            content_id=a.content_id,
            title=a.title,
            category=a.category,
            average_rating=a.average_rating,
            rating_count=a.rating_count,
            total_score=a.total_score,
            adjusted_score=adjusted_score(a, mu, c, config.leaderboard_precision),
        )
        for a in valid
        if category is None or a.category == category
    ]
    entries.sort(key=lambda e: (-e.adjusted_score, -e.rating_count, e.content_id))
    if limit is not None:
        entries = entries[:limit]
    return entries
