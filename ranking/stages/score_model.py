"""
Score Model — maps (tier, rank within tier, tier size) to a numeric score.

Items in a tier are spread symmetrically around the band midpoint: rank 0 gets
the band top, rank n-1 the band bottom, and the step shrinks as the tier grows.
"""

import logging
import math
from typing import Optional

from ..models.config import RankingConfig, resolve_config
from ..models.sentiment import Sentiment, SentimentBand

logger = logging.getLogger(__name__)


def round_score(value: float, places: int = 3) -> float:
    """Round half away from zero to `places` decimals."""
    factor = 10 ** places
    scaled = value * factor
    return math.floor(abs(scaled) + 0.5) * math.copysign(1, scaled) / factor


def score_in_band(band: SentimentBand, rank: int, tier_size: int, precision: int = 3) -> float:
    """
    Score for a 0-indexed rank (0 = best) in a tier of tier_size items.

    mid = (min+max)/2, half = (max-min)/2, centre = (n-1)/2,
    step = half / max(centre, 1), raw = mid + (centre - rank) * step.
    Falls back to mid when raw is NaN or infinite.
    """
    n = float(tier_size)
    centre = (n - 1) / 2
    step = band.half / max(centre, 1)
    offset = centre - rank
    raw = band.mid + offset * step
    if math.isnan(raw) or math.isinf(raw):
        logger.warning(
            "[score_model] NON_FINITE_SCORE rank=%s tier_size=%s, using band mid %s",
            rank, tier_size, band.mid,
        )
        return band.mid
    score = round_score(raw, precision)
    logger.debug(
        "[score_model] rank=%s n=%s centre=%s step=%s raw=%s score=%s",
        rank, tier_size, centre, step, raw, score,
    )
    return score


def score(tier: Sentiment, rank: int, tier_size: int, config: Optional[RankingConfig] = None) -> float:
    """Score for an item at 0-indexed `rank` among `tier_size` items of `tier`."""
    config = resolve_config(config)
    return score_in_band(config.band_for(tier), rank, tier_size, config.score_precision)


def initial_score(tier: Sentiment, config: Optional[RankingConfig] = None) -> float:
    """Score a freshly created item carries before it is placed (the band midpoint)."""
    config = resolve_config(config)
    return round_score(config.band_for(tier).mid, config.score_precision)
