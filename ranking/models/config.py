"""
Ranking configuration — score bands, rounding, noise threshold, leaderboard prior.

RankingConfig defaults are defined here. The server may pass a dict
(e.g. from a JSON file named by RANKING_CONFIG_PATH); from_dict() merges it
with these defaults.
"""

from typing import Dict, Optional

from pydantic import BaseModel, model_validator

from .sentiment import Sentiment, SentimentBand


class RankingConfig(BaseModel):
    """Configuration for scoring, list recomputation, and aggregates."""

    # -------------------------------------------------------------------------
    # Score bands (closed ranges, ordered liked > neutral > disliked).
    # Gaps between bands are allowed; overlap is not.
    # -------------------------------------------------------------------------

    liked_band: SentimentBand = SentimentBand(min=6.9, max=10.0)
    neutral_band: SentimentBand = SentimentBand(min=4.0, max=6.8)
    disliked_band: SentimentBand = SentimentBand(min=0.0, max=3.9)

    # -------------------------------------------------------------------------
    # Score Model output
    # -------------------------------------------------------------------------

    # Decimal places kept on every computed score.
    score_precision: int = 3

    # Score changes at or below this are floating-point noise and are not
    # written to the personal list or propagated to the community aggregate.
    noise_threshold: float = 0.001

    # -------------------------------------------------------------------------
    # Community leaderboard (Bayesian confidence adjustment)
    # adjusted = (c * mu + total) / (c + count)
    # -------------------------------------------------------------------------

    # mu when there are no aggregates at all.
    default_global_mean: float = 7.7
    # c when there are no aggregates at all; otherwise the median rating count.
    default_prior_strength: float = 10.0
    # Decimal places on the adjusted leaderboard score.
    leaderboard_precision: int = 1

    @model_validator(mode="after")
    def bands_are_ordered(self):
        if not (self.liked_band.min > self.neutral_band.max):
            raise ValueError("liked band must sit strictly above the neutral band")
        if not (self.neutral_band.min > self.disliked_band.max):
            raise ValueError("neutral band must sit strictly above the disliked band")
        if self.noise_threshold < 0:
            raise ValueError("noise_threshold must be non-negative")
        return self

    def band_for(self, tier: Sentiment) -> SentimentBand:
        return {
            Sentiment.LIKED: self.liked_band,
            Sentiment.NEUTRAL: self.neutral_band,
            Sentiment.DISLIKED: self.disliked_band,
        }[tier]

    @classmethod
    def from_dict(cls, config_dict: Dict) -> "RankingConfig":
        """Create config from dictionary (e.g., loaded from JSON)."""
        flat = {}
        bands = config_dict.get("bands") or {}
        for tier in Sentiment.ordered():
            if tier.value in bands:
                flat[f"{tier.value}_band"] = bands[tier.value]
        if "scoring" in config_dict:
            flat.update(config_dict["scoring"])
        if "leaderboard" in config_dict:
            lb = config_dict["leaderboard"]
            if "global_mean" in lb:
                flat["default_global_mean"] = lb["global_mean"]
            if "prior_strength" in lb:
                flat["default_prior_strength"] = lb["prior_strength"]
            if "precision" in lb:
                flat["leaderboard_precision"] = lb["precision"]
        for key, value in config_dict.items():
            if key not in ("bands", "scoring", "leaderboard"):
                flat[key] = value
        allowed = set(cls.model_fields)
        filtered = {k: v for k, v in flat.items() if k in allowed}
        return cls.model_validate(filtered)


DEFAULT_CONFIG = RankingConfig()


def resolve_config(config: Optional["RankingConfig"]) -> "RankingConfig":
    """Return config or DEFAULT_CONFIG when none is provided."""
    return config if config is not None else DEFAULT_CONFIG
