"""RankingConfig: defaults, nested dict merge, band validation."""

import pytest
from pydantic import ValidationError

from ranking.models import DEFAULT_CONFIG, RankingConfig, Sentiment, SentimentBand, resolve_config


class TestRankingConfig:
    def test_reference_bands(self):
        assert DEFAULT_CONFIG.band_for(Sentiment.LIKED) == SentimentBand(min=6.9, max=10.0)
        assert DEFAULT_CONFIG.band_for(Sentiment.NEUTRAL) == SentimentBand(min=4.0, max=6.8)
        assert DEFAULT_CONFIG.band_for(Sentiment.DISLIKED) == SentimentBand(min=0.0, max=3.9)

    def test_from_dict_merges_sections(self):
        config = RankingConfig.from_dict({
            "scoring": {"score_precision": 2, "noise_threshold": 0.01},
            "leaderboard": {"global_mean": 6.0, "prior_strength": 3, "precision": 2},
            "unknown_key": True,
        })
        assert config.score_precision == 2
        assert config.noise_threshold == 0.01
        assert (config.default_global_mean, config.default_prior_strength, config.leaderboard_precision) == (6.0, 3.0, 2)
        assert config.liked_band == DEFAULT_CONFIG.liked_band

    def test_overlapping_bands_are_rejected(self):
        with pytest.raises(ValidationError):
            RankingConfig.from_dict({"bands": {"neutral": {"min": 4.0, "max": 7.5}}})

    def test_inverted_band_is_rejected(self):
        with pytest.raises(ValidationError):
            SentimentBand(min=5.0, max=4.0)

    def test_resolve_config(self):
        assert resolve_config(None) is DEFAULT_CONFIG
        custom = RankingConfig(score_precision=4)
        assert resolve_config(custom) is custom
