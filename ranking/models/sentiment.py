"""
Sentiment tiers, score bands, and content categories.

A rating always belongs to one of three ordered tiers. Each tier owns a fixed
numeric band; the Score Model only ever produces scores inside that band.
"""

from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, model_validator


class Sentiment(str, Enum):
    """Qualitative bucket chosen by the user before any comparison."""

    LIKED = "liked"
    NEUTRAL = "neutral"
    DISLIKED = "disliked"

    @classmethod
    def ordered(cls) -> List["Sentiment"]:
        """Tiers in list order: liked items precede neutral precede disliked."""
        return [cls.LIKED, cls.NEUTRAL, cls.DISLIKED]

    @property
    def position(self) -> int:
        return Sentiment.ordered().index(self)


class Category(str, Enum):
    MOVIE = "movie"
    SHOW = "show"


class SentimentBand(BaseModel):
    """Closed score range [min, max] assigned to a tier."""

    model_config = ConfigDict(frozen=True)

    min: float
    max: float

    @model_validator(mode="after")
    def min_not_above_max(self):
        if self.min > self.max:
            raise ValueError(f"Band min {self.min} is above max {self.max}")
        return self

    @property
    def mid(self) -> float:
        return (self.min + self.max) / 2

    @property
    def half(self) -> float:
        return (self.max - self.min) / 2

    def contains(self, score: float) -> bool:
        return self.min <= score <= self.max
