"""Score diff entries produced when a tier's membership change forces rescoring."""

from pydantic import BaseModel

from .rated_item import RatedItem


class ScoreChange(BaseModel):
    """One (item, old score, new score) triple. item carries the new score."""

    item: RatedItem
    old_score: float
    new_score: float

    @property
    def delta(self) -> float:
        return self.new_score - self.old_score
