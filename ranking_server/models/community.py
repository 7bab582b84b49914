"""Community aggregate and leaderboard Pydantic models."""

from typing import List, Optional

from pydantic import BaseModel

from ranking.models import Category, LeaderboardEntry


class LeaderboardResponse(BaseModel):
    category: Optional[Category] = None
    global_mean: float
    prior_strength: float
    entries: List[LeaderboardEntry]
