"""Core stages: score model, comparator, personal list, aggregate arithmetic, leaderboard."""

from .aggregate_math import add_rating, rebuild_from_ratings, remove_rating, replace_rating
from .comparator import Comparator, ComparatorCheckpoint, Pick, select_candidates
from .leaderboard import build_leaderboard, global_prior
from .personal_list import PersonalList, collapse_duplicates
from .score_model import initial_score, round_score, score, score_in_band

__all__ = [
    "Comparator",
    "ComparatorCheckpoint",
    "PersonalList",
    "Pick",
    "add_rating",
    "build_leaderboard",
    "collapse_duplicates",
    "global_prior",
    "initial_score",
    "rebuild_from_ratings",
    "remove_rating",
    "replace_rating",
    "round_score",
    "score",
    "score_in_band",
    "select_candidates",
]
