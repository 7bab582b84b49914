"""
Comparator — binary-search controller for pairwise "which is better" decisions.

One Comparator places one new item among the existing items of its tier and
category, sorted best-first. Each decision halves the open range [low, high];
the session ends with a 1-indexed insertion rank. A session is purely
in-memory: abandoning it commits nothing. checkpoint()/restore() let the
caller persist the bounds when a session must survive interruption.
"""

import logging
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field

from ..models.rated_item import RatedItem

logger = logging.getLogger(__name__)


class Pick(str, Enum):
    """A human decision on the current pair."""

    EXISTING = "existing"  # the compared item is better: new item ranks below
    NEW = "new"  # the new item is better: it ranks above
    TOO_CLOSE = "too_close"  # stop probing, place one below the compared item


class ComparatorCheckpoint(BaseModel):
    """Persistable comparator bounds."""

    candidate_ids: List[str]
    low: int
    high: int
    mid: int
    comparisons: int = 0
    final_rank: Optional[int] = None
    decisions: List[Tuple[str, str]] = Field(default_factory=list)


def select_candidates(
    items: List[RatedItem],
    subject: RatedItem,
    exclude: Optional[RatedItem] = None,
) -> List[RatedItem]:
    """
    Existing items the subject may be compared against, in list (best-first) order.

    Same tier and category only; never the subject itself; on re-rank the prior
    entry is excluded by identity and by external content id.
    """
    out = []
    for item in items:
        if item.tier != subject.tier or item.category != subject.category:
            continue
        if subject.same_content(item):
            continue
        if exclude is not None and exclude.same_content(item):
            continue
        out.append(item)
    return out


class Comparator:
    """Single-session binary search over same-tier candidates."""

    def __init__(self, subject: RatedItem, candidates: List[RatedItem]):
        self.subject = subject
        self.candidates = list(candidates)
        self.low = 0
        self.high = len(self.candidates) - 1
        self.mid = (self.low + self.high) // 2 if self.candidates else 0
        self.comparisons = 0
        self.final_rank: Optional[int] = None
        # (winner_id, loser_id) for every decisive pick
        self.decisions: List[Tuple[str, str]] = []
        if not self.candidates:
            self.final_rank = 1

    @property
    def finished(self) -> bool:
        return self.final_rank is not None

    @property
    def current(self) -> Optional[RatedItem]:
        """The existing item the subject is being compared against, or None when finished."""
        if self.finished:
            return None
        return self.candidates[self.mid]

    def compare(self, pick: Pick) -> Optional[int]:
        """
        Apply one decision. Returns the final 1-indexed rank once terminal, else None.
        """
        if self.finished:
            raise ValueError("Comparison session already finished")
        pick = Pick(pick)
        compared = self.candidates[self.mid]
        self.comparisons += 1

        if pick == Pick.TOO_CLOSE:
            # One below the compared item, without further probing.
            self.final_rank = self.mid + 2
            logger.info(
                "[comparator] TOO_CLOSE subject=%s compared=%s final_rank=%s",
                self.subject.id, compared.id, self.final_rank,
            )
            return self.final_rank

        if pick == Pick.EXISTING:
            self.decisions.append((compared.id, self.subject.id))
            self.low = self.mid + 1
        else:
            self.decisions.append((self.subject.id, compared.id))
            self.high = self.mid - 1

        if self.low > self.high:
            self.final_rank = self.low + 1
            logger.info(
                "[comparator] DONE subject=%s comparisons=%s final_rank=%s",
                self.subject.id, self.comparisons, self.final_rank,
            )
            return self.final_rank
        self.mid = (self.low + self.high) // 2
        return None

    def checkpoint(self) -> ComparatorCheckpoint:
        return ComparatorCheckpoint(
            candidate_ids=[c.id for c in self.candidates],
            low=self.low,
            high=self.high,
            mid=self.mid,
            comparisons=self.comparisons,
            final_rank=self.final_rank,
            decisions=list(self.decisions),
        )

    @classmethod
    def restore(
        cls,
        subject: RatedItem,
        candidates: List[RatedItem],
        checkpoint: Optional[ComparatorCheckpoint],
    ) -> "Comparator":
        """
        Rebuild a session from a checkpoint. If the candidate set changed since
        the checkpoint was taken, the bounds no longer apply and a fresh
        session is returned.
        """
        comparator = cls(subject, candidates)
        if checkpoint is None:
            return comparator
        if checkpoint.candidate_ids != [c.id for c in comparator.candidates]:
            logger.info(
                "[comparator] CHECKPOINT_STALE subject=%s, restarting comparisons",
                subject.id,
            )
            return comparator
        comparator.low = checkpoint.low
        comparator.high = checkpoint.high
        comparator.mid = checkpoint.mid
        comparator.comparisons = checkpoint.comparisons
        comparator.final_rank = checkpoint.final_rank
        comparator.decisions = [tuple(d) for d in checkpoint.decisions]
        return comparator
