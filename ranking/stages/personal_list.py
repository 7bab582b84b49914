"""
Personal List Manager — one ordered list of RatedItems per (user, category).

The list is partitioned into three contiguous tier sections in liked, neutral,
disliked order; within a section items are best-first with descending scores.
insert/recompute_tier/delete are synchronous and pure over the in-memory list.
Callers must hold the list's single-writer guard while using them.
"""

import logging
from typing import Dict, List, Optional, Tuple

from ..models.config import RankingConfig, resolve_config
from ..models.diff import ScoreChange
from ..models.rated_item import RatedItem
from ..models.sentiment import Sentiment
from .score_model import score

logger = logging.getLogger(__name__)


def _tier_order_key(item: RatedItem) -> Tuple[int, float]:
    return (item.tier.position, -item.score)


def collapse_duplicates(items: List[RatedItem]) -> Tuple[List[RatedItem], List[RatedItem]]:
    """
    Keep one item per external content id (the highest score wins; first seen
    on ties). Items without an external id are always kept.

    Returns (kept, dropped).
    """
    kept: List[RatedItem] = []
    dropped: List[RatedItem] = []
    index_by_external: Dict[str, int] = {}
    for item in items:
        if not item.external_id:
            kept.append(item)
            continue
        idx = index_by_external.get(item.external_id)
        if idx is None:
            index_by_external[item.external_id] = len(kept)
            kept.append(item)
        elif item.score > kept[idx].score:
            dropped.append(kept[idx])
            kept[idx] = item
        else:
            dropped.append(item)
    return kept, dropped


class PersonalList:
    """Ordered, tier-partitioned list for one (user, category)."""

    def __init__(self, items: Optional[List[RatedItem]] = None, config: Optional[RankingConfig] = None):
        self.config = resolve_config(config)
        self.items: List[RatedItem] = list(items or [])

    @classmethod
    def from_stored(
        cls,
        items: List[RatedItem],
        config: Optional[RankingConfig] = None,
    ) -> Tuple["PersonalList", List[RatedItem]]:
        """
        Build a list from stored documents: collapse duplicate external ids and
        order tier-major, score-descending. Returns (list, dropped_duplicates).
        """
        kept, dropped = collapse_duplicates(items)
        if dropped:
            logger.warning(
                "[personal_list] DUPLICATES_COLLAPSED count=%s ids=%s",
                len(dropped), [d.id for d in dropped],
            )
        kept.sort(key=_tier_order_key)
        return cls(kept, config), dropped

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def find(self, item_id: str) -> Optional[RatedItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def find_by_external(self, external_id: str) -> Optional[RatedItem]:
        if not external_id:
            return None
        for item in self.items:
            if item.external_id == external_id:
                return item
        return None

    def tier_items(self, tier: Sentiment) -> List[RatedItem]:
        return [item for item in self.items if item.tier == tier]

    def section_bounds(self, tier: Sentiment) -> Tuple[int, int]:
        """
        [start, end) of the tier's section. For an absent tier this is the empty
        slot where the section belongs: before the first lower tier, or the list end.
        """
        pos = tier.position
        start = next(
            (i for i, item in enumerate(self.items) if item.tier.position >= pos),
            len(self.items),
        )
        end = next(
            (i for i in range(start, len(self.items)) if self.items[i].tier.position > pos),
            len(self.items),
        )
        return start, end

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def insert(self, item: RatedItem, rank: int) -> int:
        """
        Splice item into its tier section at 1-indexed rank, clamped to the
        section length. Returns the list index used.
        """
        start, end = self.section_bounds(item.tier)
        section_length = end - start
        index = start + min(max(rank, 1) - 1, section_length)
        self.items.insert(index, item)
        logger.debug(
            "[personal_list] INSERT item=%s tier=%s rank=%s section=%s-%s index=%s",
            item.id, item.tier.value, rank, start, end, index,
        )
        return index

    def delete(self, item_id: str) -> Optional[RatedItem]:
        """Remove by identity. The caller recomputes the removed item's tier afterwards."""
        for i, item in enumerate(self.items):
            if item.id == item_id:
                return self.items.pop(i)
        return None

    def recompute_tier(self, tier: Sentiment) -> List[ScoreChange]:
        """
        Rescore every item of tier by its position; return the changes above the
        noise threshold.
        """
        members = self.tier_items(tier)
        size = len(members)
        changes: List[ScoreChange] = []
        for rank, item in enumerate(members):
            old = item.score
            new = score(tier, rank, size, self.config)
            item.score = new
            if abs(old - new) > self.config.noise_threshold:
                changes.append(ScoreChange(item=item, old_score=old, new_score=new))
        logger.debug("[personal_list] RECOMPUTE tier=%s size=%s changed=%s", tier.value, size, len(changes))
        return changes

    def recompute_all(self) -> List[ScoreChange]:
        changes: List[ScoreChange] = []
        for tier in Sentiment.ordered():
            changes.extend(self.recompute_tier(tier))
        return changes

    def record_comparison(self, winner_id: str, loser_id: str) -> bool:
        """Count one comparison on both items. Ignored across tiers or for unknown ids."""
        winner = self.find(winner_id)
        loser = self.find(loser_id)
        if winner is None or loser is None or winner.tier != loser.tier:
            return False
        winner.comparisons_count += 1
        loser.comparisons_count += 1
        return True

    # ------------------------------------------------------------------
    # Invariants
    # ------------------------------------------------------------------

    def violations(self) -> List[str]:
        """Human-readable list of broken invariants (empty when the list is sound)."""
        problems = []
        positions = [item.tier.position for item in self.items]
        if positions != sorted(positions):
            problems.append("tier sections are not contiguous in liked, neutral, disliked order")
        for tier in Sentiment.ordered():
            band = self.config.band_for(tier)
            members = self.tier_items(tier)
            for item in members:
                if not band.contains(item.score):
                    problems.append(f"{item.id} score {item.score} outside {tier.value} band")
            for above, below in zip(members, members[1:]):
                if not above.score > below.score:
                    problems.append(f"{above.id} and {below.id} are not strictly decreasing")
        return problems
