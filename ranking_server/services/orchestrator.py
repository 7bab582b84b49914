"""
Insertion Orchestrator — sequences comparator, personal list, and community aggregates.

Insertion protocol for one item:
  1. duplicate guard (same external id already in the user's list: abort)
  2. persist the item as pending (never counted)
  3. comparator runs to a final rank (persisted checkpoint per decision)
  4. insert into the personal list and recompute the disturbed tier(s)
  5. persist the personal score diff
  6. count the item in its community aggregate (add, or replace for a
     second rating of the same content)
  7. move every other counted item whose score shifted (replace, in parallel)
  8. notify listeners

Steps 6 and 7 stamp the rating document inside the aggregate transaction
(RatedItem.community_score), so resume() can re-run them after any failure
without counting anything twice.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from ranking.errors import DuplicateRating, RatingNotFound
from ranking.models import (
    Category,
    CommunityAggregate,
    RankingConfig,
    RatedItem,
    RatingState,
    ScoreChange,
    Sentiment,
    resolve_config,
)
from ranking.stages import (
    Comparator,
    ComparatorCheckpoint,
    PersonalList,
    Pick,
    initial_score,
    select_candidates,
)

from .aggregate_store import CommunityAggregateStore, ContributionStamp
from .comparison_sessions import InsertionMode, InsertionSession, NewInsertion, ReRank, SessionRegistry
from .list_guard import ListActivity, ListGuard
from .rating_store import RatingStore

logger = logging.getLogger(__name__)

Decide = Callable[[RatedItem, RatedItem], Awaitable[Pick]]
Listener = Callable[["RatingEvent"], Any]


@dataclass
class RatingEvent:
    """Emitted after a rating change is fully propagated."""

    kind: str  # "rated" | "reranked" | "deleted"
    user_id: str
    item: RatedItem
    changes: List[ScoreChange] = field(default_factory=list)


@dataclass
class InsertionResult:
    status: str  # "inserted" | "duplicate"
    item: RatedItem
    rank: Optional[int] = None
    changes: List[ScoreChange] = field(default_factory=list)
    aggregate: Optional[CommunityAggregate] = None
    events: List[RatingEvent] = field(default_factory=list)


@dataclass
class SessionStep:
    """Where an insertion stands after one call: still comparing, or finished with a result."""

    session: InsertionSession
    result: Optional[InsertionResult] = None

    @property
    def finished(self) -> bool:
        return self.result is not None


@dataclass
class DeletionResult:
    item: RatedItem
    changes: List[ScoreChange] = field(default_factory=list)
    aggregate: Optional[CommunityAggregate] = None


@dataclass
class ReconcileReport:
    """What resume() repaired for one list."""

    added: List[RatedItem] = field(default_factory=list)
    replaced: List[RatedItem] = field(default_factory=list)
    retired_duplicates: List[RatedItem] = field(default_factory=list)
    awaiting_comparison: List[RatedItem] = field(default_factory=list)
    changes: List[ScoreChange] = field(default_factory=list)


@dataclass
class ListView:
    """A normalised personal list plus the items still awaiting comparison."""

    items: List[RatedItem]
    pending: List[RatedItem]


class InsertionOrchestrator:
    """
    Public entry points: insert_new, re_rank (blocking, with a decide callback),
    start/start_rerank + compare (step-wise, for request/response callers),
    abandon, reopen, delete, resume, load_list, has_rated, personal_score.
    """

    def __init__(
        self,
        ratings: RatingStore,
        aggregates: CommunityAggregateStore,
        guard: Optional[ListGuard] = None,
        sessions: Optional[SessionRegistry] = None,
        config: Optional[RankingConfig] = None,
    ):
        self.ratings = ratings
        self.aggregates = aggregates
        self.guard = guard if guard is not None else ListGuard()
        self.sessions = sessions if sessions is not None else SessionRegistry()
        self.config = resolve_config(config)
        self._listeners: List[Listener] = []

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: Listener) -> None:
        """Register a callback (sync or async) receiving every RatingEvent."""
        self._listeners.append(listener)

    async def _notify(self, event: RatingEvent) -> None:
        for listener in self._listeners:
            try:
                outcome = listener(event)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                # Side effects never undo a committed rating.
                logger.exception("[orchestrator] LISTENER_FAILED kind=%s item=%s", event.kind, event.item.id)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def _load(
        self, user_id: str, category: Category
    ) -> Tuple[PersonalList, List[RatedItem], List[RatedItem]]:
        """Return (placed list, unplaced items, dropped duplicates)."""
        stored = await self.ratings.list_items(user_id, category)
        placed = [i for i in stored if i.placed]
        unplaced = [i for i in stored if not i.placed]
        plist, dropped = PersonalList.from_stored(placed, self.config)
        return plist, unplaced, dropped

    async def load_list(self, user_id: str, category: Category) -> ListView:
        """
        Ordered personal list with scores recomputed from placement. Moved
        scores are persisted; the community side is left to resume().
        """
        async with self.guard.hold(user_id, category, ListActivity.LOADING):
            plist, unplaced, _ = await self._load(user_id, category)
            changes = plist.recompute_all()
            if changes:
                logger.info("[orchestrator] LOAD_NORMALISED user=%s category=%s moved=%s",
                            user_id, Category(category).value, len(changes))
                await self.ratings.save_items(user_id, self._mark_moved(changes))
        return ListView(items=list(plist.items), pending=unplaced)

    async def has_rated(self, user_id: str, external_id: str, category: Optional[Category] = None) -> bool:
        return bool(await self.ratings.find_by_external(user_id, external_id, category))

    async def personal_score(
        self, user_id: str, external_id: str, category: Optional[Category] = None
    ) -> Optional[float]:
        """The user's score for this content (best placed item), or None when not placed."""
        placed = [i for i in await self.ratings.find_by_external(user_id, external_id, category) if i.placed]
        if not placed:
            return None
        return max(i.score for i in placed)

    # ------------------------------------------------------------------
    # Steps 1-3: start and compare
    # ------------------------------------------------------------------

    async def start(self, user_id: str, item: RatedItem, mode: Optional[InsertionMode] = None) -> SessionStep:
        """
        Duplicate guard, persist as pending, and open a comparison session.
        Raises DuplicateRating when the content is already in the user's list.
        """
        mode = mode or NewInsertion()
        async with self.guard.hold(user_id, item.category, ListActivity.INSERTING):
            stored = await self.ratings.list_items(user_id, item.category)
            prior = None
            if isinstance(mode, ReRank):
                prior = next((i for i in stored if i.id == mode.prior_item_id), None)
                if prior is None:
                    raise RatingNotFound(f"Rating {mode.prior_item_id!r} not found")
            elif item.external_id and any(i.external_id == item.external_id for i in stored):
                logger.info("[orchestrator] DUPLICATE user=%s external_id=%s", user_id, item.external_id)
                raise DuplicateRating(item.external_id)

            item.score = initial_score(item.tier, self.config)
            item.original_score = item.score
            item.state = RatingState.PENDING
            item.placed = False
            item.community_score = None
            item.comparisons_count = 0
            item.comparison = None

            plist, _ = PersonalList.from_stored([i for i in stored if i.placed], self.config)
            comparator = Comparator(item, select_candidates(plist.items, item, exclude=prior))
            session = InsertionSession(user_id=user_id, item=item, comparator=comparator, mode=mode)
            item.comparison = self._checkpoint_doc(session)
            await self.ratings.save_item(user_id, item)

        self.sessions.open(session)
        logger.info(
            "[orchestrator] STARTED user=%s item=%s tier=%s candidates=%s rerank_of=%s",
            user_id, item.id, item.tier.value, len(comparator.candidates), session.prior_item_id,
        )
        if comparator.finished:
            return SessionStep(session, await self.finalize(session))
        return SessionStep(session)

    async def start_rerank(self, user_id: str, item_id: str, tier: Sentiment) -> SessionStep:
        """Begin re-ranking an existing rating into `tier` (possibly the same tier)."""
        prior = await self.ratings.get_item(user_id, item_id)
        if prior is None:
            raise RatingNotFound(f"Rating {item_id!r} not found")
        if not prior.placed:
            raise ValueError(f"Rating {item_id!r} is still awaiting comparison; reopen it instead")
        item = RatedItem(
            external_id=prior.external_id,
            title=prior.title,
            tier=Sentiment(tier),
            category=prior.category,
            genres=list(prior.genres),
        )
        return await self.start(user_id, item, ReRank(prior_item_id=prior.id))

    @staticmethod
    def _checkpoint_doc(session: InsertionSession) -> Dict[str, Any]:
        doc: Dict[str, Any] = {"checkpoint": session.comparator.checkpoint().model_dump(mode="json")}
        if session.prior_item_id:
            doc["rerankOf"] = session.prior_item_id
        return doc

    async def compare(self, session_id: str, pick: Pick) -> SessionStep:
        """Apply one human decision; finalizes the insertion when the comparator terminates."""
        session = self.sessions.get(session_id)
        comparator = session.comparator
        comparator.compare(Pick(pick))
        item = session.item
        item.state = RatingState.COMPARING
        item.comparison = self._checkpoint_doc(session)
        await self.ratings.save_item(session.user_id, item)
        if comparator.finished:
            return SessionStep(session, await self.finalize(session))
        return SessionStep(session)

    async def abandon(self, session_id: str) -> RatedItem:
        """Drop an open session and its pending item. Nothing was counted, so nothing is undone."""
        session = self.sessions.get(session_id)
        self.sessions.close(session_id)
        async with self.guard.hold(session.user_id, session.category, ListActivity.DELETING):
            stored = await self.ratings.get_item(session.user_id, session.item.id)
            if stored is not None and not stored.placed:
                await self.ratings.delete_item(session.user_id, stored.id)
        logger.info("[orchestrator] ABANDONED user=%s item=%s", session.user_id, session.item.id)
        return session.item

    async def reopen(self, user_id: str, item_id: str) -> SessionStep:
        """Reopen comparisons for an item left pending/comparing, from its persisted checkpoint."""
        item = await self.ratings.get_item(user_id, item_id)
        if item is None:
            raise RatingNotFound(f"Rating {item_id!r} not found")
        if item.placed:
            raise ValueError(f"Rating {item_id!r} is already placed")
        for open_session in self.sessions.for_item(item_id):
            self.sessions.close(open_session.session_id)

        saved = item.comparison or {}
        prior_id = saved.get("rerankOf")
        checkpoint = ComparatorCheckpoint.model_validate(saved["checkpoint"]) if saved.get("checkpoint") else None

        plist, _, _ = await self._load(user_id, item.category)
        prior = plist.find(prior_id) if prior_id else None
        comparator = Comparator.restore(item, select_candidates(plist.items, item, exclude=prior), checkpoint)
        mode: InsertionMode = ReRank(prior_item_id=prior_id) if prior_id else NewInsertion()
        session = self.sessions.open(InsertionSession(user_id=user_id, item=item, comparator=comparator, mode=mode))
        logger.info("[orchestrator] REOPENED user=%s item=%s comparisons=%s", user_id, item.id, comparator.comparisons)
        if comparator.finished:
            return SessionStep(session, await self.finalize(session))
        return SessionStep(session)

    # ------------------------------------------------------------------
    # Steps 4-8: finalize
    # ------------------------------------------------------------------

    async def finalize(self, session: InsertionSession) -> InsertionResult:
        comparator = session.comparator
        if not comparator.finished:
            raise ValueError("Comparison session is not finished")
        user_id = session.user_id
        item = session.item
        try:
            async with self.guard.hold(user_id, item.category, ListActivity.INSERTING):
                plist, _, _ = await self._load(user_id, item.category)
                disturbed = {item.tier}

                if session.prior_item_id:
                    prior = plist.delete(session.prior_item_id)
                    if prior is not None:
                        await self._retire(user_id, prior)
                        disturbed.add(prior.tier)

                # A placed copy exists only if an earlier finalize got past step 5.
                earlier = plist.delete(item.id)
                if earlier is not None:
                    item.community_score = earlier.community_score
                    item.comparisons_count = earlier.comparisons_count

                # Step 4
                plist.insert(item, comparator.final_rank)
                if earlier is None:
                    for winner_id, loser_id in comparator.decisions:
                        plist.record_comparison(winner_id, loser_id)
                changes: List[ScoreChange] = []
                for tier in Sentiment.ordered():
                    if tier in disturbed:
                        changes.extend(plist.recompute_tier(tier))

                # Step 5
                item.placed = True
                item.comparison = None
                moved = self._mark_moved(changes, exclude_id=item.id)
                touched = {i.id: i for i in moved}
                for pair in comparator.decisions:
                    for compared_id in pair:
                        compared = plist.find(compared_id)
                        if compared is not None and compared.id != item.id:
                            touched.setdefault(compared.id, compared)
                await self.ratings.save_items(user_id, [item] + list(touched.values()))

                # Steps 6-7
                aggregate = await self._count(user_id, item, plist)
                await self._propagate(user_id, moved)
                rank = plist.items.index(item) - plist.section_bounds(item.tier)[0] + 1
        finally:
            self.sessions.close(session.session_id)

        kind = "reranked" if session.prior_item_id else "rated"
        event = RatingEvent(kind=kind, user_id=user_id, item=item, changes=changes)
        logger.info(
            "[orchestrator] FINALIZED user=%s item=%s rank=%s score=%s moved=%s",
            user_id, item.id, rank, item.score, len(moved),
        )
        await self._notify(event)
        return InsertionResult(
            status="inserted",
            item=item,
            rank=rank,
            changes=changes,
            aggregate=aggregate,
            events=[event],
        )

    # ------------------------------------------------------------------
    # Blocking variants
    # ------------------------------------------------------------------

    async def _drive(self, step: SessionStep, decide: Decide) -> InsertionResult:
        while step.result is None:
            session = step.session
            pick = await decide(session.item, session.comparator.current)
            step = await self.compare(session.session_id, pick)
        return step.result

    async def insert_new(self, user_id: str, item: RatedItem, decide: Decide) -> InsertionResult:
        """Run a whole insertion, awaiting decide(new_item, compared_item) for every comparison."""
        try:
            step = await self.start(user_id, item)
        except DuplicateRating:
            return InsertionResult(status="duplicate", item=item)
        return await self._drive(step, decide)

    async def re_rank(self, user_id: str, item_id: str, tier: Sentiment, decide: Decide) -> InsertionResult:
        step = await self.start_rerank(user_id, item_id, tier)
        return await self._drive(step, decide)

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    async def delete(self, user_id: str, item_id: str) -> DeletionResult:
        """Remove a rating, uncount it, and rescore the rest of its tier."""
        item = await self.ratings.get_item(user_id, item_id)
        if item is None:
            raise RatingNotFound(f"Rating {item_id!r} not found")
        for open_session in self.sessions.for_item(item_id):
            self.sessions.close(open_session.session_id)

        async with self.guard.hold(user_id, item.category, ListActivity.DELETING):
            plist, _, _ = await self._load(user_id, item.category)
            target = plist.delete(item_id) or item
            aggregate = await self._retire(user_id, target)
            changes: List[ScoreChange] = []
            moved: List[RatedItem] = []
            if target.placed:
                changes = plist.recompute_tier(target.tier)
                moved = self._mark_moved(changes)
                await self.ratings.save_items(user_id, moved)
                await self._propagate(user_id, moved)

        logger.info("[orchestrator] DELETED user=%s item=%s moved=%s", user_id, item_id, len(moved))
        await self._notify(RatingEvent(kind="deleted", user_id=user_id, item=target, changes=changes))
        return DeletionResult(item=target, changes=changes, aggregate=aggregate)

    # ------------------------------------------------------------------
    # Resume / reconcile
    # ------------------------------------------------------------------

    async def resume(self, user_id: str, category: Category) -> ReconcileReport:
        """
        Finish whatever an interrupted run left behind: rescore the list,
        count placed-but-uncounted items, move counted items whose ledger
        value lags their score, and retire collapsed duplicates.
        """
        report = ReconcileReport()
        async with self.guard.hold(user_id, category, ListActivity.RECONCILING):
            plist, unplaced, dropped = await self._load(user_id, category)
            for duplicate in dropped:
                await self._retire(user_id, duplicate)
                report.retired_duplicates.append(duplicate)

            report.changes = plist.recompute_all()
            await self.ratings.save_items(user_id, self._mark_moved(report.changes))

            for item in plist:
                if not item.is_counted:
                    await self._count(user_id, item, plist)
                    if item.is_counted:
                        report.added.append(item)
            report.replaced = await self._propagate(user_id, [i for i in plist if i.is_counted])
            report.awaiting_comparison = unplaced

        logger.info(
            "[orchestrator] RESUMED user=%s category=%s added=%s replaced=%s awaiting=%s",
            user_id, Category(category).value, len(report.added), len(report.replaced),
            len(report.awaiting_comparison),
        )
        return report

    # ------------------------------------------------------------------
    # Aggregate helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _mark_moved(changes: List[ScoreChange], exclude_id: Optional[str] = None) -> List[RatedItem]:
        moved = []
        for change in changes:
            if change.item.id == exclude_id:
                continue
            if change.item.is_counted:
                change.item.state = RatingState.UPDATED
            moved.append(change.item)
        return moved

    async def _count(self, user_id: str, item: RatedItem, plist: PersonalList) -> Optional[CommunityAggregate]:
        """Step 6: add the item to its aggregate, or replace when another counted item rates the same content."""
        others = [
            o for o in plist
            if o.id != item.id and item.external_id and o.external_id == item.external_id and o.is_counted
        ]
        if not others:
            state = RatingState.COMMITTED
            stamp = ContributionStamp(user_id, item.id, expected=None, counted=item.score, state=state)
            write = await self.aggregates.add_rating(
                item.content_key, item.score, item.title, item.category, stamp=stamp
            )
        else:
            other = others[0]
            state = RatingState.UPDATED
            stamp = ContributionStamp(user_id, item.id, expected=None, counted=item.score, state=state)
            released = ContributionStamp(user_id, other.id, expected=other.community_score, counted=None)
            write = await self.aggregates.replace_rating(
                item.content_key, other.community_score, item.score, item.title, item.category,
                stamp=stamp, released=released,
            )
        if write is None:
            return None
        if write.applied:
            item.community_score = item.score
            item.state = state
            if others:
                # The contribution moved to this item; the other one no longer carries it.
                others[0].community_score = None
        else:
            stored = await self.ratings.get_item(user_id, item.id)
            if stored is not None:
                item.community_score = stored.community_score
                item.state = stored.state
            for other in others:
                stored_other = await self.ratings.get_item(user_id, other.id)
                other.community_score = stored_other.community_score if stored_other is not None else None
        return write.aggregate

    async def _propagate(self, user_id: str, items: List[RatedItem]) -> List[RatedItem]:
        """Step 7: replace_rating for every counted item whose ledger value lags its score, in parallel."""
        threshold = self.config.noise_threshold
        stale = [
            i for i in items
            if i.is_counted and abs(i.community_score - i.score) > threshold
        ]
        if not stale:
            return []

        async def _replace(item: RatedItem):
            stamp = ContributionStamp(
                user_id, item.id, expected=item.community_score, counted=item.score, state=RatingState.UPDATED
            )
            write = await self.aggregates.replace_rating(
                item.content_key, item.community_score, item.score, item.title, item.category, stamp=stamp
            )
            if write is not None and write.applied:
                item.community_score = item.score
                item.state = RatingState.UPDATED
                return item
            return None

        results = await asyncio.gather(*(_replace(i) for i in stale), return_exceptions=True)
        errors = [r for r in results if isinstance(r, Exception)]
        if errors:
            logger.warning(
                "[orchestrator] PROPAGATE_FAILED user=%s failed=%s/%s, resume will retry",
                user_id, len(errors), len(stale),
            )
            raise errors[0]
        return [r for r in results if r is not None]

    async def _retire(self, user_id: str, item: RatedItem) -> Optional[CommunityAggregate]:
        """Delete the item's document, uncounting it in the same transaction when it was counted."""
        if item.is_counted:
            stamp = ContributionStamp(user_id, item.id, expected=item.community_score, delete=True)
            write = await self.aggregates.remove_rating(item.content_key, item.community_score, stamp=stamp)
            if write is not None and write.applied:
                item.community_score = None
                return write.aggregate
        await self.ratings.delete_item(user_id, item.id)
        return None
