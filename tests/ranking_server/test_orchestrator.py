"""
Insertion orchestrator: the full rating protocol over the in-memory store,
including interruption at each step and resume().
"""

import asyncio

import pytest

from ranking.errors import RatingNotFound, StoreUnavailable
from ranking.models import RatedItem, RatingState, Sentiment
from ranking.stages import PersonalList, Pick
from ranking_server.services import (
    CommunityAggregateStore,
    ContributionStamp,
    InMemoryDocumentStore,
    InsertionOrchestrator,
    ListGuard,
    RatingStore,
    SessionRegistry,
)

LIKED, DISLIKED = Sentiment.LIKED, Sentiment.DISLIKED


def always(pick):
    async def decide(new_item, existing_item):
        return pick

    return decide


def make_orchestrator(docs):
    return InsertionOrchestrator(RatingStore(docs), CommunityAggregateStore(docs))


def movie(title, external_id, tier=LIKED):
    return RatedItem(title=title, external_id=external_id, tier=tier)


@pytest.fixture
def docs():
    return InMemoryDocumentStore(max_attempts=20)


@pytest.fixture
def orch(docs):
    return make_orchestrator(docs)


async def assert_ledger_consistent(orch, user_ids):
    """Every counted item is counted once at its score, and aggregates hold nothing else."""
    expected = {}
    for user_id in user_ids:
        for item in await orch.ratings.list_items(user_id):
            if item.placed:
                assert item.community_score == pytest.approx(item.score)
                total, count = expected.get(item.content_key, (0.0, 0))
                expected[item.content_key] = (total + item.score, count + 1)
            else:
                assert item.community_score is None
    stored = {a.content_id: a for a in await orch.aggregates.list_all()}
    assert set(stored) == set(expected)
    for content_id, (total, count) in expected.items():
        assert stored[content_id].rating_count == count
        assert stored[content_id].total_score == pytest.approx(total)


async def rate_a_then_b(orch, pick=Pick.NEW):
    a = await orch.insert_new("u1", movie("A", "a"), always(pick))
    b = await orch.insert_new("u1", movie("B", "b"), always(pick))
    return a, b


class TestInsertion:
    def test_first_item_takes_band_mid_and_is_counted(self, orch):
        async def scenario():
            result = await orch.insert_new("u1", movie("A", "a"), always(Pick.NEW))
            assert result.status == "inserted"
            assert result.rank == 1
            assert result.item.score == pytest.approx(8.45)
            assert result.item.state == RatingState.COMMITTED
            assert result.aggregate.rating_count == 1
            await assert_ledger_consistent(orch, ["u1"])

        asyncio.run(scenario())

    def test_second_item_rescores_the_tier_and_moves_aggregates(self, orch):
        async def scenario():
            _, b = await rate_a_then_b(orch)
            assert b.rank == 1
            assert b.item.score == pytest.approx(9.225)
            assert [(c.item.title, c.new_score) for c in b.changes if c.item.title == "A"] == [
                ("A", pytest.approx(7.675))
            ]
            view = await orch.load_list("u1", b.item.category)
            assert [i.title for i in view.items] == ["B", "A"]
            a_stored = view.items[1]
            assert a_stored.state == RatingState.UPDATED
            assert a_stored.comparisons_count == 1
            assert (await orch.aggregates.get("a")).total_score == pytest.approx(7.675)
            assert (await orch.aggregates.get("b")).total_score == pytest.approx(9.225)
            await assert_ledger_consistent(orch, ["u1"])

        asyncio.run(scenario())

    def test_existing_pick_places_below(self, orch):
        async def scenario():
            _, b = await rate_a_then_b(orch, pick=Pick.EXISTING)
            assert b.rank == 2
            assert b.item.score == pytest.approx(7.675)

        asyncio.run(scenario())

    def test_duplicate_is_rejected_without_touching_aggregates(self, orch):
        async def scenario():
            await orch.insert_new("u1", movie("A", "a"), always(Pick.NEW))
            result = await orch.insert_new("u1", movie("A again", "a"), always(Pick.NEW))
            assert result.status == "duplicate"
            assert (await orch.aggregates.get("a")).rating_count == 1
            assert len(await orch.ratings.list_items("u1")) == 1

        asyncio.run(scenario())

    def test_users_share_one_aggregate(self, orch):
        async def scenario():
            await asyncio.gather(
                orch.insert_new("u1", movie("A", "a"), always(Pick.NEW)),
                orch.insert_new("u2", movie("A", "a"), always(Pick.NEW)),
            )
            record = await orch.aggregates.get("a")
            assert record.rating_count == 2
            assert record.total_score == pytest.approx(16.9)

        asyncio.run(scenario())

    def test_lookup_helpers(self, orch):
        async def scenario():
            await orch.insert_new("u1", movie("A", "a"), always(Pick.NEW))
            assert await orch.has_rated("u1", "a")
            assert not await orch.has_rated("u2", "a")
            assert await orch.personal_score("u1", "a") == pytest.approx(8.45)
            assert await orch.personal_score("u1", "zzz") is None

        asyncio.run(scenario())


class TestSessions:
    def test_step_wise_session(self, orch):
        async def scenario():
            await orch.insert_new("u1", movie("A", "a"), always(Pick.NEW))
            step = await orch.start("u1", movie("B", "b"))
            assert not step.finished
            assert step.session.comparator.current.title == "A"
            assert (await orch.ratings.get_item("u1", step.session.item.id)).state == RatingState.PENDING
            step = await orch.compare(step.session.session_id, Pick.NEW)
            assert step.finished
            assert step.result.rank == 1
            assert len(orch.sessions) == 0

        asyncio.run(scenario())

    def test_pending_item_is_listed_separately_and_never_counted(self, orch):
        async def scenario():
            await orch.insert_new("u1", movie("A", "a"), always(Pick.NEW))
            step = await orch.start("u1", movie("B", "b"))
            view = await orch.load_list("u1", step.session.category)
            assert [i.title for i in view.items] == ["A"]
            assert [i.title for i in view.pending] == ["B"]
            assert await orch.aggregates.get("b") is None

        asyncio.run(scenario())

    def test_abandon_deletes_the_pending_item(self, orch):
        async def scenario():
            await orch.insert_new("u1", movie("A", "a"), always(Pick.NEW))
            step = await orch.start("u1", movie("B", "b"))
            await orch.abandon(step.session.session_id)
            assert await orch.ratings.get_item("u1", step.session.item.id) is None
            assert len(orch.sessions) == 0
            await assert_ledger_consistent(orch, ["u1"])

        asyncio.run(scenario())

    def test_uses_the_registry_and_guard_it_is_given(self, docs):
        sessions = SessionRegistry()
        guard = ListGuard()
        orch = InsertionOrchestrator(
            RatingStore(docs), CommunityAggregateStore(docs), guard=guard, sessions=sessions
        )
        assert orch.sessions is sessions
        assert orch.guard is guard

        async def scenario():
            await orch.insert_new("u1", movie("A", "a"), always(Pick.NEW))
            step = await orch.start("u1", movie("B", "b"))
            assert sessions.get(step.session.session_id) is step.session
            assert len(sessions) == 1

        asyncio.run(scenario())

    def test_reopen_refuses_a_placed_item(self, orch):
        async def scenario():
            a = await orch.insert_new("u1", movie("A", "a"), always(Pick.NEW))
            with pytest.raises(ValueError):
                await orch.reopen("u1", a.item.id)

        asyncio.run(scenario())


class TestRerankAndDelete:
    def test_rerank_to_another_tier(self, orch):
        async def scenario():
            a, _ = await rate_a_then_b(orch)
            result = await orch.re_rank("u1", a.item.id, DISLIKED, always(Pick.NEW))
            assert result.item.tier == DISLIKED
            assert result.item.score == pytest.approx(1.95)
            assert result.events[0].kind == "reranked"
            assert await orch.ratings.get_item("u1", a.item.id) is None
            view = await orch.load_list("u1", result.item.category)
            assert [(i.title, i.tier) for i in view.items] == [("B", LIKED), ("A", DISLIKED)]
            assert view.items[0].score == pytest.approx(8.45)
            record = await orch.aggregates.get("a")
            assert (record.rating_count, record.total_score) == (1, pytest.approx(1.95))
            await assert_ledger_consistent(orch, ["u1"])

        asyncio.run(scenario())

    def test_abandoned_rerank_keeps_the_prior_rating(self, orch):
        async def scenario():
            a, b = await rate_a_then_b(orch)
            step = await orch.start_rerank("u1", a.item.id, LIKED)
            assert [c.id for c in step.session.comparator.candidates] == [b.item.id]
            await orch.abandon(step.session.session_id)
            assert (await orch.ratings.get_item("u1", a.item.id)).placed
            await assert_ledger_consistent(orch, ["u1"])

        asyncio.run(scenario())

    def test_rerank_of_an_item_awaiting_comparison_is_refused(self, orch):
        async def scenario():
            await orch.insert_new("u1", movie("A", "a"), always(Pick.NEW))
            step = await orch.start("u1", movie("B", "b"))
            b_id = step.session.item.id
            with pytest.raises(ValueError):
                await orch.start_rerank("u1", b_id, DISLIKED)
            stored = await orch.ratings.list_items("u1")
            assert sorted(i.title for i in stored) == ["A", "B"]
            assert not (await orch.ratings.get_item("u1", b_id)).placed

        asyncio.run(scenario())

    def test_rerank_unknown_item(self, orch):
        async def scenario():
            with pytest.raises(RatingNotFound):
                await orch.start_rerank("u1", "missing", LIKED)

        asyncio.run(scenario())

    def test_delete_uncounts_and_rescores(self, orch):
        async def scenario():
            a, b = await rate_a_then_b(orch)
            result = await orch.delete("u1", b.item.id)
            assert result.aggregate is None
            assert await orch.aggregates.get("b") is None
            assert (await orch.ratings.get_item("u1", a.item.id)).score == pytest.approx(8.45)
            assert (await orch.aggregates.get("a")).total_score == pytest.approx(8.45)
            await assert_ledger_consistent(orch, ["u1"])

        asyncio.run(scenario())

    def test_concurrent_delete_and_insert_keep_the_list_sound(self, orch):
        async def scenario():
            a, _ = await rate_a_then_b(orch)
            await asyncio.gather(
                orch.delete("u1", a.item.id),
                orch.insert_new("u1", movie("C", "c"), always(Pick.EXISTING)),
            )
            placed = [i for i in await orch.ratings.list_items("u1") if i.placed]
            plist, dropped = PersonalList.from_stored(placed)
            assert not dropped
            assert plist.violations() == []
            assert sorted(i.title for i in plist) == ["B", "C"]
            await assert_ledger_consistent(orch, ["u1"])

        asyncio.run(scenario())


class TestInterruptedInsertion:
    def test_crash_during_comparisons(self, docs, orch):
        async def scenario():
            await orch.insert_new("u1", movie("A", "a"), always(Pick.NEW))
            step = await orch.start("u1", movie("B", "b"))
            b_id = step.session.item.id

            # A restarted process has no open sessions.
            restarted = make_orchestrator(docs)
            report = await restarted.resume("u1", step.session.category)
            assert [i.id for i in report.awaiting_comparison] == [b_id]
            assert report.added == []

            step = await restarted.reopen("u1", b_id)
            step = await restarted.compare(step.session.session_id, Pick.NEW)
            assert step.finished
            report = await restarted.resume("u1", step.session.category)
            assert (report.added, report.replaced, report.awaiting_comparison) == ([], [], [])
            assert (await restarted.aggregates.get("b")).rating_count == 1
            await assert_ledger_consistent(restarted, ["u1"])

        asyncio.run(scenario())

    def test_crash_before_the_list_is_saved(self, docs, orch):
        async def scenario():
            await orch.insert_new("u1", movie("A", "a"), always(Pick.NEW))
            step = await orch.start("u1", movie("B", "b"))
            b_id = step.session.item.id
            # The checkpoint save in compare() passes; finalize's save fails.
            docs.fail_next("set", path_prefix=f"users/u1/rankings/{b_id}", after=1)
            with pytest.raises(StoreUnavailable):
                await orch.compare(step.session.session_id, Pick.NEW)
            assert len(orch.sessions) == 0

            report = await orch.resume("u1", step.session.category)
            assert [i.id for i in report.awaiting_comparison] == [b_id]
            await assert_ledger_consistent(orch, ["u1"])

            step = await orch.reopen("u1", b_id)
            assert step.finished
            assert step.result.rank == 1
            assert (await orch.aggregates.get("b")).rating_count == 1
            await assert_ledger_consistent(orch, ["u1"])

        asyncio.run(scenario())

    def test_crash_before_the_aggregate_is_counted(self, docs, orch):
        async def scenario():
            await orch.insert_new("u1", movie("A", "a"), always(Pick.NEW))
            step = await orch.start("u1", movie("B", "b"))
            docs.fail_next("commit", path_prefix="ratings/")
            with pytest.raises(StoreUnavailable):
                await orch.compare(step.session.session_id, Pick.NEW)
            assert await orch.aggregates.get("b") is None

            report = await orch.resume("u1", step.session.category)
            assert [i.title for i in report.added] == ["B"]
            assert [i.title for i in report.replaced] == ["A"]
            assert (await orch.aggregates.get("b")).rating_count == 1

            again = await orch.resume("u1", step.session.category)
            assert (again.added, again.replaced) == ([], [])
            assert (await orch.aggregates.get("b")).rating_count == 1
            await assert_ledger_consistent(orch, ["u1"])

        asyncio.run(scenario())

    def test_second_copy_takes_over_the_contribution(self, orch):
        async def scenario():
            await orch.insert_new("u1", movie("A", "a"), always(Pick.NEW))
            step = await orch.start("u1", movie("X", "x"))

            # Another device placed and counted the same content meanwhile.
            copy = movie("X elsewhere", "x")
            copy.placed = True
            copy.score = 7.0
            await orch.ratings.save_item("u1", copy)
            stamp = ContributionStamp("u1", copy.id, expected=None, counted=7.0, state=RatingState.COMMITTED)
            await orch.aggregates.add_rating("x", 7.0, stamp=stamp)

            step = await orch.compare(step.session.session_id, Pick.NEW)
            assert step.result.item.score == pytest.approx(10.0)
            record = await orch.aggregates.get("x")
            assert (record.rating_count, record.total_score) == (1, pytest.approx(10.0))
            assert (await orch.ratings.get_item("u1", copy.id)).community_score is None

            report = await orch.resume("u1", step.session.category)
            assert [i.id for i in report.retired_duplicates] == [copy.id]
            assert (await orch.aggregates.get("x")).rating_count == 1
            await assert_ledger_consistent(orch, ["u1"])

        asyncio.run(scenario())

    def test_resume_retires_collapsed_duplicates(self, docs, orch):
        async def scenario():
            await orch.insert_new("u1", movie("A", "a"), always(Pick.NEW))
            stray = movie("A copy", "a")
            stray.placed = True
            stray.score = 7.0
            await orch.ratings.save_item("u1", stray)

            report = await orch.resume("u1", stray.category)
            assert [i.id for i in report.retired_duplicates] == [stray.id]
            assert await orch.ratings.get_item("u1", stray.id) is None
            await assert_ledger_consistent(orch, ["u1"])

        asyncio.run(scenario())


class TestListeners:
    def test_sync_async_and_failing_listeners(self, orch):
        seen = []

        def record(event):
            seen.append(("sync", event.kind, event.item.title))

        async def record_async(event):
            seen.append(("async", event.kind, event.item.title))

        def explode(event):
            raise RuntimeError("listener down")

        orch.add_listener(explode)
        orch.add_listener(record)
        orch.add_listener(record_async)

        async def scenario():
            a = await orch.insert_new("u1", movie("A", "a"), always(Pick.NEW))
            await orch.delete("u1", a.item.id)

        asyncio.run(scenario())
        assert seen == [
            ("sync", "rated", "A"),
            ("async", "rated", "A"),
            ("sync", "deleted", "A"),
            ("async", "deleted", "A"),
        ]
