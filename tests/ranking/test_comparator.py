"""Comparator: binary search bounds, termination, too-close, candidate selection, checkpoints."""

import math

import pytest

from ranking.models import Category, RatedItem, Sentiment
from ranking.stages import Comparator, Pick, select_candidates


def _item(title, tier=Sentiment.LIKED, category=Category.MOVIE, external_id=None, **kw):
    return RatedItem(title=title, tier=tier, category=category, external_id=external_id, **kw)


def _run_oracle(n, target):
    """Place a new item whose true 0-indexed position among n candidates is `target`."""
    candidates = [_item(f"c{i}") for i in range(n)]
    subject = _item("new")
    comparator = Comparator(subject, candidates)
    while not comparator.finished:
        index = candidates.index(comparator.current)
        comparator.compare(Pick.EXISTING if index < target else Pick.NEW)
    return comparator


class TestComparator:
    @pytest.mark.parametrize("n", list(range(0, 18)) + [31, 32, 33, 100])
    def test_finds_true_rank_within_log_bound(self, n):
        bound = math.ceil(math.log2(n + 1))
        for target in range(n + 1):
            comparator = _run_oracle(n, target)
            assert comparator.final_rank == target + 1
            assert comparator.comparisons <= bound

    def test_decisions_respect_existing_wins_ordering(self):
        comparator = _run_oracle(9, 4)
        ids = [c.id for c in comparator.candidates]
        for winner, loser in comparator.decisions:
            if winner == comparator.subject.id:
                # new item ranks above the loser
                assert ids.index(loser) >= comparator.final_rank - 1
            else:
                assert ids.index(winner) < comparator.final_rank - 1

    def test_empty_tier_needs_no_comparison(self):
        comparator = Comparator(_item("only"), [])
        assert comparator.finished
        assert comparator.final_rank == 1
        assert comparator.current is None

    def test_too_close_places_one_below_compared(self):
        candidates = [_item(f"c{i}") for i in range(3)]
        comparator = Comparator(_item("new"), candidates)
        assert comparator.current is candidates[1]
        assert comparator.compare(Pick.TOO_CLOSE) == 3
        assert comparator.finished
        assert comparator.decisions == []

    def test_single_candidate_new_wins(self):
        a = _item("A")
        comparator = Comparator(_item("B"), [a])
        assert comparator.compare(Pick.NEW) == 1

    def test_compare_after_finish_raises(self):
        comparator = Comparator(_item("only"), [])
        with pytest.raises(ValueError):
            comparator.compare(Pick.NEW)

    def test_pick_accepts_string_values(self):
        comparator = Comparator(_item("B"), [_item("A")])
        assert comparator.compare("existing") == 2


class TestSelectCandidates:
    def test_same_tier_and_category_only(self):
        items = [
            _item("liked movie"),
            _item("neutral movie", tier=Sentiment.NEUTRAL),
            _item("liked show", category=Category.SHOW),
        ]
        subject = _item("new")
        assert [c.title for c in select_candidates(items, subject)] == ["liked movie"]

    def test_never_compares_against_itself(self):
        subject = _item("new", external_id="tt1")
        twin = _item("same content", external_id="tt1")
        items = [subject, twin, _item("other", external_id="tt2")]
        assert [c.title for c in select_candidates(items, subject)] == ["other"]

    def test_rerank_excludes_prior_by_identity_and_external_id(self):
        prior = _item("prior", external_id="tt9")
        stale_copy = _item("stale copy", external_id="tt9")
        other = _item("other", external_id="tt2")
        subject = _item("rerank", external_id=None)
        result = select_candidates([prior, stale_copy, other], subject, exclude=prior)
        assert result == [other]


class TestCheckpoint:
    def test_restore_resumes_bounds(self):
        candidates = [_item(f"c{i}") for i in range(7)]
        subject = _item("new")
        comparator = Comparator(subject, candidates)
        comparator.compare(Pick.EXISTING)
        saved = comparator.checkpoint()

        restored = Comparator.restore(subject, candidates, saved)
        assert (restored.low, restored.high, restored.mid) == (comparator.low, comparator.high, comparator.mid)
        assert restored.comparisons == 1
        assert restored.current is comparator.current

    def test_restore_with_changed_candidates_starts_over(self):
        candidates = [_item(f"c{i}") for i in range(4)]
        subject = _item("new")
        comparator = Comparator(subject, candidates)
        comparator.compare(Pick.NEW)
        saved = comparator.checkpoint()

        restored = Comparator.restore(subject, candidates + [_item("late")], saved)
        assert restored.comparisons == 0
        assert restored.low == 0 and restored.high == 4

    def test_checkpoint_round_trips_through_json(self):
        comparator = Comparator(_item("B"), [_item("A")])
        comparator.compare(Pick.NEW)
        saved = comparator.checkpoint()
        again = type(saved).model_validate(saved.model_dump(mode="json"))
        assert again.final_rank == 1
        assert [tuple(d) for d in again.decisions] == comparator.decisions
