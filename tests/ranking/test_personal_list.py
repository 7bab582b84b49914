"""Personal List Manager: tier partition, clamped insertion, recompute diffs, load normalisation."""

import pytest

from ranking.models import RatedItem, Sentiment
from ranking.stages import PersonalList, collapse_duplicates

LIKED, NEUTRAL, DISLIKED = Sentiment.LIKED, Sentiment.NEUTRAL, Sentiment.DISLIKED


def _item(title, tier=LIKED, score=0.0, external_id=None):
    return RatedItem(title=title, tier=tier, score=score, external_id=external_id)


def _titles(plist):
    return [i.title for i in plist]


@pytest.fixture
def mixed_list():
    plist = PersonalList()
    for title, tier in [("L1", LIKED), ("L2", LIKED), ("N1", NEUTRAL), ("D1", DISLIKED), ("D2", DISLIKED)]:
        plist.insert(_item(title, tier), rank=99)
    plist.recompute_all()
    return plist


class TestInsert:
    def test_first_item_goes_to_index_zero(self):
        plist = PersonalList()
        assert plist.insert(_item("A"), 1) == 0
        assert _titles(plist) == ["A"]

    def test_rank_one_is_section_top(self, mixed_list):
        mixed_list.insert(_item("N0", NEUTRAL), 1)
        assert _titles(mixed_list) == ["L1", "L2", "N0", "N1", "D1", "D2"]

    def test_rank_is_clamped_to_section_length(self, mixed_list):
        mixed_list.insert(_item("L9", LIKED), 50)
        assert _titles(mixed_list) == ["L1", "L2", "L9", "N1", "D1", "D2"]

    def test_rank_below_one_is_section_top(self, mixed_list):
        mixed_list.insert(_item("D0", DISLIKED), 0)
        assert _titles(mixed_list)[3] == "D0"

    def test_absent_tier_lands_between_neighbours(self):
        plist = PersonalList([_item("L1", LIKED), _item("D1", DISLIKED)])
        plist.insert(_item("N1", NEUTRAL), 1)
        assert _titles(plist) == ["L1", "N1", "D1"]
        plist.recompute_all()
        assert plist.violations() == []

    def test_partition_holds_after_many_inserts(self):
        plist = PersonalList()
        tiers = [LIKED, DISLIKED, NEUTRAL, LIKED, DISLIKED, NEUTRAL, NEUTRAL, LIKED]
        for i, tier in enumerate(tiers):
            plist.insert(_item(f"x{i}", tier), rank=(i % 3) + 1)
        plist.recompute_all()
        assert plist.violations() == []
        positions = [i.tier.position for i in plist]
        assert positions == sorted(positions)


class TestRecompute:
    def test_insert_above_demotes_existing(self):
        plist = PersonalList()
        a = _item("A")
        plist.insert(a, 1)
        plist.recompute_tier(LIKED)
        assert a.score == pytest.approx(8.45)

        b = _item("B", score=8.45)
        plist.insert(b, 1)
        changes = plist.recompute_tier(LIKED)
        assert b.score == pytest.approx(9.225)
        assert a.score == pytest.approx(7.675)
        by_title = {c.item.title: c for c in changes}
        assert by_title["A"].old_score == pytest.approx(8.45)
        assert by_title["A"].new_score == pytest.approx(7.675)
        assert by_title["B"].delta == pytest.approx(0.775)

    def test_unchanged_scores_are_not_reported(self, mixed_list):
        assert mixed_list.recompute_all() == []

    def test_other_tiers_untouched(self, mixed_list):
        before = {i.title: i.score for i in mixed_list if i.tier != LIKED}
        mixed_list.insert(_item("L0"), 1)
        changes = mixed_list.recompute_tier(LIKED)
        assert {c.item.tier for c in changes} == {LIKED}
        assert {i.title: i.score for i in mixed_list if i.tier != LIKED} == before

    def test_delete_then_recompute(self, mixed_list):
        removed = mixed_list.delete(mixed_list.items[0].id)
        assert removed.title == "L1"
        changes = mixed_list.recompute_tier(removed.tier)
        assert [c.item.title for c in changes] == ["L2"]
        assert mixed_list.items[0].score == pytest.approx(8.45)

    def test_delete_unknown_returns_none(self, mixed_list):
        assert mixed_list.delete("missing") is None

    def test_record_comparison_same_tier_only(self, mixed_list):
        l1, l2, n1 = mixed_list.items[0], mixed_list.items[1], mixed_list.items[2]
        assert mixed_list.record_comparison(l1.id, l2.id)
        assert (l1.comparisons_count, l2.comparisons_count) == (1, 1)
        assert not mixed_list.record_comparison(l1.id, n1.id)
        assert n1.comparisons_count == 0


class TestLoadNormalisation:
    def test_from_stored_orders_tier_major_score_descending(self):
        stored = [
            _item("D", DISLIKED, 1.0),
            _item("L-low", LIKED, 7.0),
            _item("N", NEUTRAL, 5.0),
            _item("L-high", LIKED, 9.5),
        ]
        plist, dropped = PersonalList.from_stored(stored)
        assert _titles(plist) == ["L-high", "L-low", "N", "D"]
        assert dropped == []

    def test_duplicates_keep_highest_score(self):
        low = _item("Heat", LIKED, 7.0, external_id="tt1")
        high = _item("Heat", LIKED, 9.0, external_id="tt1")
        kept, dropped = collapse_duplicates([low, _item("other", external_id="tt2"), high])
        assert high in kept and low not in kept
        assert dropped == [low]

    def test_items_without_external_id_are_never_collapsed(self):
        kept, dropped = collapse_duplicates([_item("a"), _item("a")])
        assert len(kept) == 2 and dropped == []

    def test_violations_detects_out_of_order_scores(self):
        plist = PersonalList([_item("A", LIKED, 7.0), _item("B", LIKED, 9.0)])
        assert any("strictly decreasing" in v for v in plist.violations())
