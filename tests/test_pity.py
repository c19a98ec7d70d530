import pytest

from db.database import ensure_user, transaction
from services.pity import PityTracker, has_completed_ten_draw, mark_ten_draw_completed
from services.rarity import Rarity

from conftest import USER


class TestPityRules:
    def test_forced_at_threshold(self):
        tracker = PityTracker(threshold=10)
        assert not tracker.is_forced(0)
        assert not tracker.is_forced(9)
        assert tracker.is_forced(10)

    def test_pity_targets_reset_the_counter(self):
        tracker = PityTracker(threshold=10)
        assert tracker.advance(7, Rarity.SSR) == 0
        assert tracker.advance(10, Rarity.LEGENDARY) == 0

    def test_misses_increment_the_counter(self):
        tracker = PityTracker(threshold=10)
        assert tracker.advance(0, Rarity.COMMON) == 1
        assert tracker.advance(9, Rarity.EPIC) == 10

    def test_forced_draws_target_ssr_or_better(self):
        assert PityTracker().forced_min_rank == Rarity.SSR.rank

    def test_draws_until_guarantee(self):
        tracker = PityTracker(threshold=10)
        assert tracker.draws_until_guarantee(0) == 10
        assert tracker.draws_until_guarantee(12) == 0

    def test_threshold_must_be_positive(self):
        with pytest.raises(ValueError):
            PityTracker(threshold=0)


class TestPityStorage:
    def test_counter_defaults_to_zero_and_is_per_banner(self, con, db_path):
        ensure_user(USER, db_path)
        tracker = PityTracker()
        with transaction(con):
            tracker.save(con, USER, "diamond-banner", 4)
            tracker.save(con, USER, "diamond-banner", 6)
        assert tracker.load(con, USER, "diamond-banner") == 6
        assert tracker.load(con, USER, "ticket-banner") == 0
        assert tracker.counters_for(con, USER) == {"diamond-banner": 6}

    def test_ten_draw_latch_flips_once(self, con, db_path):
        ensure_user(USER, db_path)
        assert not has_completed_ten_draw(con, USER)
        with transaction(con):
            assert mark_ten_draw_completed(con, USER) is True
        with transaction(con):
            assert mark_ten_draw_completed(con, USER) is False
        assert has_completed_ten_draw(con, USER)
