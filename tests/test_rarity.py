import pytest

from services.rarity import Rarity, min_pity_rank, ordered, pity_targets, total_percentage


class TestRarityTiers:
    """Tier ordering and the pity vocabulary."""

    def test_tiers_are_in_ascending_rank(self):
        tiers = ordered()
        assert tiers == (Rarity.COMMON, Rarity.RARE, Rarity.EPIC, Rarity.SSR, Rarity.LEGENDARY)
        assert [t.rank for t in tiers] == [1, 2, 3, 4, 5]

    def test_global_percentages_sum_to_100(self):
        assert total_percentage() == pytest.approx(100.0, abs=0.01)
        assert Rarity.COMMON.percentage == 60.0
        assert Rarity.LEGENDARY.percentage == 1.0

    def test_pity_targets_are_ssr_and_better(self):
        assert pity_targets() == (Rarity.SSR, Rarity.LEGENDARY)
        assert min_pity_rank() == Rarity.SSR.rank
        assert not Rarity.EPIC.is_pity_target

    def test_comparison_follows_rank(self):
        assert Rarity.COMMON < Rarity.SSR
        assert max(Rarity.EPIC, Rarity.LEGENDARY, Rarity.RARE) is Rarity.LEGENDARY


class TestRarityParse:
    def test_parse_is_case_insensitive(self):
        assert Rarity.parse("ssr") is Rarity.SSR
        assert Rarity.parse(" Legendary ") is Rarity.LEGENDARY
        assert Rarity.parse(Rarity.EPIC) is Rarity.EPIC

    def test_parse_rejects_unknown(self):
        with pytest.raises(ValueError):
            Rarity.parse("UR")

    def test_label_uses_presentation_metadata(self):
        assert Rarity.SSR.label == "⭐ SSR"
        assert Rarity.LEGENDARY.display_name == "Legendary"
