"""Unit tests for subscription tier limits."""

import pytest

from leadhunter_core.domain.models import SubscriptionTier
from leadhunter_core.domain.services.quota import TIER_LIMITS, limits_for


class TestTierLimits:
    """Tests for the tier table."""

    @pytest.mark.parametrize(
        "tier,subreddits,posts_per_day,min_score,background",
        [
            (SubscriptionTier.FREE, 1, 10, 80, False),
            (SubscriptionTier.BASIC, 3, 25, 70, True),
            (SubscriptionTier.PLUS, 9, 100, 60, True),
            (SubscriptionTier.PRO, 15, None, 50, True),
        ],
    )
    def test_tier_values(self, tier, subreddits, posts_per_day, min_score, background):
        limits = TIER_LIMITS[tier]

        assert limits.subreddits == subreddits
        assert limits.posts_per_day == posts_per_day
        assert limits.min_score == min_score
        assert limits.background_hunting is background

    def test_pro_is_unlimited(self):
        limits = limits_for("pro")

        assert limits.unlimited is True
        assert limits.remaining_posts(10_000) is None

    def test_remaining_posts_never_negative(self):
        limits = limits_for("basic")

        assert limits.remaining_posts(0) == 25
        assert limits.remaining_posts(20) == 5
        assert limits.remaining_posts(40) == 0


class TestLimitsFor:
    """Tests for tier resolution."""

    def test_unknown_tier_falls_back_to_free(self):
        assert limits_for("enterprise").tier == SubscriptionTier.FREE

    def test_missing_tier_falls_back_to_free(self):
        assert limits_for(None).tier == SubscriptionTier.FREE

    def test_tier_name_is_normalized(self):
        assert limits_for("  PLUS ").tier == SubscriptionTier.PLUS
