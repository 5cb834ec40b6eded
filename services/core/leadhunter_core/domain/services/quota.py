"""Subscription tier limits.

Maps a tenant's tier to how much hunting it may do: how many subreddits
are searched, how many posts may be scanned per day, the minimum
qualification score (0-100), and whether the background cycle runs at all.
"""

from dataclasses import dataclass
from typing import Optional

from leadhunter_core.domain.models import SubscriptionTier


@dataclass(frozen=True)
class TierLimits:
    """Limits for one subscription tier.

    Attributes:
        tier: Tier name the limits were resolved for.
        subreddits: Max subreddits searched per run.
        posts_per_day: Max posts scanned per day, None for unlimited.
        min_score: Minimum qualification score on the 0-100 scale.
        background_hunting: Whether the scheduled cycle processes the tenant.
    """

    tier: str
    subreddits: int
    posts_per_day: Optional[int]
    min_score: int
    background_hunting: bool

    @property
    def unlimited(self) -> bool:
        return self.posts_per_day is None

    def remaining_posts(self, scanned_today: int) -> Optional[int]:
        """Posts still allowed today, or None when unlimited."""
        if self.posts_per_day is None:
            return None
        return max(0, self.posts_per_day - scanned_today)


TIER_LIMITS: dict[str, TierLimits] = {
    SubscriptionTier.FREE: TierLimits(
        tier=SubscriptionTier.FREE,
        subreddits=1,
        posts_per_day=10,
        min_score=80,
        background_hunting=False,
    ),
    SubscriptionTier.BASIC: TierLimits(
        tier=SubscriptionTier.BASIC,
        subreddits=3,
        posts_per_day=25,
        min_score=70,
        background_hunting=True,
    ),
    SubscriptionTier.PLUS: TierLimits(
        tier=SubscriptionTier.PLUS,
        subreddits=9,
        posts_per_day=100,
        min_score=60,
        background_hunting=True,
    ),
    SubscriptionTier.PRO: TierLimits(
        tier=SubscriptionTier.PRO,
        subreddits=15,
        posts_per_day=None,
        min_score=50,
        background_hunting=True,
    ),
}


def limits_for(tier: Optional[str]) -> TierLimits:
    """Resolve limits for a tier; unknown tiers get the free tier's limits."""
    if tier is None:
        return TIER_LIMITS[SubscriptionTier.FREE]
    return TIER_LIMITS.get(tier.strip().lower(), TIER_LIMITS[SubscriptionTier.FREE])


__all__ = ["TIER_LIMITS", "TierLimits", "limits_for"]
