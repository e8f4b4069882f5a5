"""
Subscription tiers, statuses and per-tier usage quotas.
"""
from enum import Enum
from typing import Dict, Optional

from config.settings import PLAN_FREE, PLAN_PRO, PLAN_ENTERPRISE

UPGRADE_URL = "/subscription/upgrade"
MANAGE_URL = "/subscription/manage"

# Quota value meaning "no ceiling"
UNLIMITED = -1


class Tier(str, Enum):
    """
    Subscription tier, ordered by rank: free < pro < enterprise.
    """
    FREE = PLAN_FREE
    PRO = PLAN_PRO
    ENTERPRISE = PLAN_ENTERPRISE

    @property
    def rank(self) -> int:
        return _TIER_RANKS[self]

    @classmethod
    def coerce(cls, value: Optional[str], default: "Tier") -> "Tier":
        """Map a stored tier string to a Tier, falling back to ``default`` for unknown values."""
        try:
            return cls(value)
        except ValueError:
            return default

    def __lt__(self, other):
        if not isinstance(other, Tier):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Tier):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Tier):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Tier):
            return NotImplemented
        return self.rank >= other.rank


_TIER_RANKS = {Tier.FREE: 0, Tier.PRO: 1, Tier.ENTERPRISE: 2}


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    EXPIRED = "expired"
    INCOMPLETE = "incomplete"


USAGE_LIMITS: Dict[Tier, Dict[str, int]] = {
    Tier.FREE: {
        "projects": 3,
        "stories_per_month": 10,
        "images_per_month": 20,
        "exports_per_month": 5,
    },
    Tier.PRO: {
        "projects": 50,
        "stories_per_month": 200,
        "images_per_month": 500,
        "exports_per_month": 100,
    },
    Tier.ENTERPRISE: {
        "projects": UNLIMITED,
        "stories_per_month": UNLIMITED,
        "images_per_month": UNLIMITED,
        "exports_per_month": UNLIMITED,
    },
}


def usage_limit(tier: Optional[str], feature: str) -> Optional[int]:
    """Quota for ``feature`` on ``tier``; unknown tiers get the free quotas, unknown features None."""
    return USAGE_LIMITS[Tier.coerce(tier, default=Tier.FREE)].get(feature)


# Public plan catalogue served by GET /api/payments/plans (prices in cents)
SUBSCRIPTION_PLANS = {
    Tier.FREE.value: {
        "name": "Free",
        "price": 0,
        "features": {
            "projects": 3,
            "aiGenerations": 10,
            "exports": "watermarked",
            "support": "community",
        },
    },
    Tier.PRO.value: {
        "name": "Pro",
        "price": 1900,
        "features": {
            "projects": 50,
            "aiGenerations": 1000,
            "exports": "hd",
            "support": "email",
        },
    },
    Tier.ENTERPRISE.value: {
        "name": "Enterprise",
        "price": 9900,
        "features": {
            "projects": "unlimited",
            "aiGenerations": "unlimited",
            "exports": "hd",
            "support": "priority",
            "collaboration": True,
            "whiteLabel": True,
        },
    },
}
