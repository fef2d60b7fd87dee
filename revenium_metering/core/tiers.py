"""
Subscription tiers and cost multipliers.

Cost multipliers represent the effective discount of a Claude subscription
versus API pricing. Values are estimates based on fully consuming the monthly
token allotment: the Max 20x tier ($200 for roughly $2,500 of API-equivalent
usage) sets the baseline, other tiers are calculated proportionally.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class SubscriptionTier:
    """Display name and cost multiplier for one subscription tier."""
    name: str
    multiplier: float


@dataclass(frozen=True)
class TierTable:
    """Fixed table of supported subscription tiers."""
    tiers: Dict[str, SubscriptionTier]

    def get_tier(self, tier: str) -> SubscriptionTier:
        """Get a tier by its identifier.

        Args:
            tier: Tier identifier (e.g. "pro", "max_20x")

        Returns:
            SubscriptionTier for the identifier

        Raises:
            ValueError: If the tier is not supported
        """
        if tier not in self.tiers:
            raise ValueError(f"Unsupported subscription tier: {tier}")
        return self.tiers[tier]

    def identifiers(self) -> Tuple[str, ...]:
        return tuple(self.tiers)


TIER_TABLE = TierTable({
    "pro": SubscriptionTier(
        name="Pro (~$20 USD/month or local equivalent)",
        multiplier=0.16,  # $20 / $125
    ),
    "max_5x": SubscriptionTier(
        name="Max 5x (~$100 USD/month or local equivalent)",
        multiplier=0.16,  # $100 / $625
    ),
    "max_20x": SubscriptionTier(
        name="Max 20x (~$200 USD/month or local equivalent)",
        multiplier=0.08,  # $200 / $2,500
    ),
    "team_premium": SubscriptionTier(
        name="Team Premium (~$150 USD/seat or local equivalent)",
        multiplier=0.24,  # $150 / $625
    ),
    "enterprise": SubscriptionTier(
        name="Enterprise (custom)",
        multiplier=0.05,
    ),
    "api": SubscriptionTier(
        name="API (no subscription)",
        multiplier=1.0,
    ),
})

SUBSCRIPTION_TIERS = TIER_TABLE.identifiers()

# Used when neither an override nor a known tier is configured
DEFAULT_COST_MULTIPLIER = 0.08


def get_cost_multiplier(tier: str) -> float:
    """Get the cost multiplier for a subscription tier.

    Raises:
        ValueError: If the tier is not supported
    """
    return TIER_TABLE.get_tier(tier).multiplier


def resolve_cost_multiplier(
    override: Optional[float] = None,
    tier: Optional[str] = None
) -> float:
    """Resolve the cost multiplier sent with every payload.

    Precedence: explicit override (including 0) > tier multiplier > default.
    An unrecognised tier falls back to the default rather than failing.

    Args:
        override: Explicit multiplier from the configuration
        tier: Subscription tier identifier

    Returns:
        The multiplier to attach to payloads
    """
    if override is not None:
        return override
    if tier and tier in TIER_TABLE.tiers:
        return get_cost_multiplier(tier)
    return DEFAULT_COST_MULTIPLIER
