"""
Sentinel Tier Catalog

Static classification of the security tiers a checkpoint can request.

Each tier maps to exactly one policy class:
- open: unconditional entry
- invitation-gated: entry requires an active invitation or staff status
- approval-gated: entry requires a persisted clearance or operator review

Tiers are fixed at configuration time. They are never created or destroyed
while the engine is running.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class Tier(str, Enum):
    """Security tiers, in ascending order of restriction."""
    GREEN = "GREEN"
    ORANGE = "ORANGE"
    RED_1 = "RED_1"
    RED_2 = "RED_2"


class PolicyClass(str, Enum):
    """Policy applied to entry requests for a tier."""
    OPEN = "OPEN"
    INVITATION_GATED = "INVITATION_GATED"
    APPROVAL_GATED = "APPROVAL_GATED"


class DestinationType(str, Enum):
    GENERAL = "GENERAL"
    RESTRICTED = "RESTRICTED"


class UnknownTierError(ValueError):
    """Raised when a tier outside the configured set is requested."""

    def __init__(self, tier: Any):
        self.tier = tier
        super().__init__(f"Unknown security tier: {tier!r}")


DEFAULT_POLICY: Dict[Tier, PolicyClass] = {
    Tier.GREEN: PolicyClass.OPEN,
    Tier.ORANGE: PolicyClass.INVITATION_GATED,
    Tier.RED_1: PolicyClass.APPROVAL_GATED,
    Tier.RED_2: PolicyClass.APPROVAL_GATED,
}

PUBLIC_LABELS: Dict[Tier, str] = {
    Tier.GREEN: "General Access",
    Tier.ORANGE: "Verified Tower Access",
    Tier.RED_1: "NLDC Building Access",
    Tier.RED_2: "CEO Office Access",
}

ACCESS_GUIDANCE: Dict[Tier, str] = {
    Tier.GREEN: "Proceed to general areas. Standard entry is always allowed.",
    Tier.ORANGE: "Proceed to Platinum Towers (A-D). Access is active based on your invitation.",
    Tier.RED_1: "Proceed to NLDC Building. Verification required at building perimeter.",
    Tier.RED_2: "Proceed to Tower A Level 17/18. Management clearance required.",
}

PENDING_GUIDANCE = (
    "Your access is currently Pending. Please wait for security approval "
    "or visit the operator desk."
)


@dataclass(frozen=True)
class Location:
    """A named destination and the tier that guards it."""
    name: str
    concealed_name: str
    destination_type: DestinationType
    tier: Tier

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "concealed_name": self.concealed_name,
            "destination_type": self.destination_type.value,
            "tier": self.tier.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Location":
        return cls(
            name=data["name"],
            concealed_name=data.get("concealed_name", data["name"]),
            destination_type=DestinationType(data.get("destination_type", "GENERAL")),
            tier=resolve_tier(data["tier"]),
        )


LOCATIONS: List[Location] = [
    Location("General Meeting Room A", "General Purpose Area A", DestinationType.GENERAL, Tier.GREEN),
    Location("General Meeting Room B", "General Purpose Area B", DestinationType.GENERAL, Tier.GREEN),
    Location("Cafeteria", "Dining Hall", DestinationType.GENERAL, Tier.GREEN),
    Location("Tower A - Platinum", "Verified Tower Zone", DestinationType.RESTRICTED, Tier.ORANGE),
    Location("Tower B - Platinum", "Verified Tower Zone", DestinationType.RESTRICTED, Tier.ORANGE),
    Location("CEO Office (Tower A L17/18)", "High-Security Management Suite", DestinationType.RESTRICTED, Tier.RED_2),
    Location("NLDC Building", "System Control Center", DestinationType.RESTRICTED, Tier.RED_1),
    Location("Public Sports Facility", "General Activity Area", DestinationType.GENERAL, Tier.GREEN),
]


def resolve_tier(value: Union[Tier, str]) -> Tier:
    """Coerce a tier name into a Tier, raising UnknownTierError otherwise."""
    if isinstance(value, Tier):
        return value
    if isinstance(value, str):
        try:
            return Tier(value.strip().upper())
        except ValueError:
            pass
    raise UnknownTierError(value)


class TierCatalog:
    """
    Fixed mapping of tiers to policy classes.

    Usage:
        catalog = TierCatalog()
        catalog.classify(Tier.ORANGE)   # PolicyClass.INVITATION_GATED
        catalog.classify("PURPLE")      # raises UnknownTierError
    """

    def __init__(
        self,
        policy: Optional[Dict[Tier, PolicyClass]] = None,
        locations: Optional[List[Location]] = None
    ):
        policy = dict(policy if policy is not None else DEFAULT_POLICY)
        for tier, policy_class in policy.items():
            if not isinstance(tier, Tier):
                raise UnknownTierError(tier)
            if not isinstance(policy_class, PolicyClass):
                raise ValueError(f"Invalid policy class for {tier.value}: {policy_class!r}")
        self._policy = policy
        self._locations = list(locations if locations is not None else LOCATIONS)
        for location in self._locations:
            if location.tier not in self._policy:
                raise UnknownTierError(location.tier)

    def resolve(self, value: Union[Tier, str]) -> Tier:
        """Resolve a tier name against this catalog."""
        tier = resolve_tier(value)
        if tier not in self._policy:
            raise UnknownTierError(value)
        return tier

    def classify(self, tier: Union[Tier, str]) -> PolicyClass:
        """Return the policy class for a tier. Pure; no side effects."""
        return self._policy[self.resolve(tier)]

    def tiers(self) -> List[Tier]:
        """Configured tiers in ascending order of restriction."""
        order = list(Tier)
        return sorted(self._policy, key=order.index)

    def locations(self) -> List[Location]:
        return list(self._locations)

    def tier_for_location(self, name: str) -> Tier:
        """Look up the tier guarding a named destination."""
        for location in self._locations:
            if location.name == name:
                return location.tier
        raise KeyError(f"Unknown location: {name}")


def display_label(tier: Union[Tier, str], privileged: bool = False) -> str:
    """
    Badge label for a tier.

    Staff and administrators see the raw tier name; visitors see
    the public label.
    """
    tier = resolve_tier(tier)
    if privileged:
        return tier.value.replace("_", " ")
    return PUBLIC_LABELS.get(tier, "Basic Access")


def access_guidance(tier: Union[Tier, str], pending: bool = False) -> str:
    """Instruction text shown with a verdict."""
    if pending:
        return PENDING_GUIDANCE
    return ACCESS_GUIDANCE.get(resolve_tier(tier), "Proceed to the main security checkpoint.")
