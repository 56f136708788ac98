"""
stakepool - Tier Table

Static reward tiers of a pool. Every pool carries exactly three tiers; their
economic terms (stake, duration, reward) never change after `initialize`,
only the slot counters move.

Tier selectors:
    TIER_500  = 0  ("tier500")
    TIER_1000 = 1  ("tier1000")
    TIER_1500 = 2  ("tier1500")
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Union

from .errors import ArithmeticOverflow, InvalidInstructionData, InvalidRewardTier
from .u64 import check_u64, checked_add, checked_sub

TIER_COUNT = 3


class Tier(Enum):
    """Tier selector (index into Pool.tiers and User.stakes)."""
    TIER_500 = 0
    TIER_1000 = 1
    TIER_1500 = 2

    @property
    def wire_name(self) -> str:
        return "tier" + self.name.split("_")[1]

    @classmethod
    def parse(cls, value: Union["Tier", int, str, dict]) -> "Tier":
        """
        Parse a tier selector.

        Accepts a Tier, its index, its wire name ("tier1000"), its enum name
        ("TIER_1000") or the variant object form ({"tier1000": {}}).
        """
        if isinstance(value, Tier):
            return value
        if isinstance(value, dict) and len(value) == 1:
            value = next(iter(value))
        if isinstance(value, int) and not isinstance(value, bool):
            try:
                return cls(value)
            except ValueError:
                raise InvalidInstructionData(f"unknown tier index {value}")
        if isinstance(value, str):
            for tier in cls:
                if value in (tier.wire_name, tier.name) or value.lower() == tier.wire_name:
                    return tier
        raise InvalidInstructionData(f"unknown tier {value!r}")


@dataclass
class RewardTier:
    """
    Settings and slot counters of one tier.

    Fields:
      - supply: total number of stakes ever sellable (capacity)
      - slots: unsold capacity, decremented per stake, never replenished
      - completed: stakes in this tier that were unstaked
      - stake: principal per stake
      - duration: lock duration in seconds
      - reward: total reward paid over the lock duration
    """
    supply: int
    slots: int
    stake: int
    duration: int
    reward: int
    completed: int = 0

    def check(self) -> bool:
        """Validate a freshly configured tier."""
        return (
            self.supply > 0
            and self.slots == self.supply
            and self.completed == 0
            and self.stake > 0
            and self.duration > 0
            and self.reward > 0
        )

    @property
    def sold(self) -> int:
        return self.supply - self.slots

    @property
    def active(self) -> int:
        """Stakes sold and not yet unstaked."""
        return self.sold - self.completed

    def is_settled(self) -> bool:
        return self.sold == self.completed

    def use_slot(self):
        self.slots = checked_sub(self.slots, 1)

    def complete(self):
        if self.completed >= self.sold:
            raise ArithmeticOverflow("more completed stakes than sold")
        self.completed += 1

    def locked_until(self, now: int) -> int:
        return checked_add(now, self.duration)

    def to_dict(self) -> dict:
        return {
            "supply": self.supply,
            "slots": self.slots,
            "completed": self.completed,
            "stake": self.stake,
            "duration": self.duration,
            "reward": self.reward,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RewardTier":
        try:
            supply = check_u64(data["supply"], "supply")
            return cls(
                supply=supply,
                slots=check_u64(data.get("slots", supply), "slots"),
                stake=check_u64(data["stake"], "stake"),
                duration=check_u64(data["duration"], "duration"),
                reward=check_u64(data["reward"], "reward"),
                completed=check_u64(data.get("completed", 0), "completed"),
            )
        except (KeyError, TypeError, ArithmeticOverflow) as e:
            raise InvalidRewardTier(str(e))


def parse_tiers(tiers: List[Union[RewardTier, dict]]) -> List[RewardTier]:
    """
    Parse and validate the tier table passed to `initialize`.

    Raises:
        InvalidRewardTier: wrong tier count or any tier failing `check()`
    """
    if not isinstance(tiers, (list, tuple)) or len(tiers) != TIER_COUNT:
        raise InvalidRewardTier(f"expected {TIER_COUNT} tiers")

    result = [t if isinstance(t, RewardTier) else RewardTier.from_dict(t) for t in tiers]
    for idx, tier in enumerate(result):
        if not tier.check():
            raise InvalidRewardTier(f"tier {idx}: {tier.to_dict()}")
    return result
