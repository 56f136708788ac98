"""
stakepool - Account Records

Pool and User records as they are persisted in the account store. Records are
plain dataclasses; an instruction loads them from the store, mutates its local
copy and writes them back inside its transaction.
"""

from dataclasses import dataclass, field
from typing import List
import json

from .errors import ArithmeticOverflow, InvalidInstructionData
from .stake_ledger import NoStake, StakeStatus, StakeState
from .tiers import RewardTier, TIER_COUNT, Tier
from .u64 import check_u64, checked_add, saturating_sub

POOL_KIND = "pool"
USER_KIND = "user"


@dataclass
class Metrics:
    """Pool-wide reward accounting"""
    reward_requirements: int = 0    # reward committed by opened stakes
    reward_paid: int = 0            # reward actually disbursed

    @property
    def outstanding(self) -> int:
        """Reward committed to open stakes and not yet paid."""
        return saturating_sub(self.reward_requirements, self.reward_paid)

    def stake(self, reward: int):
        self.reward_requirements = checked_add(self.reward_requirements, reward)

    def claim(self, amount: int):
        paid = checked_add(self.reward_paid, amount)
        if paid > self.reward_requirements:
            raise ArithmeticOverflow(
                f"reward paid {paid} exceeds requirements {self.reward_requirements}")
        self.reward_paid = paid

    def to_dict(self) -> dict:
        return {
            "reward_requirements": self.reward_requirements,
            "reward_paid": self.reward_paid,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Metrics":
        return cls(
            reward_requirements=check_u64(data.get("reward_requirements", 0)),
            reward_paid=check_u64(data.get("reward_paid", 0)),
        )


@dataclass
class Pool:
    """
    Staking pool record.

    Structure:
      - authority: administrative signer
      - funder: wallet that paid for the pool (informational)
      - mint: token type staked and rewarded
      - pool_signer: derived authority owning both vaults
      - vault / reward_vault: derived custody token accounts
      - paused: every user action restricted
      - closed: new users and new stakes restricted
      - tiers: the three reward tiers
      - metrics: reward committed vs. paid
    """
    authority: str
    funder: str
    mint: str
    pool_signer: str
    vault: str
    reward_vault: str
    tiers: List[RewardTier]
    paused: bool = False
    closed: bool = False
    metrics: Metrics = field(default_factory=Metrics)

    def tier(self, tier: Tier) -> RewardTier:
        return self.tiers[tier.value]

    def to_dict(self) -> dict:
        return {
            "authority": self.authority,
            "funder": self.funder,
            "mint": self.mint,
            "pool_signer": self.pool_signer,
            "vault": self.vault,
            "reward_vault": self.reward_vault,
            "paused": self.paused,
            "closed": self.closed,
            "tiers": [t.to_dict() for t in self.tiers],
            "metrics": self.metrics.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Pool":
        tiers = [RewardTier.from_dict(t) for t in data["tiers"]]
        if len(tiers) != TIER_COUNT:
            raise InvalidInstructionData("pool record must hold 3 tiers")
        return cls(
            authority=data["authority"],
            funder=data.get("funder", ""),
            mint=data["mint"],
            pool_signer=data["pool_signer"],
            vault=data["vault"],
            reward_vault=data["reward_vault"],
            paused=bool(data.get("paused", False)),
            closed=bool(data.get("closed", False)),
            tiers=tiers,
            metrics=Metrics.from_dict(data.get("metrics", {})),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


@dataclass
class User:
    """Per-(pool, authority) record holding one stake status per tier."""
    pool: str
    authority: str
    stakes: List[StakeStatus] = field(
        default_factory=lambda: [NoStake() for _ in range(TIER_COUNT)])

    def stake_status(self, tier: Tier) -> StakeStatus:
        return self.stakes[tier.value]

    def has_staking(self) -> bool:
        return any(s.state is StakeState.STAKING for s in self.stakes)

    def to_dict(self) -> dict:
        return {
            "pool": self.pool,
            "authority": self.authority,
            "stakes": [s.to_dict() for s in self.stakes],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "User":
        stakes = [StakeStatus.from_dict(s) for s in data.get("stakes", [])]
        if len(stakes) != TIER_COUNT:
            raise InvalidInstructionData("user record must hold 3 stakes")
        return cls(pool=data["pool"], authority=data["authority"], stakes=stakes)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)
