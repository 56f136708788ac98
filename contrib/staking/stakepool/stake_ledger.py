"""
stakepool - Stake Ledger

Per-tier stake status of a user. Each tier slot is an independent state
machine that only moves forward:

    None ──stake──▶ Staking ──claim (final)──▶ Ready ──unstake──▶ Used

A slot accepts a stake only from None, so a user stakes a tier at most once.

Reward accrual is linear in elapsed time. A partial claim pays
floor(reward * elapsed / duration), capped at the unpaid remainder; a claim at
or after `locked_until` pays exactly the remainder, so the claims of one stake
always sum to `tier.reward`.
"""

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Tuple

from .errors import (
    InvalidInstructionData,
    NoStakeInTier,
    PendingReward,
    TierAlreadyUsed,
    TimeLockNotPassed,
)
from .tiers import RewardTier
from .u64 import check_u64, checked_add, checked_sub, mul_div_floor


class StakeState(Enum):
    """Stake status discriminator"""
    NONE = "none"
    STAKING = "staking"
    READY = "ready"
    USED = "used"


@dataclass(frozen=True)
class StakeStatus:
    """Base of the stake status variants. Only Staking carries a payload."""
    state: ClassVar[StakeState] = StakeState.NONE

    def is_none(self) -> bool:
        return self.state is StakeState.NONE

    def is_active(self) -> bool:
        """Staking or Ready: the pool still owes this user something."""
        return self.state in (StakeState.STAKING, StakeState.READY)

    def to_dict(self) -> dict:
        return {"state": self.state.value}

    @staticmethod
    def from_dict(data: dict) -> "StakeStatus":
        try:
            state = StakeState(data["state"])
        except (KeyError, ValueError, TypeError):
            raise InvalidInstructionData(f"bad stake status {data!r}")

        if state is StakeState.STAKING:
            return Staking(
                amount_staked=check_u64(data["amount_staked"], "amount_staked"),
                last_claimed=check_u64(data["last_claimed"], "last_claimed"),
                locked_until=check_u64(data["locked_until"], "locked_until"),
                reward_paid=check_u64(data.get("reward_paid", 0), "reward_paid"),
            )
        return _UNIT_VARIANTS[state]


@dataclass(frozen=True)
class NoStake(StakeStatus):
    state: ClassVar[StakeState] = StakeState.NONE


@dataclass(frozen=True)
class Staking(StakeStatus):
    state: ClassVar[StakeState] = StakeState.STAKING

    amount_staked: int
    last_claimed: int
    locked_until: int
    reward_paid: int = 0

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "amount_staked": self.amount_staked,
            "last_claimed": self.last_claimed,
            "locked_until": self.locked_until,
            "reward_paid": self.reward_paid,
        }


@dataclass(frozen=True)
class Ready(StakeStatus):
    state: ClassVar[StakeState] = StakeState.READY


@dataclass(frozen=True)
class Used(StakeStatus):
    state: ClassVar[StakeState] = StakeState.USED


_UNIT_VARIANTS = {
    StakeState.NONE: NoStake(),
    StakeState.READY: Ready(),
    StakeState.USED: Used(),
}


# ═══════════════════════════════════════════════════════════════════════════════
# TRANSITIONS
# ═══════════════════════════════════════════════════════════════════════════════

def open_stake(status: StakeStatus, tier: RewardTier, now: int) -> Staking:
    """
    None -> Staking.

    Raises:
        TierAlreadyUsed: the slot is not None
    """
    if not status.is_none():
        raise TierAlreadyUsed(status.state.value)
    return Staking(
        amount_staked=tier.stake,
        last_claimed=now,
        locked_until=tier.locked_until(now),
        reward_paid=0,
    )


def accrue(status: StakeStatus, tier: RewardTier, now: int) -> Tuple[int, StakeStatus]:
    """
    Compute the claimable reward of one slot at `now`.

    Returns:
        (amount, new_status). Slots that are not Staking return (0, status).
    """
    if not isinstance(status, Staking):
        return 0, status

    remaining = checked_sub(tier.reward, status.reward_paid)

    if now >= status.locked_until:
        return remaining, Ready()

    # Clock never runs backwards, but a stale last_claimed must not underflow.
    elapsed = now - status.last_claimed if now > status.last_claimed else 0
    amount = min(remaining, mul_div_floor(tier.reward, elapsed, tier.duration))

    if amount == remaining:
        return amount, Ready()

    return amount, Staking(
        amount_staked=status.amount_staked,
        last_claimed=now,
        locked_until=status.locked_until,
        reward_paid=checked_add(status.reward_paid, amount),
    )


def check_unstake(status: StakeStatus, now: int):
    """
    Guard for Ready -> Used.

    Raises:
        NoStakeInTier: slot is None or Used
        TimeLockNotPassed: Staking and still locked
        PendingReward: Staking, lock passed, final claim not executed
    """
    if status.state in (StakeState.NONE, StakeState.USED):
        raise NoStakeInTier(status.state.value)
    if isinstance(status, Staking):
        if status.locked_until > now:
            raise TimeLockNotPassed(f"locked until {status.locked_until}, now {now}")
        raise PendingReward()
