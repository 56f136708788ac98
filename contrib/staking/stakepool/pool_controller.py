"""
stakepool - Pool Controller

Pool-wide switches and fund accounting.

Two independent axes:
  - paused: every user action and every admin action except the pause
    toggles is rejected
  - closed: new users and new stakes are rejected; existing stakes can still
    be claimed and unstaked, and only a closed pool can be drained or freed
"""

from .accounts import Pool, User
from .errors import (
    PoolAlreadyClosed,
    PoolAlreadyOpen,
    PoolAlreadyPaused,
    PoolAlreadyUnpaused,
    PoolClosedForNewStaking,
    PoolHasToBeClosed,
    PoolPaused,
    Unauthorized,
    UserHasActiveStakes,
)
from .u64 import saturating_sub


class PoolController:
    """
    Lifecycle guards and transitions of one pool record.

    Usage:
        controller = PoolController(pool)
        controller.require_authority(signer)
        controller.close()
    """

    def __init__(self, pool: Pool):
        self.pool = pool

    # ═══════════════════════════════════════════════════════════════════════
    # GUARDS
    # ═══════════════════════════════════════════════════════════════════════

    def require_authority(self, authority: str):
        if self.pool.authority != authority:
            raise Unauthorized(f"{authority} is not {self.pool.authority}")

    def require_not_paused(self):
        if self.pool.paused:
            raise PoolPaused()

    def require_open(self):
        if self.pool.closed:
            raise PoolClosedForNewStaking()

    def require_closed(self):
        if not self.pool.closed:
            raise PoolHasToBeClosed()

    def require_drainable(self):
        """Withdrawal and teardown need a closed, running pool."""
        self.require_not_paused()
        self.require_closed()

    # ═══════════════════════════════════════════════════════════════════════
    # TRANSITIONS
    # ═══════════════════════════════════════════════════════════════════════

    def pause(self):
        if self.pool.paused:
            raise PoolAlreadyPaused()
        self.pool.paused = True

    def unpause(self):
        if not self.pool.paused:
            raise PoolAlreadyUnpaused()
        self.pool.paused = False

    def close(self):
        self.require_not_paused()
        if self.pool.closed:
            raise PoolAlreadyClosed()
        self.pool.closed = True

    def open(self):
        self.require_not_paused()
        if not self.pool.closed:
            raise PoolAlreadyOpen()
        self.pool.closed = False

    # ═══════════════════════════════════════════════════════════════════════
    # ACCOUNTING
    # ═══════════════════════════════════════════════════════════════════════

    def owed_reward(self) -> int:
        """Reward committed to open stakes and not yet paid."""
        return self.pool.metrics.outstanding

    def extra_reward(self, reward_vault_amount: int) -> int:
        """Reward vault surplus over what stakers are still owed."""
        return saturating_sub(reward_vault_amount, self.owed_reward())

    def expected_vault_amount(self) -> int:
        """Principal the vault must hold for stakes not yet unstaked."""
        return sum(tier.active * tier.stake for tier in self.pool.tiers)

    def extra_principal(self, vault_amount: int) -> int:
        """Vault balance above the principal of open stakes."""
        return saturating_sub(vault_amount, self.expected_vault_amount())

    def require_settled(self):
        """Every sold stake was unstaked."""
        for idx, tier in enumerate(self.pool.tiers):
            if not tier.is_settled():
                raise UserHasActiveStakes(f"tier {idx} has {tier.active} active stakes")

    @staticmethod
    def require_user_free(user: User):
        """No stake of the user is Staking or Ready."""
        for idx, status in enumerate(user.stakes):
            if status.is_active():
                raise UserHasActiveStakes(f"tier {idx} is {status.state.value}")
