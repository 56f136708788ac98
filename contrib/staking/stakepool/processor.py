"""
stakepool - Instruction Processor

The staking program. Each instruction reads the records it names from the
store, validates, computes the new state and writes it back; the runtime
wraps the call in a store transaction so that either every write and every
custody transfer lands or none does.

Validation order of every instruction:
  1. signature / authority
  2. pause
  3. closed (createUser, stake, and the drain/teardown instructions)
  4. domain guards (status, slots, time lock, amounts)
  5. execute

Instructions:
  initialize(pool, authority, mint, payer, tiers, funder)   pool + authority + payer
  pause / unpause / close / open(pool, authority)           authority
  create_user(pool, authority)                              user authority
  stake(pool, authority, tier, source)                      user authority
  claim(pool, authority, destination)                       user authority
  unstake(pool, authority, tier, destination)               user authority
  free_user(pool, authority, user, receiver)                authority
  free_pool(pool, authority, receiver)                      authority
  withdraw_extra(pool, authority, destination)              authority
"""

import logging
from typing import List, Optional, Tuple

from .accounts import POOL_KIND, USER_KIND, Pool, User
from .addresses import (
    STAKING_PROGRAM_ID,
    mask_key,
    parse_address,
    pool_custody,
    user_address,
)
from .custody import TokenProgram
from .errors import (
    AccountNotFound,
    AmountMustBeGreaterThanZero,
    AmountMustBeZero,
    InvalidAccount,
    NoAvailableSlot,
    NoStakesForUser,
    OnlyExtraWithdrawAllowed,
)
from .events import (
    ClaimEvent,
    PoolStateEvent,
    StakeEvent,
    UnstakeEvent,
    UserEvent,
    WithdrawExtraEvent,
    payload,
)
from .pool_controller import PoolController
from .runtime import InstructionContext, Program
from .stake_ledger import StakeStatus, Used, accrue, check_unstake, open_stake
from .store import AccountStore
from .tiers import Tier, parse_tiers
from .u64 import checked_add

log = logging.getLogger(__name__)

DEFAULT_POOL_RENT = 2_853_120
DEFAULT_USER_RENT = 1_566_000


class StakingProgram(Program):
    """
    Tiered, time-locked staking pool program.

    Usage:
        token = TokenProgram(store)
        staking = StakingProgram(store, token)
        runtime.register(token)
        runtime.register(staking)
    """

    instructions = [
        "initialize",
        "pause",
        "unpause",
        "close",
        "open",
        "create_user",
        "stake",
        "claim",
        "unstake",
        "free_user",
        "free_pool",
        "withdraw_extra",
    ]

    def __init__(self, store: AccountStore, token: TokenProgram,
                 program_id: str = STAKING_PROGRAM_ID,
                 pool_rent: int = DEFAULT_POOL_RENT,
                 user_rent: int = DEFAULT_USER_RENT):
        self.store = store
        self.token = token
        self.program_id = program_id
        self.pool_rent = pool_rent
        self.user_rent = user_rent

    # ═══════════════════════════════════════════════════════════════════════
    # RECORD ACCESS
    # ═══════════════════════════════════════════════════════════════════════

    def load_pool(self, address: str) -> Pool:
        return Pool.from_dict(self.store.get(self.program_id, address, POOL_KIND))

    def save_pool(self, address: str, pool: Pool):
        self.store.put(self.program_id, address, POOL_KIND, pool.to_dict())

    def user_address(self, pool: str, authority: str) -> str:
        return user_address(pool, authority, self.program_id)

    def load_user(self, address: str) -> User:
        return User.from_dict(self.store.get(self.program_id, address, USER_KIND))

    def load_user_of(self, pool: str, authority: str) -> Tuple[str, User]:
        """
        Load the user record of (pool, authority).

        Raises:
            AccountNotFound: the authority has no user record in this pool
            InvalidAccount: the record belongs to another pool or authority
        """
        address = self.user_address(pool, authority)
        user = self.load_user(address)
        if user.pool != pool or user.authority != authority:
            raise InvalidAccount(f"user {address}")
        return address, user

    def save_user(self, address: str, user: User):
        self.store.put(self.program_id, address, USER_KIND, user.to_dict())

    def list_users(self, pool: str) -> List[Tuple[str, User]]:
        """All user records of a pool."""
        return [
            (address, User.from_dict(data))
            for address, data in self.store.list_records(
                self.program_id, USER_KIND, where=lambda d: d.get("pool") == pool)
        ]

    def _admin(self, ctx: InstructionContext, pool: str, authority: str) -> Tuple[str, str, Pool, PoolController]:
        """Signature + has_one(authority) check shared by admin instructions."""
        pool, authority = parse_address(pool, "pool"), parse_address(authority, "authority")
        ctx.require_signer(authority)
        record = self.load_pool(pool)
        controller = PoolController(record)
        controller.require_authority(authority)
        return pool, authority, record, controller

    def _user(self, ctx: InstructionContext, pool: str, authority: str) -> Tuple[str, str, Pool, PoolController]:
        pool, authority = parse_address(pool, "pool"), parse_address(authority, "authority")
        ctx.require_signer(authority)
        record = self.load_pool(pool)
        return pool, authority, record, PoolController(record)

    @staticmethod
    def _payout_destination(record: Pool, destination: str) -> str:
        """Tokens paid out of the pool may not land back in one of its vaults."""
        destination = parse_address(destination, "destination")
        if destination in (record.vault, record.reward_vault):
            raise InvalidAccount(f"destination {destination} is a pool vault")
        return destination

    @staticmethod
    def _emit(ctx: InstructionContext, event):
        ctx.emit(**payload(event))

    # ═══════════════════════════════════════════════════════════════════════
    # POOL LIFECYCLE
    # ═══════════════════════════════════════════════════════════════════════

    def ix_initialize(self, ctx: InstructionContext, pool: str, authority: str,
                      mint: str, payer: str, tiers: list, funder: Optional[str] = None):
        """Create the pool record and its two vaults."""
        pool = parse_address(pool, "pool")
        authority = parse_address(authority, "authority")
        payer = parse_address(payer, "payer")
        mint = parse_address(mint, "mint")
        funder = parse_address(funder, "funder") if funder else payer

        ctx.require_signer(pool)
        ctx.require_signer(authority)
        ctx.require_signer(payer)

        reward_tiers = parse_tiers(tiers)
        self.token.get_mint(mint)

        pool_signer, vault, reward_vault = pool_custody(pool, self.program_id)
        record = Pool(
            authority=authority,
            funder=funder,
            mint=mint,
            pool_signer=pool_signer,
            vault=vault,
            reward_vault=reward_vault,
            tiers=reward_tiers,
        )

        self.store.create(self.program_id, pool, POOL_KIND, record.to_dict(),
                          payer=payer, rent=self.pool_rent)
        self.token.create_account(vault, mint, pool_signer, payer)
        self.token.create_account(reward_vault, mint, pool_signer, payer)

        log.info(f"Pool {mask_key(pool)} initialized, authority {mask_key(authority)}")
        self._emit(ctx, PoolStateEvent(pool=pool, action="initialize", paused=False, closed=False))

    def ix_pause(self, ctx: InstructionContext, pool: str, authority: str):
        pool, _, record, controller = self._admin(ctx, pool, authority)
        controller.pause()
        self._commit_state(ctx, pool, record, "pause")

    def ix_unpause(self, ctx: InstructionContext, pool: str, authority: str):
        pool, _, record, controller = self._admin(ctx, pool, authority)
        controller.unpause()
        self._commit_state(ctx, pool, record, "unpause")

    def ix_close(self, ctx: InstructionContext, pool: str, authority: str):
        pool, _, record, controller = self._admin(ctx, pool, authority)
        controller.close()
        self._commit_state(ctx, pool, record, "close")

    def ix_open(self, ctx: InstructionContext, pool: str, authority: str):
        pool, _, record, controller = self._admin(ctx, pool, authority)
        controller.open()
        self._commit_state(ctx, pool, record, "open")

    def _commit_state(self, ctx: InstructionContext, pool: str, record: Pool, action: str):
        self.save_pool(pool, record)
        log.info(f"Pool {mask_key(pool)} {action}: paused={record.paused} closed={record.closed}")
        self._emit(ctx, PoolStateEvent(pool=pool, action=action,
                                       paused=record.paused, closed=record.closed))

    # ═══════════════════════════════════════════════════════════════════════
    # USER INSTRUCTIONS
    # ═══════════════════════════════════════════════════════════════════════

    def ix_create_user(self, ctx: InstructionContext, pool: str, authority: str):
        pool, authority, record, controller = self._user(ctx, pool, authority)
        controller.require_not_paused()
        controller.require_open()

        address = self.user_address(pool, authority)
        user = User(pool=pool, authority=authority)
        self.store.create(self.program_id, address, USER_KIND, user.to_dict(),
                          payer=authority, rent=self.user_rent)
        self._emit(ctx, UserEvent(pool=pool, user=address, authority=authority, action="create"))

    def ix_stake(self, ctx: InstructionContext, pool: str, authority: str, tier, source: str):
        pool, authority, record, controller = self._user(ctx, pool, authority)
        source = parse_address(source, "source")
        controller.require_not_paused()
        controller.require_open()
        address, user = self.load_user_of(pool, authority)

        tier = Tier.parse(tier)
        reward_tier = record.tier(tier)
        new_status = open_stake(user.stake_status(tier), reward_tier, ctx.now)
        if reward_tier.slots == 0:
            raise NoAvailableSlot(tier.wire_name)

        reward_tier.use_slot()
        record.metrics.stake(reward_tier.reward)
        user.stakes[tier.value] = new_status

        self.token.transfer(source, record.vault, authority, reward_tier.stake)
        self.save_pool(pool, record)
        self.save_user(address, user)

        self._emit(ctx, StakeEvent(pool=pool, user=address, tier=tier.wire_name,
                                   locked_until=new_status.locked_until,
                                   amount=reward_tier.stake))

    def ix_claim(self, ctx: InstructionContext, pool: str, authority: str, destination: str):
        pool, authority, record, controller = self._user(ctx, pool, authority)
        destination = self._payout_destination(record, destination)
        controller.require_not_paused()
        address, user = self.load_user_of(pool, authority)

        if not user.has_staking():
            raise NoStakesForUser()

        amount = 0
        new_stakes: List[StakeStatus] = []
        for status, reward_tier in zip(user.stakes, record.tiers):
            value, new_status = accrue(status, reward_tier, ctx.now)
            amount = checked_add(amount, value)
            new_stakes.append(new_status)

        if amount == 0:
            raise AmountMustBeGreaterThanZero()

        record.metrics.claim(amount)
        user.stakes = new_stakes

        self.token.transfer(record.reward_vault, destination, record.pool_signer, amount)
        self.save_pool(pool, record)
        self.save_user(address, user)

        self._emit(ctx, ClaimEvent(pool=pool, user=address, amount=amount))

    def ix_unstake(self, ctx: InstructionContext, pool: str, authority: str, tier,
                   destination: str):
        pool, authority, record, controller = self._user(ctx, pool, authority)
        destination = self._payout_destination(record, destination)
        controller.require_not_paused()
        address, user = self.load_user_of(pool, authority)

        tier = Tier.parse(tier)
        check_unstake(user.stake_status(tier), ctx.now)

        reward_tier = record.tier(tier)
        amount = reward_tier.stake
        reward_tier.complete()
        user.stakes[tier.value] = Used()

        self.token.transfer(record.vault, destination, record.pool_signer, amount)
        self.save_pool(pool, record)
        self.save_user(address, user)

        self._emit(ctx, UnstakeEvent(pool=pool, user=address, tier=tier.wire_name, amount=amount))

    # ═══════════════════════════════════════════════════════════════════════
    # FUNDS AND TEARDOWN
    # ═══════════════════════════════════════════════════════════════════════

    def ix_withdraw_extra(self, ctx: InstructionContext, pool: str, authority: str,
                          destination: str):
        """
        Move surplus out of both vaults.

        Reward vault: anything above what stakers are still owed.
        Vault: anything above the principal of stakes not yet unstaked
        (tokens transferred in from outside). Owed principal never moves.
        """
        pool, _, record, controller = self._admin(ctx, pool, authority)
        destination = self._payout_destination(record, destination)
        controller.require_drainable()

        extra_reward = controller.extra_reward(self.token.balance(record.reward_vault))
        extra_principal = controller.extra_principal(self.token.balance(record.vault))
        if extra_reward == 0 and extra_principal == 0:
            raise OnlyExtraWithdrawAllowed()

        if extra_reward:
            self.token.transfer(record.reward_vault, destination, record.pool_signer, extra_reward)
        if extra_principal:
            self.token.transfer(record.vault, destination, record.pool_signer, extra_principal)

        amount = extra_reward + extra_principal
        log.info(f"Pool {mask_key(pool)} withdrew {amount} extra "
                 f"(reward={extra_reward} vault={extra_principal})")
        self._emit(ctx, WithdrawExtraEvent(pool=pool, destination=destination, amount=amount,
                                           reward_amount=extra_reward,
                                           principal_amount=extra_principal))

    def ix_free_user(self, ctx: InstructionContext, pool: str, authority: str,
                     user: str, receiver: str):
        pool, _, record, controller = self._admin(ctx, pool, authority)
        user_addr = parse_address(user, "user")
        receiver = parse_address(receiver, "receiver")
        controller.require_drainable()

        user_record = self.load_user(user_addr)
        if user_record.pool != pool or self.user_address(pool, user_record.authority) != user_addr:
            raise InvalidAccount(f"user {user_addr} does not belong to pool {pool}")
        controller.require_user_free(user_record)

        self.store.close(self.program_id, user_addr, receiver)
        self._emit(ctx, UserEvent(pool=pool, user=user_addr,
                                  authority=user_record.authority, action="free"))

    def ix_free_pool(self, ctx: InstructionContext, pool: str, authority: str, receiver: str):
        pool, _, record, controller = self._admin(ctx, pool, authority)
        receiver = parse_address(receiver, "receiver")
        controller.require_drainable()
        controller.require_settled()

        for vault in (record.vault, record.reward_vault):
            balance = self.token.balance(vault)
            if balance != 0:
                raise AmountMustBeZero(f"{vault} holds {balance}")

        self.token.close_account(record.vault, receiver, record.pool_signer)
        self.token.close_account(record.reward_vault, receiver, record.pool_signer)
        self.store.close(self.program_id, pool, receiver)

        log.info(f"Pool {mask_key(pool)} freed, rent to {mask_key(receiver)}")
        self._emit(ctx, PoolStateEvent(pool=pool, action="free", paused=record.paused,
                                       closed=record.closed))

    # ═══════════════════════════════════════════════════════════════════════
    # VIEWS
    # ═══════════════════════════════════════════════════════════════════════

    def find_pool(self, address: str) -> Optional[Pool]:
        try:
            return self.load_pool(address)
        except AccountNotFound:
            return None
