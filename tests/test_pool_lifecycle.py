import pytest
from eth_account import Account

from stakepool.errors import (
    AmountMustBeZero,
    InvalidAccount,
    MissingSignature,
    OnlyExtraWithdrawAllowed,
    PoolAlreadyClosed,
    PoolAlreadyOpen,
    PoolAlreadyPaused,
    PoolAlreadyUnpaused,
    PoolHasToBeClosed,
    PoolPaused,
    Unauthorized,
    UserHasActiveStakes,
)
from stakepool.processor import DEFAULT_POOL_RENT, DEFAULT_USER_RENT
from stakepool.tiers import Tier

from conftest import REWARD_FUNDING


# =============================================================================
# PAUSE / CLOSE
# =============================================================================

def test_pause_toggles(ledger, pool):
    ledger.admin(pool, "pause")
    assert ledger.pool(pool)["paused"] is True

    with pytest.raises(PoolAlreadyPaused):
        ledger.admin(pool, "pause")

    ledger.admin(pool, "unpause")
    with pytest.raises(PoolAlreadyUnpaused):
        ledger.admin(pool, "unpause")


def test_close_open_toggles(ledger, pool):
    ledger.admin(pool, "close")
    with pytest.raises(PoolAlreadyClosed):
        ledger.admin(pool, "close")

    ledger.admin(pool, "open")
    with pytest.raises(PoolAlreadyOpen):
        ledger.admin(pool, "open")


def test_close_and_open_blocked_while_paused(ledger, pool):
    ledger.admin(pool, "pause")

    with pytest.raises(PoolPaused):
        ledger.admin(pool, "close")
    with pytest.raises(PoolPaused):
        ledger.admin(pool, "open")


def test_admin_instructions_need_the_authority(ledger, pool, alice):
    args = {"pool": pool.address, "authority": alice.address}

    with pytest.raises(Unauthorized):
        ledger.send("pause", args, alice)

    args["authority"] = pool.admin.address
    with pytest.raises(MissingSignature):
        ledger.send("pause", args, alice)


def test_pause_blocks_everything(ledger, pool, alice):
    ledger.stake(pool, alice, Tier.TIER_500)
    ledger.clock.advance(2)
    ledger.admin(pool, "pause")
    receiver = Account.create().address

    with pytest.raises(PoolPaused):
        ledger.create_user(pool, ledger.wallet())
    with pytest.raises(PoolPaused):
        ledger.stake(pool, alice, Tier.TIER_1000)
    with pytest.raises(PoolPaused):
        ledger.claim(pool, alice)
    with pytest.raises(PoolPaused):
        ledger.unstake(pool, alice, Tier.TIER_500)
    with pytest.raises(PoolPaused):
        ledger.admin(pool, "withdraw_extra", destination=ledger.ata(pool.admin.address))
    with pytest.raises(PoolPaused):
        ledger.admin(pool, "free_user", user=ledger.user(pool, alice)["address"], receiver=receiver)
    with pytest.raises(PoolPaused):
        ledger.admin(pool, "free_pool", receiver=receiver)

    ledger.admin(pool, "unpause")
    ledger.claim(pool, alice)


def test_pause_is_checked_before_closed(ledger, pool):
    ledger.admin(pool, "close")
    ledger.admin(pool, "pause")

    with pytest.raises(PoolPaused):
        ledger.create_user(pool, ledger.wallet())


# =============================================================================
# WITHDRAW EXTRA
# =============================================================================

def test_withdraw_extra_requires_closed(ledger, pool):
    with pytest.raises(PoolHasToBeClosed):
        ledger.admin(pool, "withdraw_extra", destination=ledger.ata(pool.admin.address))


def test_withdraw_extra_moves_only_surplus(ledger, pool, alice):
    destination = ledger.ata(pool.admin.address)
    ledger.stake(pool, alice, Tier.TIER_500)
    ledger.stake(pool, alice, Tier.TIER_1000)
    ledger.clock.advance(3)
    ledger.claim(pool, alice)
    ledger.admin(pool, "close")

    metrics = ledger.pool(pool)["metrics"]
    owed = metrics["reward_requirements"] - metrics["reward_paid"]
    surplus = ledger.balance(pool.reward_vault) - owed

    receipt = ledger.admin(pool, "withdraw_extra", destination=destination)

    assert surplus > 0
    assert ledger.balance(destination) == surplus
    assert ledger.balance(pool.reward_vault) == owed
    assert ledger.balance(pool.vault) == 15_000_000
    assert receipt["events"][-1]["amount"] == surplus

    with pytest.raises(OnlyExtraWithdrawAllowed):
        ledger.admin(pool, "withdraw_extra", destination=destination)


def test_withdraw_extra_with_no_surplus(ledger):
    pool = ledger.create_pool(reward_funding=5_000_000)
    alice = ledger.staker(pool)
    ledger.stake(pool, alice, Tier.TIER_500)
    ledger.admin(pool, "close")

    with pytest.raises(OnlyExtraWithdrawAllowed):
        ledger.admin(pool, "withdraw_extra", destination=ledger.ata(pool.admin.address))


def test_withdraw_extra_sweeps_vault_donation(ledger, pool, alice):
    outsider = ledger.wallet(tokens=7)
    destination = ledger.ata(pool.admin.address)
    receiver = pool.admin.address
    ledger.stake(pool, alice, Tier.TIER_500)
    ledger.send_token("transfer", {"source": ledger.ata(outsider.address), "destination": pool.vault,
                                   "authority": outsider.address, "amount": 7}, outsider)
    ledger.admin(pool, "close")

    receipt = ledger.admin(pool, "withdraw_extra", destination=destination)

    event = receipt["events"][-1]
    assert event["principal_amount"] == 7
    assert event["reward_amount"] == REWARD_FUNDING - 5_000_000
    assert ledger.balance(pool.vault) == 5_000_000

    ledger.clock.advance(5)
    ledger.claim(pool, alice)
    ledger.unstake(pool, alice, Tier.TIER_500)
    ledger.admin(pool, "free_user", user=ledger.user(pool, alice)["address"], receiver=receiver)
    ledger.admin(pool, "free_pool", receiver=receiver)

    assert ledger.node.staking.find_pool(pool.address) is None
    assert ledger.balance(destination) == REWARD_FUNDING - 5_000_000 + 7


def test_withdraw_extra_into_pool_vault_rejected(ledger, pool):
    ledger.admin(pool, "close")

    with pytest.raises(InvalidAccount):
        ledger.admin(pool, "withdraw_extra", destination=pool.vault)


def test_withdraw_extra_keeps_owed_reward_claimable(ledger, pool, alice):
    ledger.stake(pool, alice, Tier.TIER_1500)
    ledger.admin(pool, "close")
    ledger.admin(pool, "withdraw_extra", destination=ledger.ata(pool.admin.address))

    ledger.clock.advance(15)
    ledger.claim(pool, alice)
    ledger.unstake(pool, alice, Tier.TIER_1500)

    assert ledger.balance(pool.reward_vault) == 0
    assert ledger.balance(pool.vault) == 0


# =============================================================================
# FREE USER / FREE POOL
# =============================================================================

def test_free_user_requires_closed(ledger, pool, alice):
    user = ledger.user(pool, alice)["address"]

    with pytest.raises(PoolHasToBeClosed):
        ledger.admin(pool, "free_user", user=user, receiver=pool.admin.address)


@pytest.mark.parametrize("claim", [False, True])
def test_free_user_blocked_by_active_stake(ledger, pool, alice, claim):
    ledger.stake(pool, alice, Tier.TIER_500)
    if claim:
        ledger.clock.advance(5)
        ledger.claim(pool, alice)
    ledger.admin(pool, "close")

    with pytest.raises(UserHasActiveStakes):
        ledger.admin(pool, "free_user", user=ledger.user(pool, alice)["address"],
                     receiver=pool.admin.address)


def test_free_user_returns_rent(ledger, pool, alice):
    receiver = Account.create().address
    user = ledger.user(pool, alice)["address"]
    ledger.admin(pool, "close")

    ledger.admin(pool, "free_user", user=user, receiver=receiver)

    assert ledger.node.get_balance(receiver) == DEFAULT_USER_RENT
    assert ledger.node.get_users(pool.address) == []


def test_free_user_of_another_pool_rejected(ledger, pool, alice):
    other = ledger.create_pool()
    stranger = ledger.staker(other)
    ledger.admin(pool, "close")

    with pytest.raises(InvalidAccount):
        ledger.admin(pool, "free_user", user=ledger.user(other, stranger)["address"],
                     receiver=pool.admin.address)


def test_free_pool_blocked_by_active_stakes(ledger, pool, alice):
    ledger.stake(pool, alice, Tier.TIER_500)
    ledger.admin(pool, "close")

    with pytest.raises(UserHasActiveStakes):
        ledger.admin(pool, "free_pool", receiver=pool.admin.address)


def test_free_pool_blocked_by_reward_balance(ledger, pool):
    ledger.admin(pool, "close")

    with pytest.raises(AmountMustBeZero):
        ledger.admin(pool, "free_pool", receiver=pool.admin.address)


def test_full_teardown(ledger, pool, alice, bob):
    receiver = Account.create().address
    ledger.stake(pool, alice, Tier.TIER_500)
    ledger.stake(pool, bob, Tier.TIER_1000)
    ledger.clock.advance(7)
    ledger.claim(pool, alice)
    ledger.claim(pool, bob)
    ledger.unstake(pool, alice, Tier.TIER_500)
    ledger.unstake(pool, bob, Tier.TIER_1000)

    ledger.admin(pool, "close")
    ledger.admin(pool, "withdraw_extra", destination=ledger.ata(pool.admin.address))
    assert ledger.balance(ledger.ata(pool.admin.address)) == REWARD_FUNDING - 5_000_000 - 1_000_003

    for user in ledger.node.get_users(pool.address):
        ledger.admin(pool, "free_user", user=user["address"], receiver=receiver)
    receipt = ledger.admin(pool, "free_pool", receiver=receiver)

    token_rent = ledger.node.token.account_rent
    assert ledger.node.get_balance(receiver) == 2 * DEFAULT_USER_RENT + DEFAULT_POOL_RENT + 2 * token_rent
    assert receipt["events"][-1]["action"] == "free"
    assert ledger.node.staking.find_pool(pool.address) is None
    assert "pool" not in ledger.node.get_stats()["records"]
