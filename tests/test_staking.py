import pytest
from eth_account import Account

from stakepool.errors import (
    AccountAlreadyExists,
    AccountNotFound,
    AmountMustBeGreaterThanZero,
    InvalidAccount,
    InvalidRewardTier,
    MissingSignature,
    NoAvailableSlot,
    NoStakeInTier,
    NoStakesForUser,
    OwnerMismatch,
    PendingReward,
    PoolClosedForNewStaking,
    TierAlreadyUsed,
    TimeLockNotPassed,
)
from stakepool.tiers import Tier

from conftest import TIERS


def _status(ledger, pool, user, tier):
    return ledger.user(pool, user)["stakes"][tier.value]


def test_initialize_creates_pool_and_vaults(ledger, pool):
    record = ledger.pool(pool)

    assert record["authority"] == pool.admin.address
    assert record["funder"] == pool.admin.address
    assert record["paused"] is False
    assert record["closed"] is False
    assert [t["slots"] for t in record["tiers"]] == [3, 2, 1]
    assert record["metrics"] == {"reward_requirements": 0, "reward_paid": 0}
    assert ledger.balance(pool.vault) == 0
    assert ledger.node.token.get_account(pool.vault).owner == record["pool_signer"]


def test_initialize_requires_authority_signature(ledger):
    admin = ledger.wallet()
    pool_account = Account.create()
    args = {"pool": pool_account.address, "authority": admin.address, "mint": ledger.mint,
            "payer": pool_account.address, "tiers": TIERS}

    with pytest.raises(MissingSignature):
        ledger.send("initialize", args, pool_account)


def test_initialize_rejects_bad_tiers(ledger):
    tiers = [dict(t) for t in TIERS]
    tiers[1]["duration"] = 0

    with pytest.raises(InvalidRewardTier):
        ledger.create_pool(tiers=tiers)


def test_initialize_twice_fails(ledger, pool):
    args = {"pool": pool.address, "authority": pool.admin.address, "mint": ledger.mint,
            "payer": pool.admin.address, "tiers": TIERS}

    with pytest.raises(AccountAlreadyExists):
        ledger.send("initialize", args, pool.identity, pool.admin)


def test_create_user_once(ledger, pool, alice):
    with pytest.raises(AccountAlreadyExists):
        ledger.create_user(pool, alice)

    user = ledger.user(pool, alice)
    assert user["pool"] == pool.address
    assert [s["state"] for s in user["stakes"]] == ["none", "none", "none"]


def test_create_user_rejected_when_closed(ledger, pool):
    ledger.admin(pool, "close")

    with pytest.raises(PoolClosedForNewStaking):
        ledger.staker(pool)


def test_reference_scenario(ledger, pool, alice):
    """3 slots, stake 5_000_000 for 5s, reward 5_000_000."""
    source = ledger.ata(alice.address)
    start = ledger.balance(source)

    ledger.stake(pool, alice, Tier.TIER_500)

    assert ledger.balance(pool.vault) == 5_000_000
    assert ledger.balance(source) == start - 5_000_000
    assert ledger.pool(pool)["tiers"][0]["slots"] == 2
    locked_until = _status(ledger, pool, alice, Tier.TIER_500)["locked_until"]

    ledger.clock.set(locked_until)
    ledger.claim(pool, alice)

    assert ledger.balance(source) == start
    assert _status(ledger, pool, alice, Tier.TIER_500) == {"state": "ready"}

    ledger.unstake(pool, alice, Tier.TIER_500)

    assert ledger.balance(source) == start + 5_000_000
    assert ledger.balance(pool.vault) == 0
    assert _status(ledger, pool, alice, Tier.TIER_500) == {"state": "used"}
    assert ledger.pool(pool)["tiers"][0]["completed"] == 1


def test_slots_run_out(ledger, pool):
    for n in range(3):
        ledger.stake(pool, ledger.staker(pool), Tier.TIER_500)
        assert ledger.pool(pool)["tiers"][0]["slots"] == 2 - n

    with pytest.raises(NoAvailableSlot):
        ledger.stake(pool, ledger.staker(pool), Tier.TIER_500)


def test_slots_not_replenished_by_unstake(ledger, pool, alice):
    ledger.stake(pool, alice, Tier.TIER_1500)
    ledger.clock.advance(15)
    ledger.claim(pool, alice)
    ledger.unstake(pool, alice, Tier.TIER_1500)

    assert ledger.pool(pool)["tiers"][2]["slots"] == 0
    with pytest.raises(NoAvailableSlot):
        ledger.stake(pool, ledger.staker(pool), Tier.TIER_1500)


@pytest.mark.parametrize("state", ["staking", "ready", "used"])
def test_restake_always_tier_already_used(ledger, pool, alice, state):
    ledger.stake(pool, alice, Tier.TIER_500)
    if state in ("ready", "used"):
        ledger.clock.advance(5)
        ledger.claim(pool, alice)
    if state == "used":
        ledger.unstake(pool, alice, Tier.TIER_500)
    assert _status(ledger, pool, alice, Tier.TIER_500)["state"] == state

    with pytest.raises(TierAlreadyUsed):
        ledger.stake(pool, alice, Tier.TIER_500)


def test_restake_checked_before_slots(ledger, pool, alice):
    ledger.stake(pool, alice, Tier.TIER_1500)

    with pytest.raises(TierAlreadyUsed):
        ledger.stake(pool, alice, Tier.TIER_1500)


def test_stake_from_foreign_source_rejected(ledger, pool, alice, bob):
    args = {"pool": pool.address, "authority": alice.address, "tier": "tier500",
            "source": ledger.ata(bob.address)}

    with pytest.raises(OwnerMismatch):
        ledger.send("stake", args, alice)


def test_stake_requires_user_record(ledger, pool):
    outsider = ledger.wallet(tokens=10_000_000)

    with pytest.raises(AccountNotFound):
        ledger.stake(pool, outsider, Tier.TIER_500)


def test_stake_records_reward_requirement(ledger, pool, alice):
    ledger.stake(pool, alice, Tier.TIER_500)
    ledger.stake(pool, alice, Tier.TIER_1000)

    metrics = ledger.pool(pool)["metrics"]
    assert metrics["reward_requirements"] == 5_000_000 + 1_000_003
    assert metrics["reward_paid"] == 0


def test_partial_claims_sum_to_reward(ledger, pool, alice):
    destination = ledger.ata(alice.address)
    ledger.stake(pool, alice, Tier.TIER_1000)
    start = ledger.balance(destination)

    paid = []
    for step in (1, 2, 1, 2):
        ledger.clock.advance(step)
        before = ledger.balance(destination)
        ledger.claim(pool, alice)
        paid.append(ledger.balance(destination) - before)
    ledger.clock.advance(10)
    ledger.claim(pool, alice)

    assert paid[0] == 1_000_003 // 7
    assert ledger.balance(destination) - start == 1_000_003
    assert _status(ledger, pool, alice, Tier.TIER_1000) == {"state": "ready"}
    assert ledger.pool(pool)["metrics"]["reward_paid"] == 1_000_003


def test_claim_covers_every_staking_tier(ledger, pool, alice):
    destination = ledger.ata(alice.address)
    ledger.stake(pool, alice, Tier.TIER_500)
    ledger.stake(pool, alice, Tier.TIER_1500)
    before = ledger.balance(destination)

    ledger.clock.advance(5)
    receipt = ledger.claim(pool, alice)

    expected = 5_000_000 + (3_000_000 * 5) // 15
    assert ledger.balance(destination) - before == expected
    assert receipt["events"][-1]["amount"] == expected
    assert _status(ledger, pool, alice, Tier.TIER_500)["state"] == "ready"
    assert _status(ledger, pool, alice, Tier.TIER_1500)["state"] == "staking"


def test_claim_without_stakes(ledger, pool, alice):
    with pytest.raises(NoStakesForUser):
        ledger.claim(pool, alice)


def test_claim_with_only_ready_stakes(ledger, pool, alice):
    ledger.stake(pool, alice, Tier.TIER_500)
    ledger.clock.advance(5)
    ledger.claim(pool, alice)

    with pytest.raises(NoStakesForUser):
        ledger.claim(pool, alice)


def test_claim_zero_elapsed(ledger, pool, alice):
    ledger.stake(pool, alice, Tier.TIER_500)

    with pytest.raises(AmountMustBeGreaterThanZero):
        ledger.claim(pool, alice)


def test_claim_by_another_signer_rejected(ledger, pool, alice, bob):
    ledger.stake(pool, alice, Tier.TIER_500)
    args = {"pool": pool.address, "authority": alice.address,
            "destination": ledger.ata(bob.address)}

    with pytest.raises(MissingSignature):
        ledger.send("claim", args, bob)


def test_unstake_guards(ledger, pool, alice):
    with pytest.raises(NoStakeInTier):
        ledger.unstake(pool, alice, Tier.TIER_500)

    ledger.stake(pool, alice, Tier.TIER_500)
    ledger.clock.advance(4)
    with pytest.raises(TimeLockNotPassed):
        ledger.unstake(pool, alice, Tier.TIER_500)

    ledger.clock.advance(1)
    with pytest.raises(PendingReward):
        ledger.unstake(pool, alice, Tier.TIER_500)

    ledger.claim(pool, alice)
    ledger.unstake(pool, alice, Tier.TIER_500)

    with pytest.raises(NoStakeInTier):
        ledger.unstake(pool, alice, Tier.TIER_500)


def test_claim_into_pool_vault_rejected(ledger, pool, alice):
    ledger.stake(pool, alice, Tier.TIER_500)
    ledger.clock.advance(5)

    for vault in (pool.reward_vault, pool.vault):
        with pytest.raises(InvalidAccount):
            ledger.send("claim", {"pool": pool.address, "authority": alice.address,
                                  "destination": vault}, alice)

    assert ledger.pool(pool)["metrics"]["reward_paid"] == 0
    assert _status(ledger, pool, alice, Tier.TIER_500)["state"] == "staking"


def test_unstake_into_pool_vault_rejected(ledger, pool, alice):
    ledger.stake(pool, alice, Tier.TIER_500)
    ledger.clock.advance(5)
    ledger.claim(pool, alice)

    for vault in (pool.vault, pool.reward_vault):
        with pytest.raises(InvalidAccount):
            ledger.send("unstake", {"pool": pool.address, "authority": alice.address,
                                    "tier": "tier500", "destination": vault}, alice)

    assert _status(ledger, pool, alice, Tier.TIER_500)["state"] == "ready"
    assert ledger.balance(pool.vault) == 5_000_000


def test_closed_pool_still_allows_exits(ledger, pool, alice):
    ledger.stake(pool, alice, Tier.TIER_500)
    ledger.admin(pool, "close")

    with pytest.raises(PoolClosedForNewStaking):
        ledger.stake(pool, alice, Tier.TIER_1000)

    ledger.clock.advance(5)
    ledger.claim(pool, alice)
    ledger.unstake(pool, alice, Tier.TIER_500)

    assert _status(ledger, pool, alice, Tier.TIER_500)["state"] == "used"


def test_users_are_independent(ledger, pool, alice, bob):
    ledger.stake(pool, alice, Tier.TIER_500)
    ledger.clock.advance(2)
    ledger.stake(pool, bob, Tier.TIER_500)
    ledger.clock.advance(3)

    ledger.claim(pool, alice)
    bob_before = ledger.balance(ledger.ata(bob.address))
    ledger.claim(pool, bob)

    assert _status(ledger, pool, alice, Tier.TIER_500)["state"] == "ready"
    assert _status(ledger, pool, bob, Tier.TIER_500)["state"] == "staking"
    assert ledger.balance(ledger.ata(bob.address)) - bob_before == 3_000_000
