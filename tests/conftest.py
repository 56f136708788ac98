# tests/conftest.py
from dataclasses import dataclass

import pytest
import requests
from eth_account import Account

from stakepool.addresses import TOKEN_PROGRAM_ID, associated_token_address
from stakepool.clock import ManualClock
from stakepool.config import Config
from stakepool.node import StakingNode
from stakepool.rpc_client import RPCClient
from stakepool.server import create_app
from stakepool.tiers import Tier
from stakepool.transaction import build

START = 1_700_000_000
NATIVE = 100_000_000_000

# tier500 is the reference scenario; tier1000 has a reward that does not
# divide evenly by its duration
TIERS = [
    {"supply": 3, "stake": 5_000_000, "duration": 5, "reward": 5_000_000},
    {"supply": 2, "stake": 10_000_000, "duration": 7, "reward": 1_000_003},
    {"supply": 1, "stake": 15_000_000, "duration": 15, "reward": 3_000_000},
]
REWARD_FUNDING = 3 * 5_000_000 + 2 * 1_000_003 + 1 * 3_000_000


@dataclass
class PoolHandle:
    address: str
    identity: object
    admin: object
    vault: str
    reward_vault: str


class Ledger:
    """Signs and submits instructions against an in-process node."""

    def __init__(self, node: StakingNode, clock: ManualClock):
        self.node = node
        self.clock = clock
        self.issuer = Account.create()
        self.mint_account = Account.create()
        node.airdrop(self.issuer.address, NATIVE)
        self.send_token(
            "create_mint",
            {"mint": self.mint_account.address, "authority": self.issuer.address,
             "payer": self.issuer.address},
            self.mint_account, self.issuer,
        )

    @property
    def mint(self) -> str:
        return self.mint_account.address

    # --- submission -------------------------------------------------------

    def send(self, instruction, args, *accounts, program_id=None) -> dict:
        tx = build(program_id or self.node.staking.program_id, instruction, args,
                   [a.address for a in accounts])
        tx.sign(*accounts)
        return self.node.send_transaction(tx)

    def send_token(self, instruction, args, *accounts) -> dict:
        return self.send(instruction, args, *accounts, program_id=TOKEN_PROGRAM_ID)

    # --- tokens -----------------------------------------------------------

    def ata(self, owner: str) -> str:
        return associated_token_address(owner, self.mint)

    def mint_to(self, destination: str, amount: int):
        self.send_token(
            "mint_to",
            {"mint": self.mint, "destination": destination,
             "authority": self.issuer.address, "amount": amount},
            self.issuer,
        )

    def balance(self, token_account: str) -> int:
        return self.node.token.balance(token_account)

    def wallet(self, tokens: int = 0, native: int = NATIVE):
        account = Account.create()
        self.node.airdrop(account.address, native)
        self.send_token(
            "create_associated_account",
            {"owner": account.address, "mint": self.mint, "payer": account.address},
            account,
        )
        if tokens:
            self.mint_to(self.ata(account.address), tokens)
        return account

    # --- pool -------------------------------------------------------------

    def create_pool(self, tiers=None, reward_funding: int = REWARD_FUNDING) -> PoolHandle:
        admin = self.wallet()
        pool_account = Account.create()
        self.send(
            "initialize",
            {"pool": pool_account.address, "authority": admin.address, "mint": self.mint,
             "payer": admin.address, "tiers": tiers or TIERS},
            pool_account, admin,
        )
        record = self.node.get_pool(pool_account.address)
        if reward_funding:
            self.mint_to(record["reward_vault"], reward_funding)
        return PoolHandle(address=pool_account.address, identity=pool_account, admin=admin,
                          vault=record["vault"], reward_vault=record["reward_vault"])

    def pool(self, pool: PoolHandle) -> dict:
        return self.node.get_pool(pool.address)

    def admin(self, pool: PoolHandle, instruction: str, **extra) -> dict:
        args = {"pool": pool.address, "authority": pool.admin.address, **extra}
        return self.send(instruction, args, pool.admin)

    # --- users ------------------------------------------------------------

    def staker(self, pool: PoolHandle, tokens: int = 50_000_000):
        user = self.wallet(tokens)
        self.create_user(pool, user)
        return user

    def create_user(self, pool: PoolHandle, user) -> dict:
        return self.send("create_user", {"pool": pool.address, "authority": user.address}, user)

    def user(self, pool: PoolHandle, user) -> dict:
        return self.node.get_user(pool.address, user.address)

    def stake(self, pool: PoolHandle, user, tier: Tier) -> dict:
        args = {"pool": pool.address, "authority": user.address,
                "tier": tier.wire_name, "source": self.ata(user.address)}
        return self.send("stake", args, user)

    def claim(self, pool: PoolHandle, user) -> dict:
        args = {"pool": pool.address, "authority": user.address,
                "destination": self.ata(user.address)}
        return self.send("claim", args, user)

    def unstake(self, pool: PoolHandle, user, tier: Tier) -> dict:
        args = {"pool": pool.address, "authority": user.address,
                "tier": tier.wire_name, "destination": self.ata(user.address)}
        return self.send("unstake", args, user)


@pytest.fixture
def clock():
    return ManualClock(START)


@pytest.fixture
def node(clock):
    return StakingNode(Config(faucet=True), clock=clock)


@pytest.fixture
def ledger(node, clock):
    return Ledger(node, clock)


@pytest.fixture
def pool(ledger):
    return ledger.create_pool()


@pytest.fixture
def alice(ledger, pool):
    return ledger.staker(pool)


@pytest.fixture
def bob(ledger, pool):
    return ledger.staker(pool)


class _TestResponse:
    """requests.Response look-alike over a Flask test response."""

    def __init__(self, response):
        self._response = response
        self.status_code = response.status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} from test node")

    def json(self):
        return self._response.get_json()


@pytest.fixture
def http(node):
    return create_app(node).test_client()


@pytest.fixture
def rpc(monkeypatch, http):
    """RPCClient whose HTTP calls are served by the Flask test client."""
    def fake_post(url, json=None, timeout=None, **kwargs):
        return _TestResponse(http.post("/rpc", json=json))

    monkeypatch.setattr(requests, "post", fake_post)
    return RPCClient("http://node.test/rpc")
