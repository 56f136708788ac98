"""
stakepool - Pool Client

High-level client: builds, signs and submits instructions to a node, and reads
pool, user and vault state back.
"""

import logging
from typing import List, Optional, Union

from .addresses import STAKING_PROGRAM_ID, TOKEN_PROGRAM_ID, associated_token_address, user_address
from .rpc_client import RPCClient, RPCError
from .tiers import RewardTier, Tier
from .transaction import build

log = logging.getLogger(__name__)


def _submit(rpc: RPCClient, program_id: str, instruction: str, args: dict, *accounts) -> dict:
    """Sign with every account and submit. Staking errors are re-raised as such."""
    tx = build(program_id, instruction, args, [a.address for a in accounts])
    tx.sign(*accounts)
    try:
        return rpc.sendTransaction(tx.to_dict())
    except RPCError as e:
        if e.error is not None:
            raise e.error from e
        raise


class TokenClient:
    """
    Token custody client (funding wallets, reading balances).

    Usage:
        tokens = TokenClient(rpc)
        tokens.create_mint(mint_account, issuer.address, payer)
        ata = tokens.create_associated_account(user.address, mint_account.address, payer)
        tokens.mint_to(mint_account.address, ata, issuer, 10_000_000)
    """

    def __init__(self, rpc: RPCClient):
        self.rpc = rpc

    def create_mint(self, mint_account, authority: str, payer) -> dict:
        args = {"mint": mint_account.address, "authority": authority, "payer": payer.address}
        return _submit(self.rpc, TOKEN_PROGRAM_ID, "create_mint", args, mint_account, payer)

    def create_account(self, account, mint: str, owner: str, payer) -> dict:
        args = {"account": account.address, "mint": mint, "owner": owner, "payer": payer.address}
        return _submit(self.rpc, TOKEN_PROGRAM_ID, "create_account", args, account, payer)

    def create_associated_account(self, owner: str, mint: str, payer) -> str:
        """Create the canonical token account of `owner`. Returns its address."""
        args = {"owner": owner, "mint": mint, "payer": payer.address}
        _submit(self.rpc, TOKEN_PROGRAM_ID, "create_associated_account", args, payer)
        return associated_token_address(owner, mint)

    def mint_to(self, mint: str, destination: str, authority, amount: int) -> dict:
        args = {"mint": mint, "destination": destination,
                "authority": authority.address, "amount": amount}
        return _submit(self.rpc, TOKEN_PROGRAM_ID, "mint_to", args, authority)

    def transfer(self, source: str, destination: str, authority, amount: int) -> dict:
        args = {"source": source, "destination": destination,
                "authority": authority.address, "amount": amount}
        return _submit(self.rpc, TOKEN_PROGRAM_ID, "transfer", args, authority)

    def balance(self, address: str) -> int:
        return self.rpc.getTokenAccount(address)["amount"]


class StakingClient:
    """
    Staking pool client.

    Accounts are eth_account LocalAccounts; each instruction is signed by the
    accounts it requires. Token sources and destinations default to the
    signer's associated token account for the pool mint.

    Usage:
        client = StakingClient(rpc)
        client.initialize(pool_account, admin, mint, tiers)
        client.create_user(pool_account.address, alice)
        client.stake(pool_account.address, alice, Tier.TIER_500)
        client.claim(pool_account.address, alice)
    """

    def __init__(self, rpc: RPCClient, program_id: str = STAKING_PROGRAM_ID):
        """
        Initialize staking client.

        Args:
            rpc: RPC client connected to a stakepool node
            program_id: staking program id served by the node
        """
        self.rpc = rpc
        self.program_id = program_id

    def _send(self, instruction: str, args: dict, *accounts) -> dict:
        receipt = _submit(self.rpc, self.program_id, instruction, args, *accounts)
        log.debug(f"{instruction} -> {receipt['tx_id']}")
        return receipt

    def _token_account(self, pool: str, owner: str) -> str:
        return associated_token_address(owner, self.get_pool(pool)["mint"])

    # ═══════════════════════════════════════════════════════════════════════
    # ADMIN
    # ═══════════════════════════════════════════════════════════════════════

    def initialize(self, pool_account, authority, mint: str,
                   tiers: List[Union[RewardTier, dict]], payer=None,
                   funder: Optional[str] = None) -> dict:
        """
        Create a pool.

        Args:
            pool_account: fresh account whose address becomes the pool address
            authority: admin account
            mint: token mint staked and rewarded
            tiers: three RewardTier (or dicts with supply/stake/duration/reward)
            payer: rent payer (default: authority)
            funder: informational funding wallet (default: payer)
        """
        payer = payer or authority
        args = {
            "pool": pool_account.address,
            "authority": authority.address,
            "mint": mint,
            "payer": payer.address,
            "tiers": [t.to_dict() if isinstance(t, RewardTier) else dict(t) for t in tiers],
        }
        if funder:
            args["funder"] = funder
        return self._send("initialize", args, pool_account, authority, payer)

    def pause(self, pool: str, authority) -> dict:
        return self._send("pause", {"pool": pool, "authority": authority.address}, authority)

    def unpause(self, pool: str, authority) -> dict:
        return self._send("unpause", {"pool": pool, "authority": authority.address}, authority)

    def close(self, pool: str, authority) -> dict:
        return self._send("close", {"pool": pool, "authority": authority.address}, authority)

    def open(self, pool: str, authority) -> dict:
        return self._send("open", {"pool": pool, "authority": authority.address}, authority)

    def withdraw_extra(self, pool: str, authority, destination: str) -> dict:
        args = {"pool": pool, "authority": authority.address, "destination": destination}
        return self._send("withdraw_extra", args, authority)

    def free_user(self, pool: str, authority, user: str, receiver: str) -> dict:
        args = {"pool": pool, "authority": authority.address, "user": user, "receiver": receiver}
        return self._send("free_user", args, authority)

    def free_pool(self, pool: str, authority, receiver: str) -> dict:
        args = {"pool": pool, "authority": authority.address, "receiver": receiver}
        return self._send("free_pool", args, authority)

    def free_all(self, pool: str, authority, receiver: str) -> List[dict]:
        """Free every user record of the pool, then the pool itself."""
        receipts = []
        for user in self.get_users(pool):
            log.info(f"Freeing user {user['address']}")
            receipts.append(self.free_user(pool, authority, user["address"], receiver))
        receipts.append(self.free_pool(pool, authority, receiver))
        return receipts

    # ═══════════════════════════════════════════════════════════════════════
    # USER
    # ═══════════════════════════════════════════════════════════════════════

    def create_user(self, pool: str, user) -> dict:
        return self._send("create_user", {"pool": pool, "authority": user.address}, user)

    def stake(self, pool: str, user, tier: Union[Tier, int, str],
              source: Optional[str] = None) -> dict:
        args = {
            "pool": pool,
            "authority": user.address,
            "tier": Tier.parse(tier).wire_name,
            "source": source or self._token_account(pool, user.address),
        }
        return self._send("stake", args, user)

    def claim(self, pool: str, user, destination: Optional[str] = None) -> dict:
        args = {
            "pool": pool,
            "authority": user.address,
            "destination": destination or self._token_account(pool, user.address),
        }
        return self._send("claim", args, user)

    def unstake(self, pool: str, user, tier: Union[Tier, int, str],
                destination: Optional[str] = None) -> dict:
        args = {
            "pool": pool,
            "authority": user.address,
            "tier": Tier.parse(tier).wire_name,
            "destination": destination or self._token_account(pool, user.address),
        }
        return self._send("unstake", args, user)

    # ═══════════════════════════════════════════════════════════════════════
    # READS
    # ═══════════════════════════════════════════════════════════════════════

    def get_pool(self, pool: str) -> dict:
        return self.rpc.getPool(pool)

    def get_user(self, pool: str, authority: str) -> dict:
        return self.rpc.getUser(pool, authority)

    def get_users(self, pool: str) -> List[dict]:
        return self.rpc.getUsers(pool)

    def user_address(self, pool: str, authority: str) -> str:
        return user_address(pool, authority, self.program_id)

    def vault_balance(self, pool: str) -> int:
        """Principal held for open stakes."""
        return self.rpc.getTokenAccount(self.get_pool(pool)["vault"])["amount"]

    def reward_balance(self, pool: str) -> int:
        """Reward vault balance."""
        return self.rpc.getTokenAccount(self.get_pool(pool)["reward_vault"])["amount"]
