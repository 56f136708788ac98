"""
stakepool - Node

Wires the account store, clock, token custody, staking program and ledger
runtime together, and exposes the read/write operations served over
JSON-RPC by `stakepool.server`.
"""

import logging
from typing import List, Optional, Union

from .accounts import Pool
from .addresses import mask_key, parse_address
from .clock import ManualClock, SystemClock
from .config import Config
from .custody import TokenProgram
from .processor import StakingProgram
from .runtime import LedgerRuntime
from .store import AccountStore
from .transaction import Transaction

log = logging.getLogger(__name__)


class StakingNode:
    """
    Single-process ledger node.

    Usage:
        node = StakingNode(Config(manual_clock=True))
        node.airdrop(payer, 10_000_000_000)
        receipt = node.send_transaction(tx)
        pool = node.get_pool(pool_address)
    """

    def __init__(self, config: Optional[Config] = None, clock=None,
                 store: Optional[AccountStore] = None):
        self.config = config or Config()
        if clock is None:
            clock = ManualClock(SystemClock().now()) if self.config.manual_clock else SystemClock()
        self.clock = clock
        self.store = store if store is not None else AccountStore(self.config.storage_path)

        self.token = TokenProgram(self.store, account_rent=self.config.token_account_rent)
        self.staking = StakingProgram(
            self.store,
            self.token,
            program_id=self.config.program_id,
            pool_rent=self.config.pool_rent,
            user_rent=self.config.user_rent,
        )
        self.runtime = LedgerRuntime(self.store, self.clock)
        self.runtime.register(self.token)
        self.runtime.register(self.staking)

        log.info(f"Node ready: staking={mask_key(self.staking.program_id)} "
                 f"token={mask_key(self.token.program_id)} "
                 f"storage={self.config.storage_path or 'memory'}")

    # ═══════════════════════════════════════════════════════════════════════
    # WRITES
    # ═══════════════════════════════════════════════════════════════════════

    def send_transaction(self, tx: Union[Transaction, dict]) -> dict:
        """
        Execute a signed transaction.

        Returns:
            Receipt dict {tx_id, program_id, instruction, time, events}

        Raises:
            StakingError: rejected; nothing was written
        """
        if isinstance(tx, dict):
            tx = Transaction.from_dict(tx)
        return self.runtime.process_transaction(tx).to_dict()

    def airdrop(self, address: str, amount: int) -> int:
        """
        Credit native units (rent funds). Returns the new balance.

        Served over JSON-RPC only when `config.faucet` is set.
        """
        address = parse_address(address)
        self.runtime.credit_native(address, amount)
        log.info(f"Airdrop {amount} to {mask_key(address)}")
        return self.store.native_balance(address)

    @property
    def manual_clock(self) -> bool:
        return isinstance(self.clock, ManualClock)

    def advance_time(self, seconds: int) -> int:
        """Move a manual clock forward. Returns the new node time."""
        if not self.manual_clock:
            raise RuntimeError("node clock is not manual")
        now = self.runtime.advance_clock(seconds)
        log.info(f"Clock advanced {seconds}s to {now}")
        return now

    # ═══════════════════════════════════════════════════════════════════════
    # READS
    # ═══════════════════════════════════════════════════════════════════════

    def get_pool(self, address: str) -> dict:
        address = parse_address(address, "pool")
        pool = self.staking.load_pool(address)
        return self._pool_view(address, pool)

    def _pool_view(self, address: str, pool: Pool) -> dict:
        data = pool.to_dict()
        data["address"] = address
        return data

    def get_user(self, pool: str, authority: str) -> dict:
        pool = parse_address(pool, "pool")
        authority = parse_address(authority, "authority")
        address, user = self.staking.load_user_of(pool, authority)
        return {"address": address, **user.to_dict()}

    def get_users(self, pool: str) -> List[dict]:
        pool = parse_address(pool, "pool")
        return [{"address": address, **user.to_dict()}
                for address, user in self.staking.list_users(pool)]

    def get_token_account(self, address: str) -> dict:
        return self.token.get_account(parse_address(address)).to_dict()

    def get_mint(self, address: str) -> dict:
        return self.token.get_mint(parse_address(address, "mint")).to_dict()

    def get_balance(self, address: str) -> int:
        """Native balance."""
        return self.store.native_balance(parse_address(address))

    def get_time(self) -> int:
        return self.runtime.now()

    def get_stats(self) -> dict:
        return {
            "time": self.runtime.now(),
            "staking_program": self.staking.program_id,
            "token_program": self.token.program_id,
            "records": self.store.stats(),
        }
