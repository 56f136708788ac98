"""
stakepool - Tiered, Time-Locked Staking Pool

Deterministic state-transition engine for a staking pool with three reward
tiers and linear reward accrual, plus the node, client and admin tooling to
run it.

Architecture:
  - Tier Table / Stake Ledger / Pool Controller: pure state and transitions
  - Instruction Processor (StakingProgram): validates and applies instructions
  - Token custody (TokenProgram): balance-conserving token accounts
  - LedgerRuntime: signature checks, replay protection, atomic commit
  - Node (Flask JSON-RPC) and clients (RPCClient, StakingClient)

Lifecycle of a stake:
    None ──stake──▶ Staking ──claim (final)──▶ Ready ──unstake──▶ Used

Usage:
    from stakepool import RPCClient, StakingClient, Tier

    client = StakingClient(RPCClient("http://127.0.0.1:8899/rpc"))
    client.create_user(pool, alice)
    client.stake(pool, alice, Tier.TIER_500)
"""

from .accounts import Metrics, Pool, User
from .clock import ManualClock, SystemClock
from .config import Config
from .custody import TokenProgram
from .errors import StakingError, error_from_code
from .node import StakingNode
from .pool_client import StakingClient, TokenClient
from .processor import StakingProgram
from .rpc_client import RPCClient, RPCError
from .stake_ledger import NoStake, Ready, Staking, StakeStatus, Used
from .tiers import RewardTier, Tier
from .transaction import Transaction

__version__ = "0.1.0"
__all__ = [
    # Records
    "Pool", "User", "Metrics", "RewardTier", "Tier",
    "StakeStatus", "NoStake", "Staking", "Ready", "Used",
    # Engine
    "StakingProgram", "TokenProgram", "StakingNode", "Transaction",
    "ManualClock", "SystemClock", "Config",
    # Client
    "RPCClient", "RPCError", "StakingClient", "TokenClient",
    # Errors
    "StakingError", "error_from_code",
]
