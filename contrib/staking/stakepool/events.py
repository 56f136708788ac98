"""
stakepool - Program Events

Emitted by instructions and returned in the transaction receipt.
"""

from dataclasses import asdict, dataclass


@dataclass
class StakeEvent:
    pool: str
    user: str
    tier: str
    locked_until: int
    amount: int


@dataclass
class UnstakeEvent:
    pool: str
    user: str
    tier: str
    amount: int


@dataclass
class ClaimEvent:
    pool: str
    user: str
    amount: int


@dataclass
class WithdrawExtraEvent:
    pool: str
    destination: str
    amount: int
    reward_amount: int = 0
    principal_amount: int = 0


@dataclass
class PoolStateEvent:
    """initialize / pause / unpause / close / open / free_pool"""
    pool: str
    action: str
    paused: bool
    closed: bool


@dataclass
class UserEvent:
    """create_user / free_user"""
    pool: str
    user: str
    authority: str
    action: str


def payload(event) -> dict:
    """Event name and fields as emitted into the receipt."""
    return {"name": type(event).__name__, **asdict(event)}
