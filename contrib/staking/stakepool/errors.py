"""
stakepool - Error Taxonomy

Every rejected instruction surfaces one of these errors. Codes are stable:
staking errors are 6000-based (program errors), account errors 3000-based,
custody errors 4000-based and runtime errors 5000-based, so a client can
rebuild the exact error class from a JSON-RPC error object.
"""

from typing import Dict, Optional, Type


_REGISTRY: Dict[int, Type["StakingError"]] = {}


class StakingError(Exception):
    """Base class for every error raised while processing an instruction."""

    code: int = 0
    message: str = "Staking error"
    kind: str = "error"

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        code = cls.__dict__.get("code")
        if code:
            if code in _REGISTRY:
                raise TypeError(f"Duplicate error code {code}: {cls.__name__}")
            _REGISTRY[code] = cls

    def __init__(self, detail: str = ""):
        self.detail = detail
        text = f"{self.message} ({detail})" if detail else self.message
        super().__init__(f"Error {self.code} {self.name}: {text}")

    @property
    def name(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        """JSON-RPC error object."""
        return {
            "code": self.code,
            "message": self.message,
            "data": {"name": self.name, "kind": self.kind, "detail": self.detail},
        }


# ═══════════════════════════════════════════════════════════════════════════════
# ERROR KINDS
# ═══════════════════════════════════════════════════════════════════════════════

class StateViolation(StakingError):
    kind = "state"


class PolicyViolation(StakingError):
    kind = "policy"


class CapacityViolation(StakingError):
    kind = "capacity"


class AccountingViolation(StakingError):
    kind = "accounting"


class AuthorizationViolation(StakingError):
    kind = "authorization"


class AccountError(StakingError):
    kind = "account"


class TokenError(StakingError):
    kind = "token"


class RuntimeFailure(StakingError):
    kind = "runtime"


# ═══════════════════════════════════════════════════════════════════════════════
# PROGRAM ERRORS (6000+)
# ═══════════════════════════════════════════════════════════════════════════════

class InvalidRewardTier(PolicyViolation):
    code = 6000
    message = "Invalid reward tier."


class ArithmeticOverflow(AccountingViolation):
    code = 6001
    message = "Arithmetic overflow."


class NoAvailableSlot(CapacityViolation):
    code = 6003
    message = "There is no available slot in this tier."


class TierAlreadyUsed(StateViolation):
    code = 6004
    message = "Tier already used."


class NoStakeInTier(StateViolation):
    code = 6005
    message = "The user doesn't have stake in this tier."


class TimeLockNotPassed(StateViolation):
    code = 6006
    message = "The time lock has not yet passed."


class PendingReward(StateViolation):
    code = 6007
    message = "There is pending reward"


class NoStakesForUser(StateViolation):
    code = 6008
    message = "The user doesn't have any stakes"


class PoolPaused(PolicyViolation):
    code = 6009
    message = "Pool is paused."


class PoolClosedForNewStaking(PolicyViolation):
    code = 6010
    message = "Pool is closed for new staking"


class AmountMustBeGreaterThanZero(AccountingViolation):
    code = 6011
    message = "Amount must be greater than zero."


class OnlyExtraWithdrawAllowed(AccountingViolation):
    code = 6012
    message = "Only extra (total - required) withdraw allowed"


class UserHasActiveStakes(AccountingViolation):
    code = 6013
    message = "User has active stakes"


class AmountMustBeZero(AccountingViolation):
    code = 6014
    message = "Amount must be zero"


class PoolHasToBeClosed(PolicyViolation):
    code = 6015
    message = "Pool has to be closed"


class PoolAlreadyPaused(PolicyViolation):
    code = 6016
    message = "Pool is already paused"


class PoolAlreadyUnpaused(PolicyViolation):
    code = 6017
    message = "Pool is not paused"


class PoolAlreadyClosed(PolicyViolation):
    code = 6018
    message = "Pool is already closed"


class PoolAlreadyOpen(PolicyViolation):
    code = 6019
    message = "Pool is already open"


class Unauthorized(AuthorizationViolation):
    code = 6020
    message = "Signer is not the pool authority"


class MissingSignature(AuthorizationViolation):
    code = 6021
    message = "Missing required signature"


# ═══════════════════════════════════════════════════════════════════════════════
# ACCOUNT ERRORS (3000+)
# ═══════════════════════════════════════════════════════════════════════════════

class AccountNotFound(AccountError):
    code = 3001
    message = "Account not found"


class AccountAlreadyExists(AccountError):
    code = 3002
    message = "Account already exists"


class InvalidAccount(AccountError):
    code = 3003
    message = "Account does not match the pool"


class InsufficientNativeBalance(AccountError):
    code = 3004
    message = "Insufficient balance to pay rent"


# ═══════════════════════════════════════════════════════════════════════════════
# CUSTODY ERRORS (4000+)
# ═══════════════════════════════════════════════════════════════════════════════

class InsufficientFunds(TokenError):
    code = 4001
    message = "Insufficient funds"


class MintMismatch(TokenError):
    code = 4002
    message = "Token accounts have different mints"


class OwnerMismatch(TokenError):
    code = 4003
    message = "Authority does not own the token account"


class NonZeroBalance(TokenError):
    code = 4004
    message = "Cannot close a token account with a balance"


# ═══════════════════════════════════════════════════════════════════════════════
# RUNTIME ERRORS (5000+)
# ═══════════════════════════════════════════════════════════════════════════════

class InvalidSignature(RuntimeFailure):
    code = 5001
    message = "Invalid transaction signature"


class DuplicateTransaction(RuntimeFailure):
    code = 5002
    message = "Transaction already processed"


class UnknownInstruction(RuntimeFailure):
    code = 5003
    message = "Unknown instruction"


class InvalidInstructionData(RuntimeFailure):
    code = 5004
    message = "Invalid instruction data"


def error_from_code(code: int, detail: str = "") -> Optional[StakingError]:
    """Rebuild a staking error from its code, or None if the code is unknown."""
    cls = _REGISTRY.get(code)
    if cls is None:
        return None
    return cls(detail)
