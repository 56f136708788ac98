"""
stakepool - Address Derivation

Identities are Ethereum-style checksum addresses. Program-owned accounts
(pool signer, vaults, user records) have derived addresses:

    address = keccak256(seed_0 || ... || seed_n || program_id || "ProgramDerivedAddress")[-20:]

so any party can recompute them from the pool and user identities.
"""

from typing import List, Tuple, Union

from web3 import Web3

from .errors import InvalidInstructionData

Seed = Union[bytes, str]

VAULT_SEED = b"vault"
REWARD_SEED = b"reward"
PDA_MARKER = b"ProgramDerivedAddress"


def program_id_for(name: str) -> str:
    """Deterministic program id for a named program."""
    return to_address(Web3.keccak(text=name)[-20:])


def to_address(value: Union[bytes, str]) -> str:
    """Normalize 20 raw bytes or a hex string to a checksum address."""
    if isinstance(value, (bytes, bytearray)):
        return Web3.to_checksum_address("0x" + bytes(value).hex())
    return Web3.to_checksum_address(value)


def is_address(value) -> bool:
    return isinstance(value, str) and Web3.is_address(value)


def parse_address(value, field: str = "address") -> str:
    """Validate an address received in instruction data."""
    if not is_address(value):
        raise InvalidInstructionData(f"{field}: {value!r} is not an address")
    return Web3.to_checksum_address(value)


def _seed_bytes(seed: Seed) -> bytes:
    if isinstance(seed, (bytes, bytearray)):
        return bytes(seed)
    if is_address(seed):
        return bytes.fromhex(seed[2:])
    return seed.encode("utf-8")


def find_program_address(seeds: List[Seed], program_id: str) -> str:
    """Derive a program-owned address from seeds."""
    data = b"".join(_seed_bytes(s) for s in seeds) + _seed_bytes(program_id) + PDA_MARKER
    return to_address(Web3.keccak(data)[-20:])


def pool_signer_address(pool: str, program_id: str) -> str:
    return find_program_address([pool], program_id)


def vault_address(pool: str, program_id: str) -> str:
    return find_program_address([VAULT_SEED, pool], program_id)


def reward_vault_address(pool: str, program_id: str) -> str:
    return find_program_address([REWARD_SEED, pool], program_id)


def user_address(pool: str, authority: str, program_id: str) -> str:
    return find_program_address([pool, authority], program_id)


def pool_custody(pool: str, program_id: str) -> Tuple[str, str, str]:
    """(pool_signer, vault, reward_vault) of a pool"""
    return (
        pool_signer_address(pool, program_id),
        vault_address(pool, program_id),
        reward_vault_address(pool, program_id),
    )


def mask_key(value: str, visible_prefix: int = 6, visible_suffix: int = 4) -> str:
    """Shorten an address or key for logs. NEVER log full private keys."""
    if not value or len(value) <= visible_prefix + visible_suffix:
        return "***"
    return f"{value[:visible_prefix]}...{value[-visible_suffix:]}"


STAKING_PROGRAM_ID = program_id_for("stakepool.staking")
TOKEN_PROGRAM_ID = program_id_for("stakepool.token")


def associated_token_address(owner: str, mint: str) -> str:
    """Canonical token account of `owner` for `mint`."""
    return find_program_address([owner, mint], TOKEN_PROGRAM_ID)
