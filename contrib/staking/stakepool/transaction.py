"""
stakepool - Signed Transactions

A transaction names one instruction of one program, its arguments, and the
addresses that must sign it. Each signer signs the canonical message with its
secp256k1 key (EIP-191 personal message); the runtime recovers the signer
addresses from the signatures before executing anything.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional
import json
import secrets

from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3

from .addresses import to_address
from .errors import InvalidInstructionData, InvalidSignature, MissingSignature


@dataclass
class Transaction:
    """
    Structure:
      - program_id: program that processes the instruction
      - instruction: instruction name (e.g. "stake")
      - args: instruction accounts and data, JSON-serializable
      - signers: addresses that must sign
      - nonce: random hex, makes otherwise identical transactions distinct
      - signatures: signer address -> 0x-prefixed signature hex
    """
    program_id: str
    instruction: str
    args: Dict = field(default_factory=dict)
    signers: List[str] = field(default_factory=list)
    nonce: str = field(default_factory=lambda: secrets.token_hex(16))
    signatures: Dict[str, str] = field(default_factory=dict)

    def signing_message(self) -> str:
        """Get message to sign (canonical format)."""
        return json.dumps({
            "program_id": self.program_id,
            "instruction": self.instruction,
            "args": self.args,
            "signers": self.signers,
            "nonce": self.nonce,
        }, sort_keys=True, separators=(",", ":"))

    @property
    def tx_id(self) -> str:
        return "0x" + bytes(Web3.keccak(text=self.signing_message())).hex()

    def sign(self, *accounts) -> "Transaction":
        """
        Sign with eth_account LocalAccounts (or raw private keys).

        Each account must be one of the declared signers.
        """
        message = encode_defunct(text=self.signing_message())
        for account in accounts:
            if not hasattr(account, "sign_message"):
                account = Account.from_key(account)
            if account.address not in self.signers:
                raise MissingSignature(f"{account.address} is not a declared signer")
            signed = account.sign_message(message)
            self.signatures[account.address] = "0x" + bytes(signed.signature).hex()
        return self

    def verify(self) -> List[str]:
        """
        Verify that every declared signer signed.

        Returns:
            The verified signer addresses

        Raises:
            MissingSignature: a declared signer has no signature
            InvalidSignature: a signature does not recover to its signer
        """
        message = encode_defunct(text=self.signing_message())
        verified = []
        for signer in self.signers:
            signature = self.signatures.get(signer)
            if not signature:
                raise MissingSignature(signer)
            try:
                recovered = Account.recover_message(message, signature=signature)
            except Exception as e:
                # eth_keys raises its own ValidationError/BadSignature types
                raise InvalidSignature(f"{signer}: {e}")
            if recovered != signer:
                raise InvalidSignature(signer)
            verified.append(signer)
        return verified

    def to_dict(self) -> dict:
        return {
            "program_id": self.program_id,
            "instruction": self.instruction,
            "args": self.args,
            "signers": self.signers,
            "nonce": self.nonce,
            "signatures": self.signatures,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Transaction":
        try:
            return cls(
                program_id=to_address(data["program_id"]),
                instruction=str(data["instruction"]),
                args=dict(data.get("args", {})),
                signers=[to_address(s) for s in data.get("signers", [])],
                nonce=str(data.get("nonce", "")),
                signatures={to_address(k): v for k, v in data.get("signatures", {}).items()},
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise InvalidInstructionData(f"malformed transaction: {e}")

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_json(cls, json_str: str) -> "Transaction":
        return cls.from_dict(json.loads(json_str))


def build(program_id: str, instruction: str, args: Optional[Dict] = None,
          signers: Optional[List[str]] = None) -> Transaction:
    """Build an unsigned transaction with de-duplicated signers."""
    ordered = []
    for signer in signers or []:
        signer = to_address(signer)
        if signer not in ordered:
            ordered.append(signer)
    return Transaction(program_id=program_id, instruction=instruction,
                       args=dict(args or {}), signers=ordered)
