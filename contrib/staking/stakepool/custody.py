"""
stakepool - Token Custody

Balance-conserving token accounts. A transfer moves `amount` from a source
account to a destination account of the same mint and is authorized by the
source's owner. Programs call `transfer` directly on behalf of the addresses
they derive (the pool signer); signed transactions reach it through the
`transfer` instruction, which additionally requires the owner's signature.
"""

from dataclasses import dataclass
import logging

from .addresses import TOKEN_PROGRAM_ID, associated_token_address, parse_address
from .errors import (
    InsufficientFunds,
    MintMismatch,
    NonZeroBalance,
    OwnerMismatch,
    Unauthorized,
)
from .runtime import InstructionContext, Program
from .store import AccountStore
from .u64 import check_u64, checked_add

log = logging.getLogger(__name__)

MINT_KIND = "mint"
TOKEN_KIND = "token"

DEFAULT_TOKEN_ACCOUNT_RENT = 2_039_280
DEFAULT_MINT_RENT = 1_461_600


@dataclass
class TokenAccount:
    """Token account: `amount` units of `mint` controlled by `owner`."""
    address: str
    mint: str
    owner: str
    amount: int = 0

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "mint": self.mint,
            "owner": self.owner,
            "amount": self.amount,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TokenAccount":
        return cls(
            address=data["address"],
            mint=data["mint"],
            owner=data["owner"],
            amount=check_u64(data.get("amount", 0), "amount"),
        )


@dataclass
class Mint:
    """Token type with the authority allowed to issue it."""
    address: str
    authority: str
    supply: int = 0

    def to_dict(self) -> dict:
        return {"address": self.address, "authority": self.authority, "supply": self.supply}

    @classmethod
    def from_dict(cls, data: dict) -> "Mint":
        return cls(address=data["address"], authority=data["authority"],
                   supply=check_u64(data.get("supply", 0), "supply"))


class TokenProgram(Program):
    """
    Token custody service.

    Usage:
        token = TokenProgram(store)
        token.transfer(source, destination, authority, 5_000_000)
    """

    program_id = TOKEN_PROGRAM_ID
    instructions = [
        "create_mint",
        "create_account",
        "create_associated_account",
        "mint_to",
        "transfer",
        "close_account",
    ]

    def __init__(self, store: AccountStore,
                 account_rent: int = DEFAULT_TOKEN_ACCOUNT_RENT,
                 mint_rent: int = DEFAULT_MINT_RENT):
        self.store = store
        self.account_rent = account_rent
        self.mint_rent = mint_rent

    # ═══════════════════════════════════════════════════════════════════════
    # READS
    # ═══════════════════════════════════════════════════════════════════════

    def get_account(self, address: str) -> TokenAccount:
        return TokenAccount.from_dict(self.store.get(self.program_id, address, TOKEN_KIND))

    def get_mint(self, address: str) -> Mint:
        return Mint.from_dict(self.store.get(self.program_id, address, MINT_KIND))

    def balance(self, address: str) -> int:
        return self.get_account(address).amount

    def _put(self, account: TokenAccount):
        self.store.put(self.program_id, account.address, TOKEN_KIND, account.to_dict())

    # ═══════════════════════════════════════════════════════════════════════
    # CUSTODY PRIMITIVES (called by programs)
    # ═══════════════════════════════════════════════════════════════════════

    def create_mint(self, address: str, authority: str, payer: str) -> Mint:
        mint = Mint(address=address, authority=authority)
        self.store.create(self.program_id, address, MINT_KIND, mint.to_dict(),
                          payer=payer, rent=self.mint_rent)
        return mint

    def create_account(self, address: str, mint: str, owner: str, payer: str) -> TokenAccount:
        self.get_mint(mint)
        account = TokenAccount(address=address, mint=mint, owner=owner)
        self.store.create(self.program_id, address, TOKEN_KIND, account.to_dict(),
                          payer=payer, rent=self.account_rent)
        return account

    def transfer(self, source: str, destination: str, authority: str, amount: int):
        """
        Move tokens between accounts of the same mint.

        Raises:
            OwnerMismatch: authority does not own the source
            MintMismatch: accounts hold different mints
            InsufficientFunds: source balance below amount
        """
        check_u64(amount, "amount")
        src = self.get_account(source)
        dst = self.get_account(destination)

        if src.owner != authority:
            raise OwnerMismatch(f"{source} is owned by {src.owner}")
        if src.mint != dst.mint:
            raise MintMismatch(f"{src.mint} != {dst.mint}")
        if src.amount < amount:
            raise InsufficientFunds(f"{source} has {src.amount}, needs {amount}")
        if source == destination:
            return

        src.amount -= amount
        dst.amount = checked_add(dst.amount, amount)
        self._put(src)
        self._put(dst)
        log.debug(f"transfer {amount} {source[:10]}.. -> {destination[:10]}..")

    def mint_to(self, mint: str, destination: str, authority: str, amount: int):
        check_u64(amount, "amount")
        mint_info = self.get_mint(mint)
        if mint_info.authority != authority:
            raise Unauthorized(f"{authority} is not the mint authority")
        dst = self.get_account(destination)
        if dst.mint != mint:
            raise MintMismatch(f"{dst.mint} != {mint}")

        mint_info.supply = checked_add(mint_info.supply, amount)
        dst.amount = checked_add(dst.amount, amount)
        self.store.put(self.program_id, mint, MINT_KIND, mint_info.to_dict())
        self._put(dst)

    def close_account(self, account: str, destination: str, authority: str) -> int:
        """
        Close an empty token account, returning its rent to `destination`.

        Raises:
            NonZeroBalance: the account still holds tokens
        """
        token_account = self.get_account(account)
        if token_account.owner != authority:
            raise OwnerMismatch(f"{account} is owned by {token_account.owner}")
        if token_account.amount != 0:
            raise NonZeroBalance(f"{account} holds {token_account.amount}")
        return self.store.close(self.program_id, account, destination)

    # ═══════════════════════════════════════════════════════════════════════
    # SIGNED INSTRUCTIONS
    # ═══════════════════════════════════════════════════════════════════════

    def ix_create_mint(self, ctx: InstructionContext, mint: str, authority: str, payer: str):
        mint, authority, payer = parse_address(mint), parse_address(authority), parse_address(payer)
        ctx.require_signer(mint)
        ctx.require_signer(payer)
        self.create_mint(mint, authority, payer)
        ctx.emit("MintCreated", mint=mint, authority=authority)

    def ix_create_account(self, ctx: InstructionContext, account: str, mint: str,
                          owner: str, payer: str):
        account, owner, payer = parse_address(account), parse_address(owner), parse_address(payer)
        ctx.require_signer(account)
        ctx.require_signer(payer)
        self.create_account(account, parse_address(mint), owner, payer)
        ctx.emit("TokenAccountCreated", account=account, mint=mint, owner=owner)

    def ix_create_associated_account(self, ctx: InstructionContext, owner: str, mint: str,
                                     payer: str):
        owner, mint, payer = parse_address(owner), parse_address(mint), parse_address(payer)
        ctx.require_signer(payer)
        account = associated_token_address(owner, mint)
        self.create_account(account, mint, owner, payer)
        ctx.emit("TokenAccountCreated", account=account, mint=mint, owner=owner)

    def ix_mint_to(self, ctx: InstructionContext, mint: str, destination: str,
                   authority: str, amount: int):
        authority = parse_address(authority)
        ctx.require_signer(authority)
        self.mint_to(parse_address(mint), parse_address(destination), authority, amount)
        ctx.emit("MintTo", mint=mint, destination=destination, amount=amount)

    def ix_transfer(self, ctx: InstructionContext, source: str, destination: str,
                    authority: str, amount: int):
        authority = parse_address(authority)
        ctx.require_signer(authority)
        self.transfer(parse_address(source), parse_address(destination), authority, amount)
        ctx.emit("Transfer", source=source, destination=destination, amount=amount)

    def ix_close_account(self, ctx: InstructionContext, account: str, destination: str,
                         authority: str):
        authority = parse_address(authority)
        ctx.require_signer(authority)
        self.close_account(parse_address(account), parse_address(destination), authority)
        ctx.emit("TokenAccountClosed", account=account)
