"""
stakepool - Ledger Runtime

Sequences transactions, verifies their signatures, and executes each
instruction atomically against the account store.

Flow per transaction:
  1. Verify signatures (every declared signer must have signed)
  2. Reject transactions already processed
  3. Read the clock once
  4. Run the instruction inside a store transaction
  5. Commit (all writes, custody transfers and rent moves) or restore
"""

import inspect
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Set

from .addresses import mask_key
from .errors import (
    DuplicateTransaction,
    InvalidInstructionData,
    MissingSignature,
    StakingError,
    UnknownInstruction,
)
from .store import AccountStore
from .transaction import Transaction

log = logging.getLogger(__name__)


@dataclass
class InstructionContext:
    """What an instruction sees: the store, the time and who signed."""
    store: AccountStore
    now: int
    signers: Set[str]
    program_id: str
    events: List[dict] = field(default_factory=list)

    def require_signer(self, address: str):
        if address not in self.signers:
            raise MissingSignature(address)

    def emit(self, name: str, **payload):
        self.events.append({"event": name, **payload})


@dataclass
class Receipt:
    """Result of a committed transaction"""
    tx_id: str
    program_id: str
    instruction: str
    time: int
    events: List[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "tx_id": self.tx_id,
            "program_id": self.program_id,
            "instruction": self.instruction,
            "time": self.time,
            "events": self.events,
        }


class Program:
    """
    Base class of on-ledger programs.

    Subclasses list their instruction names in `instructions`; each maps to a
    method `ix_<name>(ctx, **args)`.
    """

    program_id: str = ""
    instructions: List[str] = []

    def process(self, ctx: InstructionContext, instruction: str, args: dict):
        if instruction not in self.instructions:
            raise UnknownInstruction(instruction)
        handler = getattr(self, f"ix_{instruction}")
        try:
            inspect.signature(handler).bind(ctx, **args)
        except TypeError as e:
            raise InvalidInstructionData(f"{instruction}: {e}")
        return handler(ctx, **args)


class LedgerRuntime:
    """
    Executes signed transactions one at a time.

    Usage:
        runtime = LedgerRuntime(store, clock)
        runtime.register(staking_program)
        receipt = runtime.process_transaction(tx)
    """

    def __init__(self, store: AccountStore, clock):
        self.store = store
        self.clock = clock
        self.programs: Dict[str, Program] = {}
        self._lock = threading.RLock()

    def register(self, program: Program):
        self.programs[program.program_id] = program

    def process_transaction(self, tx: Transaction) -> Receipt:
        """
        Verify and execute a transaction.

        Raises:
            StakingError: any rejection; the store is left unchanged
        """
        program = self.programs.get(tx.program_id)
        if program is None:
            raise UnknownInstruction(f"unknown program {tx.program_id}")

        with self._lock:
            try:
                signers = tx.verify()
                tx_id = tx.tx_id
                if self.store.is_processed(tx_id):
                    raise DuplicateTransaction(tx_id)

                now = self.clock.now()
                ctx = InstructionContext(
                    store=self.store,
                    now=now,
                    signers=set(signers),
                    program_id=program.program_id,
                )
                with self.store.transaction():
                    program.process(ctx, tx.instruction, tx.args)
                    self.store.mark_processed(tx_id)
            except StakingError as e:
                log.warning(f"Rejected {tx.instruction}: {e.name} {e.detail}".rstrip())
                raise

        log.info(f"Processed {tx.instruction} tx={mask_key(tx_id, 10, 6)} "
                 f"events={len(ctx.events)}")
        return Receipt(
            tx_id=tx_id,
            program_id=program.program_id,
            instruction=tx.instruction,
            time=now,
            events=ctx.events,
        )

    def credit_native(self, address: str, amount: int):
        """Faucet credit (local nodes), serialized with transactions."""
        with self._lock, self.store.transaction():
            self.store.credit_native(address, amount)

    def now(self) -> int:
        return self.clock.now()

    def advance_clock(self, seconds: int) -> int:
        """Advance a manual clock between transactions."""
        with self._lock:
            return self.clock.advance(seconds)
