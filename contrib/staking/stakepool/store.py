"""
stakepool - Account Store

Persistent records keyed by (owner program, address).

Records are stored serialized (plain dicts), so every instruction re-reads the
current persisted value and nothing is cached between invocations. The store
also keeps native balances used to pay and reclaim storage rent, and the set
of processed transaction ids.

All writes of one instruction happen inside `transaction()`: the state is
snapshotted on entry and restored on any exception, so a failed instruction
leaves the store exactly as it was.
"""

import copy
import json
import logging
import os
import time
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional, Set, Tuple

from .errors import AccountAlreadyExists, AccountNotFound, InsufficientNativeBalance
from .u64 import check_u64, checked_add

log = logging.getLogger(__name__)

STORE_VERSION = "1.0"


class AccountStore:
    """
    Account store with optional JSON persistence.

    Usage:
        store = AccountStore(storage_path="/path/to/ledger.json")

        with store.transaction():
            store.create(program_id, address, "pool", data, payer=payer, rent=rent)

        pool = store.get(program_id, address, "pool")
    """

    def __init__(self, storage_path: Optional[str] = None):
        """
        Initialize account store.

        Args:
            storage_path: Path of the JSON file (None = memory only)
        """
        self.storage_path = storage_path
        self._state = self._empty_state()
        self._processed: Set[str] = set()
        self._pending: List[str] = []
        self._depth = 0
        self._load()

    @staticmethod
    def _empty_state() -> dict:
        return {"records": {}, "native": {}}

    @staticmethod
    def _key(owner: str, address: str) -> str:
        return f"{owner}:{address}"

    # ═══════════════════════════════════════════════════════════════════════
    # PERSISTENCE
    # ═══════════════════════════════════════════════════════════════════════

    def _load(self):
        """Load state from storage."""
        if not self.storage_path or not os.path.exists(self.storage_path):
            return
        with open(self.storage_path, "r") as f:
            data = json.load(f)
        self._state = {
            "records": data.get("records", {}),
            "native": data.get("native", {}),
        }
        self._processed = set(data.get("processed", []))
        log.info(f"Loaded {len(self._state['records'])} records from {self.storage_path}")

    def _save(self):
        """Save state to storage (atomic replace)."""
        if not self.storage_path:
            return
        data = {
            "version": STORE_VERSION,
            "updated_ts": int(time.time()),
            **self._state,
            "processed": sorted(self._processed),
        }
        tmp_path = self.storage_path + ".tmp"
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2, sort_keys=True)
        os.replace(tmp_path, self.storage_path)

    def snapshot(self) -> str:
        """Canonical serialization of the whole state (used to compare states)."""
        return json.dumps({**self._state, "processed": sorted(self._processed)}, sort_keys=True)

    # ═══════════════════════════════════════════════════════════════════════
    # TRANSACTIONS
    # ═══════════════════════════════════════════════════════════════════════

    @contextmanager
    def transaction(self) -> Iterator["AccountStore"]:
        """
        Stage writes; commit on success, restore the snapshot on any error.

        Only records and native balances are snapshotted; transaction ids
        marked inside a failed transaction are removed individually.

        Nested transactions join the outer one.
        """
        if self._depth:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return

        saved = copy.deepcopy(self._state)
        self._pending = []
        self._depth = 1
        try:
            yield self
        except BaseException:
            self._state = saved
            self._processed.difference_update(self._pending)
            raise
        finally:
            self._pending = []
            self._depth = 0
        self._save()

    # ═══════════════════════════════════════════════════════════════════════
    # RECORDS
    # ═══════════════════════════════════════════════════════════════════════

    def exists(self, owner: str, address: str) -> bool:
        return self._key(owner, address) in self._state["records"]

    def get(self, owner: str, address: str, kind: str) -> dict:
        """
        Get a copy of a record's data.

        Raises:
            AccountNotFound: no record of this kind at (owner, address)
        """
        record = self._state["records"].get(self._key(owner, address))
        if record is None or record["kind"] != kind:
            raise AccountNotFound(f"{kind} {address}")
        return copy.deepcopy(record["data"])

    def create(self, owner: str, address: str, kind: str, data: dict,
               payer: str, rent: int):
        """
        Create a record, charging `rent` to the payer's native balance.

        Raises:
            AccountAlreadyExists: address already in use for this owner
            InsufficientNativeBalance: payer cannot afford the rent
        """
        if self.exists(owner, address):
            raise AccountAlreadyExists(f"{kind} {address}")
        self.debit_native(payer, rent)
        self._state["records"][self._key(owner, address)] = {
            "owner": owner,
            "address": address,
            "kind": kind,
            "rent": rent,
            "data": copy.deepcopy(data),
        }

    def put(self, owner: str, address: str, kind: str, data: dict):
        """Overwrite an existing record's data."""
        record = self._state["records"].get(self._key(owner, address))
        if record is None or record["kind"] != kind:
            raise AccountNotFound(f"{kind} {address}")
        record["data"] = copy.deepcopy(data)

    def close(self, owner: str, address: str, receiver: str) -> int:
        """
        Delete a record and credit its rent to the receiver.

        Returns:
            Rent returned
        """
        key = self._key(owner, address)
        record = self._state["records"].pop(key, None)
        if record is None:
            raise AccountNotFound(address)
        self.credit_native(receiver, record["rent"])
        return record["rent"]

    def list_records(self, owner: str, kind: str,
                     where: Optional[Callable[[dict], bool]] = None) -> List[Tuple[str, dict]]:
        """
        List records of a kind owned by a program.

        Args:
            owner: Owning program id
            kind: Record kind
            where: Optional filter on the record data

        Returns:
            List of (address, data) sorted by address
        """
        result = []
        for record in self._state["records"].values():
            if record["owner"] != owner or record["kind"] != kind:
                continue
            if where and not where(record["data"]):
                continue
            result.append((record["address"], copy.deepcopy(record["data"])))
        result.sort(key=lambda x: x[0])
        return result

    # ═══════════════════════════════════════════════════════════════════════
    # NATIVE BALANCES (rent)
    # ═══════════════════════════════════════════════════════════════════════

    def native_balance(self, address: str) -> int:
        return self._state["native"].get(address, 0)

    def credit_native(self, address: str, amount: int):
        check_u64(amount, "amount")
        self._state["native"][address] = checked_add(self.native_balance(address), amount)

    def debit_native(self, address: str, amount: int):
        check_u64(amount, "amount")
        balance = self.native_balance(address)
        if balance < amount:
            raise InsufficientNativeBalance(f"{address} has {balance}, needs {amount}")
        self._state["native"][address] = balance - amount

    # ═══════════════════════════════════════════════════════════════════════
    # PROCESSED TRANSACTIONS
    # ═══════════════════════════════════════════════════════════════════════

    def is_processed(self, tx_id: str) -> bool:
        return tx_id in self._processed

    def mark_processed(self, tx_id: str):
        if tx_id not in self._processed:
            self._processed.add(tx_id)
            self._pending.append(tx_id)

    def stats(self) -> Dict[str, int]:
        kinds: Dict[str, int] = {}
        for record in self._state["records"].values():
            kinds[record["kind"]] = kinds.get(record["kind"], 0) + 1
        kinds["processed"] = len(self._processed)
        return kinds
