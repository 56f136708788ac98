"""
stakepool - RPC Client

JSON-RPC client for a stakepool node.
"""

from typing import Any, Dict, List, Optional

import requests

from .config import DEFAULT_RPC_URL
from .errors import StakingError, error_from_code


class RPCError(Exception):
    """
    RPC call failed.

    `error` holds the rebuilt StakingError when the node rejected the call
    with a staking error code.
    """
    def __init__(self, code: int, message: str, error: Optional[StakingError] = None):
        self.code = code
        self.message = message
        self.error = error
        super().__init__(f"RPC Error {code}: {message}")


class RPCClient:
    """
    JSON-RPC client for the stakepool node.

    Usage:
        rpc = RPCClient("http://127.0.0.1:8899/rpc")
        now = rpc.getTime()
        pool = rpc.getPool("0x...")
    """

    def __init__(self, url: str = DEFAULT_RPC_URL, timeout: int = 30):
        self.url = url
        self.timeout = timeout
        self._id = 0

    def _call(self, method: str, params: list = None) -> Any:
        """Make RPC call."""
        self._id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._id,
            "method": method,
            "params": params or []
        }

        try:
            response = requests.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise RPCError(-1, f"Connection failed: {e}")

        result = response.json()

        if "error" in result and result["error"]:
            error = result["error"]
            detail = (error.get("data") or {}).get("detail", "")
            raise RPCError(error["code"], error["message"],
                           error_from_code(error["code"], detail))

        return result.get("result")

    def __getattr__(self, name: str):
        """Allow calling RPC methods as attributes."""
        if name.startswith("_"):
            raise AttributeError(name)

        def method(*args):
            return self._call(name, list(args))
        return method

    # ═══════════════════════════════════════════════════════════════════════
    # NODE METHODS (typed for IDE support)
    # ═══════════════════════════════════════════════════════════════════════

    def sendTransaction(self, tx: dict) -> dict:
        """Submit a signed transaction; returns the receipt."""
        return self._call("sendTransaction", [tx])

    def getPool(self, pool: str) -> dict:
        return self._call("getPool", [pool])

    def getUser(self, pool: str, authority: str) -> dict:
        return self._call("getUser", [pool, authority])

    def getUsers(self, pool: str) -> List[dict]:
        """All user records of a pool."""
        return self._call("getUsers", [pool])

    def getTokenAccount(self, address: str) -> dict:
        return self._call("getTokenAccount", [address])

    def getMint(self, address: str) -> dict:
        return self._call("getMint", [address])

    def getBalance(self, address: str) -> int:
        """Native (rent) balance."""
        return self._call("getBalance", [address])

    def getTime(self) -> int:
        return self._call("getTime")

    def getStats(self) -> Dict[str, Any]:
        return self._call("getStats")

    def airdrop(self, address: str, amount: int) -> int:
        """Local nodes started with the faucet only."""
        return self._call("airdrop", [address, amount])

    def advanceTime(self, seconds: int) -> int:
        """Local nodes started with a manual clock only; returns the new time."""
        return self._call("advanceTime", [seconds])
