"""
stakepool - Configuration

Settings come from (highest first): command-line flags, STAKEPOOL_*
environment variables, an optional .env file, defaults below.
"""

from dataclasses import dataclass, asdict
from typing import Optional
import logging
import os

from .addresses import STAKING_PROGRAM_ID
from .custody import DEFAULT_TOKEN_ACCOUNT_RENT
from .processor import DEFAULT_POOL_RENT, DEFAULT_USER_RENT

log = logging.getLogger(__name__)

# =============================================================================
# DEFAULTS
# =============================================================================

DEFAULT_HOST = "127.0.0.1"
DEFAULT_HTTP_PORT = 8899
DEFAULT_RPC_URL = f"http://{DEFAULT_HOST}:{DEFAULT_HTTP_PORT}/rpc"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"

ENV_PREFIX = "STAKEPOOL_"


def load_env_file(path: str):
    """Load KEY=VALUE lines into os.environ without overriding existing values."""
    if not path or not os.path.exists(path):
        return
    log.info(f"Loading config from {path}")
    with open(path) as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith("#") and "=" in line:
                key, value = line.split("=", 1)
                os.environ.setdefault(key.strip(), value.strip().strip('"').strip("'"))


def _env(name: str, default):
    raw = os.environ.get(ENV_PREFIX + name)
    if raw is None or raw == "":
        return default
    if isinstance(default, bool):
        return raw.lower() not in ("0", "false", "no")
    if isinstance(default, int):
        return int(raw)
    return raw


@dataclass
class Config:
    """
    Node and client settings.

    Fields:
      - rpc_url: JSON-RPC endpoint used by clients and the admin CLI
      - host / http_port: where the node listens
      - storage_path: ledger JSON file (None = in-memory)
      - program_id: staking program id
      - pool_rent / user_rent / token_account_rent: rent charged per record
      - manual_clock: drive the node clock by hand (local testing)
      - faucet: serve the unauthenticated `airdrop` RPC (local nodes only)
      - log_level: logging level name
    """
    rpc_url: str = DEFAULT_RPC_URL
    host: str = DEFAULT_HOST
    http_port: int = DEFAULT_HTTP_PORT
    storage_path: Optional[str] = None
    program_id: str = STAKING_PROGRAM_ID
    pool_rent: int = DEFAULT_POOL_RENT
    user_rent: int = DEFAULT_USER_RENT
    token_account_rent: int = DEFAULT_TOKEN_ACCOUNT_RENT
    manual_clock: bool = False
    faucet: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Config":
        if env_file:
            load_env_file(env_file)
        defaults = cls()
        return cls(
            rpc_url=_env("RPC_URL", defaults.rpc_url),
            host=_env("HOST", defaults.host),
            http_port=_env("HTTP_PORT", defaults.http_port),
            storage_path=_env("STORAGE_PATH", defaults.storage_path),
            program_id=_env("PROGRAM_ID", defaults.program_id),
            pool_rent=_env("POOL_RENT", defaults.pool_rent),
            user_rent=_env("USER_RENT", defaults.user_rent),
            token_account_rent=_env("TOKEN_ACCOUNT_RENT", defaults.token_account_rent),
            manual_clock=_env("MANUAL_CLOCK", defaults.manual_clock),
            faucet=_env("FAUCET", defaults.faucet),
            log_level=_env("LOG_LEVEL", defaults.log_level).upper(),
        )

    def to_dict(self) -> dict:
        return asdict(self)


def setup_logging(level: str = "INFO"):
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
