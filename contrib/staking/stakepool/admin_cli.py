#!/usr/bin/env python3
"""
stakepool admin tool

Usage:
    stakepool-admin --pool 0x... --authority admin.key pause
    stakepool-admin --pool 0x... --authority admin.key withdraw 0xDEST_TOKEN_ACCOUNT
    stakepool-admin --pool 0x... --authority admin.key free 0xRECEIVER
    stakepool-admin --pool 0x... show

The authority keyfile holds the hex private key on its first line
(chmod 600 recommended!). STAKEPOOL_AUTHORITY_KEY may be used instead.
"""

import argparse
import json
import logging
import os
import sys

from eth_account import Account

from .addresses import mask_key, parse_address
from .config import Config, load_env_file, setup_logging
from .errors import StakingError
from .pool_client import StakingClient
from .rpc_client import RPCClient, RPCError

log = logging.getLogger(__name__)


def load_keyfile(path: str):
    """Load an eth_account LocalAccount from a keyfile."""
    with open(path) as f:
        key = f.readline().strip()
    if not key:
        raise ValueError(f"{path} is empty")
    return Account.from_key(key)


def _authority(args):
    if args.authority:
        return load_keyfile(args.authority)
    key = os.environ.get("STAKEPOOL_AUTHORITY_KEY", "")
    if not key:
        raise ValueError("--authority keyfile or STAKEPOOL_AUTHORITY_KEY required")
    return Account.from_key(key)


# ============ COMMANDS ============

def cmd_toggle(client: StakingClient, args):
    authority = _authority(args)
    receipt = getattr(client, args.command)(args.pool, authority)
    pool = client.get_pool(args.pool)
    print(f"{args.command}: paused={pool['paused']} closed={pool['closed']}")
    print(f"  tx: {receipt['tx_id']}")


def cmd_withdraw(client: StakingClient, args):
    authority = _authority(args)
    before = client.reward_balance(args.pool)
    receipt = client.withdraw_extra(args.pool, authority, parse_address(args.destination, "destination"))
    after = client.reward_balance(args.pool)
    print(f"Withdrew {before - after} extra reward to {args.destination}")
    print(f"  tx: {receipt['tx_id']}")


def cmd_free(client: StakingClient, args):
    authority = _authority(args)
    receipts = client.free_all(args.pool, authority, parse_address(args.receiver, "receiver"))
    print(f"Freed {len(receipts) - 1} users and the pool, rent to {args.receiver}")


def cmd_show(client: StakingClient, args):
    pool = client.get_pool(args.pool)
    pool["vault_amount"] = client.vault_balance(args.pool)
    pool["reward_vault_amount"] = client.reward_balance(args.pool)
    pool["users"] = len(client.get_users(args.pool))
    print(json.dumps(pool, indent=2))


COMMANDS = {
    "pause": cmd_toggle,
    "unpause": cmd_toggle,
    "close": cmd_toggle,
    "open": cmd_toggle,
    "withdraw": cmd_withdraw,
    "free": cmd_free,
    "show": cmd_show,
}


# ============ MAIN ============

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="stakepool pool administration")
    parser.add_argument("--pool", required=True, help="Pool address (0x...)")
    parser.add_argument("--authority", help="Authority keyfile (hex private key)")
    parser.add_argument("--rpc-url", help="Node JSON-RPC URL")
    parser.add_argument("--env-file", default=".env", help="Optional KEY=VALUE file")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("pause", help="Pause every user action")
    subparsers.add_parser("unpause", help="Resume user actions")
    subparsers.add_parser("close", help="Stop new users and new stakes")
    subparsers.add_parser("open", help="Accept new users and stakes again")

    withdraw_parser = subparsers.add_parser("withdraw", help="Withdraw surplus reward (pool must be closed)")
    withdraw_parser.add_argument("destination", help="Destination token account")

    free_parser = subparsers.add_parser("free", help="Free all user records, then the pool")
    free_parser.add_argument("receiver", help="Receiver of the reclaimed rent")

    subparsers.add_parser("show", help="Print pool state")
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    load_env_file(args.env_file)
    config = Config.from_env()
    setup_logging("DEBUG" if args.debug else config.log_level)

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        return 2

    client = StakingClient(RPCClient(args.rpc_url or config.rpc_url), program_id=config.program_id)
    log.debug(f"{args.command} on pool {mask_key(args.pool)}")

    try:
        args.pool = parse_address(args.pool, "pool")
        handler(client, args)
    except StakingError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except (RPCError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
