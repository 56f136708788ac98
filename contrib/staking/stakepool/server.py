#!/usr/bin/env python3
"""
stakepool Node Server - JSON-RPC + REST API

Endpoints:
  POST /rpc                        - JSON-RPC 2.0 (see RPC_METHODS)
  GET  /health                     - Liveness
  GET  /api/status                 - Node time, program ids, record counts
  GET  /api/pool/<address>         - Pool record with vault balances
  GET  /api/pool/<address>/users   - User records of a pool
"""

import argparse
import logging
import time

from flask import Flask, jsonify, request
from flask_cors import CORS

from .config import Config, load_env_file, setup_logging
from .errors import StakingError
from .node import StakingNode

log = logging.getLogger(__name__)

# JSON-RPC method -> node method
RPC_METHODS = {
    "sendTransaction": "send_transaction",
    "getPool": "get_pool",
    "getUser": "get_user",
    "getUsers": "get_users",
    "getTokenAccount": "get_token_account",
    "getMint": "get_mint",
    "getBalance": "get_balance",
    "getTime": "get_time",
    "getStats": "get_stats",
}

# Local-node only
FAUCET_METHODS = {"airdrop": "airdrop"}
MANUAL_CLOCK_METHODS = {"advanceTime": "advance_time"}

# JSON-RPC 2.0 reserved codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


def _rpc_error(req_id, code: int, message: str, data=None):
    error = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return jsonify({"jsonrpc": "2.0", "id": req_id, "error": error})


def rpc_methods(node: StakingNode) -> dict:
    """RPC methods served by `node`; faucet and clock control only on local nodes."""
    methods = dict(RPC_METHODS)
    if node.config.faucet:
        methods.update(FAUCET_METHODS)
    if node.manual_clock:
        methods.update(MANUAL_CLOCK_METHODS)
    return methods


def create_app(node: StakingNode) -> Flask:
    """Build the Flask app serving `node`."""
    app = Flask(__name__)
    CORS(app)
    app.config["NODE"] = node
    methods = rpc_methods(node)

    # =========================================================================
    # HEALTH
    # =========================================================================

    @app.route('/health')
    def health():
        """Simple health check - returns ok if server is running"""
        return jsonify({'ok': True, 'timestamp': int(time.time()), 'node_time': node.get_time()})

    @app.route('/api/status')
    def api_status():
        return jsonify({'status': 'ok', **node.get_stats()})

    # =========================================================================
    # REST
    # =========================================================================

    @app.route('/api/pool/<address>')
    def api_pool(address):
        try:
            pool = node.get_pool(address)
            pool['vault_amount'] = node.get_token_account(pool['vault'])['amount']
            pool['reward_vault_amount'] = node.get_token_account(pool['reward_vault'])['amount']
        except StakingError as e:
            status = 404 if e.kind == "account" else 400
            return jsonify({'error': e.to_dict()}), status
        return jsonify(pool)

    @app.route('/api/pool/<address>/users')
    def api_pool_users(address):
        try:
            users = node.get_users(address)
        except StakingError as e:
            return jsonify({'error': e.to_dict()}), 400
        return jsonify({'users': users, 'count': len(users)})

    # =========================================================================
    # JSON-RPC
    # =========================================================================

    @app.route('/rpc', methods=['POST'])
    def rpc():
        data = request.get_json(silent=True)
        if data is None:
            return _rpc_error(None, PARSE_ERROR, "Parse error")
        if not isinstance(data, dict) or "method" not in data:
            return _rpc_error(None, INVALID_REQUEST, "Invalid request")

        req_id = data.get("id")
        method = data["method"]
        params = data.get("params") or []

        target = methods.get(method)
        if target is None:
            return _rpc_error(req_id, METHOD_NOT_FOUND, f"Method not found: {method}")

        try:
            if isinstance(params, dict):
                result = getattr(node, target)(**params)
            else:
                result = getattr(node, target)(*params)
        except StakingError as e:
            error = e.to_dict()
            return _rpc_error(req_id, error["code"], error["message"], error["data"])
        except (TypeError, ValueError) as e:
            return _rpc_error(req_id, INVALID_PARAMS, f"Invalid params: {e}")
        except Exception as e:
            log.exception(f"RPC {method} failed")
            return _rpc_error(req_id, INTERNAL_ERROR, str(e))

        return jsonify({"jsonrpc": "2.0", "id": req_id, "result": result})

    return app


# =============================================================================
# MAIN
# =============================================================================

def main(argv=None):
    parser = argparse.ArgumentParser(description="stakepool ledger node")
    parser.add_argument("--env-file", default=".env", help="Optional KEY=VALUE file")
    parser.add_argument("--host", help="Listen address")
    parser.add_argument("--port", type=int, help="HTTP port")
    parser.add_argument("--storage", help="Ledger JSON file (default: in-memory)")
    parser.add_argument("--manual-clock", action="store_true",
                        help="Drive the clock through the advanceTime RPC (implies --faucet)")
    parser.add_argument("--faucet", action="store_true", help="Serve the airdrop RPC")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    args = parser.parse_args(argv)

    load_env_file(args.env_file)
    config = Config.from_env()
    if args.host:
        config.host = args.host
    if args.port:
        config.http_port = args.port
    if args.storage:
        config.storage_path = args.storage
    if args.manual_clock:
        config.manual_clock = True
        config.faucet = True
    if args.faucet:
        config.faucet = True
    if args.log_level:
        config.log_level = args.log_level

    setup_logging(config.log_level)

    node = StakingNode(config)
    app = create_app(node)

    log.info("=" * 60)
    log.info(f"stakepool node on http://{config.host}:{config.http_port}")
    log.info(f"Storage: {config.storage_path or 'memory'}")
    if config.faucet or config.manual_clock:
        log.warning(f"Local-node RPCs enabled: faucet={config.faucet} manual_clock={config.manual_clock}")
    log.info("=" * 60)

    app.run(host=config.host, port=config.http_port, debug=False, threaded=True)


if __name__ == '__main__':
    main()
