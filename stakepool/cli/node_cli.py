# MIT License
# Copyright (c) 2025 Hashborn

import argparse
import os
import logging
import asyncio
import json
from uvicorn import Config, Server
from stakeproto.crypto.keys import generate_private_key, public_key_from_private
from stakeproto.crypto.addresses import address_from_pubkey
from stakeproto.config.params import get_network, PoolConfig, DECIMALS
from stakeproto.types.account import LedgerAccount
from ..core.pool import StakePool
from ..ledger.base import TransferService
from ..ledger.memory import InMemoryLedger
from ..ledger.http_client import HttpLedgerClient
from ..observability import bind_event_metrics
from ..rpc import api  # module globals are injected below

logger = logging.getLogger(__name__)

OPERATOR_KEY_FILE = "operator_key.hex"
FAUCET_KEY_FILE = "faucet_key.hex"
GENESIS_FILE = "genesis.json"

# Devnet premine for the faucet key, in raw units
GENESIS_PREMINE = 1_000_000 * 10**DECIMALS


def _load_or_create_key(path: str) -> bytes:
    if os.path.exists(path):
        with open(path, "r") as f:
            return bytes.fromhex(f.read().strip())
    priv = generate_private_key()
    with open(path, "w") as f:
        f.write(priv.hex())
    os.chmod(path, 0o600)
    return priv


def cmd_init(args):
    """Initialize node: operator key, devnet faucet key and genesis, data dir."""
    config = get_network(args.network)
    data_dir = args.datadir
    os.makedirs(data_dir, exist_ok=True)

    key_path = os.path.join(data_dir, OPERATOR_KEY_FILE)
    existed = os.path.exists(key_path)
    priv = _load_or_create_key(key_path)
    pub = public_key_from_private(priv)
    addr = address_from_pubkey(pub, prefix=config.address_prefix)
    if existed:
        print(f"Key already exists at {key_path}")
    else:
        print("Generated new operator key.")
    print(f"Custody address: {addr}")
    print(f"PubKey Hex: {pub.hex()}")

    if config.ledger_kind != "memory":
        print(f"\nNetwork {config.network_id} uses an external ledger at {config.ledger_url}; no genesis written.")
        print(f"\nNode initialized in {data_dir}")
        return

    genesis_path = os.path.join(data_dir, GENESIS_FILE)
    if os.path.exists(genesis_path):
        print(f"Genesis already exists at {genesis_path}")
    else:
        faucet_priv = _load_or_create_key(os.path.join(data_dir, FAUCET_KEY_FILE))
        faucet_addr = address_from_pubkey(public_key_from_private(faucet_priv), prefix=config.address_prefix)
        print("\nGenerated FAUCET key (with premine).")
        print(f"Address: {faucet_addr}")
        print("Import it with the client CLI to fund deposits and rewards.")

        genesis_data = {
            "network_id": config.network_id,
            "alloc": {
                faucet_addr: str(GENESIS_PREMINE)
            },
        }
        with open(genesis_path, "w") as f:
            f.write(json.dumps(genesis_data, indent=2))

    print(f"\nNode initialized in {data_dir}")


def load_genesis_alloc(path: str) -> dict:
    """Reads ``{"alloc": {address: amount}}``; missing file means no allocation."""
    if not os.path.exists(path):
        return {}
    with open(path, "r") as f:
        data = json.load(f)
    return {addr: int(amount) for addr, amount in data.get("alloc", {}).items()}


def build_ledger(config: PoolConfig, custody: LedgerAccount, data_dir: str) -> TransferService:
    if config.ledger_kind == "http":
        if not config.ledger_url:
            raise ValueError(f"Network {config.network_id} has no ledger_url configured")
        logger.info(f"Using HTTP ledger at {config.ledger_url}")
        return HttpLedgerClient(custody, config.ledger_url, timeout=config.ledger_timeout_sec)

    if config.ledger_kind != "memory":
        raise ValueError(f"Unknown ledger kind '{config.ledger_kind}'")

    ledger = InMemoryLedger(custody)
    alloc = load_genesis_alloc(os.path.join(data_dir, GENESIS_FILE))
    for addr, amount in alloc.items():
        ledger.mint(LedgerAccount(owner=addr), amount)
    logger.info(f"Using in-memory ledger, {len(alloc)} genesis allocation(s)")
    return ledger


async def run_node_async(args):
    config = get_network(args.network)
    data_dir = args.datadir
    db_path = os.path.join(data_dir, "pool.db")
    key_path = os.path.join(data_dir, OPERATOR_KEY_FILE)

    if not os.path.exists(key_path):
        logger.error(f"No operator key at {key_path}. Run 'init' first.")
        return

    with open(key_path, "r") as f:
        priv_hex = f.read().strip()
    if len(priv_hex) != 64:
        logger.error(f"Invalid operator key length in {key_path}: {len(priv_hex)} chars (expected 64 hex).")
        return

    custody_addr = address_from_pubkey(public_key_from_private(bytes.fromhex(priv_hex)),
                                       prefix=config.address_prefix)

    print("Starting StakePool node...")
    print(f"Network: {config.network_id}")
    print(f"Data DB: {db_path}")
    print(f"Custody: {custody_addr}")
    print(f"RPC: {args.host}:{args.port}")

    transfers = build_ledger(config, LedgerAccount(owner=custody_addr), data_dir)
    pool = StakePool(db_path, transfers, config=config)
    bind_event_metrics(pool.events)

    # Inject into RPC module (global var)
    api.pool = pool

    server = Server(Config(app=api.app, host=args.host, port=args.port, log_level="info"))
    try:
        await server.serve()
    except asyncio.CancelledError:
        pass
    finally:
        api.pool = None
        await pool.close()


def cmd_run(args):
    """Wrapper to run async main."""
    try:
        asyncio.run(run_node_async(args))
    except KeyboardInterrupt:
        pass


def main():
    parser = argparse.ArgumentParser(description="StakePool Node CLI")
    parser.add_argument("--datadir", default="./.stakepool", help="Data directory")
    parser.add_argument("--network", default=None, help="Network name (devnet, testnet, mainnet)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init", help="Initialize node configuration")

    run_parser = subparsers.add_parser("run", help="Run the node")
    run_parser.add_argument("--host", default="0.0.0.0", help="RPC Host")
    run_parser.add_argument("--port", type=int, default=8000, help="RPC Port")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s %(levelname)s: %(message)s',
        datefmt='%H:%M:%S'
    )

    if args.command == "init":
        cmd_init(args)
    elif args.command == "run":
        cmd_run(args)


if __name__ == "__main__":
    main()
