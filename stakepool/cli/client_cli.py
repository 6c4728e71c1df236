# MIT License
# Copyright (c) 2025 Hashborn

import argparse
import sys
import json
import os
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional
import requests
from .keystore import KeyStore, KEYSTORE_DIR
from stakeproto.config.params import get_network, DECIMALS, DENOM, MAX_AMOUNT
from stakeproto.types.account import DEFAULT_SUBACCOUNT, subaccount_from_index
from ..rpc.auth import sign_request

DEFAULT_NODE = "http://localhost:8000"


def get_node_url(args):
    return (args.node or os.environ.get("STAKEPOOL_NODE", DEFAULT_NODE)).rstrip("/")


def to_units(amount: str) -> int:
    """Converts a decimal token amount to raw units."""
    try:
        units = Decimal(amount) * (10 ** DECIMALS)
    except InvalidOperation:
        raise ValueError(f"Invalid amount '{amount}'")
    if not units.is_finite():
        raise ValueError(f"Invalid amount '{amount}'")
    if units != units.to_integral_value():
        raise ValueError(f"Amount '{amount}' has more than {DECIMALS} decimals")
    units = int(units)
    if units < 0 or units > MAX_AMOUNT:
        raise ValueError(f"Amount '{amount}' out of range")
    return units


def format_units(units) -> str:
    return f"{Decimal(int(units)) / (10 ** DECIMALS)} {DENOM}"


def resolve_subaccount(args) -> str:
    if getattr(args, "subaccount", None):
        return args.subaccount
    index = getattr(args, "subaccount_index", None)
    if index is not None:
        return subaccount_from_index(index).hex()
    return DEFAULT_SUBACCOUNT.hex()


def open_keystore(root_dir: str = KEYSTORE_DIR) -> KeyStore:
    """Keystore addressing keys with the prefix of the selected network."""
    return KeyStore(root_dir=root_dir, prefix=get_network().address_prefix)


def load_key(name: str) -> Dict[str, str]:
    key = open_keystore().get_key(name)
    if not key:
        print(f"Key '{name}' not found.")
        sys.exit(1)
    return key


def signed_call(url: str, method: str, path: str, key: Dict[str, str],
                payload: Optional[Dict[str, Any]] = None) -> requests.Response:
    body = json.dumps(payload).encode("utf-8") if payload is not None else b""
    headers = sign_request(bytes.fromhex(key["private_key"]), method, path, body)
    if payload is not None:
        headers["Content-Type"] = "application/json"
    return requests.request(method, f"{url}{path}", data=body or None, headers=headers)


def print_response(resp: requests.Response):
    if resp.status_code != 200:
        print(f"Error ({resp.status_code}): {resp.text}")
        sys.exit(1)
    print(json.dumps(resp.json(), indent=2))


# --- Keys Commands ---
def cmd_keys_add(args):
    ks = open_keystore()
    try:
        key = ks.create_key(args.name)
        print(f"Key '{args.name}' created.")
        print(f"Address: {key['address']}")
        print(f"Pubkey:  {key['public_key']}")
        print("Important: Private key saved unencrypted. Do not share!")
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)


def cmd_keys_import(args):
    ks = open_keystore()
    try:
        key = ks.import_key(args.name, args.private_key)
        print(f"Key '{args.name}' imported.")
        print(f"Address: {key['address']}")
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)


def cmd_keys_list(args):
    keys = open_keystore().list_keys()
    if not keys:
        print("No keys found.")
        return

    print(f"{'Name':<15} {'Address':<45}")
    print("-" * 60)
    for k in keys:
        print(f"{k['name']:<15} {k['address']:<45}")


def cmd_keys_show(args):
    key = load_key(args.name)
    print(json.dumps({k: v for k, v in key.items() if k != 'private_key'}, indent=2))


# --- Query Commands ---
def cmd_query_status(args):
    url = get_node_url(args)
    try:
        print_response(requests.get(f"{url}/status"))
    except requests.RequestException as e:
        print(f"Connection error: {e}")
        sys.exit(1)


def cmd_query_deposits(args):
    url = get_node_url(args)
    key = load_key(args.from_name)
    try:
        resp = signed_call(url, "GET", "/deposits", key)
    except requests.RequestException as e:
        print(f"Connection error: {e}")
        sys.exit(1)
    if resp.status_code != 200:
        print(f"Error ({resp.status_code}): {resp.text}")
        sys.exit(1)

    deposits = resp.json()["deposits"]
    if not deposits:
        print("No active deposits.")
        return
    print(f"{'ID':<8} {'Subaccount':<18} {'Amount':<24} {'Lock':<6} {'Unlock time'}")
    print("-" * 75)
    for d in deposits:
        print(f"{d['id']:<8} {d['subaccount'][:16]:<18} {format_units(d['amount']):<24} "
              f"{d['lock_period_days']:<6} {d['unlock_time']}")


def cmd_query_stake(args):
    url = get_node_url(args)
    key = load_key(args.from_name)
    try:
        resp = signed_call(url, "GET", f"/stake/{resolve_subaccount(args)}", key)
    except requests.RequestException as e:
        print(f"Connection error: {e}")
        sys.exit(1)
    if resp.status_code != 200:
        print(f"Error ({resp.status_code}): {resp.text}")
        sys.exit(1)
    print(f"Stake: {format_units(resp.json()['stake'])}")


def cmd_query_distribution(args):
    url = get_node_url(args)
    path = f"/distributions/{args.distribution_id}" if args.distribution_id is not None else "/distributions"
    try:
        print_response(requests.get(f"{url}{path}"))
    except requests.RequestException as e:
        print(f"Connection error: {e}")
        sys.exit(1)


# --- Tx Commands ---
def submit(url: str, path: str, key: Dict[str, str], payload: Dict[str, Any]):
    try:
        resp = signed_call(url, "POST", path, key, payload)
    except requests.RequestException as e:
        print(f"Connection error: {e}")
        sys.exit(1)
    if resp.status_code == 200:
        print(f"Success! {json.dumps(resp.json())}")
    else:
        print(f"Error ({resp.status_code}): {resp.text}")
        sys.exit(1)


def cmd_tx_deposit(args):
    key = load_key(args.from_name)
    try:
        amount = to_units(args.amount)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

    print(f"Depositing {args.amount} {DENOM} for {args.lock_period} days...")
    submit(get_node_url(args), "/deposits", key, {
        "subaccount": resolve_subaccount(args),
        "lock_period_days": args.lock_period,
        "amount": amount,
    })


def cmd_tx_withdraw(args):
    key = load_key(args.from_name)
    print(f"Withdrawing deposit #{args.deposit_id}...")
    submit(get_node_url(args), "/withdrawals", key, {
        "subaccount": resolve_subaccount(args),
        "deposit_id": args.deposit_id,
    })


def cmd_tx_reward(args):
    key = load_key(args.from_name)
    try:
        amount = to_units(args.amount)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

    print(f"Distributing {args.amount} {DENOM} to stakers...")
    submit(get_node_url(args), "/rewards", key, {"amount": amount})


def _add_subaccount_args(p):
    group = p.add_mutually_exclusive_group()
    group.add_argument("--subaccount", help="Subaccount as 64 hex chars")
    group.add_argument("--subaccount-index", type=int, help="Subaccount derived from a small index")


def main():
    parser = argparse.ArgumentParser(prog="stakepool-cli", description="StakePool Client CLI")
    parser.add_argument("--node", help="Node URL (default: http://localhost:8000)")

    subparsers = parser.add_subparsers(dest="command", help="Sub-commands")

    # keys
    p_keys = subparsers.add_parser("keys", help="Manage keys")
    sp_keys = p_keys.add_subparsers(dest="subcommand")

    pk_add = sp_keys.add_parser("add", help="Create new key")
    pk_add.add_argument("name", help="Key name")

    pk_imp = sp_keys.add_parser("import", help="Import private key")
    pk_imp.add_argument("name", help="Key name")
    pk_imp.add_argument("--private-key", required=True, help="Hex private key")

    sp_keys.add_parser("list", help="List keys")

    pk_show = sp_keys.add_parser("show", help="Show key details")
    pk_show.add_argument("name", help="Key name")

    # query
    p_query = subparsers.add_parser("query", help="Query pool state")
    sp_query = p_query.add_subparsers(dest="subcommand")

    sp_query.add_parser("status", help="Pool status")

    pq_dep = sp_query.add_parser("deposits", help="List your active deposits")
    pq_dep.add_argument("--from", dest="from_name", required=True, help="Key name")

    pq_stake = sp_query.add_parser("stake", help="Stake balance of one subaccount")
    pq_stake.add_argument("--from", dest="from_name", required=True, help="Key name")
    _add_subaccount_args(pq_stake)

    pq_dist = sp_query.add_parser("distribution", help="Distribution receipts")
    pq_dist.add_argument("distribution_id", type=int, nargs="?", help="Distribution id (latest if omitted)")

    # tx
    p_tx = subparsers.add_parser("tx", help="Deposit, withdraw and distribute rewards")
    sp_tx = p_tx.add_subparsers(dest="subcommand")

    pt_dep = sp_tx.add_parser("deposit", help="Lock tokens in the pool")
    pt_dep.add_argument("amount", help=f"Amount in {DENOM}")
    pt_dep.add_argument("--lock-period", type=int, required=True, help="Lock period in days (90, 180 or 360)")
    pt_dep.add_argument("--from", dest="from_name", required=True, help="Depositor key name")
    _add_subaccount_args(pt_dep)

    pt_wd = sp_tx.add_parser("withdraw", help="Withdraw an unlocked deposit")
    pt_wd.add_argument("deposit_id", type=int, help="Deposit id")
    pt_wd.add_argument("--from", dest="from_name", required=True, help="Depositor key name")
    _add_subaccount_args(pt_wd)

    pt_rew = sp_tx.add_parser("reward", help="Distribute a reward to all stakers")
    pt_rew.add_argument("amount", help=f"Amount in {DENOM}")
    pt_rew.add_argument("--from", dest="from_name", required=True, help="Payer key name")

    args = parser.parse_args()

    if args.command == "keys":
        if args.subcommand == "add": cmd_keys_add(args)
        elif args.subcommand == "import": cmd_keys_import(args)
        elif args.subcommand == "list": cmd_keys_list(args)
        elif args.subcommand == "show": cmd_keys_show(args)
        else: p_keys.print_help()

    elif args.command == "query":
        if args.subcommand == "status": cmd_query_status(args)
        elif args.subcommand == "deposits": cmd_query_deposits(args)
        elif args.subcommand == "stake": cmd_query_stake(args)
        elif args.subcommand == "distribution": cmd_query_distribution(args)
        else: p_query.print_help()

    elif args.command == "tx":
        if args.subcommand == "deposit": cmd_tx_deposit(args)
        elif args.subcommand == "withdraw": cmd_tx_withdraw(args)
        elif args.subcommand == "reward": cmd_tx_reward(args)
        else: p_tx.print_help()

    else:
        parser.print_help()


if __name__ == "__main__":
    main()
