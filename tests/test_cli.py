# MIT License
# Copyright (c) 2025 Hashborn

import json
import os
import shutil
from argparse import Namespace
import pytest
from stakeproto.config.params import NETWORKS, DECIMALS
from stakeproto.crypto.addresses import is_valid_address
from stakeproto.types.account import LedgerAccount
from stakepool.cli.keystore import KeyStore
from stakepool.cli.node_cli import cmd_init, build_ledger, load_genesis_alloc, GENESIS_FILE, OPERATOR_KEY_FILE
from stakepool.cli.client_cli import to_units, format_units, open_keystore
from stakepool.ledger.memory import InMemoryLedger
from stakepool.ledger.http_client import HttpLedgerClient

TEST_DIR = "./test_cli_data"


@pytest.fixture
def data_dir():
    if os.path.exists(TEST_DIR):
        shutil.rmtree(TEST_DIR)
    os.makedirs(TEST_DIR)
    yield TEST_DIR
    if os.path.exists(TEST_DIR):
        shutil.rmtree(TEST_DIR)


def test_keystore(data_dir):
    ks = KeyStore(root_dir=os.path.join(data_dir, "keys"), prefix="stk")
    key = ks.create_key("alice")
    assert is_valid_address(key["address"], expected_prefix="stk")

    with pytest.raises(ValueError):
        ks.create_key("alice")

    imported = ks.import_key("copy", key["private_key"])
    assert imported["address"] == key["address"]

    with pytest.raises(ValueError):
        ks.import_key("bad", "zz")
    with pytest.raises(ValueError):
        ks.import_key("short", "abcd")

    assert [k["name"] for k in ks.list_keys()] == ["alice", "copy"]
    assert "private_key" not in ks.list_keys()[0]
    assert ks.get_key("missing") is None


def test_init_writes_key_and_genesis(data_dir):
    cmd_init(Namespace(datadir=data_dir, network="devnet"))

    assert os.path.exists(os.path.join(data_dir, OPERATOR_KEY_FILE))
    with open(os.path.join(data_dir, GENESIS_FILE)) as f:
        genesis = json.load(f)
    assert len(genesis["alloc"]) == 1

    # Running init again keeps the existing key
    with open(os.path.join(data_dir, OPERATOR_KEY_FILE)) as f:
        first_key = f.read()
    cmd_init(Namespace(datadir=data_dir, network="devnet"))
    with open(os.path.join(data_dir, OPERATOR_KEY_FILE)) as f:
        assert f.read() == first_key


def test_build_memory_ledger_applies_genesis(data_dir):
    with open(os.path.join(data_dir, GENESIS_FILE), "w") as f:
        json.dump({"alloc": {"stk1alice": "500", "stk1bob": 7}}, f)

    assert load_genesis_alloc(os.path.join(data_dir, GENESIS_FILE)) == {"stk1alice": 500, "stk1bob": 7}
    ledger = build_ledger(NETWORKS["devnet"], LedgerAccount(owner="stk1custody"), data_dir)

    assert isinstance(ledger, InMemoryLedger)
    assert ledger.balance(LedgerAccount(owner="stk1alice")) == 500
    assert ledger.balance(LedgerAccount(owner="stk1bob")) == 7


def test_build_http_ledger(data_dir):
    ledger = build_ledger(NETWORKS["testnet"], LedgerAccount(owner="stk1custody"), data_dir)
    assert isinstance(ledger, HttpLedgerClient)
    assert ledger.ledger_url == "http://localhost:8080"
    assert ledger.timeout == NETWORKS["testnet"].ledger_timeout_sec


def test_missing_genesis_means_no_alloc(data_dir):
    assert load_genesis_alloc(os.path.join(data_dir, "nope.json")) == {}


def test_amount_units():
    assert to_units("1") == 10**DECIMALS
    assert to_units("0.00000001") == 1
    assert to_units("2.5") == 25 * 10**(DECIMALS - 1)
    for bad in ["abc", "0.000000001", "-1", "inf"]:
        with pytest.raises(ValueError):
            to_units(bad)
    assert format_units(150_000_000) == "1.5 stk"


def test_keystore_follows_selected_network(data_dir, monkeypatch):
    monkeypatch.setenv("STAKEPOOL_NETWORK", "testnet")
    ks = open_keystore(root_dir=os.path.join(data_dir, "keys"))
    assert ks.prefix == NETWORKS["testnet"].address_prefix
    assert is_valid_address(ks.create_key("carol")["address"], expected_prefix="stkt")

    monkeypatch.delenv("STAKEPOOL_NETWORK")
    assert open_keystore(root_dir=os.path.join(data_dir, "keys")).prefix == "stk"
