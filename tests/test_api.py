# MIT License
# Copyright (c) 2025 Hashborn

"""
RPC Tests

Signed requests through FastAPI's TestClient against an in-memory pool.
"""

import asyncio
import json
import time
import pytest
from fastapi.testclient import TestClient
from stakeproto.crypto.keys import generate_private_key, public_key_from_private
from stakeproto.crypto.addresses import address_from_pubkey
from stakeproto.types.account import LedgerAccount, DEFAULT_SUBACCOUNT, subaccount_from_index
from stakeproto.config.params import SECONDS_PER_DAY
from stakepool.core.clock import ManualClock
from stakepool.core.pool import StakePool
from stakepool.ledger.memory import InMemoryLedger
from stakepool.rpc import api
from stakepool.rpc.auth import sign_request, SIGNATURE_HEADER, TIMESTAMP_HEADER

CUSTODY = LedgerAccount(owner="stk1custody")
SUB = DEFAULT_SUBACCOUNT.hex()


class User:
    def __init__(self):
        self.priv = generate_private_key()
        self.address = address_from_pubkey(public_key_from_private(self.priv), prefix="stk")

    def get(self, client, path):
        return client.get(path, headers=sign_request(self.priv, "GET", path))

    def post(self, client, path, payload):
        body = json.dumps(payload).encode("utf-8")
        headers = sign_request(self.priv, "POST", path, body)
        headers["Content-Type"] = "application/json"
        return client.post(path, content=body, headers=headers)


@pytest.fixture
def node():
    ledger = InMemoryLedger(CUSTODY)
    clock = ManualClock(start=1_700_000_000)
    pool = StakePool(":memory:", ledger, clock=clock)
    api.pool = pool
    client = TestClient(api.app)
    yield client, pool, ledger, clock
    api.pool = None
    asyncio.run(pool.close())


def fund(ledger, user, amount, subaccount=None):
    ledger.mint(LedgerAccount(owner=user.address, subaccount=subaccount), amount)


def test_uninitialized_node_returns_503():
    api.pool = None
    client = TestClient(api.app)
    assert client.get("/status").status_code == 503


def test_status(node):
    client, pool, _, _ = node
    resp = client.get("/status")
    assert resp.status_code == 200
    data = resp.json()
    assert data["custody"] == "stk1custody"
    assert data["total_stake"] == "0"
    assert data["state_root"] == pool.status()["state_root"]


def test_deposit_and_query(node):
    client, _, ledger, _ = node
    alice = User()
    fund(ledger, alice, 1_000)

    resp = alice.post(client, "/deposits", {"subaccount": SUB, "lock_period_days": 90, "amount": 400})
    assert resp.status_code == 200, resp.text
    deposit = resp.json()["deposit"]
    assert deposit["id"] == 1
    assert deposit["amount"] == 400
    assert resp.json()["owner"] == alice.address

    resp = alice.get(client, f"/stake/{SUB}")
    assert resp.status_code == 200
    assert resp.json()["stake"] == "400"

    resp = alice.get(client, "/deposits")
    assert resp.status_code == 200
    listed = resp.json()["deposits"]
    assert [(d["id"], d["subaccount"], d["amount"]) for d in listed] == [(1, SUB, 400)]
    assert listed[0]["unlock_time"] == 1_700_000_000 + 90 * SECONDS_PER_DAY

    # Another caller sees nothing
    bob = User()
    assert bob.get(client, "/deposits").json()["deposits"] == []
    assert bob.get(client, f"/stake/{SUB}").json()["stake"] == "0"


def test_withdraw_flow(node):
    client, _, ledger, clock = node
    alice = User()
    sub = subaccount_from_index(7)
    fund(ledger, alice, 100, subaccount=sub)
    alice.post(client, "/deposits", {"subaccount": sub.hex(), "lock_period_days": 180, "amount": 100})

    resp = alice.post(client, "/withdrawals", {"subaccount": sub.hex(), "deposit_id": 1})
    assert resp.status_code == 409
    assert resp.json()["error"] == "LockPeriodNotExpired"

    clock.advance(180 * SECONDS_PER_DAY)
    resp = alice.post(client, "/withdrawals", {"subaccount": sub.hex(), "deposit_id": 1})
    assert resp.status_code == 200
    assert resp.json()["amount"] == "100"
    assert ledger.balance(LedgerAccount(owner=alice.address, subaccount=sub)) == 100

    resp = alice.post(client, "/withdrawals", {"subaccount": sub.hex(), "deposit_id": 1})
    assert resp.status_code == 404
    assert resp.json()["error"] == "NoDepositFound"


def test_error_mapping(node):
    client, _, ledger, _ = node
    alice = User()

    resp = alice.post(client, "/deposits", {"subaccount": SUB, "lock_period_days": 30, "amount": 1})
    assert resp.status_code == 400
    assert resp.json() == {"error": "InvalidLockPeriod", "detail": "Invalid lock period: 30 days"}

    # Not funded
    resp = alice.post(client, "/deposits", {"subaccount": SUB, "lock_period_days": 90, "amount": 1})
    assert resp.status_code == 502
    assert resp.json()["error"] == "LedgerTransferFailed"

    fund(ledger, alice, 50)
    resp = alice.post(client, "/rewards", {"amount": 50})
    assert resp.status_code == 422
    assert resp.json()["error"] == "NoStakerFound"

    resp = alice.post(client, "/deposits", {"subaccount": "abcd", "lock_period_days": 90, "amount": 1})
    assert resp.status_code == 422


def test_reward_distribution_and_receipts(node):
    client, _, ledger, _ = node
    alice, bob, operator = User(), User(), User()
    fund(ledger, alice, 100)
    fund(ledger, bob, 300)
    fund(ledger, operator, 400)
    alice.post(client, "/deposits", {"subaccount": SUB, "lock_period_days": 90, "amount": 100})
    bob.post(client, "/deposits", {"subaccount": SUB, "lock_period_days": 360, "amount": 300})

    resp = operator.post(client, "/rewards", {"amount": 400})
    assert resp.status_code == 200
    assert resp.json() == {"success": True}
    assert ledger.balance(LedgerAccount(owner=alice.address)) == 100
    assert ledger.balance(LedgerAccount(owner=bob.address)) == 300

    receipts = client.get("/distributions").json()
    assert len(receipts) == 1
    receipt = client.get(f"/distributions/{receipts[0]['distribution_id']}").json()
    assert receipt["status"] == "completed"
    assert receipt["source"] == operator.address
    assert sorted(p["amount"] for p in receipt["payouts"]) == ["100", "300"]

    assert client.get("/distributions/99").status_code == 404


def test_balance_lookup(node):
    client, _, ledger, _ = node
    alice = User()
    fund(ledger, alice, 123)
    resp = client.get(f"/balance/{alice.address}")
    assert resp.status_code == 200
    assert resp.json()["balance"] == "123"


def test_unsigned_request_rejected(node):
    client, _, _, _ = node
    resp = client.get("/deposits")
    assert resp.status_code == 401


def test_tampered_body_rejected(node):
    client, pool, ledger, _ = node
    alice = User()
    fund(ledger, alice, 1_000)
    body = json.dumps({"subaccount": SUB, "lock_period_days": 90, "amount": 10}).encode("utf-8")
    headers = sign_request(alice.priv, "POST", "/deposits", body)
    headers["Content-Type"] = "application/json"
    tampered = body.replace(b"10}", b"999}")

    resp = client.post("/deposits", content=tampered, headers=headers)
    assert resp.status_code == 401
    assert pool.state.last_deposit_id() == 0


def test_signature_for_other_path_rejected(node):
    client, _, _, _ = node
    alice = User()
    headers = sign_request(alice.priv, "GET", "/deposits")
    assert client.get(f"/stake/{SUB}", headers=headers).status_code == 401


def test_stale_timestamp_rejected(node):
    client, pool, _, _ = node
    alice = User()
    stale = int(time.time()) - pool.config.auth_max_skew_sec - 10
    headers = sign_request(alice.priv, "GET", "/deposits", timestamp=stale)
    resp = client.get("/deposits", headers=headers)
    assert resp.status_code == 401
    assert "skew" in resp.json()["detail"]


def test_garbage_headers_rejected(node):
    client, _, _, _ = node
    alice = User()
    headers = sign_request(alice.priv, "GET", "/deposits")
    headers[SIGNATURE_HEADER] = "zz"
    assert client.get("/deposits", headers=headers).status_code == 401
    headers = sign_request(alice.priv, "GET", "/deposits")
    headers[TIMESTAMP_HEADER] = "yesterday"
    assert client.get("/deposits", headers=headers).status_code == 401


def test_metrics_endpoint(node):
    client, _, ledger, _ = node
    alice = User()
    fund(ledger, alice, 10)
    alice.post(client, "/deposits", {"subaccount": SUB, "lock_period_days": 90, "amount": 10})

    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "stakepool_total_stake 10.0" in resp.text
    assert "stakepool_active_deposits 1.0" in resp.text


def test_replayed_request_rejected(node):
    client, pool, ledger, _ = node
    alice = User()
    fund(ledger, alice, 1_000)
    body = json.dumps({"subaccount": SUB, "lock_period_days": 90, "amount": 100}).encode("utf-8")
    headers = sign_request(alice.priv, "POST", "/deposits", body)
    headers["Content-Type"] = "application/json"

    assert client.post("/deposits", content=body, headers=headers).status_code == 200
    resp = client.post("/deposits", content=body, headers=headers)
    assert resp.status_code == 401
    assert "already used" in resp.json()["detail"]

    assert len(pool.list_my_deposits(alice.address)) == 1
    assert ledger.balance(LedgerAccount(owner=alice.address)) == 900

    # Re-signing the same body is a new request
    assert alice.post(client, "/deposits", {"subaccount": SUB, "lock_period_days": 90, "amount": 100}).status_code == 200
    assert len(pool.list_my_deposits(alice.address)) == 2
