# MIT License
# Copyright (c) 2025 Hashborn

import asyncio
import pytest
from aiohttp import web
from aiohttp import test_utils
from stakeproto.types.account import LedgerAccount, subaccount_from_index
from stakepool.ledger.base import TransferError
from stakepool.ledger.http_client import HttpLedgerClient

CUSTODY = LedgerAccount(owner="stk1custody")
ALICE = LedgerAccount(owner="stk1alice", subaccount=subaccount_from_index(1))


def make_app(replies, seen, delay=0.0):
    """Ledger stub answering each method with a canned JSON reply."""
    app = web.Application()

    def route(method):
        async def handler(request):
            seen.append((method, await request.json()))
            if delay:
                await asyncio.sleep(delay)
            reply = replies[method]
            if callable(reply):
                return reply()
            return web.json_response(reply)
        return handler

    for method in ["icrc2_transfer_from", "icrc1_transfer", "icrc1_balance_of"]:
        app.router.add_post(f"/{method}", route(method))
    return app


async def with_ledger(replies, action, delay=0.0, timeout=5.0):
    seen = []
    server = test_utils.TestServer(make_app(replies, seen, delay))
    await server.start_server()
    client = HttpLedgerClient(CUSTODY, str(server.make_url("/")), timeout=timeout)
    try:
        return await action(client), seen
    finally:
        await client.close()
        await server.close()


def test_transfer_from_ok():
    result, seen = asyncio.run(with_ledger(
        {"icrc2_transfer_from": {"Ok": 17}},
        lambda c: c.transfer_from(ALICE, CUSTODY, 2**64 - 1),
    ))
    assert result == 17
    method, payload = seen[0]
    assert method == "icrc2_transfer_from"
    assert payload["from"] == {"owner": "stk1alice", "subaccount": ALICE.subaccount.hex()}
    assert payload["to"] == {"owner": "stk1custody", "subaccount": None}
    assert payload["amount"] == str(2**64 - 1)


def test_transfer_to_ok():
    result, seen = asyncio.run(with_ledger(
        {"icrc1_transfer": {"Ok": "5"}},
        lambda c: c.transfer_to(ALICE, 250),
    ))
    assert result == 5
    assert seen[0][1]["from_subaccount"] is None
    assert seen[0][1]["amount"] == "250"


def test_ledger_err_reply():
    async def action(client):
        with pytest.raises(TransferError) as exc:
            await client.transfer_from(ALICE, CUSTODY, 10)
        return exc.value

    error, _ = asyncio.run(with_ledger(
        {"icrc2_transfer_from": {"Err": {"InsufficientAllowance": {"allowance": "3"}}}},
        action,
    ))
    assert error.kind == "InsufficientAllowance"
    assert "allowance" in error.reason


def test_http_error_status():
    async def action(client):
        with pytest.raises(TransferError) as exc:
            await client.transfer_to(ALICE, 10)
        return exc.value

    error, _ = asyncio.run(with_ledger(
        {"icrc1_transfer": lambda: web.Response(status=500, text="boom")},
        action,
    ))
    assert error.kind == "HttpError"
    assert "500" in error.reason


def test_malformed_reply():
    async def action(client):
        with pytest.raises(TransferError) as exc:
            await client.transfer_to(ALICE, 10)
        return exc.value

    replies = [
        {"Maybe": 1},
        {"Ok": "abc"},
        {"Ok": None},
        lambda: web.Response(text="not json", content_type="application/json"),
    ]
    for reply in replies:
        error, _ = asyncio.run(with_ledger({"icrc1_transfer": reply}, action))
        assert error.kind == "Malformed"


def test_malformed_balance_reply_is_unknown():
    result, _ = asyncio.run(with_ledger({"icrc1_balance_of": {"balance": "lots"}}, lambda c: c.balance_of(ALICE)))
    assert result is None


def test_timeout_is_a_failed_transfer_not_retried():
    async def action(client):
        with pytest.raises(TransferError) as exc:
            await client.transfer_to(ALICE, 10)
        return exc.value

    error, seen = asyncio.run(with_ledger({"icrc1_transfer": {"Ok": 1}}, action, delay=2.0, timeout=0.2))
    assert error.kind in ("Timeout", "Transport")
    assert len(seen) == 1


def test_balance_of():
    result, _ = asyncio.run(with_ledger({"icrc1_balance_of": {"balance": "42"}}, lambda c: c.balance_of(ALICE)))
    assert result == 42


def test_unreachable_ledger():
    async def scenario():
        client = HttpLedgerClient(CUSTODY, "http://127.0.0.1:9", timeout=1.0)
        try:
            with pytest.raises(TransferError):
                await client.transfer_from(ALICE, CUSTODY, 1)
            assert await client.balance_of(ALICE) is None
        finally:
            await client.close()

    asyncio.run(scenario())
