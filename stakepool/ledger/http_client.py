# MIT License
# Copyright (c) 2025 Hashborn

"""
HTTP binding for an ICRC-style token ledger.

Wire format (JSON):
    POST /icrc2_transfer_from  {"from", "to", "amount", "fee", "memo", "created_at_time"}
    POST /icrc1_transfer       {"from_subaccount", "to", "amount", "fee", "memo", "created_at_time"}
    POST /icrc1_balance_of     {"owner", "subaccount"}

Transfers reply with {"Ok": <block_index>} or {"Err": {<kind>: <details>}}.
Amounts travel as decimal strings so u64 values survive JSON parsers.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from stakeproto.types.account import LedgerAccount
from .base import TransferError, TransferService

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30.0


def _account_json(account: LedgerAccount) -> Dict[str, Any]:
    return {
        "owner": account.owner,
        "subaccount": account.subaccount.hex() if account.subaccount is not None else None,
    }


class HttpLedgerClient(TransferService):
    """
    Ledger client over aiohttp.

    Requests are never retried. A timeout is reported as a failed transfer.
    """

    def __init__(self, custody: LedgerAccount, ledger_url: str, timeout: float = REQUEST_TIMEOUT):
        super().__init__(custody)
        self.ledger_url = ledger_url.rstrip("/")
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def _call(self, method: str, payload: Dict[str, Any]) -> Any:
        url = f"{self.ledger_url}/{method}"
        session = await self._get_session()
        try:
            async with session.post(url, json=payload) as response:
                if response.status != 200:
                    body = await response.text()
                    raise TransferError(f"{method} returned HTTP {response.status}: {body[:200]}", kind="HttpError")
                try:
                    return await response.json()
                except ValueError as e:
                    raise TransferError(f"{method} returned malformed JSON: {e}", kind="Malformed")
        except asyncio.TimeoutError:
            logger.warning(f"Ledger call {method} timed out after {self.timeout}s")
            raise TransferError(f"{method} timed out after {self.timeout}s", kind="Timeout")
        except aiohttp.ClientError as e:
            logger.warning(f"Ledger call {method} failed: {e}")
            raise TransferError(f"{method} failed: {e}", kind="Transport")

    @staticmethod
    def _unwrap(method: str, reply: Any) -> int:
        if not isinstance(reply, dict):
            raise TransferError(f"{method} returned malformed reply: {reply!r}", kind="Malformed")
        if "Ok" in reply:
            try:
                return int(reply["Ok"])
            except (TypeError, ValueError):
                raise TransferError(f"{method} returned non-numeric Ok: {reply['Ok']!r}", kind="Malformed")
        if "Err" in reply:
            err = reply["Err"]
            if isinstance(err, dict) and err:
                kind, details = next(iter(err.items()))
                raise TransferError(f"{kind} {details}", kind=str(kind))
            raise TransferError(str(err))
        raise TransferError(f"{method} returned neither Ok nor Err: {reply!r}", kind="Malformed")

    async def transfer_from(self, payer: LedgerAccount, payee: LedgerAccount, amount: int) -> int:
        payload = {
            "from": _account_json(payer),
            "to": _account_json(payee),
            "amount": str(amount),
            "spender_subaccount": None,
            "fee": None,
            "memo": None,
            "created_at_time": None,
        }
        reply = await self._call("icrc2_transfer_from", payload)
        return self._unwrap("icrc2_transfer_from", reply)

    async def transfer_to(self, payee: LedgerAccount, amount: int) -> int:
        payload = {
            "from_subaccount": self.custody.subaccount.hex() if self.custody.subaccount else None,
            "to": _account_json(payee),
            "amount": str(amount),
            "fee": None,
            "memo": None,
            "created_at_time": None,
        }
        reply = await self._call("icrc1_transfer", payload)
        return self._unwrap("icrc1_transfer", reply)

    async def balance_of(self, account: LedgerAccount) -> Optional[int]:
        try:
            reply = await self._call("icrc1_balance_of", _account_json(account))
        except TransferError as e:
            logger.warning(f"Balance lookup failed: {e}")
            return None
        if isinstance(reply, dict) and "balance" in reply:
            try:
                return int(reply["balance"])
            except (TypeError, ValueError):
                logger.warning(f"Malformed balance reply: {reply!r}")
        return None

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
