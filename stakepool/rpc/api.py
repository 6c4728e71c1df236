# MIT License
# Copyright (c) 2025 Hashborn

from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field, field_validator
from typing import Optional
from stakeproto.types.account import LedgerAccount, coerce_subaccount
from stakeproto.types.common import DepositError, ValidationError
from stakeproto.config.params import MAX_AMOUNT
from ..core.pool import StakePool
from .auth import AuthError, ReplayCache, authenticate
import logging

logger = logging.getLogger(__name__)

app = FastAPI(title="StakePool Node RPC")

pool: Optional[StakePool] = None
replay_cache = ReplayCache()

# DepositError.code -> HTTP status
ERROR_STATUS = {
    "InvalidLockPeriod": 400,
    "NoDepositFound": 404,
    "LockPeriodNotExpired": 409,
    "OperationInProgress": 409,
    "NoStakerFound": 422,
    "LedgerTransferFailed": 502,
}


class DepositRequest(BaseModel):
    subaccount: str
    lock_period_days: int
    amount: int = Field(ge=0, le=MAX_AMOUNT)

    @field_validator("subaccount")
    @classmethod
    def _check_subaccount(cls, value: str) -> str:
        coerce_subaccount(value)
        return value


class WithdrawRequest(BaseModel):
    subaccount: str
    deposit_id: int = Field(ge=0)

    @field_validator("subaccount")
    @classmethod
    def _check_subaccount(cls, value: str) -> str:
        coerce_subaccount(value)
        return value


class RewardRequest(BaseModel):
    amount: int = Field(ge=0, le=MAX_AMOUNT)


def get_pool() -> StakePool:
    if not pool:
        raise HTTPException(status_code=503, detail="Node not initialized")
    return pool


async def get_caller(request: Request, node: StakePool = Depends(get_pool)) -> str:
    """Resolves the authenticated principal of the request."""
    body = await request.body()
    try:
        return authenticate(
            request.method,
            request.url.path,
            request.headers,
            body,
            prefix=node.config.address_prefix,
            max_skew_sec=node.config.auth_max_skew_sec,
            replay_cache=replay_cache,
        )
    except AuthError as e:
        raise HTTPException(status_code=401, detail=str(e))


def _parse_subaccount(value: str) -> bytes:
    try:
        return coerce_subaccount(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.exception_handler(DepositError)
async def deposit_error_handler(request: Request, exc: DepositError):
    status = ERROR_STATUS.get(exc.code, 400)
    return JSONResponse(status_code=status, content={"error": exc.code, "detail": exc.message})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"error": "ValidationError", "detail": str(exc)})


@app.get("/")
async def root():
    return {"message": "StakePool Node RPC", "version": "1.0"}


@app.get("/status")
async def get_status(node: StakePool = Depends(get_pool)):
    status = node.status()
    status["total_stake"] = str(status["total_stake"])
    status["unallocated_rewards"] = str(status["unallocated_rewards"])
    return status


@app.get("/deposits")
async def list_my_deposits(caller: str = Depends(get_caller), node: StakePool = Depends(get_pool)):
    """All active deposits of the caller across its subaccounts."""
    deposits = [
        {"subaccount": subaccount.hex(), **deposit.model_dump(), "unlock_time": deposit.unlock_time}
        for subaccount, deposit in node.list_my_deposits(caller)
    ]
    return {"owner": caller, "deposits": deposits}


@app.get("/stake/{subaccount}")
async def get_stake_balance(subaccount: str, caller: str = Depends(get_caller),
                            node: StakePool = Depends(get_pool)):
    sub = _parse_subaccount(subaccount)
    return {
        "owner": caller,
        "subaccount": sub.hex(),
        "stake": str(node.get_stake_balance(caller, sub)),
    }


@app.post("/deposits")
async def deposit_funds(req: DepositRequest, caller: str = Depends(get_caller),
                        node: StakePool = Depends(get_pool)):
    deposit = await node.deposit_funds(caller, coerce_subaccount(req.subaccount), req.lock_period_days, req.amount)
    return {"owner": caller, "subaccount": req.subaccount.lower(), "deposit": deposit.model_dump()}


@app.post("/withdrawals")
async def withdraw_funds(req: WithdrawRequest, caller: str = Depends(get_caller),
                         node: StakePool = Depends(get_pool)):
    amount = await node.withdraw_funds(caller, coerce_subaccount(req.subaccount), req.deposit_id)
    return {"deposit_id": req.deposit_id, "amount": str(amount)}


@app.post("/rewards")
async def distribute_reward(req: RewardRequest, caller: str = Depends(get_caller),
                            node: StakePool = Depends(get_pool)):
    success = await node.distribute_reward(caller, req.amount)
    return {"success": success}


@app.get("/distributions")
async def list_distributions(limit: int = 20, node: StakePool = Depends(get_pool)):
    return [r.to_dict() for r in node.receipts.latest(limit)]


@app.get("/distributions/{distribution_id}")
async def get_distribution(distribution_id: int, node: StakePool = Depends(get_pool)):
    receipt = node.receipts.get(distribution_id)
    if not receipt:
        raise HTTPException(status_code=404, detail="Distribution not found")
    return receipt.to_dict()


@app.get("/balance/{address}")
async def get_ledger_balance(address: str, subaccount: Optional[str] = None,
                             node: StakePool = Depends(get_pool)):
    """Ledger balance of an external account, when the ledger binding supports lookups."""
    sub = _parse_subaccount(subaccount) if subaccount else None
    balance = await node.transfers.balance_of(LedgerAccount(owner=address, subaccount=sub))
    if balance is None:
        raise HTTPException(status_code=404, detail="Balance lookup not supported by ledger")
    return {"address": address, "subaccount": sub.hex() if sub else None, "balance": str(balance)}


@app.get("/metrics")
async def get_metrics(node: StakePool = Depends(get_pool)):
    """Prometheus metrics endpoint."""
    from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
    from ..observability.metrics import metrics_registry, update_metrics

    update_metrics(node)
    return Response(content=generate_latest(metrics_registry), media_type=CONTENT_TYPE_LATEST)
