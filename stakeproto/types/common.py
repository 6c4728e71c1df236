# MIT License
# Copyright (c) 2025 Hashborn

from enum import Enum


class OpType(str, Enum):
    DEPOSIT = "DEPOSIT"
    WITHDRAW = "WITHDRAW"
    REWARD_PULL = "REWARD_PULL"       # Operator -> custody
    REWARD_PAYOUT = "REWARD_PAYOUT"   # Custody -> staker


class ProtocolError(Exception):
    pass


class ValidationError(ProtocolError):
    pass


class DepositError(ProtocolError):
    """
    Base class for every error a pool operation can report.

    Each subclass carries a stable ``code`` used by the RPC layer and the CLI.
    """
    code = "DepositError"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class InvalidLockPeriod(DepositError):
    code = "InvalidLockPeriod"

    def __init__(self, lock_period_days: int):
        super().__init__(f"Invalid lock period: {lock_period_days} days")
        self.lock_period_days = lock_period_days


class LockPeriodNotExpired(DepositError):
    code = "LockPeriodNotExpired"

    def __init__(self, deposit_id: int, unlock_time: int):
        super().__init__(f"Deposit {deposit_id} is locked until {unlock_time}")
        self.deposit_id = deposit_id
        self.unlock_time = unlock_time


class NoDepositFound(DepositError):
    code = "NoDepositFound"

    def __init__(self, deposit_id: int):
        super().__init__(f"No deposit found with id {deposit_id}")
        self.deposit_id = deposit_id


class NoStakerFound(DepositError):
    code = "NoStakerFound"

    def __init__(self):
        super().__init__("Total stake is zero, nobody to reward")


class LedgerTransferFailed(DepositError):
    code = "LedgerTransferFailed"

    def __init__(self, cause: str):
        super().__init__(f"Ledger transfer failed: {cause}")
        self.cause = cause


class OperationInProgress(DepositError):
    code = "OperationInProgress"

    def __init__(self, account: str):
        super().__init__(f"Another operation is in flight for {account}")
        self.account = account
