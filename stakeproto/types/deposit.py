# MIT License
# Copyright (c) 2025 Hashborn

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from ..config.params import MAX_AMOUNT, SECONDS_PER_DAY


class Deposit(BaseModel):
    """One locked position. Never mutated once recorded."""
    model_config = ConfigDict(frozen=True)

    id: int = Field(ge=1)                       # System-wide unique, strictly increasing
    amount: int = Field(ge=0, le=MAX_AMOUNT)    # Minimal units
    created_at: int = Field(ge=0)               # Unix seconds
    lock_period_days: int = Field(ge=0)

    @property
    def unlock_time(self) -> int:
        return self.created_at + self.lock_period_days * SECONDS_PER_DAY

    def is_unlocked(self, now: int) -> bool:
        return now >= self.unlock_time


class DepositList(BaseModel):
    """Active deposits of one account, in insertion order."""
    deposits: List[Deposit] = Field(default_factory=list)

    def total(self) -> int:
        return sum(d.amount for d in self.deposits)

    def find(self, deposit_id: int) -> Optional[Deposit]:
        return next((d for d in self.deposits if d.id == deposit_id), None)

    def is_empty(self) -> bool:
        return not self.deposits
