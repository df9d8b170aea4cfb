# MIT License
# Copyright (c) 2025 Hashborn

from pydantic import BaseModel, Field
from typing import Dict, List
from .common import BundleStatus


class LedgerTransaction(BaseModel):
    hash: str
    address: str
    value: int
    bundle: str
    current_index: int = 0
    last_index: int = 0
    trunk_transaction: str = ""

    @property
    def is_tail(self) -> bool:
        return self.current_index == 0


class Transfer(BaseModel):
    address: str
    value: int
    message: str = ""
    tag: str = ""


class TransferReceipt(BaseModel):
    bundle: str
    tail_transaction: str


class ConfirmationState(BaseModel):
    confirmed_count: int = 0
    unconfirmed_count: int = 0
    value: int = 0   # sum of the positive transaction values
    status: BundleStatus = BundleStatus.UNCONFIRMED


class BundleReplayState(BaseModel):
    """Replay view of one bundle touching a wallet address (never persisted)."""
    bundle_hash: str
    tail_transaction: str = ""
    confirmed_transactions: int = 0
    unconfirmed_transactions: int = 0
    valid_funding: bool = True
    funding_addresses: List[str] = Field(default_factory=list)
    required_balances: Dict[str, int] = Field(default_factory=dict)
    count: int = 1

    @property
    def eligible(self) -> bool:
        return self.valid_funding and self.confirmed_transactions == 0


class BundleSummary(BaseModel):
    bundle: str
    replays: int = 0


class ReplayOutcome(BaseModel):
    bundle: str
    replays: int = 0
    confirmed_count: int = 0
    status: BundleStatus = BundleStatus.UNCONFIRMED
