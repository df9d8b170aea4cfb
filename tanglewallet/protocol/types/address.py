# MIT License
# Copyright (c) 2025 Hashborn

from pydantic import BaseModel, Field
from typing import List, Optional
from .common import AddressStatus, InvariantViolation


class AddressRecord(BaseModel):
    index: int = Field(..., ge=0, description="Key index of the address for the wallet seed")
    address: str = Field(..., description="Address trytes (with checksum)")
    balance: int = Field(default=0, description="Last balance seen on the ledger")
    status: AddressStatus = AddressStatus.NEW
    security_level: int = Field(default=2, ge=1, le=3)


class FundingInput(BaseModel):
    address: str           # without checksum
    security_level: int
    key_index: int


class FundingSelection(BaseModel):
    inputs: List[FundingInput] = Field(default_factory=list)
    total: int = 0
    remainder_address: str = ""
    remainder_index: Optional[int] = None


class BalanceReport(BaseModel):
    address_count: int
    total_balance: int


class AddressIndexes(BaseModel):
    """Hints for the index floors in the wallet configuration."""
    search_start: int = 0
    new_address_start: int = 0


class SyncReport(BaseModel):
    start_index: int
    next_index: int
    processed: int = 0
    refreshed: int = 0
    new_addresses: int = 0
    overused: List[int] = Field(default_factory=list)

    def raise_for_violations(self):
        """Raises InvariantViolation if any address was spent more than once."""
        if self.overused:
            raise InvariantViolation(
                f"Addresses with more than one confirmed outgoing transaction: {self.overused}"
            )
