# MIT License
# Copyright (c) 2025 Hashborn

from enum import Enum


class AddressStatus(str, Enum):
    NEW = "new"               # unused, not attached to the tangle
    PUBLISHED = "published"   # handed out (receive address or remainder), waiting for funds
    ATTACHED = "attached"     # confirmed zero value transactions only
    USED = "used"             # confirmed incoming value, never spent
    EXHAUSTED = "exhausted"   # one confirmed outgoing transaction
    OVERUSED = "overused"     # more than one confirmed outgoing transaction

    @property
    def is_terminal(self) -> bool:
        return self in (AddressStatus.EXHAUSTED, AddressStatus.OVERUSED)


class SyncMode(str, Enum):
    BOUNDED = "bounded"
    CONFIRMED_SPEND = "confirmed-spend"
    FRESH_POOL = "fresh-pool"


class BundleStatus(str, Enum):
    CONFIRMED = "confirmed"
    UNCONFIRMED = "unconfirmed"


class WalletError(Exception):
    pass


class TransportError(WalletError):
    """A ledger node call failed (connection, timeout or error payload)."""
    pass


class ValidationError(WalletError):
    pass


class DatabaseError(WalletError):
    pass


class InvariantViolation(WalletError):
    pass


class ConfigError(WalletError):
    pass


class InsufficientFunds(WalletError):
    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient balance: need {required}, found a total of {available} "
            f"(short by {self.shortfall})"
        )

    @property
    def shortfall(self) -> int:
        return self.required - self.available
