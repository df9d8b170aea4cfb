# MIT License
# Copyright (c) 2025 Hashborn

import pytest
from collections import defaultdict
from typing import Callable, Dict, List, Optional

from tanglewallet.protocol.config.params import WalletConfig
from tanglewallet.protocol.crypto.addresses import no_checksum
from tanglewallet.protocol.types.address import AddressRecord
from tanglewallet.protocol.types.bundle import LedgerTransaction
from tanglewallet.protocol.types.common import AddressStatus, TransportError
from tanglewallet.wallet.storage.db import AddressStore

DIGITS = "ABCDEFGHIJ"


def make_address(index: int) -> str:
    """Deterministic 81-tryte address for a key index."""
    return ("ADDRESS9" + "".join(DIGITS[int(d)] for d in str(index))).ljust(81, "9")


def make_hash(label: str) -> str:
    return label.upper().ljust(81, "9")


def transaction_trytes(address="A" * 81, value="9", current="9", last="9",
                       bundle="B" * 81, trunk="T" * 81) -> str:
    """Serialized transaction with the given raw field trytes."""
    tx = ["9"] * 2673

    def put_field(offset, length, text):
        tx[offset:offset + length] = list(text.ljust(length, "9"))

    put_field(2187, 81, address)
    put_field(2268, 27, value)
    put_field(2331, 9, current)
    put_field(2340, 9, last)
    put_field(2349, 81, bundle)
    put_field(2430, 81, trunk)
    return "".join(tx)


class FakeLedger:
    """In-memory ledger implementing the LedgerClient coroutines."""

    def __init__(self):
        self.balances: Dict[str, int] = {}
        self.transactions: List[LedgerTransaction] = []
        self.inclusion: Dict[str, bool] = {}
        self.calls = defaultdict(int)
        self.balance_requests: List[List[str]] = []
        self.submitted: List[dict] = []
        self.replays: List[tuple] = []
        self.replay_failures = 0
        self.on_replay: Optional[Callable[[str], None]] = None

    def add_tx(self, label: str, address: str, value: int, bundle: str,
               current_index: int = 0, last_index: int = 0, confirmed: bool = False) -> LedgerTransaction:
        tx = LedgerTransaction(
            hash=make_hash(label),
            address=no_checksum(address),
            value=value,
            bundle=bundle,
            current_index=current_index,
            last_index=last_index,
        )
        self.transactions.append(tx)
        self.inclusion[tx.hash] = confirmed
        return tx

    async def derive_address(self, seed: str, index: int, security_level: int) -> str:
        self.calls["derive_address"] += 1
        return make_address(index)

    async def get_balances(self, addresses: List[str], threshold: int = 100) -> List[int]:
        self.calls["get_balances"] += 1
        self.balance_requests.append(list(addresses))
        return [self.balances.get(no_checksum(a), 0) for a in addresses]

    async def find_transactions(self, addresses=None, bundles=None) -> List[LedgerTransaction]:
        self.calls["find_transactions"] += 1
        wanted = {no_checksum(a) for a in addresses or []}
        return [
            tx for tx in self.transactions
            if tx.address in wanted or tx.bundle in (bundles or [])
        ]

    async def get_inclusion_states(self, hashes: List[str]) -> List[bool]:
        self.calls["get_inclusion_states"] += 1
        return [self.inclusion.get(h, False) for h in hashes]

    async def submit_transfer(self, seed, depth, min_weight_magnitude, transfers,
                              remainder_address=None, inputs=None) -> List[LedgerTransaction]:
        self.submitted.append({
            "depth": depth,
            "min_weight_magnitude": min_weight_magnitude,
            "transfers": transfers,
            "remainder_address": remainder_address,
            "inputs": inputs,
        })
        bundle = make_hash("SENTBUNDLE")
        return [
            LedgerTransaction(hash=make_hash("SENTTAIL"), address=transfers[0].address,
                              value=transfers[0].value, bundle=bundle, current_index=0, last_index=1),
            LedgerTransaction(hash=make_hash("SENTSECOND"), address=transfers[0].address,
                              value=0, bundle=bundle, current_index=1, last_index=1),
        ]

    async def replay_bundle(self, tail_hash: str, depth: int, min_weight_magnitude: int) -> List[LedgerTransaction]:
        if self.replay_failures:
            self.replay_failures -= 1
            raise TransportError("attachToTangle failed: node busy")
        self.replays.append((tail_hash, depth, min_weight_magnitude))
        bundle = next(tx.bundle for tx in self.transactions if tx.hash == tail_hash)
        if self.on_replay:
            self.on_replay(bundle)
        return [LedgerTransaction(hash=make_hash(f"REATTACHED{len(self.replays)}"), address=make_address(0),
                                  value=0, bundle=bundle)]


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def config(tmp_path):
    return WalletConfig(
        seed="TESTSEED9",
        database_file=str(tmp_path / "wallet.db"),
        replay_poll_interval=0,
    )


@pytest.fixture
def store(config):
    db = AddressStore(config.database_file)
    yield db
    db.close()


def put(store: AddressStore, index: int, balance: int = 0, status: AddressStatus = AddressStatus.NEW,
        address: Optional[str] = None) -> AddressRecord:
    record = AddressRecord(
        index=index,
        address=make_address(index) if address is None else address,
        balance=balance,
        status=status,
    )
    store.insert(record)
    return record
