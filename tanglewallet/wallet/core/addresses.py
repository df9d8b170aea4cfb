# MIT License
# Copyright (c) 2025 Hashborn

import logging
from typing import List, Optional
from ..rpc.client import LedgerClient
from ..storage.db import AddressStore
from ..observability.metrics import wallet_balance
from .critical import critical_section
from ...protocol.config.params import WalletConfig, BALANCE_BATCH_SIZE
from ...protocol.crypto.addresses import is_valid_address
from ...protocol.types.address import AddressRecord, AddressIndexes, BalanceReport
from ...protocol.types.common import AddressStatus, DatabaseError

logger = logging.getLogger(__name__)


class AddressPool:
    """Issues addresses from the local cache and keeps their balances fresh."""

    def __init__(self, store: AddressStore, client: LedgerClient, config: WalletConfig):
        self.store = store
        self.client = client
        self.config = config

    def _next_index(self) -> int:
        floor = self.config.new_address_floor
        last = self.store.last()
        index = last.index + 1 if last else floor + 1
        # Indexes below the floor may have been used before a snapshot
        if index < floor:
            index = floor + 1
        return index

    async def add_new_address(self, index: Optional[int] = None) -> AddressRecord:
        """
        Derives the address for `index` (next free index if None) and caches it
        with balance 0 and status new.
        """
        if index is None:
            index = self._next_index()

        address = await self.client.derive_address(self.config.seed, index, self.config.security_level)
        record = AddressRecord(
            index=index,
            address=address,
            balance=0,
            status=AddressStatus.NEW,
            security_level=self.config.security_level,
        )
        self.store.insert(record)
        logger.debug(f"Added address index {index}: {address}")
        return record

    async def get_new_address(self, status: AddressStatus = AddressStatus.PUBLISHED) -> AddressRecord:
        """
        Returns the lowest unused, unfunded address above the new address floor
        and marks it with `status`, so later calls do not hand it out again. A
        `new` record holding funds is a spending input, never a fresh address.
        """
        floor = self.config.new_address_floor
        with critical_section("address reservation"):
            record = self.store.first_unused(floor)
            if record is None:
                await self.add_new_address()
                record = self.store.first_unused(floor)
                if record is None:
                    raise DatabaseError(
                        "Could not get a new address, the database seems to be damaged; "
                        "delete it and run a full sync to rebuild it"
                    )

            self.store.set_status(record.index, status)
        logger.info(f"Issued address index {record.index} as {status.value}")
        return record.model_copy(update={"status": status})

    async def update_balances(self, all_addresses: bool = False) -> BalanceReport:
        """
        Refreshes the cached balances, BALANCE_BATCH_SIZE addresses per request.

        Without `all_addresses` only records at or above the search floor are
        refreshed. A published address that received funds becomes used.
        """
        start = 0 if all_addresses else self.config.search_floor
        records = self.store.by_index_range(start)
        if not records:
            logger.warning("No addresses in database")
            return BalanceReport(address_count=0, total_balance=0)

        valid = []
        for record in records:
            if is_valid_address(record.address):
                valid.append(record)
            else:
                logger.warning(f"Skipping index {record.index}, invalid address in database")

        total = 0
        for i in range(0, len(valid), BALANCE_BATCH_SIZE):
            batch = valid[i:i + BALANCE_BATCH_SIZE]
            balances = await self.client.get_balances(
                [r.address for r in batch], self.config.balance_threshold
            )
            logger.debug(f"Balances for indexes {batch[0].index}..{batch[-1].index}: {balances}")
            for record, balance in zip(batch, balances):
                total += balance
                self.store.update_balance(record.address, balance)
                if record.status == AddressStatus.PUBLISHED and balance > 0:
                    self.store.set_status(record.index, AddressStatus.USED)

        wallet_balance.set(total)
        return BalanceReport(address_count=len(records), total_balance=total)

    def address_indexes(self) -> AddressIndexes:
        """Lowest and highest index that still holds a balance."""
        funded = self.store.by_nonzero_balance()
        if not funded:
            return AddressIndexes()
        return AddressIndexes(search_start=funded[0].index, new_address_start=funded[-1].index)

    def total_balance(self) -> int:
        return sum(r.balance for r in self.store.by_index_range(0))

    def records(self, entire: bool = False) -> List[AddressRecord]:
        """Cached records above the search floor; unused ones only with `entire`."""
        rows = self.store.by_index_range(self.config.search_floor)
        if entire:
            return rows
        return [r for r in rows if r.status != AddressStatus.NEW]
