# MIT License
# Copyright (c) 2025 Hashborn

import logging
from typing import Optional, Union
from ..rpc.client import LedgerClient
from ..storage.db import AddressStore
from ..observability.metrics import addresses_synced_total
from .addresses import AddressPool
from .critical import critical_section
from .status import derive_status, tally_confirmed
from ...protocol.config.params import WalletConfig, FRESH_POOL_SIZE
from ...protocol.crypto.addresses import is_valid_address
from ...protocol.types.address import AddressRecord, SyncReport
from ...protocol.types.common import AddressStatus, SyncMode, ValidationError

logger = logging.getLogger(__name__)


class Synchronizer:
    """
    Reconciles the local address cache with the ledger.

    Indexes are processed strictly one after another in ascending order; each
    index is one read-modify-write unit.
    """

    def __init__(self, store: AddressStore, client: LedgerClient, config: WalletConfig,
                 pool: Optional[AddressPool] = None):
        self.store = store
        self.client = client
        self.config = config
        self.pool = pool or AddressPool(store, client, config)

    async def synchronize(self, start_index: Optional[int] = None,
                          end: Union[int, SyncMode] = SyncMode.FRESH_POOL,
                          rescan_all: bool = False) -> SyncReport:
        """
        Syncs addresses from `start_index` (default: the search floor) upwards.

        Args:
            start_index: First index to process
            end: End index (exclusive) for a bounded sync, or the SyncMode that
                decides when to stop
            rescan_all: Also refresh exhausted/overused addresses

        Returns:
            SyncReport; overused addresses are listed there and never corrected
        """
        if start_index is None:
            start_index = self.config.search_floor
        if start_index < 0:
            raise ValidationError(f"Start index must not be negative, got {start_index}")

        if isinstance(end, SyncMode):
            if end == SyncMode.BOUNDED:
                raise ValidationError("A bounded sync needs an explicit end index")
            mode, end_index = end, None
        else:
            mode, end_index = SyncMode.BOUNDED, int(end)

        logger.info(f"Sync from index {start_index} ({mode.value}"
                    f"{f' until {end_index}' if end_index is not None else ''})")

        report = SyncReport(start_index=start_index, next_index=start_index)
        index = start_index
        while True:
            if end_index is not None and index >= end_index:
                break

            with critical_section(f"sync of address index {index}"):
                stop = await self._sync_index(index, rescan_all, mode, report)

            index += 1
            report.next_index = index
            report.processed += 1

            if stop:
                break
            if mode == SyncMode.FRESH_POOL and report.new_addresses >= FRESH_POOL_SIZE:
                break

        logger.info(f"Sync done: {report.processed} indexes, {report.refreshed} refreshed, "
                    f"{report.new_addresses} new")
        if report.overused:
            logger.warning(f"Overused addresses at indexes {report.overused}, "
                           f"they were spent from more than once")
        return report

    async def _load_or_create(self, index: int) -> AddressRecord:
        record = self.store.get(index)
        if record is None:
            record = await self.pool.add_new_address(index)
        return record

    async def _sync_index(self, index: int, rescan_all: bool, mode: SyncMode, report: SyncReport) -> bool:
        """Refreshes one index. Returns True if a confirmed-spend sync should stop here."""
        record = await self._load_or_create(index)

        if record.status.is_terminal and not rescan_all and record.balance == 0:
            logger.debug(f"Index {index} is {record.status.value}, skipping")
            if record.status == AddressStatus.OVERUSED:
                report.overused.append(index)
            return False

        if not is_valid_address(record.address):
            logger.warning(f"Index {index} has an invalid address in the database, skipping")
            return False

        balance = (await self.client.get_balances([record.address], self.config.balance_threshold))[0]
        transactions = await self.client.find_transactions(addresses=[record.address])
        states = await self.client.get_inclusion_states([tx.hash for tx in transactions])

        tally = tally_confirmed(transactions, states)
        status = derive_status(record.status, tally.outgoing, tally.incoming, tally.zero_value)

        self.store.update_balance_and_status(index, balance, status)
        report.refreshed += 1
        addresses_synced_total.labels(status=status.value).inc()

        if status == AddressStatus.NEW:
            report.new_addresses += 1
        if status == AddressStatus.OVERUSED:
            report.overused.append(index)

        logger.info(f"INDEX: {index} ADR: {record.address[:20]}.... Balance: {balance} Status: {status.value}")

        if mode != SyncMode.CONFIRMED_SPEND:
            return False
        if not transactions:
            # Nothing on the ledger for this index: the frontier
            return True
        last_tx, last_included = transactions[-1], states[-1]
        return last_included and last_tx.value < 0
