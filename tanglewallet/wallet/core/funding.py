# MIT License
# Copyright (c) 2025 Hashborn

import logging
from typing import Optional
from ..rpc.client import LedgerClient
from ..storage.db import AddressStore
from ..observability.metrics import transfers_total
from .addresses import AddressPool
from .critical import critical_section
from ...protocol.config.params import WalletConfig, TRANSFER_DEPTH
from ...protocol.crypto.addresses import is_valid_address, no_checksum
from ...protocol.types.address import FundingInput, FundingSelection
from ...protocol.types.bundle import Transfer, TransferReceipt
from ...protocol.types.common import (
    AddressStatus, InsufficientFunds, InvariantViolation, ValidationError
)

logger = logging.getLogger(__name__)


class FundingSelector:
    def __init__(self, store: AddressStore, client: LedgerClient, config: WalletConfig,
                 pool: Optional[AddressPool] = None):
        self.store = store
        self.client = client
        self.config = config
        self.pool = pool or AddressPool(store, client, config)

    async def select_funding(self, target_value: int) -> FundingSelection:
        """
        Picks funded addresses in ascending index order until they cover
        `target_value`, and reserves a remainder address.

        The remainder address stays `new` when the inputs match the value
        exactly (no remainder output will be spent to it), otherwise it is
        marked `published`.

        Raises:
            InsufficientFunds: the whole cache does not cover the value
        """
        if target_value <= 0:
            raise ValidationError(f"Funding target must be positive, got {target_value}")

        records = self.store.by_index_range(0)
        logger.debug(f"Searching for funding, found {len(records)} records in database")

        selection = FundingSelection()
        for record in records:
            if selection.total >= target_value:
                break
            # Skip broken rows and empty addresses
            if not is_valid_address(record.address) or record.balance <= 0:
                continue
            logger.debug(f"FUNDING ADR: {record.address} BALANCE: {record.balance}")
            selection.inputs.append(FundingInput(
                address=no_checksum(record.address),
                security_level=record.security_level,
                key_index=record.index,
            ))
            selection.total += record.balance

        if selection.total < target_value:
            raise InsufficientFunds(required=target_value, available=selection.total)

        status = AddressStatus.NEW if selection.total == target_value else AddressStatus.PUBLISHED
        remainder = await self.pool.get_new_address(status)
        selection.remainder_address = no_checksum(remainder.address)
        selection.remainder_index = remainder.index

        logger.info(f"Selected {len(selection.inputs)} inputs with {selection.total} for {target_value}, "
                    f"remainder index {remainder.index} ({status.value})")
        return selection

    async def send(self, address: str, value: int, message: str = "", tag: str = "") -> TransferReceipt:
        """Sends `value` to `address`, funded from the wallet's addresses."""
        if not is_valid_address(address):
            raise ValidationError("please provide a valid address to send your transfer to")
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValidationError("please provide a valid amount to transfer")

        await self.pool.update_balances()

        selection = None
        if value > 0:
            selection = await self.select_funding(value)

        transfer = Transfer(address=no_checksum(address), value=value, message=message, tag=tag)
        with critical_section("transfer submission"):
            transactions = await self.client.submit_transfer(
                self.config.seed,
                TRANSFER_DEPTH,
                self.config.min_weight_magnitude,
                [transfer],
                remainder_address=selection.remainder_address if selection else None,
                inputs=selection.inputs if selection else None,
            )
        transfers_total.inc()

        for tx in transactions:
            if tx.is_tail:
                logger.info(f"BUNDLE: {tx.bundle} TRANSACTION: {tx.hash}")
                return TransferReceipt(bundle=tx.bundle, tail_transaction=tx.hash)
        raise InvariantViolation("Submitted bundle has no tail transaction")
