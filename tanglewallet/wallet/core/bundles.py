# MIT License
# Copyright (c) 2025 Hashborn

"""
Bundle confirmation and replay.

A bundle that is stuck (no confirmed transaction yet) can be replayed: its
tail is attached again on top of fresh tips. Replaying only makes sense while
the funding addresses still hold exactly what the bundle spends; once another
attachment got confirmed (or the funds moved) the bundle can never confirm.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional
from ..rpc.client import LedgerClient
from ..observability.metrics import bundle_replays_total
from .critical import critical_section
from ...protocol.config.params import WalletConfig, REPLAY_DEPTH, AUTO_REPLAY_DEPTH
from ...protocol.crypto.addresses import is_valid_address, is_valid_hash
from ...protocol.types.bundle import (
    BundleReplayState, BundleSummary, ConfirmationState, ReplayOutcome
)
from ...protocol.types.common import (
    BundleStatus, InvariantViolation, TransportError, ValidationError
)

logger = logging.getLogger(__name__)


def classify_confirmation(confirmed_count: int, value: int) -> BundleStatus:
    """
    Zero value bundles need one confirmed transaction, value transfers more
    than two.
    """
    if (confirmed_count > 0 and value == 0) or (confirmed_count > 2 and value > 0):
        return BundleStatus.CONFIRMED
    return BundleStatus.UNCONFIRMED


class BundleEngine:
    def __init__(self, client: LedgerClient, config: WalletConfig,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.client = client
        self.config = config
        self._sleep = sleep

    async def get_confirmation_state(self, bundle_hash: str) -> ConfirmationState:
        if not is_valid_hash(bundle_hash):
            raise ValidationError("please provide a valid bundle hash")

        transactions = await self.client.find_transactions(bundles=[bundle_hash])
        value = sum(tx.value for tx in transactions if tx.value > 0)
        states = await self.client.get_inclusion_states([tx.hash for tx in transactions])

        confirmed = sum(1 for s in states if s)
        unconfirmed = len(states) - confirmed
        return ConfirmationState(
            confirmed_count=confirmed,
            unconfirmed_count=unconfirmed,
            value=value,
            status=classify_confirmation(confirmed, value),
        )

    async def get_bundles(self, address: str) -> List[BundleSummary]:
        """Bundles touching `address`; `replays` counts extra attachments seen."""
        self._check_address(address)
        transactions = await self.client.find_transactions(addresses=[address])

        bundles: Dict[str, BundleSummary] = {}
        for tx in transactions:
            logger.debug(f"HASH: {tx.hash} BUNDLE: {tx.bundle} VALUE: {tx.value} INDEX: {tx.current_index}")
            if tx.bundle in bundles:
                bundles[tx.bundle].replays += 1
            else:
                bundles[tx.bundle] = BundleSummary(bundle=tx.bundle)
        return list(bundles.values())

    async def _inspect_bundle(self, bundle_hash: str) -> BundleReplayState:
        state = BundleReplayState(bundle_hash=bundle_hash)
        transactions = await self.client.find_transactions(bundles=[bundle_hash])
        inclusion = await self.client.get_inclusion_states([tx.hash for tx in transactions])

        for tx, included in zip(transactions, inclusion):
            if tx.is_tail:
                state.tail_transaction = tx.hash
            if included:
                state.confirmed_transactions += 1
            else:
                state.unconfirmed_transactions += 1
            if tx.value < 0 and tx.address not in state.required_balances:
                state.funding_addresses.append(tx.address)
                state.required_balances[tx.address] = -tx.value

        await self._check_funding(state)
        return state

    async def _check_funding(self, state: BundleReplayState):
        """Funding is valid while every input address still holds exactly what it spends."""
        if not state.funding_addresses:
            state.valid_funding = True
            return

        balances = await self.client.get_balances(state.funding_addresses, self.config.balance_threshold)
        state.valid_funding = True
        for address, balance in zip(state.funding_addresses, balances):
            needed = state.required_balances[address]
            if balance != needed:
                logger.debug(f"Insufficient balance on {address}! Need: {needed} current balance is: {balance}")
                state.valid_funding = False

    async def get_replay_candidates(self, address: str) -> Dict[str, BundleReplayState]:
        self._check_address(address)
        transactions = await self.client.find_transactions(addresses=[address])

        bundles: Dict[str, BundleReplayState] = {}
        for tx in transactions:
            if tx.bundle in bundles:
                # Same bundle seen again: most likely a replay
                bundles[tx.bundle].count += 1
                continue
            bundles[tx.bundle] = await self._inspect_bundle(tx.bundle)

        for bundle_hash, state in bundles.items():
            logger.info(f"BUNDLE: {bundle_hash} REPLAY COUNT: {state.count} "
                        f"CONFIRMED Tx: {state.confirmed_transactions} "
                        f"UNCONFIRMED Tx: {state.unconfirmed_transactions} "
                        f"TAIL: {state.tail_transaction} Funding: {state.valid_funding}")
        return bundles

    async def _replay(self, state: BundleReplayState, depth: int) -> str:
        if not state.tail_transaction:
            raise InvariantViolation(f"Bundle {state.bundle_hash} has no tail transaction, it can not be replayed")

        with critical_section(f"replay of {state.bundle_hash}"):
            result = await self.client.replay_bundle(
                state.tail_transaction, depth, self.config.min_weight_magnitude
            )
        return result[0].bundle if result else state.bundle_hash

    async def replay(self, address: str) -> List[str]:
        """Replays every eligible bundle touching `address` once."""
        bundles = await self.get_replay_candidates(address)

        replayed = []
        for state in bundles.values():
            if not state.eligible:
                continue
            logger.info(f"Replaying bundle {state.bundle_hash}")
            replayed.append(await self._replay(state, REPLAY_DEPTH))
            bundle_replays_total.labels(mode="manual").inc()
        return replayed

    async def auto_replay(self, address: str, poll_interval: Optional[float] = None,
                          max_attempts: Optional[int] = None) -> List[ReplayOutcome]:
        """
        Polls every bundle touching `address` and replays it until it confirms,
        its funding becomes invalid or `max_attempts` checks were made.

        A failed node call inside one poll round is logged and the next round
        tries again; the final confirmation check is not retried.
        """
        if poll_interval is None:
            poll_interval = self.config.replay_poll_interval
        if max_attempts is None:
            max_attempts = self.config.max_auto_replays

        bundles = await self.get_replay_candidates(address)
        outcomes = []
        for bundle_hash, state in bundles.items():
            logger.info(f"Checking bundle: {bundle_hash}")
            confirmation = await self.get_confirmation_state(bundle_hash)
            state.confirmed_transactions = confirmation.confirmed_count
            if not state.valid_funding:
                logger.info("No funding for this bundle, it can not be confirmed, so no replay")

            replays = 0
            attempt = 0
            while state.eligible and attempt < max_attempts:
                attempt += 1
                logger.info(f"Considering a replay, waiting {poll_interval} seconds")
                await self._sleep(poll_interval)

                try:
                    confirmation = await self.get_confirmation_state(bundle_hash)
                    state.confirmed_transactions = confirmation.confirmed_count
                    logger.info(f"Confirmation state: {confirmation.status.value}")
                    if state.confirmed_transactions == 0:
                        await self._check_funding(state)

                    if state.eligible:
                        logger.info(f"Replaying bundle {bundle_hash}")
                        await self._replay(state, AUTO_REPLAY_DEPTH)
                        replays += 1
                        bundle_replays_total.labels(mode="automatic").inc()
                except TransportError as e:
                    logger.warning(f"Replay round {attempt} for {bundle_hash} failed: {e}")

            final = await self.get_confirmation_state(bundle_hash)
            logger.info(f"Final confirmation state of bundle {bundle_hash} is {final.status.value}")
            outcomes.append(ReplayOutcome(
                bundle=bundle_hash,
                replays=replays,
                confirmed_count=final.confirmed_count,
                status=final.status,
            ))
        return outcomes

    @staticmethod
    def _check_address(address: str):
        if not is_valid_address(address):
            raise ValidationError("please provide a valid address")
