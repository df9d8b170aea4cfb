# MIT License
# Copyright (c) 2025 Hashborn

"""
Ledger client.

`LedgerClient` is the capability set the wallet core consumes. `NodeClient`
implements it over the JSON HTTP API of a tangle node; key derivation and
bundle signing are delegated to a `SeedSigner`, proof-of-work is done by the
node (attachToTangle).
"""

import asyncio
import logging
import time
from functools import partial
from typing import Any, Dict, List, Optional, Protocol

import requests

from ...protocol.config.params import BALANCE_THRESHOLD
from ...protocol.crypto.addresses import no_checksum
from ...protocol.crypto.trytes import bundle_of, is_empty_transaction, parse_transaction
from ...protocol.types.address import FundingInput
from ...protocol.types.bundle import LedgerTransaction, Transfer
from ...protocol.types.common import ConfigError, TransportError
from ..observability.metrics import ledger_requests_total, ledger_request_seconds

logger = logging.getLogger(__name__)


class LedgerClient(Protocol):
    async def derive_address(self, seed: str, index: int, security_level: int) -> str: ...

    async def get_balances(self, addresses: List[str], threshold: int = BALANCE_THRESHOLD) -> List[int]: ...

    async def find_transactions(self, addresses: Optional[List[str]] = None,
                                bundles: Optional[List[str]] = None) -> List[LedgerTransaction]: ...

    async def get_inclusion_states(self, hashes: List[str]) -> List[bool]: ...

    async def submit_transfer(self, seed: str, depth: int, min_weight_magnitude: int,
                              transfers: List[Transfer], remainder_address: Optional[str] = None,
                              inputs: Optional[List[FundingInput]] = None) -> List[LedgerTransaction]: ...

    async def replay_bundle(self, tail_hash: str, depth: int, min_weight_magnitude: int) -> List[LedgerTransaction]: ...


class SeedSigner(Protocol):
    """Key derivation and bundle signing for a seed."""

    def get_address(self, seed: str, index: int, security_level: int) -> str: ...

    def prepare_transfers(self, seed: str, transfers: List[Transfer], inputs: List[FundingInput],
                          remainder_address: Optional[str]) -> List[str]:
        """Returns the signed bundle as transaction trytes, last transaction first."""
        ...


class NodeClient:
    API_VERSION = "1"

    def __init__(self, url: str, signer: Optional[SeedSigner] = None, timeout: float = 60.0,
                 session: Optional[requests.Session] = None):
        self.url = url
        self.signer = signer
        self.timeout = timeout
        self.session = session or requests.Session()

    # --- Transport ---
    def _call(self, command: str, **params) -> Dict[str, Any]:
        payload = {"command": command, **params}
        start = time.time()
        try:
            resp = self.session.post(
                self.url,
                json=payload,
                headers={"X-IOTA-API-Version": self.API_VERSION},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            ledger_requests_total.labels(command=command, outcome="error").inc()
            raise TransportError(f"{command} failed: {e}") from e
        finally:
            ledger_request_seconds.labels(command=command).observe(time.time() - start)

        try:
            data = resp.json()
        except ValueError:
            data = None

        if resp.status_code != 200 or not isinstance(data, dict) or "error" in data or "exception" in data:
            ledger_requests_total.labels(command=command, outcome="error").inc()
            if isinstance(data, dict):
                message = data.get("error") or data.get("exception") or resp.text
            else:
                message = resp.text
            raise TransportError(f"{command} failed ({resp.status_code}): {message}")

        ledger_requests_total.labels(command=command, outcome="ok").inc()
        return data

    async def _request(self, command: str, **params) -> Dict[str, Any]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(self._call, command, **params))

    @staticmethod
    def _parse(tx_hash: str, trytes: str) -> LedgerTransaction:
        try:
            return parse_transaction(tx_hash, trytes)
        except ValueError as e:
            raise TransportError(f"Node returned malformed transaction {tx_hash}: {e}") from e

    def _require_signer(self) -> SeedSigner:
        if self.signer is None:
            raise ConfigError("No signer configured, address derivation and signing are unavailable")
        return self.signer

    # --- Queries ---
    async def derive_address(self, seed: str, index: int, security_level: int) -> str:
        signer = self._require_signer()
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, signer.get_address, seed, index, security_level)

    async def get_balances(self, addresses: List[str], threshold: int = BALANCE_THRESHOLD) -> List[int]:
        if not addresses:
            return []
        data = await self._request(
            "getBalances",
            addresses=[no_checksum(a) for a in addresses],
            threshold=threshold,
        )
        balances = [int(b) for b in data.get("balances", [])]
        if len(balances) != len(addresses):
            raise TransportError(f"getBalances returned {len(balances)} balances for {len(addresses)} addresses")
        return balances

    async def get_transactions(self, hashes: List[str]) -> List[LedgerTransaction]:
        if not hashes:
            return []
        data = await self._request("getTrytes", hashes=hashes)
        transactions = []
        for tx_hash, trytes in zip(hashes, data.get("trytes", [])):
            if is_empty_transaction(trytes):
                logger.debug(f"Node does not know transaction {tx_hash}")
                continue
            transactions.append(self._parse(tx_hash, trytes))
        return transactions

    async def find_transactions(self, addresses: Optional[List[str]] = None,
                                bundles: Optional[List[str]] = None) -> List[LedgerTransaction]:
        params: Dict[str, Any] = {}
        if addresses:
            params["addresses"] = [no_checksum(a) for a in addresses]
        if bundles:
            params["bundles"] = bundles
        if not params:
            raise ValueError("find_transactions needs addresses or bundles")

        data = await self._request("findTransactions", **params)
        return await self.get_transactions(data.get("hashes", []))

    async def get_inclusion_states(self, hashes: List[str]) -> List[bool]:
        """Inclusion of each transaction as seen by the latest solid milestone."""
        if not hashes:
            return []
        info = await self._request("getNodeInfo")
        milestone = info.get("latestSolidSubtangleMilestone")
        if not milestone:
            raise TransportError("getNodeInfo returned no solid milestone")
        data = await self._request("getInclusionStates", transactions=hashes, tips=[milestone])
        states = data.get("states", [])
        if len(states) != len(hashes):
            raise TransportError(f"getInclusionStates returned {len(states)} states for {len(hashes)} transactions")
        return [bool(s) for s in states]

    # --- Attaching ---
    async def _bundle_trytes(self, tail_hash: str) -> List[str]:
        """Walks a bundle from its tail along the trunk references."""
        trytes_list: List[str] = []
        tx_hash = tail_hash
        bundle = None
        while True:
            data = await self._request("getTrytes", hashes=[tx_hash])
            trytes = data.get("trytes", [""])[0]
            if not trytes or is_empty_transaction(trytes):
                raise TransportError(f"Transaction {tx_hash} not found on node")
            tx = self._parse(tx_hash, trytes)

            if bundle is None:
                if not tx.is_tail:
                    raise TransportError(f"{tail_hash} is not a tail transaction")
                bundle = tx.bundle
            elif tx.bundle != bundle:
                raise TransportError(f"Bundle {bundle} is incomplete on node, chain leaves it at {tx_hash}")

            trytes_list.append(trytes)
            if tx.current_index >= tx.last_index:
                return trytes_list
            tx_hash = tx.trunk_transaction

    async def _resolve(self, attached: List[str]) -> List[LedgerTransaction]:
        """Looks up the hashes of freshly attached transactions on the node."""
        bundle = bundle_of(attached[0])
        data = await self._request("findTransactions", bundles=[bundle])
        hashes = data.get("hashes", [])
        known = await self._request("getTrytes", hashes=hashes) if hashes else {"trytes": []}
        by_trytes = dict(zip(known.get("trytes", []), hashes))

        transactions = []
        for trytes in attached:
            tx_hash = by_trytes.get(trytes)
            if tx_hash is None:
                raise TransportError(f"Attached transaction of bundle {bundle} is not visible on node")
            transactions.append(self._parse(tx_hash, trytes))
        return sorted(transactions, key=lambda t: t.current_index)

    async def _send_trytes(self, trytes: List[str], depth: int, min_weight_magnitude: int) -> List[LedgerTransaction]:
        tips = await self._request("getTransactionsToApprove", depth=depth)
        if "trunkTransaction" not in tips or "branchTransaction" not in tips:
            raise TransportError("getTransactionsToApprove returned no tips")
        data = await self._request(
            "attachToTangle",
            trunkTransaction=tips["trunkTransaction"],
            branchTransaction=tips["branchTransaction"],
            minWeightMagnitude=min_weight_magnitude,
            trytes=trytes,
        )
        attached = data.get("trytes", [])
        if len(attached) != len(trytes):
            raise TransportError("attachToTangle returned an incomplete bundle")

        await self._request("storeTransactions", trytes=attached)
        await self._request("broadcastTransactions", trytes=attached)
        return await self._resolve(attached)

    async def submit_transfer(self, seed: str, depth: int, min_weight_magnitude: int,
                              transfers: List[Transfer], remainder_address: Optional[str] = None,
                              inputs: Optional[List[FundingInput]] = None) -> List[LedgerTransaction]:
        signer = self._require_signer()
        loop = asyncio.get_running_loop()
        trytes = await loop.run_in_executor(
            None, signer.prepare_transfers, seed, transfers, inputs or [], remainder_address
        )
        return await self._send_trytes(trytes, depth, min_weight_magnitude)

    async def replay_bundle(self, tail_hash: str, depth: int, min_weight_magnitude: int) -> List[LedgerTransaction]:
        bundle_trytes = await self._bundle_trytes(tail_hash)
        # attachToTangle expects the last transaction first
        bundle_trytes.reverse()
        return await self._send_trytes(bundle_trytes, depth, min_weight_magnitude)
