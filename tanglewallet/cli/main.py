# MIT License
# Copyright (c) 2025 Hashborn

import argparse
import asyncio
import importlib
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from .. import __version__
from ..protocol.config.params import (
    DEFAULT_CONFIG_FILE, PUBLIC_NODES, UNIT, WalletConfig, load_config
)
from ..protocol.types.common import ConfigError, SyncMode, ValidationError, WalletError
from ..wallet.core.addresses import AddressPool
from ..wallet.core.bundles import BundleEngine
from ..wallet.core.funding import FundingSelector
from ..wallet.core.sync import Synchronizer
from ..wallet.observability.metrics import write_metrics
from ..wallet.rpc.client import NodeClient, SeedSigner
from ..wallet.storage.db import AddressStore

logger = logging.getLogger(__name__)


def default_wallet_name() -> str:
    """The config section defaults to the program name, so one install can serve several wallets via links."""
    return os.environ.get("TANGLEWALLET_WALLET") or Path(sys.argv[0]).stem


def get_config_path(args) -> str:
    return args.config or os.environ.get("TANGLEWALLET_CONFIG", DEFAULT_CONFIG_FILE)


def setup_logging(debug_level: int):
    # debug_level 0 = silent .. 9 = super verbose
    if debug_level <= 0:
        level = logging.WARNING
    elif debug_level <= 3:
        level = logging.INFO
    else:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(message)s',
        stream=sys.stderr,
    )


def load_signer(reference: Optional[str]) -> Optional[SeedSigner]:
    """Loads a signer from a "module:factory" reference."""
    if not reference:
        return None
    module_name, _, attr = reference.partition(":")
    if not module_name or not attr:
        raise ConfigError(f"signer must look like 'module:factory', got {reference!r}")
    try:
        module = importlib.import_module(module_name)
        factory = getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise ConfigError(f"Could not load signer {reference!r}: {e}") from e
    return factory()


class WalletContext:
    def __init__(self, config: WalletConfig, store: AddressStore, client: NodeClient):
        self.config = config
        self.store = store
        self.client = client
        self.pool = AddressPool(store, client, config)
        self.synchronizer = Synchronizer(store, client, config, pool=self.pool)
        self.funding = FundingSelector(store, client, config, pool=self.pool)
        self.bundles = BundleEngine(client, config)


# --- Commands ---
async def cmd_sync(args, wallet: WalletContext) -> Dict[str, Any]:
    if args.end is not None:
        end = args.end
    elif args.until_spent:
        end = SyncMode.CONFIRMED_SPEND
    else:
        end = SyncMode.FRESH_POOL

    report = await wallet.synchronizer.synchronize(
        start_index=args.start, end=end, rescan_all=args.command == "sync-all"
    )
    report.raise_for_violations()
    return report.model_dump()


async def cmd_show_db(args, wallet: WalletContext) -> Dict[str, Any]:
    records = wallet.pool.records(entire=args.entire)
    return {"addresses": [r.model_dump(mode="json") for r in records]}


async def cmd_get_new_address(args, wallet: WalletContext) -> Dict[str, Any]:
    record = await wallet.pool.get_new_address()
    return {"address": record.address, "index": record.index}


async def cmd_get_address_indexes(args, wallet: WalletContext) -> Dict[str, Any]:
    indexes = wallet.pool.address_indexes()
    return {
        "addressIndexNewAddressStart": indexes.new_address_start,
        "addressIndexSeachBalancesStart": indexes.search_start,
    }


async def cmd_update_balances(args, wallet: WalletContext) -> Dict[str, Any]:
    report = await wallet.pool.update_balances(all_addresses=args.all)
    return {"addressCount": report.address_count, "totalBalance": report.total_balance}


async def cmd_show_balance(args, wallet: WalletContext) -> Dict[str, Any]:
    if wallet.store.last() is None:
        raise ValidationError("No addresses in database, run sync-all to generate addresses")
    return {"totalBalance": wallet.pool.total_balance(), "unit": UNIT}


async def cmd_transfer(args, wallet: WalletContext) -> Dict[str, Any]:
    receipt = await wallet.funding.send(args.address, args.amount)
    return {"bundle": receipt.bundle, "tailTransaction": receipt.tail_transaction}


async def cmd_get_confirmation_state(args, wallet: WalletContext) -> Dict[str, Any]:
    state = await wallet.bundles.get_confirmation_state(args.bundle)
    return {
        "confirmedTransactionsCount": state.confirmed_count,
        "unconfirmedTransactionsCount": state.unconfirmed_count,
        "confirmationState": state.status.value,
    }


async def cmd_get_bundles(args, wallet: WalletContext) -> Dict[str, Any]:
    bundles = await wallet.bundles.get_bundles(args.address)
    return {"bundles": [b.model_dump() for b in bundles]}


async def cmd_replay(args, wallet: WalletContext) -> Dict[str, Any]:
    replayed = await wallet.bundles.replay(args.address)
    return {"replayedBundles": replayed}


async def cmd_auto_replay(args, wallet: WalletContext) -> Dict[str, Any]:
    if wallet.config.provider in PUBLIC_NODES:
        raise ConfigError("Please set up your own node to use automatic replays, they put a high load on the node")
    outcomes = await wallet.bundles.auto_replay(
        args.address, poll_interval=args.interval, max_attempts=args.max_attempts
    )
    return {"bundles": [o.model_dump(mode="json") for o in outcomes]}


COMMANDS = {
    "sync": cmd_sync,
    "sync-all": cmd_sync,
    "show-db": cmd_show_db,
    "get-new-address": cmd_get_new_address,
    "get-address-indexes": cmd_get_address_indexes,
    "update-balances": cmd_update_balances,
    "show-balance": cmd_show_balance,
    "transfer": cmd_transfer,
    "get-confirmation-state": cmd_get_confirmation_state,
    "get-bundles": cmd_get_bundles,
    "replay": cmd_replay,
    "auto-replay": cmd_auto_replay,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tanglewallet", description=f"Tangle command line wallet {__version__}")
    parser.add_argument("--config", help=f"Config file (default: $TANGLEWALLET_CONFIG or {DEFAULT_CONFIG_FILE})")
    parser.add_argument("--wallet", help="Config section to use (default: program name)")
    parser.add_argument("--node", help="Node URL, overrides the configured provider")
    parser.add_argument("--metrics-file", help="Write Prometheus metrics to this file when done")

    subparsers = parser.add_subparsers(dest="command", help="Sub-commands")

    for name, help_text in (("sync", "Update the local database for addresses currently in use"),
                            ("sync-all", "(Re)build the local database, rescanning spent addresses too")):
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument("--start", type=int, help="First index (default: address_index_search_balances_start)")
        group = p.add_mutually_exclusive_group()
        group.add_argument("--end", type=int, help="Stop before this index")
        group.add_argument("--until-spent", action="store_true",
                           help="Stop at the first address with a confirmed outgoing transaction")

    p_show = subparsers.add_parser("show-db", help="Show the addresses in the local database")
    p_show.add_argument("--entire", action="store_true", help="Include unused addresses")

    subparsers.add_parser("get-new-address", help="Get a brand new address for receiving funds")
    subparsers.add_parser("get-address-indexes", help="Suggest the address index floors for the config file")

    p_ub = subparsers.add_parser("update-balances", help="Update the balances of the addresses in the database")
    p_ub.add_argument("--all", action="store_true", help="Ignore the search floor")

    subparsers.add_parser("show-balance", help="Total balance of the wallet (run update-balances first)")

    p_tr = subparsers.add_parser("transfer", help="Send an amount to an address")
    p_tr.add_argument("address", help="Destination address")
    p_tr.add_argument("amount", type=int, help=f"Amount in {UNIT}")

    p_gcs = subparsers.add_parser("get-confirmation-state", help="Confirmation state of a bundle")
    p_gcs.add_argument("bundle", help="Bundle hash")

    p_gb = subparsers.add_parser("get-bundles", help="Bundles associated with an address")
    p_gb.add_argument("address", help="Address")

    p_rp = subparsers.add_parser("replay", help="Replay unconfirmed bundles associated with an address")
    p_rp.add_argument("address", help="Address")

    p_ar = subparsers.add_parser("auto-replay", help="Replay unconfirmed bundles of an address until they confirm")
    p_ar.add_argument("address", help="Address")
    p_ar.add_argument("--interval", type=float, help="Seconds between checks (default: replay_poll_interval)")
    p_ar.add_argument("--max-attempts", type=int, help="Checks per bundle before giving up (default: max_auto_replays)")

    return parser


def print_json(data: Dict[str, Any]):
    if "status" not in data:
        data = {**data, "status": "ok"}
    print(json.dumps(data))


def print_error(error: Exception):
    print(json.dumps({"status": "error", "kind": type(error).__name__, "message": str(error)}))


def run(args) -> Dict[str, Any]:
    config = load_config(get_config_path(args), args.wallet or default_wallet_name())
    setup_logging(config.debug_level)
    if args.node:
        config.provider = args.node
    elif os.environ.get("TANGLEWALLET_NODE"):
        config.provider = os.environ["TANGLEWALLET_NODE"]

    store = AddressStore(config.database_file)
    try:
        client = NodeClient(config.provider, signer=load_signer(config.signer), timeout=config.request_timeout)
        wallet = WalletContext(config, store, client)
        return asyncio.run(COMMANDS[args.command](args, wallet))
    finally:
        store.close()


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    try:
        result = run(args)
    except WalletError as e:
        print_error(e)
        return 1
    finally:
        if args.metrics_file:
            write_metrics(args.metrics_file)

    print_json(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
