# MIT License
# Copyright (c) 2025 Hashborn

import os
import yaml
from typing import Any, Dict, Optional
from ..types.common import ConfigError

# Global Constants
UNIT = "iota"
ADDRESS_LENGTH = 81            # trytes, without checksum
ADDRESS_CHECKSUM_LENGTH = 9
HASH_LENGTH = 81
TRANSACTION_LENGTH = 2673      # trytes of one serialized transaction

# Ledger call parameters
MIN_WEIGHT_MAGNITUDE = 14
BALANCE_THRESHOLD = 100        # confirmation threshold for getBalances
BALANCE_BATCH_SIZE = 20        # addresses per getBalances request

# Tip selection depths
TRANSFER_DEPTH = 5
REPLAY_DEPTH = 14              # deep enough to give older transactions a chance too
AUTO_REPLAY_DEPTH = 20

# Synchronization / replay
FRESH_POOL_SIZE = 10           # new addresses a full sync keeps in stock
REPLAY_POLL_INTERVAL = 60      # seconds between automatic replay checks
MAX_AUTO_REPLAYS = 100

DEFAULT_PROVIDER = "http://localhost:14265"
DEFAULT_CONFIG_FILE = "tanglewallet.yaml"

# Nodes that must not be hammered by the automatic replay loop
PUBLIC_NODES = (
    "http://node.iotawallet.info:14265",
    "http://iota.bitfinex.com:80",
)


class WalletConfig:
    def __init__(self,
                 seed: str,
                 provider: str = DEFAULT_PROVIDER,
                 database_file: str = "database-wallet.db",
                 security_level: int = 2,
                 debug_level: int = 3,
                 # Index floors; addresses below them were wiped by a snapshot
                 new_address_floor: int = 0,
                 search_floor: int = 0,
                 min_weight_magnitude: int = MIN_WEIGHT_MAGNITUDE,
                 balance_threshold: int = BALANCE_THRESHOLD,
                 replay_poll_interval: float = REPLAY_POLL_INTERVAL,
                 max_auto_replays: int = MAX_AUTO_REPLAYS,
                 request_timeout: float = 60.0,
                 signer: Optional[str] = None,
                 name: str = "wallet"):
        if not seed:
            raise ConfigError("No seed provided, please enter your seed into the configuration file")
        if security_level not in (1, 2, 3):
            raise ConfigError(f"address_security_level must be 1, 2 or 3, got {security_level}")
        if new_address_floor < 0 or search_floor < 0:
            raise ConfigError("Address index floors must not be negative")
        if max_auto_replays < 0 or replay_poll_interval < 0:
            raise ConfigError("Replay interval and attempt cap must not be negative")

        self.name = name
        self.seed = seed
        self.provider = provider
        self.database_file = database_file
        self.security_level = security_level
        self.debug_level = debug_level
        self.new_address_floor = new_address_floor
        self.search_floor = search_floor
        self.min_weight_magnitude = min_weight_magnitude
        self.balance_threshold = balance_threshold
        self.replay_poll_interval = replay_poll_interval
        self.max_auto_replays = max_auto_replays
        self.request_timeout = request_timeout
        self.signer = signer

    def __repr__(self):
        # Never print the seed
        return f"WalletConfig(name={self.name!r}, provider={self.provider!r}, database_file={self.database_file!r})"


# Config file key -> WalletConfig argument
_SECTION_KEYS = {
    "seed": "seed",
    "database_file": "database_file",
    "address_security_level": "security_level",
    "debug_level": "debug_level",
    "address_index_new_address_start": "new_address_floor",
    "address_index_search_balances_start": "search_floor",
    "balance_threshold": "balance_threshold",
    "replay_poll_interval": "replay_poll_interval",
    "max_auto_replays": "max_auto_replays",
    "request_timeout": "request_timeout",
    "signer": "signer",
    "provider": "provider",
    "min_weight_magnitude": "min_weight_magnitude",
}


def config_from_dict(data: Dict[str, Any], wallet: str) -> WalletConfig:
    """
    Builds the configuration of one wallet section.

    Top-level `provider` and `min_weight_magnitude` apply to every wallet and
    can be overridden inside a section.
    """
    wallets = data.get("wallets") or {}
    if wallet not in wallets:
        raise ConfigError(f"No config section named '{wallet}' found, please add one")

    section = wallets[wallet] or {}
    unknown = set(section) - set(_SECTION_KEYS)
    if unknown:
        raise ConfigError(f"Unknown keys in section '{wallet}': {sorted(unknown)}")

    kwargs: Dict[str, Any] = {"name": wallet}
    for key in ("provider", "min_weight_magnitude"):
        if key in data:
            kwargs[key] = data[key]
    for key, value in section.items():
        kwargs[_SECTION_KEYS[key]] = value

    if "seed" not in kwargs:
        raise ConfigError(f"Section '{wallet}' has no seed")
    return WalletConfig(**kwargs)


def load_config(path: str, wallet: str) -> WalletConfig:
    if not os.path.exists(path):
        raise ConfigError(f"Configuration file {path} not found")
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Configuration file {path} has an invalid format: {e}")

    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file {path} must contain a mapping")
    return config_from_dict(data, wallet)
