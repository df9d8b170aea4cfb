# MIT License
# Copyright (c) 2025 Hashborn

import re
from typing import Optional
from ..config.params import TRANSACTION_LENGTH
from ..types.bundle import LedgerTransaction

TRYTE_ALPHABET = "9ABCDEFGHIJKLMNOPQRSTUVWXYZ"

_TRYTES_RE = re.compile(r"^[9A-Z]*$")

# Field offsets inside a serialized transaction
_ADDRESS = slice(2187, 2268)
_VALUE = slice(2268, 2295)
_CURRENT_INDEX = slice(2331, 2340)
_LAST_INDEX = slice(2340, 2349)
_BUNDLE = slice(2349, 2430)
_TRUNK = slice(2430, 2511)


def is_trytes(value: str, length: Optional[int] = None) -> bool:
    if not isinstance(value, str) or not _TRYTES_RE.match(value):
        return False
    return length is None or len(value) == length


def tryte_value(tryte: str) -> int:
    """Balanced ternary value of one tryte (-13..13)."""
    v = TRYTE_ALPHABET.index(tryte)
    return v if v <= 13 else v - 27


def trytes_to_int(trytes: str) -> int:
    """Decodes a little-endian balanced ternary number."""
    result = 0
    for tryte in reversed(trytes):
        result = result * 27 + tryte_value(tryte)
    return result


def parse_transaction(tx_hash: str, trytes: str) -> LedgerTransaction:
    """Decodes the fields the wallet needs from raw transaction trytes."""
    if not is_trytes(trytes, TRANSACTION_LENGTH):
        raise ValueError(f"Invalid transaction trytes for {tx_hash}")

    return LedgerTransaction(
        hash=tx_hash,
        address=trytes[_ADDRESS],
        value=trytes_to_int(trytes[_VALUE]),
        bundle=trytes[_BUNDLE],
        current_index=trytes_to_int(trytes[_CURRENT_INDEX]),
        last_index=trytes_to_int(trytes[_LAST_INDEX]),
        trunk_transaction=trytes[_TRUNK],
    )


def bundle_of(trytes: str) -> str:
    return trytes[_BUNDLE]


def is_empty_transaction(trytes: str) -> bool:
    """Nodes answer getTrytes for unknown hashes with all-9 trytes."""
    return trytes.strip("9") == ""
