# MIT License
# Copyright (c) 2025 Hashborn

from typing import Any
from .trytes import is_trytes
from ..config.params import ADDRESS_LENGTH, ADDRESS_CHECKSUM_LENGTH, HASH_LENGTH


def is_valid_address(addr: Any) -> bool:
    """Structural check: 81 trytes, or 90 trytes including the checksum."""
    return is_trytes(addr, ADDRESS_LENGTH) or is_trytes(addr, ADDRESS_LENGTH + ADDRESS_CHECKSUM_LENGTH)


def is_valid_hash(value: Any) -> bool:
    return is_trytes(value, HASH_LENGTH)


def no_checksum(addr: str) -> str:
    return addr[:ADDRESS_LENGTH]
