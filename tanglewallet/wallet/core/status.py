# MIT License
# Copyright (c) 2025 Hashborn

"""
Address lifecycle.

    new -> published -> attached / used -> exhausted / overused

Status is derived from the confirmed transactions of an address. `exhausted`
and `overused` are final: after a snapshot a spent address looks fresh on the
ledger again, but it must never be handed out or spent from a second time.
"""

from typing import List, NamedTuple, Optional, Sequence
from ...protocol.types.bundle import LedgerTransaction
from ...protocol.types.common import AddressStatus


class ConfirmedTally(NamedTuple):
    outgoing: int
    incoming: int
    zero_value: int


def tally_confirmed(transactions: Sequence[LedgerTransaction], inclusion_states: Sequence[bool]) -> ConfirmedTally:
    """Counts confirmed outgoing, incoming and zero value transactions."""
    outgoing = incoming = zero_value = 0
    for tx, included in zip(transactions, inclusion_states):
        if not included:
            continue
        if tx.value < 0:
            outgoing += 1
        elif tx.value > 0:
            incoming += 1
        else:
            zero_value += 1
    return ConfirmedTally(outgoing, incoming, zero_value)


def derive_status(previous: Optional[AddressStatus], outgoing: int, incoming: int, zero_value: int) -> AddressStatus:
    if previous is not None and previous.is_terminal:
        return previous

    if outgoing > 1:
        return AddressStatus.OVERUSED
    if outgoing == 1:
        return AddressStatus.EXHAUSTED
    if incoming > 0:
        return AddressStatus.USED
    if zero_value > 0:
        return AddressStatus.ATTACHED

    # No confirmed history: keep whatever we knew before
    return previous if previous is not None else AddressStatus.NEW
