# MIT License
# Copyright (c) 2025 Hashborn

"""
Command line wallet for IOTA-style tangle ledgers.

Keeps a local cache of the addresses derived from one seed, synchronizes it
with a node and builds, submits and replays value transfers.
"""

__version__ = "0.9.0"
