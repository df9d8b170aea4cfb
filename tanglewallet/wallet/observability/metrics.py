# MIT License
# Copyright (c) 2025 Hashborn

"""
Prometheus Metrics

A wallet command is a short-lived process, so metrics are not served over
HTTP; the CLI writes them to a textfile for node_exporter's textfile
collector.

Metrics:
- Ledger node requests by command and outcome, request latency
- Addresses synchronized and their resulting status
- Bundle replays (manual / automatic)
- Transfers submitted
"""

from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry, write_to_textfile

# Create registry for metrics
metrics_registry = CollectorRegistry()

# ═══════════════════════════════════════════════════════════════════
# LEDGER NODE METRICS
# ═══════════════════════════════════════════════════════════════════

ledger_requests_total = Counter(
    'tanglewallet_ledger_requests_total',
    'Requests sent to the ledger node',
    ['command', 'outcome'],
    registry=metrics_registry
)

ledger_request_seconds = Histogram(
    'tanglewallet_ledger_request_seconds',
    'Latency of ledger node requests',
    ['command'],
    buckets=[0.05, 0.1, 0.5, 1, 5, 15, 60],
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# WALLET METRICS
# ═══════════════════════════════════════════════════════════════════

addresses_synced_total = Counter(
    'tanglewallet_addresses_synced_total',
    'Addresses refreshed from the ledger, by resulting status',
    ['status'],
    registry=metrics_registry
)

wallet_balance = Gauge(
    'tanglewallet_balance',
    'Total balance of the cached addresses after the last balance refresh',
    registry=metrics_registry
)

bundle_replays_total = Counter(
    'tanglewallet_bundle_replays_total',
    'Bundles replayed',
    ['mode'],
    registry=metrics_registry
)

transfers_total = Counter(
    'tanglewallet_transfers_total',
    'Transfers submitted to the ledger',
    registry=metrics_registry
)


def write_metrics(path: str):
    write_to_textfile(path, metrics_registry)
