# MIT License
# Copyright (c) 2025 Hashborn

"""
Wallet metrics (Prometheus format).
"""

from .metrics import metrics_registry, write_metrics

__all__ = ["metrics_registry", "write_metrics"]
