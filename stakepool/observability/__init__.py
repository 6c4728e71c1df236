# MIT License
# Copyright (c) 2025 Hashborn

"""
Observability Module

Provides Prometheus metrics for the stake pool.
"""

from .metrics import metrics_registry, update_metrics, bind_event_metrics

__all__ = ['metrics_registry', 'update_metrics', 'bind_event_metrics']
