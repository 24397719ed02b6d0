"""Prometheus metrics for the booking services."""

from .metrics import (booking_groups_processed_total, booking_runs_total,
                      booking_staging_rows_total,
                      booking_strategy_latency_seconds,
                      booking_trades_published_total, get_metric)

__all__ = [
    "get_metric",
    "booking_groups_processed_total",
    "booking_strategy_latency_seconds",
    "booking_staging_rows_total",
    "booking_trades_published_total",
    "booking_runs_total",
]
