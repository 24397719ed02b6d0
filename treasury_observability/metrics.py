# treasury_observability/metrics.py
"""
Prometheus metrics for the booking services.

This module does NOT start a standalone HTTP server.
Expose metrics from each FastAPI app by mounting the ASGI exporter:

    from prometheus_client import make_asgi_app
    app.mount("/metrics", make_asgi_app())
"""
from __future__ import annotations

from typing import Any, Dict, Tuple, Type

from prometheus_client import Counter, Histogram

# ----------------------------
# Registration helper (avoid duplicate collectors)
# ----------------------------
_METRICS: Dict[Tuple[Type[Any], str], Any] = {}


def get_metric(cls: Type[Any], name: str, *args, **kwargs):
    key = (cls, name)
    if key in _METRICS:
        return _METRICS[key]
    metric = cls(name, *args, **kwargs)
    _METRICS[key] = metric
    return metric


# ----------------------------
# Booking engine metrics
# ----------------------------

# Groups finished by a strategy, labelled success / failure / skipped
booking_groups_processed_total = get_metric(
    Counter,
    "fx_booking_groups_processed_total",
    "Record groups processed by the transformation engine",
    ["typology", "outcome"],
)

# Strategy wall time per group
booking_strategy_latency_seconds = get_metric(
    Histogram,
    "fx_booking_strategy_latency_seconds",
    "Latency of one strategy invocation in seconds",
    ["typology"],
    buckets=(0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1, 2, 5),
)

booking_staging_rows_total = get_metric(
    Counter,
    "fx_booking_staging_rows_total",
    "Staging audit rows written",
)

booking_trades_published_total = get_metric(
    Counter,
    "fx_booking_trades_published_total",
    "Normalized trades handed to the downstream publisher",
    ["outcome"],
)

booking_runs_total = get_metric(
    Counter,
    "fx_booking_runs_total",
    "Instruction runs by outcome",
    ["outcome"],
)
