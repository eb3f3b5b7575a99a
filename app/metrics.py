"""
Prometheus metrics for the checkout path.

Collectors live at module level so every service shares them; the /metrics
blueprint exposes whichever registry is active.
"""
import os

from prometheus_client import CollectorRegistry, Counter, Histogram, REGISTRY, multiprocess

# Gunicorn workers write to PROMETHEUS_MULTIPROC_DIR and are aggregated on scrape
MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None

if MULTIPROCESS_MODE:
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
else:
    registry = REGISTRY

_collector_registry = None if MULTIPROCESS_MODE else registry

orders_finalized_total = Counter(
    'pos_orders_finalized_total',
    'Orders committed by the checkout',
    ['delivery_type'],
    registry=_collector_registry
)

orders_cancelled_total = Counter(
    'pos_orders_cancelled_total',
    'Orders cancelled after completion',
    registry=_collector_registry
)

stock_reservations_total = Counter(
    'pos_stock_reservations_total',
    'Stock reservation attempts by outcome',
    ['outcome'],
    registry=_collector_registry
)

checkout_duration_seconds = Histogram(
    'pos_checkout_duration_seconds',
    'Time spent finalizing an order',
    registry=_collector_registry,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)
)
