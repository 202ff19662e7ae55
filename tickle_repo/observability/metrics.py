"""
Prometheus metrics collection for tickle-repo

Counts lifecycle events and rows touched by the mark/sweep protocol so that
operators can see how much churn each resync causes.
"""

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()


# =======================
# BATCH LIFECYCLE METRICS
# =======================

batches_total = Counter(
    name="tickle_batches_total",
    documentation="Batch lifecycle events",
    labelnames=["dataset", "type", "event"],  # event: created, closed, aborted
    registry=REGISTRY,
)

lifecycle_duration_seconds = Histogram(
    name="tickle_lifecycle_duration_seconds",
    documentation="Time spent in batch lifecycle operations in seconds",
    labelnames=["operation"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 300.0],
    registry=REGISTRY,
)

# =======================
# RECORD STATE METRICS
# =======================

records_marked_total = Counter(
    name="tickle_records_marked_total",
    documentation="Records moved from ACTIVE to RESET when a total batch was created",
    labelnames=["dataset"],
    registry=REGISTRY,
)

records_swept_total = Counter(
    name="tickle_records_swept_total",
    documentation="Records moved from RESET to DELETED when a total batch was closed",
    labelnames=["dataset"],
    registry=REGISTRY,
)

marks_undone_total = Counter(
    name="tickle_marks_undone_total",
    documentation="Records moved from RESET back to ACTIVE when a total batch was aborted",
    labelnames=["dataset"],
    registry=REGISTRY,
)

records_pruned_total = Counter(
    name="tickle_records_pruned_total",
    documentation="Records deleted for not being modified since a cut-off time",
    labelnames=["dataset"],
    registry=REGISTRY,
)

# =======================
# SIZE METRICS
# =======================

dataset_size_records = Gauge(
    name="tickle_dataset_size_records",
    documentation="Last computed number of records in a dataset",
    labelnames=["dataset", "method"],  # method: exact, estimate
    registry=REGISTRY,
)


# =======================
# HELPER FUNCTIONS
# =======================

def generate_metrics() -> bytes:
    """
    Generate Prometheus metrics in text format

    Returns:
        Metrics in Prometheus text format
    """
    return generate_latest(REGISTRY)


def increment_counter(counter: Counter, value: float = 1.0, **labels) -> None:
    """
    Increment a counter metric

    Args:
        counter: Prometheus Counter metric
        value: Amount to increment (default: 1.0)
        **labels: Label values for the metric
    """
    counter.labels(**labels).inc(value)


def set_gauge(gauge: Gauge, value: float, **labels) -> None:
    gauge.labels(**labels).set(value)


def observe_histogram(histogram: Histogram, value: float, **labels) -> None:
    histogram.labels(**labels).observe(value)


def get_sample_value(name: str, labels: dict[str, str]) -> float | None:
    """
    Read back the current value of a sample from the registry

    Args:
        name: Sample name, e.g. "tickle_records_marked_total"
        labels: Label values identifying the sample

    Returns:
        Current value, or None if the sample does not exist yet
    """
    return REGISTRY.get_sample_value(name, labels)


def record_batch_event(dataset_id: int, batch_type: str, event: str, duration_seconds: float) -> None:
    """
    Record a batch lifecycle event.

    Args:
        dataset_id: Dataset the batch belongs to
        batch_type: TOTAL or INCREMENTAL
        event: created, closed or aborted
        duration_seconds: Time spent in the operation
    """
    increment_counter(batches_total, 1, dataset=str(dataset_id), type=batch_type, event=event)
    observe_histogram(lifecycle_duration_seconds, duration_seconds, operation=event)
