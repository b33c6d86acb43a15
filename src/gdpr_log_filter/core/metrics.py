"""
Prometheus metrics for the masking engine.

Each collector owns its own CollectorRegistry so that several processors
(and test cases) can coexist in one process without duplicate-metric errors.
"""

from typing import Optional

import structlog
from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

logger = structlog.get_logger(__name__)


class MaskingMetrics:
    """
    Counters and timings for masking operations.

    Keep labels low-cardinality: component names, rule names and buckets,
    never field values.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()

        self.records_processed_total = Counter(
            "gdpr_records_processed_total",
            "Total log records passed through the masking engine",
            registry=self.registry,
        )

        self.records_skipped_total = Counter(
            "gdpr_records_skipped_total",
            "Records left unmasked because a conditional rule vetoed masking",
            ["rule"],
            registry=self.registry,
        )

        self.values_masked_total = Counter(
            "gdpr_values_masked_total",
            "Values changed by masking",
            ["component"],
            registry=self.registry,
        )

        self.masking_errors_total = Counter(
            "gdpr_masking_errors_total",
            "Contained errors during masking",
            ["kind"],
            registry=self.registry,
        )

        self.audit_events_dropped_total = Counter(
            "gdpr_audit_events_dropped_total",
            "Audit events suppressed by rate limiting",
            ["bucket"],
            registry=self.registry,
        )

        self.processing_seconds = Histogram(
            "gdpr_processing_seconds",
            "Time spent masking one record",
            buckets=[0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0],
            registry=self.registry,
        )

    def record_processed(self, duration_seconds: float) -> None:
        self.records_processed_total.inc()
        self.processing_seconds.observe(duration_seconds)

    def record_skip(self, rule: str) -> None:
        self.records_skipped_total.labels(rule=rule).inc()

    def record_masked(self, component: str, count: int = 1) -> None:
        """Record values changed by a component (message, json, serialized, field_path, callback, context)."""
        if count > 0:
            self.values_masked_total.labels(component=component).inc(count)

    def record_error(self, kind: str) -> None:
        self.masking_errors_total.labels(kind=kind).inc()

    def record_audit_drop(self, bucket: str) -> None:
        self.audit_events_dropped_total.labels(bucket=bucket).inc()

    def get_sample_value(self, name: str, labels: Optional[dict] = None) -> Optional[float]:
        """Read a single sample, mostly for tests and debug endpoints."""
        return self.registry.get_sample_value(name, labels or {})

    def export(self) -> bytes:
        """Render the registry in Prometheus text exposition format."""
        return generate_latest(self.registry)
