"""Observability helpers for PlaceLore."""

from __future__ import annotations

import logging
import time
from contextvars import ContextVar

import structlog
from prometheus_client import Counter, Histogram

_logger_configured = False
_correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="-")


def configure_logging(level: int = logging.INFO) -> None:
    global _logger_configured  # noqa: PLW0603 - module-level guard
    if _logger_configured:
        return
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _logger_configured = True


def bind_correlation_id(correlation_id: str) -> None:
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)
    _correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    structlog.contextvars.clear_contextvars()
    _correlation_id_var.set("-")


def get_correlation_id() -> str:
    return _correlation_id_var.get()


def get_logger(name: str = "placelore") -> structlog.BoundLogger:
    configure_logging()
    return structlog.get_logger(name)


class PipelineMetrics:
    """Prometheus metrics for the query/parse/emit pipeline."""

    search_latency = Histogram(
        "placelore_search_duration_seconds",
        "Time spent waiting on the AI search backend.",
        ["feature"],
        buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
    )
    parsed_records = Histogram(
        "placelore_parsed_record_count",
        "Records extracted from a single model response.",
        ["feature"],
        buckets=(0, 1, 2, 5, 8, 13, 21, 40, 60),
    )
    emitted_records = Counter(
        "placelore_emitted_records_total",
        "Records appended to feature stores by progressive emission.",
        ["feature"],
    )
    slot_transitions = Counter(
        "placelore_slot_transitions_total",
        "Feature slot state transitions.",
        ["feature", "state"],
    )
    cancelled_queries = Counter(
        "placelore_cancelled_queries_total",
        "In-flight queries superseded or released before completion.",
        ["slot"],
    )
    geocode_cache = Counter(
        "placelore_geocode_cache_total",
        "Forward geocode cache lookups.",
        ["result"],
    )

    @classmethod
    def observe_search(cls, feature: str, duration_seconds: float, record_count: int) -> None:
        cls.search_latency.labels(feature=feature).observe(duration_seconds)
        cls.parsed_records.labels(feature=feature).observe(record_count)

    @classmethod
    def observe_emitted(cls, feature: str, count: int) -> None:
        if count > 0:
            cls.emitted_records.labels(feature=feature).inc(count)

    @classmethod
    def observe_transition(cls, feature: str, state: str) -> None:
        cls.slot_transitions.labels(feature=feature, state=state).inc()

    @classmethod
    def observe_cancelled(cls, slot: str) -> None:
        cls.cancelled_queries.labels(slot=slot).inc()

    @classmethod
    def observe_geocode_cache(cls, hit: bool) -> None:
        cls.geocode_cache.labels(result="hit" if hit else "miss").inc()


class TimedSection:
    """Context manager capturing elapsed time for metrics."""

    def __init__(self) -> None:
        self._start = 0.0
        self.duration = 0.0

    def __enter__(self) -> "TimedSection":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: D401
        self.duration = time.perf_counter() - self._start


__all__ = [
    "PipelineMetrics",
    "TimedSection",
    "bind_correlation_id",
    "clear_correlation_id",
    "configure_logging",
    "get_correlation_id",
    "get_logger",
]
