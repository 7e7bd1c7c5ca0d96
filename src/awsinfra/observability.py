"""Logging, correlation ids and the metrics sink.

Usage:
    configure_logging(settings)          # once, at startup
    set_correlation_id(header_value)     # per request (middleware)
    logger.info("...")                   # correlation_id is stamped on every record
"""

import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Dict, Iterator, Optional, Protocol
from uuid import uuid4

from loguru import logger

from .config import Settings


CORRELATION_HEADER = "X-Correlation-ID"
REQUEST_ID_HEADER = "X-Request-ID"

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")


def generate_correlation_id() -> str:
    return str(uuid4())


def get_correlation_id() -> str:
    """Current correlation id, or an empty string outside a request."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: str) -> None:
    _correlation_id.set(correlation_id)


def _correlation_patcher(record) -> None:
    record["extra"].setdefault("correlation_id", get_correlation_id() or "-")


def configure_logging(settings: Settings) -> None:
    """Replace loguru's default sink with one configured from ``settings``."""
    logger.remove()
    logger.configure(patcher=_correlation_patcher)
    if settings.log_json:
        logger.add(sys.stderr, level=settings.log_level, serialize=True)
    else:
        logger.add(
            sys.stderr,
            level=settings.log_level,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
                "{extra[correlation_id]} | <cyan>{name}</cyan>:<cyan>{line}</cyan> - {message}"
            ),
        )


# ============================================================================
# Metrics
# ============================================================================

class MetricsSink(Protocol):
    """Destination for operation counters and timings."""

    def increment(self, name: str, tags: Optional[Dict[str, str]] = None) -> None: ...

    def timing(self, name: str, millis: float, tags: Optional[Dict[str, str]] = None) -> None: ...


class LoggingMetricsSink:
    """Writes metrics to the log at DEBUG level."""

    def increment(self, name: str, tags: Optional[Dict[str, str]] = None) -> None:
        logger.debug(f"metric counter {name} tags={tags or {}}")

    def timing(self, name: str, millis: float, tags: Optional[Dict[str, str]] = None) -> None:
        logger.debug(f"metric timing {name}={millis:.2f}ms tags={tags or {}}")


class OperationRecord:
    """Outcome holder for ``track_operation``."""

    def __init__(self) -> None:
        self.outcome = "success"


def _safe_emit(sink: MetricsSink, name: str, millis: float, outcome: str) -> None:
    tags = {"outcome": outcome}
    try:
        sink.increment(name, tags)
        sink.timing(name, millis, tags)
    except Exception as e:
        # Metrics are fire-and-forget
        logger.warning(f"Dropping metric {name}: {e}")


@contextmanager
def track_operation(sink: MetricsSink, name: str) -> Iterator[OperationRecord]:
    """Emit a counter and a timing for the wrapped operation.

    The outcome is ``success`` unless the body sets ``record.outcome`` or
    raises, in which case it is the exception's ``code`` (or ``error``).
    """
    record = OperationRecord()
    start = time.perf_counter()
    try:
        yield record
    except Exception as e:
        record.outcome = getattr(e, "code", "error")
        raise
    finally:
        _safe_emit(sink, name, (time.perf_counter() - start) * 1000, record.outcome)
