"""Observability utilities for structured logging and stage metrics."""

import logging
import threading
import time
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional
from dataclasses import dataclass, field
from enum import Enum

from .logging_config import get_logger
from .protocols import LoggerProtocol


class LogLevel(Enum):
    """Log levels for structured logging."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class LogContext:
    """Context information for structured logging."""

    correlation_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    operation: str = ""
    component: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    def with_operation(self, operation: str) -> "LogContext":
        """Create new context with operation set."""
        return LogContext(
            correlation_id=self.correlation_id,
            operation=operation,
            component=self.component,
            metadata=self.metadata.copy(),
        )

    def with_metadata(self, **kwargs) -> "LogContext":
        """Create new context with additional metadata."""
        new_metadata = self.metadata.copy()
        new_metadata.update(kwargs)
        return LogContext(
            correlation_id=self.correlation_id,
            operation=self.operation,
            component=self.component,
            metadata=new_metadata,
        )


class StructuredLogger:
    """Structured logger with context support."""

    def __init__(self, name: str, level: Optional[int] = None):
        self._logger = get_logger(name)
        if level is not None:
            self._logger.setLevel(level)

    def _log(
        self,
        level: LogLevel,
        message: str,
        context: Optional[LogContext] = None,
        **kwargs,
    ):
        if context:
            formatted_message = f"[{context.correlation_id}] {message}"
            if context.operation:
                formatted_message = f"[{context.operation}] {formatted_message}"

            if context.metadata or kwargs:
                metadata_str = ", ".join(
                    f"{k}={v}" for k, v in {**context.metadata, **kwargs}.items()
                )
                formatted_message = f"{formatted_message} ({metadata_str})"
        elif kwargs:
            metadata_str = ", ".join(f"{k}={v}" for k, v in kwargs.items())
            formatted_message = f"{message} ({metadata_str})"
        else:
            formatted_message = message

        getattr(self._logger, level.value.lower())(formatted_message)

    def debug(self, message: str, context: Optional[LogContext] = None, **kwargs):
        """Log debug message."""
        self._log(LogLevel.DEBUG, message, context, **kwargs)

    def info(self, message: str, context: Optional[LogContext] = None, **kwargs):
        """Log info message."""
        self._log(LogLevel.INFO, message, context, **kwargs)

    def warning(self, message: str, context: Optional[LogContext] = None, **kwargs):
        """Log warning message."""
        self._log(LogLevel.WARNING, message, context, **kwargs)

    def error(self, message: str, context: Optional[LogContext] = None, **kwargs):
        """Log error message."""
        self._log(LogLevel.ERROR, message, context, **kwargs)


@dataclass
class PerformanceMetrics:
    """Timing of one job stage."""

    operation: str
    start_time: float
    end_time: float
    success: bool
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    @property
    def duration_ms(self) -> float:
        return self.duration * 1000


class MetricsCollector:
    """Thread-safe collector for stage metrics."""

    def __init__(self):
        self._metrics: list[PerformanceMetrics] = []
        self._lock = threading.Lock()

    def record_metric(self, metric: PerformanceMetrics):
        with self._lock:
            self._metrics.append(metric)

    def get_metrics(self, operation: Optional[str] = None) -> list[PerformanceMetrics]:
        """Get recorded metrics, optionally filtered by operation."""
        with self._lock:
            if operation:
                return [m for m in self._metrics if m.operation == operation]
            return self._metrics.copy()

    def get_summary(self, operation: Optional[str] = None) -> Dict[str, Any]:
        """Get summary statistics for metrics."""
        metrics = self.get_metrics(operation)

        if not metrics:
            return {}

        durations = [m.duration for m in metrics]
        successful = [m for m in metrics if m.success]

        return {
            "total_operations": len(metrics),
            "successful_operations": len(successful),
            "failed_operations": len(metrics) - len(successful),
            "success_rate": len(successful) / len(metrics),
            "avg_duration": sum(durations) / len(durations),
            "min_duration": min(durations),
            "max_duration": max(durations),
            "total_duration": sum(durations),
        }

    def clear_metrics(self):
        with self._lock:
            self._metrics.clear()


@contextmanager
def timed_operation(
    operation_name: str,
    logger: Optional[LoggerProtocol] = None,
    metrics_collector: Optional[MetricsCollector] = None,
    context: Optional[LogContext] = None,
) -> Iterator[LogContext]:
    """Time a block, logging its start/end and recording a metric."""
    start_time = time.time()
    operation_context = (context or LogContext()).with_operation(operation_name)

    if logger:
        logger.debug(f"Starting {operation_name}", operation_context)

    success = False
    error_message = None

    try:
        yield operation_context
        success = True
    except Exception as e:
        error_message = str(e)
        raise
    finally:
        end_time = time.time()

        if logger:
            if success:
                logger.debug(
                    f"Completed {operation_name}",
                    operation_context,
                    duration_ms=round((end_time - start_time) * 1000, 1),
                )
            else:
                logger.warning(
                    f"Failed {operation_name}: {error_message}",
                    operation_context,
                    duration_ms=round((end_time - start_time) * 1000, 1),
                )

        if metrics_collector:
            metrics_collector.record_metric(
                PerformanceMetrics(
                    operation=operation_name,
                    start_time=start_time,
                    end_time=end_time,
                    success=success,
                    error_message=error_message,
                )
            )


class ObservabilityConfig:
    """Configuration for observability features."""

    def __init__(
        self,
        log_level: LogLevel = LogLevel.INFO,
        enable_metrics: bool = True,
        component_name: str = "ecr_copy",
    ):
        self.log_level = log_level
        self.enable_metrics = enable_metrics
        self.component_name = component_name


def create_logger(name: str, config: ObservabilityConfig) -> StructuredLogger:
    """Create a structured logger with the given configuration."""
    level_map = {
        LogLevel.DEBUG: logging.DEBUG,
        LogLevel.INFO: logging.INFO,
        LogLevel.WARNING: logging.WARNING,
        LogLevel.ERROR: logging.ERROR,
        LogLevel.CRITICAL: logging.CRITICAL,
    }

    return StructuredLogger(name, level_map[config.log_level])


def create_metrics_collector(config: ObservabilityConfig) -> Optional[MetricsCollector]:
    """Create a metrics collector if enabled in config."""
    if config.enable_metrics:
        return MetricsCollector()
    return None
