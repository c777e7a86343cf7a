"""Observability utilities for tagnote.

Provides logging configuration, timing metrics and operation tracing.
"""
import functools
import logging
import time
import uuid
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

# Logging format with ISO 8601 timestamps
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

# Type variable for decorators
F = TypeVar('F', bound=Callable[..., Any])


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.WARNING,
    max_bytes: int = 5 * 1024 * 1024,  # 5 MB per file
    backup_count: int = 3,
    console: bool = True,
) -> Optional[Path]:
    """Configure logging for the tagnote logger hierarchy.

    When log_dir is given, a rotating file handler is installed there in
    addition to the optional console handler (which writes to stderr so it
    never mixes with command output).

    Args:
        log_dir: Directory for log files. No file logging when None.
        level: Logging level (default: WARNING)
        max_bytes: Maximum size per log file before rotation (default: 5 MB)
        backup_count: Number of rotated files to keep (default: 3)
        console: Also log to console (default: True)

    Returns:
        Path to the log directory, or None when file logging is off
    """
    root_logger = logging.getLogger("tagnote")
    root_logger.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    log_path = None
    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        log_file = log_path / "tagnote.log"
        if not any(
            isinstance(h, RotatingFileHandler)
            and Path(h.baseFilename) == log_file.resolve()
            for h in root_logger.handlers
        ):
            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)

    # Optionally add console handler
    if console and not any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, RotatingFileHandler)
        for h in root_logger.handlers
    ):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    root_logger.debug(f"Logging configured (level={logging.getLevelName(level)}, dir={log_path})")

    return log_path


@dataclass
class OperationMetrics:
    """Metrics for a single operation type."""
    count: int = 0
    success_count: int = 0
    error_count: int = 0
    total_duration_ms: float = 0.0
    min_duration_ms: float = float('inf')
    max_duration_ms: float = 0.0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None


class MetricsCollector:
    """Thread-safe, in-process metrics for store operations.

    Collects timing, success/failure rates and the last error for each
    operation type (create, list, grep, ...).
    """

    def __init__(self):
        self._metrics: Dict[str, OperationMetrics] = defaultdict(OperationMetrics)
        self._lock = Lock()
        self._start_time = datetime.now(timezone.utc)

    def record_operation(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None
    ) -> None:
        """Record metrics for an operation.

        Args:
            operation: The operation name (e.g., 'create', 'grep')
            duration_ms: Duration in milliseconds
            success: Whether the operation succeeded
            error: Error message if the operation failed
        """
        with self._lock:
            m = self._metrics[operation]
            m.count += 1
            m.total_duration_ms += duration_ms
            m.min_duration_ms = min(m.min_duration_ms, duration_ms)
            m.max_duration_ms = max(m.max_duration_ms, duration_ms)

            if success:
                m.success_count += 1
            else:
                m.error_count += 1
                m.last_error = error
                m.last_error_time = datetime.now(timezone.utc)

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Get a snapshot of all metrics, keyed by operation name."""
        with self._lock:
            result = {}
            for op, m in self._metrics.items():
                result[op] = {
                    'count': m.count,
                    'success_count': m.success_count,
                    'error_count': m.error_count,
                    'avg_duration_ms': m.total_duration_ms / m.count if m.count else 0.0,
                    'min_duration_ms': m.min_duration_ms if m.count else 0.0,
                    'max_duration_ms': m.max_duration_ms,
                    'last_error': m.last_error,
                    'last_error_time': (
                        m.last_error_time.isoformat() if m.last_error_time else None
                    ),
                }
            return result

    def get_summary(self) -> Dict[str, Any]:
        """Get totals across all operations plus uptime."""
        with self._lock:
            total_ops = sum(m.count for m in self._metrics.values())
            total_errors = sum(m.error_count for m in self._metrics.values())
            uptime = (datetime.now(timezone.utc) - self._start_time).total_seconds()
            return {
                'uptime_seconds': uptime,
                'total_operations': total_ops,
                'total_errors': total_errors,
                'operations_tracked': len(self._metrics),
            }

    def reset(self) -> None:
        """Reset all metrics."""
        with self._lock:
            self._metrics.clear()
            self._start_time = datetime.now(timezone.utc)


# Global metrics collector instance
metrics = MetricsCollector()


@contextmanager
def timed_operation(operation: str, **context):
    """Context manager for timing and logging operations.

    Args:
        operation: Name of the operation being performed
        **context: Additional context to include in log messages

    Yields:
        A dictionary where you can store result info (e.g., result_count)

    Example:
        with timed_operation('grep', pattern='todo') as op:
            results = do_grep()
            op['result_count'] = len(results)
    """
    correlation_id = str(uuid.uuid4())[:8]
    start_time = time.perf_counter()
    result_info: Dict[str, Any] = {'correlation_id': correlation_id}

    context_str = ', '.join(f'{k}={v}' for k, v in context.items())
    logger.debug(f"[{correlation_id}] START {operation} ({context_str})")

    error_msg = None
    success = True

    try:
        yield result_info
    except Exception as e:
        success = False
        error_msg = str(e)
        raise
    finally:
        duration_ms = (time.perf_counter() - start_time) * 1000
        metrics.record_operation(operation, duration_ms, success, error_msg)

        result_str = ', '.join(f'{k}={v}' for k, v in result_info.items() if k != 'correlation_id')
        status = 'OK' if success else f'ERROR: {error_msg}'
        logger.debug(
            f"[{correlation_id}] END {operation} "
            f"({duration_ms:.2f}ms) [{status}] {result_str}"
        )


def traced(operation_name: Optional[str] = None) -> Callable[[F], F]:
    """Decorator for automatic operation tracing.

    Times the function, records metrics and logs start/end with a
    correlation ID.

    Example:
        @traced('create')
        def create(self, title: str, body: str) -> int:
            ...
    """
    def decorator(func: F) -> F:
        op_name = operation_name or func.__name__

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            context = {}
            if 'note_id' in kwargs:
                context['note_id'] = kwargs['note_id']
            elif 'title' in kwargs:
                context['title'] = kwargs['title'][:50] if kwargs['title'] else None

            with timed_operation(op_name, **context) as op:
                result = func(*args, **kwargs)
                if isinstance(result, (list, tuple)):
                    op['result_count'] = len(result)
                elif result is not None:
                    op['result'] = result if isinstance(result, (int, bool)) else True
                return result

        return wrapper  # type: ignore
    return decorator
