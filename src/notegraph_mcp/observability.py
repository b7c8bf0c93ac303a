"""Logging and operation metrics for NoteGraph.

Every module logs through ``logging.getLogger(__name__)``, so all records
land under the ``notegraph_mcp`` logger that ``configure_logging`` wires to
a rotating file. Reindex batches, imports, graph reads and MCP tool calls
are wrapped in ``timed_operation`` (or ``@traced``), which feeds the
process-wide ``metrics`` collector reported by ``ng_status``.
"""
import functools
import inspect
import json
import logging
import re
import sys
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

ROOT_LOGGER_NAME = "notegraph_mcp"
LOG_FILE_NAME = "notegraph.log"
DEFAULT_LOG_DIR = Path.home() / ".notegraph" / "logs"
DEFAULT_METRICS_FILE = Path.home() / ".notegraph" / "metrics.json"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

F = TypeVar("F", bound=Callable[..., Any])


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    console: bool = True,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> Path:
    """Attach a rotating log file (and optionally stderr) to the package logger.

    Calling it again with the same directory only adjusts the level; no
    second handler is attached to the same file.

    Args:
        log_dir: Directory for ``notegraph.log``. Defaults to ~/.notegraph/logs
        level: Level for the logger and its handlers
        console: Also log to stderr (stdout stays free for CLI JSON)
        max_bytes: Rotate once the file reaches this size
        backup_count: Rotated files to keep

    Returns:
        The log directory in use.
    """
    log_path = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)
    log_file = (log_path / LOG_FILE_NAME).resolve()

    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    package_logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    file_handler = next(
        (
            h for h in package_logger.handlers
            if isinstance(h, RotatingFileHandler) and Path(h.baseFilename) == log_file
        ),
        None,
    )
    if file_handler is None:
        file_handler = RotatingFileHandler(
            log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)
    file_handler.setLevel(level)

    has_console = any(
        type(h) is logging.StreamHandler for h in package_logger.handlers
    )
    if console and not has_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        package_logger.addHandler(console_handler)

    package_logger.info(f"Logging to {log_file}")
    return log_path


def _sanitize_error_message(message: Optional[str], max_length: int = 200) -> Optional[str]:
    """Make an error message safe to persist in the metrics file.

    The home directory becomes ``~``, whitespace runs collapse to one space
    and the result is cut to ``max_length`` characters.
    """
    if message is None:
        return None
    home = str(Path.home())
    if home and home != "/":
        message = message.replace(home, "~")
    message = re.sub(r"\s+", " ", message).strip()
    if len(message) > max_length:
        message = message[: max_length - 3] + "..."
    return message


@dataclass
class OperationMetrics:
    """Running totals for one operation name."""
    count: int = 0
    success_count: int = 0
    error_count: int = 0
    total_duration_ms: float = 0.0
    min_duration_ms: Optional[float] = None
    max_duration_ms: float = 0.0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None

    def record(self, duration_ms: float, success: bool, error: Optional[str]) -> None:
        self.count += 1
        self.total_duration_ms += duration_ms
        if self.min_duration_ms is None or duration_ms < self.min_duration_ms:
            self.min_duration_ms = duration_ms
        self.max_duration_ms = max(self.max_duration_ms, duration_ms)
        if success:
            self.success_count += 1
        else:
            self.error_count += 1
            self.last_error = _sanitize_error_message(error)
            self.last_error_time = datetime.now(timezone.utc)

    def snapshot(self) -> Dict[str, Any]:
        """Rounded view used by ``get_metrics`` and the status tool."""
        return {
            "count": self.count,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "success_rate": self.success_count / self.count if self.count else 0,
            "avg_duration_ms": round(self.total_duration_ms / self.count, 2) if self.count else 0,
            "min_duration_ms": round(self.min_duration_ms or 0, 2),
            "max_duration_ms": round(self.max_duration_ms, 2),
            "last_error": self.last_error,
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
        }

    def to_record(self) -> Dict[str, Any]:
        """Unrounded form written to the metrics file."""
        return {
            "count": self.count,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "total_duration_ms": self.total_duration_ms,
            "min_duration_ms": self.min_duration_ms,
            "max_duration_ms": self.max_duration_ms,
            "last_error": self.last_error,
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
        }

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "OperationMetrics":
        error_time = data.get("last_error_time")
        return cls(
            count=data.get("count", 0),
            success_count=data.get("success_count", 0),
            error_count=data.get("error_count", 0),
            total_duration_ms=data.get("total_duration_ms", 0.0),
            min_duration_ms=data.get("min_duration_ms"),
            max_duration_ms=data.get("max_duration_ms", 0.0),
            last_error=data.get("last_error"),
            last_error_time=datetime.fromisoformat(error_time) if error_time else None,
        )


class MetricsCollector:
    """Thread-safe per-operation metrics, persisted as JSON.

    Args:
        metrics_file: Where totals are saved. Defaults to ~/.notegraph/metrics.json
        auto_save_interval: Save after this many recorded operations (0 disables)
    """

    def __init__(
        self,
        metrics_file: Optional[Union[str, Path]] = None,
        auto_save_interval: int = 100,
    ):
        self._metrics: Dict[str, OperationMetrics] = defaultdict(OperationMetrics)
        self._lock = Lock()
        self._start_time = datetime.now(timezone.utc)
        self._metrics_file = Path(metrics_file) if metrics_file else DEFAULT_METRICS_FILE
        self._auto_save_interval = auto_save_interval
        self._unsaved = 0
        self._load()

    def record_operation(
        self, operation: str, duration_ms: float, success: bool, error: Optional[str] = None
    ) -> None:
        with self._lock:
            self._metrics[operation].record(duration_ms, success, error)
            self._unsaved += 1
            if self._auto_save_interval and self._unsaved >= self._auto_save_interval:
                self._write()

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Snapshot of every operation, keyed by name."""
        with self._lock:
            return {name: m.snapshot() for name, m in self._metrics.items()}

    def get_summary(self) -> Dict[str, Any]:
        """Totals across all operations."""
        with self._lock:
            total_ops = sum(m.count for m in self._metrics.values())
            total_success = sum(m.success_count for m in self._metrics.values())
            return {
                "uptime_seconds": (datetime.now(timezone.utc) - self._start_time).total_seconds(),
                "total_operations": total_ops,
                "total_success": total_success,
                "total_errors": sum(m.error_count for m in self._metrics.values()),
                "overall_success_rate": total_success / total_ops if total_ops else 1.0,
                "operations_tracked": sorted(self._metrics),
            }

    def reset(self) -> None:
        with self._lock:
            self._metrics.clear()
            self._start_time = datetime.now(timezone.utc)
            self._unsaved = 0

    def save_metrics(self) -> bool:
        """Write the current totals to disk. Returns False on failure."""
        with self._lock:
            return self._write()

    def _load(self) -> None:
        if not self._metrics_file.exists():
            return
        try:
            data = json.loads(self._metrics_file.read_text(encoding="utf-8"))
            if "start_time" in data:
                self._start_time = datetime.fromisoformat(data["start_time"])
            for name, record in data.get("operations", {}).items():
                self._metrics[name] = OperationMetrics.from_record(record)
        except (OSError, json.JSONDecodeError, AttributeError, ValueError) as e:
            logger.warning(f"Ignoring unreadable metrics file {self._metrics_file}: {e}")
            self._metrics.clear()
            return
        logger.debug(f"Loaded metrics from {self._metrics_file}")

    def _write(self) -> bool:
        # Caller holds the lock
        data = {
            "start_time": self._start_time.isoformat(),
            "saved_at": datetime.now(timezone.utc).isoformat(),
            "operations": {name: m.to_record() for name, m in self._metrics.items()},
        }
        temp_file = self._metrics_file.with_suffix(".tmp")
        try:
            self._metrics_file.parent.mkdir(parents=True, exist_ok=True)
            temp_file.write_text(json.dumps(data, indent=2), encoding="utf-8")
            temp_file.replace(self._metrics_file)
        except OSError as e:
            logger.error(f"Failed to save metrics to {self._metrics_file}: {e}")
            return False
        self._unsaved = 0
        return True


metrics = MetricsCollector()


@contextmanager
def timed_operation(operation: str, **context):
    """Time a block, record it in ``metrics`` and log START/END lines.

    Yields a dict the block can fill with result details; they are appended
    to the END line. Exceptions are recorded as failures and re-raised.

    Example:
        with timed_operation("reindex", mode="full") as op:
            summary = service.reindex(full=True)
            op["notes_indexed"] = summary.notes_indexed
    """
    correlation_id = uuid.uuid4().hex[:8]
    details: Dict[str, Any] = {}
    logger.debug(
        f"[{correlation_id}] START {operation} "
        f"({', '.join(f'{k}={v}' for k, v in context.items())})"
    )

    start = time.perf_counter()
    error: Optional[str] = None
    try:
        yield details
    except Exception as e:
        error = str(e)
        raise
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        metrics.record_operation(operation, duration_ms, error is None, error)
        status = "OK" if error is None else f"ERROR: {error}"
        logger.debug(
            f"[{correlation_id}] END {operation} ({duration_ms:.2f}ms) [{status}] "
            f"{', '.join(f'{k}={v}' for k, v in details.items())}"
        )


def traced(operation_name: Optional[str] = None, context_arg: Optional[str] = None) -> Callable[[F], F]:
    """Decorator form of ``timed_operation``.

    Args:
        operation_name: Metrics name (defaults to the function name)
        context_arg: Parameter whose value is logged with the START line,
            whether it is passed positionally or by keyword

    Example:
        @traced("get_backlinks", context_arg="title")
        def get_backlinks(self, title): ...
    """
    def decorator(func: F) -> F:
        op_name = operation_name or func.__name__
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            context = {}
            if context_arg:
                bound = signature.bind_partial(*args, **kwargs)
                value = bound.arguments.get(context_arg)
                if value is not None:
                    context[context_arg] = str(value)[:50]

            with timed_operation(op_name, **context) as op:
                result = func(*args, **kwargs)
                if hasattr(result, "__len__"):
                    op["result_count"] = len(result)
                return result

        return wrapper  # type: ignore
    return decorator
