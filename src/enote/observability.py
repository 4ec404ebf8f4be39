"""Logging setup and per-command timing for the ENote backend.

Every command runs inside ``timed_operation``, which logs it and feeds the
process-wide ``metrics`` collector read back by the ``server_status`` tool.
"""
import logging
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Iterator, Optional, Union

logger = logging.getLogger(__name__)

PACKAGE_LOGGER = "enote"
LOG_FILE_NAME = "enote.log"
DEFAULT_LOG_DIR = Path.home() / ".enote" / "logs"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"


def _drop_file_handlers(package_logger: logging.Logger) -> None:
    for handler in list(package_logger.handlers):
        if isinstance(handler, RotatingFileHandler):
            package_logger.removeHandler(handler)
            handler.close()


def _has_console_handler(package_logger: logging.Logger) -> bool:
    return any(type(h) is logging.StreamHandler for h in package_logger.handlers)


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    console: bool = True,
) -> Path:
    """Send the ``enote`` logger hierarchy to a rotating ``enote.log``.

    Calling it again moves the file to the new directory instead of adding a
    second file handler.

    Args:
        log_dir: Directory for the log file. Defaults to ~/.enote/logs/
        level: Level for the package logger and its handlers
        max_bytes: Size at which the file rotates
        backup_count: Rotated files kept
        console: Also write to stderr

    Returns:
        The directory holding the log file.
    """
    directory = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    directory.mkdir(parents=True, exist_ok=True)
    log_file = directory / LOG_FILE_NAME

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(level)
    _drop_file_handlers(package_logger)

    handlers = [
        RotatingFileHandler(
            log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
    ]
    if console and not _has_console_handler(package_logger):
        handlers.append(logging.StreamHandler())

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        package_logger.addHandler(handler)

    package_logger.info(
        f"Logging to {log_file} (rotates at {max_bytes} bytes, keeps {backup_count})"
    )
    return directory


@dataclass
class CommandStats:
    """Running totals for one command name."""

    calls: int = 0
    failures: int = 0
    total_ms: float = 0.0
    fastest_ms: Optional[float] = None
    slowest_ms: float = 0.0
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None

    def add(self, duration_ms: float, error: Optional[str]) -> None:
        self.calls += 1
        self.total_ms += duration_ms
        self.slowest_ms = max(self.slowest_ms, duration_ms)
        if self.fastest_ms is None or duration_ms < self.fastest_ms:
            self.fastest_ms = duration_ms
        if error is not None:
            self.failures += 1
            self.last_error = error
            self.last_error_at = datetime.now(timezone.utc)

    def as_dict(self) -> Dict[str, Any]:
        succeeded = self.calls - self.failures
        return {
            "count": self.calls,
            "success_count": succeeded,
            "error_count": self.failures,
            "success_rate": succeeded / self.calls if self.calls else 0.0,
            "avg_duration_ms": round(self.total_ms / self.calls, 2) if self.calls else 0.0,
            "min_duration_ms": round(self.fastest_ms or 0.0, 2),
            "max_duration_ms": round(self.slowest_ms, 2),
            "last_error": self.last_error,
            "last_error_time": self.last_error_at.isoformat() if self.last_error_at else None,
        }


class MetricsCollector:
    """Thread-safe timing and failure counts keyed by command name."""

    def __init__(self):
        self._stats: Dict[str, CommandStats] = {}
        self._lock = Lock()
        self._started = time.monotonic()

    def record_operation(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None,
    ) -> None:
        with self._lock:
            stats = self._stats.setdefault(operation, CommandStats())
            stats.add(duration_ms, None if success else (error or "unknown error"))

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Per-command snapshot: counts, success rate, durations and last error."""
        with self._lock:
            return {name: stats.as_dict() for name, stats in self._stats.items()}

    def get_summary(self) -> Dict[str, Any]:
        """Totals across all commands since the collector was created."""
        with self._lock:
            calls = sum(s.calls for s in self._stats.values())
            failures = sum(s.failures for s in self._stats.values())
            tracked = sorted(self._stats)
        return {
            "uptime_seconds": round(time.monotonic() - self._started, 1),
            "total_operations": calls,
            "total_success": calls - failures,
            "total_errors": failures,
            "overall_success_rate": (calls - failures) / calls if calls else 1.0,
            "operations_tracked": tracked,
        }


metrics = MetricsCollector()


@contextmanager
def timed_operation(operation: str, **context) -> Iterator[Dict[str, Any]]:
    """Time a block, log it at DEBUG and record it under ``operation``.

    Yields a dict whose entries are appended to the END log line. A block
    that turns an exception into a response sets ``op["error"]`` so the call
    still counts as failed.
    """
    ref = uuid.uuid4().hex[:8]
    op: Dict[str, Any] = {"correlation_id": ref}
    logger.debug(f"[{ref}] START {operation} {context}")

    started = time.perf_counter()
    raised: Optional[BaseException] = None
    try:
        yield op
    except Exception as e:
        raised = e
        raise
    finally:
        elapsed_ms = (time.perf_counter() - started) * 1000
        error = raised if raised is not None else op.get("error")
        error_text = None if error is None else str(error)
        metrics.record_operation(operation, elapsed_ms, error is None, error_text)

        extras = {k: v for k, v in op.items() if k not in ("correlation_id", "error")}
        outcome = "OK" if error is None else f"ERROR: {error_text}"
        logger.debug(f"[{ref}] END {operation} {elapsed_ms:.2f}ms [{outcome}] {extras}")
