"""
Error Handling Utilities for NetGuard

Expected firewall failures travel as FirewallResult values. This module
handles the rest: unexpected exceptions in background work (restoration,
storage, security log writes) are categorized, logged with context and
collected in a thread-safe aggregator for diagnostics.

USAGE:
    from netguard.utils.error_handling import (
        handle_error,
        ErrorCategory,
        safe_execute,
    )

    with safe_execute("loading devices", ErrorCategory.STORAGE) as result:
        result.value = repository.get_blocked_devices()

    try:
        restore()
    except Exception as e:
        handle_error(e, "rule_restoration", ErrorCategory.FIREWALL)
"""

import errno
import logging
import re
import sys
import threading
import time
import traceback
from collections import Counter, deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == 'win32'


class ErrorCategory(Enum):
    """Where an unexpected error came from."""
    FIREWALL = "firewall"
    PERMISSION = "permission"
    STORAGE = "storage"
    SECURITY_LOG = "security_log"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


_LOG_LEVELS = {
    ErrorSeverity.INFO: logging.INFO,
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.ERROR: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}

# Launch failures of iptables/ebtables/netsh, phrased the same on every OS
_WINDOWS_ERRORS = {
    2: ('FileNotFoundError', 'File not found'),
    3: ('FileNotFoundError', 'Path not found'),
    5: ('PermissionError', 'Access denied'),
    740: ('PermissionError', 'Elevation required'),
    1314: ('PermissionError', 'Privilege not held'),
}
_ERRNO_ERRORS = {
    errno.ENOENT: ('FileNotFoundError', 'No such file or directory'),
    errno.EACCES: ('PermissionError', 'Permission denied'),
    errno.EPERM: ('PermissionError', 'Operation not permitted'),
    errno.ENOEXEC: ('OSError', 'Exec format error'),
}
_WINERROR_PATTERN = re.compile(r'\[WinError (\d+)\]')


@dataclass
class ErrorContext:
    """One handled error plus where and when it happened."""
    error: Exception
    category: ErrorCategory
    severity: ErrorSeverity
    operation: str
    additional_context: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.utcnow().isoformat() + "Z")
    thread_name: str = field(default_factory=lambda: threading.current_thread().name)
    stack_trace: str = ""

    def __post_init__(self):
        if not self.stack_trace and sys.exc_info()[0] is not None:
            self.stack_trace = traceback.format_exc()

    @property
    def dedup_key(self) -> str:
        return f"{self.category.value}:{type(self.error).__name__}:{self.operation}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'operation': self.operation,
            'category': self.category.value,
            'severity': self.severity.value,
            'error_type': type(self.error).__name__,
            'error_message': str(self.error),
            'timestamp': self.timestamp,
            'thread_name': self.thread_name,
            'additional_context': self.additional_context,
        }

    def format_log_message(self) -> str:
        message = (
            f"{self.operation} failed [{self.category.value}/{self.severity.value}] "
            f"{type(self.error).__name__}: {self.error} (thread {self.thread_name})"
        )
        if self.additional_context:
            pairs = ", ".join(f"{k}={v}" for k, v in self.additional_context.items())
            message += f" context: {pairs}"
        if self.stack_trace:
            message += "\n" + self.stack_trace.rstrip()
        return message


class ErrorAggregator:
    """
    Thread-safe, bounded history of handled errors.

    A repeat of the same (category, type, operation) inside the dedup
    window is counted but not stored again.
    """

    def __init__(self, max_errors: int = 500, dedup_window_seconds: int = 60):
        self._errors: Deque[ErrorContext] = deque(maxlen=max_errors)
        self._counts: Counter = Counter()
        self._last_seen: Dict[str, float] = {}
        self._dedup_window = dedup_window_seconds
        self._lock = threading.Lock()

    def add_error(self, context: ErrorContext) -> bool:
        """Returns True if the error was stored, False if deduplicated."""
        key = context.dedup_key
        now = time.monotonic()

        with self._lock:
            self._counts[key] += 1
            last = self._last_seen.get(key)
            if last is not None and now - last < self._dedup_window:
                return False
            self._last_seen[key] = now
            self._errors.append(context)
            return True

    def get_error_summary(self) -> Dict[str, Any]:
        with self._lock:
            errors = list(self._errors)
            counts = dict(self._counts)
        return {
            'total_errors': len(errors),
            'by_category': dict(Counter(e.category.value for e in errors)),
            'by_severity': dict(Counter(e.severity.value for e in errors)),
            'deduplicated_counts': counts,
        }

    def get_recent_errors(self, count: int = 10) -> List[Dict[str, Any]]:
        with self._lock:
            errors = list(self._errors)
        return [e.to_dict() for e in errors[-count:]]

    def clear(self):
        with self._lock:
            self._errors.clear()
            self._counts.clear()
            self._last_seen.clear()


_aggregator = ErrorAggregator()


def get_error_aggregator() -> ErrorAggregator:
    """The process-wide aggregator used by handle_error()."""
    return _aggregator


def determine_severity(error: Exception, category: ErrorCategory) -> ErrorSeverity:
    """Pick a severity from the error type and category."""
    if isinstance(error, PermissionError) or category == ErrorCategory.PERMISSION:
        return ErrorSeverity.ERROR

    # A broken security log means firewall changes go unaudited
    if category == ErrorCategory.SECURITY_LOG:
        return ErrorSeverity.CRITICAL

    if isinstance(error, FileNotFoundError):
        return ErrorSeverity.WARNING

    if 'timeout' in type(error).__name__.lower() or 'timed out' in str(error).lower():
        return ErrorSeverity.WARNING

    return ErrorSeverity.ERROR


def handle_error(
    error: Exception,
    operation: str,
    category: ErrorCategory = ErrorCategory.UNKNOWN,
    severity: Optional[ErrorSeverity] = None,
    additional_context: Optional[Dict[str, Any]] = None,
    reraise: bool = False,
) -> ErrorContext:
    """
    Log an exception with context and record it in the aggregator.

    Args:
        error: The exception that occurred
        operation: Name of the failed operation
        category: Where the error came from
        severity: Severity level (derived when omitted)
        additional_context: Extra key/values for the log message
        reraise: Re-raise after handling

    Returns:
        The ErrorContext that was recorded
    """
    context = ErrorContext(
        error=error,
        category=category,
        severity=severity or determine_severity(error, category),
        operation=operation,
        additional_context=additional_context or {},
    )

    level = _LOG_LEVELS[context.severity]
    if _aggregator.add_error(context):
        logger.log(level, context.format_log_message())
    else:
        logger.log(level, f"[repeated] {operation}: {type(error).__name__}: {error}")

    if reraise:
        raise error
    return context


class SafeResult:
    """Outcome holder yielded by safe_execute()."""

    def __init__(self, default: Any):
        self.value = default
        self.success = True
        self.error: Optional[ErrorContext] = None


@contextmanager
def safe_execute(
    operation: str,
    category: ErrorCategory = ErrorCategory.UNKNOWN,
    default_return: Any = None,
    additional_context: Optional[Dict[str, Any]] = None,
):
    """
    Run a block, handing any exception to handle_error() instead of raising.

    Usage:
        with safe_execute("reading device store", ErrorCategory.STORAGE, []) as result:
            result.value = repo.get_blocked_devices()
        devices = result.value
    """
    result = SafeResult(default_return)
    try:
        yield result
    except Exception as e:
        result.success = False
        result.value = default_return
        result.error = handle_error(e, operation, category, additional_context=additional_context)


def normalize_platform_error(error: Exception) -> Tuple[str, str]:
    """
    Normalize platform-specific OS errors to a (type, message) pair.

    Used to phrase process launch failures consistently on Windows and Unix.
    """
    if IS_WINDOWS:
        match = _WINERROR_PATTERN.search(str(error))
        if match and int(match.group(1)) in _WINDOWS_ERRORS:
            return _WINDOWS_ERRORS[int(match.group(1))]
    else:
        err_no = getattr(error, 'errno', None)
        if err_no in _ERRNO_ERRORS:
            return _ERRNO_ERRORS[err_no]

    return type(error).__name__, str(error)
