"""
Platform Utilities - UTC clock and bounded external calls.

Centralizes cross-cutting concerns so the rest of the codebase stays clean.
All time-sensitive code should use now_utc() instead of datetime.now() so
timestamps stored in the trace and order tables are comparable.
"""
import shutil
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from datetime import datetime, timezone
from typing import Callable, TypeVar

from loguru import logger

T = TypeVar("T")


# ============================================
# UTC CLOCK
# ============================================

def now_utc() -> datetime:
    """Get current timezone-aware datetime in UTC."""
    return datetime.now(timezone.utc)


# ============================================
# CALL TIMEOUT
# ============================================

def call_with_timeout(func: Callable[[], T], timeout_seconds: float = 10.0,
                      label: str = "external call") -> T:
    """
    Execute a blocking external call with a timeout.

    yfinance and most SDK clients don't support a hard deadline natively, so we
    run the call on its own worker thread and raise TimeoutError if it takes
    too long. Each call gets a fresh single-worker executor: concurrent calls
    never queue behind one another, and a call abandoned after a timeout only
    holds its own thread until it returns. Its result is discarded.

    Args:
        func: Zero-argument callable performing the call
        timeout_seconds: Max seconds to wait (default 10)
        label: Name used in the timeout message

    Returns:
        Result of func()

    Raises:
        TimeoutError: If the call exceeds timeout_seconds
    """
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="external-call")
    future = executor.submit(func)
    try:
        return future.result(timeout=timeout_seconds)
    except FuturesTimeout:
        future.cancel()
        logger.warning(f"{label} timed out after {timeout_seconds}s")
        raise TimeoutError(f"{label} timed out after {timeout_seconds}s")
    finally:
        executor.shutdown(wait=False)


# ============================================
# DISK SPACE CHECK
# ============================================

def check_disk_space(path, min_mb=50) -> bool:
    """
    Check if there's enough disk space for SQLite writes.

    Returns:
        True if sufficient space available, True on error (don't block the pipeline)
    """
    try:
        usage = shutil.disk_usage(str(path))
        free_mb = usage.free / (1024 * 1024)
        return free_mb >= min_mb
    except Exception:
        return True  # Don't block on check failure
