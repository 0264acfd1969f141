"""
Logging utilities for torchsht.

Provides consistent logging and error handling across the library.
"""

import logging
import os
import sys
import time
from functools import wraps

_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Configure torchsht logger
logger = logging.getLogger("torchsht")
logger.setLevel(_LEVEL_MAP.get(os.environ.get("TORCHSHT_LOG_LEVEL", "INFO").upper(), logging.INFO))

# Create console handler if none exists
if not logger.handlers:
    handler = logging.StreamHandler(sys.stdout)
    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_errors(func):
    """Decorator to log exceptions before re-raising."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            logger.error(f"Error in {func.__name__}: {str(e)}")
            raise

    return wrapper


def log_performance(func):
    """Decorator to log performance metrics."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.perf_counter()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            end_time = time.perf_counter()
            logger.error(
                f"{func.__name__} failed after {(end_time - start_time) * 1000:.2f}ms: {str(e)}"
            )
            raise
        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.debug(f"{func.__name__} completed in {elapsed_ms:.2f}ms")
        log_performance_warning(func.__name__, elapsed_ms)
        return result

    return wrapper


def set_log_level(level: str):
    """Set logging level for torchsht."""
    logger.setLevel(_LEVEL_MAP.get(level.upper(), logging.INFO))


def set_verbosity(verbosity: int):
    """Map the 0-5 command-line verbosity onto logging levels."""
    if verbosity <= 0:
        logger.setLevel(logging.WARNING)
    elif verbosity <= 2:
        logger.setLevel(logging.INFO)
    else:
        logger.setLevel(logging.DEBUG)


def log_memory_usage(context: str, size_mb: float):
    """Log memory usage information."""
    logger.debug(f"Memory usage in {context}: {size_mb:.2f} MB")


def log_performance_warning(operation: str, time_ms: float, threshold_ms: float = 10000):
    """Log performance warnings for slow operations."""
    if time_ms > threshold_ms:
        logger.warning(
            f"Slow operation detected: {operation} took {time_ms:.2f}ms (threshold: {threshold_ms}ms)"
        )
