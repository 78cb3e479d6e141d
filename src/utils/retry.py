"""
Retry decorators with exponential backoff for MySQL operations

Provides resilient retry logic for transient failures with:
- Exponential backoff (base 2.0)
- Jitter to prevent thundering herd
- Configurable max retries
- MySQL error-code aware exception filtering
- Callback support for metrics integration

Usage:
    from utils.retry import retry_database_operation

    @retry_database_operation(max_retries=3, base_delay=1.0)
    def count_rows(cursor, quoted_table):
        cursor.execute(f"SELECT COUNT(*) FROM {quoted_table}")
        return cursor.fetchone()[0]
"""

import logging
import random
import time
from functools import wraps
from typing import Any, Callable, Optional, Tuple, Type

logger = logging.getLogger(__name__)

# 1205 lock wait timeout, 1213 deadlock, 2003 can't connect.
# Lost connections (2006, 2013, 2055) are not retried here: the statement
# cannot succeed until the caller reconnects.
RETRYABLE_MYSQL_ERROR_CODES = frozenset({1205, 1213, 2003})

RETRYABLE_MESSAGE_PATTERNS = (
    "lock wait timeout",
    "deadlock",
    "can't connect",
    "connection refused",
    "timed out",
)


def _backoff_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    exponential_base: float,
    jitter: bool,
) -> float:
    delay = min(base_delay * (exponential_base ** attempt), max_delay)

    # +/-25% jitter, never below 100ms
    if jitter:
        jitter_amount = delay * 0.25
        delay = max(0.1, delay + random.uniform(-jitter_amount, jitter_amount))

    return delay


def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    retryable_exceptions: Optional[Tuple[Type[Exception], ...]] = None,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
    should_retry: Optional[Callable[[Exception], bool]] = None,
):
    """
    Decorator that retries a function with exponential backoff

    Args:
        max_retries: Maximum number of retry attempts (default: 3)
        base_delay: Initial delay in seconds (default: 1.0)
        max_delay: Maximum delay in seconds (default: 60.0)
        exponential_base: Base for exponential backoff (default: 2.0)
        jitter: Add random jitter to prevent thundering herd (default: True)
        retryable_exceptions: Tuple of exception types to retry (default: all)
        on_retry: Callback function(attempt, exception, delay) called on each retry
        should_retry: Predicate deciding whether a caught exception is retryable

    Returns:
        Decorated function with retry logic
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            func_name = getattr(func, "__name__", "function")

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)

                except Exception as e:
                    retryable = (
                        (retryable_exceptions is None or isinstance(e, retryable_exceptions))
                        and (should_retry is None or should_retry(e))
                    )
                    if not retryable:
                        logger.debug(
                            f"Non-retryable exception in {func_name}: {type(e).__name__}: {e}"
                        )
                        raise

                    if attempt == max_retries:
                        logger.error(
                            f"Max retries ({max_retries}) exceeded for {func_name}: "
                            f"{type(e).__name__}: {e}"
                        )
                        raise

                    delay = _backoff_delay(
                        attempt, base_delay, max_delay, exponential_base, jitter
                    )

                    logger.warning(
                        f"Attempt {attempt + 1}/{max_retries} failed for {func_name}: "
                        f"{type(e).__name__}: {e}. Retrying in {delay:.2f}s..."
                    )

                    if on_retry:
                        try:
                            on_retry(attempt + 1, e, delay)
                        except Exception as callback_error:
                            logger.error(f"Error in retry callback: {callback_error}")

                    time.sleep(delay)

            raise RuntimeError(f"Unexpected error in retry logic for {func_name}")

        return wrapper
    return decorator


def mysql_error_code(exception: BaseException) -> Optional[int]:
    """
    Extract the MySQL error code from an exception.

    Uses the `code` attribute of utils.db.DatabaseError when present,
    otherwise the first argument of a PyMySQL error.
    """
    code = getattr(exception, "code", None)
    if isinstance(code, int):
        return code
    args = getattr(exception, "args", ())
    if args and isinstance(args[0], int):
        return args[0]
    return None


def is_retryable_db_exception(exception: Exception) -> bool:
    """
    Determine if a MySQL exception is transient and worth retrying

    Args:
        exception: The exception to check

    Returns:
        True if the exception is retryable, False otherwise
    """
    code = mysql_error_code(exception)
    if code is not None:
        return code in RETRYABLE_MYSQL_ERROR_CODES

    message = str(exception).lower()
    return any(pattern in message for pattern in RETRYABLE_MESSAGE_PATTERNS)


def retry_database_operation(
    max_retries: int = 3,
    base_delay: float = 1.0,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
):
    """
    Convenience decorator for MySQL operations with smart exception filtering

    Only retries on transient errors (lock wait timeout, deadlock, refused
    connection). Syntax errors, missing tables and constraint violations fail
    immediately.

    Args:
        max_retries: Maximum number of retry attempts (default: 3)
        base_delay: Initial delay in seconds (default: 1.0)
        on_retry: Callback function(attempt, exception, delay) called on each retry
    """
    return retry_with_backoff(
        max_retries=max_retries,
        base_delay=base_delay,
        on_retry=on_retry,
        should_retry=is_retryable_db_exception,
    )
