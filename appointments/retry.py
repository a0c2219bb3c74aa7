# appointments/retry.py

import functools

import structlog
from django.db import OperationalError
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .conf import scheduling_setting
from .exceptions import StoreUnavailable

logger = structlog.get_logger(__name__)


def _log_retry(retry_state):
    logger.warning(
        'store_retry',
        operation=retry_state.fn.__name__ if retry_state.fn else None,
        attempt=retry_state.attempt_number,
        error=str(retry_state.outcome.exception()),
    )


def transient_retry(func):
    """
    Re-run `func` when the database reports a transient failure.

    Lock timeouts, serialization aborts and "database is locked" all
    surface as OperationalError. The wrapped function must open its own
    transaction so every attempt starts clean. Once the attempts are used
    up the caller gets StoreUnavailable.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        retrying = Retrying(
            stop=stop_after_attempt(scheduling_setting('TRANSIENT_RETRY_ATTEMPTS')),
            wait=wait_exponential(multiplier=0.05, max=1),
            retry=retry_if_exception_type(OperationalError),
            before_sleep=_log_retry,
            reraise=True,
        )
        try:
            return retrying(func, *args, **kwargs)
        except OperationalError as exc:
            logger.error('store_unavailable', operation=func.__name__, error=str(exc))
            raise StoreUnavailable("The appointment store is temporarily unavailable. Please try again.") from exc
    return wrapper
