"""
Bounded retries for cache and store calls.
"""

import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Type, TypeVar

import structlog
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from sqlalchemy.exc import OperationalError

from sku_enrichment.exceptions import StoreUnavailableError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (
    RedisConnectionError,
    RedisTimeoutError,
    OperationalError,
    TimeoutError,
)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff_seconds: float = 0.2
    sleep: Callable[[float], None] = time.sleep


def retry_call(
    policy: RetryPolicy,
    operation: str,
    func: Callable[..., T],
    *args,
    on_retry: Optional[Callable[[], None]] = None,
) -> T:
    """
    Call ``func(*args)``, retrying transient failures with linear backoff.

    ``on_retry`` runs before each new attempt, e.g. to reset a connection the
    failure left unusable.

    Raises:
        StoreUnavailableError: after the last attempt failed transiently
    """
    attempt = 1
    while True:
        try:
            return func(*args)
        except TRANSIENT_ERRORS as error:
            if attempt >= policy.max_attempts:
                logger.error(
                    "Giving up after transient failures",
                    operation=operation,
                    attempts=attempt,
                    error=str(error),
                )
                raise StoreUnavailableError(f"{operation} failed after {attempt} attempts: {error}") from error
            logger.warning(
                "Transient failure, retrying",
                operation=operation,
                attempt=attempt,
                error=str(error),
            )
            policy.sleep(policy.backoff_seconds * attempt)
            if on_retry is not None:
                on_retry()
            attempt += 1
