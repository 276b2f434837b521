"""
Retrying executor for table mutations.

DynamoDB rejects mutations while a table or index is still transitioning
(``ResourceInUseException``) or while too many index operations are in
flight (``LimitExceededException``). Those requests are retried at a fixed
interval up to an attempt ceiling; anything else fails immediately.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, FrozenSet, Optional, TypeVar

from ..config import RetryConfig
from ..database.connection import LIMIT_EXCEEDED, RESOURCE_IN_USE, error_code
from ..exceptions import RequestMaxRetriesExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_CODES: Dict[str, FrozenSet[str]] = {
    "CreateTable": frozenset({RESOURCE_IN_USE}),
    "UpdateTimeToLive": frozenset({RESOURCE_IN_USE}),
    "UpdateTable": frozenset({RESOURCE_IN_USE, LIMIT_EXCEEDED}),
}


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 100
    interval_seconds: float = 2.0
    retryable_codes: FrozenSet[str] = field(default_factory=frozenset)

    def is_retryable(self, exc: BaseException) -> bool:
        return error_code(exc) in self.retryable_codes


def policy_for(operation: str, retry_config: Optional[RetryConfig] = None) -> RetryPolicy:
    """Build the retry policy for a DynamoDB operation."""
    retry_config = retry_config or RetryConfig()
    return RetryPolicy(
        max_attempts=retry_config.max_attempts,
        interval_seconds=retry_config.interval_seconds,
        retryable_codes=RETRYABLE_CODES.get(operation, frozenset()),
    )


async def call_with_retry(
    operation: str,
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    table_name: Optional[str] = None,
) -> T:
    """Await ``fn`` until it succeeds or fails with a non-retryable error.

    Only the calling task sleeps between attempts.

    Raises:
        RequestMaxRetriesExhaustedError: every attempt failed with a
            retryable error.
    """
    last_error: Optional[Exception] = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await fn()
        except Exception as e:
            if not policy.is_retryable(e):
                raise
            last_error = e

        if attempt < policy.max_attempts:
            logger.warning(
                f"{operation} on {table_name} rejected ({error_code(last_error)}), "
                f"attempt {attempt}/{policy.max_attempts}, "
                f"retrying in {policy.interval_seconds}s"
            )
            await asyncio.sleep(policy.interval_seconds)

    logger.error(
        f"{operation} on {table_name} still rejected after {policy.max_attempts} attempts"
    )
    raise RequestMaxRetriesExhaustedError(
        operation, policy.max_attempts, table_name=table_name, cause=last_error
    ) from last_error
