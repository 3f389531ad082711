from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from . import console
from .audit import JsonAuditLogger
from .config import RetrySettings
from .errors import RemoteCallFailure

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of a retried call: either a value or the failure that ended it."""

    value: Optional[T] = None
    error: Optional[RemoteCallFailure] = None
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok and self.value is not None else default


class RetryPolicy:
    """Replays a Management API call while it is rate limited.

    Rate limited calls wait ``delay_seconds`` and run again, forever unless
    ``max_attempts`` is set. Every other RemoteCallFailure is reported and
    turned into a failed Outcome without a retry.
    """

    def __init__(
        self,
        settings: Optional[RetrySettings] = None,
        audit_logger: Optional[JsonAuditLogger] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings or RetrySettings()
        self.audit = audit_logger
        self._sleep = sleep

    def _retryable(self, failure: RemoteCallFailure) -> bool:
        return failure.status_code in self.settings.retry_on_status

    async def with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        description: str = "operation",
    ) -> Outcome[T]:
        attempt = 0
        while True:
            attempt += 1
            try:
                value = await operation()
            except RemoteCallFailure as failure:
                if not self._retryable(failure):
                    self._report(failure, description, attempt)
                    return Outcome(error=failure, attempts=attempt)
                max_attempts = self.settings.max_attempts
                if max_attempts is not None and attempt >= max_attempts:
                    if self.audit:
                        self.audit.error(
                            "retry_exhausted",
                            operation=description,
                            attempts=attempt,
                            status=failure.status_code,
                        )
                    console.fail(f"giving up on {description} after {attempt} attempts: {failure}")
                    return Outcome(error=failure, attempts=attempt)

                delay = self.settings.delay_seconds
                if self.audit:
                    self.audit.warning(
                        "rate_limited",
                        operation=description,
                        attempt=attempt,
                        retry_after=delay,
                    )
                console.warn(f"rate limited, waiting for {delay:g}s before retrying..")
                await self._sleep(delay)
                continue
            return Outcome(value=value, attempts=attempt)

    def _report(self, failure: RemoteCallFailure, description: str, attempt: int) -> None:
        if self.audit:
            self.audit.error(
                "operation_failed",
                operation=description,
                attempts=attempt,
                status=failure.status_code,
                error=str(failure),
            )
        console.fail(str(failure))
