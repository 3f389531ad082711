from __future__ import annotations

from typing import Any, Optional


class SetupError(Exception):
    """Base class for failures raised during tenant setup."""


class ValidationFailure(SetupError):
    """Operator supplied configuration did not pass validation."""


class RemoteCallFailure(SetupError):
    """A Management API call returned a non-2xx response or never completed."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Any = None,
        method: Optional[str] = None,
        url: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.method = method
        self.url = url

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code is None:
            return base
        return f"{base} (status={self.status_code}, body={self.body!r})"


class RateLimited(RemoteCallFailure):
    """The API answered 429; the only failure that is retried."""


class MissingConnectionsError(SetupError):
    def __init__(self, strategy: str, message: str):
        super().__init__(message)
        self.strategy = strategy
        self.message = message
