from __future__ import annotations

import json
import logging
import sys
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Deque, Dict, List, Optional


@dataclass
class AuditEvent:
    timestamp: str
    level: str
    event: str
    domain: Optional[str] = None
    run_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


class InMemoryAuditStore:
    """Bounded buffer of audit events, newest first."""

    def __init__(self, max_events: int = 1000):
        self._events: Deque[AuditEvent] = deque(maxlen=max_events)
        self._lock = Lock()

    def append(self, event: AuditEvent) -> None:
        with self._lock:
            self._events.appendleft(event)

    def list(self, limit: int = 100) -> List[AuditEvent]:
        with self._lock:
            return list(self._events)[:limit]

    def named(self, event: str) -> List[AuditEvent]:
        with self._lock:
            return [e for e in self._events if e.event == event]


class JsonAuditLogger:
    """Structured logger for provisioning events.

    Every event goes to the ``portal_setup`` logger as one JSON line and is
    optionally mirrored to an in-memory store so a run can be summarised.
    """

    def __init__(
        self,
        name: str = "portal_setup",
        level: int = logging.INFO,
        store: Optional[InMemoryAuditStore] = None,
    ):
        self.logger = logging.getLogger(name)
        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(_JsonFormatter())
            self.logger.addHandler(handler)
        self.logger.setLevel(level)
        self.logger.propagate = False
        self.store = store

    def _log(self, level: int, event: str, **kwargs: Any) -> None:
        if self.store is not None:
            self.store.append(self._build_event(level, event, **kwargs))
        self.logger.log(level, event, extra={"extra": kwargs})

    def info(self, event: str, **kwargs: Any) -> None:
        self._log(logging.INFO, event, **kwargs)

    def warning(self, event: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, event, **kwargs)

    def error(self, event: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, event, **kwargs)

    def _build_event(self, level: int, event: str, **kwargs: Any) -> AuditEvent:
        return AuditEvent(
            timestamp=datetime.now(timezone.utc).isoformat(),
            level=logging.getLevelName(level),
            event=event,
            domain=kwargs.get("domain"),
            run_id=kwargs.get("run_id"),
            extra={k: v for k, v in kwargs.items() if k not in {"domain", "run_id"}},
        )


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "event": record.getMessage(),
        }

        extra: Optional[Dict[str, Any]] = getattr(record, "extra", None)  # type: ignore[attr-defined]
        if extra:
            payload.update(extra)

        return json.dumps(payload, default=str)
