"""Best-effort telemetry records, sinks and an in-memory fan-out hub."""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Protocol

from .models import utcnow

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TelemetryRecord:
    """Structured execution log entry handed to telemetry sinks."""

    agent_name: str
    action: str
    status: str
    output: str = ""
    timestamp: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    duration_ms: Optional[float] = None
    correlation_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        data["started_at"] = self.started_at.isoformat() if self.started_at else None
        return data


class TelemetrySink(Protocol):
    async def record(self, record: TelemetryRecord) -> None:
        ...


class TelemetryHub:
    """Async hub fanning records out to subscribed consumers.

    Subscriber queues are bounded; a full queue drops the record so a slow
    consumer never stalls a loop.
    """

    def __init__(self, *, queue_size: int = 1000, history: int = 200) -> None:
        self._subscribers: Dict[int, asyncio.Queue[TelemetryRecord]] = {}
        self._queue_size = queue_size
        self._history: List[TelemetryRecord] = []
        self._history_size = history
        self._next_id = 0
        self.dropped = 0

    async def record(self, record: TelemetryRecord) -> None:
        self._history.append(record)
        if len(self._history) > self._history_size:
            del self._history[: len(self._history) - self._history_size]
        for queue in list(self._subscribers.values()):
            try:
                queue.put_nowait(record)
            except asyncio.QueueFull:
                self.dropped += 1

    def recent(self, limit: int = 100) -> List[TelemetryRecord]:
        return self._history[-limit:]

    @asynccontextmanager
    async def subscribe(self) -> AsyncIterator[asyncio.Queue[TelemetryRecord]]:
        """Context manager yielding a queue that receives every new record."""
        subscriber_id = self._next_id
        self._next_id += 1
        queue: asyncio.Queue[TelemetryRecord] = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers[subscriber_id] = queue
        try:
            yield queue
        finally:
            self._subscribers.pop(subscriber_id, None)


class LoggingTelemetrySink:
    """Writes records to the standard logger."""

    def __init__(self, name: str = "agentloop.telemetry") -> None:
        self._logger = logging.getLogger(name)

    async def record(self, record: TelemetryRecord) -> None:
        level = logging.WARNING if record.status in {"failure", "timeout", "error"} else logging.INFO
        self._logger.log(
            level,
            "[%s] %s: %s -> %s",
            record.status.upper(),
            record.agent_name,
            record.action,
            record.output,
        )


class CompositeTelemetrySink:
    """Forwards every record to several sinks, isolating their failures."""

    def __init__(self, sinks: Iterable[TelemetrySink]) -> None:
        self._sinks = list(sinks)

    async def record(self, record: TelemetryRecord) -> None:
        for sink in self._sinks:
            await emit(sink, record)


async def emit(
    sink: Optional[TelemetrySink],
    record: TelemetryRecord,
    *,
    timeout: float = 0.5,
) -> bool:
    """Send ``record`` to ``sink`` without ever raising or blocking for long."""
    if sink is None:
        return False
    try:
        await asyncio.wait_for(sink.record(record), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Telemetry sink timed out for %s/%s", record.agent_name, record.action)
        return False
    except Exception as exc:  # noqa: BLE001
        logger.warning("Telemetry sink unavailable: %s", exc)
        return False
    return True
