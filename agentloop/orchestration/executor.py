"""Invocation boundary: calls one agent and converts every failure into a result."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Dict, Optional, Sequence, Tuple

from agentloop.core.errors import AgentInvocationError
from agentloop.core.models import AgentDescriptor, ExecutionContext, ExecutionResult, utcnow
from agentloop.core.telemetry import TelemetryRecord, TelemetrySink, emit

logger = logging.getLogger(__name__)


class InvocationExecutor:
    """Run agent runners behind a boundary no exception crosses."""

    def __init__(
        self,
        *,
        telemetry: Optional[TelemetrySink] = None,
        timeout_s: Optional[float] = None,
        telemetry_timeout_s: float = 0.5,
    ) -> None:
        self._telemetry = telemetry
        self._timeout_s = timeout_s
        self._telemetry_timeout_s = telemetry_timeout_s

    @property
    def telemetry(self) -> Optional[TelemetrySink]:
        return self._telemetry

    async def execute(
        self,
        descriptor: AgentDescriptor,
        context: ExecutionContext,
        *,
        action: str = "invoke",
    ) -> ExecutionResult:
        started_at = utcnow()
        start = time.perf_counter()
        status = "success"
        try:
            if self._timeout_s is None:
                result = await descriptor.runner(context)
            else:
                result = await asyncio.wait_for(descriptor.runner(context), timeout=self._timeout_s)
            if not isinstance(result, ExecutionResult):
                raise TypeError(
                    f"runner returned {type(result).__name__}, expected ExecutionResult"
                )
            if not result.success:
                status = "failure"
        except asyncio.TimeoutError as exc:
            if self._timeout_s is None:
                # Raised by the runner itself; no deadline was applied.
                status = "failure"
                result = self._failure(descriptor, exc)
            else:
                status = "timeout"
                result = ExecutionResult(
                    success=False,
                    message=f"Agent '{descriptor.name}' timed out after {self._timeout_s}s",
                    data={"timeout": True},
                )
        except Exception as exc:  # noqa: BLE001
            status = "failure"
            result = self._failure(descriptor, exc)

        result.duration_ms = (time.perf_counter() - start) * 1000.0
        logger.debug("%s %s in %.1fms", descriptor.name, status, result.duration_ms)
        await emit(
            self._telemetry,
            TelemetryRecord(
                agent_name=descriptor.name,
                action=action,
                status=status,
                output=result.message,
                started_at=started_at,
                duration_ms=result.duration_ms,
                correlation_id=context.correlation_id,
            ),
            timeout=self._telemetry_timeout_s,
        )
        return result

    @staticmethod
    def _failure(descriptor: AgentDescriptor, exc: Exception) -> ExecutionResult:
        error = AgentInvocationError(descriptor.name, exc)
        logger.warning("%s", error)
        return ExecutionResult(
            success=False,
            message=str(error),
            data={"error": type(exc).__name__},
        )

    async def execute_many(
        self,
        descriptors: Sequence[AgentDescriptor],
        context: ExecutionContext,
        *,
        limit: Optional[int] = None,
        action: str = "invoke",
    ) -> Dict[str, ExecutionResult]:
        """Run a batch concurrently and return once every member has resolved.

        Each member gets its own copy of the payload. At most ``limit``
        invocations are in flight at a time.
        """
        semaphore = asyncio.Semaphore(limit) if limit else None

        async def _one(descriptor: AgentDescriptor) -> Tuple[str, ExecutionResult]:
            child = context.derive(dict(context.payload))
            if semaphore is None:
                return descriptor.name, await self.execute(descriptor, child, action=action)
            async with semaphore:
                return descriptor.name, await self.execute(descriptor, child, action=action)

        pairs = await asyncio.gather(*(_one(d) for d in descriptors))
        return dict(pairs)
