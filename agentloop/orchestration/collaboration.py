"""Concurrent collaboration on shared input and result synthesis."""
from __future__ import annotations

from typing import Dict, Mapping, Optional, Sequence, Tuple

from agentloop.core.models import AgentDescriptor, ExecutionContext, ExecutionResult
from agentloop.orchestration.executor import InvocationExecutor


def synthesize(results: Mapping[str, ExecutionResult]) -> ExecutionResult:
    """Merge member results into one.

    Partial failure keeps the successful outputs and lists the failed members
    under ``data["failed"]``. A batch where nobody succeeded yields a failed
    result with ``data["failed_all"]`` set.
    """
    succeeded = {name: r for name, r in results.items() if r.success}
    failed = {name: r.message for name, r in results.items() if not r.success}
    data = {
        "members": list(results),
        "outputs": {name: {"message": r.message, "data": r.data} for name, r in succeeded.items()},
        "failed": failed,
        "failed_all": not succeeded,
    }
    duration = max((r.duration_ms for r in results.values()), default=0.0)

    if not succeeded:
        return ExecutionResult(
            success=False,
            message=f"Collaboration failed: all {len(results)} members failed",
            data=data,
            duration_ms=duration,
        )

    message = "; ".join(f"{name}: {r.message}" for name, r in succeeded.items())
    if failed:
        message += f" (failed: {', '.join(failed)})"
    return ExecutionResult(success=True, message=message, data=data, duration_ms=duration)


async def collaborate(
    executor: InvocationExecutor,
    members: Sequence[AgentDescriptor],
    context: ExecutionContext,
    *,
    limit: Optional[int] = None,
) -> Tuple[ExecutionResult, Dict[str, ExecutionResult]]:
    """Invoke ``members`` concurrently on shared input; returns (synthesis, member results)."""
    shared = context.derive(
        {**context.payload, "collaboration": True, "members": [m.name for m in members]}
    )
    results = await executor.execute_many(members, shared, limit=limit, action="collaborate")
    return synthesize(results), results
