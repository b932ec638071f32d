"""Hand-off routing and bounded chain execution."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from agentloop.core.errors import ChainDepthExceeded, UnknownAgentError
from agentloop.core.models import (
    AgentCategory,
    AgentDescriptor,
    ExecutionContext,
    ExecutionResult,
    HandoffChain,
)
from agentloop.orchestration.executor import InvocationExecutor

logger = logging.getLogger(__name__)


class HandoffRouter:
    """Pick the successor of an agent whose result should be forwarded.

    An explicit ``next_agent`` on the result wins. Otherwise the source's
    category is looked up in ``affinity`` and the successor is chosen by
    rotation among agents of the target category.
    """

    def __init__(self, affinity: Optional[Mapping[str, str]] = None) -> None:
        self._affinity: Dict[AgentCategory, AgentCategory] = {
            AgentCategory(source): AgentCategory(target)
            for source, target in (affinity or {}).items()
        }
        self._cursors: Dict[AgentCategory, int] = {}

    def route(
        self,
        source: AgentDescriptor,
        result: ExecutionResult,
        snapshot: Sequence[AgentDescriptor],
    ) -> Optional[str]:
        if not result.success or not result.should_continue:
            return None
        if result.next_agent:
            return result.next_agent
        target = self._affinity.get(source.category)
        if target is None:
            return None
        candidates = [d for d in snapshot if d.category is target and d.name != source.name]
        if not candidates:
            return None
        cursor = self._cursors.get(target, 0)
        self._cursors[target] = cursor + 1
        return candidates[cursor % len(candidates)].name


@dataclass(slots=True)
class ChainOutcome:
    chain: HandoffChain
    results: List[Tuple[str, ExecutionResult]] = field(default_factory=list)
    handoffs: int = 0
    errors: int = 0
    broken: bool = False


async def run_handoff_chain(
    executor: InvocationExecutor,
    router: HandoffRouter,
    snapshot: Sequence[AgentDescriptor],
    origin: AgentDescriptor,
    origin_result: ExecutionResult,
    context: ExecutionContext,
    *,
    max_length: int,
    should_stop: Callable[[], bool] = lambda: False,
) -> ChainOutcome:
    """Follow hand-offs from ``origin`` one link at a time.

    The chain holds at most ``max_length`` entries, the origin included. A
    link that would exceed it is dropped and counted as an error. ``errors``
    only covers failures that are not invocation results (unknown successor,
    truncation); failed link results are reported through ``results``.
    """
    chain = HandoffChain(max_length=max_length)
    chain.append(origin.name, dict(context.payload))
    outcome = ChainOutcome(chain=chain)
    by_name = {d.name: d for d in snapshot}

    current, result = origin, origin_result
    while True:
        next_name = router.route(current, result, snapshot)
        if next_name is None or should_stop():
            break
        successor = by_name.get(next_name)
        if successor is None:
            logger.warning(
                "Broken hand-off %s -> %s: %s", current.name, next_name, UnknownAgentError(next_name)
            )
            outcome.errors += 1
            outcome.broken = True
            break
        payload = {
            **context.payload,
            "handoff": True,
            "from_agent": current.name,
            "previous_output": result.message,
            "previous_data": result.data,
            "chain_position": len(chain),
        }
        try:
            chain.append(next_name, payload)
        except ChainDepthExceeded as exc:
            logger.warning("%s (chain: %s)", exc, " -> ".join(chain.agent_names))
            outcome.errors += 1
            break

        outcome.handoffs += 1
        logger.debug("Hand-off %s -> %s", current.name, next_name)
        result = await executor.execute(
            successor,
            context.derive(payload, caller=current.name),
            action=f"handoff from {current.name}",
        )
        outcome.results.append((next_name, result))
        if not result.success:
            logger.warning("Hand-off link %s -> %s failed: %s", current.name, next_name, result.message)
            outcome.broken = True
            break
        current = successor

    return outcome
