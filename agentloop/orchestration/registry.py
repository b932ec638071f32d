"""Agent registry: the catalog every loop controller selects from."""
from __future__ import annotations

import logging
import random
from collections import Counter
from typing import Dict, Optional, Tuple

from agentloop.core.errors import EmptyRegistryError, UnknownAgentError
from agentloop.core.models import AgentCategory, AgentDescriptor, ExecutionContext, ExecutionResult
from agentloop.core.telemetry import TelemetrySink
from agentloop.orchestration.executor import InvocationExecutor

logger = logging.getLogger(__name__)


class AgentRegistry:
    """Catalog of invocable agents keyed by unique name.

    Readers always receive tuple snapshots so an in-progress cycle is never
    affected by a concurrent ``register``/``unregister``. Iteration order is
    registration order, which is what rotation scheduling relies on.
    """

    def __init__(
        self,
        *,
        executor: Optional[InvocationExecutor] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._agents: Dict[str, AgentDescriptor] = {}
        self._executor = executor or InvocationExecutor()
        self._rng = rng or random.Random()

    @property
    def executor(self) -> InvocationExecutor:
        return self._executor

    @property
    def telemetry(self) -> Optional[TelemetrySink]:
        return self._executor.telemetry

    def register(self, descriptor: AgentDescriptor) -> None:
        if descriptor.name in self._agents:
            logger.info("Replacing agent registration '%s'", descriptor.name)
        self._agents[descriptor.name] = descriptor

    def unregister(self, name: str) -> None:
        self._agents.pop(name, None)

    def get(self, name: str) -> AgentDescriptor:
        try:
            return self._agents[name]
        except KeyError:
            raise UnknownAgentError(name) from None

    def __contains__(self, name: object) -> bool:
        return name in self._agents

    def __len__(self) -> int:
        return len(self._agents)

    def get_all(self) -> Tuple[AgentDescriptor, ...]:
        return tuple(self._agents.values())

    def get_by_category(self, category: AgentCategory | str) -> Tuple[AgentDescriptor, ...]:
        category = AgentCategory(category)
        return tuple(d for d in self._agents.values() if d.category is category)

    def get_random(self) -> AgentDescriptor:
        snapshot = self.get_all()
        if not snapshot:
            raise EmptyRegistryError()
        return self._rng.choice(snapshot)

    def summary(self) -> Dict[str, int]:
        """Count of registered agents per category plus the total."""
        counts = Counter(d.category.value for d in self._agents.values())
        summary = {category.value: counts.get(category.value, 0) for category in AgentCategory}
        summary["total"] = len(self._agents)
        return summary

    async def invoke(
        self,
        name: str,
        context: ExecutionContext,
        *,
        action: str = "invoke",
    ) -> ExecutionResult:
        """Resolve ``name`` and run it; only ``UnknownAgentError`` can escape."""
        descriptor = self.get(name)
        return await self._executor.execute(descriptor, context, action=action)
