"""Sequential loop: one agent per tick."""
from __future__ import annotations

import logging
from typing import Any, Optional

from agentloop.core.errors import EmptyRegistryError
from agentloop.core.models import CycleRecord, ExecutionContext, LoopType
from agentloop.orchestration.base import LoopController
from agentloop.orchestration.registry import AgentRegistry
from agentloop.orchestration.selection import RotationPolicy, SelectionPolicy

logger = logging.getLogger(__name__)


class SequentialLoop(LoopController):
    """Invoke the next agent chosen by the selection policy on every tick.

    Rotation is the default policy; pass a ``RandomPolicy`` for seeded
    uniform-random selection instead.
    """

    loop_type = LoopType.SEQUENTIAL

    def __init__(
        self,
        registry: AgentRegistry,
        *,
        policy: Optional[SelectionPolicy] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(registry, **kwargs)
        self._policy = policy or RotationPolicy()

    async def _execute_cycle(self, index: int, context: ExecutionContext) -> CycleRecord:
        record = CycleRecord(index=index)
        try:
            descriptor = self._policy.select(self._registry.get_all())
        except EmptyRegistryError as exc:
            logger.warning("Sequential cycle %d skipped: %s", index, exc)
            record.errors += 1
            await self._emit("scheduler", "select", "error", str(exc))
            return record

        result = await self._registry.executor.execute(descriptor, context)
        record.add(descriptor.name, result)
        if not result.success:
            self.last_error = result.message
        return record
