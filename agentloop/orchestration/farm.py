"""Farm executor: every registered agent per tick, behind a completion barrier."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from agentloop.core.models import CycleRecord, ExecutionContext, ExecutionResult, LoopType
from agentloop.orchestration.base import LoopController
from agentloop.orchestration.registry import AgentRegistry

logger = logging.getLogger(__name__)


class FarmExecutor(LoopController):
    """Run the whole registry concurrently once per tick."""

    loop_type = LoopType.FARM

    def __init__(
        self,
        registry: AgentRegistry,
        *,
        max_concurrency: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(registry, **kwargs)
        self._max_concurrency = max_concurrency or self._config.farm_max_concurrency

    async def run_all(self, context: Optional[ExecutionContext] = None) -> Dict[str, ExecutionResult]:
        """Invoke every registered agent; returns only after all have resolved."""
        context = context or ExecutionContext(caller="farm")
        snapshot = self._registry.get_all()
        return await self._registry.executor.execute_many(
            snapshot, context, limit=self._max_concurrency
        )

    async def _execute_cycle(self, index: int, context: ExecutionContext) -> CycleRecord:
        record = CycleRecord(index=index)
        results = await self.run_all(context)
        for name, result in results.items():
            record.add(name, result)
        if not results:
            logger.warning("Farm cycle %d ran with an empty registry", index)
        logger.info(
            "Farm cycle %d completed: %d success, %d failures",
            index,
            len(results) - record.errors,
            record.errors,
        )
        return record
