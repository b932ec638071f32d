"""Deep collaborative loop: hand-off chains, collaboration and adaptive pacing."""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Dict, Optional, Sequence

from agentloop.config import DeepLoopConfig
from agentloop.core.errors import EmptyRegistryError
from agentloop.core.models import (
    AgentDescriptor,
    CycleRecord,
    ExecutionContext,
    ExecutionResult,
    LoopType,
)
from agentloop.core.state import RunState
from agentloop.orchestration.adaptive import AdaptiveInterval
from agentloop.orchestration.base import LoopController
from agentloop.orchestration.collaboration import collaborate
from agentloop.orchestration.handoff import HandoffRouter, run_handoff_chain
from agentloop.orchestration.registry import AgentRegistry
from agentloop.orchestration.selection import RotationPolicy, SelectionPolicy

logger = logging.getLogger(__name__)


class DeepCollaborativeLoop(LoopController):
    """Rotate through agents, follow their hand-offs and periodically collaborate.

    Per tick: the selected agent runs, its successful result is forwarded
    along a bounded hand-off chain, and every ``collaboration_every`` cycles a
    batch of agents works concurrently on shared input. With ``adaptive``
    enabled the tick interval follows the recent error rate.
    """

    loop_type = LoopType.DEEP

    def __init__(
        self,
        registry: AgentRegistry,
        *,
        deep_config: Optional[DeepLoopConfig] = None,
        policy: Optional[SelectionPolicy] = None,
        router: Optional[HandoffRouter] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(registry, **kwargs)
        self._deep = deep_config or DeepLoopConfig()
        self._policy = policy or RotationPolicy()
        self._collaboration_policy = RotationPolicy()
        self._router = router or HandoffRouter(self._deep.category_affinity)
        self._adaptive = AdaptiveInterval(
            initial_ms=self._config.interval_ms,
            min_ms=self._deep.min_interval_ms,
            max_ms=self._deep.max_interval_ms,
            window_size=self._deep.window_size,
            error_threshold=self._deep.error_threshold,
            backoff_factor=self._deep.backoff_factor,
        )
        if self._deep.adaptive:
            self._interval_ms = self._adaptive.interval_ms
        self._performance: Dict[str, Dict[str, int]] = defaultdict(lambda: {"success": 0, "errors": 0})

    @property
    def adaptive(self) -> AdaptiveInterval:
        return self._adaptive

    def agent_performance(self) -> Dict[str, Dict[str, int]]:
        """Success/error counts per agent since the last reset."""
        return {name: dict(counts) for name, counts in self._performance.items()}

    def get_status(self) -> Dict[str, Any]:
        status = super().get_status()
        status["adaptive"] = self._deep.adaptive
        return status

    async def collaborate(
        self,
        names: Optional[Sequence[str]] = None,
        context: Optional[ExecutionContext] = None,
    ) -> ExecutionResult:
        """Run a collaboration batch outside the tick schedule.

        ``names`` defaults to the next ``collaboration_size`` agents in
        rotation. Unknown names raise ``UnknownAgentError`` to the caller.
        """
        if names is None:
            members = self._collaboration_policy.take(
                self._registry.get_all(), self._deep.collaboration_size
            )
        else:
            members = [self._registry.get(name) for name in names]
        if not members:
            raise EmptyRegistryError("No agents available to collaborate")
        context = context or ExecutionContext(caller="deep-loop")
        synthesis, failed = await self._run_collaboration(members, context)
        self.kpis.errors += failed
        return synthesis

    async def _run_collaboration(
        self,
        members: Sequence[AgentDescriptor],
        context: ExecutionContext,
        record: Optional[CycleRecord] = None,
    ) -> tuple[ExecutionResult, int]:
        synthesis, results = await collaborate(
            self._registry.executor,
            members,
            context,
            limit=self._config.farm_max_concurrency,
        )
        self.kpis.collaborations += 1
        failed = 0
        for name, result in results.items():
            self._track(name, result)
            if record is not None:
                record.add(name, result)
            if not result.success:
                failed += 1
        if failed:
            status = "error" if not synthesis.success else "partial"
            await self._emit("collaboration", "collaborate", status, synthesis.message)
        logger.info(
            "Collaboration of %s: %d/%d succeeded",
            ", ".join(results),
            len(results) - failed,
            len(results),
        )
        return synthesis, failed

    async def _execute_cycle(self, index: int, context: ExecutionContext) -> CycleRecord:
        record = CycleRecord(index=index)
        snapshot = self._registry.get_all()
        try:
            descriptor = self._policy.select(snapshot)
        except EmptyRegistryError as exc:
            logger.warning("Deep cycle %d skipped: %s", index, exc)
            record.errors += 1
            await self._emit("scheduler", "select", "error", str(exc))
            return record

        ctx = context.derive({**context.payload, "interval_ms": self.interval_ms, "collaboration_mode": True})
        result = await self._registry.executor.execute(descriptor, ctx)
        record.add(descriptor.name, result)
        self._track(descriptor.name, result)

        if result.success:
            outcome = await run_handoff_chain(
                self._registry.executor,
                self._router,
                snapshot,
                descriptor,
                result,
                ctx,
                max_length=self._deep.max_chain_length,
                should_stop=self._stop_event.is_set,
            )
            record.chain = outcome.chain
            for name, link_result in outcome.results:
                record.add(name, link_result)
                self._track(name, link_result)
            record.errors += outcome.errors
            self.kpis.handoffs += outcome.handoffs
            if outcome.errors:
                status = "truncated" if outcome.chain.truncated else "broken"
                await self._emit(descriptor.name, "handoff", status, " -> ".join(outcome.chain.agent_names))
        else:
            self.last_error = result.message

        every = self._deep.collaboration_every
        if every and index % every == 0 and not self._stop_event.is_set():
            members = self._collaboration_policy.take(snapshot, self._deep.collaboration_size)
            if len(members) > 1:
                synthesis, _ = await self._run_collaboration(members, ctx, record)
                record.collaboration = synthesis

        return record

    def _after_cycle(self, record: CycleRecord) -> None:
        if not self._deep.adaptive:
            return
        previous = self._adaptive.interval_ms
        if self._adaptive.observe(record.success):
            self.kpis.optimizations += 1
            self._interval_ms = self._adaptive.interval_ms
            logger.info(
                "Deep loop interval adjusted %.0fms -> %.0fms", previous, self._interval_ms
            )

    def _track(self, name: str, result: ExecutionResult) -> None:
        self._performance[name]["success" if result.success else "errors"] += 1

    def _on_reset(self) -> None:
        self._adaptive.reset(self._config.interval_ms)
        if self._deep.adaptive:
            self._interval_ms = self._adaptive.interval_ms
        self._performance.clear()

    def _on_restore(self, state: RunState) -> None:
        if state.interval_ms is not None:
            self._adaptive.set_interval(state.interval_ms)
            if self._deep.adaptive:
                self._interval_ms = self._adaptive.interval_ms
