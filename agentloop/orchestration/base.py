"""Base loop controller shared by the sequential, farm and deep loops."""
from __future__ import annotations

import abc
import asyncio
import logging
from typing import Any, Dict, Optional

from agentloop.config import LoopConfig
from agentloop.core.errors import PersistenceError
from agentloop.core.models import CycleRecord, ExecutionContext, LoopState, LoopType, utcnow
from agentloop.core.state import KPISnapshot, RunState
from agentloop.core.telemetry import TelemetryRecord, emit
from agentloop.orchestration.registry import AgentRegistry
from agentloop.persistence.manager import PersistenceManager
from agentloop.persistence.store import MemoryStateStore

logger = logging.getLogger(__name__)


class LoopController(abc.ABC):
    """Tick-driven controller: one background task, one stop flag.

    ``stop()`` is cooperative. It prevents the next tick from being scheduled
    but lets the tick in flight run to completion. ``RunState`` is written
    only at tick boundaries.
    """

    loop_type: LoopType

    def __init__(
        self,
        registry: AgentRegistry,
        *,
        persistence: Optional[PersistenceManager] = None,
        config: Optional[LoopConfig] = None,
        max_cycles: Optional[int] = None,
    ) -> None:
        self._registry = registry
        self._config = config or LoopConfig()
        self._persistence = persistence or PersistenceManager(
            MemoryStateStore(),
            self.loop_type,
            freshness_window_s=self._config.freshness_window_s,
        )
        self._max_cycles = max_cycles
        self._runner: Optional[asyncio.Task[None]] = None
        self._stop_event = asyncio.Event()
        self._started_event = asyncio.Event()
        self._keep_resumable = False
        self._run_cycles = 0

        self.state = LoopState.STOPPED
        self.cycle_count = 0
        self.kpis = KPISnapshot()
        self.last_cycle: Optional[CycleRecord] = None
        self.last_error: Optional[str] = None
        self._interval_ms = self._config.interval_ms

    @property
    def registry(self) -> AgentRegistry:
        return self._registry

    @property
    def persistence(self) -> PersistenceManager:
        return self._persistence

    @property
    def is_running(self) -> bool:
        return self.state in {LoopState.STARTING, LoopState.RUNNING}

    @property
    def interval_ms(self) -> float:
        return self._interval_ms

    async def start(self, *, resume: bool = False) -> None:
        """Start ticking; with ``resume`` the counters continue from the snapshot."""
        if self._runner is not None and not self._runner.done():
            return
        self.state = LoopState.STARTING
        if resume:
            await self._restore()
        self._stop_event.clear()
        self._started_event.clear()
        self._keep_resumable = False
        self._run_cycles = 0
        self._runner = asyncio.create_task(
            self._run_safe(), name=f"agentloop-{self.loop_type.value}"
        )
        await self._started_event.wait()

    async def resume(self) -> bool:
        """Start from the persisted snapshot if it is fresh and was running."""
        if not await self._persistence.should_auto_resume():
            return False
        await self.start(resume=True)
        return True

    async def stop(self, *, keep_resumable: bool = False) -> None:
        """Signal the loop to stop and wait for the in-flight tick to finish.

        ``keep_resumable`` leaves ``is_running`` set in the snapshot so the
        next process start picks the run back up.
        """
        if self._runner is None:
            return
        if not self._runner.done():
            self.state = LoopState.STOPPING
            self._keep_resumable = keep_resumable
            self._stop_event.set()
        await self._runner
        self._runner = None

    async def wait(self) -> None:
        """Block until the loop exits on its own (``max_cycles``) or is stopped."""
        if self._runner is not None:
            await asyncio.shield(self._runner)

    async def reset(self) -> None:
        """Stop, zero every counter and wipe the persisted snapshot."""
        await self.stop()
        self.cycle_count = 0
        self.kpis = KPISnapshot()
        self.last_cycle = None
        self.last_error = None
        self._interval_ms = self._config.interval_ms
        self._on_reset()
        try:
            await self._persistence.clear_state()
        except PersistenceError as exc:
            logger.error("%s", exc)
        logger.info("%s loop reset", self.loop_type.value)

    def get_status(self) -> Dict[str, Any]:
        return {
            "is_running": self.is_running,
            "cycle_count": self.cycle_count,
            "loop_type": self.loop_type.value,
            "state": self.state.name,
            "interval_ms": self.interval_ms,
            "last_error": self.last_error,
        }

    def get_metrics(self) -> KPISnapshot:
        return self.kpis.model_copy()

    async def run_cycle(self) -> CycleRecord:
        """Execute exactly one tick and checkpoint it."""
        index = self.cycle_count + 1
        context = ExecutionContext(
            payload={"cycle": index, "loop": self.loop_type.value},
            caller=f"{self.loop_type.value}-loop",
        )
        try:
            record = await self._execute_cycle(index, context)
        except Exception as exc:  # noqa: BLE001
            logger.exception("%s cycle %d failed", self.loop_type.value, index)
            self.last_error = str(exc)
            record = CycleRecord(index=index, errors=1)
            await self._emit("scheduler", "cycle", "error", str(exc))

        self.cycle_count = index
        self.kpis.cycles += 1
        self.kpis.errors += record.errors
        self.last_cycle = record
        self._after_cycle(record)
        logger.debug(
            "%s cycle %d: %d invocations, %d errors",
            self.loop_type.value,
            index,
            len(record.results),
            record.errors,
        )
        await self._checkpoint(self.is_running)
        return record

    @abc.abstractmethod
    async def _execute_cycle(self, index: int, context: ExecutionContext) -> CycleRecord:
        """Perform one tick of work."""

    def _after_cycle(self, record: CycleRecord) -> None:
        """Hook invoked after counters are updated, before the checkpoint."""
        return None

    def _on_reset(self) -> None:
        return None

    def _on_restore(self, state: RunState) -> None:
        return None

    async def _run_safe(self) -> None:
        self.state = LoopState.RUNNING
        self._started_event.set()
        logger.info("%s loop running from cycle %d", self.loop_type.value, self.cycle_count)
        try:
            while not self._stop_event.is_set():
                await self.run_cycle()
                self._run_cycles += 1
                if self._max_cycles is not None and self._run_cycles >= self._max_cycles:
                    break
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_ms / 1000.0)
                except asyncio.TimeoutError:
                    pass
        finally:
            self.state = LoopState.STOPPED
            await self._checkpoint(self._keep_resumable)
            logger.info("%s loop stopped after cycle %d", self.loop_type.value, self.cycle_count)

    async def _restore(self) -> None:
        try:
            state = await self._persistence.load_state()
        except PersistenceError as exc:
            logger.error("%s; starting from in-memory state", exc)
            return
        self.cycle_count = state.cycle_count
        self.kpis = state.kpis.model_copy()
        if state.interval_ms is not None:
            self._interval_ms = state.interval_ms
        self._on_restore(state)
        logger.info("%s loop restored at cycle %d", self.loop_type.value, self.cycle_count)

    async def _checkpoint(self, is_running: bool) -> None:
        state = RunState(
            loop_type=self.loop_type,
            is_running=is_running,
            cycle_count=self.cycle_count,
            last_update=utcnow(),
            kpis=self.kpis.model_copy(),
            interval_ms=self.interval_ms,
        )
        try:
            await self._persistence.save_state(state)
        except PersistenceError as exc:
            logger.error("%s; continuing on in-memory state", exc)

    async def _emit(self, agent_name: str, action: str, status: str, output: str) -> None:
        await emit(
            self._registry.telemetry,
            TelemetryRecord(agent_name=agent_name, action=action, status=status, output=output),
            timeout=self._config.telemetry_timeout_s,
        )
