"""Tests for the sequential loop: rotation fairness, stop semantics and failures."""
from __future__ import annotations

import asyncio
from collections import Counter

import pytest

from agentloop.config import LoopConfig
from agentloop.core.models import AgentDescriptor, ExecutionContext, ExecutionResult, LoopState
from agentloop.orchestration.registry import AgentRegistry
from agentloop.orchestration.selection import RandomPolicy
from agentloop.orchestration.sequential import SequentialLoop


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def _counting_registry(names: str, calls: Counter) -> AgentRegistry:
    registry = AgentRegistry()
    for name in names:
        async def runner(context: ExecutionContext, name: str = name) -> ExecutionResult:
            calls[name] += 1
            return ExecutionResult(success=True, message=f"{name} done")

        registry.register(AgentDescriptor(name=name, runner=runner))
    return registry


@pytest.mark.anyio
async def test_rotation_scenario_thirty_ticks() -> None:
    calls: Counter = Counter()
    registry = _counting_registry("ABC", calls)
    loop = SequentialLoop(registry, config=LoopConfig(interval_ms=1), max_cycles=30)

    await loop.start()
    await loop.wait()

    assert calls == {"A": 10, "B": 10, "C": 10}
    assert loop.cycle_count == 30
    assert loop.get_metrics().errors == 0
    assert loop.get_metrics().cycles == 30
    assert loop.state is LoopState.STOPPED
    assert loop.get_status()["is_running"] is False


@pytest.mark.anyio
async def test_rotation_fairness_with_uneven_window() -> None:
    calls: Counter = Counter()
    registry = _counting_registry("WXYZ", calls)
    loop = SequentialLoop(registry)

    for _ in range(11):
        await loop.run_cycle()

    assert all(calls[name] >= 11 // 4 for name in "WXYZ")
    assert sum(calls.values()) == 11


@pytest.mark.anyio
async def test_random_policy_is_reproducible() -> None:
    async def picks() -> list[str]:
        calls: Counter = Counter()
        loop = SequentialLoop(_counting_registry("ABCDE", calls), policy=RandomPolicy(seed=42))
        names = []
        for _ in range(15):
            record = await loop.run_cycle()
            names.extend(record.agent_names)
        return names

    assert await picks() == await picks()


@pytest.mark.anyio
async def test_failed_invocation_is_counted_and_loop_continues() -> None:
    calls: Counter = Counter()
    registry = _counting_registry("A", calls)

    async def broken(context: ExecutionContext) -> ExecutionResult:
        raise ValueError("bad input")

    registry.register(AgentDescriptor(name="B", runner=broken))
    loop = SequentialLoop(registry, config=LoopConfig(interval_ms=1), max_cycles=6)

    await loop.start()
    await loop.wait()

    assert loop.cycle_count == 6
    assert calls["A"] == 3
    assert loop.get_metrics().errors == 3
    assert "bad input" in loop.get_status()["last_error"]


@pytest.mark.anyio
async def test_empty_registry_counts_an_error_per_tick() -> None:
    loop = SequentialLoop(AgentRegistry())
    record = await loop.run_cycle()

    assert record.errors == 1
    assert loop.get_metrics().errors == 1
    assert loop.cycle_count == 1


@pytest.mark.anyio
async def test_stop_lets_in_flight_tick_finish() -> None:
    started = asyncio.Event()
    release = asyncio.Event()
    calls = []

    async def slow(context: ExecutionContext) -> ExecutionResult:
        calls.append(context.payload["cycle"])
        started.set()
        await release.wait()
        return ExecutionResult(success=True, message="finished")

    registry = AgentRegistry()
    registry.register(AgentDescriptor(name="slow", runner=slow))
    loop = SequentialLoop(registry, config=LoopConfig(interval_ms=1))

    await loop.start()
    await started.wait()
    stopping = asyncio.create_task(loop.stop())
    await asyncio.sleep(0.02)

    assert not stopping.done()
    assert loop.state is LoopState.STOPPING

    release.set()
    await stopping

    assert calls == [1]
    assert loop.cycle_count == 1
    assert loop.last_cycle is not None
    assert loop.last_cycle.results_for("slow")[0].message == "finished"
    assert loop.state is LoopState.STOPPED

    await asyncio.sleep(0.02)
    assert calls == [1]


@pytest.mark.anyio
async def test_start_is_idempotent_and_restartable() -> None:
    calls: Counter = Counter()
    loop = SequentialLoop(_counting_registry("A", calls), config=LoopConfig(interval_ms=5))

    await loop.start()
    await loop.start()
    assert loop.get_status()["is_running"] is True
    await loop.stop()
    first_run = loop.cycle_count
    assert first_run >= 1

    await loop.start()
    await loop.stop()
    assert loop.cycle_count > first_run


@pytest.mark.anyio
async def test_reset_zeroes_counters() -> None:
    calls: Counter = Counter()
    loop = SequentialLoop(_counting_registry("AB", calls))
    for _ in range(3):
        await loop.run_cycle()

    await loop.reset()

    assert loop.get_status()["cycle_count"] == 0
    assert loop.get_metrics().model_dump() == {
        "cycles": 0,
        "handoffs": 0,
        "collaborations": 0,
        "optimizations": 0,
        "errors": 0,
    }
