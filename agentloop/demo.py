"""CLI demonstration of the sequential, farm and deep loops."""
from __future__ import annotations

import argparse
import asyncio
import logging
from typing import NoReturn, Optional, Sequence

from agentloop.agents.builtin import default_agents
from agentloop.config import DeepLoopConfig, LoopConfig
from agentloop.core.models import LoopType
from agentloop.core.telemetry import TelemetryHub
from agentloop.orchestration.base import LoopController
from agentloop.orchestration.deep import DeepCollaborativeLoop
from agentloop.orchestration.executor import InvocationExecutor
from agentloop.orchestration.farm import FarmExecutor
from agentloop.orchestration.registry import AgentRegistry
from agentloop.orchestration.sequential import SequentialLoop


def build_loop(loop_type: LoopType, registry: AgentRegistry, cycles: int, interval_ms: float) -> LoopController:
    loop_config = LoopConfig(interval_ms=interval_ms)
    if loop_type is LoopType.FARM:
        return FarmExecutor(registry, config=loop_config, max_cycles=cycles)
    if loop_type is LoopType.DEEP:
        deep_config = DeepLoopConfig(min_interval_ms=interval_ms / 4, max_interval_ms=interval_ms * 8)
        return DeepCollaborativeLoop(registry, config=loop_config, deep_config=deep_config, max_cycles=cycles)
    return SequentialLoop(registry, config=loop_config, max_cycles=cycles)


async def main(loop_type: LoopType, cycles: int, interval_ms: float, seed: Optional[int]) -> None:
    hub = TelemetryHub()
    registry = AgentRegistry(executor=InvocationExecutor(telemetry=hub, timeout_s=5.0))
    for descriptor in default_agents(seed=seed):
        registry.register(descriptor)

    loop = build_loop(loop_type, registry, cycles, interval_ms)
    print(f"Starting {loop_type.value} loop with {len(registry)} agents for {cycles} cycles")

    async with hub.subscribe() as feed:
        await loop.start()
        await loop.wait()
        while not feed.empty():
            record = feed.get_nowait()
            print(f"  [{record.status}] {record.agent_name}: {record.output}")

    print(f"Status: {loop.get_status()}")
    print(f"Metrics: {loop.get_metrics().model_dump()}")


def run(argv: Optional[Sequence[str]] = None) -> NoReturn:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("loop", nargs="?", default="sequential", choices=[t.value for t in LoopType])
    parser.add_argument("--cycles", type=int, default=5)
    parser.add_argument("--interval-ms", type=float, default=200.0)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--log-level", default="WARNING")
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level, format="%(levelname)s %(name)s: %(message)s")
    asyncio.run(main(LoopType(args.loop), args.cycles, args.interval_ms, args.seed))
    raise SystemExit(0)


if __name__ == "__main__":
    run()
