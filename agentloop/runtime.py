"""Application runtime composition helpers."""
from __future__ import annotations

import logging
import random
from functools import lru_cache
from typing import Dict

from agentloop.agents.builtin import default_agents
from agentloop.agents.llm_agent import llm_agent
from agentloop.config import config
from agentloop.core.models import LoopType
from agentloop.core.telemetry import CompositeTelemetrySink, LoggingTelemetrySink, TelemetryHub
from agentloop.orchestration.base import LoopController
from agentloop.orchestration.deep import DeepCollaborativeLoop
from agentloop.orchestration.executor import InvocationExecutor
from agentloop.orchestration.farm import FarmExecutor
from agentloop.orchestration.registry import AgentRegistry
from agentloop.orchestration.sequential import SequentialLoop
from agentloop.persistence.manager import PersistenceManager
from agentloop.persistence.store import StateStore, create_store
from agentloop.services.llm_pool import LLMPool

logger = logging.getLogger(__name__)


@lru_cache
def get_telemetry_hub() -> TelemetryHub:
    return TelemetryHub()


@lru_cache
def get_state_store() -> StateStore:
    return create_store(config.state_backend, config.state_path)


@lru_cache
def get_llm_pool() -> LLMPool:
    pool = LLMPool()

    # Register Azure OpenAI if configured
    if config.azure_openai:
        pool.register_azure_openai(config.azure_openai.deployment_name, config.azure_openai)

    return pool


@lru_cache
def get_registry() -> AgentRegistry:
    executor = InvocationExecutor(
        telemetry=CompositeTelemetrySink([get_telemetry_hub(), LoggingTelemetrySink()]),
        timeout_s=config.loop.invocation_timeout_s,
        telemetry_timeout_s=config.loop.telemetry_timeout_s,
    )
    return AgentRegistry(executor=executor, rng=random.Random(config.rng_seed))


def register_default_agents(registry: AgentRegistry) -> None:
    """Register the built-in agent set, plus the LLM agent when a model is configured."""
    for descriptor in default_agents(seed=config.rng_seed):
        registry.register(descriptor)
    if config.azure_openai:
        registry.register(
            llm_agent("LLMAgent", get_llm_pool(), model=config.azure_openai.deployment_name)
        )


def _persistence(loop_type: LoopType) -> PersistenceManager:
    return PersistenceManager(
        get_state_store(),
        loop_type,
        freshness_window_s=config.loop.freshness_window_s,
    )


@lru_cache
def get_loops() -> Dict[LoopType, LoopController]:
    registry = get_registry()
    return {
        LoopType.SEQUENTIAL: SequentialLoop(
            registry, persistence=_persistence(LoopType.SEQUENTIAL), config=config.loop
        ),
        LoopType.FARM: FarmExecutor(
            registry, persistence=_persistence(LoopType.FARM), config=config.loop
        ),
        LoopType.DEEP: DeepCollaborativeLoop(
            registry,
            persistence=_persistence(LoopType.DEEP),
            config=config.loop,
            deep_config=config.deep,
        ),
    }


async def resume_loops(loops: Dict[LoopType, LoopController]) -> list[LoopType]:
    """Restart every loop whose snapshot says it was running recently."""
    resumed = []
    for loop_type, loop in loops.items():
        if await loop.resume():
            logger.info("Auto-resumed %s loop at cycle %d", loop_type.value, loop.cycle_count)
            resumed.append(loop_type)
    return resumed


async def shutdown_loops(loops: Dict[LoopType, LoopController]) -> None:
    """Stop every loop but keep running loops resumable for the next start."""
    for loop in loops.values():
        await loop.stop(keep_resumable=True)
