"""Tests for the built-in agents and the LLM-backed runner."""
from __future__ import annotations

from types import SimpleNamespace

import pytest

from agentloop.agents.builtin import SimulatedAgent, default_agents, echo_runner
from agentloop.agents.llm_agent import LLMRunner, llm_agent
from agentloop.config import DeepLoopConfig
from agentloop.core.models import AgentCategory, ExecutionContext
from agentloop.orchestration.deep import DeepCollaborativeLoop
from agentloop.orchestration.registry import AgentRegistry
from agentloop.services.llm_pool import LLMPool


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class FakeCompletions:
    def __init__(self, reply: str) -> None:
        self.reply = reply
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        message = SimpleNamespace(content=self.reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _fake_client(reply: str) -> SimpleNamespace:
    return SimpleNamespace(chat=SimpleNamespace(completions=FakeCompletions(reply)))


def test_default_agents_catalog() -> None:
    descriptors = list(default_agents(seed=1))
    names = [d.name for d in descriptors]

    assert names[0] == "SupervisorAgent"
    assert names[-1] == "EchoAgent"
    assert len(set(names)) == len(names)
    assert {d.category for d in descriptors} == set(AgentCategory)


@pytest.mark.anyio
async def test_simulated_agent_hands_off() -> None:
    agent = SimulatedAgent("ResearchAgent", "researched", next_agent="StrategicAgent", latency=(0, 0), seed=3)

    result = await agent(ExecutionContext(payload={"topic": "caching", "cycle": 2}))

    assert result.success is True
    assert result.message == "ResearchAgent researched caching"
    assert result.next_agent == "StrategicAgent"
    assert result.should_continue is True
    assert result.data == {"agent": "ResearchAgent", "topic": "caching", "cycle": 2}


@pytest.mark.anyio
async def test_simulated_agent_failure_rate() -> None:
    agent = SimulatedAgent("CriticAgent", "critiqued", latency=(0, 0), failure_rate=1.0)
    result = await agent(ExecutionContext())
    assert result.success is False
    assert "could not critique" in result.message


@pytest.mark.anyio
async def test_echo_runner() -> None:
    result = await echo_runner(ExecutionContext(payload={"content": "ping"}))
    assert result.message == "echo heard ping"
    assert result.data == {"echo": {"content": "ping"}}


@pytest.mark.anyio
async def test_llm_runner_uses_pool_client() -> None:
    pool = LLMPool()
    client = _fake_client("a plan")
    pool.register_client("test-model", client)
    descriptor = llm_agent("Planner", pool, model="test-model", system_prompt="Plan things.")

    result = await descriptor.runner(ExecutionContext(payload={"prompt": "plan the sprint"}))

    assert result.success is True
    assert result.message == "a plan"
    assert result.data == {"model": "test-model"}
    call = client.chat.completions.calls[0]
    assert call["model"] == "test-model"
    assert call["messages"][0] == {"role": "system", "content": "Plan things."}
    assert call["messages"][1]["content"] == "plan the sprint"
    assert descriptor.category is AgentCategory.ENHANCED


@pytest.mark.anyio
async def test_llm_runner_builds_handoff_prompt() -> None:
    pool = LLMPool()
    client = _fake_client("continued")
    pool.register_client("m", client)
    runner = LLMRunner(pool, model="m")

    await runner(
        ExecutionContext(payload={"handoff": True, "from_agent": "ResearchAgent", "previous_output": "notes"})
    )

    prompt = client.chat.completions.calls[0]["messages"][1]["content"]
    assert "ResearchAgent" in prompt and "notes" in prompt


@pytest.mark.anyio
async def test_llm_runner_unknown_model_fails_cleanly() -> None:
    runner = LLMRunner(LLMPool(), model="missing")
    result = await runner(ExecutionContext(payload={"prompt": "hi"}))
    assert result.success is False
    assert "missing" in result.message


def test_llm_pool_lists_models() -> None:
    pool = LLMPool()
    pool.register_client("a", _fake_client(""))
    pool.register_client("b", _fake_client(""))
    assert pool.models() == ["a", "b"]


@pytest.mark.anyio
async def test_default_catalog_runs_deep_loop_without_errors() -> None:
    registry = AgentRegistry()
    for descriptor in default_agents(seed=1, latency=(0, 0)):
        registry.register(descriptor)
    loop = DeepCollaborativeLoop(registry, deep_config=DeepLoopConfig())

    records = [await loop.run_cycle() for _ in range(2 * len(registry))]

    assert loop.get_metrics().errors == 0
    assert loop.get_metrics().handoffs > 0
    assert loop.get_metrics().collaborations > 0
    chains = [record.chain for record in records if record.chain is not None]
    assert not any(chain.truncated for chain in chains)
    research = next(c for c in chains if c.agent_names[0] == "ResearchAgent")
    assert research.agent_names == ["ResearchAgent", "StrategicAgent", "CriticAgent", "MemoryAgent"]


@pytest.mark.anyio
async def test_memory_agent_closes_the_chain() -> None:
    memory = next(d for d in default_agents(latency=(0, 0)) if d.name == "MemoryAgent")
    result = await memory.runner(ExecutionContext(payload={"handoff": True, "from_agent": "CriticAgent"}))
    assert result.success is True
    assert result.should_continue is False
    assert result.data["built_on"] == "CriticAgent"
