"""HTTP API tests against isolated registries and loops."""
from __future__ import annotations

from typing import AsyncIterator, Dict

import httpx
import pytest

from agentloop.config import DeepLoopConfig, LoopConfig
from agentloop.core.models import AgentCategory, AgentDescriptor, ExecutionContext, ExecutionResult, LoopType
from agentloop.main import app
from agentloop.orchestration.base import LoopController
from agentloop.orchestration.deep import DeepCollaborativeLoop
from agentloop.orchestration.farm import FarmExecutor
from agentloop.orchestration.registry import AgentRegistry
from agentloop.orchestration.sequential import SequentialLoop
from agentloop.runtime import get_loops, get_registry


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def registry() -> AgentRegistry:
    registry = AgentRegistry()

    async def echo(context: ExecutionContext) -> ExecutionResult:
        return ExecutionResult(success=True, message=str(context.payload.get("content", "")), data=context.payload)

    async def broken(context: ExecutionContext) -> ExecutionResult:
        raise RuntimeError("offline")

    registry.register(AgentDescriptor(name="Echo", runner=echo, category=AgentCategory.UTILITY))
    registry.register(AgentDescriptor(name="Research", runner=echo, description="Finds things"))
    registry.register(AgentDescriptor(name="Broken", runner=broken))
    return registry


@pytest.fixture
def loops(registry: AgentRegistry) -> Dict[LoopType, LoopController]:
    loop_config = LoopConfig(interval_ms=10)
    deep_config = DeepLoopConfig(collaboration_every=0, adaptive=False, category_affinity={})
    return {
        LoopType.SEQUENTIAL: SequentialLoop(registry, config=loop_config),
        LoopType.FARM: FarmExecutor(registry, config=loop_config),
        LoopType.DEEP: DeepCollaborativeLoop(registry, config=loop_config, deep_config=deep_config),
    }


@pytest.fixture
async def client(
    registry: AgentRegistry, loops: Dict[LoopType, LoopController]
) -> AsyncIterator[httpx.AsyncClient]:
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_loops] = lambda: loops
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    for loop in loops.values():
        await loop.stop()
    app.dependency_overrides.clear()


@pytest.mark.anyio
async def test_health(client: httpx.AsyncClient) -> None:
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.anyio
async def test_list_agents_and_filter(client: httpx.AsyncClient) -> None:
    response = await client.get("/agents")
    assert [a["name"] for a in response.json()] == ["Echo", "Research", "Broken"]

    response = await client.get("/agents", params={"category": "utility"})
    assert [a["name"] for a in response.json()] == ["Echo"]

    response = await client.get("/agents/summary")
    assert response.json() == {"core": 2, "enhanced": 0, "utility": 1, "total": 3}


@pytest.mark.anyio
async def test_invoke_agent(client: httpx.AsyncClient) -> None:
    response = await client.post("/agents/Echo/invoke", json={"payload": {"content": "hello"}})
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "hello"

    response = await client.post("/agents/Broken/invoke", json={})
    assert response.status_code == 200
    assert response.json()["success"] is False
    assert "offline" in response.json()["message"]


@pytest.mark.anyio
async def test_invoke_unknown_agent_returns_404(client: httpx.AsyncClient) -> None:
    response = await client.post("/agents/Nobody/invoke", json={})
    assert response.status_code == 404
    assert "Nobody" in response.json()["detail"]


@pytest.mark.anyio
async def test_loop_start_stop_and_metrics(client: httpx.AsyncClient) -> None:
    response = await client.post("/loops/sequential/start")
    assert response.status_code == 200
    assert response.json()["is_running"] is True
    assert response.json()["state"] == "RUNNING"

    response = await client.post("/loops/sequential/stop")
    body = response.json()
    assert body["is_running"] is False
    assert body["cycle_count"] >= 1

    response = await client.get("/loops/sequential/metrics")
    assert response.json()["cycles"] == body["cycle_count"]

    response = await client.post("/loops/sequential/reset")
    assert response.json()["cycle_count"] == 0


@pytest.mark.anyio
async def test_list_loops_and_unknown_loop_type(client: httpx.AsyncClient) -> None:
    response = await client.get("/loops")
    assert [s["loop_type"] for s in response.json()] == ["sequential", "farm", "deep"]

    response = await client.get("/loops/turbo/status")
    assert response.status_code == 422


@pytest.mark.anyio
async def test_deep_collaborate(client: httpx.AsyncClient) -> None:
    response = await client.post(
        "/loops/deep/collaborate",
        json={"agents": ["Echo", "Broken"], "payload": {"content": "plan"}},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["failed"].keys() == {"Broken"}

    response = await client.post("/loops/deep/collaborate", json={"agents": ["Ghost"]})
    assert response.status_code == 404

    response = await client.get("/loops/deep/performance")
    assert response.json()["Broken"] == {"success": 0, "errors": 1}

    response = await client.get("/loops/deep/metrics")
    assert response.json()["collaborations"] == 1


@pytest.mark.anyio
async def test_deep_routes_need_a_deep_loop(registry: AgentRegistry) -> None:
    app.dependency_overrides[get_loops] = lambda: {LoopType.DEEP: SequentialLoop(registry)}
    transport = httpx.ASGITransport(app=app)
    try:
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/loops/deep/performance")
            assert response.status_code == 409
            response = await client.post("/loops/deep/collaborate", json={})
            assert response.status_code == 409
    finally:
        app.dependency_overrides.clear()
