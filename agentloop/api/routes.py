"""HTTP API exposing the agent registry."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from agentloop.core.errors import UnknownAgentError
from agentloop.core.models import AgentCategory, AgentDescriptor, ExecutionContext, ExecutionResult
from agentloop.orchestration.registry import AgentRegistry
from agentloop.runtime import get_registry

router = APIRouter(prefix="/agents", tags=["agents"])


class AgentResponse(BaseModel):
    name: str
    category: AgentCategory
    description: str
    version: str

    @classmethod
    def from_descriptor(cls, descriptor: AgentDescriptor) -> "AgentResponse":
        return cls(
            name=descriptor.name,
            category=descriptor.category,
            description=descriptor.description,
            version=descriptor.version,
        )


class InvokeRequest(BaseModel):
    payload: dict = Field(default_factory=dict)
    caller: Optional[str] = Field(default=None, description="Tag identifying the caller")


class ResultResponse(BaseModel):
    success: bool
    message: str
    data: Optional[Dict[str, Any]] = None
    duration_ms: float
    next_agent: Optional[str] = None

    @classmethod
    def from_result(cls, result: ExecutionResult) -> "ResultResponse":
        return cls(**result.to_dict())


@router.get("", response_model=List[AgentResponse])
async def list_agents(
    category: Optional[AgentCategory] = None,
    registry: AgentRegistry = Depends(get_registry),
) -> List[AgentResponse]:
    descriptors = registry.get_all() if category is None else registry.get_by_category(category)
    return [AgentResponse.from_descriptor(d) for d in descriptors]


@router.get("/summary")
async def summary(registry: AgentRegistry = Depends(get_registry)) -> Dict[str, int]:
    return registry.summary()


@router.post("/{name}/invoke", response_model=ResultResponse)
async def invoke_agent(
    name: str,
    request: InvokeRequest,
    registry: AgentRegistry = Depends(get_registry),
) -> ResultResponse:
    context = ExecutionContext(payload=request.payload, caller=request.caller or "api")
    try:
        result = await registry.invoke(name, context)
    except UnknownAgentError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return ResultResponse.from_result(result)
