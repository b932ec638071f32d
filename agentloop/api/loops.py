"""Loop control routes: start, stop, reset, status and metrics."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from agentloop.api.routes import ResultResponse
from agentloop.core.errors import EmptyRegistryError, UnknownAgentError
from agentloop.core.models import ExecutionContext, LoopType
from agentloop.core.state import KPISnapshot
from agentloop.orchestration.base import LoopController
from agentloop.orchestration.deep import DeepCollaborativeLoop
from agentloop.runtime import get_loops

router = APIRouter(prefix="/loops", tags=["loops"])


class StatusResponse(BaseModel):
    loop_type: LoopType
    is_running: bool
    cycle_count: int
    state: str
    interval_ms: float
    last_error: Optional[str] = None


class StartRequest(BaseModel):
    resume: bool = Field(default=False, description="Continue counters from the last snapshot")


class CollaborateRequest(BaseModel):
    agents: Optional[List[str]] = Field(default=None, description="Members; defaults to rotation")
    payload: dict = Field(default_factory=dict)


def _loop(loop_type: LoopType, loops: Dict[LoopType, LoopController]) -> LoopController:
    return loops[loop_type]


def get_deep_loop(
    loops: Dict[LoopType, LoopController] = Depends(get_loops),
) -> DeepCollaborativeLoop:
    loop = loops.get(LoopType.DEEP)
    if not isinstance(loop, DeepCollaborativeLoop):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Deep loop is not configured")
    return loop


def _status(loop: LoopController) -> StatusResponse:
    return StatusResponse(**loop.get_status())


@router.get("", response_model=List[StatusResponse])
async def list_loops(loops: Dict[LoopType, LoopController] = Depends(get_loops)) -> List[StatusResponse]:
    return [_status(loop) for loop in loops.values()]


@router.post("/{loop_type}/start", response_model=StatusResponse)
async def start_loop(
    loop_type: LoopType,
    request: Optional[StartRequest] = None,
    loops: Dict[LoopType, LoopController] = Depends(get_loops),
) -> StatusResponse:
    loop = _loop(loop_type, loops)
    await loop.start(resume=bool(request and request.resume))
    return _status(loop)


@router.post("/{loop_type}/stop", response_model=StatusResponse)
async def stop_loop(
    loop_type: LoopType,
    loops: Dict[LoopType, LoopController] = Depends(get_loops),
) -> StatusResponse:
    loop = _loop(loop_type, loops)
    await loop.stop()
    return _status(loop)


@router.post("/{loop_type}/reset", response_model=StatusResponse)
async def reset_loop(
    loop_type: LoopType,
    loops: Dict[LoopType, LoopController] = Depends(get_loops),
) -> StatusResponse:
    loop = _loop(loop_type, loops)
    await loop.reset()
    return _status(loop)


@router.get("/{loop_type}/status", response_model=StatusResponse)
async def loop_status(
    loop_type: LoopType,
    loops: Dict[LoopType, LoopController] = Depends(get_loops),
) -> StatusResponse:
    return _status(_loop(loop_type, loops))


@router.get("/{loop_type}/metrics", response_model=KPISnapshot)
async def loop_metrics(
    loop_type: LoopType,
    loops: Dict[LoopType, LoopController] = Depends(get_loops),
) -> KPISnapshot:
    return _loop(loop_type, loops).get_metrics()


@router.get("/deep/performance")
async def deep_performance(loop: DeepCollaborativeLoop = Depends(get_deep_loop)) -> Dict[str, Any]:
    return loop.agent_performance()


@router.post("/deep/collaborate", response_model=ResultResponse)
async def deep_collaborate(
    request: CollaborateRequest,
    loop: DeepCollaborativeLoop = Depends(get_deep_loop),
) -> ResultResponse:
    try:
        result = await loop.collaborate(
            request.agents, ExecutionContext(payload=request.payload, caller="api")
        )
    except UnknownAgentError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except EmptyRegistryError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return ResultResponse.from_result(result)
