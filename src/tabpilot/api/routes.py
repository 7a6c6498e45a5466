"""REST routes: plan, approve, run, stop and runtime state."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from tabpilot.agent.orchestrator import ActiveRun, Orchestrator
from tabpilot.exceptions import (
    ModelResponseError,
    NoPendingPlanError,
    RunAlreadyActiveError,
    RunFailedError,
)
from tabpilot.models.runtime import PendingPlan, PlanEdit, RuntimeState
from tabpilot.models.states import RunMode

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------


class GoalRequest(BaseModel):
    """Body of ``POST /plan`` and ``POST /run``."""

    goal: str = Field(..., min_length=1, description="What the agent should accomplish.")
    mode: RunMode = Field(RunMode.NEW, description="new: fresh tab and session; continue: reattach to the last one.")
    max_steps: int | None = Field(None, description="Step budget, clamped to 1-200.")


class ApproveRequest(BaseModel):
    """Body of ``POST /plan/approve``; ``plan`` carries optional user edits."""

    plan: PlanEdit | None = None


class RunStartedResponse(BaseModel):
    session_id: str
    tab_id: str
    status: str
    message: str


class StopResponse(BaseModel):
    stopped: bool


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _orchestrator(request: Request) -> Orchestrator:
    return request.app.state.orchestrator


def _start_background(request: Request, orchestrator: Orchestrator, active: ActiveRun) -> RunStartedResponse:
    tasks: set[asyncio.Task] = request.app.state.run_tasks
    task = asyncio.create_task(orchestrator.execute(active))
    tasks.add(task)
    task.add_done_callback(_finished)
    task.add_done_callback(tasks.discard)
    return RunStartedResponse(
        session_id=active.session.session_id,
        tab_id=active.session.tab_id,
        status="running",
        message="Run started. Follow progress on GET /runtime or WS /ws/runtime.",
    )


def _finished(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if isinstance(exc, RunFailedError):
        logger.warning("Background run failed: %s", exc.last_error)
    elif exc is not None:
        logger.error("Background run crashed: %s", exc, exc_info=exc)
    else:
        result = task.result()
        logger.info("Background run %s ended as %s", result.session_id, result.status.value)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/runtime", response_model=RuntimeState)
def get_runtime(request: Request) -> RuntimeState:
    """Return the current runtime state, logs included."""
    return _orchestrator(request).get_runtime_state()


@router.post("/plan", response_model=PendingPlan)
async def generate_plan(req: GoalRequest, request: Request) -> PendingPlan:
    """Generate a reviewable plan; nothing is executed until it is approved."""
    try:
        return await _orchestrator(request).generate_plan(req.goal, req.mode, req.max_steps)
    except RunAlreadyActiveError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ModelResponseError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.post("/plan/approve", response_model=RunStartedResponse)
async def approve_plan(req: ApproveRequest, request: Request) -> RunStartedResponse:
    """Approve the pending plan (with optional edits) and start the run in the background."""
    orchestrator = _orchestrator(request)
    try:
        active = await orchestrator.begin_approved(req.plan)
    except (NoPendingPlanError, RunAlreadyActiveError) as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except RunFailedError as exc:
        raise HTTPException(status_code=500, detail=exc.last_error) from exc
    return _start_background(request, orchestrator, active)


@router.post("/run", response_model=RunStartedResponse)
async def start_run(req: GoalRequest, request: Request) -> RunStartedResponse:
    """Start a run without plan approval."""
    orchestrator = _orchestrator(request)
    try:
        active = await orchestrator.begin(req.goal, req.mode, req.max_steps)
    except RunAlreadyActiveError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except RunFailedError as exc:
        raise HTTPException(status_code=500, detail=exc.last_error) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return _start_background(request, orchestrator, active)


@router.post("/stop", response_model=StopResponse)
async def stop_run(request: Request) -> StopResponse:
    """Request cancellation of the active run."""
    return StopResponse(stopped=await _orchestrator(request).request_stop())
