"""API route handlers for triggering and inspecting pipeline executions."""

import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from reelpipe import __version__
from reelpipe.bootstrap import ReelServices
from reelpipe.errors import PipelineFailed, RunDeadlineExceeded
from reelpipe.orchestrator.pipeline import run_reel_pipeline
from reelpipe.schemas.execution import Execution

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


def _services(request: Request) -> ReelServices:
    return request.app.state.services


@router.get("/health")
async def health() -> dict:
    return {"status": "ok", "version": __version__}


@router.post("/executions", response_model=Execution)
async def trigger_execution(request: Request):
    """Run the reel pipeline to completion and return the Execution.

    The body is the full Execution record even on failure, so the failing
    step's error and stack are visible to the caller.
    """
    services = _services(request)
    try:
        execution = await run_reel_pipeline(services)
    except PipelineFailed as e:
        logger.error(f"Execution {e.execution.id} failed at step {e.step_index} ({e.step_name})")
        return JSONResponse(status_code=500, content=e.execution.model_dump(mode="json"))
    except RunDeadlineExceeded as e:
        content = (
            e.execution.model_dump(mode="json")
            if e.execution is not None
            else {"error": "Deadline exceeded", "detail": str(e)}
        )
        return JSONResponse(status_code=504, content=content)
    return execution


@router.get("/executions", response_model=list[Execution])
async def list_executions(request: Request):
    """Every persisted Execution, ordered by id."""
    return await _services(request).store.list_all()


@router.get("/executions/{execution_id}", response_model=Execution)
async def get_execution(execution_id: str, request: Request):
    execution = await _services(request).store.get(execution_id)
    if execution is None:
        raise HTTPException(status_code=404, detail=f"Execution {execution_id} not found")
    return execution
