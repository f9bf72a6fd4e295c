"""
Workflow Runs API Endpoints.

This module starts workflow runs, reports their state and accepts decisions for
runs paused at an approval node. Runs execute on the job worker; every endpoint
returns immediately.
"""

from fastapi import APIRouter, HTTPException, status

from ai_office.agent_core.errors import InvalidStateError, NotFoundError
from ai_office.core.logging_config import get_logger
from ai_office.server.schemas import WorkflowApprovalSubmit, WorkflowRunCreate
from ai_office.server.services.deps import WorkflowServiceDep
from ai_office.workflow.models import WorkflowRun

logger = get_logger(__name__)
router = APIRouter()


@router.post(
    "/workflows/{workflow_id}/runs",
    response_model=WorkflowRun,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start Workflow Run",
    description="Create a workflow run and enqueue its first job.",
    responses={
        404: {"description": "Workflow not found"},
        409: {"description": "Workflow is inactive"},
    },
)
async def start_run(workflow_id: str, payload: WorkflowRunCreate, service: WorkflowServiceDep):
    try:
        return await service.start_run(workflow_id, project_id=payload.project_id, variables=payload.variables)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStateError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.get(
    "/workflow-runs/{run_id}",
    response_model=WorkflowRun,
    summary="Get Workflow Run",
    description="Retrieve status, outputs and pause information of a run.",
    responses={404: {"description": "Run not found"}},
)
async def get_run(run_id: str, service: WorkflowServiceDep):
    try:
        return await service.get_run(run_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post(
    "/workflow-runs/{run_id}/approval",
    response_model=WorkflowRun,
    summary="Resolve Workflow Approval",
    description="Approve (continue) or reject (fail) a run paused at an approval node.",
    responses={
        404: {"description": "Run not found"},
        409: {"description": "Run is not waiting for an approval"},
    },
)
async def resolve_approval(run_id: str, submission: WorkflowApprovalSubmit, service: WorkflowServiceDep):
    """
    Submit an approval decision.

    An approval enqueues the continuation job; a rejection fails the run at once.
    """
    try:
        run = await service.resolve_approval(
            run_id,
            approved=submission.approved,
            decided_by=submission.decided_by,
            note=submission.note,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    logger.info(f"Run {run_id} approval resolved: approved={submission.approved}")
    return run
