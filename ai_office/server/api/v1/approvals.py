"""
Tool Approvals API Endpoints.

This module provides endpoints for human-in-the-loop approval of agent tool
calls. It allows listing pending requests of a project and submitting
decisions (approve/reject); a decision resumes the suspended agent session.
A request raised by an agent node of a workflow run is decided through that
run, which then continues at the agent node.
"""

from typing import List

from fastapi import APIRouter, HTTPException

from ai_office.agent_core.errors import InvalidStateError, NotFoundError
from ai_office.server.schemas import ToolApprovalResolved, ToolApprovalSubmit, ToolApprovalView
from ai_office.agent_core.schemas.domain import ApprovalResolution
from ai_office.server.services.deps import AgentServiceDep, ContainerDep, WorkflowServiceDep

router = APIRouter()


@router.get(
    "/projects/{project_id}/tool-approvals",
    response_model=List[ToolApprovalView],
    summary="List Pending Tool Approvals",
    description="Retrieve the tool calls of a project that wait for a decision.",
    response_description="A list of pending approval requests.",
)
async def list_pending(project_id: str, container: ContainerDep):
    requests = await container.repos.tool_approvals.list_pending(project_id)
    return [ToolApprovalView.from_request(r) for r in requests]


@router.post(
    "/tool-approvals/{approval_id}",
    response_model=ToolApprovalResolved,
    summary="Submit Tool Approval Decision",
    description="Approve or reject a suspended tool call and schedule the session resume.",
    responses={
        404: {"description": "Approval request not found"},
        409: {"description": "Approval request already decided"},
    },
)
async def submit_approval(
    approval_id: str,
    submission: ToolApprovalSubmit,
    container: ContainerDep,
    service: AgentServiceDep,
    workflows: WorkflowServiceDep,
):
    """
    Submit approval decision.

    Resolves a pending request and enqueues the agent job that resumes the
    session: the tool runs on approval, and the model is told about a rejection.
    """
    request = await container.repos.tool_approvals.get(approval_id)
    if request is None:
        raise HTTPException(status_code=404, detail=f"Tool approval request not found: {approval_id}")

    try:
        if request.workflow_run_id is not None:
            await workflows.resolve_approval(
                request.workflow_run_id,
                approved=submission.decision == ApprovalResolution.approved,
                decided_by=submission.decided_by,
                note=submission.note,
                approval_request_id=approval_id,
            )
            return ToolApprovalResolved(
                approval_id=approval_id,
                agent_id=request.agent_id,
                decision=submission.decision,
                workflow_run_id=request.workflow_run_id,
            )
        job = await service.resolve_tool_approval(
            approval_id,
            submission.decision,
            decided_by=submission.decided_by,
            note=submission.note,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return ToolApprovalResolved(approval_id=approval_id, agent_id=job.agent_id, decision=submission.decision)
