"""
API Schemas.

This module contains Pydantic models used for API request bodies and response validation.
These schemas define the interface contract between the client and the server.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from ai_office.agent_core.schemas.domain import (
    ApprovalResolution,
    ToolApprovalRequest,
    ToolApprovalStatus,
)


class WorkflowRunCreate(BaseModel):
    """Schema for starting a workflow run."""

    project_id: Optional[str] = Field(
        default=None,
        description="Project the workflow must belong to. Omit to accept any project.",
        examples=["project-1"],
    )
    variables: Dict[str, str] = Field(
        default_factory=dict,
        description="Run variables; unset workflow variables fall back to their defaults.",
        examples=[{"customer": "ACME"}],
    )


class WorkflowApprovalSubmit(BaseModel):
    """Decision on a run paused at an approval node."""

    approved: bool = Field(..., description="True to continue the run, False to fail it.")
    decided_by: Optional[str] = Field(default=None, description="Who made the decision.")
    note: Optional[str] = Field(default=None, description="Optional justification.")


class ToolApprovalSubmit(BaseModel):
    """Decision on a tool call waiting for human approval."""

    decision: ApprovalResolution = Field(..., description="approved or rejected")
    decided_by: Optional[str] = Field(default=None, description="Who made the decision.")
    note: Optional[str] = Field(default=None, description="Optional justification.")


class ToolApprovalView(BaseModel):
    """A tool approval request without its serialized session."""

    id: str
    project_id: str
    agent_id: str
    session_id: str
    tool_name: str
    input: Dict[str, Any]
    status: ToolApprovalStatus
    workflow_run_id: Optional[str] = None
    requested_at: datetime
    decided_at: Optional[datetime] = None
    decided_by: Optional[str] = None

    @classmethod
    def from_request(cls, request: ToolApprovalRequest) -> "ToolApprovalView":
        return cls.model_validate(request.model_dump(exclude={"checkpoint", "note"}))


class ToolApprovalResolved(BaseModel):
    """Outcome of resolving a tool approval request."""

    approval_id: str
    agent_id: str
    decision: ApprovalResolution
    resume_enqueued: bool = True
    workflow_run_id: Optional[str] = None
