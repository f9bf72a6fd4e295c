"""Workflow orchestrator: a resumable DAG executor built on the agent engine.

Design overview
---------------

- ``models``: definitions (nodes, edges, variables), the tagged union of node
  configs, ``NodeOutput`` and the ``Continue`` / ``Suspend`` handler results.
- ``graph.WorkflowGraph``: validation, topological order and branch queries.
- ``registry.NodeHandlerRegistry``: node kind -> handler.
- ``executor.WorkflowExecutor``: walks the graph, pauses on ``Suspend`` and
  resumes from the outputs produced so far.
- ``service.WorkflowRunService``: persists runs and schedules continuations on
  the job queue.

Only the value types are re-exported here; import the executor and services
from their modules.
"""

from .models import (
    NodeOutput,
    NodeStatus,
    NodeType,
    RunStatus,
    Workflow,
    WorkflowDefinition,
    WorkflowExecutionResult,
    WorkflowRun,
    WorkflowRunContext,
)

__all__ = [
    "NodeOutput",
    "NodeStatus",
    "NodeType",
    "RunStatus",
    "Workflow",
    "WorkflowDefinition",
    "WorkflowExecutionResult",
    "WorkflowRun",
    "WorkflowRunContext",
]
