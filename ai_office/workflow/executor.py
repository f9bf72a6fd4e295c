from __future__ import annotations

"""Workflow executor.

``WorkflowExecutor.execute`` walks a workflow definition in dependency order
and runs one handler per node.

Execution model
--------------

1. Pre-flight: the graph is validated and sorted (``CycleDetectedError`` for a
   cycle) and every node kind must have a handler (``NoHandlerError``). Nothing
   runs when pre-flight fails.
2. Nodes already present in the seeded outputs are never executed again.
3. For every other node, in topological order: upstream outputs are gathered,
   ``{{name}}`` placeholders are resolved in the node config, and the handler
   runs.
4. ``Suspend`` pauses the run at that node; nothing after it runs.
5. A ``failed`` output (or a handler exception) fails the run.
6. After a condition node, nodes reachable only through the untaken handle are
   recorded as ``skipped``.

Pause/resume
------------

A paused run is resumed by calling ``execute`` again with the previous outputs
and ``resume_from_node_id``. The resumed node receives ``resumed=True`` (and the
human decision for approval nodes), so it completes instead of pausing again.

Every produced ``NodeOutput`` is emitted to the node-run sink. The sink is
observability only: its failures are logged and never change the run.
"""

import logging
from typing import Dict, Mapping, Optional

from ai_office.agent_core.errors import (
    AIOfficeError,
    FailureKind,
    NoHandlerError,
    WorkflowDefinitionError,
    describe_failure,
)
from ai_office.repos.interfaces import NodeRunRepository

from .graph import WorkflowGraph
from .models import (
    ApprovalOutcome,
    NodeInput,
    NodeOutput,
    NodeStatus,
    NodeType,
    RunStatus,
    Suspend,
    WorkflowDefinition,
    WorkflowExecutionResult,
    WorkflowNode,
    WorkflowRunContext,
)
from .registry import NodeHandlerRegistry
from .templating import resolve_config

logger = logging.getLogger(__name__)

YES_HANDLE = "yes"
NO_HANDLE = "no"


class WorkflowExecutor:
    """Run or resume one workflow run.

    Args:
        registry: handlers for every node kind used by the definitions.
        node_runs: optional sink receiving every ``NodeOutput``.
    """

    def __init__(self, registry: NodeHandlerRegistry, *, node_runs: Optional[NodeRunRepository] = None) -> None:
        self._registry = registry
        self._node_runs = node_runs

    async def execute(
        self,
        definition: WorkflowDefinition,
        ctx: WorkflowRunContext,
        *,
        resume_from_node_id: Optional[str] = None,
        existing_outputs: Optional[Mapping[str, NodeOutput]] = None,
        approval: Optional[ApprovalOutcome] = None,
    ) -> WorkflowExecutionResult:
        """
        Execute the definition until it completes, fails or pauses.

        Raises:
            CycleDetectedError: the graph contains a cycle.
            NoHandlerError: a node kind has no registered handler.
            WorkflowDefinitionError: any other invalid definition.
        """
        graph = WorkflowGraph.from_definition(definition)
        order = graph.topological_sort()
        for node in definition.nodes:
            if not self._registry.has(node.type):
                raise NoHandlerError(node.type.value)
        if resume_from_node_id is not None and definition.node(resume_from_node_id) is None:
            raise WorkflowDefinitionError(f"Cannot resume at unknown node: {resume_from_node_id}")

        outputs: Dict[str, NodeOutput] = dict(existing_outputs or {})
        if resume_from_node_id is None:
            logger.info(f"Executing run {ctx.workflow_run_id} of workflow {ctx.workflow_id} ({len(order)} nodes)")
        else:
            logger.info(
                f"Resuming run {ctx.workflow_run_id} at node {resume_from_node_id} "
                f"with {len(outputs)} completed outputs"
            )

        for node_id in order:
            if node_id in outputs:
                continue
            node = definition.node(node_id)
            resumed = node_id == resume_from_node_id
            node_input = NodeInput(
                node_id=node_id,
                upstream_outputs=graph.upstream_outputs(node_id, outputs),
                variables=dict(ctx.variables),
                resumed=resumed,
                approval=approval if resumed else None,
            )

            try:
                config = resolve_config(node.data, ctx.variables)
                result = await self._registry.execute(node.type, config, node_input, ctx)
            except Exception as e:
                logger.exception(f"Node {node_id} ({node.type.value}) raised in run {ctx.workflow_run_id}")
                kind = e.kind if isinstance(e, AIOfficeError) else FailureKind.tool
                output = NodeOutput(
                    node_id=node_id,
                    node_type=node.type.value,
                    status=NodeStatus.failed,
                    data={"error": f"{type(e).__name__}: {e}", "failure_kind": kind.value},
                )
                await self._record(ctx, outputs, output)
                return self._failed(outputs, node, output)

            if isinstance(result, Suspend):
                suspension = result if result.node_id == node_id else result.model_copy(update={"node_id": node_id})
                logger.info(f"Run {ctx.workflow_run_id} paused at node {node_id} ({suspension.reason.value})")
                return WorkflowExecutionResult(
                    status=RunStatus.paused,
                    outputs=outputs,
                    paused_at_node_id=node_id,
                    suspension=suspension,
                )

            output = result.output
            if output.node_id != node_id:
                output = output.model_copy(update={"node_id": node_id})
            await self._record(ctx, outputs, output)
            if output.status == NodeStatus.failed:
                return self._failed(outputs, node, output)

            if node.type == NodeType.condition:
                await self._skip_untaken_branch(definition, graph, ctx, outputs, node_id, bool(output.data))

        logger.info(f"Run {ctx.workflow_run_id} completed ({len(outputs)} outputs)")
        return WorkflowExecutionResult(status=RunStatus.completed, outputs=outputs)

    async def _skip_untaken_branch(
        self,
        definition: WorkflowDefinition,
        graph: WorkflowGraph,
        ctx: WorkflowRunContext,
        outputs: Dict[str, NodeOutput],
        condition_id: str,
        result: bool,
    ) -> None:
        taken = YES_HANDLE if result else NO_HANDLE
        untaken = NO_HANDLE if result else YES_HANDLE
        for skip_id in graph.exclusive_descendants(condition_id, untaken):
            if skip_id in outputs:
                continue
            skipped = definition.node(skip_id)
            await self._record(
                ctx,
                outputs,
                NodeOutput(
                    node_id=skip_id,
                    node_type=skipped.type.value if skipped else "unknown",
                    status=NodeStatus.skipped,
                    data={"reason": f"Condition {condition_id} evaluated to {taken}"},
                ),
            )
            logger.debug(f"Skipped node {skip_id} in run {ctx.workflow_run_id} (condition {condition_id}: {taken})")

    async def _record(self, ctx: WorkflowRunContext, outputs: Dict[str, NodeOutput], output: NodeOutput) -> None:
        outputs[output.node_id] = output
        if self._node_runs is None:
            return
        try:
            await self._node_runs.append(ctx.workflow_run_id, ctx.project_id, output)
        except Exception:
            logger.warning(
                f"Failed to persist node run {output.node_id} of run {ctx.workflow_run_id}",
                exc_info=True,
            )

    @staticmethod
    def _failed(outputs: Dict[str, NodeOutput], node: WorkflowNode, output: NodeOutput) -> WorkflowExecutionResult:
        data = output.data if isinstance(output.data, dict) else {}
        try:
            kind = FailureKind(data.get("failure_kind", FailureKind.tool.value))
        except ValueError:
            kind = FailureKind.tool
        detail = data.get("error") or "node failed"
        error = describe_failure(kind, f"Node {node.id} ({node.type.value}) failed: {detail}")
        logger.info(error)
        return WorkflowExecutionResult(status=RunStatus.failed, outputs=outputs, error=error, failure_kind=kind)
