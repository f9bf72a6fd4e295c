from __future__ import annotations

"""Approval gate for tool calls.

``ApprovalGate.resolve`` answers, for one (project, agent, tool) triple, one of:

- ``always_allow``: run the tool.
- ``always_block``: never run the tool; the invoker records a permission error.
- ``require_approval``: suspend the session until a human decides.

A stored rule always wins. Without a rule the tool's own ``requires_approval``
flag decides, and a tool name the registry does not know fails closed to
``require_approval``.
"""

import logging
from typing import TYPE_CHECKING

from ..schemas.domain import ApprovalDecision

if TYPE_CHECKING:
    from ..capabilities.registry import ToolRegistry
    from ai_office.repos.interfaces import ApprovalRuleRepository

logger = logging.getLogger(__name__)


class ApprovalGate:
    def __init__(self, rules: "ApprovalRuleRepository", tools: "ToolRegistry") -> None:
        self._rules = rules
        self._tools = tools

    async def resolve(self, project_id: str, agent_id: str, tool_name: str) -> ApprovalDecision:
        rule = await self._rules.lookup(project_id, agent_id, tool_name)
        if rule is not None:
            logger.debug(f"Approval rule for agent={agent_id} tool={tool_name}: {rule.value}")
            return rule

        tool = self._tools.find(tool_name)
        if tool is None or tool.requires_approval:
            return ApprovalDecision.require_approval
        return ApprovalDecision.always_allow
