from __future__ import annotations

"""Tool registry.

The registry maps a tool name to an executable tool implementation. One
registry is built at process start (see ``build_default_tool_registry``) and
passed by reference into the invoker, the approval gate and the loop; there is
no module-level registry.
"""

from typing import Dict, Iterable, List, Optional

from .base import ToolDefinition


class ToolRegistry:
    """
    In-memory mapping of tool names to implementations.

    Notes:
        - ``register`` overwrites any existing mapping for the tool name.
        - ``get`` raises ``KeyError`` if the tool is missing; ``find`` returns None.
    """

    def __init__(self, tools: Iterable[ToolDefinition] = ()) -> None:
        self._tools: Dict[str, ToolDefinition] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: ToolDefinition) -> None:
        self._tools[tool.name] = tool

    def get(self, name: str) -> ToolDefinition:
        return self._tools[name]

    def find(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def names(self) -> List[str]:
        return list(self._tools)

    def get_by_names(self, names: Optional[Iterable[str]]) -> List[ToolDefinition]:
        """
        Resolve an agent's tool allowlist.

        Args:
            names: tool names, or None to select every registered tool.

        Returns:
            The registered tools in allowlist order; unknown names are skipped.
        """
        if names is None:
            return list(self._tools.values())
        return [self._tools[n] for n in names if n in self._tools]
