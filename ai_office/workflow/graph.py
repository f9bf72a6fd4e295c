from __future__ import annotations

"""Workflow graph queries.

``WorkflowGraph`` wraps the node ids and edges of a ``WorkflowDefinition`` and
answers the questions the executor asks while walking a run:

- in which order may nodes run (``topological_sort``),
- which outputs feed a node (``upstream_outputs``),
- which nodes follow a node, optionally through one branch handle
  (``downstream_nodes``, ``descendants``, ``exclusive_descendants``).

Ordering uses Kahn's algorithm: nodes whose remaining in-degree is zero are
emitted in FIFO discovery order. A graph with a cycle is rejected as a whole;
no partial order is ever returned.
"""

from collections import deque
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set

from ai_office.agent_core.errors import CycleDetectedError, WorkflowDefinitionError

from .models import NodeOutput, WorkflowDefinition, WorkflowEdge


class WorkflowGraph:
    """Validated adjacency view over a node/edge set.

    Raises:
        WorkflowDefinitionError: duplicate node ids, or an edge referencing an
            unknown node.
    """

    def __init__(self, node_ids: Sequence[str], edges: Iterable[WorkflowEdge]) -> None:
        self._node_ids: List[str] = list(node_ids)
        if len(set(self._node_ids)) != len(self._node_ids):
            raise WorkflowDefinitionError("Workflow definition contains duplicate node ids")
        self._edges: List[WorkflowEdge] = list(edges)

        known = set(self._node_ids)
        for edge in self._edges:
            for endpoint in (edge.source, edge.target):
                if endpoint not in known:
                    raise WorkflowDefinitionError(f"Edge {edge.id} references unknown node: {endpoint}")

        self._outgoing: Dict[str, List[WorkflowEdge]] = {n: [] for n in self._node_ids}
        self._incoming: Dict[str, List[WorkflowEdge]] = {n: [] for n in self._node_ids}
        for edge in self._edges:
            self._outgoing[edge.source].append(edge)
            self._incoming[edge.target].append(edge)

    @classmethod
    def from_definition(cls, definition: WorkflowDefinition) -> "WorkflowGraph":
        return cls(definition.node_ids(), definition.edges)

    @property
    def node_ids(self) -> List[str]:
        return list(self._node_ids)

    def topological_sort(self) -> List[str]:
        """
        Order every node after all of its upstream nodes.

        Returns:
            Each node id exactly once.

        Raises:
            CycleDetectedError: the graph contains a cycle.
        """
        in_degree = {n: len(self._incoming[n]) for n in self._node_ids}
        queue = deque(n for n in self._node_ids if in_degree[n] == 0)
        ordered: List[str] = []
        while queue:
            node_id = queue.popleft()
            ordered.append(node_id)
            for edge in self._outgoing[node_id]:
                in_degree[edge.target] -= 1
                if in_degree[edge.target] == 0:
                    queue.append(edge.target)

        if len(ordered) != len(self._node_ids):
            raise CycleDetectedError([n for n, degree in in_degree.items() if degree > 0])
        return ordered

    def upstream_outputs(self, node_id: str, outputs: Mapping[str, NodeOutput]) -> Dict[str, NodeOutput]:
        """Outputs of every node with an edge into ``node_id`` that produced one."""
        return {e.source: outputs[e.source] for e in self._incoming.get(node_id, []) if e.source in outputs}

    def downstream_nodes(self, node_id: str, handle: Optional[str] = None) -> List[str]:
        """Direct successors of ``node_id``, filtered by source handle when given."""
        return [
            e.target for e in self._outgoing.get(node_id, []) if handle is None or e.source_handle == handle
        ]

    def descendants(self, node_id: str, handle: Optional[str] = None) -> List[str]:
        """Every node reachable from ``node_id``, leaving it through ``handle``."""
        seen: Set[str] = set()
        ordered: List[str] = []
        queue = deque(self.downstream_nodes(node_id, handle))
        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.add(current)
            ordered.append(current)
            queue.extend(self.downstream_nodes(current))
        return ordered

    def exclusive_descendants(self, node_id: str, handle: str) -> List[str]:
        """
        Descendants reachable only through ``handle`` of ``node_id``.

        A node qualifies when every edge into it comes either from ``node_id``
        through ``handle`` or from another qualifying node. Nodes that also
        have an input from elsewhere stay runnable.
        """
        candidates = set(self.descendants(node_id, handle))
        excluded: Set[str] = set()
        for candidate in self.topological_sort():
            if candidate not in candidates:
                continue
            if all(
                (e.source == node_id and e.source_handle == handle) or e.source in excluded
                for e in self._incoming[candidate]
            ):
                excluded.add(candidate)
        return [n for n in self.topological_sort() if n in excluded]
