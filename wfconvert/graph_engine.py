"""
DependencyGraph: call-level dependency graph of a Workflow.

Nodes are call ids in declaration order. An edge ``A -> B`` means call B
consumes an output produced by call A, derived only from the expressions in
B's input mapping (and its scatter expression). The graph is read-only with
respect to the IR.
"""

from typing import Any, Dict, List, Optional, Set

import networkx as nx

from .errors import CycleError
from .ir import Workflow


class DependencyGraph:
    """Directed graph over WorkflowCall ids."""

    def __init__(self, graph: nx.DiGraph, order: List[str]):
        self.graph = graph
        self._order = order
        self._index = {cid: i for i, cid in enumerate(order)}

    # ─── Construction ────────────────────────────────────────────

    @classmethod
    def from_workflow(cls, workflow: Workflow) -> "DependencyGraph":
        graph = nx.DiGraph()
        order: List[str] = []
        for call in workflow.calls:
            if call.id not in graph:
                graph.add_node(call.id, callee=call.callee,
                               scatter=call.scatter.block if call.scatter else None)
                order.append(call.id)
        for call in workflow.calls:
            for ref in call.references():
                if "." not in ref:
                    continue
                upstream = ref.split(".", 1)[0]
                if upstream in graph:
                    graph.add_edge(upstream, call.id)
        return cls(graph, order)

    # ─── Queries ─────────────────────────────────────────────────

    @property
    def nodes(self) -> List[str]:
        return list(self._order)

    @property
    def edges(self) -> List[tuple]:
        return sorted(self.graph.edges, key=lambda e: (self._index[e[0]], self._index[e[1]]))

    def has_cycles(self) -> bool:
        return not nx.is_directed_acyclic_graph(self.graph)

    def find_cycle(self) -> Optional[List[str]]:
        """Node list of one cycle, or None for a DAG."""
        try:
            edges = nx.find_cycle(self.graph)
        except nx.NetworkXNoCycle:
            return None
        return [u for u, _v in edges]

    def dependencies_of(self, call_id: str) -> Set[str]:
        """Direct predecessors only."""
        if call_id not in self.graph:
            raise KeyError(f"unknown call '{call_id}'")
        return set(self.graph.predecessors(call_id))

    def dependents_of(self, call_id: str) -> Set[str]:
        if call_id not in self.graph:
            raise KeyError(f"unknown call '{call_id}'")
        return set(self.graph.successors(call_id))

    def topological_order(self) -> List[str]:
        """A valid execution order; ties break by declaration order."""
        try:
            return list(nx.lexicographical_topological_sort(self.graph, key=self._index.__getitem__))
        except nx.NetworkXUnfeasible:
            raise CycleError(self.find_cycle() or [])

    def levels(self) -> List[List[str]]:
        """Calls grouped by longest-path distance from a root."""
        depth: Dict[str, int] = {}
        for cid in self.topological_order():
            preds = list(self.graph.predecessors(cid))
            depth[cid] = 1 + max(depth[p] for p in preds) if preds else 0
        grouped: List[List[str]] = []
        for cid in self._order:
            d = depth[cid]
            while len(grouped) <= d:
                grouped.append([])
            grouped[d].append(cid)
        return grouped

    def max_parallelism(self) -> int:
        """Width of the widest level; a structural upper bound, not a schedule."""
        return max((len(level) for level in self.levels()), default=0)

    # ─── Export ──────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        cyclic = self.has_cycles()
        out: Dict[str, Any] = {
            "node_count": self.graph.number_of_nodes(),
            "edge_count": self.graph.number_of_edges(),
            "is_dag": not cyclic,
            "nodes": [
                {
                    "id": cid,
                    "callee": self.graph.nodes[cid].get("callee"),
                    "scatter": self.graph.nodes[cid].get("scatter"),
                    "depends_on": sorted(self.graph.predecessors(cid), key=self._index.__getitem__),
                }
                for cid in self._order
            ],
        }
        if cyclic:
            out["cycle"] = self.find_cycle()
        else:
            out["topological_order"] = self.topological_order()
            out["levels"] = self.levels()
            out["max_parallelism"] = self.max_parallelism()
        return out


def build_graph(workflow: Workflow) -> DependencyGraph:
    return DependencyGraph.from_workflow(workflow)
