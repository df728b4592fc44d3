"""Agent graph utilities.

The agent graph of a run is discovered from the starting agent by following
handoffs. It is validated once, before the first model call: two distinct
agents may not share a name. Cycles are legal (A hands to B, B back to A);
the run loop bounds them with ``max_handoffs``.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from waypoint.handoff import HandoffError

if TYPE_CHECKING:
    from waypoint.agent import Agent


@dataclass
class Graph:
    """Simple directed graph using adjacency lists.

    Nodes are agent names. Edges point from an agent to its handoff targets.
    """

    _adjacency: dict[str, list[str]] = field(default_factory=dict)

    def add_node(self, name: str) -> None:
        """Add a node (idempotent)."""
        if name not in self._adjacency:
            self._adjacency[name] = []

    def add_edge(self, source: str, target: str) -> None:
        """Add a directed edge; both nodes are created implicitly."""
        self.add_node(source)
        self.add_node(target)
        if target not in self._adjacency[source]:
            self._adjacency[source].append(target)

    @property
    def nodes(self) -> list[str]:
        return list(self._adjacency)

    @property
    def edges(self) -> list[tuple[str, str]]:
        return [(src, tgt) for src, targets in self._adjacency.items() for tgt in targets]

    def successors(self, name: str) -> list[str]:
        return list(self._adjacency.get(name, []))


def build_agent_graph(start: Agent) -> tuple[Graph, dict[str, Agent]]:
    """Walk handoffs breadth-first from *start*.

    Returns:
        The graph and a name -> Agent index of every reachable agent.

    Raises:
        HandoffError: If two distinct agents in the graph share a name.
    """
    graph = Graph()
    agents: dict[str, Agent] = {start.name: start}
    graph.add_node(start.name)
    queue: deque[Agent] = deque([start])

    while queue:
        current = queue.popleft()
        for h in current.handoffs.values():
            target = h.agent
            known = agents.get(target.name)
            if known is None:
                agents[target.name] = target
                queue.append(target)
            elif known is not target:
                raise HandoffError(
                    f"Two distinct agents are named '{target.name}' in the handoff graph "
                    f"of '{start.name}'",
                    agent_name=current.name,
                    phase="init",
                )
            graph.add_edge(current.name, target.name)

    return graph, agents


def find_cycle(graph: Graph) -> list[str] | None:
    """Return one cycle as a node path (first node repeated at the end), or ``None``."""
    visiting: set[str] = set()
    done: set[str] = set()
    path: list[str] = []

    def visit(node: str) -> list[str] | None:
        visiting.add(node)
        path.append(node)
        for succ in graph.successors(node):
            if succ in visiting:
                return path[path.index(succ) :] + [succ]
            if succ not in done:
                found = visit(succ)
                if found:
                    return found
        visiting.discard(node)
        done.add(node)
        path.pop()
        return None

    for node in graph.nodes:
        if node not in done:
            found = visit(node)
            if found:
                return found
    return None
