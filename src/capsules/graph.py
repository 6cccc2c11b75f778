"""Bounded breadth-first traversal of enable/constrain/supersede relationships."""

from collections import deque
from dataclasses import dataclass, field
from typing import Optional

import structlog

from shared_types import GraphDirection, Significance

from .models import Capsule, CapsuleFilter
from .store import CapsuleStore

logger = structlog.get_logger()

DEFAULT_DEPTH = 2


@dataclass
class GraphNode:
    id: str
    question: str
    choice: str
    significance: Optional[Significance] = None
    session_id: str = ""
    distance: int = 0  # hops from root

    @classmethod
    def from_capsule(cls, c: Capsule, distance: int) -> "GraphNode":
        return cls(
            id=c.id,
            question=c.question,
            choice=c.choice,
            significance=c.significance,
            session_id=c.session_id,
            distance=distance,
        )


@dataclass
class GraphEdge:
    source: str
    target: str
    relationship: str  # enables | constrains | supersedes


@dataclass
class GraphResult:
    root: GraphNode
    depth: int
    direction: GraphDirection
    nodes: list[GraphNode] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)
    rendering: str = ""

    def to_dict(self) -> dict:
        return {
            "root": vars(self.root),
            "nodes": [vars(n) for n in self.nodes],
            "edges": [{"from": e.source, "to": e.target, "relationship": e.relationship} for e in self.edges],
            "ascii": self.rendering,
            "depth": self.depth,
            "direction": str(self.direction),
        }


def truncate_id(capsule_id: str) -> str:
    if len(capsule_id) <= 16:
        return capsule_id
    return f"{capsule_id[:8]}...{capsule_id[-8:]}"


def truncate_text(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


class DependencyGraph:
    """Builds dependency graphs rooted at one capsule from a CapsuleStore."""

    def __init__(self, store: CapsuleStore, default_depth: int = DEFAULT_DEPTH):
        self.store = store
        self.default_depth = default_depth

    def build(
        self,
        root_id: str,
        depth: int = 0,
        direction: GraphDirection | str = GraphDirection.BOTH,
    ) -> GraphResult:
        """Traverse up to ``depth`` hops from root_id.

        ``up`` follows what enabled, constrained or superseded the capsule; ``down``
        follows what it enabled, constrained or superseded. Each node is visited once
        at its first-reached distance, and an edge is only recorded toward a node not
        yet visited when the edge is discovered.

        Raises:
            CapsuleNotFoundError: If root_id does not exist.
            ValueError: If direction is not up, down or both.
        """
        if depth <= 0:
            depth = self.default_depth
        direction = GraphDirection(direction or GraphDirection.BOTH)

        root = self.store.get(root_id)

        everything = self.store.list_capsules(
            CapsuleFilter(include_invalidated=True, show_evolution=True)
        )
        by_id = {c.id: c for c in everything}

        # Reverse indexes from active capsules, built once per call
        enables_index: dict[str, list[str]] = {}
        constrained_by_index: dict[str, list[str]] = {}
        for c in everything:
            if not c.is_active:
                continue
            if c.enabled_by:
                enables_index.setdefault(c.enabled_by, []).append(c.id)
            for target in c.constrains:
                constrained_by_index.setdefault(target, []).append(c.id)

        result = GraphResult(root=GraphNode.from_capsule(root, 0), depth=depth, direction=direction)
        go_down = direction in (GraphDirection.DOWN, GraphDirection.BOTH)
        go_up = direction in (GraphDirection.UP, GraphDirection.BOTH)

        visited: set[str] = set()
        queue: deque[tuple[str, int]] = deque([(root.id, 0)])

        while queue:
            node_id, distance = queue.popleft()
            if node_id in visited or distance > depth:
                continue
            visited.add(node_id)

            c = by_id.get(node_id)
            if c is None:
                logger.debug("graph_node_missing", capsule_id=node_id)
                continue
            if distance > 0:
                result.nodes.append(GraphNode.from_capsule(c, distance))

            def follow(source: str, target: str, relationship: str, next_id: str):
                if next_id in visited:
                    return
                result.edges.append(GraphEdge(source=source, target=target, relationship=relationship))
                queue.append((next_id, distance + 1))

            if go_down:
                for enabled_id in enables_index.get(c.id, []):
                    follow(c.id, enabled_id, "enables", enabled_id)
                for constrained_id in c.constrains:
                    follow(c.id, constrained_id, "constrains", constrained_id)
                for superseded_id in c.supersedes:
                    follow(c.id, superseded_id, "supersedes", superseded_id)

            if go_up:
                if c.enabled_by:
                    follow(c.enabled_by, c.id, "enables", c.enabled_by)
                for constrainer_id in constrained_by_index.get(c.id, []):
                    follow(constrainer_id, c.id, "constrains", constrainer_id)
                if c.superseded_by:
                    follow(c.superseded_by, c.id, "supersedes", c.superseded_by)

        result.rendering = render_graph(result)
        return result


def render_graph(g: GraphResult) -> str:
    """Plain-text rendering grouped by distance, each node with its outgoing edges."""
    by_distance: dict[int, list[GraphNode]] = {0: [g.root]}
    for n in g.nodes:
        by_distance.setdefault(n.distance, []).append(n)

    edges_from: dict[str, list[GraphEdge]] = {}
    for e in g.edges:
        edges_from.setdefault(e.source, []).append(e)

    lines = []
    for dist in range(g.depth + 1):
        nodes = by_distance.get(dist)
        if not nodes:
            continue
        lines.append(f"Level {dist}:")
        for n in nodes:
            marker = "* " if dist == 0 else "  "
            lines.append(f"{marker}[{truncate_id(n.id)}] {truncate_text(n.question, 40)}")
            for e in edges_from.get(n.id, []):
                lines.append(f"    --{e.relationship}--> [{truncate_id(e.target)}]")

    if not g.nodes and not g.edges:
        lines.append("No dependency relationships found.")

    return "\n".join(lines) + "\n"
