from __future__ import annotations

import logging
from collections.abc import Container, Iterable
from dataclasses import dataclass, replace
from enum import StrEnum

from domain.models import (
    DEFAULT_START_POSITION,
    OUTPUT_HANDLE,
    START_NODE_ID,
    FlowEdge,
    FlowNode,
    NodeConfig,
    NodeKind,
    Point,
    default_config,
)

logger = logging.getLogger(__name__)

EDGE_ID_PREFIX = "reactflow__edge-"


class ConfigKindMismatchError(ValueError):
    def __init__(self, node_id: str, expected: NodeKind, actual: NodeKind) -> None:
        super().__init__(f"Node {node_id} is {expected.value!r}, got {actual.value!r} config")
        self.node_id = node_id


class DeleteOutcome(StrEnum):
    DELETED = "deleted"
    CONFIRMATION_REQUIRED = "confirmation_required"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class PendingDelete:
    node_id: str


class NodeIdGenerator:
    """Session-scoped `node_<n>` ids that skip anything already taken."""

    def __init__(self, prefix: str = "node_", start: int = 1) -> None:
        self._prefix = prefix
        self._next = start

    def next_id(self, taken: Container[str]) -> str:
        while True:
            candidate = f"{self._prefix}{self._next}"
            self._next += 1
            if candidate not in taken:
                return candidate

    def advance_past(self, ids: Iterable[str]) -> None:
        for node_id in ids:
            if not node_id.startswith(self._prefix):
                continue
            suffix = node_id[len(self._prefix) :]
            if suffix.isdigit():
                self._next = max(self._next, int(suffix) + 1)


def seed_start_node() -> FlowNode:
    return FlowNode(
        id=START_NODE_ID,
        kind=NodeKind.START,
        position=DEFAULT_START_POSITION,
        config=default_config(NodeKind.START),
        label=NodeKind.START.value,
    )


class FlowGraphStore:
    """Owns the live node/edge graph of one editing session.

    Every mutation goes through this class. Readers receive immutable node and
    edge records, never the internal containers. Operations addressing an
    unknown id are no-ops.
    """

    def __init__(self, id_generator: NodeIdGenerator | None = None) -> None:
        self._ids = id_generator or NodeIdGenerator()
        self._nodes: dict[str, FlowNode] = {}
        self._edges: dict[str, FlowEdge] = {}
        self._pending: PendingDelete | None = None
        self.reset()

    @property
    def nodes(self) -> tuple[FlowNode, ...]:
        return tuple(self._nodes.values())

    @property
    def edges(self) -> tuple[FlowEdge, ...]:
        return tuple(self._edges.values())

    @property
    def pending_delete(self) -> PendingDelete | None:
        return self._pending

    def node(self, node_id: str) -> FlowNode | None:
        return self._nodes.get(node_id)

    def select(self, node_id: str) -> FlowNode | None:
        return self._nodes.get(node_id)

    def edges_touching(self, node_id: str) -> tuple[FlowEdge, ...]:
        return tuple(
            edge for edge in self._edges.values() if node_id in (edge.source, edge.target)
        )

    def reset(self) -> None:
        start = seed_start_node()
        self._nodes = {start.id: start}
        self._edges = {}
        self._pending = None

    def load_graph(self, nodes: Iterable[FlowNode], edges: Iterable[FlowEdge]) -> None:
        self._nodes = {node.id: node for node in nodes}
        self._edges = {}
        for edge in edges:
            edge_id = self._unique_edge_id(edge.id)
            self._edges[edge_id] = edge if edge_id == edge.id else replace(edge, id=edge_id)
        self._pending = None
        self._ids.advance_past(self._nodes)

    def add_node(self, kind: NodeKind, position: Point) -> str:
        node_id = self._ids.next_id(self._nodes)
        self._nodes[node_id] = FlowNode(
            id=node_id,
            kind=kind,
            position=position,
            config=default_config(kind),
            label=kind.value,
        )
        return node_id

    def move_node(self, node_id: str, position: Point) -> None:
        node = self._nodes.get(node_id)
        if node is None:
            return
        self._nodes[node_id] = replace(node, position=position)

    def update_node_config(self, node_id: str, config: NodeConfig) -> None:
        node = self._nodes.get(node_id)
        if node is None:
            return
        if config.kind != node.kind:
            raise ConfigKindMismatchError(node_id, node.kind, config.kind)
        self._nodes[node_id] = replace(node, config=config)

    def connect(
        self,
        source_id: str,
        target_id: str,
        source_handle: str | None = None,
    ) -> str | None:
        if source_id not in self._nodes or target_id not in self._nodes:
            return None
        if source_handle == OUTPUT_HANDLE:
            source_handle = None
        edge_id = self._unique_edge_id(
            f"{EDGE_ID_PREFIX}{source_id}{source_handle or ''}-{target_id}"
        )
        self._edges[edge_id] = FlowEdge(
            id=edge_id,
            source=source_id,
            target=target_id,
            source_handle=source_handle or None,
        )
        return edge_id

    def disconnect(self, edge_id: str) -> None:
        self._edges.pop(edge_id, None)

    def delete_node(self, node_id: str) -> DeleteOutcome:
        node = self._nodes.get(node_id)
        if node is None:
            return DeleteOutcome.NOT_FOUND
        if node.kind == NodeKind.START:
            self._pending = PendingDelete(node_id)
            return DeleteOutcome.CONFIRMATION_REQUIRED
        self._remove_node(node_id)
        return DeleteOutcome.DELETED

    def confirm_delete(self) -> str | None:
        pending = self._pending
        self._pending = None
        if pending is None:
            return None
        if pending.node_id not in self._nodes:
            return None
        self._remove_node(pending.node_id)
        logger.info("Start node %s deleted after confirmation", pending.node_id)
        return pending.node_id

    def cancel_delete(self) -> None:
        self._pending = None

    def _remove_node(self, node_id: str) -> None:
        del self._nodes[node_id]
        self._edges = {
            edge_id: edge
            for edge_id, edge in self._edges.items()
            if node_id not in (edge.source, edge.target)
        }

    def _unique_edge_id(self, base_id: str) -> str:
        if base_id not in self._edges:
            return base_id
        suffix = 1
        while f"{base_id}-{suffix}" in self._edges:
            suffix += 1
        return f"{base_id}-{suffix}"
