from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from domain.models import (
    DEFAULT_FLOW_NAME,
    INPUT_HANDLE,
    OUTPUT_HANDLE,
    FlowDocument,
    FlowEdge,
    FlowNode,
    NodeKind,
    PersistedEdge,
    PersistedNode,
    PersistedNodeData,
    PersistedPosition,
)
from domain.services.button_routing import compile_button_routing, find_duplicate_button_routes

logger = logging.getLogger(__name__)

BUTTON_ROUTING_KEY = "buttonToNextMap"


def normalize_trigger_keywords(raw: str | None) -> str:
    keywords = [part.strip() for part in str(raw or "").split(",")]
    return ", ".join(keyword for keyword in keywords if keyword)


class FlowSerializer:
    def __init__(self, default_name: str = DEFAULT_FLOW_NAME) -> None:
        self._default_name = default_name

    def serialize(
        self,
        nodes: Sequence[FlowNode],
        edges: Sequence[FlowEdge],
        name: str | None = None,
        trigger_keyword: str | None = None,
    ) -> FlowDocument:
        node_ids = {node.id: node.id for node in nodes}
        return FlowDocument(
            name=(name or "").strip() or self._default_name,
            trigger_keyword=normalize_trigger_keywords(trigger_keyword),
            nodes=[self._node(node, edges) for node in nodes],
            edges=[self._edge(edge, node_ids) for edge in edges],
        )

    def _node(self, node: FlowNode, edges: Sequence[FlowEdge]) -> PersistedNode:
        config: dict[str, Any] = node.config.to_payload()
        if node.kind == NodeKind.TEMPLATE:
            duplicates = find_duplicate_button_routes(node.id, edges)
            if duplicates:
                logger.warning(
                    "Template node %s has several edges per button, keeping the last: %s",
                    node.id,
                    duplicates,
                )
            routing = compile_button_routing(node.id, edges)
            config[BUTTON_ROUTING_KEY] = {
                str(index): target for index, target in sorted(routing.items())
            }
        return PersistedNode(
            id=node.id,
            type=node.kind,
            position=PersistedPosition(x=node.position.x, y=node.position.y),
            data=PersistedNodeData(label=node.display_label, config=config),
        )

    def _edge(self, edge: FlowEdge, node_ids: dict[str, str]) -> PersistedEdge:
        return PersistedEdge(
            id=edge.id,
            source=edge.source,
            target=edge.target,
            source_node_id=node_ids.get(edge.source, edge.source),
            target_node_id=node_ids.get(edge.target, edge.target),
            source_handle=edge.source_handle or OUTPUT_HANDLE,
            target_handle=INPUT_HANDLE,
        )
