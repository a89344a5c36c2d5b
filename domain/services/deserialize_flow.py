from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from domain.models import (
    CONFIG_TYPES,
    INPUT_HANDLE,
    OUTPUT_HANDLE,
    FlowEdge,
    FlowNode,
    NodeConfig,
    NodeKind,
    Point,
    default_config,
)
from domain.services.flow_graph_store import EDGE_ID_PREFIX
from domain.services.serialize_flow import BUTTON_ROUTING_KEY

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoadedFlow:
    name: str
    trigger_keyword: str
    nodes: tuple[FlowNode, ...]
    edges: tuple[FlowEdge, ...]


class FlowDeserializer:
    """Rebuilds a live graph from a persisted flow document.

    Accepts both the document the serializer emits and the flattened shape the
    storage service returns (``nodeType``, ``positionX``/``positionY``,
    ``configJson``). Malformed parts degrade instead of aborting the load.
    """

    def deserialize(self, document: Mapping[str, Any]) -> LoadedFlow:
        nodes = [
            node
            for node in (self._node(raw) for raw in _iter_dicts(document.get("nodes")))
            if node is not None
        ]
        live_ids = {node.id for node in nodes}
        if not any(node.kind == NodeKind.START for node in nodes):
            logger.warning("Loaded flow has no start node")
        edges = [self._edge(raw, live_ids) for raw in _iter_dicts(document.get("edges"))]
        return LoadedFlow(
            name=str(document.get("name") or ""),
            trigger_keyword=str(document.get("triggerKeyword") or ""),
            nodes=tuple(nodes),
            edges=tuple(edges),
        )

    def _node(self, raw: Mapping[str, Any]) -> FlowNode | None:
        node_id = str(raw.get("id") or "").strip()
        kind_value = raw.get("type") or raw.get("nodeType")
        try:
            kind = NodeKind(str(kind_value))
        except ValueError:
            logger.warning("Skipping node %r with unknown type %r", node_id, kind_value)
            return None
        if not node_id:
            logger.warning("Skipping %s node without id", kind.value)
            return None

        data = raw.get("data")
        data = data if isinstance(data, Mapping) else {}
        label = str(data.get("label") or raw.get("label") or kind.value)
        raw_config = (
            data.get("config") if "config" in data else raw.get("configJson", raw.get("config"))
        )
        return FlowNode(
            id=node_id,
            kind=kind,
            position=self._position(raw),
            config=self._config(node_id, kind, raw_config),
            label=label,
        )

    def _position(self, raw: Mapping[str, Any]) -> Point:
        position = raw.get("position")
        if isinstance(position, Mapping):
            return Point(_to_float(position.get("x")), _to_float(position.get("y")))
        return Point(_to_float(raw.get("positionX")), _to_float(raw.get("positionY")))

    def _config(self, node_id: str, kind: NodeKind, raw_config: Any) -> NodeConfig:
        payload = raw_config
        if isinstance(payload, str | bytes):
            try:
                payload = json.loads(payload) if payload.strip() else {}
            except json.JSONDecodeError:
                logger.warning("Node %s has unparsable config, using an empty one", node_id)
                return default_config(kind)
        if payload is None:
            return default_config(kind)
        if not isinstance(payload, Mapping):
            logger.warning("Node %s config is not an object, using an empty one", node_id)
            return default_config(kind)
        cleaned = {key: value for key, value in payload.items() if key != BUTTON_ROUTING_KEY}
        try:
            return CONFIG_TYPES[kind].model_validate(cleaned)
        except ValidationError:
            logger.warning(
                "Node %s config does not match %s, using an empty one", node_id, kind.value
            )
            return default_config(kind)

    def _edge(self, raw: Mapping[str, Any], live_ids: set[str]) -> FlowEdge:
        source_ref = str(raw.get("sourceNodeId") or raw.get("source") or "")
        target_ref = str(raw.get("targetNodeId") or raw.get("target") or "")
        for ref in (source_ref, target_ref):
            if ref not in live_ids:
                logger.warning("Edge %r references missing node %r", raw.get("id"), ref)

        source_handle = raw.get("sourceHandle") or None
        if source_handle == OUTPUT_HANDLE:
            source_handle = None
        edge_id = str(
            raw.get("id") or f"{EDGE_ID_PREFIX}{source_ref}{source_handle or ''}-{target_ref}"
        )
        return FlowEdge(
            id=edge_id,
            source=source_ref,
            target=target_ref,
            source_handle=str(source_handle) if source_handle else None,
            target_handle=str(raw.get("targetHandle") or INPUT_HANDLE),
        )


def _iter_dicts(raw: Any) -> Iterable[Mapping[str, Any]]:
    if not isinstance(raw, list | tuple):
        return
    for item in raw:
        if isinstance(item, Mapping):
            yield item


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0
