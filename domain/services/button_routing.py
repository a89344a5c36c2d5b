from __future__ import annotations

import re
from collections.abc import Iterable

from domain.models import FlowEdge

_BUTTON_HANDLE_RE = re.compile(r"^button-(\d+)$")


def parse_button_index(source_handle: str | None) -> int | None:
    if not source_handle:
        return None
    match = _BUTTON_HANDLE_RE.match(source_handle)
    if match is None:
        return None
    return int(match.group(1))


def compile_button_routing(node_id: str, edges: Iterable[FlowEdge]) -> dict[int, str]:
    """Map each routed button index of a template node to its target node id.

    Later edges on the same button port overwrite earlier ones. Buttons with
    no outgoing edge are left out of the map.
    """
    routing: dict[int, str] = {}
    for edge in edges:
        if edge.source != node_id:
            continue
        index = parse_button_index(edge.source_handle)
        if index is None:
            continue
        routing[index] = edge.target
    return routing


def find_duplicate_button_routes(node_id: str, edges: Iterable[FlowEdge]) -> dict[int, list[str]]:
    targets_by_index: dict[int, list[str]] = {}
    for edge in edges:
        if edge.source != node_id:
            continue
        index = parse_button_index(edge.source_handle)
        if index is None:
            continue
        targets_by_index.setdefault(index, []).append(edge.target)
    return {index: targets for index, targets in targets_by_index.items() if len(targets) > 1}
