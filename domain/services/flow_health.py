from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from domain.models import FlowEdge, FlowNode, NodeKind, TemplateConfig
from domain.services.button_routing import find_duplicate_button_routes, parse_button_index

FLOW_ISSUE_NO_START = "no_start_node"
FLOW_ISSUE_MULTIPLE_STARTS = "multiple_start_nodes"
FLOW_ISSUE_DANGLING_EDGE = "dangling_edge"
FLOW_ISSUE_DUPLICATE_BUTTON_ROUTE = "duplicate_button_route"
FLOW_ISSUE_UNKNOWN_BUTTON = "edge_from_unknown_button"
FLOW_ISSUE_EDGE_INTO_START = "edge_into_start"
FLOW_ISSUE_SELF_LOOP = "self_loop"

BLOCKING_ISSUES = frozenset(
    {FLOW_ISSUE_NO_START, FLOW_ISSUE_MULTIPLE_STARTS, FLOW_ISSUE_DANGLING_EDGE}
)


@dataclass(frozen=True)
class FlowIssue:
    code: str
    message: str
    node_id: str | None = None
    edge_id: str | None = None

    @property
    def is_blocking(self) -> bool:
        return self.code in BLOCKING_ISSUES


@dataclass(frozen=True)
class FlowHealth:
    node_count: int
    edge_count: int
    issues: tuple[FlowIssue, ...]

    @property
    def is_problem(self) -> bool:
        return any(issue.is_blocking for issue in self.issues)

    @property
    def issue_codes(self) -> tuple[str, ...]:
        return tuple(sorted({issue.code for issue in self.issues}))


def check_flow(nodes: Sequence[FlowNode], edges: Sequence[FlowEdge]) -> FlowHealth:
    issues: list[FlowIssue] = []
    by_id = {node.id: node for node in nodes}

    starts = [node for node in nodes if node.kind == NodeKind.START]
    if nodes and not starts:
        issues.append(FlowIssue(FLOW_ISSUE_NO_START, "Flow has no start node"))
    if len(starts) > 1:
        issues.append(
            FlowIssue(
                FLOW_ISSUE_MULTIPLE_STARTS,
                f"Flow has {len(starts)} start nodes: {', '.join(n.id for n in starts)}",
            )
        )

    for edge in edges:
        missing = [ref for ref in (edge.source, edge.target) if ref not in by_id]
        if missing:
            issues.append(
                FlowIssue(
                    FLOW_ISSUE_DANGLING_EDGE,
                    f"Edge references missing node(s): {', '.join(missing)}",
                    edge_id=edge.id,
                )
            )
            continue
        if edge.source == edge.target:
            issues.append(
                FlowIssue(FLOW_ISSUE_SELF_LOOP, "Edge loops back to its source", edge_id=edge.id)
            )
        if by_id[edge.target].kind == NodeKind.START:
            issues.append(
                FlowIssue(FLOW_ISSUE_EDGE_INTO_START, "Start node has no input", edge_id=edge.id)
            )
        issues.extend(_button_issues(by_id[edge.source], edge))

    for node in nodes:
        if node.kind != NodeKind.TEMPLATE:
            continue
        for index, targets in sorted(find_duplicate_button_routes(node.id, edges).items()):
            issues.append(
                FlowIssue(
                    FLOW_ISSUE_DUPLICATE_BUTTON_ROUTE,
                    f"Button {index} leads to {len(targets)} nodes, the last one wins",
                    node_id=node.id,
                )
            )

    return FlowHealth(node_count=len(nodes), edge_count=len(edges), issues=tuple(issues))


def _button_issues(source: FlowNode, edge: FlowEdge) -> list[FlowIssue]:
    index = parse_button_index(edge.source_handle)
    if index is None or not isinstance(source.config, TemplateConfig):
        return []
    if any(button.index == index for button in source.config.buttons):
        return []
    return [
        FlowIssue(
            FLOW_ISSUE_UNKNOWN_BUTTON,
            f"Template has no button {index}",
            node_id=source.id,
            edge_id=edge.id,
        )
    ]
