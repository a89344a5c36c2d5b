from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from domain.models import (
    INPUT_HANDLE,
    OUTPUT_HANDLE,
    FlowNode,
    MessageConfig,
    NodeKind,
    TagConfig,
    TemplateConfig,
    WaitConfig,
    button_handle,
)

BLOCK_TITLES: dict[NodeKind, str] = {
    NodeKind.START: "Start",
    NodeKind.MESSAGE: "Send Message",
    NodeKind.TEMPLATE: "Send Template",
    NodeKind.WAIT: "Wait",
    NodeKind.TAG: "Set Tag",
}

BLOCK_STYLES: dict[NodeKind, str] = {
    NodeKind.START: "green",
    NodeKind.MESSAGE: "blue",
    NodeKind.TEMPLATE: "purple",
    NodeKind.WAIT: "yellow",
    NodeKind.TAG: "pink",
}

UNNAMED_BUTTON = "(unnamed)"


@dataclass(frozen=True)
class PortView:
    handle: str
    label: str = ""


@dataclass(frozen=True)
class BlockView:
    node_id: str
    kind: NodeKind
    title: str
    style: str
    body: str
    summary: list[str] = field(default_factory=list)
    input_port: PortView | None = None
    output_ports: list[PortView] = field(default_factory=list)
    deletable: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodeId": self.node_id,
            "kind": self.kind.value,
            "title": self.title,
            "style": self.style,
            "body": self.body,
            "summary": list(self.summary),
            "inputPort": self.input_port.handle if self.input_port else None,
            "outputPorts": [
                {"handle": port.handle, "label": port.label} for port in self.output_ports
            ],
            "deletable": self.deletable,
        }


@dataclass(frozen=True)
class PaletteItem:
    kind: NodeKind
    label: str


def palette() -> list[PaletteItem]:
    """Block kinds an operator can drop onto the canvas; start is seeded, not dropped."""
    return [
        PaletteItem(kind=kind, label=BLOCK_TITLES[kind])
        for kind in NodeKind
        if kind != NodeKind.START
    ]


def render_block(node: FlowNode) -> BlockView:
    config = node.config
    body = ""
    summary: list[str] = []
    outputs = [PortView(OUTPUT_HANDLE)]

    if isinstance(config, MessageConfig):
        body = config.text
    elif isinstance(config, TemplateConfig):
        body = config.body
        if config.template_name:
            summary.append(f"Template: {config.template_name}")
        outputs = [
            PortView(button_handle(button.index), button.text or UNNAMED_BUTTON)
            for button in config.buttons
        ]
    elif isinstance(config, TagConfig):
        if config.tags:
            summary.append(f"Tags: {', '.join(config.tags)}")
    elif isinstance(config, WaitConfig):
        summary.append(f"Wait for {config.seconds} seconds")

    if node.kind == NodeKind.START:
        body = "Flow begins here"

    return BlockView(
        node_id=node.id,
        kind=node.kind,
        title=BLOCK_TITLES[node.kind],
        style=BLOCK_STYLES[node.kind],
        body=body,
        summary=summary,
        input_port=None if node.kind == NodeKind.START else PortView(INPUT_HANDLE),
        output_ports=outputs,
    )


def render_graph(nodes: Sequence[FlowNode]) -> list[BlockView]:
    return [render_block(node) for node in nodes]
