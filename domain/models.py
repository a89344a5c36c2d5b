from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, ClassVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

START_NODE_ID = "start-1"
INPUT_HANDLE = "input"
OUTPUT_HANDLE = "output"
BUTTON_HANDLE_PREFIX = "button-"
DEFAULT_FLOW_NAME = "Untitled Flow"

LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")


class NodeKind(StrEnum):
    START = "start"
    MESSAGE = "message"
    TEMPLATE = "template"
    WAIT = "wait"
    TAG = "tag"


@dataclass(frozen=True)
class Point:
    x: float
    y: float


DEFAULT_START_POSITION = Point(100, 100)


def button_handle(index: int) -> str:
    return f"{BUTTON_HANDLE_PREFIX}{index}"


class _Config(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    kind: ClassVar[NodeKind]

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class StartConfig(_Config):
    kind: ClassVar[NodeKind] = NodeKind.START


class MessageConfig(_Config):
    kind: ClassVar[NodeKind] = NodeKind.MESSAGE

    text: str = ""


class TemplateButton(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    index: int = Field(..., ge=0)
    text: str = ""

    @model_validator(mode="before")
    @classmethod
    def prefer_button_text(cls, data: Any) -> Any:
        if isinstance(data, dict) and "buttonText" in data:
            data = {**data, "text": data.get("buttonText") or data.get("text") or ""}
        return data


def index_button_payloads(raw: list[Any] | tuple[Any, ...]) -> list[Any]:
    """Fill in missing button indexes from list position."""
    buttons: list[Any] = []
    for position, item in enumerate(raw):
        if isinstance(item, dict) and item.get("index") is None:
            item = {**item, "index": position}
        buttons.append(item)
    return buttons


class TemplateConfig(_Config):
    kind: ClassVar[NodeKind] = NodeKind.TEMPLATE

    template_name: str = Field(
        default="",
        validation_alias=AliasChoices("templateName", "template_name"),
        serialization_alias="templateName",
    )
    body: str = Field(default="", validation_alias=AliasChoices("body", "bodyText"))
    buttons: tuple[TemplateButton, ...] = Field(
        default=(),
        validation_alias=AliasChoices("multiButtons", "buttons", "buttonParams"),
        serialization_alias="multiButtons",
    )
    placeholders: tuple[str, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def assign_button_indexes(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        for key in ("multiButtons", "buttons", "buttonParams"):
            if isinstance(data.get(key), list | tuple):
                data = {**data, key: index_button_payloads(data[key])}
        return data

    @field_validator("placeholders", mode="before")
    @classmethod
    def normalize_placeholders(cls, value: object) -> tuple[str, ...]:
        if not isinstance(value, list | tuple):
            return ()
        return tuple(str(item) for item in value)


class WaitConfig(_Config):
    kind: ClassVar[NodeKind] = NodeKind.WAIT

    seconds: int = 1

    @field_validator("seconds", mode="before")
    @classmethod
    def clamp_seconds(cls, value: object) -> int:
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        match = LEADING_INT_RE.match(str(value))
        if match is None:
            return 1
        return max(int(match.group(1)), 1)


class TagConfig(_Config):
    kind: ClassVar[NodeKind] = NodeKind.TAG

    tags: tuple[str, ...] = ()

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, value: object) -> tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, str):
            value = value.split(",")
        if not isinstance(value, list | tuple | set):
            return ()
        tags: list[str] = []
        for item in value:
            tag = str(item).strip()
            if tag and tag not in tags:
                tags.append(tag)
        return tuple(tags)


NodeConfig = StartConfig | MessageConfig | TemplateConfig | WaitConfig | TagConfig

CONFIG_TYPES: dict[NodeKind, type[NodeConfig]] = {
    NodeKind.START: StartConfig,
    NodeKind.MESSAGE: MessageConfig,
    NodeKind.TEMPLATE: TemplateConfig,
    NodeKind.WAIT: WaitConfig,
    NodeKind.TAG: TagConfig,
}


def default_config(kind: NodeKind) -> NodeConfig:
    return CONFIG_TYPES[kind]()


@dataclass(frozen=True)
class FlowNode:
    id: str
    kind: NodeKind
    position: Point
    config: NodeConfig
    label: str = ""

    @property
    def display_label(self) -> str:
        return self.label or self.kind.value


@dataclass(frozen=True)
class FlowEdge:
    id: str
    source: str
    target: str
    source_handle: str | None = None
    target_handle: str = INPUT_HANDLE


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class PersistedPosition(_WireModel):
    x: float
    y: float


class PersistedNodeData(_WireModel):
    label: str = ""
    config: dict[str, Any] = Field(default_factory=dict)


class PersistedNode(_WireModel):
    id: str = Field(..., min_length=1)
    type: NodeKind
    position: PersistedPosition
    data: PersistedNodeData


class PersistedEdge(_WireModel):
    id: str = Field(..., min_length=1)
    source: str
    target: str
    source_node_id: str = Field(..., alias="sourceNodeId")
    target_node_id: str = Field(..., alias="targetNodeId")
    source_handle: str = Field(default=OUTPUT_HANDLE, alias="sourceHandle")
    target_handle: str = Field(default=INPUT_HANDLE, alias="targetHandle")


class FlowDocument(_WireModel):
    name: str = DEFAULT_FLOW_NAME
    trigger_keyword: str = Field(default="", alias="triggerKeyword")
    nodes: list[PersistedNode] = Field(default_factory=list)
    edges: list[PersistedEdge] = Field(default_factory=list)

    @field_validator("nodes", mode="after")
    @classmethod
    def ensure_unique_node_ids(cls, nodes: list[PersistedNode]) -> list[PersistedNode]:
        seen: set[str] = set()
        for node in nodes:
            if node.id in seen:
                msg = f"Duplicate node id found: {node.id}"
                raise ValueError(msg)
            seen.add(node.id)
        return nodes

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


@dataclass(frozen=True)
class FlowSummary:
    flow_id: str
    name: str
    created_at: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.flow_id, "name": self.name, "createdAt": self.created_at}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> FlowSummary:
        return cls(
            flow_id=str(payload.get("id", "")),
            name=str(payload.get("name", "")),
            created_at=str(payload.get("createdAt", "")),
        )


@dataclass(frozen=True)
class TemplateSummary:
    name: str
    language: str = ""
    placeholder_count: int = 0


@dataclass(frozen=True)
class TemplateDetail:
    name: str
    body: str
    buttons: tuple[TemplateButton, ...] = ()
