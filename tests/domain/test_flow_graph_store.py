from __future__ import annotations

import pytest

from domain.models import (
    START_NODE_ID,
    FlowEdge,
    FlowNode,
    MessageConfig,
    NodeConfig,
    NodeKind,
    Point,
    StartConfig,
    TagConfig,
    WaitConfig,
)
from domain.services.flow_graph_store import (
    ConfigKindMismatchError,
    DeleteOutcome,
    FlowGraphStore,
    NodeIdGenerator,
)


def _config(store: FlowGraphStore, node_id: str) -> NodeConfig:
    node = store.node(node_id)
    assert node is not None
    return node.config


def test_new_store_is_seeded_with_start_node() -> None:
    store = FlowGraphStore()

    assert len(store.nodes) == 1
    start = store.nodes[0]
    assert start.id == START_NODE_ID
    assert start.kind == NodeKind.START
    assert start.position == Point(100, 100)
    assert start.config == StartConfig()
    assert store.edges == ()


def test_add_node_uses_default_config_and_fresh_ids() -> None:
    store = FlowGraphStore()

    first = store.add_node(NodeKind.MESSAGE, Point(10, 20))
    second = store.add_node(NodeKind.WAIT, Point(30, 40))

    assert (first, second) == ("node_1", "node_2")
    assert store.node(first) == FlowNode(
        id=first,
        kind=NodeKind.MESSAGE,
        position=Point(10, 20),
        config=MessageConfig(),
        label="message",
    )
    assert _config(store, second) == WaitConfig(seconds=1)


def test_add_node_never_collides_with_loaded_ids() -> None:
    store = FlowGraphStore()
    store.load_graph(
        [
            FlowNode("start-1", NodeKind.START, Point(0, 0), StartConfig()),
            FlowNode("node_7", NodeKind.MESSAGE, Point(0, 0), MessageConfig(text="hi")),
            FlowNode("custom", NodeKind.TAG, Point(0, 0), TagConfig()),
        ],
        [],
    )

    node_id = store.add_node(NodeKind.MESSAGE, Point(0, 0))

    assert node_id == "node_8"
    assert len({node.id for node in store.nodes}) == 4


def test_id_generator_skips_taken_ids() -> None:
    generator = NodeIdGenerator(start=1)

    assert generator.next_id({"node_1", "node_2"}) == "node_3"
    assert generator.next_id(set()) == "node_4"


def test_update_node_config_replaces_config_wholesale() -> None:
    store = FlowGraphStore()
    node_id = store.add_node(NodeKind.TAG, Point(0, 0))

    store.update_node_config(node_id, TagConfig(tags="vip, promo"))

    assert _config(store, node_id) == TagConfig(tags=("vip", "promo"))


def test_update_node_config_on_unknown_node_is_noop() -> None:
    store = FlowGraphStore()
    before = store.nodes

    store.update_node_config("missing", MessageConfig(text="hello"))

    assert store.nodes == before


def test_update_node_config_rejects_config_of_other_kind() -> None:
    store = FlowGraphStore()
    node_id = store.add_node(NodeKind.MESSAGE, Point(0, 0))

    with pytest.raises(ConfigKindMismatchError):
        store.update_node_config(node_id, WaitConfig(seconds=5))

    assert _config(store, node_id) == MessageConfig()


def test_connect_derives_edge_id_and_keeps_handles() -> None:
    store = FlowGraphStore()
    template_id = store.add_node(NodeKind.TEMPLATE, Point(0, 0))
    message_id = store.add_node(NodeKind.MESSAGE, Point(0, 0))

    generic = store.connect(START_NODE_ID, template_id)
    button = store.connect(template_id, message_id, "button-0")

    assert generic == f"reactflow__edge-start-1-{template_id}"
    assert button == f"reactflow__edge-{template_id}button-0-{message_id}"
    assert store.edges == (
        FlowEdge(id=generic, source=START_NODE_ID, target=template_id),
        FlowEdge(id=button, source=template_id, target=message_id, source_handle="button-0"),
    )


def test_connect_with_unknown_endpoint_is_noop() -> None:
    store = FlowGraphStore()

    assert store.connect(START_NODE_ID, "ghost") is None
    assert store.connect("ghost", START_NODE_ID) is None
    assert store.edges == ()


def test_parallel_edges_and_self_loops_get_unique_ids() -> None:
    store = FlowGraphStore()
    node_id = store.add_node(NodeKind.MESSAGE, Point(0, 0))

    ids = [
        store.connect(START_NODE_ID, node_id),
        store.connect(START_NODE_ID, node_id),
        store.connect(START_NODE_ID, node_id),
        store.connect(node_id, node_id),
    ]

    assert None not in ids
    assert len(set(ids)) == 4
    assert ids[1] == f"{ids[0]}-1"
    assert ids[2] == f"{ids[0]}-2"


def test_disconnect_removes_exactly_one_edge() -> None:
    store = FlowGraphStore()
    a = store.add_node(NodeKind.MESSAGE, Point(0, 0))
    b = store.add_node(NodeKind.MESSAGE, Point(0, 0))
    keep = store.connect(START_NODE_ID, a)
    drop = store.connect(a, b)

    store.disconnect(drop)  # type: ignore[arg-type]
    store.disconnect("missing")

    assert [edge.id for edge in store.edges] == [keep]


def test_delete_node_cascades_without_reconnecting_neighbours() -> None:
    store = FlowGraphStore()
    a = store.add_node(NodeKind.MESSAGE, Point(0, 0))
    x = store.add_node(NodeKind.WAIT, Point(0, 0))
    b = store.add_node(NodeKind.TAG, Point(0, 0))
    store.connect(a, x)
    store.connect(x, b)
    untouched = store.connect(START_NODE_ID, a)

    outcome = store.delete_node(x)

    assert outcome == DeleteOutcome.DELETED
    assert store.node(x) is None
    assert store.node(a) is not None
    assert store.node(b) is not None
    assert [edge.id for edge in store.edges] == [untouched]
    assert store.edges_touching(b) == ()


def test_delete_unknown_node_reports_not_found() -> None:
    store = FlowGraphStore()

    assert store.delete_node("missing") == DeleteOutcome.NOT_FOUND
    assert store.pending_delete is None


def test_start_node_delete_requires_confirmation() -> None:
    store = FlowGraphStore()
    node_id = store.add_node(NodeKind.MESSAGE, Point(0, 0))
    store.connect(START_NODE_ID, node_id)

    outcome = store.delete_node(START_NODE_ID)

    assert outcome == DeleteOutcome.CONFIRMATION_REQUIRED
    assert store.pending_delete is not None
    assert store.pending_delete.node_id == START_NODE_ID
    assert store.node(START_NODE_ID) is not None
    assert len(store.edges) == 1

    assert store.confirm_delete() == START_NODE_ID
    assert store.pending_delete is None
    assert store.node(START_NODE_ID) is None
    assert store.edges == ()


def test_cancel_delete_leaves_graph_untouched() -> None:
    store = FlowGraphStore()
    node_id = store.add_node(NodeKind.MESSAGE, Point(0, 0))
    store.connect(START_NODE_ID, node_id)
    nodes, edges = store.nodes, store.edges

    store.delete_node(START_NODE_ID)
    store.cancel_delete()

    assert store.pending_delete is None
    assert store.nodes == nodes
    assert store.edges == edges
    assert store.confirm_delete() is None


def test_select_returns_node_or_none() -> None:
    store = FlowGraphStore()

    assert store.select(START_NODE_ID) is store.node(START_NODE_ID)
    assert store.select("missing") is None


def test_move_node_only_changes_position() -> None:
    store = FlowGraphStore()
    node_id = store.add_node(NodeKind.MESSAGE, Point(0, 0))
    store.update_node_config(node_id, MessageConfig(text="hi"))

    store.move_node(node_id, Point(50, 60))
    store.move_node("missing", Point(1, 1))

    node = store.node(node_id)
    assert node is not None
    assert node.position == Point(50, 60)
    assert node.config == MessageConfig(text="hi")


def test_readers_get_snapshots_not_internal_state() -> None:
    store = FlowGraphStore()
    snapshot = store.nodes

    store.add_node(NodeKind.MESSAGE, Point(0, 0))

    assert len(snapshot) == 1
    assert len(store.nodes) == 2


def test_load_graph_replaces_everything_and_dedups_edge_ids() -> None:
    store = FlowGraphStore()
    store.add_node(NodeKind.MESSAGE, Point(0, 0))
    store.delete_node(START_NODE_ID)

    store.load_graph(
        [
            FlowNode("start-1", NodeKind.START, Point(0, 0), StartConfig()),
            FlowNode("node_3", NodeKind.MESSAGE, Point(0, 0), MessageConfig()),
        ],
        [
            FlowEdge(id="e", source="start-1", target="node_3"),
            FlowEdge(id="e", source="start-1", target="node_3"),
        ],
    )

    assert [node.id for node in store.nodes] == ["start-1", "node_3"]
    assert [edge.id for edge in store.edges] == ["e", "e-1"]
    assert store.pending_delete is None


def test_reset_restores_seeded_graph() -> None:
    store = FlowGraphStore()
    node_id = store.add_node(NodeKind.MESSAGE, Point(0, 0))
    store.connect(START_NODE_ID, node_id)

    store.reset()

    assert [node.id for node in store.nodes] == [START_NODE_ID]
    assert store.edges == ()
