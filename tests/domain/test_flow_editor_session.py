from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

import pytest

from domain.models import START_NODE_ID, MessageConfig, NodeKind, Point
from domain.ports.flow_storage import FlowNotFoundError, FlowStorageError
from domain.services.flow_editor_session import EditorBusyError, FlowEditorSession
from domain.services.notices import NoticeLevel
from tests.helpers.flow_fixtures import (
    FakeFlowStorage,
    FakeTemplateCatalog,
    build_example_store,
    load_flow_payload,
    storage_error,
)


class _SlowStorage(FakeFlowStorage):
    def __init__(self) -> None:
        super().__init__()
        self.release = asyncio.Event()
        self.started = asyncio.Event()

    async def save(self, document: Mapping[str, Any]) -> str:
        self.started.set()
        await self.release.wait()
        return await super().save(document)


def _session(storage: FakeFlowStorage | None = None) -> FlowEditorSession:
    return FlowEditorSession(storage or FakeFlowStorage(), FakeTemplateCatalog(), "biz-1")


def _messages(session: FlowEditorSession) -> list[tuple[NoticeLevel, str]]:
    return [(notice.level, notice.message) for notice in session.notices.drain()]


def test_save_then_load_restores_graph_and_metadata() -> None:
    storage = FakeFlowStorage()
    store, ids = build_example_store()
    session = FlowEditorSession(storage, FakeTemplateCatalog(), "biz-1", store=store)
    session.name = "Orders"
    session.trigger_keyword = "order, track "

    flow_id = asyncio.run(session.save())

    assert flow_id == "flow-1"
    assert session.flow_id == "flow-1"
    assert storage.saved[0]["triggerKeyword"] == "order, track"
    assert _messages(session) == [(NoticeLevel.SUCCESS, "Flow saved")]

    fresh = _session(storage)
    loaded = asyncio.run(fresh.load(flow_id))

    assert loaded.name == "Orders"
    assert fresh.name == "Orders"
    assert fresh.trigger_keyword == "order, track"
    assert fresh.flow_id == flow_id
    assert [node.id for node in fresh.store.nodes] == [node.id for node in store.nodes]
    assert fresh.store.edges == store.edges
    assert _messages(fresh) == [(NoticeLevel.SUCCESS, "Flow loaded")]
    assert ids["template"] in {node.id for node in fresh.store.nodes}


def test_blank_name_is_saved_as_default() -> None:
    storage = FakeFlowStorage()
    session = FlowEditorSession(
        storage, FakeTemplateCatalog(), "biz-1", default_name="Untitled Flow"
    )

    asyncio.run(session.save())

    assert storage.saved[0]["name"] == "Untitled Flow"
    assert storage.saved[0]["triggerKeyword"] == ""


def test_failed_save_leaves_graph_untouched_and_notifies() -> None:
    storage = FakeFlowStorage()
    storage.fail_with = storage_error()
    session = _session(storage)
    node_id = session.store.add_node(NodeKind.MESSAGE, Point(0, 0))
    nodes, edges = session.store.nodes, session.store.edges

    with pytest.raises(FlowStorageError):
        asyncio.run(session.save())

    assert session.store.nodes == nodes
    assert session.store.edges == edges
    assert session.flow_id is None
    assert session.store.node(node_id) is not None
    assert not session.busy
    assert _messages(session) == [(NoticeLevel.ERROR, "Failed to save flow")]

    storage.fail_with = None
    assert asyncio.run(session.save()) == "flow-1"


def test_failed_load_keeps_current_graph() -> None:
    session = _session()
    node_id = session.store.add_node(NodeKind.MESSAGE, Point(0, 0))

    with pytest.raises(FlowNotFoundError):
        asyncio.run(session.load("missing"))

    assert session.store.node(node_id) is not None
    assert _messages(session) == [(NoticeLevel.ERROR, "Error loading flow")]


def test_load_replaces_whole_graph_and_closes_editor() -> None:
    storage = FakeFlowStorage()
    storage.documents["stored"] = load_flow_payload("welcome_storage.json")
    session = _session(storage)
    stale = session.store.add_node(NodeKind.MESSAGE, Point(0, 0))
    asyncio.run(session.editor.open(session.store.select(stale)))

    asyncio.run(session.load("stored"))

    assert not session.editor.is_open
    assert [node.id for node in session.store.nodes] == ["start-1", "node_1", "node_2", "node_3"]
    assert len(session.store.edges) == 3
    assert session.store.add_node(NodeKind.TAG, Point(0, 0)) == "node_4"


def test_save_and_load_are_mutually_exclusive() -> None:
    async def scenario() -> tuple[FlowEditorSession, str]:
        storage = _SlowStorage()
        session = _session(storage)
        saving = asyncio.create_task(session.save())
        await storage.started.wait()
        assert session.busy
        with pytest.raises(EditorBusyError) as busy:
            await session.load("flow-1")
        assert busy.value.running == "save"
        with pytest.raises(EditorBusyError):
            await session.save()
        storage.release.set()
        return session, await saving

    session, flow_id = asyncio.run(scenario())

    assert flow_id == "flow-1"
    assert not session.busy


def test_new_flow_resets_state() -> None:
    session = _session()
    session.flow_id = "flow-9"
    session.name = "Old"
    session.trigger_keyword = "old"
    node_id = session.store.add_node(NodeKind.MESSAGE, Point(0, 0))
    session.store.update_node_config(node_id, MessageConfig(text="x"))

    session.new_flow()

    assert session.flow_id is None
    assert (session.name, session.trigger_keyword) == ("", "")
    assert [node.id for node in session.store.nodes] == [START_NODE_ID]
