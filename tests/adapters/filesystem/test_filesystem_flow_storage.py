from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from adapters.filesystem.flow_repository import FileSystemFlowStorage
from adapters.filesystem.json_utils import load_json
from domain.ports.flow_storage import FlowNotFoundError, FlowStorageError
from domain.services.deserialize_flow import FlowDeserializer
from domain.services.serialize_flow import FlowSerializer
from tests.helpers.flow_fixtures import build_example_store


def test_save_load_list_rename_remove(tmp_path: Path) -> None:
    storage = FileSystemFlowStorage(tmp_path / "flows", "biz-1")
    store, _ = build_example_store()
    document = FlowSerializer().serialize(store.nodes, store.edges, name="Orders").to_payload()

    flow_id = asyncio.run(storage.save(document))

    assert asyncio.run(storage.load_by_id(flow_id)) == document
    summaries = asyncio.run(storage.list_by_business("biz-1"))
    assert [(summary.flow_id, summary.name) for summary in summaries] == [(flow_id, "Orders")]
    assert summaries[0].created_at
    assert asyncio.run(storage.list_by_business("other")) == []

    asyncio.run(storage.rename(flow_id, "Renamed"))
    assert asyncio.run(storage.load_by_id(flow_id))["name"] == "Renamed"
    assert asyncio.run(storage.list_by_business("biz-1"))[0].name == "Renamed"

    asyncio.run(storage.remove(flow_id))
    assert asyncio.run(storage.list_by_business("biz-1")) == []
    with pytest.raises(FlowNotFoundError):
        asyncio.run(storage.load_by_id(flow_id))


def test_saved_document_reloads_into_same_graph(tmp_path: Path) -> None:
    storage = FileSystemFlowStorage(tmp_path, "biz-1")
    store, _ = build_example_store()
    document = FlowSerializer().serialize(store.nodes, store.edges).to_payload()

    flow_id = asyncio.run(storage.save(document))
    loaded = FlowDeserializer().deserialize(asyncio.run(storage.load_by_id(flow_id)))

    assert loaded.edges == store.edges
    assert [node.config for node in loaded.nodes] == [node.config for node in store.nodes]


def test_every_save_creates_a_new_flow(tmp_path: Path) -> None:
    storage = FileSystemFlowStorage(tmp_path, "biz-1")

    first = asyncio.run(storage.save({"name": "A"}))
    second = asyncio.run(storage.save({"name": "A"}))

    assert first != second
    assert len(load_json(tmp_path / "index.json")["flows"]) == 2


def test_unknown_and_unsafe_ids_are_not_found(tmp_path: Path) -> None:
    storage = FileSystemFlowStorage(tmp_path, "biz-1")

    for flow_id in ("missing", "../escape", "index", ""):
        with pytest.raises(FlowNotFoundError):
            asyncio.run(storage.load_by_id(flow_id))
    with pytest.raises(FlowNotFoundError):
        asyncio.run(storage.rename("missing", "x"))
    with pytest.raises(FlowNotFoundError):
        asyncio.run(storage.remove("missing"))


def test_corrupted_flow_file_raises_storage_error(tmp_path: Path) -> None:
    storage = FileSystemFlowStorage(tmp_path, "biz-1")
    (tmp_path / "broken.json").write_text("{not json", encoding="utf-8")

    with pytest.raises(FlowStorageError):
        asyncio.run(storage.load_by_id("broken"))
