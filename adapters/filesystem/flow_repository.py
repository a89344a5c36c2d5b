from __future__ import annotations

import uuid
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from filelock import FileLock

from adapters.filesystem.json_utils import load_json, write_json_atomic
from domain.models import FlowSummary
from domain.ports.flow_storage import FlowNotFoundError, FlowStorage, FlowStorageError

INDEX_FILE_NAME = "index.json"


class FileSystemFlowStorage(FlowStorage):
    """Keeps one JSON file per flow plus an index of summaries.

    Each ``save`` stores a new flow, the same way the storage service's save
    endpoint does.
    """

    def __init__(self, directory: Path, business_id: str) -> None:
        self._directory = directory
        self._business_id = business_id

    async def save(self, document: Mapping[str, Any]) -> str:
        flow_id = uuid.uuid4().hex
        created_at = datetime.now(UTC).isoformat()
        with self._lock():
            write_json_atomic(self._flow_path(flow_id), dict(document))
            entries = self._load_index()
            entries.append(
                {
                    "id": flow_id,
                    "name": str(document.get("name") or ""),
                    "createdAt": created_at,
                    "businessId": self._business_id,
                }
            )
            self._write_index(entries)
        return flow_id

    async def load_by_id(self, flow_id: str) -> dict[str, Any]:
        path = self._flow_path(flow_id)
        try:
            return load_json(path)
        except FileNotFoundError as exc:
            raise FlowNotFoundError(flow_id) from exc
        except ValueError as exc:
            msg = f"Flow {flow_id} is not valid JSON"
            raise FlowStorageError(msg) from exc

    async def list_by_business(self, business_id: str) -> list[FlowSummary]:
        return [
            FlowSummary.from_dict(entry)
            for entry in self._load_index()
            if str(entry.get("businessId", "")) == business_id
        ]

    async def rename(self, flow_id: str, new_name: str) -> None:
        with self._lock():
            entries = self._load_index()
            entry = self._find(entries, flow_id)
            document = load_json(self._flow_path(flow_id))
            document["name"] = new_name
            entry["name"] = new_name
            write_json_atomic(self._flow_path(flow_id), document)
            self._write_index(entries)

    async def remove(self, flow_id: str) -> None:
        with self._lock():
            entries = self._load_index()
            entry = self._find(entries, flow_id)
            entries.remove(entry)
            self._flow_path(flow_id).unlink(missing_ok=True)
            self._write_index(entries)

    def _find(self, entries: list[dict[str, Any]], flow_id: str) -> dict[str, Any]:
        for entry in entries:
            if entry.get("id") == flow_id:
                return entry
        raise FlowNotFoundError(flow_id)

    def _flow_path(self, flow_id: str) -> Path:
        if not flow_id or Path(flow_id).name != flow_id or flow_id == Path(INDEX_FILE_NAME).stem:
            raise FlowNotFoundError(flow_id)
        return self._directory / f"{flow_id}.json"

    def _load_index(self) -> list[dict[str, Any]]:
        path = self._directory / INDEX_FILE_NAME
        if not path.exists():
            return []
        flows = load_json(path).get("flows", [])
        if not isinstance(flows, list):
            return []
        return [entry for entry in flows if isinstance(entry, dict)]

    def _write_index(self, entries: list[dict[str, Any]]) -> None:
        write_json_atomic(self._directory / INDEX_FILE_NAME, {"flows": entries})

    def _lock(self) -> FileLock:
        self._directory.mkdir(parents=True, exist_ok=True)
        return FileLock(str(self._directory / f"{INDEX_FILE_NAME}.lock"))
