from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import httpx

from domain.models import FlowSummary
from domain.ports.flow_storage import FlowNotFoundError, FlowStorage, FlowStorageError


class HttpFlowStorage(FlowStorage):
    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def save(self, document: Mapping[str, Any]) -> str:
        payload = await self._request("POST", "/autoreplyflows/save", json=dict(document))
        flow_id = (payload.get("flowId") or payload.get("id")) if isinstance(payload, dict) else None
        if not flow_id:
            msg = "Save response did not include a flow id"
            raise FlowStorageError(msg)
        return str(flow_id)

    async def load_by_id(self, flow_id: str) -> dict[str, Any]:
        payload = await self._request("GET", f"/AutoReplyFlows/{flow_id}", flow_id=flow_id)
        if not isinstance(payload, dict):
            msg = f"Flow {flow_id} payload is not an object"
            raise FlowStorageError(msg)
        return payload

    async def list_by_business(self, business_id: str) -> list[FlowSummary]:
        payload = await self._request("GET", f"/AutoReplyFlows/business/{business_id}")
        if not isinstance(payload, list):
            return []
        return [FlowSummary.from_dict(item) for item in payload if isinstance(item, dict)]

    async def rename(self, flow_id: str, new_name: str) -> None:
        await self._request(
            "PUT", f"/AutoReplyFlows/{flow_id}/rename", json={"newName": new_name}, flow_id=flow_id
        )

    async def remove(self, flow_id: str) -> None:
        await self._request("DELETE", f"/AutoReplyFlows/{flow_id}", flow_id=flow_id)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        flow_id: str | None = None,
    ) -> Any:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.HTTPError as exc:
            msg = f"{method} {path} failed: {exc}"
            raise FlowStorageError(msg) from exc
        if response.status_code == 404 and flow_id is not None:
            raise FlowNotFoundError(flow_id)
        if response.is_error:
            msg = f"{method} {path} returned {response.status_code}"
            raise FlowStorageError(msg)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            msg = f"{method} {path} returned invalid JSON"
            raise FlowStorageError(msg) from exc
