from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from domain.models import FlowSummary


class FlowServiceError(RuntimeError):
    """An external collaborator (storage or template catalog) failed."""


class FlowStorageError(FlowServiceError):
    pass


class FlowNotFoundError(FlowStorageError):
    def __init__(self, flow_id: str) -> None:
        super().__init__(f"Flow not found: {flow_id}")
        self.flow_id = flow_id


class FlowStorage(Protocol):
    async def save(self, document: Mapping[str, Any]) -> str: ...

    async def load_by_id(self, flow_id: str) -> dict[str, Any]: ...

    async def list_by_business(self, business_id: str) -> Sequence[FlowSummary]: ...

    async def rename(self, flow_id: str, new_name: str) -> None: ...

    async def remove(self, flow_id: str) -> None: ...
