from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from domain.models import TemplateDetail, TemplateSummary
from domain.ports.flow_storage import FlowServiceError


class TemplateCatalogError(FlowServiceError):
    pass


class TemplateCatalog(Protocol):
    async def list_templates(self, business_id: str) -> Sequence[TemplateSummary]: ...

    async def template_detail(self, business_id: str, name: str) -> TemplateDetail: ...
