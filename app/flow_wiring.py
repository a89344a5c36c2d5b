from __future__ import annotations

import httpx

from adapters.filesystem.flow_repository import FileSystemFlowStorage
from adapters.http.flow_storage import HttpFlowStorage
from adapters.http.http_client import create_http_client
from adapters.http.template_catalog import HttpTemplateCatalog
from app.config import AppSettings
from domain.ports.flow_storage import FlowStorage
from domain.ports.template_catalog import TemplateCatalog
from domain.services.flow_editor_session import FlowEditorSession


def build_http_client(
    settings: AppSettings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    builder = settings.builder
    return create_http_client(
        base_url=builder.api_base_url,
        token=builder.api_token,
        timeout_seconds=builder.request_timeout_seconds,
        transport=transport,
    )


def build_flow_storage(settings: AppSettings, client: httpx.AsyncClient) -> FlowStorage:
    builder = settings.builder
    if builder.storage_backend == "filesystem":
        return FileSystemFlowStorage(builder.flows_dir, builder.business_id)
    return HttpFlowStorage(client)


def build_template_catalog(settings: AppSettings, client: httpx.AsyncClient) -> TemplateCatalog:
    return HttpTemplateCatalog(client)


def build_editor_session(settings: AppSettings, client: httpx.AsyncClient) -> FlowEditorSession:
    builder = settings.builder
    if not builder.business_id:
        msg = "builder.business_id is required to open the flow editor"
        raise ValueError(msg)
    return FlowEditorSession(
        build_flow_storage(settings, client),
        build_template_catalog(settings, client),
        builder.business_id,
        default_name=builder.default_flow_name,
    )
