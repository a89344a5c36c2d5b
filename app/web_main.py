from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, cast

import httpx
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel, Field

from app.config import AppSettings
from app.flow_wiring import build_editor_session, build_http_client
from domain.models import FlowNode, NodeKind, Point
from domain.ports.flow_storage import FlowNotFoundError, FlowServiceError
from domain.services.flow_editor_session import EditorBusyError, FlowEditorSession
from domain.services.flow_graph_store import DeleteOutcome
from domain.services.flow_health import check_flow
from domain.services.node_config_editor import EditorClosedError
from domain.services.render_blocks import palette, render_block, render_graph

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EditorContext:
    settings: AppSettings
    client: httpx.AsyncClient
    session: FlowEditorSession


class NodeCreate(BaseModel):
    kind: NodeKind
    x: float = 0.0
    y: float = 0.0


class NodeMove(BaseModel):
    x: float
    y: float


class EdgeCreate(BaseModel):
    source: str
    target: str
    source_handle: str | None = Field(default=None, alias="sourceHandle")


class FlowMeta(BaseModel):
    name: str = ""
    trigger_keyword: str = Field(default="", alias="triggerKeyword")


class EditorFields(BaseModel):
    text: str | None = None
    tags: str | None = None
    seconds: int | str | None = None
    template_name: str | None = Field(default=None, alias="templateName")


class FlowRename(BaseModel):
    new_name: str = Field(..., min_length=1, alias="newName")


def create_app(
    settings: AppSettings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    client = build_http_client(settings, transport)
    context = EditorContext(
        settings=settings,
        client=client,
        session=build_editor_session(settings, client),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await client.aclose()

    app = FastAPI(
        title=settings.builder.title,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
    )
    app.state.context = context

    @app.get("/api/editor/graph")
    def graph(context: EditorContext = Depends(get_context)) -> dict[str, Any]:
        return graph_view(context.session)

    @app.get("/api/editor/palette")
    def block_palette() -> list[dict[str, str]]:
        return [{"kind": item.kind.value, "label": item.label} for item in palette()]

    @app.put("/api/editor/meta")
    def update_meta(
        meta: FlowMeta, context: EditorContext = Depends(get_context)
    ) -> dict[str, Any]:
        context.session.name = meta.name
        context.session.trigger_keyword = meta.trigger_keyword
        return graph_view(context.session)

    @app.post("/api/editor/new")
    def new_flow(context: EditorContext = Depends(get_context)) -> dict[str, Any]:
        context.session.new_flow()
        return graph_view(context.session)

    @app.post("/api/editor/nodes", status_code=201)
    def add_node(
        payload: NodeCreate, context: EditorContext = Depends(get_context)
    ) -> dict[str, Any]:
        store = context.session.store
        node_id = store.add_node(payload.kind, Point(payload.x, payload.y))
        return render_block(require_node(context.session, node_id)).to_dict()

    @app.get("/api/editor/nodes/{node_id}/block")
    def node_block(
        node_id: str, context: EditorContext = Depends(get_context)
    ) -> dict[str, Any]:
        return render_block(require_node(context.session, node_id)).to_dict()

    @app.put("/api/editor/nodes/{node_id}/position")
    def move_node(
        node_id: str, payload: NodeMove, context: EditorContext = Depends(get_context)
    ) -> dict[str, Any]:
        require_node(context.session, node_id)
        context.session.store.move_node(node_id, Point(payload.x, payload.y))
        return render_block(require_node(context.session, node_id)).to_dict()

    @app.delete("/api/editor/nodes/{node_id}")
    def delete_node(
        node_id: str, context: EditorContext = Depends(get_context)
    ) -> dict[str, Any]:
        outcome = context.session.store.delete_node(node_id)
        if outcome == DeleteOutcome.NOT_FOUND:
            raise HTTPException(status_code=404, detail="Node not found")
        if outcome == DeleteOutcome.DELETED and context.session.editor.node_id == node_id:
            context.session.editor.close()
        pending = node_id if outcome == DeleteOutcome.CONFIRMATION_REQUIRED else None
        return {"outcome": outcome.value, "pendingDelete": pending}

    @app.post("/api/editor/pending-delete/confirm")
    def confirm_delete(context: EditorContext = Depends(get_context)) -> dict[str, Any]:
        deleted = context.session.store.confirm_delete()
        if deleted is None:
            raise HTTPException(status_code=409, detail="No delete awaiting confirmation")
        if context.session.editor.node_id == deleted:
            context.session.editor.close()
        return {"deleted": deleted}

    @app.post("/api/editor/pending-delete/cancel")
    def cancel_delete(context: EditorContext = Depends(get_context)) -> dict[str, Any]:
        context.session.store.cancel_delete()
        return {"pendingDelete": None}

    @app.post("/api/editor/edges", status_code=201)
    def connect(
        payload: EdgeCreate, context: EditorContext = Depends(get_context)
    ) -> dict[str, Any]:
        edge_id = context.session.store.connect(
            payload.source, payload.target, payload.source_handle
        )
        if edge_id is None:
            raise HTTPException(status_code=404, detail="Source or target node not found")
        return {"id": edge_id}

    @app.delete("/api/editor/edges/{edge_id}", status_code=204)
    def disconnect(edge_id: str, context: EditorContext = Depends(get_context)) -> None:
        context.session.store.disconnect(edge_id)

    @app.post("/api/editor/nodes/{node_id}/open")
    async def open_node_editor(
        node_id: str, context: EditorContext = Depends(get_context)
    ) -> dict[str, Any]:
        node = require_node(context.session, node_id)
        await context.session.editor.open(node)
        return editor_view(context.session)

    @app.get("/api/editor/node-editor")
    def node_editor(context: EditorContext = Depends(get_context)) -> dict[str, Any]:
        return editor_view(context.session)

    @app.put("/api/editor/node-editor")
    async def edit_node_fields(
        fields: EditorFields, context: EditorContext = Depends(get_context)
    ) -> dict[str, Any]:
        editor = context.session.editor
        try:
            if fields.text is not None:
                editor.set_text(fields.text)
            if fields.tags is not None:
                editor.set_tags_text(fields.tags)
            if fields.seconds is not None:
                editor.set_seconds(fields.seconds)
            if fields.template_name is not None:
                await editor.select_template(fields.template_name)
        except EditorClosedError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return editor_view(context.session)

    @app.post("/api/editor/node-editor/save")
    def save_node_editor(context: EditorContext = Depends(get_context)) -> dict[str, Any]:
        editor = context.session.editor
        node_id = editor.node_id
        if node_id is None:
            raise HTTPException(status_code=409, detail="Node editor is not open")
        if not editor.save():
            raise HTTPException(status_code=404, detail="Node was deleted while editing")
        return render_block(require_node(context.session, node_id)).to_dict()

    @app.post("/api/editor/node-editor/close")
    def close_node_editor(context: EditorContext = Depends(get_context)) -> dict[str, Any]:
        context.session.editor.close()
        return editor_view(context.session)

    @app.post("/api/editor/save")
    async def save_flow(context: EditorContext = Depends(get_context)) -> dict[str, Any]:
        try:
            flow_id = await context.session.save()
        except EditorBusyError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except FlowServiceError as exc:
            raise HTTPException(status_code=502, detail="Failed to save flow") from exc
        return {"flowId": flow_id}

    @app.post("/api/editor/load/{flow_id}")
    async def load_flow(
        flow_id: str, context: EditorContext = Depends(get_context)
    ) -> dict[str, Any]:
        try:
            await context.session.load(flow_id)
        except EditorBusyError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except FlowNotFoundError as exc:
            raise HTTPException(status_code=404, detail="Flow not found") from exc
        except FlowServiceError as exc:
            raise HTTPException(status_code=502, detail="Error loading flow") from exc
        return graph_view(context.session)

    @app.get("/api/editor/notices")
    def notices(context: EditorContext = Depends(get_context)) -> list[dict[str, str]]:
        return [notice.to_dict() for notice in context.session.notices.drain()]

    @app.get("/api/flows")
    async def list_flows(
        context: EditorContext = Depends(get_context),
    ) -> list[dict[str, Any]]:
        session = context.session
        try:
            flows = await session.storage.list_by_business(session.business_id)
        except FlowServiceError as exc:
            raise HTTPException(status_code=502, detail="Failed to load flows") from exc
        return [flow.to_dict() for flow in flows]

    @app.put("/api/flows/{flow_id}/rename", status_code=204)
    async def rename_flow(
        flow_id: str, payload: FlowRename, context: EditorContext = Depends(get_context)
    ) -> None:
        new_name = payload.new_name.strip()
        if not new_name:
            raise HTTPException(status_code=400, detail="newName is required")
        await call_storage(context.session.storage.rename(flow_id, new_name), flow_id)
        if context.session.flow_id == flow_id:
            context.session.name = new_name

    @app.delete("/api/flows/{flow_id}", status_code=204)
    async def delete_flow(flow_id: str, context: EditorContext = Depends(get_context)) -> None:
        await call_storage(context.session.storage.remove(flow_id), flow_id)

    return app


def get_context(request: Request) -> EditorContext:
    return cast(EditorContext, request.app.state.context)


def require_node(session: FlowEditorSession, node_id: str) -> FlowNode:
    node = session.store.select(node_id)
    if node is None:
        raise HTTPException(status_code=404, detail="Node not found")
    return node


async def call_storage(call: Any, flow_id: str) -> None:
    try:
        await call
    except FlowNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Flow not found") from exc
    except FlowServiceError as exc:
        logger.warning("Flow storage call for %s failed: %s", flow_id, exc)
        raise HTTPException(status_code=502, detail="Flow storage unavailable") from exc


def graph_view(session: FlowEditorSession) -> dict[str, Any]:
    document = session.build_document().to_payload()
    health = check_flow(session.store.nodes, session.store.edges)
    pending = session.store.pending_delete
    return {
        "flowId": session.flow_id,
        **document,
        "blocks": [block.to_dict() for block in render_graph(session.store.nodes)],
        "pendingDelete": pending.node_id if pending else None,
        "issues": [
            {
                "code": issue.code,
                "message": issue.message,
                "nodeId": issue.node_id,
                "edgeId": issue.edge_id,
            }
            for issue in health.issues
        ],
    }


def editor_view(session: FlowEditorSession) -> dict[str, Any]:
    editor = session.editor
    draft = editor.draft
    preview = editor.preview
    return {
        "nodeId": editor.node_id,
        "kind": draft.kind.value if draft is not None else None,
        "draft": draft.to_payload() if draft is not None else None,
        "templates": [
            {
                "name": template.name,
                "language": template.language,
                "placeholderCount": template.placeholder_count,
            }
            for template in editor.templates
        ],
        "preview": (
            {
                "name": preview.name,
                "body": preview.body,
                "buttons": [button.model_dump() for button in preview.buttons],
            }
            if preview is not None
            else None
        ),
    }
