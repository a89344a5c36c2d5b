from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from domain.models import DEFAULT_FLOW_NAME, FlowDocument
from domain.ports.flow_storage import FlowServiceError, FlowStorage
from domain.ports.template_catalog import TemplateCatalog
from domain.services.deserialize_flow import FlowDeserializer, LoadedFlow
from domain.services.flow_graph_store import FlowGraphStore
from domain.services.node_config_editor import NodeConfigEditor
from domain.services.notices import NoticeLevel, NoticeLog
from domain.services.serialize_flow import FlowSerializer

logger = logging.getLogger(__name__)


class EditorBusyError(RuntimeError):
    def __init__(self, action: str, running: str) -> None:
        super().__init__(f"Cannot {action} while {running} is in progress")
        self.action = action
        self.running = running


class FlowEditorSession:
    """One editing session: a live graph, its node editor and flow metadata.

    Save and load are mutually exclusive; starting one while the other is in
    flight raises ``EditorBusyError``. Service failures leave the graph as it
    was, add an error notice and propagate as ``FlowServiceError``.
    """

    def __init__(
        self,
        storage: FlowStorage,
        catalog: TemplateCatalog,
        business_id: str,
        *,
        store: FlowGraphStore | None = None,
        default_name: str = DEFAULT_FLOW_NAME,
    ) -> None:
        self.storage = storage
        self.business_id = business_id
        self.store = store or FlowGraphStore()
        self.notices = NoticeLog()
        self.editor = NodeConfigEditor(self.store, catalog, business_id, self.notices)
        self.serializer = FlowSerializer(default_name)
        self.deserializer = FlowDeserializer()
        self.flow_id: str | None = None
        self.name = ""
        self.trigger_keyword = ""
        self._running: str | None = None

    @property
    def busy(self) -> bool:
        return self._running is not None

    def build_document(self) -> FlowDocument:
        return self.serializer.serialize(
            self.store.nodes,
            self.store.edges,
            name=self.name,
            trigger_keyword=self.trigger_keyword,
        )

    async def save(self) -> str:
        with self._exclusive("save"):
            document = self.build_document()
            try:
                flow_id = await self.storage.save(document.to_payload())
            except FlowServiceError:
                logger.exception("Saving flow %r failed", document.name)
                self.notices.push(NoticeLevel.ERROR, "Failed to save flow")
                raise
        self.flow_id = flow_id
        logger.info(
            "Saved flow %s (%d nodes, %d edges)",
            flow_id,
            len(document.nodes),
            len(document.edges),
        )
        self.notices.push(NoticeLevel.SUCCESS, "Flow saved")
        return flow_id

    async def load(self, flow_id: str) -> LoadedFlow:
        with self._exclusive("load"):
            try:
                payload = await self.storage.load_by_id(flow_id)
            except FlowServiceError:
                logger.exception("Loading flow %s failed", flow_id)
                self.notices.push(NoticeLevel.ERROR, "Error loading flow")
                raise
            loaded = self.deserializer.deserialize(payload)
            self.editor.close()
            self.store.load_graph(loaded.nodes, loaded.edges)
        self.flow_id = flow_id
        self.name = loaded.name
        self.trigger_keyword = loaded.trigger_keyword
        self.notices.push(NoticeLevel.SUCCESS, "Flow loaded")
        return loaded

    def new_flow(self) -> None:
        self.editor.close()
        self.store.reset()
        self.flow_id = None
        self.name = ""
        self.trigger_keyword = ""

    @contextmanager
    def _exclusive(self, action: str) -> Iterator[None]:
        if self._running is not None:
            raise EditorBusyError(action, self._running)
        self._running = action
        try:
            yield
        finally:
            self._running = None
