from __future__ import annotations

import logging
from typing import TypeVar

from domain.models import (
    FlowNode,
    MessageConfig,
    NodeConfig,
    TagConfig,
    TemplateConfig,
    TemplateDetail,
    TemplateSummary,
    WaitConfig,
)
from domain.ports.template_catalog import TemplateCatalog, TemplateCatalogError
from domain.services.flow_graph_store import FlowGraphStore
from domain.services.notices import NoticeLevel, NoticeLog

logger = logging.getLogger(__name__)

ConfigT = TypeVar("ConfigT", MessageConfig, TemplateConfig, WaitConfig, TagConfig)


class EditorClosedError(RuntimeError):
    pass


class NodeConfigEditor:
    """Edits a draft copy of one node's config and writes it back on save.

    Reopening on another node drops the previous draft. Template fetches that
    resolve after the editor moved on (closed, reopened, node deleted, or a
    later template selected) are ignored.
    """

    def __init__(
        self,
        store: FlowGraphStore,
        catalog: TemplateCatalog,
        business_id: str,
        notices: NoticeLog | None = None,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._business_id = business_id
        self._notices = notices or NoticeLog()
        self._session = 0
        self._selection = 0
        self._node_id: str | None = None
        self._draft: NodeConfig | None = None
        self.templates: list[TemplateSummary] = []
        self.preview: TemplateDetail | None = None

    @property
    def node_id(self) -> str | None:
        return self._node_id

    @property
    def is_open(self) -> bool:
        return self._node_id is not None

    @property
    def draft(self) -> NodeConfig | None:
        return self._draft

    async def open(self, node: FlowNode | None) -> None:
        self.close()
        if node is None:
            return
        self._node_id = node.id
        self._draft = node.config
        if isinstance(node.config, TemplateConfig):
            await self._load_templates(self._session, node.config.template_name)

    def close(self) -> None:
        self._session += 1
        self._node_id = None
        self._draft = None
        self.templates = []
        self.preview = None

    def set_text(self, text: str) -> None:
        draft = self._require(MessageConfig)
        self._draft = draft.model_copy(update={"text": text})

    def set_tags_text(self, raw: str) -> None:
        self._require(TagConfig)
        self._draft = TagConfig(tags=raw)

    def set_seconds(self, raw: object) -> None:
        self._require(WaitConfig)
        self._draft = WaitConfig(seconds=raw)

    async def select_template(self, name: str) -> None:
        draft = self._require(TemplateConfig)
        name = name.strip()
        self._selection += 1
        selection = self._selection
        self.preview = None
        self._draft = TemplateConfig(template_name=name, placeholders=draft.placeholders)
        if not name:
            return
        detail = await self._fetch_detail(self._session, name, selection)
        if detail is None:
            return
        self._apply_detail(detail)

    def save(self) -> bool:
        if self._node_id is None or self._draft is None:
            return False
        node_id, draft = self._node_id, self._draft
        self.close()
        if self._store.node(node_id) is None:
            return False
        self._store.update_node_config(node_id, draft)
        return True

    async def _load_templates(self, session: int, preselected: str) -> None:
        selection = self._selection
        try:
            templates = list(await self._catalog.list_templates(self._business_id))
        except TemplateCatalogError as exc:
            if self._is_current(session):
                logger.warning("Template list unavailable: %s", exc)
                self._notices.push(NoticeLevel.ERROR, "Failed to fetch templates")
            return
        if not self._is_current(session):
            return
        self.templates = templates
        if not preselected:
            return
        detail = await self._fetch_detail(session, preselected, selection)
        if detail is not None:
            self._apply_detail(detail)

    async def _fetch_detail(
        self, session: int, name: str, selection: int
    ) -> TemplateDetail | None:
        try:
            detail = await self._catalog.template_detail(self._business_id, name)
        except TemplateCatalogError as exc:
            if self._is_current(session, selection):
                logger.warning("Template %r unavailable: %s", name, exc)
                self.preview = None
                self._notices.push(NoticeLevel.WARNING, f"Could not load template {name}")
            return None
        if not self._is_current(session, selection):
            logger.debug("Dropping stale template detail for %r", name)
            return None
        return detail

    def _apply_detail(self, detail: TemplateDetail) -> None:
        draft = self._require(TemplateConfig)
        self.preview = detail
        self._draft = draft.model_copy(
            update={"template_name": detail.name, "body": detail.body, "buttons": detail.buttons}
        )

    def _is_current(self, session: int, selection: int | None = None) -> bool:
        return (
            session == self._session
            and (selection is None or selection == self._selection)
            and self._node_id is not None
            and self._store.node(self._node_id) is not None
        )

    def _require(self, config_type: type[ConfigT]) -> ConfigT:
        if not isinstance(self._draft, config_type):
            opened = "nothing" if self._draft is None else self._draft.kind.value
            msg = f"Editor has {opened} open, expected {config_type.kind.value}"
            raise EditorClosedError(msg)
        return self._draft