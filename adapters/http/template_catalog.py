from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from domain.models import TemplateButton, TemplateDetail, TemplateSummary, index_button_payloads
from domain.ports.template_catalog import TemplateCatalog, TemplateCatalogError


class HttpTemplateCatalog(TemplateCatalog):
    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def list_templates(self, business_id: str) -> list[TemplateSummary]:
        envelope = await self._get(f"/WhatsAppTemplateFetcher/get-template/{business_id}")
        raw_templates = envelope.get("templates")
        if not isinstance(raw_templates, list):
            return []
        return [
            TemplateSummary(
                name=str(item.get("name", "")),
                language=str(item.get("language") or ""),
                placeholder_count=_to_int(item.get("placeholderCount")),
            )
            for item in raw_templates
            if isinstance(item, dict) and item.get("name")
        ]

    async def template_detail(self, business_id: str, name: str) -> TemplateDetail:
        envelope = await self._get(
            f"/WhatsAppTemplateFetcher/get-by-name/{business_id}/{quote(name, safe='')}",
            params={"includeButtons": "true"},
        )
        template = envelope.get("template")
        if not isinstance(template, dict):
            msg = f"Template {name!r} not found"
            raise TemplateCatalogError(msg)
        raw_buttons = template.get("multiButtons") or template.get("buttonParams") or []
        try:
            buttons = tuple(
                TemplateButton.model_validate(item)
                for item in index_button_payloads(raw_buttons)
                if isinstance(item, dict)
            )
        except ValidationError as exc:
            msg = f"Template {name!r} has malformed buttons"
            raise TemplateCatalogError(msg) from exc
        return TemplateDetail(
            name=str(template.get("name") or name),
            body=str(template.get("body") or template.get("bodyText") or ""),
            buttons=buttons,
        )

    async def _get(self, path: str, params: dict[str, str] | None = None) -> dict[str, Any]:
        try:
            response = await self._client.get(path, params=params)
            response.raise_for_status()
            envelope = response.json()
        except httpx.HTTPError as exc:
            msg = f"GET {path} failed: {exc}"
            raise TemplateCatalogError(msg) from exc
        except ValueError as exc:
            msg = f"GET {path} returned invalid JSON"
            raise TemplateCatalogError(msg) from exc
        if not isinstance(envelope, dict) or not envelope.get("success"):
            msg = f"GET {path} was not successful"
            raise TemplateCatalogError(msg)
        return envelope


def _to_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0
