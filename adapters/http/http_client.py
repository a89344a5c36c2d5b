from __future__ import annotations

import httpx


def normalize_api_base_url(url: str) -> str:
    base = str(url or "").strip().rstrip("/")
    return base if base.endswith("/api") else f"{base}/api"


def create_http_client(
    *,
    base_url: str,
    token: str | None = None,
    timeout_seconds: float = 10.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    headers = {"Content-Type": "application/json", "Accept": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return httpx.AsyncClient(
        base_url=normalize_api_base_url(base_url),
        headers=headers,
        timeout=timeout_seconds,
        transport=transport,
    )
