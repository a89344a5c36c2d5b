from __future__ import annotations

import os
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from app.config import AppSettings, BuilderSettings


def _clear_autoreply_env() -> None:
    for key in list(os.environ):
        if key.startswith("AUTOREPLY_"):
            os.environ.pop(key, None)


_clear_autoreply_env()


@pytest.fixture(autouse=True)
def clear_autoreply_env() -> Generator[None, None, None]:
    _clear_autoreply_env()
    yield
    _clear_autoreply_env()


@pytest.fixture
def builder_settings(tmp_path: Path) -> BuilderSettings:
    return BuilderSettings(
        title="Test Builder",
        api_base_url="http://flows.test/api",
        api_token="secret-token",
        business_id="biz-1",
        request_timeout_seconds=5.0,
        storage_backend="http",
        flows_dir=tmp_path / "flows",
        default_flow_name="Untitled Flow",
    )


@pytest.fixture
def builder_settings_factory(
    builder_settings: BuilderSettings,
) -> Callable[..., BuilderSettings]:
    def _factory(**overrides: object) -> BuilderSettings:
        return builder_settings.model_copy(update=overrides)

    return _factory


@pytest.fixture
def app_settings(builder_settings: BuilderSettings) -> AppSettings:
    return AppSettings(builder=builder_settings)


@pytest.fixture
def app_settings_factory(
    builder_settings_factory: Callable[..., BuilderSettings],
) -> Callable[..., AppSettings]:
    def _factory(**overrides: object) -> AppSettings:
        return AppSettings(builder=builder_settings_factory(**overrides))

    return _factory
