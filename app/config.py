from __future__ import annotations

import os
from pathlib import Path
from typing import ClassVar, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import PydanticBaseSettingsSource, YamlConfigSettingsSource

from adapters.http.http_client import normalize_api_base_url
from domain.models import DEFAULT_FLOW_NAME

DEFAULT_CONFIG_PATH = Path("config/autoreply/app.yaml")
DEFAULT_API_BASE_URL = "http://localhost:5000/api"

StorageBackend = Literal["http", "filesystem"]


class BuilderSettings(BaseModel):
    title: str = "Auto-Reply Flow Builder"
    api_base_url: str = DEFAULT_API_BASE_URL
    api_token: str | None = None
    business_id: str = ""
    request_timeout_seconds: float = Field(default=10.0, gt=0)
    storage_backend: StorageBackend = "http"
    flows_dir: Path = Path("data/flows")
    default_flow_name: str = DEFAULT_FLOW_NAME

    @field_validator("api_base_url", mode="before")
    @classmethod
    def normalize_base_url(cls, value: object) -> str:
        return normalize_api_base_url(str(value or "").strip() or DEFAULT_API_BASE_URL)

    @field_validator("storage_backend", mode="before")
    @classmethod
    def normalize_storage_backend(cls, value: object) -> str:
        return str(value).strip().lower() if value else "http"

    @field_validator("default_flow_name", mode="before")
    @classmethod
    def normalize_default_flow_name(cls, value: object) -> str:
        return str(value or "").strip() or DEFAULT_FLOW_NAME


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="AUTOREPLY_", env_nested_delimiter="__")

    builder: BuilderSettings = BuilderSettings()

    _yaml_path: ClassVar[Path | None] = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        sources: list[PydanticBaseSettingsSource] = [
            init_settings,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        ]
        if cls._yaml_path:
            sources.append(YamlConfigSettingsSource(settings_cls, yaml_file=cls._yaml_path))
        return tuple(sources)


def load_settings(config_path: Path | None = None) -> AppSettings:
    env_path = os.getenv("AUTOREPLY_CONFIG_PATH")
    resolved_path: Path | None = None

    if config_path is not None:
        resolved_path = config_path
    elif env_path:
        resolved_path = Path(env_path)
    elif DEFAULT_CONFIG_PATH.exists():
        resolved_path = DEFAULT_CONFIG_PATH

    previous = AppSettings._yaml_path
    try:
        if resolved_path is not None:
            if not resolved_path.exists():
                msg = f"Config file not found: {resolved_path}"
                raise FileNotFoundError(msg)
            AppSettings._yaml_path = resolved_path
        return AppSettings()
    finally:
        AppSettings._yaml_path = previous
