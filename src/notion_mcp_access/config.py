"""Runtime settings for the Notion MCP access server.

Settings are layered: an optional YAML file (read with OmegaConf), then environment
variables, then command line values. Later layers win.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal

from omegaconf import OmegaConf
from pydantic import BaseModel, Field, field_validator

from .parents import DEFAULT_MAX_BLOCK_DEPTH
from .roots import RootSetOptions, split_csv

CONFIG_PATH_ENV = "NOTION_MCP_CONFIG"

# Environment variable -> settings field
ENV_FIELDS: dict[str, str] = {
    "NOTION_TOKEN": "notion_token",
    "NOTION_VERSION": "notion_version",
    "BASE_URL": "base_url",
}
HEADERS_ENV = "OPENAPI_MCP_HEADERS"


def _load_config_file(location: Path) -> dict[str, Any]:
    if not location.exists():
        raise FileNotFoundError(f"Config file not found: {location}")
    raw_config = OmegaConf.load(location)
    config = OmegaConf.to_container(raw_config, resolve=True)
    if not isinstance(config, dict):
        raise ValueError("Config file must contain a mapping of settings.")
    return {str(key).lower(): value for key, value in config.items()}


def _parse_headers(raw: str) -> dict[str, str]:
    try:
        headers = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"{HEADERS_ENV} must be a JSON object: {exc}") from exc
    if not isinstance(headers, dict):
        raise ValueError(f"{HEADERS_ENV} must be a JSON object")
    return {str(key): str(value) for key, value in headers.items()}


class AccessSettings(BaseModel):
    """Validated server settings."""

    notion_token: str | None = Field(default=None, description="Notion integration token")
    notion_version: str = Field(default="2022-06-28", description="Notion-Version header")
    base_url: str = Field(default="https://api.notion.com", description="Notion API base URL")
    extra_headers: dict[str, str] = Field(
        default_factory=dict, description=f"Headers from {HEADERS_ENV}"
    )
    page_ids: list[str] = Field(default_factory=list, description="Root page ids")
    page_urls: list[str] = Field(default_factory=list, description="Root page URLs")
    max_block_depth: int = Field(default=DEFAULT_MAX_BLOCK_DEPTH, ge=1, le=256)
    timeout_seconds: float = Field(default=30.0, ge=1.0, le=300.0)
    transport: Literal["stdio", "http"] = "stdio"
    port: int = Field(default=3000, ge=1, le=65535)
    log_level: str = "INFO"

    @field_validator("page_ids", "page_urls", mode="before")
    @classmethod
    def split_entries(cls, value: object) -> list[str]:
        if value is None or isinstance(value, (str, list, tuple)):
            return split_csv(value)  # type: ignore[arg-type]
        raise TypeError("expected a comma-separated string or a list of strings")

    @field_validator("transport", mode="before")
    @classmethod
    def lower_transport(cls, value: object) -> object:
        return value.lower() if isinstance(value, str) else value

    @field_validator("log_level")
    @classmethod
    def upper_log_level(cls, value: str) -> str:
        return value.upper()

    def root_options(self) -> RootSetOptions:
        return RootSetOptions(page_ids=self.page_ids, page_urls=self.page_urls)

    @classmethod
    def load(
        cls,
        cli: Mapping[str, Any] | None = None,
        config_path: Path | str | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> AccessSettings:
        """Build settings from a config file, the environment and CLI values.

        Root page environment variables are not read here; the root set builder
        applies them only when no explicit root page is configured.
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}

        location = config_path or env.get(CONFIG_PATH_ENV)
        if location:
            values.update(_load_config_file(Path(location).expanduser()))

        for env_key, field_name in ENV_FIELDS.items():
            if env.get(env_key):
                values[field_name] = env[env_key]
        if env.get(HEADERS_ENV):
            values["extra_headers"] = {
                **values.get("extra_headers", {}),
                **_parse_headers(env[HEADERS_ENV]),
            }

        for key, value in (cli or {}).items():
            if value is None or value == [] or value == "":
                continue
            values[key] = value

        return cls.model_validate(values)
