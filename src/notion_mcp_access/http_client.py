"""Operation executor for the Notion REST API."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Literal
from urllib.parse import quote

import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from .errors import HttpClientError

if TYPE_CHECKING:
    from .config import AccessSettings

_PATH_PARAM = re.compile(r"\{([^{}]+)\}")


class OperationParameter(BaseModel):
    """One declared parameter of an API operation."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    location: Literal["path", "query"] = Field(default="path", alias="in")
    required: bool = True
    format: str | None = Field(default=None, description="Schema format, e.g. ``uuid``")


class Operation(BaseModel):
    """Descriptor of a single Notion API operation."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    operation_id: str
    method: Literal["get", "post", "patch", "delete"] = "get"
    path: str = Field(description="Path template, e.g. ``/v1/pages/{page_id}``")
    parameters: tuple[OperationParameter, ...] = ()

    def path_parameter_names(self) -> list[str]:
        return _PATH_PARAM.findall(self.path)


class HttpResponse(BaseModel):
    """Decoded response of an executed operation."""

    status: int
    data: Any = None
    headers: dict[str, str] = Field(default_factory=dict)


def _decode(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except json.JSONDecodeError:
        return response.text


class NotionHttpClient:
    """Execute ``Operation`` descriptors through an ``httpx.AsyncClient``."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    def build_request_args(
        self, operation: Operation, params: Mapping[str, Any]
    ) -> tuple[str, dict[str, Any]]:
        """Return the URL path and request keyword arguments for ``operation``."""
        remaining = dict(params)
        path = operation.path
        for name in operation.path_parameter_names():
            if name not in remaining:
                raise ValueError(f"Missing path parameter '{name}' for {operation.operation_id}")
            value = remaining.pop(name)
            path = path.replace(f"{{{name}}}", quote(str(value), safe=""))

        kwargs: dict[str, Any] = {}
        if remaining:
            if operation.method == "get":
                kwargs["params"] = remaining
            else:
                kwargs["json"] = remaining
        return path, kwargs

    async def execute_operation(
        self, operation: Operation, params: Mapping[str, Any]
    ) -> HttpResponse:
        """Execute ``operation`` and return the decoded response.

        Raises:
            HttpClientError: For non-2xx responses and transport failures.
        """
        path, kwargs = self.build_request_args(operation, params)
        method = operation.method.upper()
        logger.debug(f"{method} {path} ({operation.operation_id})")

        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise HttpClientError(
                f"{operation.operation_id} failed: {exc}",
                status=0,
            ) from exc

        data = _decode(response)
        if response.is_error:
            message = data.get("message") if isinstance(data, dict) else None
            raise HttpClientError(
                f"{operation.operation_id} returned {response.status_code}"
                + (f": {message}" if message else ""),
                status=response.status_code,
                data=data,
            )

        return HttpResponse(
            status=response.status_code,
            data=data,
            headers=dict(response.headers),
        )


def build_headers(settings: AccessSettings) -> dict[str, str]:
    """Return request headers from the token, API version and extra headers."""
    headers: dict[str, str] = {"Notion-Version": settings.notion_version}
    if settings.notion_token:
        headers["Authorization"] = f"Bearer {settings.notion_token}"
    headers.update(settings.extra_headers)
    return headers


def build_async_client(settings: AccessSettings) -> httpx.AsyncClient:
    """Create the shared ``httpx.AsyncClient`` for Notion API calls."""
    return httpx.AsyncClient(
        base_url=settings.base_url,
        headers=build_headers(settings),
        timeout=settings.timeout_seconds,
    )
