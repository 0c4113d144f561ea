from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from typing import Any, cast

import pytest

from notion_mcp_access import mcp_server
from notion_mcp_access.access import PageAccessController
from notion_mcp_access.config import AccessSettings
from notion_mcp_access.errors import HttpClientError
from notion_mcp_access.http_client import HttpResponse, Operation
from notion_mcp_access.metadata import OperationMetadataProvider
from notion_mcp_access.observer import RecordingObserver
from notion_mcp_access.parents import ParentResolver
from notion_mcp_access.roots import RootSet

ROOT = "11111111-1111-1111-1111-111111111111"
CHILD = "22222222-2222-2222-2222-222222222222"
OUTSIDE = "33333333-3333-3333-3333-333333333333"
DATABASE = "44444444-4444-4444-4444-444444444444"


class DummyAsyncClient:
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        self.kwargs = kwargs

    async def __aenter__(self) -> DummyAsyncClient:
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        return None


class DummyFastMCP:
    def __init__(self, *, name: str, version: str, instructions: str) -> None:
        self._metadata: dict[str, str] = {
            "name": name,
            "version": version,
            "instructions": instructions,
        }
        self.tool_callbacks: dict[str, Callable[..., Any]] = {}
        self.run_kwargs: dict[str, Any] | None = None

    def tool(self) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            self.tool_callbacks[func.__name__] = func
            return func

        return decorator

    async def run_async(self, **kwargs: Any) -> None:
        self.run_kwargs = kwargs


class RecordingExecutor:
    """Serves parent metadata for a small workspace and records every operation."""

    def __init__(self) -> None:
        self.parents: dict[tuple[str, str], dict[str, Any]] = {
            ("retrieve-a-page", CHILD): {"type": "page_id", "page_id": ROOT},
            ("retrieve-a-page", OUTSIDE): {"type": "workspace", "workspace": True},
            ("retrieve-a-database", DATABASE): {"type": "page_id", "page_id": CHILD},
        }
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.fail_with: HttpClientError | None = None

    async def execute_operation(
        self, operation: Operation, params: Mapping[str, Any]
    ) -> HttpResponse:
        self.calls.append((operation.operation_id, dict(params)))
        resource_id = next(iter(params.values()), None)
        parent = self.parents.get((operation.operation_id, str(resource_id)))
        if parent is not None:
            return HttpResponse(status=200, data={"id": resource_id, "parent": parent})
        if operation.operation_id.startswith("retrieve-a-"):
            raise HttpClientError("Could not find object", status=404)
        if self.fail_with is not None:
            raise self.fail_with
        return HttpResponse(status=200, data={"object": "list", "results": []})

    def upstream_calls(self) -> list[str]:
        return [name for name, _ in self.calls if not name.startswith("retrieve-a-")]


def build_tools(
    executor: RecordingExecutor, root_set: RootSet | None = None
) -> tuple[DummyFastMCP, PageAccessController]:
    controller = PageAccessController(
        root_set if root_set is not None else RootSet({ROOT}),
        ParentResolver(OperationMetadataProvider(executor)),
        observer=RecordingObserver(),
    )
    server = DummyFastMCP(name="", version="", instructions="")
    mcp_server.register_tools(server, mcp_server.GuardedOperations(controller, executor))
    return server, controller


def test_register_tools_exposes_notion_operations() -> None:
    server, _ = build_tools(RecordingExecutor())

    assert set(server.tool_callbacks) == {
        "retrieve_page",
        "retrieve_block",
        "retrieve_block_children",
        "query_database",
        "create_page",
        "clear_access_cache",
    }


def test_denied_page_never_reaches_upstream() -> None:
    """Given a page outside every root, when the tool runs, then an access
    error payload comes back and only metadata lookups were issued."""

    executor = RecordingExecutor()
    server, _ = build_tools(executor)

    result = asyncio.run(server.tool_callbacks["retrieve_block_children"](block_id=OUTSIDE))

    assert result["error"] == "access_denied"
    assert result["resource_id"] == OUTSIDE
    assert executor.upstream_calls() == []


def test_allowed_page_is_forwarded_without_empty_params() -> None:
    executor = RecordingExecutor()
    server, _ = build_tools(executor)

    result = asyncio.run(
        server.tool_callbacks["retrieve_block_children"](block_id=CHILD, page_size=10)
    )

    assert result == {"object": "list", "results": []}
    assert executor.calls[-1] == ("get-block-children", {"block_id": CHILD, "page_size": 10})


def test_database_query_is_checked_against_database_parent() -> None:
    executor = RecordingExecutor()
    server, controller = build_tools(executor)

    asyncio.run(server.tool_callbacks["query_database"](database_id=DATABASE))

    assert executor.upstream_calls() == ["post-database-query"]
    assert controller.cache.get(DATABASE) is not None


def test_create_page_is_checked_against_its_parent() -> None:
    executor = RecordingExecutor()
    server, _ = build_tools(executor)

    result = asyncio.run(
        server.tool_callbacks["create_page"](parent={"page_id": OUTSIDE}, properties={})
    )

    assert result["error"] == "access_denied"
    assert executor.upstream_calls() == []


def test_malformed_id_is_denied() -> None:
    executor = RecordingExecutor()
    server, _ = build_tools(executor)

    result = asyncio.run(server.tool_callbacks["retrieve_page"](page_id="not-an-id"))

    assert result["error"] == "access_denied"
    assert "Invalid resource id" in result["message"]
    assert executor.calls == []


def test_disabled_control_forwards_everything() -> None:
    executor = RecordingExecutor()
    server, _ = build_tools(executor, RootSet(frozenset()))

    asyncio.run(server.tool_callbacks["retrieve_block_children"](block_id=OUTSIDE))

    assert executor.upstream_calls() == ["get-block-children"]


def test_upstream_errors_propagate() -> None:
    executor = RecordingExecutor()
    executor.fail_with = HttpClientError("rate limited", status=429)
    server, _ = build_tools(executor)

    with pytest.raises(HttpClientError, match="rate limited"):
        asyncio.run(server.tool_callbacks["query_database"](database_id=DATABASE))


def test_clear_access_cache_tool() -> None:
    executor = RecordingExecutor()
    server, controller = build_tools(executor)
    asyncio.run(controller.is_page_allowed(CHILD))
    assert len(controller.cache) > 0

    result = asyncio.run(server.tool_callbacks["clear_access_cache"]())

    assert result["enabled"] is True
    assert result["cleared"] > 0
    assert len(controller.cache) == 0


def test_run_server_builds_client_and_uses_http_transport(monkeypatch: pytest.MonkeyPatch) -> None:
    """Given HTTP transport settings, when `run_server()` runs, then the
    client is built from the settings and FastMCP serves on the port."""

    mcp_module = cast(Any, mcp_server)
    created: list[DummyFastMCP] = []
    seen_settings: list[AccessSettings] = []

    def record_server(**kwargs: Any) -> DummyFastMCP:
        server = DummyFastMCP(**kwargs)
        created.append(server)
        return server

    def record_client(settings: AccessSettings) -> DummyAsyncClient:
        seen_settings.append(settings)
        return DummyAsyncClient()

    monkeypatch.setattr(mcp_module, "FastMCP", record_server)
    monkeypatch.setattr(mcp_module, "build_async_client", record_client)

    settings = AccessSettings(page_ids=[ROOT], transport="http", port=8123)
    asyncio.run(mcp_server.run_server(settings))

    assert seen_settings == [settings]
    assert len(created) == 1
    assert created[0].run_kwargs == {"transport": "http", "port": 8123}
    assert "retrieve_page" in created[0].tool_callbacks


def test_run_server_defaults_to_stdio(monkeypatch: pytest.MonkeyPatch) -> None:
    mcp_module = cast(Any, mcp_server)
    created: list[DummyFastMCP] = []

    def record_server(**kwargs: Any) -> DummyFastMCP:
        server = DummyFastMCP(**kwargs)
        created.append(server)
        return server

    monkeypatch.setattr(mcp_module, "FastMCP", record_server)
    monkeypatch.setattr(mcp_module, "build_async_client", lambda settings: DummyAsyncClient())

    asyncio.run(mcp_server.run_server(AccessSettings()))

    assert created[0].run_kwargs == {}


def test_main_passes_cli_values_to_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    mcp_module = cast(Any, mcp_server)
    captured: dict[str, Any] = {}

    async def fake_run_server(settings: AccessSettings) -> None:
        captured["settings"] = settings

    monkeypatch.setattr(mcp_module, "run_server", fake_run_server)
    monkeypatch.setattr(mcp_module, "configure_logging", lambda level: captured.update(level=level))

    mcp_server.main(
        ["--page-id", f"{ROOT},{CHILD}", "--transport", "http", "--port", "9000"]
    )

    settings = captured["settings"]
    assert settings.page_ids == [ROOT, CHILD]
    assert settings.transport == "http"
    assert settings.port == 9000
    assert captured["level"] == "INFO"


def test_run_reraises_unhandled_errors() -> None:
    async def explode() -> None:
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError, match="boom"):
        mcp_server.run(explode)
