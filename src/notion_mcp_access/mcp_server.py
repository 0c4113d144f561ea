"""MCP server entry point exposing access-controlled Notion operations."""

from __future__ import annotations

import argparse
import asyncio
import inspect
import sys
from collections.abc import Callable, Coroutine, Mapping, Sequence
from importlib import metadata
from typing import Any, cast

from loguru import logger

from .access import PageAccessController
from .config import AccessSettings
from .errors import HttpClientError, InvalidIdentifier
from .http_client import (
    NotionHttpClient,
    Operation,
    OperationParameter,
    build_async_client,
)
from .metadata import RETRIEVE_BLOCK, RETRIEVE_PAGE, OperationExecutor

FastMCP: type[Any] | None = None

__all__ = [
    "run_server",
    "run",
    "main",
    "__version__",
    "FastMCP",
    "GuardedOperations",
]

RETRIEVE_BLOCK_CHILDREN = Operation(
    operation_id="get-block-children",
    method="get",
    path="/v1/blocks/{block_id}/children",
    parameters=(
        OperationParameter(name="block_id", location="path", format="uuid"),
        OperationParameter(name="start_cursor", location="query", required=False),
        OperationParameter(name="page_size", location="query", required=False),
    ),
)
QUERY_DATABASE = Operation(
    operation_id="post-database-query",
    method="post",
    path="/v1/databases/{database_id}/query",
    parameters=(OperationParameter(name="database_id", location="path", format="uuid"),),
)
CREATE_PAGE = Operation(
    operation_id="post-page",
    method="post",
    path="/v1/pages",
)


def _resolve_version() -> str:
    """Return the installed distribution version or fall back to the project default."""

    try:
        return metadata.version("notion-mcp-access")
    except metadata.PackageNotFoundError:
        return "0.1.0"


__version__ = _resolve_version()


def _import_fastmcp() -> type[Any]:
    """Import FastMCP lazily so tests can stub the implementation."""

    global FastMCP
    if FastMCP is not None:
        return FastMCP

    try:
        import fastmcp
        from fastmcp import FastMCP as FastMCPClass

        # Disable banner for stdio transport compatibility
        fastmcp.settings.show_cli_banner = False
    except ModuleNotFoundError as exc:
        raise ImportError(
            "FastMCP is required to run the Notion MCP access server. "
            "Install `fastmcp` to proceed."
        ) from exc

    FastMCP = cast(type[Any], FastMCPClass)
    return FastMCP


def _instantiate_fastmcp(class_: type[Any], **metadata: Any) -> Any:
    signature = inspect.signature(class_.__init__)
    parameters = signature.parameters

    filtered: dict[str, Any] = {key: value for key, value in metadata.items() if key in parameters}

    if not filtered and any(
        param.kind == inspect.Parameter.VAR_KEYWORD for param in parameters.values()
    ):
        filtered = metadata

    return class_(**filtered)


def access_denied(resource_id: str, reason: str) -> dict[str, Any]:
    return {
        "error": "access_denied",
        "resource_id": resource_id,
        "message": reason,
    }


class GuardedOperations:
    """Execute Notion operations only after the access controller allows them."""

    def __init__(self, controller: PageAccessController, executor: OperationExecutor) -> None:
        self._controller = controller
        self._executor = executor

    @property
    def controller(self) -> PageAccessController:
        return self._controller

    async def guard_request(self, path: str, params: Mapping[str, Any]) -> dict[str, Any] | None:
        """Return an error payload when the request targets a resource out of scope."""
        resource_id = self._controller.extract_page_id_from_request(path, params)
        if resource_id is None:
            return None

        try:
            allowed = await self._controller.is_page_allowed(resource_id)
        except InvalidIdentifier as exc:
            return access_denied(resource_id, str(exc))

        if not allowed:
            logger.warning(f"Access denied for {path} on resource {resource_id}")
            return access_denied(
                resource_id,
                "Resource is outside the configured root pages.",
            )
        return None

    async def call(self, operation: Operation, params: Mapping[str, Any]) -> Any:
        payload = {key: value for key, value in params.items() if value is not None}
        denied = await self.guard_request(operation.path, payload)
        if denied is not None:
            return denied

        try:
            response = await self._executor.execute_operation(operation, payload)
        except HttpClientError as exc:
            logger.opt(exception=exc).error("{} failed: {}", operation.operation_id, exc)
            raise
        return response.data


def register_tools(server: Any, operations: GuardedOperations) -> None:
    """Register the Notion tools on ``server``."""

    @server.tool()  # type: ignore[misc]
    async def retrieve_page(page_id: str) -> Any:
        """Retrieve a Notion page's properties by id."""
        return await operations.call(RETRIEVE_PAGE, {"page_id": page_id})

    @server.tool()  # type: ignore[misc]
    async def retrieve_block(block_id: str) -> Any:
        """Retrieve a single block by id."""
        return await operations.call(RETRIEVE_BLOCK, {"block_id": block_id})

    @server.tool()  # type: ignore[misc]
    async def retrieve_block_children(
        block_id: str,
        start_cursor: str | None = None,
        page_size: int | None = None,
    ) -> Any:
        """List the child blocks of a page or block.

        Args:
            block_id: Page or block id
            start_cursor: Cursor from a previous response's ``next_cursor``
            page_size: Number of blocks to return (max 100)
        """
        return await operations.call(
            RETRIEVE_BLOCK_CHILDREN,
            {"block_id": block_id, "start_cursor": start_cursor, "page_size": page_size},
        )

    @server.tool()  # type: ignore[misc]
    async def query_database(
        database_id: str,
        filter: dict[str, Any] | None = None,
        sorts: list[dict[str, Any]] | None = None,
        start_cursor: str | None = None,
        page_size: int | None = None,
    ) -> Any:
        """Query a Notion database with optional filter and sorts."""
        return await operations.call(
            QUERY_DATABASE,
            {
                "database_id": database_id,
                "filter": filter,
                "sorts": sorts,
                "start_cursor": start_cursor,
                "page_size": page_size,
            },
        )

    @server.tool()  # type: ignore[misc]
    async def create_page(
        parent: dict[str, Any],
        properties: dict[str, Any],
        children: list[dict[str, Any]] | None = None,
    ) -> Any:
        """Create a page under a parent page or database.

        Args:
            parent: ``{"page_id": ...}`` or ``{"database_id": ...}``
            properties: Page properties (title for page parents)
            children: Optional initial content blocks
        """
        return await operations.call(
            CREATE_PAGE,
            {"parent": parent, "properties": properties, "children": children},
        )

    @server.tool()  # type: ignore[misc]
    async def clear_access_cache() -> dict[str, Any]:
        """Forget every cached access decision."""
        cached = len(operations.controller.cache)
        operations.controller.clear_cache()
        logger.info(f"Cleared {cached} cached access decisions")
        return {"cleared": cached, "enabled": operations.controller.is_enabled()}


async def run_server(settings: AccessSettings | None = None) -> None:
    """Run the MCP server event loop."""

    settings = settings or AccessSettings.load()
    fastmcp_class = _import_fastmcp()

    async with build_async_client(settings) as http_client:
        notion_client = NotionHttpClient(http_client)
        controller = PageAccessController.from_options(
            settings.root_options(),
            notion_client,
            max_block_depth=settings.max_block_depth,
        )
        if not controller.is_enabled():
            logger.info("No root pages configured; page access control disabled.")

        server = _instantiate_fastmcp(
            fastmcp_class,
            name="Notion MCP Access",
            version=__version__,
            instructions="Notion API tools limited to the configured root pages.",
        )
        register_tools(server, GuardedOperations(controller, notion_client))

        if settings.transport == "http":
            await server.run_async(transport="http", port=settings.port)
        else:
            await server.run_async()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="notion-mcp-access",
        description="Notion MCP server restricted to configured root pages and their children.",
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "http"],
        default=None,
        help="Transport type (default: stdio)",
    )
    parser.add_argument("--port", type=int, default=None, help="Port for the HTTP transport")
    parser.add_argument(
        "--page-id",
        dest="page_ids",
        default=None,
        help="Restrict access to these pages and their children (comma-separated ids)",
    )
    parser.add_argument(
        "--page-url",
        dest="page_urls",
        default=None,
        help="Restrict access to these pages and their children (comma-separated URLs)",
    )
    parser.add_argument("--config", dest="config_path", default=None, help="YAML settings file")
    parser.add_argument(
        "--max-block-depth",
        type=int,
        default=None,
        help="Maximum block/database hops when resolving a parent page",
    )
    parser.add_argument("--log-level", default=None, help="Log level (default: INFO)")
    return parser


def configure_logging(level: str) -> None:
    """Send logs to stderr; stdout carries the stdio transport."""
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


def run(main: Callable[[], Coroutine[Any, Any, None]] | None = None) -> None:
    """Synchronous helper for CLI entry points."""
    entry = main or run_server
    try:
        asyncio.run(entry())
    except KeyboardInterrupt:
        logger.warning("MCP server interrupted by user.")
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unhandled MCP server failure: {}", exc)
        raise


def main(argv: Sequence[str] | None = None) -> None:
    args = vars(build_parser().parse_args(argv))
    config_path = args.pop("config_path")
    settings = AccessSettings.load(cli=args, config_path=config_path)
    configure_logging(settings.log_level)
    run(lambda: run_server(settings))
