"""Remote metadata provider backed by Notion retrieve operations."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol

from .errors import UpstreamLookupFailed
from .http_client import HttpResponse, Operation, OperationParameter
from .parents import ParentLink, ResourceKind, parse_parent_link


def _retrieve(operation_id: str, collection: str, id_param: str) -> Operation:
    return Operation(
        operation_id=operation_id,
        method="get",
        path=f"/v1/{collection}/{{{id_param}}}",
        parameters=(OperationParameter(name=id_param, location="path", format="uuid"),),
    )


RETRIEVE_PAGE = _retrieve("retrieve-a-page", "pages", "page_id")
RETRIEVE_BLOCK = _retrieve("retrieve-a-block", "blocks", "block_id")
RETRIEVE_DATABASE = _retrieve("retrieve-a-database", "databases", "database_id")

RETRIEVE_OPERATIONS: dict[ResourceKind, Operation] = {
    ResourceKind.PAGE: RETRIEVE_PAGE,
    ResourceKind.BLOCK: RETRIEVE_BLOCK,
    ResourceKind.DATABASE: RETRIEVE_DATABASE,
}


class OperationExecutor(Protocol):
    """Single operation-execution capability of the HTTP transport."""

    async def execute_operation(
        self, operation: Operation, params: Mapping[str, Any]
    ) -> HttpResponse: ...


class OperationMetadataProvider:
    """Fetch parent links by executing the retrieve operation for a resource kind."""

    def __init__(self, executor: OperationExecutor) -> None:
        self._executor = executor

    async def fetch_parent(self, resource_id: str, kind: ResourceKind) -> ParentLink:
        operation = RETRIEVE_OPERATIONS[kind]
        id_param = operation.parameters[0].name
        try:
            response = await self._executor.execute_operation(operation, {id_param: resource_id})
        except Exception as exc:
            raise UpstreamLookupFailed(
                f"Error fetching {kind.value} {resource_id}: {exc}",
                resource_id=resource_id,
                kind=kind.value,
            ) from exc
        return parse_parent_link(response.data)
