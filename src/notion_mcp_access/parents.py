"""Parent links and the page-parent resolver.

Every Notion page, database and block reports exactly one ``parent`` object. The
resolver turns that object into the id of the page that structurally contains the
resource, climbing through blocks and databases as needed.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Annotated, Any, Literal, Protocol, Union

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from .errors import ChainTooDeep, UpstreamLookupFailed
from .identifiers import normalize

DEFAULT_MAX_BLOCK_DEPTH = 32


class ResourceKind(str, Enum):
    """Kinds of resource the Notion API can retrieve by id."""

    PAGE = "page"
    DATABASE = "database"
    BLOCK = "block"


class _Link(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class PageParent(_Link):
    type: Literal["page_id"] = "page_id"
    page_id: str

    @field_validator("page_id")
    @classmethod
    def canonical_id(cls, value: str) -> str:
        return normalize(value)


class DatabaseParent(_Link):
    type: Literal["database_id"] = "database_id"
    database_id: str

    @field_validator("database_id")
    @classmethod
    def canonical_id(cls, value: str) -> str:
        return normalize(value)


class BlockParent(_Link):
    type: Literal["block_id"] = "block_id"
    block_id: str

    @field_validator("block_id")
    @classmethod
    def canonical_id(cls, value: str) -> str:
        return normalize(value)


class NoParent(_Link):
    """Top of the known chain (workspace parent, missing or unreadable parent)."""

    type: Literal["none"] = "none"


ParentLink = Union[PageParent, DatabaseParent, BlockParent, NoParent]

_PARENT_ADAPTER: TypeAdapter[Any] = TypeAdapter(
    Annotated[Union[PageParent, DatabaseParent, BlockParent], Field(discriminator="type")]
)


def parse_parent_link(payload: Mapping[str, Any] | None) -> ParentLink:
    """Return the ``ParentLink`` described by a retrieve-operation payload.

    Unknown parent types (``workspace`` and anything newer) and malformed ids map to
    ``NoParent`` so the walk stops there and denies.
    """
    if not isinstance(payload, Mapping):
        return NoParent()

    raw_parent = payload.get("parent")
    if not isinstance(raw_parent, Mapping):
        return NoParent()
    if raw_parent.get("type") not in {"page_id", "database_id", "block_id"}:
        return NoParent()

    try:
        link: ParentLink = _PARENT_ADAPTER.validate_python(dict(raw_parent))
    except ValidationError as exc:
        logger.debug(f"Unreadable parent link {raw_parent!r}: {exc.error_count()} errors")
        return NoParent()
    return link


class MetadataProvider(Protocol):
    """Capability that reports a resource's declared parent."""

    async def fetch_parent(self, resource_id: str, kind: ResourceKind) -> ParentLink:
        """Return the parent link of ``resource_id`` assuming it is of ``kind``.

        Raises:
            UpstreamLookupFailed: If the resource cannot be retrieved as ``kind``.
        """
        ...


class ParentResolver:
    """Resolve any page, database or block to the id of its containing page.

    Block and database climbs are iterative and bounded by ``max_block_depth``
    upstream lookups, so corrupted or adversarial hierarchies cannot recurse forever.
    """

    def __init__(
        self,
        provider: MetadataProvider,
        *,
        max_block_depth: int = DEFAULT_MAX_BLOCK_DEPTH,
    ) -> None:
        if max_block_depth < 1:
            raise ValueError("max_block_depth must be positive")
        self._provider = provider
        self._max_block_depth = max_block_depth

    @property
    def provider(self) -> MetadataProvider:
        return self._provider

    @property
    def max_block_depth(self) -> int:
        return self._max_block_depth

    async def fetch_parent(self, resource_id: str, kind: ResourceKind) -> ParentLink:
        try:
            return await self._provider.fetch_parent(resource_id, kind)
        except UpstreamLookupFailed:
            raise
        except Exception as exc:
            raise UpstreamLookupFailed(
                f"Failed to retrieve {kind.value} {resource_id}: {exc}",
                resource_id=resource_id,
                kind=kind.value,
            ) from exc

    async def resolve_page_parent(self, page_id: str) -> str | None:
        """Return the page one structural hop above ``page_id``, or None at the top."""
        parent_id, _ = await self.resolve_page_parent_with_trail(page_id)
        return parent_id

    async def resolve_page_parent_with_trail(
        self, page_id: str
    ) -> tuple[str | None, tuple[str, ...]]:
        """Like ``resolve_page_parent`` but also return the block and database ids crossed."""
        link = await self.fetch_parent(page_id, ResourceKind.PAGE)
        if isinstance(link, PageParent):
            return link.page_id, ()
        if isinstance(link, DatabaseParent):
            return await self._climb(link.database_id, ResourceKind.DATABASE)
        if isinstance(link, BlockParent):
            return await self._climb(link.block_id, ResourceKind.BLOCK)
        return None, ()

    async def resolve_with_trail(
        self, resource_id: str, kind: ResourceKind
    ) -> tuple[str | None, tuple[str, ...]]:
        """Resolve ``resource_id`` as ``kind``, returning the page and the ids crossed.

        For blocks and databases the trail starts with ``resource_id`` itself.
        """
        if kind is ResourceKind.PAGE:
            return await self.resolve_page_parent_with_trail(resource_id)
        return await self._climb(resource_id, kind)

    async def resolve_block_to_page(self, block_id: str) -> str | None:
        """Climb block parents until a page (or a database's page) is reached."""
        page_id, _ = await self._climb(block_id, ResourceKind.BLOCK)
        return page_id

    async def resolve_database_parent(self, database_id: str) -> str | None:
        """Return the page containing ``database_id`` (directly or through blocks)."""
        page_id, _ = await self._climb(database_id, ResourceKind.DATABASE)
        return page_id

    async def _climb(
        self, start_id: str, kind: ResourceKind
    ) -> tuple[str | None, tuple[str, ...]]:
        trail: list[str] = []
        seen: set[tuple[str, ResourceKind]] = set()
        current, current_kind = start_id, kind

        while True:
            if (current, current_kind) in seen:
                raise ChainTooDeep(
                    f"Parent chain of {start_id} loops back to {current_kind.value} {current}",
                    resource_id=start_id,
                    hops=len(trail),
                )
            if len(trail) >= self._max_block_depth:
                raise ChainTooDeep(
                    f"Parent chain of {start_id} exceeds {self._max_block_depth} hops",
                    resource_id=start_id,
                    hops=len(trail),
                )
            seen.add((current, current_kind))
            trail.append(current)

            link = await self.fetch_parent(current, current_kind)
            if isinstance(link, PageParent):
                return link.page_id, tuple(trail)
            if isinstance(link, BlockParent):
                current, current_kind = link.block_id, ResourceKind.BLOCK
                continue
            if isinstance(link, DatabaseParent) and current_kind is ResourceKind.BLOCK:
                current, current_kind = link.database_id, ResourceKind.DATABASE
                continue
            return None, tuple(trail)
