"""Page access control for Notion resources.

``PageAccessController`` answers one question: is a page, database or block inside
one of the configured root pages? It climbs the remote parent chain through a
``ParentResolver`` and memoizes every node it visits. All unknown states deny.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .errors import ChainTooDeep, UpstreamLookupFailed
from .identifiers import normalize
from .metadata import OperationExecutor, OperationMetadataProvider
from .observer import AccessEvent, AccessObserver, EventKind, LoguruObserver
from .parents import DEFAULT_MAX_BLOCK_DEPTH, ParentResolver, ResourceKind
from .roots import RootSet, RootSetOptions, build_root_set


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """Memoized resolution of one resource id."""

    parent_id: str | None
    is_allowed: bool


class ResolutionCache:
    """Thread-safe map of canonical resource id to ``CacheEntry``.

    Entries are never evicted; ``clear()`` is the only way to drop them.
    """

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, resource_id: str) -> CacheEntry | None:
        with self._lock:
            return self._entries.get(resource_id)

    def set(self, resource_id: str, entry: CacheEntry) -> None:
        with self._lock:
            self._entries[resource_id] = entry

    def set_if_absent(self, resource_id: str, entry: CacheEntry) -> bool:
        """Store ``entry`` unless the id is already cached; return True if stored."""
        with self._lock:
            if resource_id in self._entries:
                return False
            self._entries[resource_id] = entry
            return True

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def snapshot(self) -> dict[str, CacheEntry]:
        with self._lock:
            return dict(self._entries)

    def __contains__(self, resource_id: object) -> bool:
        with self._lock:
            return resource_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class PageAccessController:
    """Decide whether Notion resources descend from the configured root pages.

    Concurrent ``is_page_allowed`` calls share the cache without further locking.
    Overlapping walks may repeat upstream lookups; they converge on the same answer.
    """

    def __init__(
        self,
        root_set: RootSet,
        resolver: ParentResolver,
        *,
        observer: AccessObserver | None = None,
    ) -> None:
        self._root_set = root_set
        self._resolver = resolver
        self._observer = observer or LoguruObserver()
        self._cache = ResolutionCache()

    @classmethod
    def from_options(
        cls,
        options: RootSetOptions,
        executor: OperationExecutor,
        *,
        max_block_depth: int = DEFAULT_MAX_BLOCK_DEPTH,
        environ: Mapping[str, str] | None = None,
        observer: AccessObserver | None = None,
    ) -> PageAccessController:
        """Assemble a controller from root options and an operation executor."""
        observer = observer or LoguruObserver()
        root_set = build_root_set(options, environ=environ, observer=observer)
        resolver = ParentResolver(
            OperationMetadataProvider(executor), max_block_depth=max_block_depth
        )
        return cls(root_set, resolver, observer=observer)

    @property
    def root_set(self) -> RootSet:
        return self._root_set

    @property
    def cache(self) -> ResolutionCache:
        return self._cache

    def is_enabled(self) -> bool:
        return self._root_set.is_enabled()

    async def is_page_allowed(self, resource_id: str) -> bool:
        """Return True when ``resource_id`` is a root or descends from one.

        Raises:
            InvalidIdentifier: If ``resource_id`` is malformed and access control is on.
        """
        if not self.is_enabled():
            return True

        normalized = normalize(resource_id)
        if normalized in self._root_set:
            return True

        cached = self._cache.get(normalized)
        if cached is not None:
            return cached.is_allowed

        actual_page_id, trail = await self._probe(normalized)
        under_root = self._up_to_root(trail)
        if under_root is not None:
            self._allow([normalized, *under_root])
            self._report("decision", normalized, "Allowed via root below its page")
            return True

        if actual_page_id is None:
            self._cache.set(normalized, CacheEntry(parent_id=None, is_allowed=False))
            self._report("decision", normalized, "Unknown resource denied")
            return False

        is_allowed = await self.check_hierarchy(actual_page_id)
        self._cache.set(normalized, CacheEntry(parent_id=actual_page_id, is_allowed=is_allowed))
        self._report(
            "decision",
            normalized,
            f"{'Allowed' if is_allowed else 'Denied'} via page {actual_page_id}",
        )
        return is_allowed

    async def find_root_page_for_resource(self, resource_id: str) -> str | None:
        """Probe ``resource_id`` as a page, then a database, then a block.

        Returns the page the walk should start from, or None for unknown resources.
        Probe failures are reported and swallowed.
        """
        page_id, _ = await self._probe(resource_id)
        return page_id

    async def _probe(self, resource_id: str) -> tuple[str | None, tuple[str, ...]]:
        try:
            await self._resolver.fetch_parent(resource_id, ResourceKind.PAGE)
        except UpstreamLookupFailed as exc:
            self._report("probe_failed", resource_id, "Not retrievable as a page", exc)
        else:
            return resource_id, ()

        for kind in (ResourceKind.DATABASE, ResourceKind.BLOCK):
            try:
                page_id, trail = await self._resolver.resolve_with_trail(resource_id, kind)
            except UpstreamLookupFailed as exc:
                self._report("probe_failed", resource_id, f"Not resolvable as a {kind.value}", exc)
                continue
            if page_id or self._up_to_root(trail) is not None:
                return page_id, trail

        return None, ()

    async def check_hierarchy(self, start_id: str) -> bool:
        """Walk page parents from ``start_id`` until a root, a dead end or a cycle.

        Block and database ids crossed between two pages are cached alongside the
        pages, so later queries for them are answered without upstream calls. A
        crossed id that is itself a root ends the walk as allowed.
        """
        visited: dict[str, None] = {}
        crossed: list[str] = []
        current: str | None = start_id

        while current is not None and current not in visited:
            visited[current] = None

            if current in self._root_set:
                self._allow([*visited, *crossed])
                return True

            try:
                parent_id, trail = await self._resolver.resolve_page_parent_with_trail(current)
            except UpstreamLookupFailed as exc:
                kind: EventKind = (
                    "chain_too_deep" if isinstance(exc, ChainTooDeep) else "lookup_failed"
                )
                self._report(kind, current, "Failed to get parent for page", exc)
                self._cache.set(current, CacheEntry(parent_id=None, is_allowed=False))
                return False

            under_root = self._up_to_root(trail)
            if under_root is not None:
                self._allow([*visited, *crossed, *under_root])
                return True

            # Provisional; overwritten if the walk reaches a root.
            self._cache.set(current, CacheEntry(parent_id=parent_id, is_allowed=False))
            for resource_id in trail:
                self._cache.set(resource_id, CacheEntry(parent_id=parent_id, is_allowed=False))
            crossed.extend(trail)
            current = parent_id

        for resource_id in [*visited, *crossed]:
            self._cache.set_if_absent(resource_id, CacheEntry(parent_id=None, is_allowed=False))
        return False

    def _up_to_root(self, trail: tuple[str, ...]) -> tuple[str, ...] | None:
        """Return ``trail`` cut after its first root id, or None if it crosses no root."""
        for index, resource_id in enumerate(trail):
            if resource_id in self._root_set:
                return trail[: index + 1]
        return None

    def _allow(self, resource_ids: list[str]) -> None:
        for resource_id in resource_ids:
            self._cache.set(resource_id, CacheEntry(parent_id=None, is_allowed=True))

    def extract_page_id_from_request(self, path: str, params: Mapping[str, Any]) -> str | None:
        """Return the resource id a request must be authorized against, if any."""
        if "/pages/" in path and params.get("page_id"):
            return str(params["page_id"])

        # The block id may also be a page id; the probe sorts that out.
        if "/blocks/" in path and params.get("block_id"):
            return str(params["block_id"])

        if "/databases/" in path and "/query" in path and params.get("database_id"):
            return str(params["database_id"])

        parent = params.get("parent")
        if "/pages" in path and isinstance(parent, Mapping):
            if parent.get("page_id"):
                return str(parent["page_id"])
            if parent.get("database_id"):
                return str(parent["database_id"])

        return None

    def clear_cache(self) -> None:
        self._cache.clear()

    def _report(
        self,
        kind: EventKind,
        resource_id: str | None,
        detail: str,
        error: BaseException | None = None,
    ) -> None:
        self._observer(AccessEvent(kind, resource_id=resource_id, detail=detail, error=error))
