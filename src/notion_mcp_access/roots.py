"""Root page configuration for page access control."""

from __future__ import annotations

import os
from collections.abc import Iterator, Mapping

from pydantic import BaseModel, Field, field_validator

from .errors import InvalidIdentifier
from .identifiers import extract_from_url, normalize
from .observer import AccessEvent, AccessObserver, LoguruObserver

ROOT_PAGE_ID_ENV = "NOTION_ROOT_PAGE_ID"
ROOT_PAGE_URL_ENV = "NOTION_ROOT_PAGE_URL"


def split_csv(value: str | list[str] | tuple[str, ...] | None) -> list[str]:
    """Split comma-separated values, dropping blank entries."""
    if value is None:
        return []
    items = value.split(",") if isinstance(value, str) else list(value)
    result: list[str] = []
    for item in items:
        for piece in str(item).split(","):
            piece = piece.strip()
            if piece:
                result.append(piece)
    return result


class RootSetOptions(BaseModel):
    """Explicitly configured root pages (CLI flags or config file)."""

    page_ids: list[str] = Field(default_factory=list, description="Raw root page ids")
    page_urls: list[str] = Field(default_factory=list, description="Root page URLs")

    @field_validator("page_ids", "page_urls", mode="before")
    @classmethod
    def split_entries(cls, value: object) -> list[str]:
        if value is None or isinstance(value, (str, list, tuple)):
            return split_csv(value)  # type: ignore[arg-type]
        raise TypeError("expected a comma-separated string or a list of strings")

    @property
    def is_empty(self) -> bool:
        return not self.page_ids and not self.page_urls


class RootSet:
    """Immutable set of canonical root page ids.

    An empty set disables access control entirely.
    """

    __slots__ = ("_ids",)

    def __init__(self, ids: frozenset[str] | set[str] | tuple[str, ...] = frozenset()) -> None:
        self._ids = frozenset(ids)

    def __contains__(self, resource_id: object) -> bool:
        return resource_id in self._ids

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._ids))

    def __len__(self) -> int:
        return len(self._ids)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, RootSet):
            return self._ids == other._ids
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._ids)

    def __repr__(self) -> str:
        return f"RootSet({sorted(self._ids)!r})"

    def is_enabled(self) -> bool:
        return bool(self._ids)


def _collect(
    ids: list[str],
    urls: list[str],
    observer: AccessObserver,
    source: str,
) -> set[str]:
    collected: set[str] = set()
    for raw in ids:
        try:
            collected.add(normalize(raw))
        except InvalidIdentifier as exc:
            event = AccessEvent(
                "invalid_root", detail=f"Invalid root page id from {source}", error=exc
            )
            observer(event)
    for url in urls:
        # InvalidUrl subclasses InvalidIdentifier
        try:
            collected.add(extract_from_url(url))
        except InvalidIdentifier as exc:
            event = AccessEvent(
                "invalid_root", detail=f"Invalid root page URL from {source}", error=exc
            )
            observer(event)
    return collected


def build_root_set(
    options: RootSetOptions | None = None,
    environ: Mapping[str, str] | None = None,
    observer: AccessObserver | None = None,
) -> RootSet:
    """Merge explicit and environment-sourced root pages into a ``RootSet``.

    Environment variables are consulted only when no explicit id or URL normalizes.
    Malformed entries are reported and skipped.
    """
    options = options or RootSetOptions()
    env = os.environ if environ is None else environ
    observer = observer or LoguruObserver()

    ids = _collect(options.page_ids, options.page_urls, observer, "options")

    if not ids:
        ids = _collect(
            split_csv(env.get(ROOT_PAGE_ID_ENV)),
            split_csv(env.get(ROOT_PAGE_URL_ENV)),
            observer,
            "environment",
        )

    root_set = RootSet(frozenset(ids))
    if root_set.is_enabled():
        observer(
            AccessEvent(
                "enabled",
                detail=f"Page access control enabled. Root pages: {', '.join(root_set)}",
            )
        )
    return root_set
