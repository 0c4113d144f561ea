"""Exception types raised by the Notion page access resolver."""

from __future__ import annotations

from typing import Any


class AccessControlError(Exception):
    """Base class for every error raised by this package."""

    def __init__(self, message: str, *, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}


class InvalidIdentifier(AccessControlError, ValueError):
    """A resource identifier is not 32 hex digits once hyphens are stripped."""


class InvalidUrl(InvalidIdentifier):
    """A root page URL does not end with a resource identifier."""


class UpstreamLookupFailed(AccessControlError):
    """The remote metadata provider could not report a resource's parent."""

    def __init__(
        self,
        message: str,
        *,
        resource_id: str,
        kind: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context=context)
        self.resource_id = resource_id
        self.kind = kind


class ChainTooDeep(UpstreamLookupFailed):
    """A block chain exceeded the hop limit or looped back on itself."""

    def __init__(self, message: str, *, resource_id: str, hops: int) -> None:
        super().__init__(message, resource_id=resource_id, kind="block", context={"hops": hops})
        self.hops = hops


class HttpClientError(AccessControlError):
    """An operation executed against the Notion API returned a non-2xx status."""

    def __init__(self, message: str, *, status: int, data: Any = None) -> None:
        super().__init__(message, context={"status": status})
        self.status = status
        self.data = data

    def __str__(self) -> str:
        if self.status:
            return f"{self.message} (Code: {self.status})"
        return self.message
