"""Page access control for a Notion MCP server."""

from .access import CacheEntry, PageAccessController, ResolutionCache
from .config import AccessSettings
from .errors import (
    AccessControlError,
    ChainTooDeep,
    HttpClientError,
    InvalidIdentifier,
    InvalidUrl,
    UpstreamLookupFailed,
)
from .identifiers import extract_from_url, normalize
from .mcp_server import run_server
from .roots import RootSet, RootSetOptions, build_root_set

__all__ = [
    "AccessControlError",
    "AccessSettings",
    "CacheEntry",
    "ChainTooDeep",
    "HttpClientError",
    "InvalidIdentifier",
    "InvalidUrl",
    "PageAccessController",
    "ResolutionCache",
    "RootSet",
    "RootSetOptions",
    "UpstreamLookupFailed",
    "build_root_set",
    "extract_from_url",
    "normalize",
    "run_server",
]
