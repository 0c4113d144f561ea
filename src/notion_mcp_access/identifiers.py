"""Canonical Notion resource identifiers.

Notion accepts ids with or without hyphens and in any case, and page URLs carry the
id as the trailing slug segment (``https://www.notion.so/workspace/Title-<32 hex>``).
Everything stored by the resolver uses the lower-case, hyphenated 8-4-4-4-12 form.
"""

from __future__ import annotations

import re
from urllib.parse import urlsplit

from .errors import InvalidIdentifier, InvalidUrl

_HEX32 = re.compile(r"^[0-9a-f]{32}$")
_URL_SUFFIX = re.compile(
    r"([0-9a-f]{32}|[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12})$",
    re.IGNORECASE,
)
_GROUPS = (8, 4, 4, 4, 12)


def normalize(raw: str) -> str:
    """Return the canonical hyphenated form of ``raw``.

    Raises:
        InvalidIdentifier: If ``raw`` is not 32 hex digits once hyphens are removed.
    """
    if not isinstance(raw, str):
        raise InvalidIdentifier(
            f"Invalid resource id type: {type(raw).__name__}",
            context={"raw": raw},
        )

    clean = raw.replace("-", "").lower()
    if not _HEX32.match(clean):
        raise InvalidIdentifier(f"Invalid resource id format: {raw}", context={"raw": raw})

    parts: list[str] = []
    offset = 0
    for width in _GROUPS:
        parts.append(clean[offset : offset + width])
        offset += width
    return "-".join(parts)


def extract_from_url(url: str) -> str:
    """Return the canonical id carried at the end of a Notion page URL.

    Query strings and fragments are ignored, so ``...-<id>?pvs=4`` resolves too.

    Raises:
        InvalidUrl: If the URL path does not end with a 32 hex digit id.
    """
    if not isinstance(url, str):
        raise InvalidUrl(f"Invalid Notion page URL type: {type(url).__name__}")

    candidate = url
    if "://" in candidate:
        candidate = urlsplit(candidate).path
    else:
        candidate = candidate.split("?", 1)[0].split("#", 1)[0]
    candidate = candidate.rstrip("/")

    match = _URL_SUFFIX.search(candidate)
    if not match:
        raise InvalidUrl(f"Invalid Notion page URL format: {url}", context={"url": url})
    return normalize(match.group(1))
