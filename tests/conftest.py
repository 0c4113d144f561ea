"""Pytest configuration for test discovery and shared fixtures.

This file ensures that:
- `src/` is importable without an editable install
- Root page environment variables from the developer's shell do not leak into tests
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure src directory is in path for imports
repo_root = Path(__file__).parent.parent
src_path = repo_root / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in (
        "NOTION_ROOT_PAGE_ID",
        "NOTION_ROOT_PAGE_URL",
        "NOTION_TOKEN",
        "NOTION_VERSION",
        "NOTION_MCP_CONFIG",
        "OPENAPI_MCP_HEADERS",
        "BASE_URL",
    ):
        monkeypatch.delenv(key, raising=False)
