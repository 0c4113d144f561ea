"""Tests for root set construction."""

from __future__ import annotations

import pytest

from notion_mcp_access.observer import RecordingObserver
from notion_mcp_access.roots import RootSet, RootSetOptions, build_root_set, split_csv

P1 = "11111111-1111-1111-1111-111111111111"
P2 = "22222222-2222-2222-2222-222222222222"
P3 = "33333333-3333-3333-3333-333333333333"


def test_split_csv_drops_blank_entries() -> None:
    assert split_csv(" a, ,b ,,c ") == ["a", "b", "c"]
    assert split_csv(["a,b", " c "]) == ["a", "b", "c"]
    assert split_csv(None) == []


def test_options_accept_comma_separated_strings() -> None:
    options = RootSetOptions(page_ids="a, b", page_urls=None)

    assert options.page_ids == ["a", "b"]
    assert options.page_urls == []
    assert not options.is_empty


def test_explicit_ids_and_urls_merge_and_deduplicate() -> None:
    """Given the same page as an id and as a URL, when the root set is built,
    then it holds one canonical entry per page."""
    options = RootSetOptions(
        page_ids=["11111111111111111111111111111111", P2],
        page_urls=[
            "https://www.notion.so/Team-Home-11111111111111111111111111111111",
            "https://www.notion.so/Docs-33333333333333333333333333333333",
        ],
    )

    root_set = build_root_set(options, environ={}, observer=RecordingObserver())

    assert list(root_set) == [P1, P2, P3]
    assert len(root_set) == 3
    assert root_set.is_enabled()


def test_malformed_entries_are_skipped_and_reported() -> None:
    """Given a typo'd id and URL next to a valid one, when the root set is built,
    then the valid entry survives and each bad entry is reported."""
    observer = RecordingObserver()
    options = RootSetOptions(
        page_ids=["not-a-page", P1],
        page_urls=["https://www.notion.so/Missing-Id"],
    )

    root_set = build_root_set(options, environ={}, observer=observer)

    assert list(root_set) == [P1]
    invalid = observer.of_kind("invalid_root")
    assert len(invalid) == 2
    assert all(event.error is not None for event in invalid)
    assert observer.of_kind("enabled")


def test_environment_used_only_when_explicit_sources_are_empty() -> None:
    environ = {
        "NOTION_ROOT_PAGE_ID": f" {P2} , ",
        "NOTION_ROOT_PAGE_URL": "https://notion.so/x-33333333333333333333333333333333",
    }

    from_env = build_root_set(RootSetOptions(), environ=environ, observer=RecordingObserver())
    explicit = build_root_set(
        RootSetOptions(page_ids=[P1]), environ=environ, observer=RecordingObserver()
    )

    assert list(from_env) == [P2, P3]
    assert list(explicit) == [P1]


def test_environment_fallback_when_every_explicit_entry_is_malformed() -> None:
    observer = RecordingObserver()
    root_set = build_root_set(
        RootSetOptions(page_ids=["typo"]),
        environ={"NOTION_ROOT_PAGE_ID": P2},
        observer=observer,
    )

    assert list(root_set) == [P2]
    assert len(observer.of_kind("invalid_root")) == 1


def test_reads_process_environment_by_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NOTION_ROOT_PAGE_ID", P1)

    root_set = build_root_set(observer=RecordingObserver())

    assert P1 in root_set


def test_no_sources_disable_access_control() -> None:
    observer = RecordingObserver()

    root_set = build_root_set(RootSetOptions(), environ={}, observer=observer)

    assert not root_set.is_enabled()
    assert len(root_set) == 0
    assert observer.events == []


def test_root_set_is_immutable_value() -> None:
    root_set = RootSet(frozenset({P1}))

    assert root_set == RootSet({P1})
    assert hash(root_set) == hash(RootSet((P1,)))
    assert P2 not in root_set
    with pytest.raises(AttributeError):
        root_set.extra = 1  # type: ignore[attr-defined]
