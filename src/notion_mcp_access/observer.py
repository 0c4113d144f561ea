"""Injectable observers for access-control events."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Protocol

from loguru import logger

EventKind = Literal[
    "enabled",
    "invalid_root",
    "probe_failed",
    "lookup_failed",
    "chain_too_deep",
    "decision",
]


@dataclass(frozen=True, slots=True)
class AccessEvent:
    """A single fact reported by the root set builder or the access controller."""

    kind: EventKind
    resource_id: str | None = None
    detail: str = ""
    error: BaseException | None = None


class AccessObserver(Protocol):
    """Callable receiving access-control events."""

    def __call__(self, event: AccessEvent) -> None: ...


_LEVELS: dict[str, str] = {
    "enabled": "INFO",
    "invalid_root": "WARNING",
    "probe_failed": "DEBUG",
    "lookup_failed": "WARNING",
    "chain_too_deep": "WARNING",
    "decision": "DEBUG",
}


class LoguruObserver:
    """Forward events to the loguru logger."""

    def __call__(self, event: AccessEvent) -> None:
        message = event.detail or event.kind
        if event.resource_id:
            message = f"{message} [{event.resource_id}]"
        if event.error is not None:
            message = f"{message}: {event.error}"
        logger.bind(event=event.kind).log(_LEVELS.get(event.kind, "INFO"), message)


@dataclass
class RecordingObserver:
    """Keep every event in memory."""

    events: list[AccessEvent] = field(default_factory=list)

    def __call__(self, event: AccessEvent) -> None:
        self.events.append(event)

    def of_kind(self, kind: str) -> list[AccessEvent]:
        return [event for event in self.events if event.kind == kind]
