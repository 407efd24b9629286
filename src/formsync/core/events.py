"""
Sync events.

Events are delivered through callbacks injected by the caller; nothing here
keeps subscribers or global state.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional

from .models import FormDefinition


EventCallback = Callable[[Any], None]


@dataclass(frozen=True)
class DefinitionUpdated:
    """A reconciliation changed the authoritative definition; media must be refreshed."""
    definition: FormDefinition


class PullEvent:
    """Base class for pull-cycle events."""


@dataclass(frozen=True)
class PullSuccess(PullEvent):
    form_id: str
    instance_count: int


@dataclass(frozen=True)
class PullFailure(PullEvent):
    form_id: str
    reason: str


@dataclass(frozen=True)
class PullComplete(PullEvent):
    forms_pulled: int = 0


@dataclass(frozen=True)
class PullCancel(PullEvent):
    cause: str


def emit(callback: Optional[EventCallback], event: Any) -> None:
    """Deliver an event if a callback was provided."""
    if callback is not None:
        callback(event)
