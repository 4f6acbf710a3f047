from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol

__all__ = [
    "CustomEvent",
    "Callback",
    "Task",
    "EventCapable",
    "CancellableHandle",
    "Scheduler",
    "HeadlessGuard",
]


@dataclass(slots=True)
class CustomEvent:
    """An occurrence delivered by an event target.

    ``target`` and ``time_stamp`` are filled in by ``EventTarget.dispatch_event``.
    """
    type: str
    detail: Any = None
    target: Any = None
    time_stamp: float = field(default_factory=time.monotonic)


Callback = Callable[[Any], None]
Task = Callable[[], None]
HeadlessGuard = Callable[[], bool]


class EventCapable(Protocol):
    def add_event_listener(self, event_type: str, listener: Callable[[Any], None]) -> None: ...

    def remove_event_listener(self, event_type: str, listener: Callable[[Any], None]) -> None: ...


class CancellableHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def schedule_after(self, delay: float, task: Task) -> Optional[CancellableHandle]: ...

    def cancel(self, handle: CancellableHandle) -> None: ...
