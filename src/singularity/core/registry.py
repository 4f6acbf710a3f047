from __future__ import annotations

import functools
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

from singularity.core import log
from singularity.core.contracts import Callback, CancellableHandle, EventCapable
from singularity.core.dispatcher import ThrottleDispatcher, new_channel_id
from singularity.core.metrics import gauge_set, inc


def same_callback(a: Callback, b: Callback) -> bool:
    # identity first; == covers bound methods, which are rebuilt on every access
    return a is b or a == b


@dataclass(eq=False)
class HandlerRecord:
    """State of one low-level binding for a (target, event_type) pair."""
    target: str
    event_type: str
    element: EventCapable
    trigger: Callable[[Any], None]
    channel_id: int
    interval: float
    callbacks: List[Callback] = field(default_factory=list)
    pending_timers: Set[CancellableHandle] = field(default_factory=set)
    latest: Any = None

    def add_callback(self, cb: Callback) -> None:
        self.callbacks.append(cb)

    def remove_callback(self, cb: Callback) -> bool:
        """Drop the first matching registration. True when nothing is left."""
        for i, existing in enumerate(self.callbacks):
            if same_callback(existing, cb):
                del self.callbacks[i]
                break
        return not self.callbacks

    def has_callback(self, cb: Callback) -> bool:
        return any(same_callback(existing, cb) for existing in self.callbacks)

    def cancel_all_pending_timers(self, cancel: Optional[Callable[[CancellableHandle], None]] = None) -> int:
        handles = list(self.pending_timers)
        self.pending_timers.clear()
        self.latest = None
        for h in handles:
            if cancel is not None:
                cancel(h)
            else:
                h.cancel()
        return len(handles)


class HandlerRegistry:
    """
    target -> event_type -> HandlerRecord.

    Creating a record attaches exactly one low-level listener; removing it
    detaches that same listener object. A target entry disappears with its
    last record.
    """

    def __init__(self, resolver, dispatcher: ThrottleDispatcher, name: str = "registry"):
        self.resolver = resolver
        self.dispatcher = dispatcher
        self.name = name
        self.l = log.get(f"registry.{name}")
        self._map: Dict[str, Dict[str, HandlerRecord]] = {}

    def get(self, target: str, event_type: str) -> Optional[HandlerRecord]:
        # keys are selector strings; anything else is never bound
        if not isinstance(target, str):
            return None
        return self._map.get(target, {}).get(event_type)

    def get_or_create(self, target: str, event_type: str, interval: float) -> HandlerRecord:
        record = self.get(target, event_type)
        if record is not None:
            return record

        # ResolutionError surfaces before any state is touched
        element = self.resolver.resolve(target)
        channel_id = new_channel_id()
        trigger = functools.partial(self.dispatcher.trigger, channel_id)
        record = HandlerRecord(
            target=target,
            event_type=event_type,
            element=element,
            trigger=trigger,
            channel_id=channel_id,
            interval=float(interval),
        )
        self.dispatcher.open_channel(record)
        try:
            element.add_event_listener(event_type, trigger)
        except Exception:
            self.dispatcher.close_channel(channel_id)
            raise

        self._map.setdefault(target, {})[event_type] = record
        inc("listener_attach_total", 1, target=target, event=event_type)
        self._publish_live()
        self.l.info("attach target=%s event=%s channel=%s interval=%.3f", target, event_type, channel_id, record.interval)
        return record

    def remove(self, target: str, event_type: str) -> None:
        record = self.get(target, event_type)
        if record is None:
            return
        handlers = self._map[target]

        try:
            record.element.remove_event_listener(event_type, record.trigger)
        finally:
            self.dispatcher.close_channel(record.channel_id)
            del handlers[event_type]
            if not handlers:
                del self._map[target]

        inc("listener_detach_total", 1, target=target, event=event_type)
        self._publish_live()
        self.l.info("detach target=%s event=%s channel=%s", target, event_type, record.channel_id)

    def all(self) -> List[HandlerRecord]:
        """Live records in creation order."""
        records = [r for handlers in self._map.values() for r in handlers.values()]
        return sorted(records, key=lambda r: r.channel_id)

    def targets(self) -> List[str]:
        return list(self._map)

    def __len__(self) -> int:
        return sum(len(h) for h in self._map.values())

    def __contains__(self, key) -> bool:
        target, event_type = key
        return self.get(target, event_type) is not None

    def _publish_live(self) -> None:
        gauge_set("live_listeners", float(len(self)), registry=self.name)
