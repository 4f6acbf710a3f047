from __future__ import annotations

import itertools
from typing import TYPE_CHECKING, Any, Dict, Optional

from singularity.core import log
from singularity.core.contracts import CancellableHandle, Scheduler
from singularity.core.errors import CallbackError
from singularity.core.metrics import Timer, gauge_set, inc

if TYPE_CHECKING:
    from singularity.core.registry import HandlerRecord

# process-wide so a channel id is never handed out twice, even across services
_CHANNEL_IDS = itertools.count(1)


def new_channel_id() -> int:
    return next(_CHANNEL_IDS)


class ThrottleDispatcher:
    """
    Turns bursts of low-level occurrences into throttled fan-outs.

    Every live HandlerRecord owns one channel. A low-level listener is just
    ``partial(dispatcher.trigger, channel_id)``; once the channel is closed,
    late triggers and timers that slipped through find nothing and deliver
    nothing, even if a new record exists for the same target and event type.

    Throttle policy is trailing-edge only: the first occurrence in a quiet
    period arms a timer for ``interval`` seconds, later ones only replace the
    payload, and the timer delivers the most recent one. ``interval == 0``
    fans out synchronously on every occurrence.
    """

    def __init__(self, scheduler: Scheduler, name: str = "dispatch"):
        self.scheduler = scheduler
        self.name = name
        self.l = log.get(f"dispatch.{name}")
        self._channels: Dict[int, "HandlerRecord"] = {}

    # ---------------- channel table ----------------
    def open_channel(self, record: "HandlerRecord") -> int:
        if record.channel_id in self._channels:
            raise ValueError(f"channel {record.channel_id} already open")
        self._channels[record.channel_id] = record
        return record.channel_id

    def close_channel(self, channel_id: int) -> None:
        record = self._channels.pop(channel_id, None)
        if record is None:
            return
        record.cancel_all_pending_timers(self.scheduler.cancel)
        self._publish_pending()

    def is_open(self, channel_id: int) -> bool:
        return channel_id in self._channels

    def pending_count(self) -> int:
        return sum(len(r.pending_timers) for r in self._channels.values())

    # ---------------- occurrence path ----------------
    def trigger(self, channel_id: int, occurrence: Any = None) -> None:
        """Low-level listener body. Raises CallbackError for synchronous fan-outs."""
        record = self._channels.get(channel_id)
        if record is None:
            self.l.debug("drop occurrence on closed channel=%s", channel_id)
            return
        inc("occurrence_total", 1, event=record.event_type)

        if record.interval <= 0:
            self._fanout(record, occurrence)
            return

        if record.pending_timers:
            record.latest = occurrence
            return

        slot: Dict[str, Optional[CancellableHandle]] = {}

        def fire() -> None:
            self._fire(channel_id, slot.get("handle"))

        # a scheduler that refuses leaves the record untouched
        handle = self.scheduler.schedule_after(record.interval, fire)
        record.latest = occurrence
        if handle is not None:
            slot["handle"] = handle
            record.pending_timers.add(handle)
            self._publish_pending()

    def _fire(self, channel_id: int, handle: Optional[CancellableHandle]) -> None:
        record = self._channels.get(channel_id)
        if record is None:
            return
        if handle is not None:
            record.pending_timers.discard(handle)
            self._publish_pending()
        occurrence, record.latest = record.latest, None
        self._fanout(record, occurrence)

    def _fanout(self, record: "HandlerRecord", occurrence: Any) -> None:
        # callbacks may register/unregister while we iterate
        callbacks = list(record.callbacks)
        errors = []
        with Timer("fanout_ms", event=record.event_type):
            for cb in callbacks:
                try:
                    cb(occurrence)
                except Exception as e:
                    errors.append(e)
                    inc("callback_error_total", 1, event=record.event_type)
                    self.l.error(
                        "callback error target=%s event=%s fn=%s err=%s",
                        record.target, record.event_type, getattr(cb, "__name__", cb), e, exc_info=True,
                    )
        inc("fanout_total", 1, event=record.event_type)
        if errors:
            raise CallbackError(errors, channel_id=record.channel_id, event_type=record.event_type) from errors[0]

    def _publish_pending(self) -> None:
        gauge_set("pending_timers", float(self.pending_count()), dispatcher=self.name)
