# src/singularity/service.py
"""
The Unified Event Service multiplexes subscriptions: however many callbacks
ask for (target, event_type), exactly one low-level listener is attached to
the resolved target, and each occurrence is fanned out to every callback
through a throttled dispatch path.

Per (target, event_type) the service is a two-state machine:
Unbound (no record) -> Bound (record with >= 1 callback) -> Unbound.
"""
from __future__ import annotations

from typing import Any, List, Optional

from singularity.adapters.lookup import TargetResolver
from singularity.config import ServiceConfig, load_config
from singularity.core import log
from singularity.core.clock import LoopScheduler
from singularity.core.contracts import Callback, CustomEvent, HeadlessGuard, Scheduler
from singularity.core.dispatcher import ThrottleDispatcher
from singularity.core.registry import HandlerRecord, HandlerRegistry


class UnifiedEventService:
    """
    Without an explicit scheduler the service uses the running asyncio loop;
    built outside one with a non-zero interval it raises ConfigurationError.
    """

    def __init__(
        self,
        resolver: Optional[TargetResolver] = None,
        scheduler: Optional[Scheduler] = None,
        *,
        config: Optional[ServiceConfig] = None,
        interval: Optional[float] = None,
        is_headless: Optional[HeadlessGuard] = None,
    ):
        self.config = config if config is not None else load_config()
        self.interval = self.config.effective_interval if interval is None else float(interval)
        if self.interval < 0:
            raise ValueError("interval must be >= 0")
        self.name = self.config.name
        self.l = log.get(f"service.{self.name}")
        self.resolver = resolver or TargetResolver()
        if scheduler is None:
            scheduler = LoopScheduler()
            if self.interval > 0:
                # raises ConfigurationError outside a running loop
                scheduler.loop
        self.scheduler = scheduler
        self.dispatcher = ThrottleDispatcher(self.scheduler, name=self.name)
        self.registry = HandlerRegistry(self.resolver, self.dispatcher, name=self.name)
        self._is_headless = is_headless or (lambda: self.config.headless)

    # ---------------- public API ----------------
    def register(self, target: str, event_type: str, callback: Callback, interval: Optional[float] = None) -> None:
        """
        Subscribe ``callback`` to ``event_type`` on ``target``.

        The first subscriber of a pair resolves the target, attaches the
        low-level listener and fixes the throttle interval; later subscribers
        only join the fan-out and their ``interval`` is ignored.
        Raises ResolutionError if the target cannot be resolved.
        """
        if self._is_headless():
            self.l.debug("headless: skip register target=%s event=%s", target, event_type)
            return
        if not callable(callback):
            raise TypeError(f"callback must be callable, got {type(callback).__name__}")
        if interval is not None and interval < 0:
            raise ValueError("interval must be >= 0")

        record = self.registry.get_or_create(target, event_type, self.interval if interval is None else interval)
        record.add_callback(callback)
        self.l.debug("register target=%s event=%s callbacks=%d", target, event_type, len(record.callbacks))

    def unregister(self, target: str, event_type: str, callback: Callback) -> None:
        """
        Remove one registration of ``callback``. The last one out detaches
        the low-level listener and cancels its pending timer.

        Unknown pairs and callbacks are ignored. Callbacks match by identity,
        or by equality for bound methods; a fresh closure never matches.
        """
        if self._is_headless():
            self.l.debug("headless: skip unregister target=%s event=%s", target, event_type)
            return
        self._unregister(target, event_type, callback)

    def teardown(self) -> None:
        """Drive every pair back to Unbound. Safe to call more than once."""
        records = self.registry.all()
        for record in records:
            record.cancel_all_pending_timers(self.scheduler.cancel)
            for cb in list(record.callbacks):
                self._unregister(record.target, record.event_type, cb)
        self.l.info("teardown records=%d live=%d pending=%d", len(records), len(self.registry), self.pending_timer_count())

    def trigger_event(self, target: str, event_type: str, occurrence: Any = None) -> None:
        """
        Push an occurrence through the throttled path of a bound pair, as if
        the low-level listener had fired. Does nothing for unbound pairs.
        """
        record = self.registry.get(target, event_type)
        if record is None:
            return
        if occurrence is None:
            occurrence = CustomEvent(event_type, target=record.element)
        record.trigger(occurrence)

    # ---------------- introspection ----------------
    def is_bound(self, target: str, event_type: str) -> bool:
        return (target, event_type) in self.registry

    def callback_count(self, target: str, event_type: str) -> int:
        record = self.registry.get(target, event_type)
        return len(record.callbacks) if record else 0

    def pending_timer_count(self) -> int:
        return self.dispatcher.pending_count()

    def records(self) -> List[HandlerRecord]:
        return self.registry.all()

    # ---------------- internals ----------------
    def _unregister(self, target: str, event_type: str, callback: Callback) -> None:
        record = self.registry.get(target, event_type)
        if record is None:
            self.l.debug("unregister on unbound target=%s event=%s", target, event_type)
            return
        if not record.has_callback(callback):
            self.l.debug(
                "unregister: callback %s not registered for target=%s event=%s",
                getattr(callback, "__name__", callback), target, event_type,
            )
            return
        if record.remove_callback(callback):
            self.registry.remove(target, event_type)

    def __enter__(self) -> "UnifiedEventService":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.teardown()
        return False
