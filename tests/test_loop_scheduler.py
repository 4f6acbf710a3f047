import asyncio
from unittest.mock import Mock

import pytest

from singularity.adapters.lookup import TargetResolver
from singularity.config import ServiceConfig
from singularity.core.clock import LoopScheduler, VirtualScheduler
from singularity.core.contracts import CustomEvent
from singularity.core.errors import ConfigurationError
from singularity.service import UnifiedEventService


@pytest.mark.asyncio
async def test_loop_scheduler_trailing_fanout(env):
    svc = UnifiedEventService(TargetResolver(env), LoopScheduler(), config=ServiceConfig(), interval=0.02)
    cb = Mock()
    svc.register("window", "scroll", cb)

    for i in range(3):
        env.window.dispatch_event(CustomEvent("scroll", detail=i))
    assert svc.pending_timer_count() == 1

    await asyncio.sleep(0.1)
    assert cb.call_count == 1
    assert cb.call_args[0][0].detail == 2
    assert svc.pending_timer_count() == 0
    svc.teardown()


@pytest.mark.asyncio
async def test_teardown_cancels_loop_timers(env):
    svc = UnifiedEventService(TargetResolver(env), LoopScheduler(), config=ServiceConfig(), interval=0.02)
    cb = Mock()
    svc.register("window", "scroll", cb)
    env.window.dispatch_event("scroll")
    svc.teardown()

    await asyncio.sleep(0.06)
    assert cb.call_count == 0


@pytest.mark.asyncio
async def test_loop_scheduler_zero_delay_runs_now():
    sched = LoopScheduler()
    hits = []
    assert sched.schedule_after(0, lambda: hits.append(1)) is None
    assert hits == [1]


@pytest.mark.asyncio
async def test_default_scheduler_picks_up_running_loop(env):
    svc = UnifiedEventService(TargetResolver(env), config=ServiceConfig(), interval=0.02)
    cb = Mock()
    svc.register("window", "scroll", cb)
    env.window.dispatch_event(CustomEvent("scroll", detail="x"))

    await asyncio.sleep(0.1)
    assert cb.call_args[0][0].detail == "x"
    svc.teardown()


def test_default_scheduler_outside_loop_raises_configuration_error(env):
    with pytest.raises(ConfigurationError):
        UnifiedEventService(TargetResolver(env), config=ServiceConfig(), interval=0.05)


def test_default_scheduler_outside_loop_with_zero_interval(env):
    svc = UnifiedEventService(TargetResolver(env), config=ServiceConfig(), interval=0)
    cb = Mock()
    svc.register("window", "scroll", cb)
    env.window.dispatch_event(CustomEvent("scroll"))
    assert cb.call_count == 1
    svc.teardown()


def test_loop_scheduler_without_loop_leaves_record_untouched(env):
    svc = UnifiedEventService(TargetResolver(env), LoopScheduler(), config=ServiceConfig(), interval=0.05)
    svc.register("window", "scroll", Mock())

    with pytest.raises(ConfigurationError):
        env.window.dispatch_event(CustomEvent("scroll"))
    (record,) = svc.records()
    assert record.latest is None
    assert svc.pending_timer_count() == 0
    svc.teardown()
    assert env.window.listener_count() == 0


def test_virtual_scheduler_orders_by_due_then_insertion():
    sched = VirtualScheduler()
    out = []
    sched.schedule_after(0.2, lambda: out.append("late"))
    sched.schedule_after(0.1, lambda: out.append("a"))
    sched.schedule_after(0.1, lambda: out.append("b"))
    cancelled = sched.schedule_after(0.15, lambda: out.append("cancelled"))
    sched.cancel(cancelled)

    assert sched.pending() == 3
    assert sched.advance(0.1) == 2
    assert out == ["a", "b"]
    assert sched.flush() == 1
    assert out == ["a", "b", "late"]
    assert sched.now == pytest.approx(0.2)


def test_virtual_scheduler_rejects_backwards():
    with pytest.raises(ValueError):
        VirtualScheduler().advance(-1)
