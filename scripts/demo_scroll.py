# scripts/demo_scroll.py
"""
Three subscribers on window/scroll share one low-level listener; a burst of
scroll events collapses into one fan-out per interval.

    python scripts/demo_scroll.py --interval 0.1 --seconds 1.0
"""
from __future__ import annotations

import argparse
import asyncio
import os

from singularity.adapters.dom import Element, Environment
from singularity.adapters.lookup import TargetResolver
from singularity.config import load_config
from singularity.core import log
from singularity.core.clock import LoopScheduler
from singularity.core.contracts import CustomEvent
from singularity.core.metrics import force_emit, start_exporter, stop_exporter
from singularity.service import UnifiedEventService

l = log.get("demo")


async def main(interval: float, seconds: float, hz: float):
    env = Environment()
    env.document.body.append(Element("div", id="feed", classes=("scroller",)))
    cfg = load_config(interval=interval)
    svc = UnifiedEventService(TargetResolver(env), LoopScheduler(), config=cfg)

    def header(ev):
        l.info("header  sees y=%s", ev.detail)

    def lazy_images(ev):
        l.info("images  sees y=%s", ev.detail)

    def analytics(ev):
        l.info("metrics sees y=%s", ev.detail)

    with svc:
        for cb in (header, lazy_images, analytics):
            svc.register("window", "scroll", cb)
        svc.register("#feed", "click", analytics)
        l.info("window scroll listeners=%d", env.window.listener_count("scroll"))

        y = 0
        loop = asyncio.get_running_loop()
        end = loop.time() + seconds
        while loop.time() < end:
            y += 16
            env.window.dispatch_event(CustomEvent("scroll", detail=y))
            await asyncio.sleep(1.0 / hz)
        await asyncio.sleep(cfg.interval * 2)

    l.info("after teardown listeners=%d", env.window.listener_count())


if __name__ == "__main__":
    ap = argparse.ArgumentParser()
    ap.add_argument("--interval", type=float, default=0.1)
    ap.add_argument("--seconds", type=float, default=1.0)
    ap.add_argument("--hz", type=float, default=120.0)
    args = ap.parse_args()

    log.setup()
    start_exporter(interval_sec=float(os.getenv("METRICS_INTERVAL", "5")),
                   json_mode=(os.getenv("LOG_JSON", "0") == "1"))
    try:
        asyncio.run(main(args.interval, args.seconds, args.hz))
    finally:
        force_emit()
        stop_exporter()
