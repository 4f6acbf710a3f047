# src/singularity/wire_config.py
from __future__ import annotations

import importlib
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from singularity.adapters.dom import Element, Environment
from singularity.adapters.lookup import TargetResolver
from singularity.config import load_config, read_yaml
from singularity.core import log
from singularity.core.clock import VirtualScheduler
from singularity.core.contracts import Scheduler
from singularity.service import UnifiedEventService

l = log.get("wire")


def _imp(path: str) -> Callable[..., Any]:
    """'pkg.mod:attr' or 'pkg.mod.attr' -> the attribute."""
    module, sep, attr = path.partition(":")
    if not sep:
        module, _, attr = path.rpartition(".")
    obj = importlib.import_module(module)
    for part in attr.split("."):
        obj = getattr(obj, part)
    return obj


def _mount_elements(env: Environment, items: List[Dict[str, Any]]) -> None:
    for item in items:
        el = Element(item.get("tag", "div"), id=item.get("id"), classes=item.get("classes") or ())
        parent_sel = item.get("parent")
        parent = env.document.query_selector(parent_sel) if parent_sel else env.document.body
        if parent is None:
            raise ValueError(f"parent {parent_sel!r} not found for element {el!r}")
        parent.append(el)


def build_from_yaml(
    yaml_path: str | Path,
    env: Optional[Environment] = None,
    scheduler: Optional[Scheduler] = None,
) -> Tuple[UnifiedEventService, Environment]:
    """
    Read a YAML file and assemble environment, resolver, scheduler and
    service, then register the listed bindings.

        singularity: {interval: 0.05, testing: false, headless: false}
        elements:    [{tag: div, id: main, classes: [scroller]}]
        bindings:    [{target: window, event: scroll, callback: "app.hooks:on_scroll", interval: 0.1}]
    """
    data = read_yaml(yaml_path)
    cfg = load_config(yaml_path)

    env = env or Environment()
    _mount_elements(env, data.get("elements") or [])

    if scheduler is None and cfg.testing:
        scheduler = VirtualScheduler()
    service = UnifiedEventService(TargetResolver(env), scheduler, config=cfg)

    for b in data.get("bindings") or []:
        callback = _imp(b["callback"])
        service.register(b["target"], b["event"], callback, b.get("interval"))
        l.info("binding target=%s event=%s callback=%s", b["target"], b["event"], b["callback"])

    return service, env
