# src/singularity/config.py
from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

# seconds between throttled fan-outs
DEFAULT_INTERVAL = 0.05

_TRUE = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class ServiceConfig:
    interval: float = DEFAULT_INTERVAL
    testing: bool = False   # deterministic mode: every occurrence fans out immediately
    headless: bool = False  # no interactive environment; register/unregister do nothing
    name: str = "unified-event-handler"

    @property
    def effective_interval(self) -> float:
        return 0.0 if self.testing else self.interval

    def __post_init__(self):
        if self.interval < 0:
            raise ValueError("interval must be >= 0")


def _as_interval(raw: Any) -> float:
    try:
        return float(raw)
    except (TypeError, ValueError) as e:
        raise ValueError(f"interval must be a number of seconds, got {raw!r}") from e


def _env_bool(key: str) -> Optional[bool]:
    raw = os.getenv(key)
    if raw is None:
        return None
    return raw.strip().lower() in _TRUE


def _from_env() -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    raw = os.getenv("SINGULARITY_INTERVAL")
    if raw is not None:
        out["interval"] = _as_interval(raw)
    for key, env_key in (("testing", "SINGULARITY_TESTING"), ("headless", "SINGULARITY_HEADLESS")):
        flag = _env_bool(env_key)
        if flag is not None:
            out[key] = flag
    return out


def read_yaml(yaml_path: str | Path) -> Dict[str, Any]:
    return yaml.safe_load(Path(yaml_path).read_text(encoding="utf-8")) or {}


def load_config(yaml_path: str | Path | None = None, **overrides: Any) -> ServiceConfig:
    """
    Layered config: defaults < YAML ``singularity:`` section < env < kwargs.
    A .env file in the working directory is loaded first.
    """
    load_dotenv()
    known = {f.name for f in fields(ServiceConfig)}
    values: Dict[str, Any] = {}
    if yaml_path is not None:
        section = read_yaml(yaml_path).get("singularity") or {}
        values.update({k: v for k, v in section.items() if k in known})
    values.update(_from_env())
    values.update({k: v for k, v in overrides.items() if v is not None})
    if "interval" in values:
        values["interval"] = _as_interval(values["interval"])
    return replace(ServiceConfig(), **values)
