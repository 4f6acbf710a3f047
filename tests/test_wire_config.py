import textwrap

import pytest

import hooks
from singularity.config import DEFAULT_INTERVAL, ServiceConfig, load_config
from singularity.core.clock import VirtualScheduler
from singularity.core.contracts import CustomEvent
from singularity.core.errors import ConfigurationError
from singularity.wire_config import build_from_yaml


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in ("SINGULARITY_INTERVAL", "SINGULARITY_TESTING", "SINGULARITY_HEADLESS"):
        monkeypatch.delenv(key, raising=False)
    hooks.seen.clear()


def _write(tmp_path, body):
    p = tmp_path / "singularity.yaml"
    p.write_text(textwrap.dedent(body), encoding="utf-8")
    return p


def test_defaults():
    cfg = load_config()
    assert cfg == ServiceConfig()
    assert cfg.effective_interval == DEFAULT_INTERVAL


def test_yaml_then_env_then_kwargs(tmp_path, monkeypatch):
    path = _write(tmp_path, """
        singularity:
          interval: 0.2
          headless: true
          unknown_key: ignored
    """)
    assert load_config(path).interval == 0.2
    assert load_config(path).headless is True

    monkeypatch.setenv("SINGULARITY_INTERVAL", "0.3")
    monkeypatch.setenv("SINGULARITY_HEADLESS", "0")
    cfg = load_config(path)
    assert (cfg.interval, cfg.headless) == (0.3, False)

    assert load_config(path, interval=0.4).interval == 0.4


def test_yaml_interval_given_as_string(tmp_path):
    path = _write(tmp_path, """
        singularity:
          interval: "0.25"
    """)
    assert load_config(path).interval == 0.25


def test_yaml_interval_not_a_number(tmp_path):
    path = _write(tmp_path, """
        singularity:
          interval: fast
    """)
    with pytest.raises(ValueError, match="fast"):
        load_config(path)


def test_negative_interval_rejected():
    with pytest.raises(ValueError):
        ServiceConfig(interval=-1)


def test_build_from_yaml_registers_bindings(tmp_path):
    path = _write(tmp_path, """
        singularity:
          testing: true
        elements:
          - {tag: div, id: main, classes: [scroller]}
          - {tag: button, id: go, parent: "#main"}
        bindings:
          - {target: window, event: scroll, callback: "hooks:on_scroll"}
          - {target: "#main #go", event: click, callback: "hooks.on_click"}
    """)
    service, env = build_from_yaml(path)

    assert isinstance(service.scheduler, VirtualScheduler)
    assert service.interval == 0
    assert env.window.listener_count("scroll") == 1

    env.window.dispatch_event(CustomEvent("scroll", detail=1))
    env.document.query_selector("#go").dispatch_event(CustomEvent("click", detail=2))
    assert hooks.seen == [("scroll", 1), ("click", 2)]

    service.teardown()
    assert env.window.listener_count() == 0


def test_build_from_yaml_missing_parent(tmp_path):
    path = _write(tmp_path, """
        elements:
          - {tag: span, parent: "#nowhere"}
    """)
    with pytest.raises(ValueError):
        build_from_yaml(path, scheduler=VirtualScheduler())


def test_build_from_yaml_outside_loop_needs_a_scheduler(tmp_path):
    path = _write(tmp_path, """
        singularity:
          interval: 0.1
    """)
    with pytest.raises(ConfigurationError):
        build_from_yaml(path)

    service, _ = build_from_yaml(path, scheduler=VirtualScheduler())
    assert service.interval == 0.1
