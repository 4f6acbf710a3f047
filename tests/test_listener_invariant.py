"""
Random register/unregister sequences: for every (target, event) pair the
number of low-level listeners is 1 while callbacks remain and 0 otherwise.
"""
import random
from collections import Counter

import pytest

TARGETS = ("window", "document", "#main", ".link")
EVENTS = ("scroll", "resize", "click")


def _element(env, target):
    if target == "window":
        return env.window
    if target == "document":
        return env.document
    return env.document.query_selector(target)


@pytest.mark.parametrize("seed", [1, 7, 42, 1337])
def test_random_sequences_keep_zero_or_one_listener(make_service, env, seed):
    rng = random.Random(seed)
    svc = make_service()
    callbacks = [lambda ev, i=i: None for i in range(3)]
    model = Counter()

    for _ in range(300):
        target, event = rng.choice(TARGETS), rng.choice(EVENTS)
        cb_idx = rng.randrange(len(callbacks))
        if rng.random() < 0.55:
            svc.register(target, event, callbacks[cb_idx])
            model[(target, event, cb_idx)] += 1
        else:
            svc.unregister(target, event, callbacks[cb_idx])
            if model[(target, event, cb_idx)]:
                model[(target, event, cb_idx)] -= 1

        for t in TARGETS:
            for e in EVENTS:
                expected = sum(model[(t, e, i)] for i in range(len(callbacks)))
                assert svc.callback_count(t, e) == expected
                assert _element(env, t).listener_count(e) == (1 if expected else 0)
                assert svc.is_bound(t, e) == bool(expected)

    svc.teardown()
    assert all(_element(env, t).listener_count() == 0 for t in TARGETS)
