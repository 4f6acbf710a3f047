# src/singularity/adapters/lookup.py
from __future__ import annotations

from typing import Optional

from singularity.adapters.dom import Environment, EventTarget
from singularity.core.errors import ResolutionError

# cannot be reached through a selector string
GLOBALS = ("window", "document")


def lookup_element(target: object, env: Environment) -> EventTarget:
    """
    Resolve a selector string to an event target in ``env``.
    "window" and "document" map to the globals; anything else goes through
    ``document.query_selector``.
    """
    if target in GLOBALS:
        return env.window if target == "window" else env.document

    if not isinstance(target, str):
        raise ResolutionError(
            "Singularity expects elements to be looked up via a selector string. "
            f'Please pass targets as strings, and not a "{type(target).__name__}"',
            target=target,
        )

    try:
        element = env.document.query_selector(target)
    except ValueError as e:
        raise ResolutionError(f'The target selector "{target}" is not a supported selector: {e}', target=target) from e

    if element is None:
        raise ResolutionError(
            f'The target selector "{target}" was passed, but could not be retrieved from the DOM.',
            target=target,
        )
    return element


class TargetResolver:
    """Resolver bound to one environment."""

    def __init__(self, env: Optional[Environment] = None):
        self.env = env or Environment()

    def resolve(self, target: object) -> EventTarget:
        return lookup_element(target, self.env)
