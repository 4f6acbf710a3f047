from __future__ import annotations

from typing import List, Optional


class SingularityError(Exception):
    """Base class for every error raised by the event service."""


class ResolutionError(SingularityError, LookupError):
    """A target identifier did not resolve to an event-capable object."""

    def __init__(self, message: str, target: object = None):
        super().__init__(message)
        self.target = target


class CallbackError(SingularityError):
    """One or more callbacks raised during a single fan-out pass.

    Every callback of the pass has already run when this is raised;
    ``errors`` keeps the failures in invocation order.
    """

    def __init__(self, errors: List[BaseException], channel_id: Optional[int] = None, event_type: str = ""):
        self.errors = list(errors)
        self.channel_id = channel_id
        self.event_type = event_type
        first = self.errors[0] if self.errors else None
        super().__init__(
            f"{len(self.errors)} callback(s) failed during fan-out of {event_type!r} "
            f"(channel={channel_id}): {first!r}"
        )


class ConfigurationError(SingularityError, RuntimeError):
    """The service was wired in a way that cannot deliver events (e.g. no event loop)."""
