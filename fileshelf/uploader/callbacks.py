"""
Lifecycle callbacks.

Handlers are registered per (kind, event) and invoked by the uploader at
fixed points, in registration order. A handler that raises stops the
remaining handlers and the exception reaches the caller.
"""

from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Tuple

EVENTS = (
    "cache",
    "retrieve_from_cache",
    "store",
    "retrieve_from_store",
    "rename",
    "remove",
)
KINDS = ("before", "after")

Callback = Callable[..., Any]


class CallbackRegistry:
    """Ordered before/after handler lists for each lifecycle event."""

    def __init__(self):
        self._handlers: Dict[Tuple[str, str], List[Callback]] = {
            (kind, event): [] for kind in KINDS for event in EVENTS
        }

    def _key(self, kind: str, event: str) -> Tuple[str, str]:
        if kind not in KINDS:
            raise ValueError(f"Unknown callback kind: {kind}")
        if event not in EVENTS:
            raise ValueError(f"Unknown lifecycle event: {event}")
        return (kind, event)

    def register(self, kind: str, event: str, handler: Callback) -> Callback:
        self._handlers[self._key(kind, event)].append(handler)
        return handler

    def before(self, event: str, handler: Callback) -> Callback:
        """Run handler(uploader, *args) before event."""
        return self.register("before", event, handler)

    def after(self, event: str, handler: Callback) -> Callback:
        """Run handler(uploader, *args) after event completes."""
        return self.register("after", event, handler)

    def handlers(self, kind: str, event: str) -> List[Callback]:
        return list(self._handlers[self._key(kind, event)])

    def run(self, kind: str, event: str, uploader: Any, *args) -> None:
        for handler in self._handlers[self._key(kind, event)]:
            handler(uploader, *args)

    @contextmanager
    def around(self, event: str, uploader: Any, *args):
        """
        Wrap an event: before-handlers, the body, then after-handlers.

        After-handlers are skipped when the body raises.
        """
        self.run("before", event, uploader, *args)
        yield
        self.run("after", event, uploader, *args)
