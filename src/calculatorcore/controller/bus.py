"""
Change Bus (Publish/Subscribe)
==============================
In-process event fan-out between the engine and anything that mirrors it.

Why is this file needed?
------------------------
1. Decoupling: The engine announces what changed; it never calls views or
   storage listeners directly.
2. Isolation: A subscriber that raises is logged and skipped. The remaining
   subscribers still receive the event, so a broken view cannot stop
   propagation of model changes.

Dispatch is synchronous: publish() returns after every handler has run.
"""
from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable, Dict, List
import logging

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]


class ChangeBus:
    def __init__(self) -> None:
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)

    def subscribe(self, topic: str, handler: Handler) -> None:
        if not callable(handler):
            raise TypeError(f"Handler for '{topic}' must be callable")
        self._handlers[str(topic)].append(handler)

    def unsubscribe(self, topic: str, handler: Handler) -> None:
        """Remove one registration of handler; unknown handlers are ignored."""
        handlers = self._handlers.get(str(topic))
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            return
        if not handlers:
            del self._handlers[str(topic)]

    def publish(self, topic: str, payload: Any = None) -> int:
        """
        Deliver payload to every handler of topic, in subscription order.

        Returns:
            Number of handlers that completed without raising.
        """
        # Copy so handlers may (un)subscribe while we iterate
        handlers = list(self._handlers.get(str(topic), ()))
        delivered = 0
        for handler in handlers:
            try:
                handler(payload)
                delivered += 1
            except Exception:
                logger.exception(f"Handler {handler!r} failed on topic '{topic}'")
        return delivered

    def handler_count(self, topic: str) -> int:
        return len(self._handlers.get(str(topic), ()))

    def clear(self) -> None:
        self._handlers.clear()
