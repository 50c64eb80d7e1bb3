"""Thread-safe notification hub for wireftp.

The control-channel reader thread raises notifications (connected,
response, error, close) that application code subscribes to.
"""

import logging
import threading
from typing import Any, Callable, Dict, List

logger = logging.getLogger("wireftp.events")

Handler = Callable[..., None]


class EventEmitter:
    """
    Minimal publish/subscribe registry.

    Usage:
        events = EventEmitter()
        events.on("response", lambda line: print(line))
        events.emit("response", "220 Service ready")

    Handlers run on the emitting thread. A failing handler is logged and
    does not stop delivery to the others.
    """

    def __init__(self):
        """Initialize an empty registry."""
        self._handlers: Dict[str, List[Handler]] = {}
        self._lock = threading.Lock()

    def on(self, event: str, handler: Handler) -> None:
        """
        Subscribe a handler to an event.

        Args:
            event: Event name
            handler: Callable invoked with the event arguments
        """
        with self._lock:
            self._handlers.setdefault(event, []).append(handler)

    def off(self, event: str, handler: Handler) -> None:
        """Unsubscribe a handler; unknown handlers are ignored."""
        with self._lock:
            handlers = self._handlers.get(event, [])
            if handler in handlers:
                handlers.remove(handler)

    def listener_count(self, event: str) -> int:
        """Number of handlers subscribed to an event."""
        with self._lock:
            return len(self._handlers.get(event, []))

    def emit(self, event: str, *args: Any) -> None:
        """
        Deliver an event to every subscribed handler.

        Args:
            event: Event name
            *args: Positional arguments passed to each handler
        """
        with self._lock:
            handlers = list(self._handlers.get(event, []))

        for handler in handlers:
            try:
                handler(*args)
            except Exception:
                logger.exception(f"Handler for '{event}' failed")
