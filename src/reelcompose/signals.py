"""Observable state for background work.

Background workers (sprite generation, export, upload) publish their state
through Signal objects; callers either subscribe with connect() or poll the
owning object's attributes. Handlers run on the emitting thread.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)


class Signal:
    """A minimal thread-safe signal: connect handlers, emit to all of them.

    A handler that raises is logged and does not prevent the remaining
    handlers from running, so one broken subscriber cannot stall a worker.
    """

    def __init__(self, name: str = "signal"):
        self.name = name
        self._handlers: list[Callable] = []
        self._lock = threading.Lock()

    def connect(self, handler: Callable) -> None:
        with self._lock:
            if handler not in self._handlers:
                self._handlers.append(handler)

    def disconnect(self, handler: Callable) -> None:
        with self._lock:
            if handler in self._handlers:
                self._handlers.remove(handler)

    def emit(self, *args) -> None:
        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            try:
                handler(*args)
            except Exception:
                logger.exception("Handler %r for %s raised", handler, self.name)


@dataclass(frozen=True)
class JobUpdate:
    """One entry of a job's status stream."""
    status: str
    progress: float
    error: str | None = None
