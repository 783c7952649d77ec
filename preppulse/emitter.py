"""
EventEmitter - listener registry used by voice agent clients.

Listeners are plain callables keyed by event name. ``listening`` attaches a set of
listeners for the duration of a ``with`` block and detaches exactly the same
callables when the block exits, whichever way it exits.
"""

from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Mapping

from loguru import logger

Listener = Callable[..., Any]


class EventEmitter:
    """Synchronous publish/subscribe registry."""

    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = {}

    def on(self, event: str, listener: Listener) -> None:
        """Register ``listener`` for ``event``."""
        self._listeners.setdefault(event, []).append(listener)

    def off(self, event: str, listener: Listener) -> None:
        """Unregister one registration of ``listener``. Unknown listeners are ignored."""
        listeners = self._listeners.get(event)
        if not listeners:
            return
        try:
            listeners.remove(listener)
        except ValueError:
            return
        if not listeners:
            del self._listeners[event]

    def emit(self, event: str, *args: Any) -> None:
        """Call every listener registered for ``event`` in registration order."""
        for listener in list(self._listeners.get(event, [])):
            try:
                listener(*args)
            except Exception as e:
                logger.exception(f"Listener for '{event}' failed: {e}")

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    @contextmanager
    def listening(self, listeners: Mapping[str, Listener]) -> Iterator["EventEmitter"]:
        """Attach ``listeners`` for the duration of the block."""
        attach(self, listeners)
        try:
            yield self
        finally:
            detach(self, listeners)


def attach(source: Any, listeners: Mapping[str, Listener]) -> None:
    """Register each listener on any object exposing ``on(event, listener)``."""
    for event, listener in listeners.items():
        source.on(event, listener)


def detach(source: Any, listeners: Mapping[str, Listener]) -> None:
    """Undo ``attach`` with matching ``off`` calls."""
    for event, listener in listeners.items():
        source.off(event, listener)
