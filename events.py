"""
In-process publish/subscribe used for auth state notifications.

Listeners register with ``subscribe`` and get back a handle that removes them.
"""
from typing import Callable, Generic, List, TypeVar

from loguru import logger

T = TypeVar("T")

Unsubscribe = Callable[[], None]


class EventChannel(Generic[T]):
    def __init__(self, name: str):
        self.name = name
        self._listeners: List[Callable[[T], None]] = []

    def subscribe(self, listener: Callable[[T], None]) -> Unsubscribe:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            # Calling the handle twice is a no-op
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: T) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Listener on channel '{}' failed", self.name)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)
