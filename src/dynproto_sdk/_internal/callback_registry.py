from __future__ import annotations

import threading
from typing import Callable, Generic, TypeVar

CallbackT = TypeVar('CallbackT', bound=Callable[..., None])


class CallbackRegistry(Generic[CallbackT]):
    """Ordered set of callbacks.

    Mutations are serialized by a lock, while dispatch works on a snapshot taken with snapshot().
    This means a callback may add or remove callbacks (including itself) while being invoked:
    additions only apply to the next snapshot, and a removed callback is never part of a snapshot taken after remove() returns.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        # dicts keep insertion order, values are unused
        self._callbacks: dict[CallbackT, None] = {}

    def add(self, callback: CallbackT) -> bool:
        """Register a callback.

        Returns: True if the callback was added, False if it was already registered (its position is kept)
        """
        with self._lock:
            if callback in self._callbacks:
                return False
            self._callbacks[callback] = None
            return True

    def remove(self, callback: CallbackT) -> bool:
        """Unregister a callback.

        Returns: True if the callback was registered, False otherwise
        """
        with self._lock:
            try:
                del self._callbacks[callback]
            except KeyError:
                return False
            return True

    def clear(self) -> None:
        with self._lock:
            self._callbacks.clear()

    def snapshot(self) -> tuple[CallbackT, ...]:
        """Copy of the currently registered callbacks, in registration order."""
        with self._lock:
            return tuple(self._callbacks)

    def __len__(self) -> int:
        with self._lock:
            return len(self._callbacks)

    def __bool__(self) -> bool:
        return len(self) > 0
