from __future__ import annotations

import queue
import threading
from typing import TYPE_CHECKING

from ...definitions import DeliveryMetadata, RawDelivery
from ..callback_registry import CallbackRegistry
from ..logger import logger

if TYPE_CHECKING:
    from ...callback_definitions import DELIVERY_CALLBACK_TYPE

_CLOSED = object()
"""Queue sentinel which wakes up receivers when a handle is closed."""

_CLOSE_POLL_INTERVAL = 0.25
"""Seconds between closed checks of receivers waiting without a timeout."""


class SubscriptionHandle:
    """Transport-side state of one subscription, shared by the bundled transports.

    A payload is handed to the delivery callbacks if any are registered, otherwise it is buffered for receive().
    The buffer is bounded; when it is full the oldest payload is dropped.
    """

    def __init__(self, topic: str, max_buffered: int) -> None:
        self.topic = topic
        self.callbacks: CallbackRegistry[DELIVERY_CALLBACK_TYPE] = CallbackRegistry()
        self._buffer: queue.Queue[object] = queue.Queue(maxsize=max_buffered)
        self._closed = threading.Event()
        self._dropped = 0
        self._producer_lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def dropped(self) -> int:
        """Number of buffered payloads discarded because the buffer was full."""
        return self._dropped

    def deliver(self, payload: bytes, metadata: DeliveryMetadata) -> None:
        if self.closed:
            return
        callbacks = self.callbacks.snapshot()
        if callbacks:
            for callback in callbacks:
                callback(payload, metadata)
            return
        item = RawDelivery(payload=payload, metadata=metadata)
        # producers take turns, so each evicted payload is counted exactly once
        with self._producer_lock:
            while True:
                try:
                    self._buffer.put_nowait(item)
                except queue.Full:
                    try:
                        self._buffer.get_nowait()
                    except queue.Empty:
                        continue
                    self._dropped += 1
                    logger.warning(
                        'Receive buffer for topic %s is full, dropped oldest payload', self.topic
                    )
                else:
                    return

    def receive(self, timeout_ms: int) -> RawDelivery | None:
        if self.closed:
            return None
        try:
            if timeout_ms < 0:
                item = self._wait_forever()
            elif timeout_ms == 0:
                item = self._buffer.get_nowait()
            else:
                item = self._buffer.get(timeout=timeout_ms / 1000)
        except queue.Empty:
            return None
        if item is _CLOSED or self.closed:
            # pass the wakeup on to any other blocked receiver
            self._wake()
            return None
        return item  # type: ignore[return-value]

    def _wait_forever(self) -> object:
        # poll so a receiver cannot miss close() when the buffer was too full for the sentinel
        while True:
            try:
                return self._buffer.get(timeout=_CLOSE_POLL_INTERVAL)
            except queue.Empty:
                if self.closed:
                    return _CLOSED

    def close(self) -> None:
        if self.closed:
            return
        self._closed.set()
        self.callbacks.clear()
        self._wake()

    def _wake(self) -> None:
        try:
            self._buffer.put_nowait(_CLOSED)
        except queue.Full:
            # receivers will find an item without blocking anyway
            pass
