from __future__ import annotations

import itertools
import threading
import time
from typing import TYPE_CHECKING

from ...definitions import DeliveryMetadata
from ..logger import logger
from .subscription_handle import SubscriptionHandle
from .transport_client import TransportClient

if TYPE_CHECKING:
    from ...callback_definitions import DELIVERY_CALLBACK_TYPE
    from ...definitions import RawDelivery


def _now_us() -> int:
    return time.time_ns() // 1000


class InMemoryTransport(TransportClient):
    """Loopback transport which delivers payloads to subscribers in the same process.

    publish() delivers synchronously on the calling thread, so publishing from several threads
    exercises concurrent delivery the same way a networked transport's worker threads would.

    Attributes:
        max_buffered: size of each subscription's receive buffer
        _subscriptions: topic name -> live subscription handles
        _clocks: topic name -> logical clock of the last published payload
    """

    def __init__(self, max_buffered: int = 1024) -> None:
        """The default constructor.

        Args:
            max_buffered: maximum number of payloads buffered per subscription for receive_raw()
        """
        self.max_buffered = max_buffered
        self._lock = threading.Lock()
        self._subscriptions: dict[str, list[SubscriptionHandle]] = {}
        self._clocks: dict[str, itertools.count[int]] = {}

    def publish(
        self,
        topic: str,
        payload: bytes,
        message_id: int | None = None,
        publish_time: int | None = None,
    ) -> DeliveryMetadata:
        """Deliver a payload to every subscription of the topic.

        Args:
            topic: topic to publish on
            payload: raw message bytes
            message_id: id to attach to the payload (default: the payload's logical clock)
            publish_time: publish timestamp in microseconds (default: now)
        Returns:
            the metadata which was attached to the payload
        """
        with self._lock:
            clock = next(self._clocks.setdefault(topic, itertools.count(1)))
            handles = tuple(self._subscriptions.get(topic, ()))
        metadata = DeliveryMetadata(
            id=clock if message_id is None else message_id,
            publish_time=_now_us() if publish_time is None else publish_time,
            logical_clock=clock,
        )
        if not handles:
            logger.debug('No subscribers for topic %s, dropping payload %d', topic, metadata.id)
        for handle in handles:
            handle.deliver(bytes(payload), metadata)
        return metadata

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscriptions.get(topic, ()))

    def subscribe(self, topic: str) -> SubscriptionHandle:
        handle = SubscriptionHandle(topic, self.max_buffered)
        with self._lock:
            self._subscriptions.setdefault(topic, []).append(handle)
        return handle

    def add_delivery_callback(
        self, handle: SubscriptionHandle, callback: DELIVERY_CALLBACK_TYPE
    ) -> None:
        handle.callbacks.add(callback)

    def remove_delivery_callback(
        self, handle: SubscriptionHandle, callback: DELIVERY_CALLBACK_TYPE
    ) -> None:
        handle.callbacks.remove(callback)

    def receive_raw(self, handle: SubscriptionHandle, timeout_ms: int) -> RawDelivery | None:
        return handle.receive(timeout_ms)

    def close(self, handle: SubscriptionHandle) -> None:
        with self._lock:
            handles = self._subscriptions.get(handle.topic, [])
            if handle in handles:
                handles.remove(handle)
            if not handles:
                self._subscriptions.pop(handle.topic, None)
        handle.close()
