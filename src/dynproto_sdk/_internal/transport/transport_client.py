from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from ...callback_definitions import DELIVERY_CALLBACK_TYPE
    from ...definitions import RawDelivery


class TransportClient(Protocol):
    """Abstract definition of a byte-level publish/subscribe transport.

    The transport owns delivery: it may invoke delivery callbacks on its own threads,
    concurrently with application threads calling receive_raw() or the callback registration methods.
    Handles are opaque to callers and are only passed back into the same transport.
    """

    def subscribe(self, topic: str) -> Any:
        """Start listening on a topic.

        Args:
            topic: Topic to subscribe to.
        Returns:
            An opaque subscription handle.
        """
        ...

    def add_delivery_callback(self, handle: Any, callback: DELIVERY_CALLBACK_TYPE) -> None:
        """Register a function which is called with (payload, metadata) for every delivery on the handle."""
        ...

    def remove_delivery_callback(self, handle: Any, callback: DELIVERY_CALLBACK_TYPE) -> None:
        """Unregister a delivery callback. Once this returns, the callback is not invoked for new deliveries."""
        ...

    def receive_raw(self, handle: Any, timeout_ms: int) -> RawDelivery | None:
        """Block until a payload is available on the handle or the timeout elapses.

        Args:
            handle: subscription handle from subscribe()
            timeout_ms: maximum time to wait. Negative values wait indefinitely, 0 does not wait.
        Returns:
            The next payload with its metadata, or None if nothing arrived in time (or the handle was closed).
        """
        ...

    def close(self, handle: Any) -> None:
        """Release a subscription handle. Blocked receive_raw() calls on the handle return None."""
        ...
