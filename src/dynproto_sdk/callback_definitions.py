"""Callback signatures used by ProtobufDynamicSubscriber and by transports."""

from typing import Callable

from typing_extensions import TypeAlias

from .definitions import DecodedEnvelope, DeliveryMetadata
from .exceptions import DynprotoError

DYNPROTO_ENVELOPE_CALLBACK_TYPE: TypeAlias = Callable[[str, DecodedEnvelope], None]
"""
Callback invoked with (topic, envelope) for every successfully decoded payload in push mode.

Callbacks run synchronously on the transport's delivery thread, so they should return quickly.
"""

DYNPROTO_ERROR_CALLBACK_TYPE: TypeAlias = Callable[[str, DynprotoError], None]
"""
Callback invoked with (topic, error) whenever a parser build, a decode, or a user callback fails.

Exceptions raised from this callback are logged and otherwise ignored.
"""

DELIVERY_CALLBACK_TYPE: TypeAlias = Callable[[bytes, DeliveryMetadata], None]
"""
Byte-level callback which transports invoke with (payload, metadata) for each delivery.
"""
