from __future__ import annotations

from typing import TYPE_CHECKING, Union

from google.protobuf.message import DecodeError as ProtobufDecodeError

from ..definitions import DecodedEnvelope
from ..exceptions import DecodeError

if TYPE_CHECKING:
    from ..definitions import DeliveryMetadata
    from .descriptor_registry import MessageParser

RawPayload = Union[bytes, bytearray, memoryview]


def decode(parser: MessageParser, raw_bytes: RawPayload, metadata: DeliveryMetadata) -> DecodedEnvelope:
    """Decode a payload and pair it with its delivery metadata.

    Payloads are opaque byte sequences and are never routed through a text codec.
    Neither raw_bytes nor metadata are modified.

    Params:
      parser: parser bound to the topic's message type
      raw_bytes: protobuf wire encoding of the message
      metadata: delivery metadata supplied by the transport
    Returns:
      a new DecodedEnvelope
    Raises:
      DecodeError: the payload is not bytes-like, or not a valid encoding of the parser's type
    """
    if not isinstance(raw_bytes, (bytes, bytearray, memoryview)):
        msg = f'Payload {metadata.id} must be bytes-like, got {type(raw_bytes).__name__}'
        raise DecodeError(msg)
    try:
        message = parser.parse(bytes(raw_bytes))
    except (ProtobufDecodeError, UnicodeDecodeError, RecursionError) as e:
        # the pure-python backend reports bad UTF-8 and excessive nesting with builtin errors
        msg = f'Payload {metadata.id} ({len(raw_bytes)} bytes) is not a valid {parser.full_name}: {e}'
        raise DecodeError(msg) from e
    return DecodedEnvelope(
        message=message,
        id=metadata.id,
        publish_time=metadata.publish_time,
        logical_clock=metadata.logical_clock,
    )
