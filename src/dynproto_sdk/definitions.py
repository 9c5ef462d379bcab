"""Data types which flow between the transport, the decoding pipeline, and application callbacks."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from google.protobuf import json_format

if TYPE_CHECKING:
    from google.protobuf.message import Message


@dataclass(frozen=True)
class DeliveryMetadata:
    """Metadata the transport attaches to every payload. It is independent of whether decoding succeeds."""

    id: int
    """
    Sequence id of the payload, as assigned by the publisher
    """

    publish_time: int
    """
    Publish timestamp (microseconds since the epoch)
    """

    logical_clock: int
    """
    The publisher's write clock, incremented once per published payload
    """


@dataclass(frozen=True)
class RawDelivery:
    """A payload fetched from the transport which has not been decoded yet."""

    payload: bytes
    metadata: DeliveryMetadata


@dataclass(frozen=True)
class DecodedEnvelope:
    """A decoded protobuf message paired with its delivery metadata.

    A new envelope is created for every successful decode, so holding on to one is always safe.
    """

    message: Message
    """
    The decoded protobuf message. Its class is generated at runtime from the topic's descriptor set.
    """

    id: int
    publish_time: int
    logical_clock: int

    @property
    def metadata(self) -> DeliveryMetadata:
        return DeliveryMetadata(
            id=self.id, publish_time=self.publish_time, logical_clock=self.logical_clock
        )

    def to_dict(self) -> dict[str, Any]:
        """Render the message as a plain dictionary, keeping the original protobuf field names.

        Returns:
          dictionary with message field values, 64-bit integers are rendered as strings per the protobuf JSON mapping
        """
        return json_format.MessageToDict(self.message, preserving_proto_field_name=True)


class ParserCacheState(Enum):
    """States of a subscriber's lazily built message parser."""

    UNBUILT = 'unbuilt'
    BUILDING = 'building'
    READY = 'ready'
    FAILED = 'failed'


class BuildFailurePolicy(str, Enum):
    """What a subscriber does after a parser build fails."""

    RETRY = 'retry'
    """
    Try to build the parser again on the next delivery or receive() call (default).
    """

    GIVE_UP = 'give_up'
    """
    Never try again. Every later delivery is dropped and reported with the original build error.
    """
