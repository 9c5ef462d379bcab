"""Exceptions raised by the dynproto-sdk.

Every exception derives from DynprotoError, so applications which only want to know "did the SDK fail" can catch that.

Build failures (SchemaError, TypeNotFoundError) and DecodeError are never raised out of a transport delivery thread;
on the push path they are logged and handed to the subscriber's error callback instead.
"""


class DynprotoError(Exception):
    """Generic marker for dynproto-specific exceptions."""


class SchemaError(DynprotoError):
    """The serialized descriptor set could not be parsed, or its files could not be linked together.

    Retrying with the same bytes will fail the same way, but a topic's schema may become available later.
    """


class TopicMetadataError(SchemaError):
    """The topic metadata source could not provide a descriptor or type name for a topic.

    This usually means the publisher's registration has not propagated yet.
    """


class TypeNotFoundError(DynprotoError):
    """The requested message type does not exist in the descriptor set."""


class DecodeError(DynprotoError):
    """A payload was not a valid wire encoding of the subscriber's message type.

    Only the offending payload is dropped, the subscription stays usable.
    """


class SubscriptionClosedError(DynprotoError):
    """An operation was attempted on a subscriber after close() was called."""


class CallbackError(DynprotoError):
    """A user callback raised an exception while handling a decoded envelope.

    The original exception is available as __cause__.
    """


class TopicNotFoundError(DynprotoError, LookupError):
    """Raised by TopicRegistry when a topic has never been registered (or has been unregistered)."""
