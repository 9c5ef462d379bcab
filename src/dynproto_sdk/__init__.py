"""The root module contains the intended public API for users of the dynproto-sdk.

Users should not need to import anything outside of the root.

In general, most breaking changes on version updates will relate to:
  - Configuration classes (both adding and removing config fields).
  - The TransportClient and TopicMetadataSource protocols, which custom transports implement.
"""

from importlib import import_module
from typing import TYPE_CHECKING

# import everything eagerly for IDEs/LSPs
if TYPE_CHECKING:
    from ._internal.descriptor_registry import (
        MessageParser,
        build_parser,
        build_parser_from_file_descriptor_set,
        split_type_name,
    )
    from ._internal.topic_metadata import TopicMetadataSource, TopicRegistration, TopicRegistry
    from ._internal.transport.in_memory import InMemoryTransport
    from ._internal.transport.mqtt_transport import MQTTTransport
    from ._internal.transport.transport_client import TransportClient
    from .callback_definitions import (
        DELIVERY_CALLBACK_TYPE,
        DYNPROTO_ENVELOPE_CALLBACK_TYPE,
        DYNPROTO_ERROR_CALLBACK_TYPE,
    )
    from .config import MQTTTransportConfig, SubscriberConfig
    from .definitions import (
        BuildFailurePolicy,
        DecodedEnvelope,
        DeliveryMetadata,
        ParserCacheState,
        RawDelivery,
    )
    from .exceptions import (
        CallbackError,
        DecodeError,
        DynprotoError,
        SchemaError,
        SubscriptionClosedError,
        TopicMetadataError,
        TopicNotFoundError,
        TypeNotFoundError,
    )
    from .subscriber import ProtobufDynamicSubscriber
    from .version import __version__, version_info, version_string

__all__ = (
    'DELIVERY_CALLBACK_TYPE',
    'DYNPROTO_ENVELOPE_CALLBACK_TYPE',
    'DYNPROTO_ERROR_CALLBACK_TYPE',
    'BuildFailurePolicy',
    'CallbackError',
    'DecodeError',
    'DecodedEnvelope',
    'DeliveryMetadata',
    'DynprotoError',
    'InMemoryTransport',
    'MQTTTransport',
    'MQTTTransportConfig',
    'MessageParser',
    'ParserCacheState',
    'ProtobufDynamicSubscriber',
    'RawDelivery',
    'SchemaError',
    'SubscriberConfig',
    'SubscriptionClosedError',
    'TopicMetadataError',
    'TopicMetadataSource',
    'TopicNotFoundError',
    'TopicRegistration',
    'TopicRegistry',
    'TransportClient',
    'TypeNotFoundError',
    '__version__',
    'build_parser',
    'build_parser_from_file_descriptor_set',
    'split_type_name',
    'version_info',
    'version_string',
)

# PEP 562 stuff: do lazy imports for people who just want to import from the top-level module
# (this also keeps paho-mqtt optional until MQTTTransport is actually used)

__lazy_imports = {
    'DELIVERY_CALLBACK_TYPE': '.callback_definitions',
    'DYNPROTO_ENVELOPE_CALLBACK_TYPE': '.callback_definitions',
    'DYNPROTO_ERROR_CALLBACK_TYPE': '.callback_definitions',
    'BuildFailurePolicy': '.definitions',
    'CallbackError': '.exceptions',
    'DecodeError': '.exceptions',
    'DecodedEnvelope': '.definitions',
    'DeliveryMetadata': '.definitions',
    'DynprotoError': '.exceptions',
    'InMemoryTransport': '._internal.transport.in_memory',
    'MQTTTransport': '._internal.transport.mqtt_transport',
    'MQTTTransportConfig': '.config',
    'MessageParser': '._internal.descriptor_registry',
    'ParserCacheState': '.definitions',
    'ProtobufDynamicSubscriber': '.subscriber',
    'RawDelivery': '.definitions',
    'SchemaError': '.exceptions',
    'SubscriberConfig': '.config',
    'SubscriptionClosedError': '.exceptions',
    'TopicMetadataError': '.exceptions',
    'TopicMetadataSource': '._internal.topic_metadata',
    'TopicNotFoundError': '.exceptions',
    'TopicRegistration': '._internal.topic_metadata',
    'TopicRegistry': '._internal.topic_metadata',
    'TransportClient': '._internal.transport.transport_client',
    'TypeNotFoundError': '.exceptions',
    '__version__': '.version',
    'build_parser': '._internal.descriptor_registry',
    'build_parser_from_file_descriptor_set': '._internal.descriptor_registry',
    'split_type_name': '._internal.descriptor_registry',
    'version_info': '.version',
    'version_string': '.version',
}


def __getattr__(attr_name: str) -> object:
    attr_module = __lazy_imports.get(attr_name)
    if attr_module:
        module = import_module(attr_module, package=__spec__.parent)
        return getattr(module, attr_name)

    msg = f'module {__name__!r} has no attribute {attr_name!r}'
    raise AttributeError(msg)


def __dir__() -> list[str]:
    return list(__all__)
