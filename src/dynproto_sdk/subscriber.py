"""Subscribers decode protobuf payloads from a byte-level transport without any generated code.

A ProtobufDynamicSubscriber only needs a topic name. The first time a payload has to be decoded, it asks the
topic metadata source for the topic's descriptor set and type name, and builds a parser which it then keeps
for the rest of its life.

Payloads can be consumed in two ways, which share the same parser:
  - push: add_callback() registers functions which are called with (topic, envelope) for every decoded payload,
    on the transport's delivery thread.
  - pull: receive() blocks the calling thread until a payload arrives or the timeout elapses.

Failures never propagate out of the transport's delivery thread: parser build failures and undecodable payloads are
logged and handed to the optional error callback, and the payload is dropped.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

from typing_extensions import Self, final

from ._internal.callback_registry import CallbackRegistry
from ._internal.decoder import decode
from ._internal.logger import logger
from ._internal.parser_cache import LazyParserCache
from .config import SubscriberConfig
from .exceptions import CallbackError, DecodeError, DynprotoError, SubscriptionClosedError

if TYPE_CHECKING:
    from types import TracebackType

    from ._internal.topic_metadata import TopicMetadataSource
    from ._internal.transport.transport_client import TransportClient
    from .callback_definitions import DYNPROTO_ENVELOPE_CALLBACK_TYPE, DYNPROTO_ERROR_CALLBACK_TYPE
    from .definitions import DecodedEnvelope, DeliveryMetadata, ParserCacheState


@final
class ProtobufDynamicSubscriber:
    """Subscribe to a topic and receive its payloads as decoded protobuf messages.

    The stable API is:
    - the constructor
    - add_callback() / remove_callback()
    - receive()
    - close() (or using the subscriber as a context manager)

    All methods may be called from any thread, including from inside a callback.
    """

    def __init__(
        self,
        config: SubscriberConfig | str,
        transport: TransportClient,
        metadata_source: TopicMetadataSource,
        error_callback: DYNPROTO_ERROR_CALLBACK_TYPE | None = None,
    ) -> None:
        """Subscribe to the topic on the transport. No schema lookup happens until the first payload needs decoding.

        Parameters:
          config: The SubscriberConfig, or just the topic name to use the default configuration
          transport: byte-level transport which delivers the topic's payloads
          metadata_source: where the topic's descriptor set and type name are looked up
          error_callback: optional function called with (topic, error) for every build, decode, or callback failure
        """
        if isinstance(config, str):
            config = SubscriberConfig(topic=config)
        # this is called here in case a user created the object using "SubscriberConfig.model_construct()" to skip validation
        config = SubscriberConfig.model_validate(config)
        if error_callback is not None and not callable(error_callback):
            msg = 'error_callback should be a callable function if defined'
            raise TypeError(msg)

        self._topic = config.topic
        self._default_timeout_ms = config.default_receive_timeout_ms
        self._transport = transport
        self._error_callback = error_callback
        self._parser_cache = LazyParserCache(
            config.topic, metadata_source, config.build_failure_policy
        )
        self._callbacks: CallbackRegistry[DYNPROTO_ENVELOPE_CALLBACK_TYPE] = CallbackRegistry()

        # guards _closed and _delivery_registered, and is held while calling into the transport
        self._lock = threading.Lock()
        self._closed = False
        # the internal delivery callback is only registered with the transport while user callbacks exist,
        # so that payloads are buffered for receive() otherwise
        self._delivery_registered = False
        # guards _last_reported_build_error, the delivery thread never takes _lock
        self._report_lock = threading.Lock()
        self._last_reported_build_error: DynprotoError | None = None

        self._handle = transport.subscribe(config.topic)
        logger.debug('Subscribed to topic %s', config.topic)

    @property
    def topic(self) -> str:
        return self._topic

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def parser_state(self) -> ParserCacheState:
        """Current state of the lazily built parser."""
        return self._parser_cache.state

    @property
    def message_type(self) -> str | None:
        """Fully-qualified name of the decoded message type, or None if the parser has not been built yet."""
        parser = self._parser_cache.parser
        return parser.full_name if parser else None

    def add_callback(self, callback: DYNPROTO_ENVELOPE_CALLBACK_TYPE) -> None:
        """Call a function with (topic, envelope) for every payload decoded from now on.

        Callbacks are invoked synchronously on the transport's delivery thread, in the order they were added.
        Adding a callback which is already registered does nothing.
        A callback added during a delivery is first invoked for the next delivery.

        Raises:
          SubscriptionClosedError: if close() was already called
          TypeError: if callback is not callable
        """
        if not callable(callback):
            msg = 'callback should be a callable function'
            raise TypeError(msg)
        with self._lock:
            self._ensure_open()
            if not self._callbacks.add(callback):
                logger.debug('Callback %r is already registered on topic %s', callback, self._topic)
            if not self._delivery_registered:
                self._transport.add_delivery_callback(self._handle, self._handle_delivery)
                self._delivery_registered = True

    def remove_callback(self, callback: DYNPROTO_ENVELOPE_CALLBACK_TYPE) -> bool:
        """Stop calling a function for new payloads.

        Once this returns, the callback is not invoked for any delivery which begins afterwards.
        It is safe to call this from inside the callback itself.

        Returns:
          True if the callback was registered, False otherwise
        Raises:
          SubscriptionClosedError: if close() was already called
        """
        with self._lock:
            self._ensure_open()
            removed = self._callbacks.remove(callback)
            if not self._callbacks and self._delivery_registered:
                self._transport.remove_delivery_callback(self._handle, self._handle_delivery)
                self._delivery_registered = False
        return removed

    def receive(self, timeout_ms: int | None = None) -> DecodedEnvelope | None:
        """Block until the next payload arrives, then decode it.

        Only payloads which are not handed to push callbacks can be received, so pull mode is meant to be used
        while no callbacks are registered.

        Params:
          timeout_ms: maximum time to wait. Negative values wait indefinitely, 0 only returns an already buffered payload.
            Defaults to SubscriberConfig.default_receive_timeout_ms.
        Returns:
          the decoded envelope, or None if no payload arrived in time or the payload could not be decoded
        Raises:
          SubscriptionClosedError: if close() was already called
        """
        self._ensure_open()
        if timeout_ms is None:
            timeout_ms = self._default_timeout_ms
        raw = self._transport.receive_raw(self._handle, timeout_ms)
        if raw is None or self._closed:
            return None
        return self._decode(raw.payload, raw.metadata)

    def close(self) -> None:
        """Unsubscribe from the transport. Calling close() more than once is allowed.

        The delivery callback is unregistered first, so no callback runs for deliveries after this returns.
        Afterwards every other operation raises SubscriptionClosedError.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._delivery_registered:
                self._transport.remove_delivery_callback(self._handle, self._handle_delivery)
                self._delivery_registered = False
            self._callbacks.clear()
            self._transport.close(self._handle)
        logger.debug('Closed subscription to topic %s', self._topic)

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return f'ProtobufDynamicSubscriber(topic={self._topic!r}, parser_state={self.parser_state.value!r}, closed={self._closed})'

    def _ensure_open(self) -> None:
        if self._closed:
            msg = f'Subscriber for topic {self._topic!r} is closed'
            raise SubscriptionClosedError(msg)

    def _handle_delivery(self, payload: bytes, metadata: DeliveryMetadata) -> None:
        """Delivery callback registered with the transport. Must never raise."""
        if self._closed:
            return
        envelope = self._decode(payload, metadata)
        if envelope is None:
            return
        for callback in self._callbacks.snapshot():
            try:
                callback(self._topic, envelope)
            except Exception as e:  # noqa: BLE001 (user callbacks must not break dispatch)
                logger.exception('Callback %r raised while handling topic %s', callback, self._topic)
                msg = f'Callback {callback!r} raised {type(e).__name__}: {e}'
                error = CallbackError(msg)
                error.__cause__ = e
                self._report(error)

    def _decode(self, payload: bytes, metadata: DeliveryMetadata) -> DecodedEnvelope | None:
        try:
            parser = self._parser_cache.get_parser()
        except DynprotoError as e:
            self._report_build_failure(e, metadata)
            return None
        try:
            return decode(parser, payload, metadata)
        except DecodeError as e:
            logger.warning('Dropping payload on topic %s: %s', self._topic, e)
            self._report(e)
            return None

    def _report_build_failure(self, error: DynprotoError, metadata: DeliveryMetadata) -> None:
        # every build attempt produces a new error object, waiters of the same attempt share it
        with self._report_lock:
            first_report = error is not self._last_reported_build_error
            self._last_reported_build_error = error
        if not first_report:
            logger.debug(
                'Dropping payload %d on topic %s, parser is unavailable', metadata.id, self._topic
            )
            return
        logger.warning(
            'Unable to build parser for topic %s, dropping payload %d: %s',
            self._topic,
            metadata.id,
            error,
        )
        self._report(error)

    def _report(self, error: DynprotoError) -> None:
        if self._error_callback is None:
            return
        try:
            self._error_callback(self._topic, error)
        except Exception:  # noqa: BLE001 (nothing may escape the delivery thread)
            logger.exception('Error callback raised while handling topic %s', self._topic)

