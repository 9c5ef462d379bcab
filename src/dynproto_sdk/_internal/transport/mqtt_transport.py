from __future__ import annotations

import dataclasses
import threading
import time
import uuid
from typing import TYPE_CHECKING, Any

import paho.mqtt.client as paho_client
from paho.mqtt.enums import CallbackAPIVersion
from paho.mqtt.packettypes import PacketTypes
from paho.mqtt.properties import Properties
from pydantic import TypeAdapter
from retrying import retry

from ...config import MQTTTransportConfig
from ...definitions import DeliveryMetadata
from ..logger import logger
from .subscription_handle import SubscriptionHandle
from .transport_client import TransportClient

if TYPE_CHECKING:
    from paho.mqtt.client import DisconnectFlags
    from paho.mqtt.reasoncodes import ReasonCode

    from ...callback_definitions import DELIVERY_CALLBACK_TYPE
    from ...definitions import RawDelivery


_DEFAULT_PORT = 1883
_KEEPALIVE_SECONDS = 60
_MAX_REFUSED_CONNECTIONS = 10
"""After this many refused CONNECTs in a row the broker is considered misconfigured."""

_CONFIG_ADAPTER: TypeAdapter[MQTTTransportConfig] = TypeAdapter(MQTTTransportConfig)

METADATA_PROPERTY_NAMES = ('id', 'publish_time', 'logical_clock')
"""MQTT v5 user properties which carry the DeliveryMetadata fields."""


def metadata_from_properties(properties: Properties | None) -> DeliveryMetadata:
    """Read DeliveryMetadata out of MQTT v5 user properties.

    Missing or non-integer properties are read as 0, payloads are never rejected for bad metadata.
    """
    values = dict.fromkeys(METADATA_PROPERTY_NAMES, 0)
    for key, value in getattr(properties, 'UserProperty', None) or ():
        if key not in values:
            continue
        try:
            values[key] = int(value)
        except ValueError:
            logger.warning('Ignoring non-integer %s user property %r', key, value)
    return DeliveryMetadata(**values)


def metadata_to_properties(metadata: DeliveryMetadata) -> Properties:
    props = Properties(PacketTypes.PUBLISH)  # type: ignore[no-untyped-call]
    props.UserProperty = [(name, str(getattr(metadata, name))) for name in METADATA_PROPERTY_NAMES]
    return props


class MQTTTransport(TransportClient):
    """Transport backed by an MQTT v5 broker, using paho-mqtt.

    Every topic with at least one live SubscriptionHandle is subscribed on the broker exactly once,
    and subscribed again after each reconnect. Delivery callbacks run on paho's network loop thread.
    Note that paho itself may not be thread safe, see https://github.com/eclipse/paho.mqtt.python/issues/358

    Attributes:
        uid: client id presented to the broker
        host: broker hostname
        port: broker port
        _connection: the paho Client
        _connected: True between a successful CONNACK and the next disconnect
        _subscriptions: topic name -> live subscription handles on that topic
        _clocks: topic name -> logical clock of the last payload published by this transport
    """

    def __init__(self, config: MQTTTransportConfig) -> None:
        """Validate the configuration and create the paho client. Nothing touches the network until connect().

        Args:
            config: broker connection settings
        """
        config = _CONFIG_ADAPTER.validate_python(dataclasses.asdict(config))
        self.uid = config.uid or str(uuid.uuid4())
        self.host = config.host
        self.port = config.port or _DEFAULT_PORT
        self._max_buffered = config.receive_queue_size

        self._connection = paho_client.Client(
            callback_api_version=CallbackAPIVersion.VERSION2,
            protocol=paho_client.MQTTv5,
            client_id=self.uid,
        )
        self._connection.username_pw_set(username=config.username, password=config.password)
        self._connection.on_connect = self._on_connect
        self._connection.on_disconnect = self._on_disconnect
        self._connection.on_message = self._on_message

        self._connected = False
        self._stopping = False
        self._refused_connections = 0
        # set by every CONNACK, successful or not
        self._connack_received = threading.Event()

        self._lock = threading.Lock()
        self._subscriptions: dict[str, list[SubscriptionHandle]] = {}
        self._clocks: dict[str, int] = {}

    @retry(
        retry_on_exception=lambda e: isinstance(e, OSError),
        stop_max_attempt_number=5,
        wait_exponential_multiplier=500,
        wait_exponential_max=30000,
    )
    def connect(self) -> None:
        """Open the connection and start paho's network loop, then wait for the broker's answer.

        Socket errors are retried with exponential backoff. A broker which refuses the connection is
        handled by paho's own reconnect logic, see considered_unrecoverable().
        """
        self._stopping = False
        self._connack_received.clear()
        self._connection.connect(self.host, self.port, _KEEPALIVE_SECONDS, clean_start=False)
        self._connection.loop_start()
        while not self._connack_received.wait(1.0):
            logger.debug('Waiting for CONNACK from %s:%d', self.host, self.port)

    def disconnect(self) -> None:
        """Close the connection and stop paho's network loop. Subscription handles stay usable."""
        self._stopping = True
        self._connection.disconnect()
        self._connection.loop_stop()

    def is_connected(self) -> bool:
        return self._connected

    def considered_unrecoverable(self) -> bool:
        """Whether the broker refused so many connections in a row that retrying is pointless."""
        return self._refused_connections >= _MAX_REFUSED_CONNECTIONS

    def publish_raw(
        self, topic: str, payload: bytes, metadata: DeliveryMetadata | None = None
    ) -> DeliveryMetadata:
        """Publish already-serialized bytes, attaching delivery metadata as user properties.

        Args:
            topic: topic to publish on
            payload: raw message bytes
            metadata: metadata to attach. If omitted, the topic's next logical clock is used as the id.
        Returns:
            the metadata which was attached
        """
        if metadata is None:
            with self._lock:
                clock = self._clocks[topic] = self._clocks.get(topic, 0) + 1
            metadata = DeliveryMetadata(
                id=clock, publish_time=time.time_ns() // 1000, logical_clock=clock
            )
        properties = metadata_to_properties(metadata)
        self._connection.publish(topic, bytes(payload), qos=0, properties=properties)
        return metadata

    def subscribe(self, topic: str) -> SubscriptionHandle:
        handle = SubscriptionHandle(topic, self._max_buffered)
        with self._lock:
            handles = self._subscriptions.setdefault(topic, [])
            handles.append(handle)
            needs_broker_subscription = len(handles) == 1
        # while disconnected, _on_connect takes care of it
        if needs_broker_subscription and self._connected:
            self._connection.subscribe(topic, qos=0)
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
            topic_abandoned = not handles
            if topic_abandoned:
                self._subscriptions.pop(handle.topic, None)
        if topic_abandoned and self._connected:
            self._connection.unsubscribe(handle.topic)
        handle.close()

    # paho callbacks, all invoked on the network loop thread

    def _on_message(
        self,
        client: paho_client.Client,  # noqa: ARG002
        userdata: Any,  # noqa: ARG002
        message: paho_client.MQTTMessage,
    ) -> None:
        with self._lock:
            handles = tuple(self._subscriptions.get(message.topic, ()))
        if not handles:
            logger.warning('Received payload on topic %s without subscribers, dropping it', message.topic)
            return
        metadata = metadata_from_properties(message.properties)
        for handle in handles:
            handle.deliver(message.payload, metadata)

    def _on_connect(
        self,
        client: paho_client.Client,  # noqa: ARG002
        userdata: Any,  # noqa: ARG002
        flags: dict[str, Any],  # noqa: ARG002
        reason_code: ReasonCode,
        properties: Properties | None,  # noqa: ARG002
    ) -> None:
        try:
            if reason_code.is_failure:
                self._connected = False
                self._refused_connections += 1
                logger.error(
                    'Broker %s:%d refused connection (%s), %d refusals in a row',
                    self.host,
                    self.port,
                    reason_code,
                    self._refused_connections,
                )
                if self.considered_unrecoverable():
                    logger.error('Giving up on broker %s:%d', self.host, self.port)
                    self._stopping = True
                return

            logger.info('Connected to broker %s:%d as %s', self.host, self.port, self.uid)
            self._connected = True
            self._refused_connections = 0
            with self._lock:
                topics = [(topic, 0) for topic in self._subscriptions]
            if topics:
                self._connection.subscribe(topics)
        finally:
            self._connack_received.set()

    def _on_disconnect(
        self,
        client: paho_client.Client,
        userdata: Any,  # noqa: ARG002
        flags: DisconnectFlags,  # noqa: ARG002
        reason_code: ReasonCode,
        properties: Properties | None,  # noqa: ARG002
    ) -> None:
        self._connected = False
        if self._stopping:
            logger.debug('Disconnected from broker %s:%d', self.host, self.port)
            return
        logger.warning('Lost connection to broker %s:%d (%s), reconnecting', self.host, self.port, reason_code)
        client.reconnect()
