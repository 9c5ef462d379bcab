import logging
import time

from dynproto_sdk import (
    DecodedEnvelope,
    MQTTTransport,
    MQTTTransportConfig,
    ProtobufDynamicSubscriber,
    TopicRegistry,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def print_person(topic: str, envelope: DecodedEnvelope) -> None:
    logger.info('%s (clock %d): %s', topic, envelope.logical_clock, envelope.to_dict())


if __name__ == '__main__':
    """
    step one: create the transport configuration.

    In most cases, everything under from_config_file should come from a configuration file, command line arguments, or environment variables.
    The broker should be an MQTT 5 broker, i.e. the one in examples/docker-compose of many projects, listening on 1883.
    """
    from_config_file = {
        'username': 'dynproto_username',
        'password': 'dynproto_password',
        'port': 1883,
    }
    transport = MQTTTransport(MQTTTransportConfig(**from_config_file))
    transport.connect()

    """
    step two: tell the subscriber where to find the topic's schema.

    The descriptor set is read from a file generated with `protoc --include_imports --descriptor_set_out=person.desc person.proto`.
    """
    registry = TopicRegistry()
    with open('person.desc', 'rb') as f:
        registry.register_topic('people', 'proto:example.Person', f.read())

    """
    step three: subscribe and wait for payloads until interrupted.
    """
    with ProtobufDynamicSubscriber('people', transport, registry) as subscriber:
        subscriber.add_callback(print_person)
        try:
            while True:
                time.sleep(1.0)
        except KeyboardInterrupt:
            logger.info('Shutting down')
    transport.disconnect()
