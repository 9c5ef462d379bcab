import logging

from dynproto_sdk import (
    DecodedEnvelope,
    DynprotoError,
    InMemoryTransport,
    ProtobufDynamicSubscriber,
    TopicRegistry,
    build_parser,
)
from google.protobuf import descriptor_pb2

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

FieldProto = descriptor_pb2.FieldDescriptorProto


def person_descriptor_set() -> bytes:
    """Publishers normally ship this with their topic, e.g. the output of `protoc --include_imports --descriptor_set_out`.

    Here it is assembled by hand so the example has no generated code at all.
    """
    file_proto = descriptor_pb2.FileDescriptorProto(
        name='example/person.proto', package='example', syntax='proto3'
    )
    message = file_proto.message_type.add(name='Person')
    message.field.add(name='name', number=1, type=FieldProto.TYPE_STRING, label=FieldProto.LABEL_OPTIONAL)
    message.field.add(name='age', number=2, type=FieldProto.TYPE_INT32, label=FieldProto.LABEL_OPTIONAL)
    return descriptor_pb2.FileDescriptorSet(file=[file_proto]).SerializeToString()


class PersonPrinter:
    """This class contains the callback functions.

    It uses a class because we want to keep count of what we have seen from the callbacks.
    """

    def __init__(self) -> None:
        self.seen = 0

    def on_person(self, topic: str, envelope: DecodedEnvelope) -> None:
        self.seen += 1
        logger.info('[push] %s #%d: %s', topic, envelope.id, envelope.to_dict())

    def on_error(self, topic: str, error: DynprotoError) -> None:
        logger.warning('[push] %s: %s', topic, error)


if __name__ == '__main__':
    """
    step one: the publisher side registers the topic's schema and sends some payloads.

    The subscriber never sees a generated class, only the descriptor set and 'proto:example.Person'.
    """
    descriptor_set = person_descriptor_set()
    registry = TopicRegistry()
    registry.register_topic('people', 'proto:example.Person', descriptor_set)
    transport = InMemoryTransport()

    # a real publisher would use its generated class, we just build one from the same schema
    Person = build_parser(descriptor_set, 'example.Person').message_class

    """
    step two: push mode - callbacks run for every payload as it is delivered.
    """
    printer = PersonPrinter()
    with ProtobufDynamicSubscriber('people', transport, registry, printer.on_error) as subscriber:
        subscriber.add_callback(printer.on_person)
        transport.publish('people', Person(name='Ada', age=36).SerializeToString())
        transport.publish('people', b'\xff\xff')  # not a Person, reported to on_error
        transport.publish('people', Person(name='Alan', age=41).SerializeToString())

        """
        step three: pull mode - without callbacks payloads are buffered until receive() is called.
        """
        subscriber.remove_callback(printer.on_person)
        transport.publish('people', Person(name='Grace', age=85).SerializeToString())
        envelope = subscriber.receive(timeout_ms=1000)
        if envelope is not None:
            logger.info('[pull] %s', envelope.to_dict())
        logger.info('Nothing left: %s', subscriber.receive(timeout_ms=100) is None)

    logger.info('Push callbacks handled %d payloads', printer.seen)
