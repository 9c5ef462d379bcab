"""Descriptor sets are assembled by hand with descriptor_pb2, so no generated modules are needed for testing."""

import threading
from types import SimpleNamespace

import pytest
from dynproto_sdk import InMemoryTransport, TopicRegistry, build_parser
from google.protobuf import descriptor_pb2

FieldProto = descriptor_pb2.FieldDescriptorProto

FOO_TYPE_NAME = 'pkg:Foo'
PERSON_TYPE_NAME = 'proto:pb.people.Person'

# HELPERS #####################


def foo_file() -> descriptor_pb2.FileDescriptorProto:
    """foo.proto: message Foo { int32 x = 1; }"""
    file_proto = descriptor_pb2.FileDescriptorProto(name='foo.proto', syntax='proto3')
    message = file_proto.message_type.add(name='Foo')
    message.field.add(
        name='x', number=1, type=FieldProto.TYPE_INT32, label=FieldProto.LABEL_OPTIONAL
    )
    return file_proto


def address_file() -> descriptor_pb2.FileDescriptorProto:
    file_proto = descriptor_pb2.FileDescriptorProto(
        name='pb/people/address.proto', package='pb.people', syntax='proto3'
    )
    message = file_proto.message_type.add(name='Address')
    message.field.add(
        name='street', number=1, type=FieldProto.TYPE_STRING, label=FieldProto.LABEL_OPTIONAL
    )
    message.field.add(
        name='number', number=2, type=FieldProto.TYPE_INT32, label=FieldProto.LABEL_OPTIONAL
    )
    return file_proto


def person_file() -> descriptor_pb2.FileDescriptorProto:
    """Depends on address.proto (bundled) and google/protobuf/timestamp.proto (not bundled)."""
    file_proto = descriptor_pb2.FileDescriptorProto(
        name='pb/people/person.proto',
        package='pb.people',
        syntax='proto3',
        dependency=['pb/people/address.proto', 'google/protobuf/timestamp.proto'],
    )
    message = file_proto.message_type.add(name='Person')
    gender = message.enum_type.add(name='Gender')
    gender.value.add(name='UNKNOWN', number=0)
    gender.value.add(name='FEMALE', number=1)
    gender.value.add(name='MALE', number=2)
    message.field.add(
        name='id', number=1, type=FieldProto.TYPE_INT32, label=FieldProto.LABEL_OPTIONAL
    )
    message.field.add(
        name='name', number=2, type=FieldProto.TYPE_STRING, label=FieldProto.LABEL_OPTIONAL
    )
    message.field.add(
        name='gender',
        number=3,
        type=FieldProto.TYPE_ENUM,
        type_name='.pb.people.Person.Gender',
        label=FieldProto.LABEL_OPTIONAL,
    )
    message.field.add(
        name='address',
        number=4,
        type=FieldProto.TYPE_MESSAGE,
        type_name='.pb.people.Address',
        label=FieldProto.LABEL_OPTIONAL,
    )
    message.field.add(
        name='emails', number=5, type=FieldProto.TYPE_STRING, label=FieldProto.LABEL_REPEATED
    )
    message.field.add(
        name='updated',
        number=6,
        type=FieldProto.TYPE_MESSAGE,
        type_name='.google.protobuf.Timestamp',
        label=FieldProto.LABEL_OPTIONAL,
    )
    return file_proto


def descriptor_set(*files: descriptor_pb2.FileDescriptorProto) -> bytes:
    return descriptor_pb2.FileDescriptorSet(file=list(files)).SerializeToString()


class CountingMetadataSource:
    """Wraps a TopicRegistry, counting lookups and optionally stalling them to widen race windows."""

    def __init__(self, registry: TopicRegistry, delay: float = 0.0) -> None:
        self.registry = registry
        self.delay = delay
        self.type_name_lookups = 0
        self._lock = threading.Lock()

    def get_topic_type_name(self, topic: str) -> str:
        with self._lock:
            self.type_name_lookups += 1
        if self.delay:
            threading.Event().wait(self.delay)
        return self.registry.get_topic_type_name(topic)

    def get_topic_descriptor(self, topic: str) -> bytes:
        return self.registry.get_topic_descriptor(topic)


# FIXTURES #####################


@pytest.fixture(name='foo_descriptor_set')
def _fixture_foo_descriptor_set() -> bytes:
    return descriptor_set(foo_file())


@pytest.fixture(name='person_descriptor_set')
def _fixture_person_descriptor_set() -> bytes:
    # person.proto is deliberately listed before the file it imports
    return descriptor_set(person_file(), address_file())


@pytest.fixture(name='foo_class')
def _fixture_foo_class(foo_descriptor_set):
    return build_parser(foo_descriptor_set, 'Foo').message_class


@pytest.fixture(name='person_class')
def _fixture_person_class(person_descriptor_set):
    return build_parser(person_descriptor_set, 'pb.people.Person').message_class


@pytest.fixture(name='registry')
def _fixture_registry(foo_descriptor_set, person_descriptor_set) -> TopicRegistry:
    registry = TopicRegistry()
    registry.register_topic('t1', FOO_TYPE_NAME, foo_descriptor_set)
    registry.register_topic('person', PERSON_TYPE_NAME, person_descriptor_set)
    return registry


@pytest.fixture(name='transport')
def _fixture_transport() -> InMemoryTransport:
    return InMemoryTransport()


@pytest.fixture(name='counting_source')
def _fixture_counting_source(registry) -> CountingMetadataSource:
    return CountingMetadataSource(registry)


@pytest.fixture(name='proto_files')
def _fixture_proto_files() -> SimpleNamespace:
    """Factories for tests which need to assemble their own descriptor sets."""
    return SimpleNamespace(
        foo=foo_file,
        address=address_file,
        person=person_file,
        descriptor_set=descriptor_set,
        counting_source=CountingMetadataSource,
    )
