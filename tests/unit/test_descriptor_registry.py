import pytest
from dynproto_sdk import (
    SchemaError,
    TypeNotFoundError,
    build_parser,
    build_parser_from_file_descriptor_set,
    split_type_name,
)
from google.protobuf import descriptor_pb2
from google.protobuf.message import DecodeError as ProtobufDecodeError

# TESTS #####################


def test_split_type_name():
    assert split_type_name('pkg:Foo') == 'Foo'
    assert split_type_name('proto:pb.people.Person') == 'pb.people.Person'
    assert split_type_name('pb.people.Person') == 'pb.people.Person'
    assert split_type_name('proto:.pb.people.Person') == 'pb.people.Person'
    # only the first separator splits
    assert split_type_name('a:b:c') == 'b:c'
    assert split_type_name('proto:') == ''


def test_build_parser_round_trip(foo_descriptor_set, foo_class):
    parser = build_parser(foo_descriptor_set, 'Foo')
    assert parser.full_name == 'Foo'
    assert parser.descriptor.fields_by_name['x'].number == 1

    message = parser.parse(foo_class(x=42).SerializeToString())
    assert message.x == 42


def test_build_parser_resolves_cross_file_references(person_descriptor_set, person_class):
    parser = build_parser(person_descriptor_set, 'pb.people.Person')
    assert parser.full_name == 'pb.people.Person'

    person = person_class(id=7, name='Max', emails=['max@example.com', 'max@example.org'])
    person.gender = 2
    person.address.street = 'Main Street'
    person.address.number = 12
    person.updated.seconds = 1_700_000_000

    decoded = parser.parse(person.SerializeToString())
    assert decoded.id == 7
    assert decoded.name == 'Max'
    assert decoded.gender == 2
    assert decoded.address.street == 'Main Street'
    assert decoded.address.number == 12
    assert list(decoded.emails) == ['max@example.com', 'max@example.org']
    assert decoded.updated.seconds == 1_700_000_000


def test_build_parser_nested_type(person_descriptor_set):
    parser = build_parser(person_descriptor_set, 'pb.people.Address')
    assert parser.full_name == 'pb.people.Address'


def test_same_inputs_decode_identically(foo_descriptor_set, foo_class):
    payload = foo_class(x=-5).SerializeToString()
    first = build_parser(foo_descriptor_set, 'Foo')
    second = build_parser(foo_descriptor_set, 'Foo')
    assert first.parse(payload).x == second.parse(payload).x == -5


def test_build_from_file_descriptor_set(proto_files):
    file_set = descriptor_pb2.FileDescriptorSet(file=[proto_files.foo()])
    parser = build_parser_from_file_descriptor_set(file_set, 'Foo')
    assert parser.full_name == 'Foo'


def test_malformed_descriptor_set():
    with pytest.raises(SchemaError):
        build_parser(b'not a descriptor set', 'Foo')


def test_truncated_descriptor_set(foo_descriptor_set):
    with pytest.raises(SchemaError):
        build_parser(foo_descriptor_set[:-3], 'Foo')


def test_missing_dependency(proto_files):
    # address.proto is not bundled and not known to the process
    with pytest.raises(SchemaError) as ex:
        build_parser(proto_files.descriptor_set(proto_files.person()), 'pb.people.Person')
    assert 'pb/people/address.proto' in str(ex.value)


def test_dependency_cycle(proto_files):
    first = descriptor_pb2.FileDescriptorProto(name='a.proto', dependency=['b.proto'])
    second = descriptor_pb2.FileDescriptorProto(name='b.proto', dependency=['a.proto'])
    with pytest.raises(SchemaError) as ex:
        build_parser(proto_files.descriptor_set(first, second), 'A')
    assert 'cycle' in str(ex.value)


def test_unresolvable_field_type(proto_files):
    broken = proto_files.foo()
    broken.message_type[0].field.add(
        name='missing',
        number=2,
        type=descriptor_pb2.FieldDescriptorProto.TYPE_MESSAGE,
        type_name='.does.not.Exist',
        label=descriptor_pb2.FieldDescriptorProto.LABEL_OPTIONAL,
    )
    with pytest.raises(SchemaError):
        build_parser(proto_files.descriptor_set(broken), 'Foo')


def test_type_not_found(foo_descriptor_set):
    with pytest.raises(TypeNotFoundError) as ex:
        build_parser(foo_descriptor_set, 'Bar')
    assert 'Bar' in str(ex.value)


def test_type_name_requires_full_name(person_descriptor_set):
    with pytest.raises(TypeNotFoundError):
        build_parser(person_descriptor_set, 'Person')


def test_empty_type_name(foo_descriptor_set):
    with pytest.raises(TypeNotFoundError):
        build_parser(foo_descriptor_set, '')


def test_parser_raises_protobuf_decode_error(foo_descriptor_set):
    parser = build_parser(foo_descriptor_set, 'Foo')
    with pytest.raises(ProtobufDecodeError):
        # field 1, varint wire type, but the varint is missing
        parser.parse(b'\x08')


def test_schemas_do_not_leak_between_builds(proto_files):
    # two unrelated schemas may define the same file and type names
    other = proto_files.foo()
    other.message_type[0].field[0].type = descriptor_pb2.FieldDescriptorProto.TYPE_STRING
    string_parser = build_parser(proto_files.descriptor_set(other), 'Foo')
    int_parser = build_parser(proto_files.descriptor_set(proto_files.foo()), 'Foo')

    assert string_parser.parse(b'\x0a\x02hi').x == 'hi'
    assert int_parser.parse(b'\x08\x2a').x == 42
