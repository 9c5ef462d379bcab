"""Turn a serialized FileDescriptorSet into a parser for one message type, without any generated code.

The descriptor set is linked into a private DescriptorPool per build, so schemas published by different
topics never collide with each other or with the application's own generated modules.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from google.protobuf import (
    any_pb2,
    descriptor,
    descriptor_pb2,
    descriptor_pool,
    duration_pb2,
    empty_pb2,
    field_mask_pb2,
    message_factory,
    struct_pb2,
    timestamp_pb2,
    wrappers_pb2,
)
from google.protobuf.message import DecodeError as ProtobufDecodeError
from typing_extensions import final

from ..exceptions import SchemaError, TypeNotFoundError
from .logger import logger

if TYPE_CHECKING:
    from google.protobuf.message import Message

# importing these modules registers the well-known type files with the default pool,
# descriptor sets which do not bundle them can still import them
_WELL_KNOWN_TYPE_MODULES = (
    any_pb2,
    descriptor_pb2,
    duration_pb2,
    empty_pb2,
    field_mask_pb2,
    struct_pb2,
    timestamp_pb2,
    wrappers_pb2,
)

TYPE_NAME_SEPARATOR = ':'
"""Separates the encoding from the message type name in topic type names, i.e. 'proto:pkg.Foo'."""

# exceptions the pure-python and upb pools raise when a file cannot be linked
_POOL_ERRORS = (TypeError, ValueError, KeyError, descriptor.Error)


@final
class MessageParser:
    """Reusable decoder bound to exactly one resolved message type.

    Parsers hold no mutable state, so a single instance may be shared across threads.
    """

    __slots__ = ('_message_class',)

    def __init__(self, message_class: type[Message]) -> None:
        self._message_class = message_class

    @property
    def message_class(self) -> type[Message]:
        """The message class generated at runtime for the resolved type."""
        return self._message_class

    @property
    def descriptor(self) -> descriptor.Descriptor:
        return self._message_class.DESCRIPTOR

    @property
    def full_name(self) -> str:
        return self._message_class.DESCRIPTOR.full_name

    def parse(self, data: bytes) -> Message:
        """Parse the protobuf wire encoding of the bound type into a new message.

        Raises:
          google.protobuf.message.DecodeError: if the bytes are not a valid encoding
        """
        return self._message_class.FromString(data)

    def __repr__(self) -> str:
        return f'MessageParser({self.full_name!r})'


def split_type_name(type_name: str) -> str:
    """Get the registry lookup key out of a topic type name.

    'proto:pkg.Foo' -> 'pkg.Foo'. Names without an encoding prefix are returned as-is,
    and a leading '.' (fully-qualified reference syntax) is stripped.
    """
    _, sep, lookup_key = type_name.partition(TYPE_NAME_SEPARATOR)
    if not sep:
        lookup_key = type_name
    return lookup_key.strip().lstrip('.')


def _add_file(
    pool: descriptor_pool.DescriptorPool,
    name: str,
    files: dict[str, descriptor_pb2.FileDescriptorProto],
    added: set[str],
    visiting: set[str],
) -> None:
    """Add a file to the pool after all of its dependencies (depth-first)."""
    if name in added:
        return
    if name in visiting:
        msg = f'Descriptor set contains a dependency cycle through {name!r}'
        raise SchemaError(msg)

    file_proto = files.get(name)
    if file_proto is None:
        # not bundled in the set, fall back to files the process already knows about
        try:
            serialized = descriptor_pool.Default().FindFileByName(name).serialized_pb
        except KeyError as e:
            msg = f'Descriptor set is missing dependency {name!r}'
            raise SchemaError(msg) from e
        file_proto = descriptor_pb2.FileDescriptorProto.FromString(serialized)

    visiting.add(name)
    for dependency in file_proto.dependency:
        _add_file(pool, dependency, files, added, visiting)
    visiting.discard(name)

    try:
        pool.AddSerializedFile(file_proto.SerializeToString())
    except _POOL_ERRORS as e:
        msg = f'Unable to link file {name!r} into the type registry: {e}'
        raise SchemaError(msg) from e
    added.add(name)


def build_registry(
    file_descriptor_set: descriptor_pb2.FileDescriptorSet,
) -> descriptor_pool.DescriptorPool:
    """Build a private type registry spanning every file in the set.

    Files may appear in any order; cross-file references are resolved before this returns.

    Raises:
      SchemaError: a dependency is missing, cyclic, or a file is not a valid descriptor
    """
    files: dict[str, descriptor_pb2.FileDescriptorProto] = {}
    for file_proto in file_descriptor_set.file:
        if file_proto.name in files:
            logger.debug('Ignoring duplicate file %s in descriptor set', file_proto.name)
            continue
        files[file_proto.name] = file_proto

    pool = descriptor_pool.DescriptorPool()
    added: set[str] = set()
    for name in files:
        _add_file(pool, name, files, added, set())
    return pool


def build_parser_from_file_descriptor_set(
    file_descriptor_set: descriptor_pb2.FileDescriptorSet, type_name: str
) -> MessageParser:
    """Same as build_parser(), for callers which already hold a parsed FileDescriptorSet.

    Params:
      file_descriptor_set: the schema bundle
      type_name: fully-qualified message name (no encoding prefix), i.e. 'pkg.Foo'
    """
    if not type_name:
        msg = 'Cannot resolve an empty message type name'
        raise TypeNotFoundError(msg)

    pool = build_registry(file_descriptor_set)
    try:
        message_descriptor = pool.FindMessageTypeByName(type_name)
    except KeyError as e:
        msg = f'Message type {type_name!r} not found in descriptor set'
        raise TypeNotFoundError(msg) from e

    return MessageParser(message_factory.GetMessageClass(message_descriptor))


def build_parser(descriptor_set_bytes: bytes, type_name: str) -> MessageParser:
    """Resolve a message type from a serialized FileDescriptorSet and return a parser for it.

    The same (descriptor_set_bytes, type_name) pair always yields parsers which decode identically.
    The bytes are only read during this call.

    Params:
      descriptor_set_bytes: the serialized FileDescriptorSet
      type_name: fully-qualified message name (no encoding prefix), i.e. 'pkg.Foo'

    Raises:
      SchemaError: if the bytes are not a valid FileDescriptorSet, or its files cannot be linked
      TypeNotFoundError: if type_name is empty or is not defined in the set
    """
    file_descriptor_set = descriptor_pb2.FileDescriptorSet()
    try:
        file_descriptor_set.ParseFromString(bytes(descriptor_set_bytes))
    except (ProtobufDecodeError, UnicodeDecodeError, RecursionError) as e:
        msg = f'Malformed descriptor set ({len(descriptor_set_bytes)} bytes): {e}'
        raise SchemaError(msg) from e

    parser = build_parser_from_file_descriptor_set(file_descriptor_set, type_name)
    logger.debug(
        'Built parser for %s from %d file descriptor(s)',
        parser.full_name,
        len(file_descriptor_set.file),
    )
    return parser
