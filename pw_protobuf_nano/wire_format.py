# Copyright 2024 The Pigweed Authors
#
# Licensed under the Apache License, Version 2.0 (the "License"); you may not
# use this file except in compliance with the License. You may obtain a copy of
# the License at
#
#     https://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS, WITHOUT
# WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the
# License for the specific language governing permissions and limitations under
# the License.
"""Protobuf wire format constants and tag computations."""

import enum

from google.protobuf import descriptor_pb2

TAG_TYPE_BITS = 3
TAG_TYPE_MASK = (1 << TAG_TYPE_BITS) - 1


class WireType(enum.IntEnum):
    """Wire types as they appear in the low bits of a tag."""

    VARINT = 0
    FIXED64 = 1
    LENGTH_DELIMITED = 2
    START_GROUP = 3
    END_GROUP = 4
    FIXED32 = 5


_FIXED64_TYPES = frozenset(
    [
        descriptor_pb2.FieldDescriptorProto.TYPE_DOUBLE,
        descriptor_pb2.FieldDescriptorProto.TYPE_FIXED64,
        descriptor_pb2.FieldDescriptorProto.TYPE_SFIXED64,
    ]
)

_FIXED32_TYPES = frozenset(
    [
        descriptor_pb2.FieldDescriptorProto.TYPE_FLOAT,
        descriptor_pb2.FieldDescriptorProto.TYPE_FIXED32,
        descriptor_pb2.FieldDescriptorProto.TYPE_SFIXED32,
    ]
)

_LENGTH_DELIMITED_TYPES = frozenset(
    [
        descriptor_pb2.FieldDescriptorProto.TYPE_STRING,
        descriptor_pb2.FieldDescriptorProto.TYPE_BYTES,
        descriptor_pb2.FieldDescriptorProto.TYPE_MESSAGE,
    ]
)


def make_tag(field_number: int, wire_type: int) -> int:
    """Combines a field number and wire type into a tag."""
    return (field_number << TAG_TYPE_BITS) | wire_type


def tag_wire_type(tag: int) -> int:
    return tag & TAG_TYPE_MASK


def tag_field_number(tag: int) -> int:
    return tag >> TAG_TYPE_BITS


def raw_varint32_size(value: int) -> int:
    """Returns the number of bytes needed to encode an unsigned 32-bit value."""
    value &= 0xFFFFFFFF
    if value < 1 << 7:
        return 1
    if value < 1 << 14:
        return 2
    if value < 1 << 21:
        return 3
    if value < 1 << 28:
        return 4
    return 5


def raw_varint64_size(value: int) -> int:
    """Returns the number of bytes needed to encode an unsigned 64-bit value."""
    value &= 0xFFFFFFFFFFFFFFFF
    size = 1
    while value >= 0x80:
        value >>= 7
        size += 1
    return size


def tag_size(field_number: int) -> int:
    """Size of a field's tag; the wire type does not affect it."""
    return raw_varint32_size(make_tag(field_number, 0))


def wire_type_for_field_type(field_type: int) -> WireType:
    """Returns the wire type used for a single value of a field type."""
    if field_type in _FIXED64_TYPES:
        return WireType.FIXED64
    if field_type in _FIXED32_TYPES:
        return WireType.FIXED32
    if field_type in _LENGTH_DELIMITED_TYPES:
        return WireType.LENGTH_DELIMITED
    if field_type == descriptor_pb2.FieldDescriptorProto.TYPE_GROUP:
        return WireType.START_GROUP
    return WireType.VARINT


def field_wire_type(field_type: int, packed: bool) -> WireType:
    """Returns the wire type a field's tag is written with.

    Packed repeated fields are always length-delimited, regardless of the type
    of their elements.
    """
    if packed:
        return WireType.LENGTH_DELIMITED
    return wire_type_for_field_type(field_type)
