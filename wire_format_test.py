#!/usr/bin/env python3
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
"""Tests for wire format tag computations."""

import unittest

from google.protobuf import descriptor_pb2

from pw_protobuf_nano import wire_format
from pw_protobuf_nano.wire_format import WireType

_FIELD = descriptor_pb2.FieldDescriptorProto


class TestTags(unittest.TestCase):
    """Tests tag construction and sizing."""

    def test_make_tag(self) -> None:
        self.assertEqual(wire_format.make_tag(1, WireType.VARINT), 8)
        self.assertEqual(
            wire_format.make_tag(3, WireType.LENGTH_DELIMITED), 26
        )

    def test_tag_parts(self) -> None:
        tag = wire_format.make_tag(300, WireType.FIXED32)
        self.assertEqual(wire_format.tag_field_number(tag), 300)
        self.assertEqual(wire_format.tag_wire_type(tag), WireType.FIXED32)

    def test_tag_size(self) -> None:
        self.assertEqual(wire_format.tag_size(1), 1)
        self.assertEqual(wire_format.tag_size(15), 1)
        self.assertEqual(wire_format.tag_size(16), 2)
        self.assertEqual(wire_format.tag_size(2047), 2)
        self.assertEqual(wire_format.tag_size(2048), 3)
        self.assertEqual(wire_format.tag_size(536870911), 5)


class TestVarintSize(unittest.TestCase):
    """Tests varint size computations."""

    def test_raw_varint32_size(self) -> None:
        self.assertEqual(wire_format.raw_varint32_size(0), 1)
        self.assertEqual(wire_format.raw_varint32_size(127), 1)
        self.assertEqual(wire_format.raw_varint32_size(128), 2)
        self.assertEqual(wire_format.raw_varint32_size(0xFFFFFFFF), 5)

    def test_raw_varint32_size_negative_uses_low_bits(self) -> None:
        self.assertEqual(wire_format.raw_varint32_size(-1), 5)

    def test_raw_varint64_size(self) -> None:
        self.assertEqual(wire_format.raw_varint64_size(0), 1)
        self.assertEqual(wire_format.raw_varint64_size(1 << 35), 6)
        self.assertEqual(wire_format.raw_varint64_size(-1), 10)


class TestFieldWireType(unittest.TestCase):
    """Tests choosing the wire type of a field's tag."""

    def test_enum_is_varint(self) -> None:
        self.assertEqual(
            wire_format.field_wire_type(_FIELD.TYPE_ENUM, packed=False),
            WireType.VARINT,
        )

    def test_packed_is_length_delimited(self) -> None:
        self.assertEqual(
            wire_format.field_wire_type(_FIELD.TYPE_ENUM, packed=True),
            WireType.LENGTH_DELIMITED,
        )

    def test_other_types(self) -> None:
        self.assertEqual(
            wire_format.wire_type_for_field_type(_FIELD.TYPE_DOUBLE),
            WireType.FIXED64,
        )
        self.assertEqual(
            wire_format.wire_type_for_field_type(_FIELD.TYPE_SFIXED32),
            WireType.FIXED32,
        )
        self.assertEqual(
            wire_format.wire_type_for_field_type(_FIELD.TYPE_STRING),
            WireType.LENGTH_DELIMITED,
        )
        self.assertEqual(
            wire_format.wire_type_for_field_type(_FIELD.TYPE_GROUP),
            WireType.START_GROUP,
        )


if __name__ == '__main__':
    unittest.main()
