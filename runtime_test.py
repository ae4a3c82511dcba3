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
"""Tests the runtime used by generated message classes."""

import unittest

from pw_protobuf_nano import runtime


class TestCodedOutputStream(unittest.TestCase):
    """Tests encoding primitives."""

    def test_write_raw_varint32(self) -> None:
        output = runtime.CodedOutputStream()
        output.write_raw_varint32(300)
        self.assertEqual(output.to_bytes(), b'\xac\x02')

    def test_write_int32_negative_is_sign_extended(self) -> None:
        output = runtime.CodedOutputStream()
        output.write_int32_no_tag(-3)
        self.assertEqual(output.to_bytes(), b'\xfd' + b'\xff' * 8 + b'\x01')
        self.assertEqual(len(output), runtime.compute_int32_size_no_tag(-3))

    def test_sizes_match_written_bytes(self) -> None:
        for value in (0, 1, 127, 128, 16383, 16384, 2**31 - 1, -1, -2**31):
            output = runtime.CodedOutputStream()
            output.write_int32_no_tag(value)
            self.assertEqual(
                len(output), runtime.compute_int32_size_no_tag(value), value
            )


class TestCodedInputStream(unittest.TestCase):
    """Tests decoding primitives."""

    def test_read_tag_at_end_returns_zero(self) -> None:
        self.assertEqual(runtime.CodedInputStream(b'').read_tag(), 0)

    def test_read_zero_tag_raises(self) -> None:
        with self.assertRaises(runtime.InvalidTagError):
            runtime.CodedInputStream(b'\x00').read_tag()

    def test_read_int32(self) -> None:
        stream = runtime.CodedInputStream(
            b'\x07' + b'\xfd' + b'\xff' * 8 + b'\x01' + b'\xac\x02'
        )
        self.assertEqual(stream.read_int32(), 7)
        self.assertEqual(stream.read_int32(), -3)
        self.assertEqual(stream.read_int32(), 300)
        self.assertTrue(stream.is_at_end())

    def test_truncated_varint(self) -> None:
        with self.assertRaises(runtime.TruncatedMessageError):
            runtime.CodedInputStream(b'\xff\xff').read_int32()

    def test_malformed_varint(self) -> None:
        with self.assertRaises(runtime.MalformedVarintError):
            runtime.CodedInputStream(b'\xff' * 10 + b'\x01').read_int32()

    def test_push_limit_beyond_input(self) -> None:
        stream = runtime.CodedInputStream(b'\x01\x02')
        with self.assertRaises(runtime.TruncatedMessageError):
            stream.push_limit(3)

    def test_push_limit_negative(self) -> None:
        stream = runtime.CodedInputStream(b'\x01\x02')
        with self.assertRaises(runtime.NegativeSizeError):
            stream.push_limit(-1)

    def test_limits_nest(self) -> None:
        stream = runtime.CodedInputStream(b'\x01\x02\x03')
        limit = stream.push_limit(2)
        self.assertEqual(stream.bytes_until_limit(), 2)
        stream.read_int32()
        stream.read_int32()
        self.assertTrue(stream.is_at_end())
        with self.assertRaises(runtime.TruncatedMessageError):
            stream.read_int32()

        stream.pop_limit(limit)
        self.assertEqual(stream.read_int32(), 3)

    def test_rewind_forward_raises(self) -> None:
        stream = runtime.CodedInputStream(b'\x01')
        with self.assertRaises(ValueError):
            stream.rewind_to_position(1)

    def test_skip_field_wire_types(self) -> None:
        data = b''.join(
            [
                b'\x08\x96\x01',  # field 1, varint
                b'\x11' + bytes(8),  # field 2, fixed64
                b'\x1a\x02ab',  # field 3, length-delimited
                b'\x25' + bytes(4),  # field 4, fixed32
                b'\x28\x05',  # field 5, varint
            ]
        )
        stream = runtime.CodedInputStream(data)
        for _ in range(4):
            self.assertTrue(stream.skip_field(stream.read_tag()))

        self.assertEqual(stream.read_tag(), 0x28)
        self.assertEqual(stream.read_int32(), 5)

    def test_skip_group(self) -> None:
        stream = runtime.CodedInputStream(b'\x2b\x08\x01\x2c\x08\x07')
        tag = stream.read_tag()
        self.assertTrue(stream.skip_field(tag))
        self.assertEqual(stream.read_tag(), 8)
        self.assertEqual(stream.read_int32(), 7)

    def test_skip_group_with_wrong_end_tag(self) -> None:
        stream = runtime.CodedInputStream(b'\x2b\x08\x01\x34')
        with self.assertRaises(runtime.InvalidEndTagError):
            stream.skip_field(stream.read_tag())

    def test_end_group_stops_skipping(self) -> None:
        stream = runtime.CodedInputStream(b'\x2c')
        self.assertFalse(stream.skip_field(stream.read_tag()))

    def test_invalid_wire_type(self) -> None:
        stream = runtime.CodedInputStream(b'\x0e')
        with self.assertRaises(runtime.InvalidWireTypeError):
            stream.skip_field(stream.read_tag())


class TestArrayLengthHelpers(unittest.TestCase):
    """Tests the lookahead helpers used to size repeated fields."""

    def test_repeated_field_array_length(self) -> None:
        # Three occurrences of field 2, then field 1.
        stream = runtime.CodedInputStream(b'\x10\x01\x10\x02\x10\x03\x08\x01')
        tag = stream.read_tag()
        start = stream.position()

        self.assertEqual(
            runtime.get_repeated_field_array_length(stream, tag), 3
        )
        self.assertEqual(stream.position(), start)

    def test_repeated_field_array_length_single(self) -> None:
        stream = runtime.CodedInputStream(b'\x10\x01')
        tag = stream.read_tag()
        self.assertEqual(
            runtime.get_repeated_field_array_length(stream, tag), 1
        )

    def test_repeated_field_array_length_stops_at_limit(self) -> None:
        stream = runtime.CodedInputStream(b'\x10\x01\x10\x02')
        limit = stream.push_limit(2)
        tag = stream.read_tag()
        self.assertEqual(
            runtime.get_repeated_field_array_length(stream, tag), 1
        )
        stream.pop_limit(limit)

    def test_packed_repeated_field_array_length(self) -> None:
        stream = runtime.CodedInputStream(b'\x01\xac\x02\x03\x09')
        limit = stream.push_limit(4)

        self.assertEqual(
            runtime.get_packed_repeated_field_array_length(stream), 3
        )
        self.assertEqual(stream.position(), 0)
        stream.pop_limit(limit)


if __name__ == '__main__':
    unittest.main()
