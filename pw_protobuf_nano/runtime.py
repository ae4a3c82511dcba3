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
"""Runtime support for message classes generated by pw_protobuf_nano.

Generated modules import this module as ``runtime`` and call into the coded
streams, size functions and array length helpers defined here. Enum values
are stored as plain ints and encoded as int32 varints.
"""

import abc
from typing import NamedTuple, TypeVar

from pw_protobuf_nano import wire_format
from pw_protobuf_nano.wire_format import WireType

_UINT32_MASK = 0xFFFFFFFF
_UINT64_MASK = 0xFFFFFFFFFFFFFFFF
_MAX_VARINT_BYTES = 10

# Negative int32 values are sign-extended to 64 bits on the wire.
_NEGATIVE_INT32_SIZE = 10


class DecodeError(Exception):
    """The input is not a valid protobuf encoding."""


class TruncatedMessageError(DecodeError):
    def __init__(self):
        super().__init__(
            'While parsing a protocol message, the input ended unexpectedly '
            'in the middle of a field'
        )


class MalformedVarintError(DecodeError):
    def __init__(self):
        super().__init__('Encountered a malformed varint')


class NegativeSizeError(DecodeError):
    def __init__(self):
        super().__init__(
            'Encountered an embedded string or message which claimed to have '
            'negative size'
        )


class InvalidTagError(DecodeError):
    def __init__(self):
        super().__init__('Protocol message contained an invalid tag (zero)')


class InvalidEndTagError(DecodeError):
    def __init__(self):
        super().__init__(
            'Protocol message end-group tag did not match expected tag'
        )


class InvalidWireTypeError(DecodeError):
    def __init__(self, wire_type: int):
        super().__init__(
            f'Protocol message tag had invalid wire type {wire_type}'
        )


class StaleSizeError(ValueError):
    """A message changed after its size was computed."""

    def __init__(self):
        super().__init__(
            'Message contents changed after compute_serialized_size(); '
            'compute the size again before writing'
        )


def _to_int32(value: int) -> int:
    value &= _UINT32_MASK
    return value - (1 << 32) if value & 0x80000000 else value


class CodedInputStream:
    """Reads protobuf primitives from a byte buffer.

    Limits nest: push_limit() restricts reads to the next N bytes and returns
    the previous limit, which pop_limit() restores.
    """

    def __init__(self, data: bytes):
        self._buffer = bytes(data)
        self._position = 0
        self._limit = len(self._buffer)
        self._last_tag = 0

    def read_tag(self) -> int:
        """Reads a field tag, returning 0 at the end of the input."""
        if self.is_at_end():
            self._last_tag = 0
            return 0

        self._last_tag = self.read_raw_varint32() & _UINT32_MASK
        if self._last_tag == 0:
            raise InvalidTagError()
        return self._last_tag

    def check_last_tag_was(self, value: int) -> None:
        if self._last_tag != value:
            raise InvalidEndTagError()

    def skip_field(self, tag: int) -> bool:
        """Skips a field; returns False if the tag was an end-group tag."""
        wire_type = wire_format.tag_wire_type(tag)

        if wire_type == WireType.VARINT:
            self.read_raw_varint64()
        elif wire_type == WireType.FIXED64:
            self.skip_raw_bytes(8)
        elif wire_type == WireType.LENGTH_DELIMITED:
            self.skip_raw_bytes(self.read_raw_varint32())
        elif wire_type == WireType.START_GROUP:
            self.skip_message()
            self.check_last_tag_was(
                wire_format.make_tag(
                    wire_format.tag_field_number(tag), WireType.END_GROUP
                )
            )
        elif wire_type == WireType.END_GROUP:
            return False
        elif wire_type == WireType.FIXED32:
            self.skip_raw_bytes(4)
        else:
            raise InvalidWireTypeError(wire_type)

        return True

    def skip_message(self) -> None:
        """Skips fields until the end of the input or an end-group tag."""
        while True:
            tag = self.read_tag()
            if tag == 0 or not self.skip_field(tag):
                return

    def read_int32(self) -> int:
        return self.read_raw_varint32()

    def read_raw_varint32(self) -> int:
        """Reads a varint and returns its low 32 bits as a signed int."""
        return _to_int32(self.read_raw_varint64())

    def read_raw_varint64(self) -> int:
        """Reads a varint of up to ten bytes as an unsigned 64-bit int."""
        result = 0
        for shift in range(0, 7 * _MAX_VARINT_BYTES, 7):
            byte = self.read_raw_byte()
            result |= (byte & 0x7F) << shift
            if not byte & 0x80:
                return result & _UINT64_MASK

        raise MalformedVarintError()

    def read_raw_byte(self) -> int:
        if self._position == self._limit:
            raise TruncatedMessageError()

        byte = self._buffer[self._position]
        self._position += 1
        return byte

    def skip_raw_bytes(self, size: int) -> None:
        if size < 0:
            raise NegativeSizeError()
        if self._position + size > self._limit:
            raise TruncatedMessageError()
        self._position += size

    def push_limit(self, byte_limit: int) -> int:
        """Restricts reads to the next byte_limit bytes.

        Returns:
          The previous limit, to be passed to pop_limit().
        """
        if byte_limit < 0:
            raise NegativeSizeError()

        byte_limit += self._position
        old_limit = self._limit
        if byte_limit > old_limit:
            raise TruncatedMessageError()

        self._limit = byte_limit
        return old_limit

    def pop_limit(self, old_limit: int) -> None:
        self._limit = old_limit

    def bytes_until_limit(self) -> int:
        return self._limit - self._position

    def is_at_end(self) -> bool:
        return self._position == self._limit

    def position(self) -> int:
        return self._position

    def rewind_to_position(self, position: int) -> None:
        if position < 0 or position > self._position:
            raise ValueError(
                f'Position {position} is beyond the current position '
                f'{self._position}'
            )
        self._position = position


class CodedOutputStream:
    """Writes protobuf primitives to a growable byte buffer."""

    def __init__(self):
        self._buffer = bytearray()

    def write_raw_varint32(self, value: int) -> None:
        self._write_varint(value & _UINT32_MASK)

    def write_raw_varint64(self, value: int) -> None:
        self._write_varint(value & _UINT64_MASK)

    def write_int32_no_tag(self, value: int) -> None:
        if value >= 0:
            self.write_raw_varint32(value)
        else:
            self.write_raw_varint64(value)

    def _write_varint(self, value: int) -> None:
        while value >= 0x80:
            self._buffer.append((value & 0x7F) | 0x80)
            value >>= 7
        self._buffer.append(value)

    def __len__(self) -> int:
        return len(self._buffer)

    def to_bytes(self) -> bytes:
        return bytes(self._buffer)


def compute_raw_varint32_size(value: int) -> int:
    return wire_format.raw_varint32_size(value)


def compute_int32_size_no_tag(value: int) -> int:
    if value >= 0:
        return wire_format.raw_varint32_size(value)
    return _NEGATIVE_INT32_SIZE


def get_repeated_field_array_length(
    input_stream: CodedInputStream, tag: int
) -> int:
    """Counts the consecutive occurrences of an unpacked repeated field.

    The stream must be positioned just after the first occurrence's tag. The
    stream is rewound to that position before returning.
    """
    array_length = 1
    start_position = input_stream.position()
    input_stream.skip_field(tag)
    while input_stream.bytes_until_limit() > 0:
        this_tag = input_stream.read_tag()
        if this_tag != tag:
            break
        input_stream.skip_field(tag)
        array_length += 1
    input_stream.rewind_to_position(start_position)
    return array_length


def get_packed_repeated_field_array_length(
    input_stream: CodedInputStream,
) -> int:
    """Counts the varints between the current position and the limit."""
    array_length = 0
    start_position = input_stream.position()
    while input_stream.bytes_until_limit() > 0:
        input_stream.read_raw_varint64()
        array_length += 1
    input_stream.rewind_to_position(start_position)
    return array_length


class SerializedSize(NamedTuple):
    """The result of a size pass over a message.

    memoized holds the payload length of each packed repeated field, keyed by
    field name, for the serialization pass to write as its length prefix.
    Empty packed fields are recorded as 0. contents is a snapshot of the
    field values the size was computed from.
    """

    total: int
    memoized: dict[str, int]
    contents: tuple


_MessageT = TypeVar('_MessageT', bound='MessageNano')


class MessageNano(abc.ABC):
    """Base class for generated message classes."""

    def compute_serialized_size(self) -> SerializedSize:
        memoized: dict[str, int] = {}
        total = self._compute_size(memoized)
        return SerializedSize(total, memoized, self._contents())

    def serialized_size(self) -> int:
        return self.compute_serialized_size().total

    def write_to(self, output: CodedOutputStream, size: SerializedSize) -> None:
        """Serializes the message using a size computed for its contents.

        Raises:
          StaleSizeError: The message changed since the size was computed.
        """
        if size.contents != self._contents():
            raise StaleSizeError()
        self._write_fields(output, size.memoized)

    def _contents(self) -> tuple:
        return tuple(
            (name, tuple(value) if isinstance(value, list) else value)
            for name, value in sorted(vars(self).items())
        )

    def to_bytes(self) -> bytes:
        size = self.compute_serialized_size()
        output = CodedOutputStream()
        self.write_to(output, size)
        assert len(output) == size.total
        return output.to_bytes()

    def merge_from_bytes(self: _MessageT, data: bytes) -> _MessageT:
        self.merge_from_stream(CodedInputStream(data))
        return self

    @classmethod
    def from_bytes(cls: type[_MessageT], data: bytes) -> _MessageT:
        return cls().merge_from_bytes(data)

    @abc.abstractmethod
    def merge_from(self: _MessageT, other: _MessageT) -> _MessageT:
        """Merges the set fields of another message into this one."""

    @abc.abstractmethod
    def merge_from_stream(self, input_stream: CodedInputStream) -> None:
        """Reads fields from the stream until its end or an end-group tag."""

    @abc.abstractmethod
    def _compute_size(self, memoized_sizes: dict[str, int]) -> int:
        """Returns the encoded size, recording packed payload sizes."""

    @abc.abstractmethod
    def _write_fields(
        self, output: CodedOutputStream, memoized_sizes: dict[str, int]
    ) -> None:
        """Writes all fields using the sizes recorded by _compute_size."""
