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
"""Generates storage, merging, parsing and encoding code for enum fields.

Each generator writes fragments into the methods of a generated message
class. The fragments use these names from the surrounding method:

  self            the message being generated
  other           the message being merged from (merging code)
  input_stream    a runtime.CodedInputStream (parsing code)
  output          a runtime.CodedOutputStream (serialization code)
  size            the running size total (size code)
  memoized_sizes  dict of packed payload sizes filled by the size code and
                  read by the serialization code
"""

import abc
from typing import Callable

from pw_protobuf_nano import wire_format
from pw_protobuf_nano.output_file import OutputFile
from pw_protobuf_nano.proto_tree import ProtoMessageField


def set_enum_variables(field: ProtoMessageField) -> dict[str, str]:
    """Returns the template variables shared by an enum field's fragments."""
    wire_type = wire_format.field_wire_type(field.type(), field.is_packed())

    return {
        'name': field.name(),
        'capitalized_name': field.capitalized_name(),
        'number': str(field.number()),
        'type': 'int',
        'default': str(field.default_number()),
        'tag': str(wire_format.make_tag(field.number(), wire_type)),
        'tag_size': str(wire_format.tag_size(field.number())),
    }


class FieldGenerator(abc.ABC):
    """Base class for the code generator of one message field."""

    def __init__(self, field: ProtoMessageField):
        self._field = field
        self._variables = set_enum_variables(field)

    def field(self) -> ProtoMessageField:
        return self._field

    def variables(self) -> dict[str, str]:
        return dict(self._variables)

    def tag(self) -> int:
        """The tag which starts this field's parsing code."""
        return int(self._variables['tag'])

    def parsing_cases(self) -> list[tuple[int, Callable[[OutputFile], None]]]:
        """Returns each tag the field is read from with its parsing code."""
        return [(self.tag(), self.generate_parsing_code)]

    @abc.abstractmethod
    def generate_members(self, output: OutputFile) -> None:
        """Initializes the field's storage in __init__."""

    @abc.abstractmethod
    def generate_merging_code(self, output: OutputFile) -> None:
        """Merges the field from other into self."""

    @abc.abstractmethod
    def generate_parsing_code(self, output: OutputFile) -> None:
        """Reads the field after its tag has been read."""

    @abc.abstractmethod
    def generate_serialization_code(self, output: OutputFile) -> None:
        """Writes the field, including its tag."""

    @abc.abstractmethod
    def generate_serialized_size_code(self, output: OutputFile) -> None:
        """Adds the field's encoded size to size."""


class EnumFieldGenerator(FieldGenerator):
    """Generates code for a singular enum field stored as an int.

    The field is only written when it differs from its default, so a field
    set to its default is indistinguishable from an unset one.
    """

    def generate_members(self, output: OutputFile) -> None:
        output.write_template('self.{name} = {default}', self._variables)

    def generate_merging_code(self, output: OutputFile) -> None:
        output.write_template(
            'if other.has_{name}():\n'
            '    self.{name} = other.{name}',
            self._variables,
        )

    def generate_parsing_code(self, output: OutputFile) -> None:
        output.write_template(
            'self.{name} = input_stream.read_int32()', self._variables
        )

    def generate_serialization_code(self, output: OutputFile) -> None:
        output.write_template(
            'if self.{name} != {default}:\n'
            '    output.write_raw_varint32({tag})\n'
            '    output.write_int32_no_tag(self.{name})',
            self._variables,
        )

    def generate_serialized_size_code(self, output: OutputFile) -> None:
        output.write_template(
            'if self.{name} != {default}:\n'
            '    size += {tag_size}\n'
            '    size += runtime.compute_int32_size_no_tag(self.{name})',
            self._variables,
        )


class RepeatedEnumFieldGenerator(FieldGenerator):
    """Generates code for a repeated enum field stored as a list of ints.

    Packed fields are written behind a single tag and length prefix. The
    length prefix is the payload size recorded in memoized_sizes by the size
    code, which must run first on the same contents.
    """

    def __init__(self, field: ProtoMessageField):
        super().__init__(field)
        number = field.number()
        self._packed_tag = wire_format.make_tag(
            number, wire_format.WireType.LENGTH_DELIMITED
        )
        self._unpacked_tag = wire_format.make_tag(
            number, wire_format.wire_type_for_field_type(field.type())
        )
        self._variables['unpacked_tag'] = str(self._unpacked_tag)

    def generate_members(self, output: OutputFile) -> None:
        output.write_template('self.{name}: list[int] = []', self._variables)

    def generate_merging_code(self, output: OutputFile) -> None:
        output.write_template(
            'if other.{name}:\n'
            '    self.{name}.extend(other.{name})',
            self._variables,
        )

    def parsing_cases(self) -> list[tuple[int, Callable[[OutputFile], None]]]:
        """Accepts both encodings, starting with the declared one.

        Runs from either encoding are appended to the list in the order they
        appear on the wire.
        """
        packed = (self._packed_tag, self.generate_packed_parsing_code)
        unpacked = (self._unpacked_tag, self.generate_unpacked_parsing_code)
        if self._field.is_packed():
            return [packed, unpacked]
        return [unpacked, packed]

    def generate_parsing_code(self, output: OutputFile) -> None:
        if self._field.is_packed():
            self.generate_packed_parsing_code(output)
        else:
            self.generate_unpacked_parsing_code(output)

    def generate_packed_parsing_code(self, output: OutputFile) -> None:
        # First, figure out the length of the array, then parse.
        output.write_template(
            'length = input_stream.read_raw_varint32()\n'
            'limit = input_stream.push_limit(length)\n'
            'array_length = '
            'runtime.get_packed_repeated_field_array_length(input_stream)\n'
            'values = [0] * array_length\n'
            'for i in range(array_length):\n'
            '    values[i] = input_stream.read_int32()\n'
            'input_stream.pop_limit(limit)\n'
            'self.{name}.extend(values)',
            self._variables,
        )

    def generate_unpacked_parsing_code(self, output: OutputFile) -> None:
        output.write_template(
            'array_length = runtime.get_repeated_field_array_length(\n'
            '    input_stream, {unpacked_tag}\n'
            ')\n'
            'values = [0] * array_length\n'
            'for i in range(array_length - 1):\n'
            '    values[i] = input_stream.read_int32()\n'
            '    input_stream.read_tag()\n'
            '# Last one without read_tag.\n'
            'values[-1] = input_stream.read_int32()\n'
            'self.{name}.extend(values)',
            self._variables,
        )

    def generate_serialization_code(self, output: OutputFile) -> None:
        output.write_template('if self.{name}:', self._variables)
        with output.indent():
            if self._field.is_packed():
                output.write_template(
                    'output.write_raw_varint32({tag})\n'
                    "output.write_raw_varint32(memoized_sizes['{name}'])\n"
                    'for element in self.{name}:\n'
                    '    output.write_int32_no_tag(element)',
                    self._variables,
                )
            else:
                output.write_template(
                    'for element in self.{name}:\n'
                    '    output.write_raw_varint32({tag})\n'
                    '    output.write_int32_no_tag(element)',
                    self._variables,
                )

    def generate_serialized_size_code(self, output: OutputFile) -> None:
        output.write_template('if self.{name}:', self._variables)
        with output.indent():
            output.write_template(
                'data_size = 0\n'
                'for element in self.{name}:\n'
                '    data_size += runtime.compute_int32_size_no_tag(element)\n'
                'size += data_size',
                self._variables,
            )
            if self._field.is_packed():
                # Record the payload size for the length prefix.
                output.write_template(
                    'size += {tag_size}\n'
                    'size += runtime.compute_raw_varint32_size(data_size)\n'
                    "memoized_sizes['{name}'] = data_size",
                    self._variables,
                )
            else:
                output.write_template(
                    'size += {tag_size} * len(self.{name})', self._variables
                )

        # Empty packed fields record a zero payload size.
        if self._field.is_packed():
            output.write_template(
                'else:\n'
                "    memoized_sizes['{name}'] = 0",
                self._variables,
            )
