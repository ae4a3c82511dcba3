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
"""Generates integer constants for protobuf enums."""

from dataclasses import dataclass
import logging

from pw_protobuf_nano.output_file import OutputFile
from pw_protobuf_nano.proto_tree import ProtoEnum, ProtoEnumValue

_LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class Alias:
    """An enum value which reuses the number of an earlier declared value."""

    value: ProtoEnumValue
    canonical_value: ProtoEnumValue


class EnumGenerator:
    """Emits one int constant per enum value.

    Among values sharing a number, the first declared one is canonical and is
    assigned the number. Every other value is an alias assigned the canonical
    constant's name, so aliases follow the canonical value if it changes.
    """

    def __init__(self, proto_enum: ProtoEnum, enum_style: bool = False):
        self._enum = proto_enum
        self._enum_style = enum_style
        self._canonical_values: list[ProtoEnumValue] = []
        self._aliases: list[Alias] = []

        canonical_by_number: dict[int, ProtoEnumValue] = {}
        for value in proto_enum.values():
            canonical_by_number.setdefault(value.number, value)

        for value in proto_enum.values():
            canonical_value = canonical_by_number[value.number]
            if value is canonical_value:
                self._canonical_values.append(value)
            else:
                self._aliases.append(Alias(value, canonical_value))

        _LOG.debug(
            'Enum %s: %d canonical values, %d aliases',
            proto_enum.proto_path(),
            len(self._canonical_values),
            len(self._aliases),
        )

    def canonical_values(self) -> list[ProtoEnumValue]:
        return list(self._canonical_values)

    def aliases(self) -> list[Alias]:
        return list(self._aliases)

    def generate(self, output: OutputFile) -> None:
        output.write_line(f'# enum {self._enum.name()}')

        if not self._enum_style:
            self._generate_constants(output)
            output.write_line()
            return

        output.write_line(f'class {self._enum.name()}:')
        with output.indent():
            if not self._canonical_values and not self._aliases:
                output.write_line('pass')
            self._generate_constants(output)
        output.write_line()

    def _generate_constants(self, output: OutputFile) -> None:
        for value in self._canonical_values:
            output.write_line(f'{value.name} = {value.number}')

        for alias in self._aliases:
            output.write_line(
                f'{alias.value.name} = {alias.canonical_value.name}'
            )
