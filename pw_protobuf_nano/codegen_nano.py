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
"""This module assembles generated Python modules for .proto files."""

from dataclasses import dataclass
import logging
import os
from typing import Iterable, cast

from google.protobuf import descriptor_pb2

from pw_protobuf_nano.codegen_enum import EnumGenerator
from pw_protobuf_nano.codegen_enum_field import EnumFieldGenerator
from pw_protobuf_nano.codegen_enum_field import FieldGenerator
from pw_protobuf_nano.codegen_enum_field import RepeatedEnumFieldGenerator
from pw_protobuf_nano.output_file import OutputFile
from pw_protobuf_nano.proto_tree import ProtoEnum, ProtoMessage
from pw_protobuf_nano.proto_tree import ProtoMessageField, ProtoNode

PLUGIN_NAME = 'pw_protobuf_nano'
PLUGIN_VERSION = '0.1.0'

PROTO_PY_SUFFIX = '_nano.py'
DEFAULT_RUNTIME_MODULE = 'pw_protobuf_nano.runtime'

_LOG = logging.getLogger(__name__)


@dataclass
class GeneratorOptions:
    enum_style: bool = False
    runtime_module: str = DEFAULT_RUNTIME_MODULE


class CodegenError(Exception):
    def __init__(
        self,
        error_message: str,
        node: ProtoNode,
        field: ProtoMessageField | None,
    ):
        super().__init__(f'nano codegen error: {error_message}')
        self.error_message = error_message
        self.node = node
        self.field = field

    def formatted_message(self) -> str:
        lines = [
            f'nano codegen error: {self.error_message}',
            f'    at {self.node.proto_path()}',
        ]

        if self.field is not None:
            lines.append(f'    in field {self.field.name()}')

        return '\n'.join(lines)


# Mapping of protobuf field types to their (singular, repeated) generators.
PROTO_FIELD_GENERATORS: dict[int, tuple[type, type]] = {
    descriptor_pb2.FieldDescriptorProto.TYPE_ENUM: (
        EnumFieldGenerator,
        RepeatedEnumFieldGenerator,
    ),
}


def create_field_generator(
    message: ProtoMessage, field: ProtoMessageField
) -> FieldGenerator:
    """Returns the code generator for one of a message's fields."""
    try:
        singular, repeated = PROTO_FIELD_GENERATORS[field.type()]
    except KeyError:
        type_name = descriptor_pb2.FieldDescriptorProto.Type.Name(field.type())
        raise CodegenError(
            f'no generator for fields of type {type_name}', message, field
        ) from None

    if field.is_repeated():
        return repeated(field)
    return singular(field)


def generate_code_for_enum(
    proto_enum: ProtoEnum, output: OutputFile, options: GeneratorOptions
) -> None:
    """Creates int constants for a proto enum."""
    assert proto_enum.type() == ProtoNode.Type.ENUM
    EnumGenerator(proto_enum, enum_style=options.enum_style).generate(output)


def _generate_init(
    generators: list[FieldGenerator], output: OutputFile
) -> None:
    output.write_line('def __init__(self):')
    with output.indent():
        if not generators:
            output.write_line('pass')
        for generator in generators:
            generator.generate_members(output)


def _generate_has_accessors(
    generators: list[FieldGenerator], output: OutputFile
) -> None:
    """Defines has_ accessors used when merging singular fields."""
    for generator in generators:
        if generator.field().is_repeated():
            continue

        output.write_line()
        output.write_template(
            'def has_{name}(self) -> bool:\n'
            '    return self.{name} != {default}',
            generator.variables(),
        )


def _generate_merge_from(
    generators: list[FieldGenerator], output: OutputFile
) -> None:
    output.write_line('def merge_from(self, other):')
    with output.indent():
        for generator in generators:
            generator.generate_merging_code(output)
        output.write_line('return self')


def _generate_merge_from_stream(
    generators: list[FieldGenerator], output: OutputFile
) -> None:
    output.write_line('def merge_from_stream(self, input_stream):')
    with output.indent():
        output.write_line('while True:')
        with output.indent():
            output.write_line('tag = input_stream.read_tag()')
            output.write_line('if tag == 0:')
            with output.indent():
                output.write_line('return')

            keyword = 'if'
            for generator in generators:
                for tag, generate_parsing_code in generator.parsing_cases():
                    output.write_line(f'{keyword} tag == {tag}:')
                    with output.indent():
                        generate_parsing_code(output)
                    keyword = 'elif'

            # Unknown fields are skipped; an end-group tag ends the message.
            output.write_line(f'{keyword} not input_stream.skip_field(tag):')
            with output.indent():
                output.write_line('return')


def _generate_compute_size(
    generators: list[FieldGenerator], output: OutputFile
) -> None:
    output.write_line('def _compute_size(self, memoized_sizes):')
    with output.indent():
        output.write_line('size = 0')
        for generator in generators:
            generator.generate_serialized_size_code(output)
        output.write_line('return size')


def _generate_write_fields(
    generators: list[FieldGenerator], output: OutputFile
) -> None:
    output.write_line('def _write_fields(self, output, memoized_sizes):')
    with output.indent():
        if not generators:
            output.write_line('pass')
        for generator in generators:
            generator.generate_serialization_code(output)


def generate_class_for_message(
    message: ProtoMessage, output: OutputFile, options: GeneratorOptions
) -> None:
    """Creates a Python class for a protobuf message."""
    assert message.type() == ProtoNode.Type.MESSAGE

    generators = [
        create_field_generator(message, field) for field in message.fields()
    ]

    output.write_line(f'class {message.name()}(runtime.MessageNano):')
    with output.indent():
        output.write_line(f'"""Message {message.proto_path()}."""')
        output.write_line()

        for child in message.children():
            if child.type() == ProtoNode.Type.ENUM:
                generate_code_for_enum(cast(ProtoEnum, child), output, options)
            elif child.type() == ProtoNode.Type.MESSAGE:
                generate_class_for_message(
                    cast(ProtoMessage, child), output, options
                )
                output.write_line()

        _generate_init(generators, output)
        _generate_has_accessors(generators, output)
        output.write_line()
        _generate_merge_from(generators, output)
        output.write_line()
        _generate_merge_from_stream(generators, output)
        output.write_line()
        _generate_compute_size(generators, output)
        output.write_line()
        _generate_write_fields(generators, output)


def _proto_filename_to_generated_module(proto_file: str) -> str:
    return os.path.splitext(proto_file)[0] + PROTO_PY_SUFFIX


def generate_code_for_package(
    file_descriptor_proto,
    package: ProtoNode,
    output: OutputFile,
    options: GeneratorOptions,
) -> None:
    """Generates code for the enums and messages declared in a .proto file.

    The package node may hold nodes from other files of the same package;
    only those declared in file_descriptor_proto are generated.
    """
    output.write_line(
        f'# {os.path.basename(output.name())} automatically generated by '
        f'{PLUGIN_NAME} {PLUGIN_VERSION}'
    )
    output.write_line(f'# source: {file_descriptor_proto.name}')
    output.write_line('# pylint: skip-file')
    output.write_line()
    output.write_line(f'import {options.runtime_module} as runtime')
    output.write_line()

    for proto_enum in file_descriptor_proto.enum_type:
        output.write_line()
        node = package.find(proto_enum.name)
        assert node is not None
        generate_code_for_enum(cast(ProtoEnum, node), output, options)

    for proto_message in file_descriptor_proto.message_type:
        output.write_line()
        node = package.find(proto_message.name)
        assert node is not None
        generate_class_for_message(cast(ProtoMessage, node), output, options)


def process_proto_file(
    proto_file,
    package_root: ProtoNode,
    codegen_options: GeneratorOptions,
) -> Iterable[OutputFile] | None:
    """Generates code for a single .proto file.

    Returns None if the file could not be generated; the error is logged.
    """
    output_filename = _proto_filename_to_generated_module(proto_file.name)
    output_file = OutputFile(output_filename)

    try:
        generate_code_for_package(
            proto_file, package_root, output_file, codegen_options
        )
    except CodegenError as e:
        _LOG.error('%s', e.formatted_message())
        return None

    _LOG.debug('Generated %s from %s', output_filename, proto_file.name)
    return [output_file]
