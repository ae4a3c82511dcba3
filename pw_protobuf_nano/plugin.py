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
"""pw_protobuf_nano compiler plugin.

This file implements a protobuf compiler plugin which generates compact Python
modules for protobuf enums and enum fields. Enums are emitted as int constants
and messages as classes deriving from pw_protobuf_nano.runtime.MessageNano.
"""

from argparse import ArgumentParser, Namespace
import logging
import sys
from shlex import shlex

from google.protobuf.compiler import plugin_pb2

from pw_protobuf_nano import codegen_nano
from pw_protobuf_nano.proto_tree import ProtoNode, ProtoPackage
from pw_protobuf_nano.proto_tree import build_node_tree

_LOG = logging.getLogger(__name__)


def parse_parameter_options(parameter: str) -> Namespace:
    """Parses parameters passed through from protoc.

    These parameters come in via passing `--${NAME}_opt` parameters to protoc,
    where protoc-gen-${NAME} is the supplied name of the plugin.
    """
    parser = ArgumentParser()
    parser.add_argument(
        '--enum-style',
        dest='enum_style',
        action='store_true',
        help='Wrap the constants of each enum in a class named after the enum',
    )
    parser.add_argument(
        '--runtime-module',
        dest='runtime_module',
        default=codegen_nano.DEFAULT_RUNTIME_MODULE,
        help='Module imported by generated code as its runtime',
    )
    parser.add_argument(
        '--verbose',
        dest='verbose',
        action='store_true',
        help='Log debug messages to stderr',
    )

    # protoc passes the custom arguments in shell quoted form, separated by
    # commas. Use shlex to split them, correctly handling quoted sections, with
    # equivalent options to IFS=","
    lex = shlex(parameter)
    lex.whitespace_split = True
    lex.whitespace = ','
    lex.commenters = ''
    args = list(lex)

    return parser.parse_args(args)


def build_package_roots(
    req: plugin_pb2.CodeGeneratorRequest,
) -> dict[str, ProtoNode]:
    """Builds one node tree for every file in the request.

    Returns a mapping of .proto file name to the node of the file's package.
    """
    global_root = ProtoPackage('')
    package_roots: dict[str, ProtoNode] = {}

    # protoc lists imported files before the files that import them.
    for proto_file in req.proto_file:
        _, package_root = build_node_tree(proto_file, global_root)
        package_roots[proto_file.name] = package_root

    return package_roots


def process_proto_request(
    req: plugin_pb2.CodeGeneratorRequest, res: plugin_pb2.CodeGeneratorResponse
) -> bool:
    """Handles a protoc CodeGeneratorRequest message.

    Generates code for the files in the request and writes the output to the
    specified CodeGeneratorResponse message.

    Args:
      req: A CodeGeneratorRequest for a proto compilation.
      res: A CodeGeneratorResponse to populate with the plugin's output.
    """

    success = True

    args = parse_parameter_options(req.parameter)
    if args.verbose:
        logging.getLogger('pw_protobuf_nano').setLevel(logging.DEBUG)

    codegen_options = codegen_nano.GeneratorOptions(
        enum_style=args.enum_style,
        runtime_module=args.runtime_module,
    )

    package_roots = build_package_roots(req)
    proto_files = {proto_file.name: proto_file for proto_file in req.proto_file}

    for file_name in req.file_to_generate:
        output_files = codegen_nano.process_proto_file(
            proto_files[file_name],
            package_roots[file_name],
            codegen_options,
        )

        if output_files is not None:
            for output_file in output_files:
                fd = res.file.add()
                fd.name = output_file.name()
                fd.content = output_file.content()
        else:
            success = False

    return success


def main() -> int:
    """Protobuf compiler plugin entrypoint.

    Reads a CodeGeneratorRequest proto from stdin and writes a
    CodeGeneratorResponse to stdout.
    """
    # protoc captures stdout, so logs go to stderr.
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.INFO,
        format='%(levelname)s %(name)s: %(message)s',
    )

    data = sys.stdin.buffer.read()
    request = plugin_pb2.CodeGeneratorRequest.FromString(data)
    response = plugin_pb2.CodeGeneratorResponse()

    if not process_proto_request(request, response):
        _LOG.error('pw_protobuf_nano failed to generate protobuf code')
        return 1

    sys.stdout.buffer.write(response.SerializeToString())
    return 0


if __name__ == '__main__':
    sys.exit(main())
