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
"""This module defines data structures for protobuf entities."""

import abc
import collections
from dataclasses import dataclass
import enum
import logging
from typing import Callable, Iterator, TypeVar, cast

from google.protobuf import descriptor_pb2

T = TypeVar('T')  # pylint: disable=invalid-name

_LOG = logging.getLogger(__name__)


class ProtoNode(abc.ABC):
    """A ProtoNode represents a Python scope mapping of a .proto entity.

    Nodes form a tree beginning at a top-level (global) scope, descending into a
    hierarchy of .proto packages and the messages and enums defined within them.
    """

    class Type(enum.Enum):
        """The type of a ProtoNode.

        PACKAGE maps to a generated Python module.
        MESSAGE maps to a Python class deriving from runtime.MessageNano.
        ENUM maps to integer constants within its parent's scope.
        EXTERNAL represents a node defined within a different compilation unit.
        """

        PACKAGE = 1
        MESSAGE = 2
        ENUM = 3
        EXTERNAL = 4

    def __init__(self, name: str):
        self._name: str = name
        self._children: dict[str, 'ProtoNode'] = collections.OrderedDict()
        self._parent: 'ProtoNode | None' = None

    @abc.abstractmethod
    def type(self) -> 'ProtoNode.Type':
        """The type of the node."""

    def children(self) -> list['ProtoNode']:
        return list(self._children.values())

    def name(self) -> str:
        return self._name

    def proto_path(self) -> str:
        """Fully-qualified package path of the node."""
        path = '.'.join(self._attr_hierarchy(lambda node: node.name(), None))
        return path.lstrip('.')

    def add_child(self, child: 'ProtoNode') -> None:
        """Inserts a new node into the tree as a child of this node.

        Args:
          child: The node to insert.

        Raises:
          ValueError: This node does not allow nesting the given type of child.
        """
        if not self._supports_child(child):
            raise ValueError(
                'Invalid child %s for node of type %s'
                % (child.type(), self.type())
            )

        # pylint: disable=protected-access
        if child._parent is not None:
            del child._parent._children[child.name()]

        child._parent = self
        self._children[child.name()] = child
        # pylint: enable=protected-access

    def find(self, path: str) -> 'ProtoNode | None':
        """Finds a node within this node's subtree."""
        node = self

        # pylint: disable=protected-access
        for section in path.split('.'):
            child = node._children.get(section)
            if child is None:
                return None
            node = child
        # pylint: enable=protected-access

        return node

    def parent(self) -> 'ProtoNode | None':
        return self._parent

    def _attr_hierarchy(
        self,
        attr_accessor: Callable[['ProtoNode'], T],
        root: 'ProtoNode | None',
    ) -> Iterator[T]:
        """Fetches node attributes at each level of the tree from the root.

        Args:
          attr_accessor: Function which extracts attributes from a ProtoNode.
          root: The node at which to terminate.

        Returns:
          An iterator to a list of the selected attributes from the root to the
          current node.
        """
        hierarchy = []
        node: 'ProtoNode | None' = self
        while node is not None and node != root:
            hierarchy.append(attr_accessor(node))
            node = node.parent()
        return reversed(hierarchy)

    @abc.abstractmethod
    def _supports_child(self, child: 'ProtoNode') -> bool:
        """Returns True if child is a valid child type for the current node."""


class ProtoPackage(ProtoNode):
    """A protobuf package."""

    def type(self) -> ProtoNode.Type:
        return ProtoNode.Type.PACKAGE

    def _supports_child(self, child: ProtoNode) -> bool:
        return True


@dataclass(frozen=True)
class ProtoEnumValue:
    """A single declared value of a protobuf enum.

    Several values of one enum may share a number; index is the position of
    the value in its enum's declaration order.
    """

    name: str
    number: int
    index: int
    enum_name: str


class ProtoEnum(ProtoNode):
    """Representation of an enum in a .proto file."""

    def __init__(self, name: str):
        super().__init__(name)
        self._values: list[ProtoEnumValue] = []

    def type(self) -> ProtoNode.Type:
        return ProtoNode.Type.ENUM

    def values(self) -> list[ProtoEnumValue]:
        return list(self._values)

    def add_value(self, name: str, number: int) -> ProtoEnumValue:
        value = ProtoEnumValue(name, number, len(self._values), self.name())
        self._values.append(value)
        return value

    def find_value_by_number(self, number: int) -> ProtoEnumValue | None:
        """Returns the first declared value with the given number."""
        for value in self._values:
            if value.number == number:
                return value
        return None

    def find_value_by_name(self, name: str) -> ProtoEnumValue | None:
        for value in self._values:
            if value.name == name:
                return value
        return None

    def default_value(self) -> ProtoEnumValue | None:
        """The value a field of this enum holds when no default is given."""
        return self._values[0] if self._values else None

    def _supports_child(self, child: ProtoNode) -> bool:
        # Enums cannot have nested children.
        return False


class ProtoMessage(ProtoNode):
    """Representation of a message in a .proto file."""

    def __init__(self, name: str):
        super().__init__(name)
        self._fields: list['ProtoMessageField'] = []

    def type(self) -> ProtoNode.Type:
        return ProtoNode.Type.MESSAGE

    def fields(self) -> list['ProtoMessageField']:
        return list(self._fields)

    def add_field(self, field: 'ProtoMessageField') -> None:
        self._fields.append(field)

    def _supports_child(self, child: ProtoNode) -> bool:
        return (
            child.type() == self.Type.ENUM or child.type() == self.Type.MESSAGE
        )


class ProtoExternal(ProtoNode):
    """A node from a different compilation unit.

    An external node is one that isn't defined within the current compilation
    unit, most likely as it comes from an imported proto file. Its type is not
    known, so it does not have any members or additional data. Its purpose
    within the node graph is to provide namespace resolution between compile
    units.
    """

    def type(self) -> ProtoNode.Type:
        return ProtoNode.Type.EXTERNAL

    def _supports_child(self, child: ProtoNode) -> bool:
        return True


# This class is not a node and does not appear in the proto tree.
# Fields belong to proto messages and are processed separately.
class ProtoMessageField:
    """Representation of a field within a protobuf message."""

    def __init__(
        self,
        field_name: str,
        field_number: int,
        field_type: int,
        type_node: ProtoNode | None = None,
        repeated: bool = False,
        packed: bool = False,
        default_value: str | None = None,
        message: ProtoMessage | None = None,
    ):
        self._field_name = field_name
        self._number: int = field_number
        self._type: int = field_type
        self._type_node: ProtoNode | None = type_node
        self._repeated: bool = repeated
        self._packed: bool = packed
        self._default_value: str | None = default_value
        self._message: ProtoMessage | None = message

    def name(self) -> str:
        return self._field_name

    def capitalized_name(self) -> str:
        return self.upper_camel_case(self._field_name)

    def number(self) -> int:
        return self._number

    def type(self) -> int:
        return self._type

    def type_node(self) -> ProtoNode | None:
        return self._type_node

    def is_repeated(self) -> bool:
        return self._repeated

    def is_packed(self) -> bool:
        return self._repeated and self._packed

    def message(self) -> ProtoMessage | None:
        return self._message

    def default_value(self) -> str | None:
        """The name of the field's explicit default, if one was declared."""
        return self._default_value

    def default_number(self) -> int:
        """Returns the number of the value the field holds when unset."""
        enum_node = self._type_node
        if enum_node is None or enum_node.type() != ProtoNode.Type.ENUM:
            _LOG.warning(
                'Enum type of field %s is not in this request; '
                'defaulting to 0',
                self._field_name,
            )
            return 0

        enum_node = cast(ProtoEnum, enum_node)
        if self._default_value:
            value = enum_node.find_value_by_name(self._default_value)
        else:
            value = enum_node.default_value()

        return value.number if value is not None else 0

    @staticmethod
    def upper_camel_case(field_name: str) -> str:
        """Converts a field name to UpperCamelCase."""
        name_components = field_name.split('_')
        for i, _ in enumerate(name_components):
            name_components[i] = name_components[i].lower().capitalize()
        return ''.join(name_components)


def _add_enum_values(enum_node: ProtoNode, proto_enum) -> None:
    """Adds values from a protobuf enum descriptor to an enum node."""
    assert enum_node.type() == ProtoNode.Type.ENUM
    enum_node = cast(ProtoEnum, enum_node)

    for value in proto_enum.value:
        enum_node.add_value(value.name, value.number)


def _create_external_nodes(root: ProtoNode, path: str) -> ProtoNode:
    """Creates external nodes for a path starting from the given root."""

    node = root
    for part in path.split('.'):
        child = node.find(part)
        if not child:
            child = ProtoExternal(part)
            node.add_child(child)
        node = child

    return node


def _find_or_create_node(
    global_root: ProtoNode, package_root: ProtoNode, path: str
) -> ProtoNode:
    """Searches the proto tree for a node by path, creating it if not found."""

    if path[0] == '.':
        # Fully qualified path.
        root_relative_path = path[1:]
        search_root = global_root
    else:
        root_relative_path = path
        search_root = package_root

    node = search_root.find(root_relative_path)
    if node is None:
        # Create nodes for field types that don't exist within this
        # compilation context, such as those imported from other .proto
        # files.
        node = _create_external_nodes(search_root, root_relative_path)

    return node


def _resolve_packed_feature(features, inherited: bool) -> bool:
    """Applies a repeated_field_encoding feature over the inherited value."""
    if features.HasField('repeated_field_encoding'):
        return (
            features.repeated_field_encoding
            == descriptor_pb2.FeatureSet.PACKED
        )
    return inherited


def _file_packs_by_default(proto_file) -> bool:
    syntax = proto_file.syntax or 'proto2'
    if syntax == 'editions':
        # Editions pack repeated fields unless a feature says otherwise.
        return _resolve_packed_feature(proto_file.options.features, True)

    # Repeated scalar fields in proto3 are packed unless stated otherwise.
    return syntax == 'proto3'


def _is_packed(field, packed_by_default: bool) -> bool:
    if field.label != descriptor_pb2.FieldDescriptorProto.LABEL_REPEATED:
        return False

    if field.options.HasField('packed'):
        return field.options.packed

    return _resolve_packed_feature(field.options.features, packed_by_default)


def _add_message_fields(
    global_root: ProtoNode,
    package_root: ProtoNode,
    message: ProtoNode,
    proto_message,
    packed_by_default: bool,
) -> None:
    """Adds fields from a protobuf message descriptor to a message node."""
    assert message.type() == ProtoNode.Type.MESSAGE
    message = cast(ProtoMessage, message)

    type_node: ProtoNode | None

    for field in proto_message.field:
        if field.type_name:
            # The "type_name" member contains the global .proto path of the
            # field's type object, for example ".pw.protobuf.test.Color".
            # Try to find the node for this object within the current context.
            type_node = _find_or_create_node(
                global_root, package_root, field.type_name
            )
        else:
            type_node = None

        default_value = None
        if field.HasField('default_value'):
            default_value = field.default_value

        repeated = (
            field.label == descriptor_pb2.FieldDescriptorProto.LABEL_REPEATED
        )
        message.add_field(
            ProtoMessageField(
                field.name,
                field.number,
                field.type,
                type_node,
                repeated,
                _is_packed(field, packed_by_default),
                default_value,
                message,
            )
        )


def _populate_fields(
    proto_file, global_root: ProtoNode, package_root: ProtoNode
) -> None:
    """Traverses a proto file, adding all message and enum fields to a tree."""
    file_packed = _file_packs_by_default(proto_file)

    def populate_message(node, message, packed_by_default):
        """Recursively populates nested messages and enums."""
        packed_by_default = _resolve_packed_feature(
            message.options.features, packed_by_default
        )
        _add_message_fields(
            global_root, package_root, node, message, packed_by_default
        )

        for proto_enum in message.enum_type:
            _add_enum_values(node.find(proto_enum.name), proto_enum)
        for msg in message.nested_type:
            if not msg.options.map_entry:
                populate_message(node.find(msg.name), msg, packed_by_default)

    # Iterate through the proto file, populating top-level objects.
    for proto_enum in proto_file.enum_type:
        enum_node = package_root.find(proto_enum.name)
        assert enum_node is not None
        _add_enum_values(enum_node, proto_enum)

    for message in proto_file.message_type:
        populate_message(
            package_root.find(message.name), message, file_packed
        )


def _build_hierarchy(proto_file, global_root: ProtoNode) -> ProtoNode:
    """Adds a proto file's packages, messages and enums to a node tree."""

    package_root = global_root

    if proto_file.package:
        for part in proto_file.package.split('.'):
            package = package_root.find(part)
            if package is None:
                package = ProtoPackage(part)
                package_root.add_child(package)
            package_root = package

    def build_message_subtree(proto_message):
        node = ProtoMessage(proto_message.name)
        for proto_enum in proto_message.enum_type:
            node.add_child(ProtoEnum(proto_enum.name))
        for submessage in proto_message.nested_type:
            # Map entries are synthesized messages handled by other field
            # generators.
            if submessage.options.map_entry:
                continue
            node.add_child(build_message_subtree(submessage))

        return node

    for proto_enum in proto_file.enum_type:
        package_root.add_child(ProtoEnum(proto_enum.name))

    for message in proto_file.message_type:
        package_root.add_child(build_message_subtree(message))

    return package_root


def build_node_tree(
    file_descriptor_proto, global_root: ProtoNode | None = None
) -> tuple[ProtoNode, ProtoNode]:
    """Constructs a tree of proto nodes from a file descriptor.

    Several files may share one tree by passing the same global_root; this
    lets fields refer to enums declared in files they import. Files must be
    added after the files they import, which is the order protoc lists them
    in a CodeGeneratorRequest.

    Returns the root node of the entire proto package tree and the node
    representing the file's package.
    """
    if global_root is None:
        global_root = ProtoPackage('')

    package_root = _build_hierarchy(file_descriptor_proto, global_root)
    _populate_fields(file_descriptor_proto, global_root, package_root)
    return global_root, package_root
