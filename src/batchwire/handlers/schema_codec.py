"""
Schema Codec Module.

Serializes a schema as a flat, pre-order list of field nodes: each node holds
a field's name, nullability, type tag and parameters, its child count, its
custom metadata and, for dictionary-encoded fields, the dictionary id and
index type. The walk in both directions runs under the recursion guard.

Decoding resolves every dictionary id against the session's memo: a schema
referencing an id with no registered dictionary is rejected.
"""

from typing import Dict, List, Optional, Tuple, Union

import pyarrow as pa

from ..enum import CURRENT_METADATA_VERSION, MessageKind, MetadataVersion
from ..errors import FormatInvalid
from ..helpers import format_field_path
from ..models.internal.type_mapper import (
    index_type_from_meta,
    type_children,
    type_from_meta,
    type_to_meta,
)
from ..models.metadata import (
    DictionaryEncodingMeta,
    FieldNodeMeta,
    KeyValueMeta,
    SchemaMeta,
)
from .dictionary_memo import DictionaryMemo, FieldPath
from .internal.depth import DEFAULT_MAX_RECURSION_DEPTH, check_depth
from .message import Message, write_message


def _metadata_to_meta(
    metadata: Optional[Dict[bytes, bytes]], owner: str
) -> Optional[List[KeyValueMeta]]:
    """Encodes pyarrow custom metadata; keys and values must be UTF-8."""
    if not metadata:
        return None
    try:
        return [
            KeyValueMeta(key=key.decode("utf-8"), value=value.decode("utf-8"))
            for key, value in metadata.items()
        ]
    except UnicodeDecodeError as e:
        raise FormatInvalid(f"Custom metadata of {owner} is not valid UTF-8") from e


def _metadata_from_meta(
    entries: Optional[List[KeyValueMeta]],
) -> Optional[Dict[str, str]]:
    if not entries:
        return None
    return {entry.key: entry.value for entry in entries}


class _SchemaEncoder:
    """Flattens a schema into field nodes, binding dictionary fields to ids."""

    def __init__(self, memo: DictionaryMemo, max_recursion_depth: int):
        self._memo = memo
        self._max_recursion_depth = max_recursion_depth
        self.nodes: List[FieldNodeMeta] = []

    def encode(self, schema: pa.Schema) -> SchemaMeta:
        for i, field in enumerate(schema):
            self._visit(field, (i,), self._max_recursion_depth, False)
        return SchemaMeta(
            num_fields=len(schema),
            fields=self.nodes,
            metadata=_metadata_to_meta(schema.metadata, "the schema"),
        )

    def _visit(
        self, field: pa.Field, path: FieldPath, depth: int, in_dictionary: bool
    ) -> None:
        check_depth(depth, f"field '{field.name}'")

        ptype = field.type
        dictionary = None
        if pa.types.is_dictionary(ptype):
            if in_dictionary:
                raise FormatInvalid(
                    f"Field '{field.name}': dictionaries nested in dictionary values "
                    "are not supported"
                )
            dictionary = DictionaryEncodingMeta(
                id=self._memo.get_or_assign_field_id(path, ptype.value_type),
                index_type=type_to_meta(ptype.index_type),
                ordered=ptype.ordered,
            )
            ptype = ptype.value_type

        children = type_children(ptype)
        self.nodes.append(
            FieldNodeMeta(
                name=field.name,
                nullable=field.nullable,
                type=type_to_meta(ptype),
                children=len(children),
                dictionary=dictionary,
                metadata=_metadata_to_meta(field.metadata, f"field '{field.name}'"),
            )
        )

        for i, child in enumerate(children):
            self._visit(
                child, path + (i,), depth - 1, in_dictionary or dictionary is not None
            )


class _SchemaDecoder:
    """Rebuilds fields from the flat node list, collecting dictionary bindings."""

    def __init__(self, meta: SchemaMeta, max_recursion_depth: int):
        self._meta = meta
        self._max_recursion_depth = max_recursion_depth
        self._pos = 0
        self.dictionary_fields: Dict[FieldPath, Tuple[int, pa.DataType]] = {}

    def decode(self) -> pa.Schema:
        fields = []
        for i in range(self._meta.num_fields):
            fields.append(self._read_field((i,), self._max_recursion_depth, False))

        if self._pos != len(self._meta.fields):
            raise FormatInvalid(
                f"Schema declares {self._meta.num_fields} fields but carries "
                f"{len(self._meta.fields) - self._pos} trailing field nodes"
            )
        return pa.schema(fields, metadata=_metadata_from_meta(self._meta.metadata))

    def _next_node(self) -> FieldNodeMeta:
        if self._pos >= len(self._meta.fields):
            raise FormatInvalid("Schema field list is truncated")
        node = self._meta.fields[self._pos]
        self._pos += 1
        return node

    def _read_field(self, path: FieldPath, depth: int, in_dictionary: bool) -> pa.Field:
        check_depth(depth, f"field {format_field_path(path)}")

        node = self._next_node()
        encoded = node.dictionary is not None
        if encoded and in_dictionary:
            raise FormatInvalid(
                f"Field '{node.name}': dictionaries nested in dictionary values "
                "are not supported"
            )

        children = []
        for i in range(node.children):
            children.append(
                self._read_field(path + (i,), depth - 1, in_dictionary or encoded)
            )

        ptype = type_from_meta(node.type, children)
        if node.dictionary is not None:
            self.dictionary_fields[path] = (node.dictionary.id, ptype)
            ptype = pa.dictionary(
                index_type_from_meta(node.dictionary.index_type),
                ptype,
                ordered=node.dictionary.ordered,
            )

        return pa.field(
            node.name,
            ptype,
            nullable=node.nullable,
            metadata=_metadata_from_meta(node.metadata),
        )


def _schema_header(message: Union[Message, SchemaMeta]) -> SchemaMeta:
    if isinstance(message, SchemaMeta):
        return message
    message.expect(MessageKind.Schema)
    return message.header


def schema_to_meta(
    schema: pa.Schema,
    memo: DictionaryMemo,
    max_recursion_depth: int = DEFAULT_MAX_RECURSION_DEPTH,
) -> SchemaMeta:
    """
    Encodes `schema`. Dictionary fields take the id already bound in `memo`,
    or a fresh one.

    Raises:
        FormatInvalid: If the nesting exceeds `max_recursion_depth` or a type
            cannot be written.
    """
    return _SchemaEncoder(memo, max_recursion_depth).encode(schema)


def write_schema_message(
    schema: pa.Schema,
    memo: DictionaryMemo,
    max_recursion_depth: int = DEFAULT_MAX_RECURSION_DEPTH,
    version: MetadataVersion = CURRENT_METADATA_VERSION,
) -> pa.Buffer:
    """
    Returns a complete framed schema message (schema messages carry no body).
    """
    sink = pa.BufferOutputStream()
    meta = schema_to_meta(schema, memo, max_recursion_depth)
    write_message(meta, sink, version=version)
    return sink.getvalue()


def get_dictionary_types(
    message: Union[Message, SchemaMeta],
    max_recursion_depth: int = DEFAULT_MAX_RECURSION_DEPTH,
) -> Dict[int, pa.DataType]:
    """
    Returns the value type of every dictionary id a schema references,
    without requiring the dictionaries themselves.

    Raises:
        FormatInvalid: If two fields bind one id to different value types.
    """
    decoder = _SchemaDecoder(_schema_header(message), max_recursion_depth)
    decoder.decode()

    types: Dict[int, pa.DataType] = {}
    for path, (dict_id, value_type) in decoder.dictionary_fields.items():
        known = types.setdefault(dict_id, value_type)
        if not known.equals(value_type):
            raise FormatInvalid(
                f"Dictionary {dict_id} is bound to both '{known}' and '{value_type}' "
                f"(field {format_field_path(path)})"
            )
    return types


def get_schema(
    message: Union[Message, SchemaMeta],
    memo: DictionaryMemo,
    max_recursion_depth: int = DEFAULT_MAX_RECURSION_DEPTH,
) -> pa.Schema:
    """
    Decodes a schema message and binds its dictionary fields in `memo`.

    Raises:
        FormatInvalid: If the metadata is malformed, the nesting exceeds
            `max_recursion_depth`, or a referenced dictionary id is not
            registered in `memo`.
    """
    decoder = _SchemaDecoder(_schema_header(message), max_recursion_depth)
    schema = decoder.decode()

    for path, (dict_id, value_type) in decoder.dictionary_fields.items():
        if not memo.has_dictionary(dict_id):
            raise FormatInvalid(
                f"Field {format_field_path(path)} references unregistered "
                f"dictionary id {dict_id}"
            )
        memo.add_field(path, dict_id, value_type)
    return schema
