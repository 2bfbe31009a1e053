"""
Internal Batch Read State Module.

This module defines `_ArrayLoader`, the inverse of the batch serializer: it
walks the schema types in pre-order, consumes one `ArrayNode` per array and
the matching `BufferSpec` descriptors, and rebuilds every array as zero-copy
slices of the message body.

Nothing read from the wire is trusted: descriptor lists running short and
buffer extents outside the body are rejected here, content level
inconsistencies by pyarrow validation in the caller.
"""

from typing import List, Optional

import pyarrow as pa

from ...errors import FormatInvalid
from ...helpers import format_field_path
from ...models.metadata import ArrayNode, RecordBatchMeta
from ..dictionary_memo import DictionaryMemo, FieldPath
from .batch_write_state import _is_binary_like
from .depth import check_depth


class _ArrayLoader:
    """
    Rebuilds the columns of one record-batch message.

    **Key Responsibilities:**
    1.  **Descriptor Iteration**: Hands out nodes and buffers in wire order,
        failing with `FormatInvalid` when either list is exhausted.
    2.  **Bounds Checking**: Every buffer must lie within the body.
    3.  **Dictionary Resolution**: Dictionary columns are rebuilt on the array
        registered in the memo, so all columns sharing an id share buffers.
    """

    def __init__(
        self,
        meta: RecordBatchMeta,
        body: pa.Buffer,
        memo: Optional[DictionaryMemo],
        max_recursion_depth: int,
    ):
        self._meta = meta
        self._body = body
        self._memo = memo
        self._max_recursion_depth = max_recursion_depth

        self._node_pos: int = 0
        self._buffer_pos: int = 0

    def load(self, schema: pa.Schema) -> List[pa.Array]:
        columns = []
        for i, field in enumerate(schema):
            columns.append(self._load(field.type, (i,), self._max_recursion_depth))

        if self._node_pos != len(self._meta.nodes):
            raise FormatInvalid(
                f"Record batch carries {len(self._meta.nodes) - self._node_pos} "
                "array nodes beyond its schema"
            )
        if self._buffer_pos != len(self._meta.buffers):
            raise FormatInvalid(
                f"Record batch carries {len(self._meta.buffers) - self._buffer_pos} "
                "buffers beyond its schema"
            )
        return columns

    def _next_node(self) -> ArrayNode:
        if self._node_pos >= len(self._meta.nodes):
            raise FormatInvalid("Record batch array node list is truncated")
        node = self._meta.nodes[self._node_pos]
        self._node_pos += 1

        if node.null_count > node.length:
            raise FormatInvalid(
                f"Array node {self._node_pos - 1} has {node.null_count} nulls "
                f"for {node.length} values"
            )
        return node

    def _next_buffer(self) -> pa.Buffer:
        if self._buffer_pos >= len(self._meta.buffers):
            raise FormatInvalid("Record batch buffer list is truncated")
        spec = self._meta.buffers[self._buffer_pos]
        self._buffer_pos += 1

        if spec.offset + spec.length > self._body.size:
            raise FormatInvalid(
                f"Buffer {self._buffer_pos - 1} [{spec.offset}, "
                f"{spec.offset + spec.length}) lies outside the {self._body.size} "
                "byte body"
            )
        return self._body.slice(spec.offset, spec.length)

    def _next_validity(self, node: ArrayNode) -> Optional[pa.Buffer]:
        buf = self._next_buffer()
        if node.null_count == 0:
            return None
        if buf.size == 0:
            raise FormatInvalid(
                f"Array with {node.null_count} nulls has no validity bitmap"
            )
        return buf

    def _next_offsets(self, node: ArrayNode) -> Optional[pa.Buffer]:
        buf = self._next_buffer()
        if buf.size == 0:
            if node.length > 0:
                raise FormatInvalid(
                    f"Variable-length array of {node.length} values has no offsets"
                )
            # Absent offsets of an empty array
            return None
        return buf

    def _dictionary(self, path: FieldPath) -> pa.Array:
        if self._memo is None:
            raise FormatInvalid(
                f"Field {format_field_path(path)} is dictionary encoded but no "
                "dictionary memo was given"
            )
        return self._memo.lookup(self._memo.get_field_id(path))

    def _load(self, ptype: pa.DataType, path: FieldPath, depth: int) -> pa.Array:
        check_depth(depth, f"field {format_field_path(path)}")
        node = self._next_node()
        length, null_count = node.length, node.null_count

        if pa.types.is_null(ptype):
            return pa.nulls(length)

        if pa.types.is_union(ptype):
            buffers = [None, self._next_buffer()]
            if ptype.mode == "dense":
                buffers.append(self._next_buffer())
            children = []
            for i in range(ptype.num_fields):
                children.append(self._load(ptype.field(i).type, path + (i,), depth - 1))
            return pa.Array.from_buffers(ptype, length, buffers, children=children)

        validity = self._next_validity(node)

        if pa.types.is_dictionary(ptype):
            return pa.DictionaryArray.from_buffers(
                ptype,
                length,
                [validity, self._next_buffer()],
                self._dictionary(path),
                null_count=null_count,
            )

        if _is_binary_like(ptype):
            offsets = self._next_offsets(node)
            buffers = [validity, offsets, self._next_buffer()]
            return pa.Array.from_buffers(ptype, length, buffers, null_count=null_count)

        if pa.types.is_list(ptype) or pa.types.is_large_list(ptype):
            offsets = self._next_offsets(node)
            child = self._load(ptype.value_type, path + (0,), depth - 1)
            return pa.Array.from_buffers(
                ptype,
                length,
                [validity, offsets],
                null_count=null_count,
                children=[child],
            )

        if pa.types.is_fixed_size_list(ptype):
            child = self._load(ptype.value_type, path + (0,), depth - 1)
            return pa.Array.from_buffers(
                ptype, length, [validity], null_count=null_count, children=[child]
            )

        if pa.types.is_struct(ptype):
            children = []
            for i in range(ptype.num_fields):
                children.append(self._load(ptype.field(i).type, path + (i,), depth - 1))
            return pa.Array.from_buffers(
                ptype, length, [validity], null_count=null_count, children=children
            )

        # Fixed-width and boolean: one values buffer
        values = self._next_buffer()
        return pa.Array.from_buffers(
            ptype, length, [validity, values], null_count=null_count
        )
