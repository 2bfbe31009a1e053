"""
Internal Batch Write State Module.

This module flattens the arrays of a record batch into the two lists carried
by a record-batch message: one `ArrayNode` per array in pre-order, and the
ordered body buffers with their body-relative `BufferSpec` descriptors.

Sliced inputs are normalized on the way: buffers are trimmed to the window
the array actually references, so that the reader can rebuild every array at
offset zero.
"""

from typing import List, Optional, Sequence, Tuple

import numpy as np
import pyarrow as pa

from ...comm.channel import INT32_MAX
from ...errors import FormatInvalid
from ...helpers import align_to, bitmap_slice, to_pool_buffer
from ...models.internal.type_mapper import fixed_byte_width
from ...models.metadata import ArrayNode, BufferSpec, RecordBatchMeta
from ..dictionary_memo import FieldPath
from .depth import check_depth

_EMPTY = pa.py_buffer(b"")


def _is_binary_like(ptype: pa.DataType) -> bool:
    return (
        pa.types.is_binary(ptype)
        or pa.types.is_string(ptype)
        or pa.types.is_large_binary(ptype)
        or pa.types.is_large_string(ptype)
    )


def _offset_dtype(ptype: pa.DataType) -> np.dtype:
    """Offsets of large types are 64-bit, of every other type 32-bit."""
    if (
        pa.types.is_large_binary(ptype)
        or pa.types.is_large_string(ptype)
        or pa.types.is_large_list(ptype)
    ):
        return np.dtype(np.int64)
    return np.dtype(np.int32)


def _child_arrays(arr: pa.Array) -> List[pa.Array]:
    """Children of a nested array, in schema order (no trimming)."""
    ptype = arr.type
    if (
        pa.types.is_list(ptype)
        or pa.types.is_large_list(ptype)
        or pa.types.is_fixed_size_list(ptype)
    ):
        return [arr.values]
    if pa.types.is_struct(ptype) or pa.types.is_union(ptype):
        return [arr.field(i) for i in range(ptype.num_fields)]
    return []


class _RecordBatchSerializer:
    """
    Accumulates the nodes and body buffers of one record-batch message.

    **Per-array layout (pre-order):**
    1.  **Node**: `ArrayNode(length, null_count)`.
    2.  **Validity**: the bitmap, or an empty buffer when there are no nulls
        (null and union arrays carry none).
    3.  **Type buffers**: offsets or type ids, then values.
    4.  **Children**: visited in order, one level deeper.

    Dictionary arrays contribute their indices only; the dictionaries travel
    in separate messages.
    """

    def __init__(
        self,
        memory_pool: Optional[pa.MemoryPool],
        max_recursion_depth: int,
        allow_64bit: bool,
    ):
        self._memory_pool = memory_pool
        self._max_recursion_depth = max_recursion_depth
        self._allow_64bit = allow_64bit

        self.nodes: List[ArrayNode] = []
        self.buffers: List[pa.Buffer] = []
        self.buffer_specs: List[BufferSpec] = []
        self._body_length: int = 0

    def assemble(self, columns: Sequence[pa.Array], num_rows: int) -> RecordBatchMeta:
        self._check_length(num_rows)
        for column in columns:
            self._visit(column, self._max_recursion_depth)
        return RecordBatchMeta(
            length=num_rows, nodes=self.nodes, buffers=self.buffer_specs
        )

    def _check_length(self, length: int) -> None:
        if length > INT32_MAX and not self._allow_64bit:
            raise FormatInvalid(
                f"Cannot write an array of {length} rows: the limit is {INT32_MAX} "
                "unless the large-batch path (allow_64bit) is used"
            )

    def _add_buffer(self, buf: Optional[pa.Buffer]) -> None:
        if buf is None:
            buf = _EMPTY
        self.buffer_specs.append(BufferSpec(offset=self._body_length, length=buf.size))
        self.buffers.append(buf)
        self._body_length += align_to(buf.size)

    def _add_validity(self, arr: pa.Array, bitmap: Optional[pa.Buffer]) -> None:
        if arr.null_count == 0 or bitmap is None:
            self._add_buffer(_EMPTY)
        else:
            self._add_buffer(
                bitmap_slice(bitmap, arr.offset, len(arr), self._memory_pool)
            )

    def _add_offsets(
        self, arr: pa.Array, buf: Optional[pa.Buffer]
    ) -> Tuple[int, int]:
        """
        Writes the offsets of a variable-length array rebased to zero.

        Returns:
            Tuple[int, int]: The [start, end) range of the values referenced.
        """
        length = len(arr)
        if buf is None or buf.size == 0:
            # An absent offsets buffer is only legal for an empty array
            self._add_buffer(_EMPTY)
            return 0, 0

        dtype = _offset_dtype(arr.type)
        offsets = np.frombuffer(
            buf, dtype=dtype, count=length + 1, offset=arr.offset * dtype.itemsize
        )
        start, end = int(offsets[0]), int(offsets[-1])
        if start == 0:
            self._add_buffer(
                buf.slice(arr.offset * dtype.itemsize, (length + 1) * dtype.itemsize)
            )
        else:
            self._add_buffer(to_pool_buffer(offsets - offsets[0], self._memory_pool))
        return start, end

    def _visit(self, arr: pa.Array, depth: int) -> None:
        check_depth(depth, "a nested array")

        ptype = arr.type
        length = len(arr)
        offset = arr.offset
        self._check_length(length)
        self.nodes.append(ArrayNode(length=length, null_count=arr.null_count))

        if pa.types.is_null(ptype):
            return

        bufs = arr.buffers()

        if pa.types.is_union(ptype):
            self._add_buffer(bufs[1].slice(offset, length))
            if ptype.mode == "dense":
                self._add_buffer(bufs[2].slice(offset * 4, length * 4))
            for child in _child_arrays(arr):
                self._visit(child, depth - 1)
            return

        self._add_validity(arr, bufs[0])

        if pa.types.is_dictionary(ptype):
            ptype = ptype.index_type

        width = fixed_byte_width(ptype)
        if width is not None:
            values = bufs[1]
            if values is not None:
                values = values.slice(offset * width, length * width)
            self._add_buffer(values)
        elif pa.types.is_boolean(ptype):
            self._add_buffer(
                bitmap_slice(bufs[1], offset, length, self._memory_pool)
                if bufs[1] is not None
                else None
            )
        elif _is_binary_like(ptype):
            start, end = self._add_offsets(arr, bufs[1])
            data = bufs[2]
            if data is not None:
                data = data.slice(start, end - start)
            self._add_buffer(data)
        elif pa.types.is_list(ptype) or pa.types.is_large_list(ptype):
            start, end = self._add_offsets(arr, bufs[1])
            self._visit(arr.values.slice(start, end - start), depth - 1)
        elif pa.types.is_fixed_size_list(ptype):
            size = ptype.list_size
            self._visit(arr.values.slice(offset * size, length * size), depth - 1)
        elif pa.types.is_struct(ptype):
            for child in _child_arrays(arr):
                self._visit(child, depth - 1)
        else:
            raise FormatInvalid(f"Arrays of type '{ptype}' cannot be written")


def collect_dictionaries(
    columns: Sequence[pa.Array], max_recursion_depth: int
) -> List[Tuple[FieldPath, pa.Array]]:
    """
    Returns `(field path, dictionary)` for every dictionary-encoded array in
    `columns`, nested ones included. Dictionary values are not descended into.
    """
    found: List[Tuple[FieldPath, pa.Array]] = []

    def visit(arr: pa.Array, path: FieldPath, depth: int) -> None:
        check_depth(depth, "a nested array")
        if pa.types.is_dictionary(arr.type):
            found.append((path, arr.dictionary))
            return
        for i, child in enumerate(_child_arrays(arr)):
            visit(child, path + (i,), depth - 1)

    for i, column in enumerate(columns):
        visit(column, (i,), max_recursion_depth)
    return found
