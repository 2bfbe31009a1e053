"""
Helper Utilities.

Provides the byte-level arithmetic shared by the codecs: 8-byte alignment,
validity bitmap re-slicing and copying numpy data into pool-allocated buffers.
"""

from typing import Optional, Sequence

import numpy as np
import pyarrow as pa

from ..errors import AllocationFailure, _make_exception

ALIGNMENT = 8


def align_to(nbytes: int, alignment: int = ALIGNMENT) -> int:
    """
    Rounds `nbytes` up to the next multiple of `alignment`.

    Examples:
        - align_to(0) -> 0
        - align_to(5) -> 8
        - align_to(16) -> 16
    """
    return (nbytes + alignment - 1) // alignment * alignment


def padding_for(nbytes: int, alignment: int = ALIGNMENT) -> int:
    """Number of padding bytes needed after `nbytes` to reach the alignment."""
    return align_to(nbytes, alignment) - nbytes


def format_field_path(path: Sequence[int]) -> str:
    """Renders a field path (child indices from the schema root) as `0.2.1`."""
    return ".".join(str(i) for i in path) if path else "<root>"


def to_pool_buffer(
    data: np.ndarray, memory_pool: Optional[pa.MemoryPool] = None
) -> pa.Buffer:
    """
    Copies a numpy array into a new buffer allocated from `memory_pool`.

    Raises:
        AllocationFailure: If the pool cannot satisfy the request.
    """
    data = np.ascontiguousarray(data)
    if data.nbytes == 0:
        return pa.py_buffer(b"")
    try:
        buf = pa.allocate_buffer(data.nbytes, memory_pool=memory_pool)
    except MemoryError as e:
        raise _make_exception(
            AllocationFailure, f"Unable to allocate {data.nbytes} bytes", e
        ) from e
    np.frombuffer(buf, dtype=np.uint8)[:] = data.reshape(-1).view(np.uint8)
    return buf


def bitmap_slice(
    bitmap: pa.Buffer,
    offset: int,
    length: int,
    memory_pool: Optional[pa.MemoryPool] = None,
) -> pa.Buffer:
    """
    Returns the bits `[offset, offset + length)` of an LSB-ordered bitmap as a
    bitmap starting at bit zero.

    When `offset` falls on a byte boundary the result is a zero-copy slice;
    otherwise the bits are unpacked, shifted and re-packed into a new buffer.
    """
    nbytes = (length + 7) // 8
    if nbytes == 0:
        return pa.py_buffer(b"")

    if offset % 8 == 0:
        return bitmap.slice(offset // 8, nbytes)

    start = offset // 8
    stop = (offset + length + 7) // 8
    raw = np.frombuffer(bitmap, dtype=np.uint8)[start:stop]
    shift = offset % 8
    bits = np.unpackbits(raw, bitorder="little")[shift : shift + length]
    return to_pool_buffer(np.packbits(bits, bitorder="little"), memory_pool)
