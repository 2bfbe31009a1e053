"""
Channel Module.

This module adapts the objects callers hand to the codec (pyarrow native
files, in-memory buffers, paths, Python file objects) to the single I/O
capability the codec is written against: seek, write, read-at, close.

Every backing store (memory map, growable in-memory buffer, OS file) is a
pyarrow `NativeFile`, so the codec logic exists once. Failures of the
underlying file surface as `IOFailure`, failed allocations as
`AllocationFailure`.
"""

import os
from contextlib import contextmanager
from typing import Iterator, Union
import logging as log

import pyarrow as pa

from ..errors import (
    AllocationFailure,
    FormatInvalid,
    IOFailure,
    IpcError,
    _make_exception,
)
from ..helpers import ALIGNMENT, padding_for

# Leading and trailing marker of the file format
MAGIC = b"BWIRE1"

# Largest row count / offset representable by the standard 32-bit write path
INT32_MAX = 2**31 - 1

InputSource = Union[
    pa.NativeFile, pa.Buffer, bytes, bytearray, memoryview, str, os.PathLike
]
OutputSink = Union[pa.NativeFile, str, os.PathLike]


# Size-only dry-run sink: same output interface as a real sink, but it only
# tracks the cursor, so a write through it reports the exact framed size
# without materializing any payload.
CountingSink = pa.MockOutputStream


@contextmanager
def io_errors(what: str) -> Iterator[None]:
    """
    Converts failures raised by the underlying file into the codec's error kinds.

    Args:
        what (str): Description of the operation, used in the error message.
    """
    try:
        yield
    except IpcError:
        raise
    except MemoryError as e:
        raise _make_exception(
            AllocationFailure, f"Allocation failed while {what}", e
        ) from e
    except OSError as e:
        raise _make_exception(IOFailure, f"I/O failure while {what}", e) from e


def is_path(target) -> bool:
    """True when `target` names a file the caller did not open itself."""
    return isinstance(target, (str, os.PathLike))


def as_input_source(source: InputSource) -> pa.NativeFile:
    """
    Wraps `source` into a readable pyarrow `NativeFile`.

    Buffers and bytes are read in place (zero copy), paths are memory mapped,
    Python binary file objects are wrapped in `pa.PythonFile`.
    """
    if isinstance(source, pa.NativeFile):
        return source
    if isinstance(source, (pa.Buffer, bytes, bytearray, memoryview)):
        return pa.BufferReader(source)
    if isinstance(source, (str, os.PathLike)):
        with io_errors(f"memory mapping '{source}'"):
            return pa.memory_map(os.fspath(source), "r")
    if hasattr(source, "read"):
        return pa.PythonFile(source, mode="r")
    raise TypeError(f"Cannot read from object of type {type(source).__name__}")


def as_output_sink(sink: OutputSink) -> pa.NativeFile:
    """
    Wraps `sink` into a writable pyarrow `NativeFile`.
    """
    if isinstance(sink, pa.NativeFile):
        return sink
    if isinstance(sink, (str, os.PathLike)):
        with io_errors(f"opening '{sink}' for writing"):
            return pa.OSFile(os.fspath(sink), "wb")
    if hasattr(sink, "write"):
        return pa.PythonFile(sink, mode="w")
    raise TypeError(f"Cannot write to object of type {type(sink).__name__}")


def read_exactly(source: pa.NativeFile, nbytes: int) -> pa.Buffer:
    """
    Reads `nbytes` from the current position.

    The returned buffer is a zero-copy view for in-memory and memory-mapped
    sources.

    Raises:
        FormatInvalid: If the source ends before `nbytes` could be read.
    """
    if nbytes < 0:
        raise FormatInvalid(f"Cannot read a negative number of bytes ({nbytes})")
    with io_errors(f"reading {nbytes} bytes"):
        buf = source.read_buffer(nbytes)
    if buf.size != nbytes:
        raise FormatInvalid(f"Expected to read {nbytes} bytes, got {buf.size}")
    return buf


def read_at(source: pa.NativeFile, offset: int, nbytes: int) -> pa.Buffer:
    """
    Reads `nbytes` starting at the absolute position `offset`.

    Moves the cursor of `source`: not safe for concurrent use on one file.
    """
    if offset < 0:
        raise FormatInvalid(f"Cannot read at negative offset {offset}")
    with io_errors(f"seeking to {offset}"):
        source.seek(offset)
    return read_exactly(source, nbytes)


def source_size(source: pa.NativeFile) -> int:
    """Total size in bytes of a random-access source."""
    with io_errors("querying the source size"):
        return source.size()


def write_padded(
    sink: pa.NativeFile, data: Union[pa.Buffer, bytes], alignment: int = ALIGNMENT
) -> int:
    """
    Writes `data` followed by zero bytes up to the next `alignment` boundary.

    Returns:
        int: Number of bytes written, padding included.
    """
    size = data.size if isinstance(data, pa.Buffer) else len(data)
    padding = padding_for(size, alignment)
    with io_errors(f"writing {size} bytes"):
        if size:
            sink.write(data)
        if padding:
            sink.write(bytes(padding))
    return size + padding


def close_quietly(stream: pa.NativeFile, what: str) -> None:
    """Closes `stream`, logging instead of raising on failure."""
    try:
        stream.close()
    except Exception as e:
        log.warning(f"Error closing {what}: {e}")
