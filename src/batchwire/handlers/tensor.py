"""
Tensor Codec Module.

A tensor travels as one message: its element type, shape, strides and
optional dimension names in the metadata, its data as a single body buffer.
Only row-major (C-contiguous) tensors of fixed-width numeric elements are
written; the strides are carried so a reader can check them.
"""

import math
from typing import List, Tuple, Union

import numpy as np
import pyarrow as pa

from ..comm.channel import (
    CountingSink,
    InputSource,
    as_input_source,
    close_quietly,
    io_errors,
    is_path,
)
from ..enum import CURRENT_METADATA_VERSION, MessageKind, MetadataVersion
from ..errors import FormatInvalid, _make_exception
from ..models.internal.type_mapper import type_from_meta, type_to_meta
from ..models.metadata import BufferSpec, TensorMeta
from .message import read_message, write_message

TensorLike = Union[pa.Tensor, np.ndarray]


def _contiguous_strides(shape: List[int], itemsize: int) -> List[int]:
    """Row-major strides, in bytes, of a tensor of the given shape."""
    strides = []
    stride = itemsize
    for dim in reversed(shape):
        strides.append(stride)
        stride *= dim
    return strides[::-1]


def _element_type(ptype: pa.DataType) -> np.dtype:
    if not (pa.types.is_integer(ptype) or pa.types.is_floating(ptype)):
        raise FormatInvalid(f"Tensors of '{ptype}' elements are not supported")
    return np.dtype(ptype.to_pandas_dtype())


def _as_tensor(tensor: TensorLike) -> pa.Tensor:
    if isinstance(tensor, np.ndarray):
        return pa.Tensor.from_numpy(tensor)
    return tensor


def _encode(tensor: TensorLike) -> Tuple[TensorMeta, pa.Buffer]:
    tensor = _as_tensor(tensor)
    dtype = _element_type(tensor.type)

    shape = list(tensor.shape)
    strides = list(tensor.strides)
    contiguous = _contiguous_strides(shape, dtype.itemsize)
    empty = math.prod(shape) == 0
    if empty:
        # No elements: pyarrow may report zero strides, any layout is contiguous
        strides = contiguous
    elif strides != contiguous:
        raise FormatInvalid(
            f"Tensor with shape {shape} and strides {strides} is not contiguous"
        )

    if empty:
        data = pa.py_buffer(b"")
    else:
        data = pa.py_buffer(np.ascontiguousarray(tensor.to_numpy()))
    meta = TensorMeta(
        type=type_to_meta(tensor.type),
        shape=shape,
        strides=strides,
        dim_names=list(tensor.dim_names),
        data=BufferSpec(offset=0, length=data.size),
    )
    return meta, data


def write_tensor(
    tensor: TensorLike,
    sink: pa.NativeFile,
    version: MetadataVersion = CURRENT_METADATA_VERSION,
) -> Tuple[int, int]:
    """
    Writes `tensor` as one message.

    Returns:
        Tuple[int, int]: (metadata_length, body_length) in bytes.

    Raises:
        FormatInvalid: If the tensor is not contiguous or its element type is
            not fixed-width numeric.
    """
    meta, data = _encode(tensor)
    return write_message(meta, sink, [data], version=version)


def get_tensor_size(tensor: TensorLike) -> int:
    """Exact number of bytes `write_tensor` emits for `tensor`."""
    sink = CountingSink()
    write_tensor(tensor, sink)
    return sink.size()


def read_tensor(source: InputSource, offset: int = 0) -> pa.Tensor:
    """
    Reads the tensor message starting at `offset`.

    The data is not copied when `source` is in memory or memory mapped.

    A path is memory mapped for the duration of the call; the returned tensor
    keeps the mapped region alive.

    Raises:
        FormatInvalid: If the message is not a well-formed tensor.
    """
    native = as_input_source(source)
    try:
        return _read_tensor(native, offset)
    finally:
        if is_path(source):
            close_quietly(native, "tensor source")


def _read_tensor(source: pa.NativeFile, offset: int) -> pa.Tensor:
    with io_errors(f"seeking to {offset}"):
        source.seek(offset)
    message = read_message(source)
    if message is None:
        raise FormatInvalid(f"No tensor message at offset {offset}")
    message.expect(MessageKind.Tensor)

    meta: TensorMeta = message.header
    dtype = _element_type(type_from_meta(meta.type, []))
    shape = list(meta.shape)
    count = math.prod(shape)

    if meta.strides != _contiguous_strides(shape, dtype.itemsize):
        raise FormatInvalid(f"Tensor strides {meta.strides} do not match shape {shape}")
    if meta.dim_names and len(meta.dim_names) != len(shape):
        raise FormatInvalid(
            f"Tensor has {len(meta.dim_names)} dimension names for {len(shape)} dimensions"
        )
    if meta.data.length != count * dtype.itemsize:
        raise FormatInvalid(
            f"Tensor data of {meta.data.length} bytes, expected {count * dtype.itemsize}"
        )
    if meta.data.offset + meta.data.length > message.body.size:
        raise FormatInvalid("Tensor data lies outside the message body")

    if count == 0:
        values = np.empty(shape, dtype=dtype)
    else:
        values = np.frombuffer(
            message.body, dtype=dtype, count=count, offset=meta.data.offset
        ).reshape(shape)

    try:
        return pa.Tensor.from_numpy(values, dim_names=meta.dim_names or None)
    except (pa.ArrowException, ValueError) as e:
        raise _make_exception(FormatInvalid, "Invalid tensor", e) from e
