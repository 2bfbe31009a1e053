"""
Record Batch Codec Module.

Writes and reads record-batch and dictionary-batch messages. The metadata of
a record batch holds its row count, one `ArrayNode` per array (pre-order) and
one `BufferSpec` per body buffer; the body is the concatenation of the
buffers, each zero padded to 8 bytes.

Decoding is zero copy: every rebuilt array points into the message body.
"""

from typing import List, Optional, Tuple, Union

import pyarrow as pa

from ..comm.channel import CountingSink, read_exactly
from ..enum import CURRENT_METADATA_VERSION, MessageKind, MetadataVersion
from ..errors import AllocationFailure, FormatInvalid, IpcError, _make_exception
from ..models.metadata import DictionaryBatchMeta, RecordBatchMeta
from .dictionary_memo import DictionaryMemo
from .internal.batch_read_state import _ArrayLoader
from .internal.batch_write_state import _RecordBatchSerializer
from .internal.depth import DEFAULT_MAX_RECURSION_DEPTH
from .message import Message, write_message

BodySource = Union[pa.Buffer, bytes, pa.NativeFile]


def _resolve_body(message: Message, body: Optional[BodySource]) -> pa.Buffer:
    """Picks the body of a message: the explicit one if given, else its own."""
    if body is None:
        body = message.body
    if body is None:
        raise FormatInvalid(f"{message!r} has no body attached")
    if isinstance(body, pa.NativeFile):
        return read_exactly(body, message.body_length)
    if not isinstance(body, pa.Buffer):
        return pa.py_buffer(body)
    return body


def _load_columns(
    meta: RecordBatchMeta,
    schema: pa.Schema,
    body: pa.Buffer,
    memo: Optional[DictionaryMemo],
    max_recursion_depth: int,
    validate_full: bool,
) -> List[pa.Array]:
    try:
        columns = _ArrayLoader(meta, body, memo, max_recursion_depth).load(schema)
        for column in columns:
            column.validate(full=validate_full)
    except IpcError:
        raise
    except MemoryError as e:
        raise _make_exception(
            AllocationFailure, "Unable to rebuild record batch", e
        ) from e
    except (pa.ArrowException, ValueError, TypeError, IndexError) as e:
        raise _make_exception(
            FormatInvalid, "Record batch body is inconsistent", e
        ) from e

    for field, column in zip(schema, columns):
        if len(column) != meta.length:
            raise FormatInvalid(
                f"Column '{field.name}' has {len(column)} rows, "
                f"the batch declares {meta.length}"
            )
    return columns


def write_record_batch(
    batch: pa.RecordBatch,
    sink: pa.NativeFile,
    memory_pool: Optional[pa.MemoryPool] = None,
    max_recursion_depth: int = DEFAULT_MAX_RECURSION_DEPTH,
    allow_64bit: bool = False,
    version: MetadataVersion = CURRENT_METADATA_VERSION,
) -> Tuple[int, int]:
    """
    Serializes `batch` as one record-batch message.

    Args:
        batch (pa.RecordBatch): The batch to write. Sliced batches are accepted.
        sink (pa.NativeFile): Destination.
        memory_pool (Optional[pa.MemoryPool]): Pool for re-packed bitmaps and
            rebased offsets.
        max_recursion_depth (int): Nesting budget.
        allow_64bit (bool): Accept arrays longer than `2**31 - 1` rows.
        version (MetadataVersion): Version tag of the message.

    Returns:
        Tuple[int, int]: (metadata_length, body_length) in bytes.

    Raises:
        FormatInvalid: If the batch nests too deeply, holds an unsupported
            type, or is too long for the selected write path.
    """
    serializer = _RecordBatchSerializer(memory_pool, max_recursion_depth, allow_64bit)
    meta = serializer.assemble(batch.columns, batch.num_rows)
    return write_message(meta, sink, serializer.buffers, version=version)


def get_record_batch_size(
    batch: pa.RecordBatch,
    max_recursion_depth: int = DEFAULT_MAX_RECURSION_DEPTH,
    allow_64bit: bool = False,
) -> int:
    """Exact number of bytes `write_record_batch` emits for `batch`."""
    sink = CountingSink()
    write_record_batch(
        batch, sink, max_recursion_depth=max_recursion_depth, allow_64bit=allow_64bit
    )
    return sink.size()


def read_record_batch(
    message: Message,
    schema: pa.Schema,
    body: Optional[BodySource] = None,
    memo: Optional[DictionaryMemo] = None,
    max_recursion_depth: int = DEFAULT_MAX_RECURSION_DEPTH,
    validate_full: bool = True,
) -> pa.RecordBatch:
    """
    Rebuilds a record batch from its message.

    Args:
        message (Message): A record-batch message.
        schema (pa.Schema): Supplies the column types.
        body (Optional[BodySource]): The body, when not attached to `message`.
            A `NativeFile` is read from its current position.
        memo (Optional[DictionaryMemo]): Resolves dictionary-encoded columns.
        max_recursion_depth (int): Nesting budget.
        validate_full (bool): Run pyarrow's full (O(n)) validation.

    Raises:
        FormatInvalid: If the metadata disagrees with the schema or the body.
    """
    message.expect(MessageKind.RecordBatch)
    meta: RecordBatchMeta = message.header
    columns = _load_columns(
        meta,
        schema,
        _resolve_body(message, body),
        memo,
        max_recursion_depth,
        validate_full,
    )
    return pa.RecordBatch.from_arrays(columns, schema=schema)


def write_dictionary_batch(
    dict_id: int,
    dictionary: pa.Array,
    sink: pa.NativeFile,
    memory_pool: Optional[pa.MemoryPool] = None,
    max_recursion_depth: int = DEFAULT_MAX_RECURSION_DEPTH,
    allow_64bit: bool = False,
    version: MetadataVersion = CURRENT_METADATA_VERSION,
) -> Tuple[int, int]:
    """
    Serializes the values of dictionary `dict_id` as a dictionary-batch
    message, whose payload is a one-column record batch.

    Returns:
        Tuple[int, int]: (metadata_length, body_length) in bytes.
    """
    serializer = _RecordBatchSerializer(memory_pool, max_recursion_depth, allow_64bit)
    data = serializer.assemble([dictionary], len(dictionary))
    return write_message(
        DictionaryBatchMeta(id=dict_id, data=data),
        sink,
        serializer.buffers,
        version=version,
    )


def read_dictionary_batch(
    message: Message,
    value_type: pa.DataType,
    body: Optional[BodySource] = None,
    max_recursion_depth: int = DEFAULT_MAX_RECURSION_DEPTH,
    validate_full: bool = True,
) -> Tuple[int, pa.Array]:
    """
    Rebuilds the values of a dictionary batch.

    Returns:
        Tuple[int, pa.Array]: The dictionary id and its values.
    """
    message.expect(MessageKind.DictionaryBatch)
    meta: DictionaryBatchMeta = message.header
    (values,) = _load_columns(
        meta.data,
        pa.schema([pa.field("dictionary", value_type)]),
        _resolve_body(message, body),
        None,
        max_recursion_depth,
        validate_full,
    )
    return meta.id, values
