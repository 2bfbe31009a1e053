"""
Message Framing Module.

Every unit on the wire is a self-describing frame:

    [metadata length: int32 LE][metadata: JSON, space padded][body]

The declared metadata length is the padded size, chosen so that the length
prefix plus metadata ends on an 8-byte boundary; each body buffer is zero
padded to 8 bytes. A declared length of zero is the stream end-of-stream
sentinel.
"""

import struct
from typing import Optional, Sequence, Tuple, Union

import pyarrow as pa
import pydantic

from ..comm.channel import INT32_MAX, io_errors, read_at, read_exactly, write_padded
from ..enum import CURRENT_METADATA_VERSION, MessageKind, MetadataVersion
from ..errors import FormatInvalid, _make_exception
from ..helpers import ALIGNMENT, align_to
from ..models.metadata import HeaderMeta, MessageMeta

_LENGTH_PREFIX = struct.Struct("<i")

_END_OF_STREAM = _LENGTH_PREFIX.pack(0)


def _check_metadata_length(length: int) -> None:
    if length < 0:
        raise FormatInvalid(f"Negative metadata length {length}")
    if (_LENGTH_PREFIX.size + length) % ALIGNMENT != 0:
        raise FormatInvalid(
            f"Metadata length {length} does not keep the body {ALIGNMENT}-byte aligned"
        )


def _decode_metadata(data: Union[pa.Buffer, bytes]) -> MessageMeta:
    raw = data.to_pybytes() if isinstance(data, pa.Buffer) else bytes(data)
    try:
        return MessageMeta.model_validate_json(raw)
    except pydantic.ValidationError as e:
        raise _make_exception(FormatInvalid, "Malformed message metadata", e) from e


class Message:
    """
    The parse result of one frame.

    Attributes:
        kind (MessageKind): What the message carries.
        version (MetadataVersion): Format-version tag of the writer.
        header: Kind-specific metadata (`SchemaMeta`, `RecordBatchMeta`, ...).
        body (Optional[pa.Buffer]): The raw buffer payload, when available.
        metadata_length (int): Bytes taken by the length prefix and metadata.
        body_length (int): Bytes of body following the metadata.
    """

    def __init__(
        self, meta: MessageMeta, body: Optional[pa.Buffer], metadata_length: int
    ):
        self._meta = meta
        self._body = body
        self._metadata_length = metadata_length

    @classmethod
    def open(cls, buffer: Union[pa.Buffer, bytes], offset: int = 0) -> "Message":
        """
        Parses the frame starting at `offset` inside an in-memory buffer.

        The declared metadata length is checked against the bytes actually
        available: nothing past the end of `buffer` is ever read. If the
        buffer also holds the whole body, the message carries a zero-copy
        slice of it.

        Raises:
            FormatInvalid: If the frame is truncated or its metadata malformed.
        """
        if not isinstance(buffer, pa.Buffer):
            buffer = pa.py_buffer(buffer)

        available = buffer.size - offset - _LENGTH_PREFIX.size
        if offset < 0 or available < 0:
            raise FormatInvalid(
                f"No room for a message length prefix at offset {offset} "
                f"of a {buffer.size} byte buffer"
            )

        (length,) = _LENGTH_PREFIX.unpack_from(buffer, offset)
        if length == 0:
            raise FormatInvalid(
                f"End-of-stream marker at offset {offset}, not a message"
            )
        _check_metadata_length(length)
        if length > available:
            raise FormatInvalid(
                f"Declared metadata length {length} exceeds the {available} bytes available"
            )

        meta = _decode_metadata(buffer.slice(offset + _LENGTH_PREFIX.size, length))

        body_start = offset + _LENGTH_PREFIX.size + length
        body = None
        if buffer.size - body_start >= meta.body_length:
            body = buffer.slice(body_start, meta.body_length)
        return cls(meta, body, _LENGTH_PREFIX.size + length)

    @property
    def kind(self) -> MessageKind:
        return MessageKind(self._meta.header.kind)

    @property
    def version(self) -> MetadataVersion:
        return self._meta.version

    @property
    def header(self) -> HeaderMeta:
        return self._meta.header

    @property
    def body(self) -> Optional[pa.Buffer]:
        return self._body

    @property
    def metadata_length(self) -> int:
        return self._metadata_length

    @property
    def body_length(self) -> int:
        return self._meta.body_length

    def expect(self, kind: MessageKind) -> None:
        """Raises FormatInvalid unless the message is of the given kind."""
        if self.kind != kind:
            raise FormatInvalid(f"Expected a '{kind}' message, got '{self.kind}'")

    def __repr__(self) -> str:
        return (
            f"Message(kind={self.kind}, version={self.version.name}, "
            f"metadata_length={self.metadata_length}, body_length={self.body_length})"
        )


def write_message(
    header: HeaderMeta,
    sink: pa.NativeFile,
    body: Sequence[pa.Buffer] = (),
    version: MetadataVersion = CURRENT_METADATA_VERSION,
) -> Tuple[int, int]:
    """
    Frames `header` and `body` and writes them to `sink`.

    The body buffers are written in order, each padded to 8 bytes: buffer
    descriptors inside `header` must have been computed with the same rule.

    Returns:
        Tuple[int, int]: (metadata_length, body_length) in bytes, where
            metadata_length includes the length prefix.
    """
    body_length = sum(align_to(buf.size) for buf in body)
    meta = MessageMeta(version=version, body_length=body_length, header=header)
    payload = meta.to_json_bytes()

    padded_length = align_to(_LENGTH_PREFIX.size + len(payload)) - _LENGTH_PREFIX.size
    if padded_length > INT32_MAX:
        raise FormatInvalid(f"Message metadata of {padded_length} bytes is too large")

    with io_errors("writing message metadata"):
        sink.write(_LENGTH_PREFIX.pack(padded_length))
        sink.write(payload + b" " * (padded_length - len(payload)))

    for buf in body:
        write_padded(sink, buf)

    return _LENGTH_PREFIX.size + padded_length, body_length


def write_end_of_stream(sink: pa.NativeFile) -> int:
    """Writes the zero metadata length marking the end of a stream."""
    with io_errors("writing the end-of-stream marker"):
        sink.write(_END_OF_STREAM)
    return len(_END_OF_STREAM)


def read_message(source: pa.NativeFile) -> Optional[Message]:
    """
    Reads the next frame from a sequential source.

    Returns:
        Optional[Message]: The message, or None at the end-of-stream sentinel
            or at a clean end of input.

    Raises:
        FormatInvalid: If the frame is truncated or its metadata malformed.
    """
    with io_errors("reading a message length prefix"):
        prefix = source.read_buffer(_LENGTH_PREFIX.size)
    if prefix.size == 0:
        return None
    if prefix.size < _LENGTH_PREFIX.size:
        raise FormatInvalid(f"Truncated message length prefix ({prefix.size} bytes)")

    (length,) = _LENGTH_PREFIX.unpack_from(prefix)
    if length == 0:
        return None
    _check_metadata_length(length)

    meta = _decode_metadata(read_exactly(source, length))
    body = read_exactly(source, meta.body_length)
    return Message(meta, body, _LENGTH_PREFIX.size + length)


def read_message_at(
    source: pa.NativeFile, offset: int, metadata_length: int
) -> Message:
    """
    Reads the frame at absolute position `offset` whose metadata length
    (prefix included) is already known, together with its body.

    Raises:
        FormatInvalid: If the frame disagrees with `metadata_length` or is
            truncated.
    """
    if metadata_length <= _LENGTH_PREFIX.size:
        raise FormatInvalid(f"Invalid metadata length {metadata_length}")
    frame = read_at(source, offset, metadata_length)
    message = Message.open(frame)
    if message.metadata_length != metadata_length:
        raise FormatInvalid(
            f"Message at offset {offset} declares {message.metadata_length} bytes "
            f"of metadata, expected {metadata_length}"
        )
    body = read_exactly(source, message.body_length)
    return Message(message._meta, body, metadata_length)
