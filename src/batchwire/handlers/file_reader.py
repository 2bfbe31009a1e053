"""
File Reader Module.

Opens the random-access file format: the trailer and footer are parsed
first, every block they reference is bounds-checked against the file, the
dictionaries are loaded, and record batches are then decoded on demand in
any order.
"""

from typing import Any, Iterator, Optional, Type
import logging as log

import pyarrow as pa
import pydantic

from ..comm.channel import (
    MAGIC,
    InputSource,
    as_input_source,
    close_quietly,
    is_path,
    read_at,
    source_size,
)
from ..enum import MetadataVersion
from ..errors import FormatInvalid, _make_exception
from ..helpers import ALIGNMENT, align_to
from ..models.metadata import BlockMeta, FooterMeta
from .config import IpcReadOptions
from .dictionary_memo import DictionaryMemo
from .file_writer import FOOTER_LENGTH
from .internal.ipc_read_state import _load_dictionary
from .message import Message, read_message_at
from .record_batch import read_record_batch
from .schema_codec import get_dictionary_types, get_schema

_TRAILER_SIZE = FOOTER_LENGTH.size + len(MAGIC)


def _decode_footer(data: pa.Buffer) -> FooterMeta:
    try:
        return FooterMeta.model_validate_json(data.to_pybytes())
    except pydantic.ValidationError as e:
        raise _make_exception(FormatInvalid, "Malformed file footer", e) from e


def _check_block(block: BlockMeta, limit: int, what: str) -> None:
    """A block must start after the leading magic and end before the footer."""
    end = block.offset + block.metadata_length + block.body_length
    if block.offset < align_to(len(MAGIC)) or end > limit:
        raise FormatInvalid(
            f"{what} block [{block.offset}, {end}) lies outside the message "
            f"area [{align_to(len(MAGIC))}, {limit})"
        )
    if block.offset % ALIGNMENT != 0:
        raise FormatInvalid(f"{what} block at offset {block.offset} is misaligned")


class FileReader:
    """
    Random-access reader of the file format.

    Attributes:
        schema (pa.Schema): Schema of the file, dictionaries resolved.
        num_record_batches (int): Number of record batches in the file.
        num_dictionaries (int): Number of dictionary batches in the file.
        version (MetadataVersion): Version tag of the footer.
    """

    def __init__(
        self,
        source: pa.NativeFile,
        footer: FooterMeta,
        schema: pa.Schema,
        memo: DictionaryMemo,
        options: IpcReadOptions,
        owns_source: bool = False,
    ):
        """
        Internal constructor. Use `FileReader.open()` instead.
        """
        self._source = source
        self._footer = footer
        self._schema = schema
        self._memo = memo
        self._options = options
        self._owns_source = owns_source

    @classmethod
    def open(
        cls,
        source: InputSource,
        footer_offset: Optional[int] = None,
        options: Optional[IpcReadOptions] = None,
    ) -> "FileReader":
        """
        Opens a file for reading.

        Args:
            source (InputSource): A `NativeFile`, an in-memory buffer, or a
                path (memory mapped).
            footer_offset (Optional[int]): Where the file ends inside
                `source`, when it is embedded in a larger one.
            options (Optional[IpcReadOptions]): Reader settings.

        Raises:
            FormatInvalid: If the magic markers, footer or any block is invalid.
            IOFailure: If the source cannot be read.
        """
        owns_source = is_path(source)
        native = as_input_source(source)
        try:
            return cls._open(
                native, footer_offset, options or IpcReadOptions(), owns_source
            )
        except Exception:
            if owns_source:
                close_quietly(native, "file source")
            raise

    @classmethod
    def _open(
        cls,
        source: pa.NativeFile,
        footer_offset: Optional[int],
        options: IpcReadOptions,
        owns_source: bool,
    ) -> "FileReader":
        size = source_size(source) if footer_offset is None else footer_offset
        if size < align_to(len(MAGIC)) + _TRAILER_SIZE:
            raise FormatInvalid(f"File of {size} bytes is too small")

        if read_at(source, 0, len(MAGIC)).to_pybytes() != MAGIC:
            raise FormatInvalid("Not a batchwire file: bad leading magic")

        trailer = read_at(source, size - _TRAILER_SIZE, _TRAILER_SIZE)
        if trailer.to_pybytes()[FOOTER_LENGTH.size :] != MAGIC:
            raise FormatInvalid("Not a batchwire file: bad trailing magic")

        (footer_length,) = FOOTER_LENGTH.unpack_from(trailer)
        footer_start = size - _TRAILER_SIZE - footer_length
        if footer_length <= 0 or footer_start < align_to(len(MAGIC)):
            raise FormatInvalid(
                f"Footer length {footer_length} is out of range for a file of "
                f"{size} bytes"
            )
        footer = _decode_footer(read_at(source, footer_start, footer_length))

        for block in footer.dictionaries:
            _check_block(block, footer_start, "Dictionary")
        for block in footer.record_batches:
            _check_block(block, footer_start, "Record batch")

        dictionary_types = get_dictionary_types(
            footer.table_schema, options.max_recursion_depth
        )
        memo = DictionaryMemo()
        for block in footer.dictionaries:
            message = cls._read_block(source, block)
            _load_dictionary(
                message, dictionary_types, memo, options, allow_replace=False
            )

        schema = get_schema(footer.table_schema, memo, options.max_recursion_depth)

        log.info(
            f"FileReader: opened {size} bytes, {len(footer.record_batches)} record "
            f"batches, {len(footer.dictionaries)} dictionaries"
        )
        return cls(source, footer, schema, memo, options, owns_source)

    @staticmethod
    def _read_block(source: pa.NativeFile, block: BlockMeta) -> Message:
        message = read_message_at(source, block.offset, block.metadata_length)
        if message.body_length != block.body_length:
            raise FormatInvalid(
                f"Message at offset {block.offset} has a {message.body_length} byte "
                f"body, the footer records {block.body_length}"
            )
        return message

    @property
    def schema(self) -> pa.Schema:
        return self._schema

    @property
    def num_record_batches(self) -> int:
        return len(self._footer.record_batches)

    @property
    def num_dictionaries(self) -> int:
        return len(self._footer.dictionaries)

    @property
    def version(self) -> MetadataVersion:
        return self._footer.version

    def get_record_batch(self, i: int) -> pa.RecordBatch:
        """
        Decodes the `i`-th record batch. Batches can be read in any order and
        any number of times.

        Raises:
            IndexError: If `i` is out of range.
            FormatInvalid: If the batch is malformed.
        """
        if not 0 <= i < self.num_record_batches:
            raise IndexError(
                f"Record batch index {i} out of range [0, {self.num_record_batches})"
            )
        message = self._read_block(self._source, self._footer.record_batches[i])
        return read_record_batch(
            message,
            self._schema,
            memo=self._memo,
            max_recursion_depth=self._options.max_recursion_depth,
            validate_full=self._options.validate_full,
        )

    def read_all(self) -> pa.Table:
        """Reads every record batch into a table."""
        return pa.Table.from_batches(list(self), schema=self._schema)

    def __iter__(self) -> Iterator[pa.RecordBatch]:
        for i in range(self.num_record_batches):
            yield self.get_record_batch(i)

    def __len__(self) -> int:
        return self.num_record_batches

    def close(self) -> None:
        """Closes the source if the reader opened it."""
        if self._owns_source:
            close_quietly(self._source, "file source")

    # --- Context Manager ---
    def __enter__(self) -> "FileReader":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[Any],
    ) -> bool:
        self.close()
        return False
