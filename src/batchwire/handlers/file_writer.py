"""
File Writer Module.

The file format brackets the message sequence with magic markers and ends it
with a footer indexing every dictionary and record batch, enabling random
access:

    MAGIC, padding
    schema message
    dictionary batches
    record batches
    footer (JSON), footer length (int32 LE), MAGIC
"""

import struct
from typing import List, Optional
import logging as log

import pyarrow as pa

from ..comm.channel import (
    MAGIC,
    OutputSink,
    as_output_sink,
    io_errors,
    is_path,
    write_padded,
)
from ..errors import FormatInvalid
from ..models.metadata import BlockMeta, FooterMeta
from .config import IpcWriteOptions
from .internal.ipc_write_state import _IpcWriteState

FOOTER_LENGTH = struct.Struct("<i")


class FileWriter(_IpcWriteState):
    """
    Writes record batches to the random-access file format.

    The file format admits one dictionary per id: a batch whose dictionary
    differs in value from the one already written fails with `FormatInvalid`.

    Example:
        ```python
        with FileWriter.open("data.bwire", batch.schema) as writer:
            writer.write_record_batch(batch)
        ```
    """

    _kind = "FileWriter"

    def __init__(
        self,
        sink: pa.NativeFile,
        schema: pa.Schema,
        options: Optional[IpcWriteOptions] = None,
        owns_sink: bool = False,
    ):
        """
        Internal constructor. Use `FileWriter.open()` instead.
        """
        super().__init__(sink, schema, options, owns_sink)
        self._dictionary_blocks: List[BlockMeta] = []
        self._record_batch_blocks: List[BlockMeta] = []

        self._advance(write_padded(self._sink, MAGIC))

    @classmethod
    def open(
        cls,
        sink: OutputSink,
        schema: pa.Schema,
        options: Optional[IpcWriteOptions] = None,
    ) -> "FileWriter":
        """
        Opens a file writer.

        Args:
            sink (OutputSink): A `NativeFile`, or a path to create.
            schema (pa.Schema): Schema of every batch to be written.
            options (Optional[IpcWriteOptions]): Writer settings.

        Raises:
            FormatInvalid: If the schema cannot be written.
            IOFailure: If the sink cannot be opened.
        """
        return cls(
            as_output_sink(sink),
            schema,
            options,
            owns_sink=is_path(sink),
        )

    def _record_dictionary_block(self, block: BlockMeta) -> None:
        self._dictionary_blocks.append(block)

    def _record_batch_block(self, block: BlockMeta) -> None:
        self._record_batch_blocks.append(block)

    def _on_dictionary_change(self, dict_id: int) -> None:
        raise FormatInvalid(
            f"Dictionary {dict_id} changed between batches: the file format "
            "does not support dictionary replacement"
        )

    def _finish(self) -> None:
        footer = FooterMeta(
            version=self._options.metadata_version,
            table_schema=self._schema_meta,
            dictionaries=self._dictionary_blocks,
            record_batches=self._record_batch_blocks,
        )
        payload = footer.to_json_bytes()
        with io_errors("writing the file footer"):
            self._sink.write(payload)
            self._sink.write(FOOTER_LENGTH.pack(len(payload)))
            self._sink.write(MAGIC)
        self._advance(len(payload) + FOOTER_LENGTH.size + len(MAGIC))

        log.debug(f"FileWriter: footer of {len(payload)} bytes written")
