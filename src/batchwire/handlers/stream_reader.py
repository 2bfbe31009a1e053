"""
Stream Reader Module.

Reads the stream format sequentially: the schema message, then one
dictionary batch per dictionary the schema references, then record batches
until the end-of-stream sentinel. Dictionary batches met between record
batches replace the values of their id for the batches that follow.
"""

from typing import Any, Dict, Iterator, Optional, Type
import logging as log

import pyarrow as pa

from ..comm.channel import InputSource, as_input_source, close_quietly, is_path
from ..enum import MessageKind
from ..errors import FormatInvalid
from .config import IpcReadOptions
from .dictionary_memo import DictionaryMemo
from .internal.ipc_read_state import _load_dictionary
from .message import read_message
from .record_batch import read_record_batch
from .schema_codec import get_dictionary_types, get_schema


class StreamReader:
    """
    Sequential reader of the stream format.

    `get_next_record_batch()` returns the batches in write order, then `None`
    at the end of the stream and on every later call.
    """

    def __init__(
        self,
        source: pa.NativeFile,
        schema: pa.Schema,
        dictionary_types: Dict[int, pa.DataType],
        memo: DictionaryMemo,
        options: IpcReadOptions,
        owns_source: bool = False,
    ):
        """
        Internal constructor. Use `StreamReader.open()` instead.
        """
        self._source = source
        self._schema = schema
        self._dictionary_types = dictionary_types
        self._memo = memo
        self._options = options
        self._owns_source = owns_source

        self._finished: bool = False
        self.num_record_batches: int = 0
        self.num_dictionary_batches: int = len(dictionary_types)

    @classmethod
    def open(
        cls, source: InputSource, options: Optional[IpcReadOptions] = None
    ) -> "StreamReader":
        """
        Opens a stream and reads its schema and initial dictionaries.

        Args:
            source (InputSource): A `NativeFile`, an in-memory buffer, or a path.
            options (Optional[IpcReadOptions]): Reader settings.

        Raises:
            FormatInvalid: If the stream does not start with a schema and its
                dictionaries.
        """
        owns_source = is_path(source)
        native = as_input_source(source)
        try:
            return cls._open(native, options or IpcReadOptions(), owns_source)
        except Exception:
            if owns_source:
                close_quietly(native, "stream source")
            raise

    @classmethod
    def _open(
        cls, source: pa.NativeFile, options: IpcReadOptions, owns_source: bool
    ) -> "StreamReader":
        message = read_message(source)
        if message is None:
            raise FormatInvalid("Stream ended before its schema message")
        message.expect(MessageKind.Schema)

        dictionary_types = get_dictionary_types(message, options.max_recursion_depth)
        memo = DictionaryMemo()

        pending = set(dictionary_types)
        while pending:
            dictionary_message = read_message(source)
            if dictionary_message is None:
                raise FormatInvalid(
                    f"Stream ended before dictionaries {sorted(pending)} were read"
                )
            pending.discard(
                _load_dictionary(
                    dictionary_message,
                    dictionary_types,
                    memo,
                    options,
                    allow_replace=False,
                )
            )

        schema = get_schema(message, memo, options.max_recursion_depth)
        log.debug(
            f"StreamReader: schema with {len(dictionary_types)} dictionaries read"
        )
        return cls(source, schema, dictionary_types, memo, options, owns_source)

    @property
    def schema(self) -> pa.Schema:
        return self._schema

    def get_next_record_batch(self) -> Optional[pa.RecordBatch]:
        """
        Returns the next record batch, or None once the stream is exhausted.

        Raises:
            FormatInvalid: If a message is malformed or of an unexpected kind.
        """
        if self._finished:
            return None

        while True:
            message = read_message(self._source)
            if message is None:
                self._finished = True
                log.debug(
                    f"StreamReader: end of stream after {self.num_record_batches} batches"
                )
                return None

            if message.kind == MessageKind.DictionaryBatch:
                _load_dictionary(
                    message,
                    self._dictionary_types,
                    self._memo,
                    self._options,
                    allow_replace=True,
                )
                self.num_dictionary_batches += 1
                continue

            batch = read_record_batch(
                message,
                self._schema,
                memo=self._memo,
                max_recursion_depth=self._options.max_recursion_depth,
                validate_full=self._options.validate_full,
            )
            self.num_record_batches += 1
            return batch

    def read_all(self) -> pa.Table:
        """Reads the remaining record batches into a table."""
        return pa.Table.from_batches(list(self), schema=self._schema)

    def __iter__(self) -> Iterator[pa.RecordBatch]:
        return self

    def __next__(self) -> pa.RecordBatch:
        batch = self.get_next_record_batch()
        if batch is None:
            raise StopIteration
        return batch

    def close(self) -> None:
        """Closes the source if the reader opened it."""
        if self._owns_source:
            close_quietly(self._source, "stream source")

    # --- Context Manager ---
    def __enter__(self) -> "StreamReader":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[Any],
    ) -> bool:
        self.close()
        return False
