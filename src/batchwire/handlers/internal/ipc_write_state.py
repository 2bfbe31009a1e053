"""
Internal IPC Write State Module.

This module holds the logic shared by the file and stream writers: lazy
emission of the schema and the initial dictionaries, dictionary bookkeeping
across batches, byte position tracking and the close / context-manager
lifecycle. The two formats differ only in what they write around the
messages and in how they react to a dictionary that changes between batches.
"""

from contextlib import contextmanager
from enum import Enum
from typing import Any, Dict, Optional, Type
import logging as log

import pyarrow as pa

from ...comm.channel import close_quietly
from ...errors import FormatInvalid, IOFailure, IpcError
from ...models.metadata import BlockMeta, SchemaMeta
from ..config import IpcWriteOptions
from ..dictionary_memo import DictionaryMemo
from ..message import write_message
from ..record_batch import write_dictionary_batch, write_record_batch
from ..schema_codec import schema_to_meta
from .batch_write_state import collect_dictionaries


class _WriterStatus(Enum):
    """Lifecycle of a writer."""

    Pending = "pending"  # Nothing past the preamble written yet
    Started = "started"  # Schema and initial dictionaries written
    Failed = "failed"  # A write to the sink failed, the output is incomplete
    Closed = "closed"


class _IpcWriteState:
    """
    Base of `FileWriter` and `StreamWriter`.

    **Lifecycle:**
    1.  **Pending**: The schema is validated at construction, but nothing is
        written until the first batch: only then are the dictionary ids known.
    2.  **Started**: The schema message and one dictionary batch per distinct
        dictionary have been emitted; record batches follow.
    3.  **Closed**: The format trailer is written (`_finish`). A writer closed
        without batches still emits its schema and empty dictionaries.

    An `IOFailure` while emitting a message moves the writer to **Failed**:
    the bytes already in the sink no longer match the recorded blocks, so
    later writes are refused and `close()` writes no trailer.
    """

    _kind: str = "writer"

    def __init__(
        self,
        sink: pa.NativeFile,
        schema: pa.Schema,
        options: Optional[IpcWriteOptions] = None,
        owns_sink: bool = False,
    ):
        self._options = options or IpcWriteOptions()
        # Fail at open, not at the first batch, on schemas that cannot be written
        try:
            schema_to_meta(schema, DictionaryMemo(), self._options.max_recursion_depth)
        except IpcError:
            if owns_sink:
                close_quietly(sink, f"{self._kind} sink")
            raise

        self._sink = sink
        self._schema = schema
        self._owns_sink = owns_sink

        self._memo = DictionaryMemo()
        self._status = _WriterStatus.Pending
        self._schema_meta: Optional[SchemaMeta] = None
        self._position: int = 0

        self.num_record_batches: int = 0
        self.num_dictionary_batches: int = 0
        self.num_dictionary_replacements: int = 0

    @property
    def schema(self) -> pa.Schema:
        return self._schema

    @property
    def closed(self) -> bool:
        return self._status == _WriterStatus.Closed

    # --- Hooks ---

    def _record_dictionary_block(self, block: BlockMeta) -> None:
        pass

    def _record_batch_block(self, block: BlockMeta) -> None:
        pass

    def _on_dictionary_change(self, dict_id: int) -> None:
        """Called before a dictionary id is re-emitted with different values."""
        raise NotImplementedError

    def _finish(self) -> None:
        raise NotImplementedError

    # --- Emission ---

    @contextmanager
    def _failing_on_io_error(self):
        try:
            yield
        except IOFailure as e:
            self._status = _WriterStatus.Failed
            log.error(
                f"{self._kind}: write failed after {self._position} bytes, "
                f"the output is incomplete: {e}"
            )
            raise

    def _advance(self, nbytes: int) -> None:
        self._position += nbytes

    def _write_dictionary(self, dict_id: int, dictionary: pa.Array) -> None:
        offset = self._position
        metadata_length, body_length = write_dictionary_batch(
            dict_id,
            dictionary,
            self._sink,
            memory_pool=self._options.memory_pool,
            max_recursion_depth=self._options.max_recursion_depth,
            allow_64bit=self._options.allow_64bit,
            version=self._options.metadata_version,
        )
        self._advance(metadata_length + body_length)
        self.num_dictionary_batches += 1
        self._record_dictionary_block(
            BlockMeta(
                offset=offset,
                metadata_length=metadata_length,
                body_length=body_length,
            )
        )

    def _start(self) -> None:
        self._schema_meta = schema_to_meta(
            self._schema, self._memo, self._options.max_recursion_depth
        )
        metadata_length, body_length = write_message(
            self._schema_meta, self._sink, version=self._options.metadata_version
        )
        self._advance(metadata_length + body_length)

        for dict_id in self._memo.ids:
            if self._memo.has_dictionary(dict_id):
                dictionary = self._memo.lookup(dict_id)
            else:
                # Writer closed before any batch: the dictionary is empty
                dictionary = pa.array([], type=self._memo.value_type(dict_id))
            self._write_dictionary(dict_id, dictionary)

        self._status = _WriterStatus.Started
        log.debug(
            f"{self._kind}: schema written with {len(self._memo.ids)} dictionaries "
            f"for {len(self._memo.field_ids)} fields"
        )

    def _update_dictionaries(self, batch: pa.RecordBatch) -> None:
        found = collect_dictionaries(batch.columns, self._options.max_recursion_depth)

        if self._status == _WriterStatus.Pending:
            for path, dictionary in found:
                dict_id = self._memo.get_or_assign_id(dictionary)
                self._memo.add_field(path, dict_id, dictionary.type)
            self._start()
            return

        replaced: Dict[int, pa.Array] = {}
        for path, dictionary in found:
            dict_id = self._memo.get_field_id(path)
            if self._memo.holds(dict_id, dictionary):
                continue
            pending = replaced.get(dict_id)
            if pending is not None:
                if not pending.equals(dictionary):
                    raise FormatInvalid(
                        f"Columns sharing dictionary {dict_id} carry different "
                        "dictionaries in the same batch"
                    )
                continue
            if self._memo.lookup(dict_id).equals(dictionary):
                continue
            self._on_dictionary_change(dict_id)
            replaced[dict_id] = dictionary

        for dict_id, dictionary in replaced.items():
            self._memo.replace_dictionary(dict_id, dictionary)
            self._write_dictionary(dict_id, dictionary)
            self.num_dictionary_replacements += 1

    # --- Public API ---

    def write_record_batch(
        self, batch: pa.RecordBatch, allow_64bit: Optional[bool] = None
    ) -> None:
        """
        Writes one record batch, preceded by whatever dictionary messages it
        requires.

        Args:
            batch (pa.RecordBatch): Must match the writer schema.
            allow_64bit (Optional[bool]): Overrides `IpcWriteOptions.allow_64bit`.

        Raises:
            FormatInvalid: If the batch does not match the schema, or cannot
                be written (see `write_record_batch`).
            IOFailure: If the sink fails; the writer is unusable afterwards.
            IpcError: If the writer is closed, or failed earlier.
        """
        if self._status == _WriterStatus.Closed:
            raise IpcError(f"Cannot write to a closed {self._kind}")
        if self._status == _WriterStatus.Failed:
            raise IpcError(f"Cannot write to a {self._kind} after a failed write")
        if not batch.schema.equals(self._schema):
            raise FormatInvalid(
                f"Batch schema does not match the {self._kind} schema:\n"
                f"{batch.schema}\nvs\n{self._schema}"
            )
        if allow_64bit is None:
            allow_64bit = self._options.allow_64bit

        with self._failing_on_io_error():
            self._update_dictionaries(batch)

            offset = self._position
            metadata_length, body_length = write_record_batch(
                batch,
                self._sink,
                memory_pool=self._options.memory_pool,
                max_recursion_depth=self._options.max_recursion_depth,
                allow_64bit=allow_64bit,
                version=self._options.metadata_version,
            )
        self._advance(metadata_length + body_length)
        self.num_record_batches += 1
        self._record_batch_block(
            BlockMeta(
                offset=offset,
                metadata_length=metadata_length,
                body_length=body_length,
            )
        )

    def write_table(self, table: pa.Table, max_chunksize: Optional[int] = None) -> None:
        """Writes every batch of `table`, optionally re-chunked."""
        for batch in table.to_batches(max_chunksize=max_chunksize):
            self.write_record_batch(batch)

    def close(self) -> None:
        """
        Writes the trailer of the format. Idempotent.

        A sink opened by the writer from a path is closed too; a sink supplied
        by the caller is left open. A failed writer writes no trailer.
        """
        if self._status == _WriterStatus.Closed:
            return
        if self._status == _WriterStatus.Failed:
            self._status = _WriterStatus.Closed
            if self._owns_sink:
                close_quietly(self._sink, f"{self._kind} sink")
            log.warning(f"{self._kind} closed after a failed write: no trailer written")
            return
        try:
            if self._status == _WriterStatus.Pending:
                self._start()
            self._finish()
        finally:
            self._status = _WriterStatus.Closed
            if self._owns_sink:
                close_quietly(self._sink, f"{self._kind} sink")

        log.info(
            f"{self._kind} closed: {self.num_record_batches} record batches, "
            f"{self.num_dictionary_batches} dictionary batches, {self._position} bytes"
        )

    # --- Context Manager ---
    def __enter__(self):
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[Any],
    ) -> bool:
        """
        Closes the writer, even when the block raised: the batches written so
        far remain readable.

        Returns:
            bool: False, ensuring exceptions are propagated.
        """
        try:
            self.close()
        except Exception as e:
            if exc_type is None:
                raise
            log.exception(f"Failed to close {self._kind} after an error: {e}")
        return False

    def __del__(self):
        if getattr(self, "_status", _WriterStatus.Closed) != _WriterStatus.Closed:
            log.warning(
                f"{self._kind} destroyed without calling close(): the output is "
                "incomplete"
            )
