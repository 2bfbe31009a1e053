"""
Stream Writer Module.

The stream format is the bare message sequence: schema, dictionaries, record
batches (with replacement dictionaries interleaved as needed), then the
end-of-stream sentinel. It can be consumed without seeking.
"""

from typing import Optional
import logging as log

import pyarrow as pa

from ..comm.channel import OutputSink, as_output_sink, is_path
from .config import IpcWriteOptions
from .internal.ipc_write_state import _IpcWriteState
from .message import write_end_of_stream


class StreamWriter(_IpcWriteState):
    """
    Writes record batches to the sequential stream format.

    When a batch carries a dictionary whose values differ from the one already
    sent for its id, a replacement dictionary batch with the same id is
    emitted right before that batch.
    """

    _kind = "StreamWriter"

    @classmethod
    def open(
        cls,
        sink: OutputSink,
        schema: pa.Schema,
        options: Optional[IpcWriteOptions] = None,
    ) -> "StreamWriter":
        """
        Opens a stream writer.

        Args:
            sink (OutputSink): A `NativeFile`, or a path to create.
            schema (pa.Schema): Schema of every batch to be written.
            options (Optional[IpcWriteOptions]): Writer settings.
        """
        return cls(
            as_output_sink(sink),
            schema,
            options,
            owns_sink=is_path(sink),
        )

    def _on_dictionary_change(self, dict_id: int) -> None:
        log.debug(f"StreamWriter: replacing dictionary {dict_id}")

    def _finish(self) -> None:
        self._advance(write_end_of_stream(self._sink))
