"""
Internal IPC Read State Module.

Dictionary handling shared by the file and stream readers.
"""

from typing import Dict
import logging as log

import pyarrow as pa

from ...enum import MessageKind
from ...errors import FormatInvalid
from ..config import IpcReadOptions
from ..dictionary_memo import DictionaryMemo
from ..message import Message
from ..record_batch import read_dictionary_batch


def _load_dictionary(
    message: Message,
    dictionary_types: Dict[int, pa.DataType],
    memo: DictionaryMemo,
    options: IpcReadOptions,
    allow_replace: bool,
) -> int:
    """
    Decodes a dictionary batch into `memo`.

    Args:
        message (Message): The dictionary-batch message.
        dictionary_types (Dict[int, pa.DataType]): Value type per id, from the
            schema.
        memo (DictionaryMemo): Session memo receiving the values.
        options (IpcReadOptions): Depth limit and validation level.
        allow_replace (bool): Whether an already registered id may be
            replaced (stream format) or is a duplicate (file format).

    Returns:
        int: The dictionary id.

    Raises:
        FormatInvalid: If the id is unknown to the schema, or duplicated where
            replacement is not allowed.
    """
    message.expect(MessageKind.DictionaryBatch)
    dict_id = message.header.id
    value_type = dictionary_types.get(dict_id)
    if value_type is None:
        raise FormatInvalid(f"Dictionary batch for id {dict_id} unknown to the schema")

    dict_id, values = read_dictionary_batch(
        message,
        value_type,
        max_recursion_depth=options.max_recursion_depth,
        validate_full=options.validate_full,
    )

    if memo.has_dictionary(dict_id):
        if not allow_replace:
            raise FormatInvalid(f"Duplicate dictionary batch for id {dict_id}")
        memo.replace_dictionary(dict_id, values)
        log.debug(f"Dictionary {dict_id} replaced ({len(values)} values)")
    else:
        memo.register_dictionary(dict_id, values)
    return dict_id
