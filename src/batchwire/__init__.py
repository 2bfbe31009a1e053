from .enum import (
    MessageKind as MessageKind,
    MetadataVersion as MetadataVersion,
)

from .errors import (
    AllocationFailure as AllocationFailure,
    FormatInvalid as FormatInvalid,
    IOFailure as IOFailure,
    IpcError as IpcError,
)

from .handlers import (
    DEFAULT_MAX_RECURSION_DEPTH as DEFAULT_MAX_RECURSION_DEPTH,
    DictionaryMemo as DictionaryMemo,
    FileReader as FileReader,
    FileWriter as FileWriter,
    IpcReadOptions as IpcReadOptions,
    IpcWriteOptions as IpcWriteOptions,
    Message as Message,
    StreamReader as StreamReader,
    StreamWriter as StreamWriter,
    get_dictionary_types as get_dictionary_types,
    get_record_batch_size as get_record_batch_size,
    get_schema as get_schema,
    get_tensor_size as get_tensor_size,
    read_dictionary_batch as read_dictionary_batch,
    read_message as read_message,
    read_record_batch as read_record_batch,
    read_tensor as read_tensor,
    write_dictionary_batch as write_dictionary_batch,
    write_end_of_stream as write_end_of_stream,
    write_message as write_message,
    write_record_batch as write_record_batch,
    write_schema_message as write_schema_message,
    write_tensor as write_tensor,
)

# useful to do like: `from batchwire import FileWriter`
__all__ = [
    "AllocationFailure",
    "DEFAULT_MAX_RECURSION_DEPTH",
    "DictionaryMemo",
    "FileReader",
    "FileWriter",
    "FormatInvalid",
    "IOFailure",
    "IpcError",
    "IpcReadOptions",
    "IpcWriteOptions",
    "Message",
    "MessageKind",
    "MetadataVersion",
    "StreamReader",
    "StreamWriter",
    "get_dictionary_types",
    "get_record_batch_size",
    "get_schema",
    "get_tensor_size",
    "read_dictionary_batch",
    "read_message",
    "read_record_batch",
    "read_tensor",
    "write_dictionary_batch",
    "write_end_of_stream",
    "write_message",
    "write_record_batch",
    "write_schema_message",
    "write_tensor",
]
