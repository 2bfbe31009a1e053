from .config import (
    IpcReadOptions as IpcReadOptions,
    IpcWriteOptions as IpcWriteOptions,
)
from .dictionary_memo import DictionaryMemo as DictionaryMemo
from .message import (
    Message as Message,
    read_message as read_message,
    read_message_at as read_message_at,
    write_end_of_stream as write_end_of_stream,
    write_message as write_message,
)
from .schema_codec import (
    get_dictionary_types as get_dictionary_types,
    get_schema as get_schema,
    write_schema_message as write_schema_message,
)
from .record_batch import (
    get_record_batch_size as get_record_batch_size,
    read_dictionary_batch as read_dictionary_batch,
    read_record_batch as read_record_batch,
    write_dictionary_batch as write_dictionary_batch,
    write_record_batch as write_record_batch,
)
from .file_writer import FileWriter as FileWriter
from .file_reader import FileReader as FileReader
from .stream_writer import StreamWriter as StreamWriter
from .stream_reader import StreamReader as StreamReader
from .tensor import (
    get_tensor_size as get_tensor_size,
    read_tensor as read_tensor,
    write_tensor as write_tensor,
)
from .internal.depth import (
    DEFAULT_MAX_RECURSION_DEPTH as DEFAULT_MAX_RECURSION_DEPTH,
    check_depth as check_depth,
)
