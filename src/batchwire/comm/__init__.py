from .channel import (
    CountingSink as CountingSink,
    INT32_MAX as INT32_MAX,
    MAGIC as MAGIC,
    as_input_source as as_input_source,
    as_output_sink as as_output_sink,
    read_at as read_at,
    read_exactly as read_exactly,
    write_padded as write_padded,
)
