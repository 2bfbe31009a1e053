import pyarrow as pa
import pytest

from batchwire import (
    DEFAULT_MAX_RECURSION_DEPTH,
    DictionaryMemo,
    FileReader,
    FileWriter,
    FormatInvalid,
    IpcReadOptions,
    IpcWriteOptions,
    Message,
    get_schema,
    read_record_batch,
    write_record_batch,
    write_schema_message,
)
from batchwire.handlers import check_depth
from testing.helpers import make_deeply_nested_list_batch


def _write(batch: pa.RecordBatch, max_recursion_depth: int) -> pa.Buffer:
    sink = pa.BufferOutputStream()
    write_record_batch(batch, sink, max_recursion_depth=max_recursion_depth)
    return sink.getvalue()


def test_check_depth():
    check_depth(1, "a field")
    with pytest.raises(FormatInvalid):
        check_depth(0, "a field")
    with pytest.raises(FormatInvalid):
        check_depth(-3, "a field")


def test_invalid_limit():
    with pytest.raises(ValueError):
        IpcWriteOptions(max_recursion_depth=0)
    with pytest.raises(ValueError):
        IpcReadOptions(max_recursion_depth=-1)


def test_write_limit():
    batch = make_deeply_nested_list_batch((1 << 8) + 1)
    with pytest.raises(FormatInvalid):
        write_record_batch(batch, pa.BufferOutputStream())
    with pytest.raises(FormatInvalid):
        write_schema_message(batch.schema, DictionaryMemo())


def test_default_limit_boundary():
    """A leaf under k lists sits at depth k + 1"""
    depth = DEFAULT_MAX_RECURSION_DEPTH - 1
    batch = make_deeply_nested_list_batch(depth)
    message = Message.open(_write(batch, DEFAULT_MAX_RECURSION_DEPTH))
    assert read_record_batch(message, batch.schema).equals(batch)

    with pytest.raises(FormatInvalid):
        _write(make_deeply_nested_list_batch(depth + 1), DEFAULT_MAX_RECURSION_DEPTH)


def test_read_limit():
    depth = 64
    batch = make_deeply_nested_list_batch(depth)
    message = Message.open(_write(batch, depth + 1))

    with pytest.raises(FormatInvalid):
        read_record_batch(message, batch.schema, max_recursion_depth=depth)
    result = read_record_batch(message, batch.schema, max_recursion_depth=depth + 1)
    assert result.equals(batch)


def test_schema_read_limit():
    depth = 64
    batch = make_deeply_nested_list_batch(depth)
    message = Message.open(
        write_schema_message(
            batch.schema, DictionaryMemo(), max_recursion_depth=depth + 1
        )
    )
    with pytest.raises(FormatInvalid):
        get_schema(message, DictionaryMemo(), max_recursion_depth=depth)
    assert get_schema(message, DictionaryMemo(), max_recursion_depth=depth + 1).equals(
        batch.schema
    )


@pytest.mark.parametrize("depth", [100, 500])
def test_stress_limit(depth: int):
    batch = make_deeply_nested_list_batch(depth)
    message = Message.open(_write(batch, depth + 1))
    result = read_record_batch(message, batch.schema, max_recursion_depth=depth + 1)
    assert result.equals(batch)


def test_file_limits(buffer_sink):
    depth = 100
    batch = make_deeply_nested_list_batch(depth)

    with pytest.raises(FormatInvalid):
        FileWriter.open(buffer_sink, batch.schema)

    options = IpcWriteOptions(max_recursion_depth=depth + 1)
    with FileWriter.open(buffer_sink, batch.schema, options) as writer:
        writer.write_record_batch(batch)
    data = buffer_sink.getvalue()

    with pytest.raises(FormatInvalid):
        FileReader.open(data)
    options = IpcReadOptions(max_recursion_depth=depth + 1)
    reader = FileReader.open(data, options=options)
    assert reader.get_record_batch(0).equals(batch)
