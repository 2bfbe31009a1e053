import pyarrow as pa
import pytest

from batchwire import (
    FormatInvalid,
    IOFailure,
    IpcError,
    StreamReader,
    StreamWriter,
    read_message,
)
from testing.helpers import (
    BATCH_FACTORIES,
    FailingSink,
    make_int_batch,
    make_string_batch,
)


def _write_stream(sink: pa.NativeFile, batches) -> None:
    with StreamWriter.open(sink, batches[0].schema) as writer:
        for batch in batches:
            writer.write_record_batch(batch)


@pytest.mark.parametrize("name", list(BATCH_FACTORIES.keys()))
def test_stream_roundtrip(name: str, buffer_sink):
    batch = BATCH_FACTORIES[name]()
    _write_stream(buffer_sink, [batch, batch])

    reader = StreamReader.open(buffer_sink.getvalue())
    assert reader.schema.equals(batch.schema)
    assert reader.get_next_record_batch().equals(batch)
    assert reader.get_next_record_batch().equals(batch)
    assert reader.get_next_record_batch() is None


def test_stream_end_is_sticky(buffer_sink):
    batches = [make_int_batch(length=5 + i, seed=i) for i in range(6)]
    _write_stream(buffer_sink, batches)

    reader = StreamReader.open(buffer_sink.getvalue())
    for expected in batches:
        assert reader.get_next_record_batch().equals(expected)
    for _ in range(3):
        assert reader.get_next_record_batch() is None
    assert reader.num_record_batches == len(batches)


def test_stream_iteration(buffer_sink):
    batches = [make_string_batch(length=10 + i) for i in range(3)]
    _write_stream(buffer_sink, batches)

    with StreamReader.open(buffer_sink.getvalue()) as reader:
        table = reader.read_all()
    assert table.equals(pa.Table.from_batches(batches))


def test_empty_stream(buffer_sink):
    schema = make_int_batch().schema
    StreamWriter.open(buffer_sink, schema).close()

    reader = StreamReader.open(buffer_sink.getvalue())
    assert reader.schema.equals(schema)
    assert reader.get_next_record_batch() is None
    assert reader.read_all().num_rows == 0


def test_stream_ends_with_marker(buffer_sink):
    _write_stream(buffer_sink, [make_int_batch()])
    source = pa.BufferReader(buffer_sink.getvalue())
    kinds = []
    while (message := read_message(source)) is not None:
        kinds.append(message.kind)
    assert len(kinds) == 2
    assert source.tell() == buffer_sink.getvalue().size


def test_stream_from_file_object(tmp_path):
    path = tmp_path / "batches.stream"
    batch = make_int_batch()
    with StreamWriter.open(str(path), batch.schema) as writer:
        writer.write_record_batch(batch)

    with open(path, "rb") as f:
        reader = StreamReader.open(f)
        assert reader.get_next_record_batch().equals(batch)
        reader.close()
        assert not f.closed


def test_writer_rejects_other_schema(buffer_sink):
    writer = StreamWriter.open(buffer_sink, make_int_batch().schema)
    with pytest.raises(FormatInvalid):
        writer.write_record_batch(make_string_batch())
    writer.close()


def test_closed_writer(buffer_sink):
    batch = make_int_batch()
    writer = StreamWriter.open(buffer_sink, batch.schema)
    writer.close()
    with pytest.raises(IpcError):
        writer.write_record_batch(batch)


def test_stream_without_schema():
    with pytest.raises(FormatInvalid):
        StreamReader.open(b"")


def test_failed_write_leaves_no_end_of_stream():
    sink = FailingSink()
    batch = make_int_batch()
    with StreamWriter.open(sink, batch.schema) as writer:
        writer.write_record_batch(batch)
        written = len(sink.data)

        sink.failing = True
        with pytest.raises(IOFailure):
            writer.write_record_batch(batch)
        sink.failing = False
        with pytest.raises(IpcError):
            writer.write_record_batch(batch)
    assert writer.closed
    assert writer.num_record_batches == 1
    assert len(sink.data) == written
    reader = StreamReader.open(bytes(sink.data))
    assert reader.get_next_record_batch().equals(batch)
