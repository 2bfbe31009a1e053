import pyarrow as pa
import pytest

from batchwire import (
    DictionaryMemo,
    FileReader,
    FileWriter,
    FormatInvalid,
    Message,
    StreamReader,
    StreamWriter,
    read_dictionary_batch,
    read_record_batch,
    write_dictionary_batch,
    write_record_batch,
)
from testing.helpers import make_dictionary_batch


def _dictionary_address(arr: pa.Array) -> int:
    return arr.dictionary.buffers()[1].address


def _check_shared_dictionaries(batch: pa.RecordBatch):
    """f0, f1 and the values of f3 must share dict1's buffers, f2 must not"""
    f0, f1, f2, f3 = batch.columns
    address = _dictionary_address(f0)
    assert _dictionary_address(f1) == address
    assert _dictionary_address(f3.values) == address
    assert _dictionary_address(f2) != address


def test_memo_identity():
    dictionary = pa.array(["a", "b", "c"])
    memo = DictionaryMemo()

    dict_id = memo.get_or_assign_id(dictionary)
    assert memo.get_or_assign_id(dictionary) == dict_id
    # Same memory through another wrapper
    indices = pa.array([0, 1], type=pa.int8())
    shared = pa.DictionaryArray.from_arrays(indices, dictionary).dictionary
    assert memo.get_or_assign_id(shared) == dict_id
    # A copy is another dictionary
    copy = pa.array(dictionary.to_pylist())
    assert memo.get_or_assign_id(copy) != dict_id
    assert len(memo) == 2
    assert memo.holds(dict_id, dictionary)
    assert not memo.holds(dict_id, copy)


def test_memo_registration():
    memo = DictionaryMemo()
    memo.register_dictionary(0, pa.array([1, 2]))
    assert memo.has_dictionary(0)
    assert memo.value_type(0).equals(pa.int64())
    assert memo.lookup(0).to_pylist() == [1, 2]

    with pytest.raises(FormatInvalid):
        memo.register_dictionary(0, pa.array([3]))
    with pytest.raises(FormatInvalid):
        memo.lookup(1)
    with pytest.raises(FormatInvalid):
        memo.replace_dictionary(1, pa.array([3]))

    memo.replace_dictionary(0, pa.array([3]))
    assert memo.lookup(0).to_pylist() == [3]
    assert memo.ids == [0]


def test_memo_field_binding():
    memo = DictionaryMemo()
    memo.add_field((0,), 0, pa.string())
    memo.add_field((2, 1), 0, pa.string())
    assert memo.get_field_id((2, 1)) == 0

    # Same id, different value type
    with pytest.raises(FormatInvalid):
        memo.add_field((1,), 0, pa.int32())
    # Same field, different id
    with pytest.raises(FormatInvalid):
        memo.add_field((0,), 1, pa.string())
    with pytest.raises(FormatInvalid):
        memo.get_field_id((5,))

    # Fresh ids never collide with bound ones
    assert memo.get_or_assign_field_id((1,), pa.int32()) == 1
    assert memo.get_or_assign_field_id((0,), pa.string()) == 0


def test_dictionary_batch_roundtrip():
    dictionary = pa.array(["x", None, "zz"])
    sink = pa.BufferOutputStream()
    write_dictionary_batch(3, dictionary, sink)
    dict_id, values = read_dictionary_batch(Message.open(sink.getvalue()), pa.string())
    assert dict_id == 3
    assert values.equals(dictionary)


def test_record_batch_resolves_through_memo():
    batch = make_dictionary_batch()
    sink = pa.BufferOutputStream()
    write_record_batch(batch, sink)
    message = Message.open(sink.getvalue())

    # Indices only: without the dictionaries nothing can be rebuilt
    with pytest.raises(FormatInvalid):
        read_record_batch(message, batch.schema)

    memo = DictionaryMemo()
    dict1 = batch.column(0).dictionary
    memo.register_dictionary(0, dict1)
    memo.register_dictionary(1, batch.column(2).dictionary)
    for path, dict_id in [((0,), 0), ((1,), 0), ((2,), 1), ((3, 0), 0)]:
        memo.add_field(path, dict_id, pa.string())

    result = read_record_batch(message, batch.schema, memo=memo)
    assert result.equals(batch)


def test_file_dictionary_identity(buffer_sink):
    batch = make_dictionary_batch()
    with FileWriter.open(buffer_sink, batch.schema) as writer:
        writer.write_record_batch(batch)
        writer.write_record_batch(batch)

    reader = FileReader.open(buffer_sink.getvalue())
    # dict1 is shared by three columns but written once
    assert reader.num_dictionaries == 2
    for i in range(reader.num_record_batches):
        result = reader.get_record_batch(i)
        assert result.equals(batch)
        _check_shared_dictionaries(result)


def test_stream_dictionary_identity(buffer_sink):
    batch = make_dictionary_batch()
    with StreamWriter.open(buffer_sink, batch.schema) as writer:
        writer.write_record_batch(batch)
    assert writer.num_dictionary_batches == 2

    reader = StreamReader.open(buffer_sink.getvalue())
    result = reader.get_next_record_batch()
    assert result.equals(batch)
    _check_shared_dictionaries(result)


def _with_dictionary(values) -> pa.RecordBatch:
    indices = pa.array([0, 1, 1, None], type=pa.int32())
    return pa.record_batch(
        [pa.DictionaryArray.from_arrays(indices, pa.array(values))], names=["d"]
    )


def test_file_rejects_dictionary_change(buffer_sink):
    first = _with_dictionary(["a", "b"])
    writer = FileWriter.open(buffer_sink, first.schema)
    writer.write_record_batch(first)
    # Equal values in another instance are accepted
    writer.write_record_batch(_with_dictionary(["a", "b"]))
    with pytest.raises(FormatInvalid):
        writer.write_record_batch(_with_dictionary(["c", "d"]))
    writer.close()

    reader = FileReader.open(buffer_sink.getvalue())
    assert reader.num_record_batches == 2
    assert reader.num_dictionaries == 1


def test_stream_replaces_dictionary(buffer_sink):
    batches = [
        _with_dictionary(["a", "b"]),
        _with_dictionary(["a", "b"]),
        _with_dictionary(["c", "d"]),
    ]
    with StreamWriter.open(buffer_sink, batches[0].schema) as writer:
        for batch in batches:
            writer.write_record_batch(batch)
    assert writer.num_dictionary_replacements == 1
    assert writer.num_dictionary_batches == 2

    reader = StreamReader.open(buffer_sink.getvalue())
    results = list(reader)
    assert [r.column(0).to_pylist() for r in results] == [
        ["a", "b", "b", None],
        ["a", "b", "b", None],
        ["c", "d", "d", None],
    ]
    assert reader.num_dictionary_batches == 2


def test_empty_file_writes_empty_dictionaries(buffer_sink):
    schema = make_dictionary_batch().schema
    FileWriter.open(buffer_sink, schema).close()

    reader = FileReader.open(buffer_sink.getvalue())
    assert reader.num_record_batches == 0
    assert reader.num_dictionaries == 4
    assert reader.schema.equals(schema)
    assert reader.read_all().num_rows == 0


@pytest.mark.parametrize("offset, length", [(1, 3), (2, 0)])
def test_sliced_dictionary_batch(offset: int, length: int, buffer_sink):
    batch = make_dictionary_batch().slice(offset, length)

    with FileWriter.open(buffer_sink, batch.schema) as writer:
        writer.write_record_batch(batch)
    reader = FileReader.open(buffer_sink.getvalue())
    assert reader.num_dictionaries == 2
    result = reader.get_record_batch(0)
    assert result.num_rows == length
    assert result.equals(batch)
    _check_shared_dictionaries(result)

    stream_sink = pa.BufferOutputStream()
    with StreamWriter.open(stream_sink, batch.schema) as writer:
        writer.write_record_batch(batch)
    result = StreamReader.open(stream_sink.getvalue()).get_next_record_batch()
    assert result.equals(batch)
    _check_shared_dictionaries(result)
