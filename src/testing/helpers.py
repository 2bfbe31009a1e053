import datetime
import io
from decimal import Decimal
from typing import Callable, Dict, List, Optional

import numpy as np
import pyarrow as pa

from batchwire import Message, read_record_batch, write_record_batch


def roundtrip_batch(batch: pa.RecordBatch, **kwargs) -> pa.RecordBatch:
    """Writes `batch` as one message and reads it back."""
    sink = pa.BufferOutputStream()
    write_record_batch(batch, sink, **kwargs)
    message = Message.open(sink.getvalue())
    return read_record_batch(message, batch.schema)


class FailingSink(io.RawIOBase):
    """An in-memory sink whose writes raise OSError while `failing` is set"""

    def __init__(self):
        super().__init__()
        self.data = bytearray()
        self.failing = False

    def writable(self) -> bool:
        return True

    def write(self, b) -> int:
        if self.failing:
            raise OSError("disk full")
        chunk = bytes(b)
        self.data += chunk
        return len(chunk)


def random_list_array(
    length: int,
    value_type: pa.DataType = pa.int32(),
    seed: int = 0,
    null_probability: float = 0.2,
) -> pa.Array:
    rng = np.random.default_rng(seed)
    rows: List[Optional[list]] = []
    for _ in range(length):
        if rng.random() < null_probability:
            rows.append(None)
        else:
            rows.append([int(v) for v in rng.integers(0, 100, size=rng.integers(0, 6))])
    return pa.array(rows, type=pa.list_(value_type))


def _null_mask(rng: np.random.Generator, length: int) -> np.ndarray:
    return rng.random(length) < 0.2


def make_int_batch(length: int = 100, seed: int = 0) -> pa.RecordBatch:
    rng = np.random.default_rng(seed)
    mask = _null_mask(rng, length)
    f0 = pa.array(rng.integers(-1000, 1000, size=length, dtype=np.int32), mask=mask)
    f1 = pa.array(rng.integers(0, 2**40, size=length, dtype=np.int64), mask=mask)
    f2 = pa.array(rng.integers(0, 255, size=length, dtype=np.uint8))
    return pa.record_batch([f0, f1, f2], names=["f0", "f1", "f2"])


def make_non_null_batch(length: int = 100, seed: int = 0) -> pa.RecordBatch:
    rng = np.random.default_rng(seed)
    f0 = pa.array(rng.random(length))
    f1 = pa.array(rng.random(length).astype(np.float32))
    f2 = pa.array(rng.random(length).astype(np.float16))
    return pa.record_batch([f0, f1, f2], names=["f0", "f1", "f2"])


def make_zero_length_batch() -> pa.RecordBatch:
    return make_int_batch().slice(0, 0)


def make_list_batch(length: int = 100) -> pa.RecordBatch:
    f0 = random_list_array(length, seed=1)
    f1 = random_list_array(length, value_type=pa.int64(), seed=2, null_probability=0.0)
    f2 = pa.array(
        [[1, 2], None, [], [3]] * (length // 4), type=pa.large_list(pa.int16())
    )
    return pa.record_batch([f0, f1, f2], names=["f0", "f1", "f2"])


def make_fixed_size_list_batch() -> pa.RecordBatch:
    f0 = pa.array(
        [[1, 2, 3], None, [4, 5, 6], [7, None, 9]] * 5, type=pa.list_(pa.int32(), 3)
    )
    return pa.record_batch([f0], names=["f0"])


def make_string_batch(length: int = 100) -> pa.RecordBatch:
    words = ["", "foo", "bar", None, "batchwire", "été"]
    values = [words[i % len(words)] for i in range(length)]
    f0 = pa.array(values, type=pa.string())
    f1 = pa.array(
        [v.encode("utf-8") if v is not None else None for v in values], type=pa.binary()
    )
    f2 = pa.array(values, type=pa.large_string())
    f3 = pa.array(
        [v.encode("utf-8") if v is not None else None for v in values],
        type=pa.large_binary(),
    )
    return pa.record_batch([f0, f1, f2, f3], names=["f0", "f1", "f2", "f3"])


def make_boolean_batch(length: int = 100) -> pa.RecordBatch:
    values = [None if i % 7 == 0 else i % 3 == 0 for i in range(length)]
    return pa.record_batch([pa.array(values, type=pa.bool_())], names=["flag"])


def make_struct_batch() -> pa.RecordBatch:
    ptype = pa.struct([("a", pa.int32()), ("b", pa.string())])
    rows = [{"a": 1, "b": "x"}, None, {"a": None, "b": "y"}, {"a": 4, "b": None}] * 10
    f0 = pa.array(rows, type=ptype)
    f1 = pa.array(
        [{"inner": {"v": i}} if i % 5 else None for i in range(40)],
        type=pa.struct([("inner", pa.struct([("v", pa.int64())]))]),
    )
    return pa.record_batch([f0, f1], names=["f0", "f1"])


def make_union_batch() -> pa.RecordBatch:
    types = pa.array([0, 1, 1, 0, 1, 0, 0], type=pa.int8())
    sparse = pa.UnionArray.from_sparse(
        types,
        [
            pa.array([1, 2, 3, 4, 5, 6, 7], type=pa.int32()),
            pa.array(["a", "b", None, "d", "e", "f", "g"], type=pa.string()),
        ],
    )
    dense = pa.UnionArray.from_dense(
        types,
        pa.array([0, 0, 1, 1, 2, 2, 3], type=pa.int32()),
        [
            pa.array([10, None, 30, 40], type=pa.int64()),
            pa.array([b"x", b"yy", None], type=pa.binary()),
        ],
    )
    return pa.record_batch([sparse, dense], names=["sparse", "dense"])


def make_dates_batch() -> pa.RecordBatch:
    f0 = pa.array(
        [datetime.date(2000, 1, 1), None, datetime.date(1970, 1, 2)], type=pa.date32()
    )
    f1 = pa.array([0, None, 86_400_000 * 3], type=pa.date64())
    return pa.record_batch([f0, f1], names=["f0", "f1"])


def make_timestamps_batch() -> pa.RecordBatch:
    values = [1_700_000_000, None, 0, -1]
    columns = [
        pa.array(values, type=pa.timestamp("s")),
        pa.array(values, type=pa.timestamp("ms", tz="UTC")),
        pa.array(values, type=pa.timestamp("us", tz="Europe/Rome")),
        pa.array(values, type=pa.timestamp("ns")),
        pa.array(values, type=pa.duration("ms")),
    ]
    return pa.record_batch(columns, names=["f0", "f1", "f2", "f3", "f4"])


def make_times_batch() -> pa.RecordBatch:
    columns = [
        pa.array([0, None, 86_399], type=pa.time32("s")),
        pa.array([0, 1_000, None], type=pa.time32("ms")),
        pa.array([None, 1, 86_399_999_999], type=pa.time64("us")),
        pa.array([5, 6, 7], type=pa.time64("ns")),
    ]
    return pa.record_batch(columns, names=["f0", "f1", "f2", "f3"])


def make_fixed_size_binary_batch() -> pa.RecordBatch:
    f0 = pa.array([b"abcd", None, b"efgh", b"ijkl"], type=pa.binary(4))
    f1 = pa.array(
        [Decimal("1.23"), None, Decimal("-999.99"), Decimal("0")],
        type=pa.decimal128(5, 2),
    )
    return pa.record_batch([f0, f1], names=["f0", "f1"])


def make_null_batch() -> pa.RecordBatch:
    return pa.record_batch(
        [pa.nulls(10), pa.array(range(10), type=pa.int32())], names=["f0", "f1"]
    )


def make_dictionary_batch() -> pa.RecordBatch:
    """
    Four dictionary-encoded columns over two dictionaries: `f0`, `f1` and the
    list column `f3` are all built on the same `dict1` instance.
    """
    dict1 = pa.array(["foo", "bar", "baz"])
    dict2 = pa.array(["a", "b"])

    i32 = pa.int32()
    f0 = pa.DictionaryArray.from_arrays(pa.array([0, 1, None, 2, 1], type=i32), dict1)
    f1 = pa.DictionaryArray.from_arrays(pa.array([2, 2, 0, None, 1], pa.int8()), dict1)
    f2 = pa.DictionaryArray.from_arrays(pa.array([0, 1, 1, 0, None], type=i32), dict2)
    f3 = pa.ListArray.from_arrays(
        pa.array([0, 2, 2, 5, 6, 7], type=pa.int32()),
        pa.DictionaryArray.from_arrays(
            pa.array([0, 1, 2, 0, 1, 2, 0], type=pa.int32()), dict1
        ),
    )
    return pa.record_batch([f0, f1, f2, f3], names=["f0", "f1", "f2", "f3"])


def make_nested_list_type(
    depth: int, value_type: pa.DataType = pa.int32()
) -> pa.DataType:
    ptype = value_type
    for _ in range(depth):
        ptype = pa.list_(ptype)
    return ptype


def make_deeply_nested_list_batch(depth: int) -> pa.RecordBatch:
    """A single column nested `depth` lists deep around an int32 leaf."""
    arr = pa.array([1, 2, 3], type=pa.int32())
    for _ in range(depth):
        arr = pa.ListArray.from_arrays(pa.array([0, len(arr)], type=pa.int32()), arr)
    return pa.record_batch([arr], names=["nested"])


# name -> factory, for parametrized round trips
BATCH_FACTORIES: Dict[str, Callable[[], pa.RecordBatch]] = {
    "int": make_int_batch,
    "non_null": make_non_null_batch,
    "zero_length": make_zero_length_batch,
    "list": make_list_batch,
    "fixed_size_list": make_fixed_size_list_batch,
    "string": make_string_batch,
    "boolean": make_boolean_batch,
    "struct": make_struct_batch,
    "union": make_union_batch,
    "dates": make_dates_batch,
    "timestamps": make_timestamps_batch,
    "times": make_times_batch,
    "fixed_size_binary": make_fixed_size_binary_batch,
    "null": make_null_batch,
    "nested_list": lambda: make_deeply_nested_list_batch(10),
}
