import pyarrow as pa
import pytest

# Large enough for every batch the file-format tests write
_MMAP_SIZE = 1 << 20


@pytest.fixture(scope="function")
def mmap_file(tmp_path):
    """A fresh memory-mapped file FOR EACH function using this fixture"""
    mm = pa.create_memory_map(str(tmp_path / "batchwire.mmap"), _MMAP_SIZE)
    yield mm
    mm.close()


@pytest.fixture(scope="function")
def buffer_sink():
    """A growable in-memory sink"""
    return pa.BufferOutputStream()
