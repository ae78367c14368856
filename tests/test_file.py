import io

import pytest

from tinyfs.disk import MemoryDisk
from tinyfs.file import FileKind, FileTable, pipe_alloc
from tinyfs.fs import open_filesystem
from tinyfs.layout import InodeType, Panic
from tinyfs.mkfs import build_image

CONTENT = b"hello world"


@pytest.fixture
def fs():
    return open_filesystem(MemoryDisk(build_image({"a.txt": CONTENT})))


def _open(table, fs, readable=True, writable=False):
    f = table.alloc()
    f.kind = FileKind.INODE
    f.ip = fs.namei("/a.txt")
    f.readable = readable
    f.writable = writable
    return f


def test_read_advances_offset(fs):
    table = FileTable(fs)
    f = _open(table, fs)
    assert table.read(f, 5) == CONTENT[:5]
    assert table.read(f, 100) == CONTENT[5:]
    assert table.read(f, 100) == b""
    assert f.off == len(CONTENT)


def test_write_large_and_read_back(fs):
    table = FileTable(fs)
    f = _open(table, fs, writable=True)
    payload = bytes(range(256)) * 12
    assert table.write(f, payload) == len(payload)
    assert f.off == len(payload)
    f.off = 0
    assert table.read(f, 10000) == payload
    assert table.stat(f).size == len(payload)


def test_stat_of_inode(fs):
    table = FileTable(fs)
    st = table.stat(_open(table, fs))
    assert st.size == len(CONTENT)
    assert st.type == InodeType.FILE


def test_unreadable_and_unwritable(fs):
    table = FileTable(fs)
    f = _open(table, fs, readable=False, writable=False)
    with pytest.raises(io.UnsupportedOperation):
        table.read(f, 1)
    with pytest.raises(io.UnsupportedOperation):
        table.write(f, b"x")


def test_close_releases_inode(fs):
    table = FileTable(fs)
    f = _open(table, fs)
    ip = f.ip
    table.dup(f)
    table.close(f)
    assert ip.ref == 1
    table.close(f)
    assert ip.ref == 0
    assert f.kind is FileKind.NONE
    with pytest.raises(Panic):
        table.close(f)


def test_table_full():
    table = FileTable(nfile=2)
    table.alloc()
    table.alloc()
    with pytest.raises(OSError):
        table.alloc()


def test_pipe_files():
    table = FileTable()
    reader, writer = pipe_alloc(table)
    assert table.write(writer, b"data") == 4
    assert table.read(reader, 10) == b"data"
    table.close(writer)
    assert table.read(reader, 10) == b""
    with pytest.raises(io.UnsupportedOperation):
        table.stat(reader)


def test_pipe_alloc_failure_frees_slot():
    table = FileTable(nfile=1)
    with pytest.raises(OSError):
        pipe_alloc(table)
    assert table.alloc().ref == 1