import io

import pytest

from tinyfs.disk import MemoryDisk
from tinyfs.fs import open_filesystem
from tinyfs.layout import DIRSIZ, InodeType
from tinyfs.mkfs import build_image
from tinyfs.tools import cat, echo, fmtname, ls


@pytest.fixture
def fs():
    image = build_image({"README": b"hello", "_cat": b"x" * 600})
    return open_filesystem(MemoryDisk(image))


def _stat(fs, path):
    with fs.log.transaction():
        ip = fs.namei(path)
        fs.ilock(ip)
        try:
            return fs.stati(ip)
        finally:
            fs.iunlockput(ip)


def test_cat_concatenates_streams():
    out = io.BytesIO()
    cat([io.BytesIO(b"abc"), io.BytesIO(b""), io.BytesIO(b"def\n")], out)
    assert out.getvalue() == b"abcdef\n"


def test_cat_large_stream_round_trip():
    data = bytes(range(256)) * 9
    out = io.BytesIO()
    cat([io.BytesIO(data)], out)
    assert out.getvalue() == data


def test_cat_no_streams():
    out = io.BytesIO()
    cat([], out)
    assert out.getvalue() == b""


def test_cat_short_write_raises():
    class Short(io.BytesIO):
        def write(self, b):
            return super().write(b[:1])

    with pytest.raises(OSError):
        cat([io.BytesIO(b"abc")], Short())


def test_echo_joins_with_spaces():
    out = io.StringIO()
    echo(["hello", "world"], out)
    assert out.getvalue() == "hello world\n"


def test_echo_nothing():
    out = io.StringIO()
    echo([], out)
    assert out.getvalue() == ""


def test_fmtname_pads_last_element():
    result = fmtname("a/b/c")
    assert result == "c" + " " * (DIRSIZ - 1)
    assert len(result) == DIRSIZ


def test_fmtname_long_name_unpadded():
    name = "n" * (DIRSIZ + 3)
    assert fmtname("/dir/" + name) == name


def test_fmtname_without_slash():
    assert fmtname("README").rstrip() == "README"


def test_ls_file(fs):
    out = io.StringIO()
    ls(fs, "/README", out)
    st = _stat(fs, "/README")
    assert st.type == InodeType.FILE
    assert out.getvalue() == f"{fmtname('/README')} {int(InodeType.FILE)} {st.ino} 5\n"


def test_ls_root_lists_entries(fs):
    out = io.StringIO()
    ls(fs, "/", out)
    rows = [line.split() for line in out.getvalue().splitlines()]
    assert [row[0] for row in rows] == [".", "..", "README", "cat"]
    for name, type_, ino, size in rows:
        st = _stat(fs, "/" + name)
        assert (int(type_), int(ino), int(size)) == (int(st.type), st.ino, st.size)
    sizes = {row[0]: int(row[3]) for row in rows}
    assert sizes["cat"] == 600


def test_ls_missing_path(fs):
    with pytest.raises(FileNotFoundError):
        ls(fs, "/nothing", io.StringIO())


def test_ls_path_too_long(fs):
    out = io.StringIO()
    ls(fs, "/" * 600, out)
    assert out.getvalue() == "ls: path too long\n"