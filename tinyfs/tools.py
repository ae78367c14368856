"""Small user commands: cat, echo and ls."""

from __future__ import annotations

from collections.abc import Iterable
from typing import BinaryIO, TextIO

from tinyfs.fs import FileSystem
from tinyfs.layout import DIRENT_SIZE, DIRSIZ, DirEntry, InodeType, Stat

_CHUNK = 512
_PATH_MAX = 512


def cat(streams: Iterable[BinaryIO], out: BinaryIO) -> None:
    """Copy each stream in turn to ``out``."""
    for stream in streams:
        while chunk := stream.read(_CHUNK):
            written = out.write(chunk)
            if written is not None and written != len(chunk):
                raise OSError("cat: write error")


def echo(args: Iterable[str], out: TextIO) -> None:
    """Write the arguments separated by spaces and ended by a newline."""
    args = list(args)
    if args:
        out.write(" ".join(args) + "\n")


def fmtname(path: str) -> str:
    """The last element of ``path``, padded with blanks to DIRSIZ characters."""
    name = path.rsplit("/", 1)[-1]
    if len(name) >= DIRSIZ:
        return name
    return name.ljust(DIRSIZ)


def _stat_path(fs: FileSystem, path: str) -> Stat:
    with fs.log.transaction():
        ip = fs.namei(path)
        fs.ilock(ip)
        try:
            return fs.stati(ip)
        finally:
            fs.iunlockput(ip)


def _line(path: str, st: Stat) -> str:
    return f"{fmtname(path)} {int(st.type)} {st.ino} {st.size}\n"


def ls(fs: FileSystem, path: str, out: TextIO) -> None:
    """List a file, or each entry of a directory, as ``name type inode size``.

    Raises FileNotFoundError when ``path`` does not exist.
    """
    with fs.log.transaction():
        ip = fs.namei(path)
        fs.ilock(ip)
        try:
            st = fs.stati(ip)
            raw = fs.readi(ip, 0, ip.size) if st.type == InodeType.DIR else b""
        finally:
            fs.iunlockput(ip)

    if st.type == InodeType.FILE:
        out.write(_line(path, st))
    elif st.type == InodeType.DIR:
        if len(path.encode("utf-8")) + 1 + DIRSIZ + 1 > _PATH_MAX:
            out.write("ls: path too long\n")
            return
        for off in range(0, len(raw) - DIRENT_SIZE + 1, DIRENT_SIZE):
            de = DirEntry.unpack(raw[off : off + DIRENT_SIZE])
            if de.inum == 0:
                continue
            child = f"{path}/{de.name}"
            try:
                child_stat = _stat_path(fs, child)
            except FileNotFoundError:
                out.write(f"ls: cannot stat {child}\n")
                continue
            out.write(_line(child, child_stat))