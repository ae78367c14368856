"""Open files: reference-counted handles on pipes and inodes."""

from __future__ import annotations

import enum
import errno
import io
import threading
from dataclasses import dataclass

from tinyfs.fs import FileSystem, Inode
from tinyfs.layout import BSIZE, MAXOPBLOCKS, NFILE, Panic, Stat
from tinyfs.pipe import Pipe

# Bytes per transaction: leaves room for the inode, an indirect block,
# bitmap blocks and two blocks of slop for unaligned writes.
MAX_WRITE = ((MAXOPBLOCKS - 1 - 1 - 2) // 2) * BSIZE


class FileKind(enum.Enum):
    NONE = 0
    PIPE = 1
    INODE = 2


@dataclass(eq=False)
class OpenFile:
    """One slot of the open file table."""

    kind: FileKind = FileKind.NONE
    ref: int = 0
    readable: bool = False
    writable: bool = False
    pipe: Pipe | None = None
    ip: Inode | None = None
    off: int = 0


class FileTable:
    """A fixed table of open files, optionally backed by a file system."""

    def __init__(self, fs: FileSystem | None = None, nfile: int = NFILE) -> None:
        self.fs = fs
        self._lock = threading.Lock()
        self._files = [OpenFile() for _ in range(nfile)]

    def _filesystem(self) -> FileSystem:
        if self.fs is None:
            raise Panic("inode file without a file system")
        return self.fs

    def alloc(self) -> OpenFile:
        """Claim a free slot; raise OSError when the table is full."""
        with self._lock:
            for f in self._files:
                if f.ref == 0:
                    f.kind = FileKind.NONE
                    f.readable = f.writable = False
                    f.pipe = None
                    f.ip = None
                    f.off = 0
                    f.ref = 1
                    return f
        raise OSError(errno.ENFILE, "file table full")

    def dup(self, f: OpenFile) -> OpenFile:
        """Take another reference to ``f``."""
        with self._lock:
            if f.ref < 1:
                raise Panic("filedup")
            f.ref += 1
        return f

    def close(self, f: OpenFile) -> None:
        """Drop a reference; the last one releases the pipe end or inode."""
        with self._lock:
            if f.ref < 1:
                raise Panic("fileclose")
            f.ref -= 1
            if f.ref > 0:
                return
            kind, pipe, ip, writable = f.kind, f.pipe, f.ip, f.writable
            f.kind = FileKind.NONE
            f.pipe = None
            f.ip = None
        if kind is FileKind.PIPE and pipe is not None:
            pipe.close(writable)
        elif kind is FileKind.INODE and ip is not None:
            fs = self._filesystem()
            with fs.log.transaction():
                fs.iput(ip)

    def stat(self, f: OpenFile) -> Stat:
        """Metadata of an inode file."""
        if f.kind is not FileKind.INODE:
            raise io.UnsupportedOperation("stat needs an inode file")
        fs = self._filesystem()
        fs.ilock(f.ip)
        try:
            return fs.stati(f.ip)
        finally:
            fs.iunlock(f.ip)

    def read(self, f: OpenFile, n: int) -> bytes:
        """Read up to ``n`` bytes from ``f`` at its offset."""
        if not f.readable:
            raise io.UnsupportedOperation("file not readable")
        if f.kind is FileKind.PIPE:
            return f.pipe.read(n)
        if f.kind is FileKind.INODE:
            fs = self._filesystem()
            fs.ilock(f.ip)
            try:
                data = fs.readi(f.ip, f.off, n)
                f.off += len(data)
            finally:
                fs.iunlock(f.ip)
            return data
        raise Panic("fileread")

    def write(self, f: OpenFile, data) -> int:
        """Write all of ``data`` to ``f``; inode writes go in several transactions."""
        if not f.writable:
            raise io.UnsupportedOperation("file not writable")
        data = bytes(data)
        if f.kind is FileKind.PIPE:
            return f.pipe.write(data)
        if f.kind is FileKind.INODE:
            fs = self._filesystem()
            done = 0
            while done < len(data):
                chunk = data[done : done + MAX_WRITE]
                with fs.log.transaction():
                    fs.ilock(f.ip)
                    try:
                        written = fs.writei(f.ip, f.off, chunk)
                        if written > 0:
                            f.off += written
                    finally:
                        fs.iunlock(f.ip)
                if written != len(chunk):
                    raise Panic("short filewrite")
                done += written
            return len(data)
        raise Panic("filewrite")


def pipe_alloc(table: FileTable) -> tuple[OpenFile, OpenFile]:
    """Create a pipe and return its ``(read end, write end)`` files."""
    reader = table.alloc()
    try:
        writer = table.alloc()
    except OSError:
        table.close(reader)
        raise
    pipe = Pipe()
    reader.kind = FileKind.PIPE
    reader.readable, reader.writable = True, False
    reader.pipe = pipe
    writer.kind = FileKind.PIPE
    writer.readable, writer.writable = False, True
    writer.pipe = pipe
    return reader, writer