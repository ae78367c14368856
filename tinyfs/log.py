"""Write-ahead redo log grouping file system updates into atomic transactions."""

from __future__ import annotations

import struct
import threading
from contextlib import contextmanager
from typing import Iterator

from tinyfs.bcache import Buffer, BufferCache
from tinyfs.layout import BSIZE, LOGSIZE, MAXOPBLOCKS, Panic, SuperBlock

_HEADER = struct.Struct(f"<i{LOGSIZE}i")


class Log:
    """The on-disk log: a header block naming home blocks, then their copies."""

    def __init__(self, cache: BufferCache, dev: int) -> None:
        if _HEADER.size >= BSIZE:
            raise Panic("initlog: too big logheader")
        with cache.block(dev, 1) as buf:
            sb = SuperBlock.unpack(buf.data)
        self.cache = cache
        self.dev = dev
        self.start = sb.logstart
        self.size = sb.nlog
        self.outstanding = 0
        self.committing = False
        self._blocks: list[int] = []
        self._cond = threading.Condition()
        self.recover()

    @property
    def pending(self) -> tuple[int, ...]:
        """Home block numbers recorded in the current transaction."""
        return tuple(self._blocks)

    def _install(self) -> None:
        for tail, home in enumerate(self._blocks):
            with self.cache.block(self.dev, self.start + tail + 1) as lbuf:
                with self.cache.block(self.dev, home) as dbuf:
                    dbuf.data[:] = lbuf.data
                    self.cache.write(dbuf)

    def _read_head(self) -> None:
        with self.cache.block(self.dev, self.start) as buf:
            n, *blocks = _HEADER.unpack_from(buf.data)
        self._blocks = blocks[:max(n, 0)]

    def _write_head(self) -> None:
        with self.cache.block(self.dev, self.start) as buf:
            entries = list(_HEADER.unpack_from(buf.data))[1:]
            entries[: len(self._blocks)] = self._blocks
            buf.data[: _HEADER.size] = _HEADER.pack(len(self._blocks), *entries)
            self.cache.write(buf)

    def _write_log(self) -> None:
        for tail, home in enumerate(self._blocks):
            with self.cache.block(self.dev, self.start + tail + 1) as to:
                with self.cache.block(self.dev, home) as source:
                    to.data[:] = source.data
                self.cache.write(to)

    def _commit(self) -> None:
        if self._blocks:
            self._write_log()
            self._write_head()  # the real commit point
            self._install()
            self._blocks = []
            self._write_head()

    def recover(self) -> None:
        """Install any committed transaction found on disk, then clear the log."""
        self._read_head()
        self._install()
        self._blocks = []
        self._write_head()

    def begin_op(self) -> None:
        """Start a file system operation, waiting while the log is busy or full."""
        with self._cond:
            while (
                self.committing
                or len(self._blocks) + (self.outstanding + 1) * MAXOPBLOCKS > LOGSIZE
            ):
                self._cond.wait()
            self.outstanding += 1

    def end_op(self) -> None:
        """Finish an operation; the last one outstanding commits."""
        do_commit = False
        with self._cond:
            self.outstanding -= 1
            if self.committing:
                raise Panic("log.committing")
            if self.outstanding == 0:
                do_commit = True
                self.committing = True
            else:
                self._cond.notify_all()
        if do_commit:
            try:
                self._commit()
            finally:
                with self._cond:
                    self.committing = False
                    self._cond.notify_all()

    @contextmanager
    def transaction(self) -> Iterator[Log]:
        """Run a ``with`` block as one operation."""
        self.begin_op()
        try:
            yield self
        finally:
            self.end_op()

    def write(self, buf: Buffer) -> None:
        """Record a modified buffer in the transaction and pin it in the cache."""
        n = len(self._blocks)
        if n >= LOGSIZE or n >= self.size - 1:
            raise Panic("too big a transaction")
        if self.outstanding < 1:
            raise Panic("log_write outside of trans")
        with self._cond:
            if buf.blockno not in self._blocks:
                self._blocks.append(buf.blockno)
            buf.dirty = True