"""Buffer cache: in-memory copies of disk blocks, most recently used first."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

from tinyfs.disk import MemoryDisk
from tinyfs.layout import BSIZE, NBUF, Panic


@dataclass(eq=False)
class Buffer:
    """A cached block. Only the thread that holds it may use its data."""

    dev: int = 0
    blockno: int = 0
    data: bytearray = field(default_factory=lambda: bytearray(BSIZE))
    valid: bool = False
    dirty: bool = False
    refcnt: int = 0
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False
    )
    _owner: int | None = field(default=None, init=False, repr=False)

    def holding(self) -> bool:
        """Whether the calling thread holds this buffer."""
        return self._owner == threading.get_ident()


class BufferCache:
    """A fixed pool of buffers over one disk, recycled least recently used first."""

    def __init__(self, disk: MemoryDisk, nbuf: int = NBUF) -> None:
        self.disk = disk
        self._lock = threading.Lock()
        self._mru: list[Buffer] = [Buffer() for _ in range(nbuf)]

    def _get(self, dev: int, blockno: int) -> Buffer:
        with self._lock:
            for buf in self._mru:
                if buf.dev == dev and buf.blockno == blockno:
                    buf.refcnt += 1
                    break
            else:
                # A dirty buffer is still owed to the log, even when unreferenced.
                for buf in reversed(self._mru):
                    if buf.refcnt == 0 and not buf.dirty:
                        buf.dev = dev
                        buf.blockno = blockno
                        buf.valid = False
                        buf.dirty = False
                        buf.refcnt = 1
                        break
                else:
                    raise Panic("bget: no buffers")
        buf._lock.acquire()
        buf._owner = threading.get_ident()
        return buf

    def _sync(self, buf: Buffer) -> None:
        if not buf.holding():
            raise Panic("iderw: buf not locked")
        if buf.valid and not buf.dirty:
            raise Panic("iderw: nothing to do")
        if buf.dev != self.disk.dev:
            raise Panic(f"iderw: request not for disk {self.disk.dev}")
        if buf.dirty:
            self.disk.write_block(buf.blockno, buf.data)
            buf.dirty = False
        else:
            buf.data[:] = self.disk.read_block(buf.blockno)
        buf.valid = True

    def read(self, dev: int, blockno: int) -> Buffer:
        """Return the held buffer for a block, reading it from disk if needed."""
        buf = self._get(dev, blockno)
        if not buf.valid:
            try:
                self._sync(buf)
            except BaseException:
                self.release(buf)
                raise
        return buf

    def write(self, buf: Buffer) -> None:
        """Write a held buffer's contents to disk."""
        if not buf.holding():
            raise Panic("bwrite")
        buf.dirty = True
        self._sync(buf)

    def release(self, buf: Buffer) -> None:
        """Give up a held buffer and make it the most recently used."""
        if not buf.holding():
            raise Panic("brelse")
        buf._owner = None
        buf._lock.release()
        with self._lock:
            buf.refcnt -= 1
            if buf.refcnt == 0:
                self._mru.remove(buf)
                self._mru.insert(0, buf)

    @contextmanager
    def block(self, dev: int, blockno: int) -> Iterator[Buffer]:
        """Hold a block's buffer for the duration of a ``with`` block."""
        buf = self.read(dev, blockno)
        try:
            yield buf
        finally:
            self.release(buf)