"""Inodes, file content, directories and path names on top of the log."""

from __future__ import annotations

import struct
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field

from tinyfs.bcache import Buffer, BufferCache
from tinyfs.disk import MemoryDisk
from tinyfs.layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    DIRENT_SIZE,
    DIRSIZ,
    IPB,
    MAXFILE,
    NDEV,
    NDIRECT,
    NINDIRECT,
    NINODE,
    ROOTDEV,
    ROOTINO,
    DirEntry,
    DiskInode,
    InodeType,
    Panic,
    Stat,
    SuperBlock,
    bblock,
    encode_name,
    iblock,
)
from tinyfs.log import Log

CONSOLE = 1

_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


class FsError(Exception):
    """An operation asked for something the file system cannot do."""


@dataclass(eq=False)
class Inode:
    """In-memory copy of an inode, shared through the inode cache."""

    dev: int = 0
    inum: int = 0
    ref: int = 0
    valid: bool = False
    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list[int] = field(default_factory=lambda: [0] * (NDIRECT + 1))
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False
    )
    _owner: int | None = field(default=None, init=False, repr=False)

    def holding(self) -> bool:
        """Whether the calling thread holds this inode's lock."""
        return self._owner == threading.get_ident()

    def _acquire(self) -> None:
        self._lock.acquire()
        self._owner = threading.get_ident()

    def _release(self) -> None:
        self._owner = None
        self._lock.release()


@dataclass
class Device:
    """Read and write handlers for a device inode's major number."""

    read: Callable[[Inode, int], bytes] | None = None
    write: Callable[[Inode, bytes], int] | None = None


def namecmp(s: str, t: str) -> int:
    """Compare two names over their first DIRSIZ bytes, like strncmp."""
    a, b = encode_name(s), encode_name(t)
    return (a > b) - (a < b)


def skipelem(path: str) -> tuple[str, str] | None:
    """Split off the first element of ``path``.

    Returns ``(name, rest)`` where ``rest`` has no leading slashes, or None
    when the path holds no element. The name is cut to DIRSIZ bytes.
    """
    path = path.lstrip("/")
    if not path:
        return None
    elem, _, rest = path.partition("/")
    name = elem.encode("utf-8")[:DIRSIZ].decode("utf-8", "ignore")
    return name, rest.lstrip("/")


class FileSystem:
    """Inode layer of one device: allocation, content, directories, paths."""

    def __init__(
        self, cache: BufferCache, dev: int = ROOTDEV, ninode: int = NINODE
    ) -> None:
        self.cache = cache
        self.dev = dev
        with cache.block(dev, 1) as buf:
            self.sb = SuperBlock.unpack(buf.data)
        self.log = Log(cache, dev)
        self.devsw: dict[int, Device] = {}
        self._icache_lock = threading.Lock()
        self._inodes = [Inode() for _ in range(ninode)]

    # Blocks.

    def _bzero(self, blockno: int) -> None:
        with self.cache.block(self.dev, blockno) as buf:
            buf.data[:] = bytes(BSIZE)
            self.log.write(buf)

    def _claim_bit(self, buf: Buffer, base: int) -> int | None:
        for bi in range(min(BPB, self.sb.size - base)):
            byte, mask = bi // 8, 1 << (bi % 8)
            if not buf.data[byte] & mask:
                buf.data[byte] |= mask
                self.log.write(buf)
                return base + bi
        return None

    def _balloc(self) -> int:
        for base in range(0, self.sb.size, BPB):
            with self.cache.block(self.dev, bblock(base, self.sb)) as buf:
                found = self._claim_bit(buf, base)
            if found is not None:
                self._bzero(found)
                return found
        raise Panic("balloc: out of blocks")

    def _bfree(self, blockno: int) -> None:
        with self.cache.block(self.dev, bblock(blockno, self.sb)) as buf:
            bi = blockno % BPB
            byte, mask = bi // 8, 1 << (bi % 8)
            if not buf.data[byte] & mask:
                raise Panic("freeing free block")
            buf.data[byte] &= ~mask & 0xFF
            self.log.write(buf)

    # Inodes.

    @staticmethod
    def _slot(inum: int) -> slice:
        start = (inum % IPB) * DINODE_SIZE
        return slice(start, start + DINODE_SIZE)

    def ialloc(self, type: int) -> Inode:
        """Allocate a free on-disk inode of the given type; return it unlocked."""
        for inum in range(1, self.sb.ninodes):
            with self.cache.block(self.dev, iblock(inum, self.sb)) as buf:
                slot = self._slot(inum)
                if DiskInode.unpack(buf.data[slot]).type != 0:
                    continue
                buf.data[slot] = DiskInode(type=int(type)).pack()
                self.log.write(buf)
            return self.iget(inum)
        raise Panic("ialloc: no inodes")

    def iupdate(self, ip: Inode) -> None:
        """Copy a locked inode's fields to its on-disk slot."""
        with self.cache.block(ip.dev, iblock(ip.inum, self.sb)) as buf:
            buf.data[self._slot(ip.inum)] = DiskInode(
                ip.type, ip.major, ip.minor, ip.nlink, ip.size, list(ip.addrs)
            ).pack()
            self.log.write(buf)

    def iget(self, inum: int) -> Inode:
        """Find or make the cache entry for an inode; it is neither locked nor read."""
        dev = self.dev
        with self._icache_lock:
            empty = None
            for ip in self._inodes:
                if ip.ref > 0 and ip.dev == dev and ip.inum == inum:
                    ip.ref += 1
                    return ip
                if empty is None and ip.ref == 0:
                    empty = ip
            if empty is None:
                raise Panic("iget: no inodes")
            empty.dev = dev
            empty.inum = inum
            empty.ref = 1
            empty.valid = False
            return empty

    def idup(self, ip: Inode) -> Inode:
        """Take another reference to ``ip`` and return it."""
        with self._icache_lock:
            ip.ref += 1
        return ip

    def ilock(self, ip: Inode | None) -> None:
        """Lock an inode, reading it from disk if it is not yet valid."""
        if ip is None or ip.ref < 1:
            raise Panic("ilock")
        ip._acquire()
        if not ip.valid:
            with self.cache.block(ip.dev, iblock(ip.inum, self.sb)) as buf:
                din = DiskInode.unpack(buf.data[self._slot(ip.inum)])
            ip.type = din.type
            ip.major = din.major
            ip.minor = din.minor
            ip.nlink = din.nlink
            ip.size = din.size
            ip.addrs = list(din.addrs)
            ip.valid = True
            if ip.type == 0:
                ip._release()
                raise Panic("ilock: no type")

    def iunlock(self, ip: Inode | None) -> None:
        """Unlock an inode held by the caller."""
        if ip is None or not ip.holding() or ip.ref < 1:
            raise Panic("iunlock")
        ip._release()

    def iput(self, ip: Inode) -> None:
        """Drop a reference; free the inode on disk if it was the last and unlinked."""
        ip._acquire()
        try:
            if ip.valid and ip.nlink == 0:
                with self._icache_lock:
                    refs = ip.ref
                if refs == 1:
                    self._itrunc(ip)
                    ip.type = 0
                    self.iupdate(ip)
                    ip.valid = False
        finally:
            ip._release()
        with self._icache_lock:
            ip.ref -= 1

    def iunlockput(self, ip: Inode) -> None:
        """Unlock, then drop a reference."""
        self.iunlock(ip)
        self.iput(ip)

    # Inode content.

    def _bmap(self, ip: Inode, bn: int) -> int:
        if bn < NDIRECT:
            if ip.addrs[bn] == 0:
                ip.addrs[bn] = self._balloc()
            return ip.addrs[bn]
        bn -= NDIRECT
        if bn < NINDIRECT:
            if ip.addrs[NDIRECT] == 0:
                ip.addrs[NDIRECT] = self._balloc()
            with self.cache.block(ip.dev, ip.addrs[NDIRECT]) as buf:
                entries = list(_INDIRECT.unpack_from(buf.data))
                if entries[bn] == 0:
                    entries[bn] = self._balloc()
                    _INDIRECT.pack_into(buf.data, 0, *entries)
                    self.log.write(buf)
                return entries[bn]
        raise Panic("bmap: out of range")

    def _itrunc(self, ip: Inode) -> None:
        for addr in ip.addrs[:NDIRECT]:
            if addr:
                self._bfree(addr)
        ip.addrs[:NDIRECT] = [0] * NDIRECT
        if ip.addrs[NDIRECT]:
            with self.cache.block(ip.dev, ip.addrs[NDIRECT]) as buf:
                entries = _INDIRECT.unpack_from(buf.data)
            for addr in entries:
                if addr:
                    self._bfree(addr)
            self._bfree(ip.addrs[NDIRECT])
            ip.addrs[NDIRECT] = 0
        ip.size = 0
        self.iupdate(ip)

    def stati(self, ip: Inode) -> Stat:
        """Metadata of a locked inode."""
        return Stat(
            type=ip.type, dev=ip.dev, ino=ip.inum, nlink=ip.nlink, size=ip.size
        )

    def _device(self, ip: Inode) -> Device | None:
        if not 0 <= ip.major < NDEV:
            return None
        return self.devsw.get(ip.major)

    def readi(self, ip: Inode, off: int, n: int) -> bytes:
        """Read up to ``n`` bytes at ``off`` from a locked inode."""
        if ip.type == InodeType.DEV:
            device = self._device(ip)
            if device is None or device.read is None:
                raise FsError(f"no reader for device {ip.major}")
            return device.read(ip, n)
        if off < 0 or n < 0 or off > ip.size:
            raise FsError(f"read at {off} past end of inode {ip.inum}")
        n = min(n, ip.size - off)
        out = bytearray()
        while len(out) < n:
            pos = off + len(out)
            with self.cache.block(ip.dev, self._bmap(ip, pos // BSIZE)) as buf:
                start = pos % BSIZE
                m = min(n - len(out), BSIZE - start)
                out += buf.data[start : start + m]
        return bytes(out)

    def writei(self, ip: Inode, off: int, data) -> int:
        """Write ``data`` at ``off`` into a locked inode; return the byte count."""
        data = bytes(data)
        if ip.type == InodeType.DEV:
            device = self._device(ip)
            if device is None or device.write is None:
                raise FsError(f"no writer for device {ip.major}")
            return device.write(ip, data)
        n = len(data)
        if off < 0 or off > ip.size:
            raise FsError(f"write at {off} past end of inode {ip.inum}")
        if off + n > MAXFILE * BSIZE:
            raise FsError("write exceeds maximum file size")
        done = 0
        while done < n:
            pos = off + done
            with self.cache.block(ip.dev, self._bmap(ip, pos // BSIZE)) as buf:
                start = pos % BSIZE
                m = min(n - done, BSIZE - start)
                buf.data[start : start + m] = data[done : done + m]
                self.log.write(buf)
            done += m
        if n > 0 and off + n > ip.size:
            ip.size = off + n
            self.iupdate(ip)
        return n

    # Directories.

    def _entries(self, dp: Inode, what: str) -> Iterator[tuple[int, DirEntry]]:
        for off in range(0, dp.size, DIRENT_SIZE):
            raw = self.readi(dp, off, DIRENT_SIZE)
            if len(raw) != DIRENT_SIZE:
                raise Panic(f"{what} read")
            yield off, DirEntry.unpack(raw)

    def dirlookup(self, dp: Inode, name: str) -> tuple[Inode, int] | None:
        """Find ``name`` in a locked directory: ``(inode, entry offset)`` or None."""
        if dp.type != InodeType.DIR:
            raise Panic("dirlookup not DIR")
        for off, de in self._entries(dp, "dirlookup"):
            if de.inum and namecmp(name, de.name) == 0:
                return self.iget(de.inum), off
        return None

    def dirlink(self, dp: Inode, name: str, inum: int) -> None:
        """Add the entry ``(name, inum)`` to a locked directory."""
        found = self.dirlookup(dp, name)
        if found is not None:
            self.iput(found[0])
            raise FileExistsError(name)
        off = next(
            (o for o, de in self._entries(dp, "dirlink") if de.inum == 0), dp.size
        )
        if self.writei(dp, off, DirEntry(inum, name).pack()) != DIRENT_SIZE:
            raise Panic("dirlink")

    # Path names.

    def _namex(
        self, path: str, parent: bool, cwd: Inode | None
    ) -> tuple[Inode, str] | None:
        if path.startswith("/") or cwd is None:
            ip = self.iget(ROOTINO)
        else:
            ip = self.idup(cwd)
        name = ""
        while (step := skipelem(path)) is not None:
            name, path = step
            self.ilock(ip)
            if ip.type != InodeType.DIR:
                self.iunlockput(ip)
                return None
            if parent and path == "":
                self.iunlock(ip)
                return ip, name
            found = self.dirlookup(ip, name)
            if found is None:
                self.iunlockput(ip)
                return None
            self.iunlockput(ip)
            ip = found[0]
        if parent:
            self.iput(ip)
            return None
        return ip, name

    def namei(self, path: str, cwd: Inode | None = None) -> Inode:
        """Inode for ``path``; relative paths start at ``cwd``, else the root."""
        found = self._namex(path, False, cwd)
        if found is None:
            raise FileNotFoundError(path)
        return found[0]

    def nameiparent(self, path: str, cwd: Inode | None = None) -> tuple[Inode, str]:
        """Parent directory of ``path`` and the final element's name."""
        found = self._namex(path, True, cwd)
        if found is None:
            raise FileNotFoundError(path)
        return found


def open_filesystem(disk: MemoryDisk, dev: int | None = None) -> FileSystem:
    """Open the file system on a disk, recovering its log."""
    cache = BufferCache(disk)
    return FileSystem(cache, disk.dev if dev is None else dev)