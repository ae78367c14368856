"""Build a file system image holding a root directory and some files."""

from __future__ import annotations

import struct
import sys
from collections.abc import Iterable, Mapping

from tinyfs.layout import (
    BSIZE,
    DIRENT_SIZE,
    DINODE_SIZE,
    FSSIZE,
    IPB,
    LOGSIZE,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    DirEntry,
    DiskInode,
    InodeType,
    SuperBlock,
    iblock,
)

NINODES = 200

_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


class ImageBuilder:
    """Lays out a fresh image: boot, superblock, log, inodes, bitmap, data."""

    def __init__(
        self, fssize: int = FSSIZE, ninodes: int = NINODES, nlog: int = LOGSIZE
    ) -> None:
        self.fssize = fssize
        self.nbitmap = fssize // (BSIZE * 8) + 1
        self.ninodeblocks = ninodes // IPB + 1
        self.nlog = nlog
        self.nmeta = 2 + nlog + self.ninodeblocks + self.nbitmap
        self.nblocks = fssize - self.nmeta
        if self.nblocks <= 0:
            raise ValueError("image too small for its metadata")
        self.sb = SuperBlock(
            size=fssize,
            nblocks=self.nblocks,
            ninodes=ninodes,
            nlog=nlog,
            logstart=2,
            inodestart=2 + nlog,
            bmapstart=2 + nlog + self.ninodeblocks,
        )
        self.freeinode = 1
        self.freeblock = self.nmeta
        self._image = bytearray(fssize * BSIZE)
        self._image[BSIZE : BSIZE + len(self.sb.pack())] = self.sb.pack()
        self._result: bytes | None = None

        self.rootino = self.ialloc(InodeType.DIR)
        assert self.rootino == ROOTINO
        self.iappend(self.rootino, DirEntry(self.rootino, ".").pack())
        self.iappend(self.rootino, DirEntry(self.rootino, "..").pack())

    def _block(self, blockno: int) -> memoryview:
        start = blockno * BSIZE
        return memoryview(self._image)[start : start + BSIZE]

    def _next_block(self) -> int:
        blockno = self.freeblock
        if blockno >= self.fssize:
            raise ValueError("out of data blocks")
        self.freeblock += 1
        return blockno

    def _inode_slot(self, inum: int) -> memoryview:
        offset = (inum % IPB) * DINODE_SIZE
        return self._block(iblock(inum, self.sb))[offset : offset + DINODE_SIZE]

    def _rinode(self, inum: int) -> DiskInode:
        return DiskInode.unpack(self._inode_slot(inum))

    def _winode(self, inum: int, din: DiskInode) -> None:
        self._inode_slot(inum)[:] = din.pack()

    def ialloc(self, type: int) -> int:
        """Allocate the next inode with one link and return its number."""
        inum = self.freeinode
        if inum >= self.sb.ninodes:
            raise ValueError("out of inodes")
        self.freeinode += 1
        self._winode(inum, DiskInode(type=int(type), nlink=1, size=0))
        return inum

    def iappend(self, inum: int, data: bytes) -> None:
        """Append bytes to an inode's content, allocating blocks as needed."""
        din = self._rinode(inum)
        off = din.size
        pos = 0
        while pos < len(data):
            fbn = off // BSIZE
            if fbn >= MAXFILE:
                raise ValueError("file too large")
            if fbn < NDIRECT:
                if din.addrs[fbn] == 0:
                    din.addrs[fbn] = self._next_block()
                target = din.addrs[fbn]
            else:
                if din.addrs[NDIRECT] == 0:
                    din.addrs[NDIRECT] = self._next_block()
                indirect_block = self._block(din.addrs[NDIRECT])
                indirect = list(_INDIRECT.unpack(indirect_block))
                if indirect[fbn - NDIRECT] == 0:
                    indirect[fbn - NDIRECT] = self._next_block()
                    indirect_block[:] = _INDIRECT.pack(*indirect)
                target = indirect[fbn - NDIRECT]
            n1 = min(len(data) - pos, (fbn + 1) * BSIZE - off)
            start = off - fbn * BSIZE
            self._block(target)[start : start + n1] = data[pos : pos + n1]
            pos += n1
            off += n1
        din.size = off
        self._winode(inum, din)

    def add_file(self, name: str, data: bytes) -> int:
        """Add a file to the root directory; a leading underscore is dropped."""
        if self._result is not None:
            raise RuntimeError("image already finished")
        if "/" in name:
            raise ValueError(f"file name may not contain '/': {name!r}")
        if name.startswith("_"):
            name = name[1:]
        inum = self.ialloc(InodeType.FILE)
        self.iappend(self.rootino, DirEntry(inum, name).pack())
        self.iappend(inum, data)
        return inum

    def finish(self) -> bytes:
        """Round up the root directory size, write the bitmap, return the image."""
        if self._result is not None:
            return self._result
        root = self._rinode(self.rootino)
        root.size = (root.size // BSIZE + 1) * BSIZE
        self._winode(self.rootino, root)

        used = self.freeblock
        if used >= BSIZE * 8:
            raise ValueError("too many blocks for one bitmap block")
        self._block(self.sb.bmapstart)[:] = ((1 << used) - 1).to_bytes(
            BSIZE, "little"
        )
        self._result = bytes(self._image)
        return self._result


def build_image(files: Mapping[str, bytes] | Iterable[tuple[str, bytes]]) -> bytes:
    """Build a complete image holding the given ``(name, data)`` files."""
    builder = ImageBuilder()
    items = files.items() if isinstance(files, Mapping) else files
    for name, data in items:
        builder.add_file(name, data)
    return builder.finish()


def main(argv: list[str] | None = None) -> int:
    """Command line: ``mkfs fs.img files...``."""
    if argv is None:
        argv = sys.argv[1:]
    if not argv:
        print("Usage: mkfs fs.img files...", file=sys.stderr)
        return 1
    output, names = argv[0], argv[1:]

    builder = ImageBuilder()
    print(
        f"nmeta {builder.nmeta} (boot, super, log blocks {builder.nlog} "
        f"inode blocks {builder.ninodeblocks}, bitmap blocks {builder.nbitmap}) "
        f"blocks {builder.nblocks} total {builder.fssize}"
    )
    try:
        for name in names:
            if "/" in name:
                print(f"mkfs: {name}: file name may not contain '/'", file=sys.stderr)
                return 1
            try:
                with open(name, "rb") as f:
                    data = f.read()
            except OSError as err:
                print(f"{name}: {err.strerror}", file=sys.stderr)
                return 1
            builder.add_file(name, data)
        used = builder.freeblock
        print(f"balloc: first {used} blocks have been allocated")
        image = builder.finish()
        print(f"balloc: write bitmap block at sector {builder.sb.bmapstart}")
    except ValueError as err:
        print(f"mkfs: {err}", file=sys.stderr)
        return 1

    try:
        with open(output, "wb") as f:
            f.write(image)
    except OSError as err:
        print(f"{output}: {err.strerror}", file=sys.stderr)
        return 1
    return 0