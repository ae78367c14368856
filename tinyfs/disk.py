"""A disk whose blocks live in memory."""

from __future__ import annotations

from tinyfs.layout import BSIZE, ROOTDEV, Panic


class MemoryDisk:
    """Block device backed by a bytearray holding a file system image."""

    def __init__(self, image: bytes = b"", dev: int = ROOTDEV) -> None:
        self._data = bytearray(image)
        self.dev = dev

    @classmethod
    def blank(cls, nblocks: int, dev: int = ROOTDEV) -> MemoryDisk:
        """A zero-filled disk of ``nblocks`` blocks."""
        return cls(bytes(nblocks * BSIZE), dev)

    @property
    def nblocks(self) -> int:
        return len(self._data) // BSIZE

    @property
    def image(self) -> bytes:
        """The current contents of the whole disk."""
        return bytes(self._data)

    def _offset(self, blockno: int) -> int:
        if not 0 <= blockno < self.nblocks:
            raise Panic("iderw: block out of range")
        return blockno * BSIZE

    def read_block(self, blockno: int) -> bytes:
        start = self._offset(blockno)
        return bytes(self._data[start : start + BSIZE])

    def write_block(self, blockno: int, data) -> None:
        if len(data) != BSIZE:
            raise ValueError(f"a block is {BSIZE} bytes, got {len(data)}")
        start = self._offset(blockno)
        self._data[start : start + BSIZE] = data