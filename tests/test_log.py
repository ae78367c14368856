import struct

import pytest

from tinyfs.bcache import BufferCache
from tinyfs.disk import MemoryDisk
from tinyfs.layout import BSIZE, LOGSIZE, Panic, SuperBlock
from tinyfs.log import Log

NBLOCKS = 64
LOGSTART = 2


def make_disk(nlog=LOGSIZE):
    disk = MemoryDisk.blank(NBLOCKS)
    sb = SuperBlock(
        size=NBLOCKS,
        nblocks=8,
        ninodes=8,
        nlog=nlog,
        logstart=LOGSTART,
        inodestart=LOGSTART + nlog,
        bmapstart=LOGSTART + nlog + 1,
    )
    disk.write_block(1, sb.pack().ljust(BSIZE, b"\0"))
    return disk


def header_count(disk):
    return struct.unpack_from("<i", disk.read_block(LOGSTART))[0]


def modify(cache, log, blockno, fill):
    with cache.block(1, blockno) as buf:
        buf.data[:] = fill * BSIZE
        log.write(buf)


def test_commit_installs_blocks():
    disk = make_disk()
    cache = BufferCache(disk)
    log = Log(cache, 1)
    with log.transaction():
        modify(cache, log, 50, b"a")
        modify(cache, log, 51, b"b")
        assert disk.read_block(50) == bytes(BSIZE)
    assert disk.read_block(50) == b"a" * BSIZE
    assert disk.read_block(51) == b"b" * BSIZE
    assert header_count(disk) == 0
    assert log.pending == ()


def test_commit_waits_for_last_operation():
    disk = make_disk()
    cache = BufferCache(disk)
    log = Log(cache, 1)
    log.begin_op()
    log.begin_op()
    modify(cache, log, 45, b"q")
    log.end_op()
    assert disk.read_block(45) == bytes(BSIZE)
    log.end_op()
    assert disk.read_block(45) == b"q" * BSIZE


def test_absorption():
    disk = make_disk()
    cache = BufferCache(disk)
    log = Log(cache, 1)
    with log.transaction():
        modify(cache, log, 40, b"1")
        modify(cache, log, 40, b"2")
        modify(cache, log, 41, b"3")
        assert log.pending == (40, 41)
    assert disk.read_block(40) == b"2" * BSIZE


def test_write_outside_transaction():
    disk = make_disk()
    cache = BufferCache(disk)
    log = Log(cache, 1)
    with cache.block(1, 40) as buf:
        with pytest.raises(Panic, match="outside of trans"):
            log.write(buf)
    assert log.pending == ()


def test_transaction_too_big():
    disk = make_disk(nlog=3)
    cache = BufferCache(disk)
    log = Log(cache, 1)
    log.begin_op()
    modify(cache, log, 40, b"x")
    modify(cache, log, 41, b"y")
    with pytest.raises(Panic, match="too big"):
        modify(cache, log, 42, b"z")
    assert log.pending == (40, 41)


def test_recovery_replays_committed_log():
    disk = make_disk()
    header = struct.pack("<ii", 1, 40).ljust(BSIZE, b"\0")
    disk.write_block(LOGSTART, header)
    disk.write_block(LOGSTART + 1, b"R" * BSIZE)
    Log(BufferCache(disk), 1)
    assert disk.read_block(40) == b"R" * BSIZE
    assert header_count(disk) == 0


def test_empty_log_leaves_disk_alone():
    disk = make_disk()
    disk.write_block(40, b"k" * BSIZE)
    Log(BufferCache(disk), 1)
    assert disk.read_block(40) == b"k" * BSIZE
    assert header_count(disk) == 0