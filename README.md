# tinyfs

`tinyfs` is a small Unix-style file system in plain Python, with no
dependencies. Data lives in 512-byte blocks, files are described by inodes,
and directories are ordinary files made of fixed-width entries. Changes are
grouped into transactions through a redo log, so each operation reaches the
disk whole or not at all.

## Parts

- `tinyfs.layout`: limits and on-disk records. `SuperBlock`, `DiskInode` and
  `DirEntry` each have `pack()` and `unpack(data)`. `iblock(inum, sb)` gives
  the block holding an inode and `bblock(b, sb)` the free-map block holding a
  block's bit. `InodeType` names the inode kinds; `Stat` carries file
  metadata. Impossible states raise `Panic`.
- `tinyfs.disk`: `MemoryDisk` keeps a whole image in a bytearray, with
  `read_block`, `write_block`, `MemoryDisk.blank(nblocks)` and an `image`
  property holding the current contents.
- `tinyfs.bcache`: `BufferCache`, a fixed pool of `Buffer` objects recycled
  least recently used first. `read`, `write` and `release` work on held
  buffers; `block(dev, blockno)` is a context manager that holds one.
- `tinyfs.log`: `Log` brackets operations with `begin_op()` / `end_op()` or
  the `transaction()` context manager. The last operation to end commits;
  `recover()` installs a committed transaction found on disk.
- `tinyfs.fs`: `open_filesystem(disk)` returns a `FileSystem` that allocates
  inodes (`ialloc`), manages references and locks (`iget`, `idup`, `ilock`,
  `iunlock`, `iput`, `iunlockput`), reads and writes content (`readi`,
  `writei`), works on directories (`dirlookup`, `dirlink`) and resolves paths
  (`namei`, `nameiparent`). `skipelem` and `namecmp` are the path helpers.
- `tinyfs.file` and `tinyfs.pipe`: a `FileTable` of reference-counted
  `OpenFile` slots backed by an inode or a `Pipe`. `pipe_alloc(table)`
  returns a connected `(read end, write end)` pair. Writing to a full pipe
  whose reader is closed raises `BrokenPipeError`.
- `tinyfs.console` and `tinyfs.kbd`: `Console` line-edits typed input
  (backspace, Control-U kill-line, Control-D end of file) and renders output
  into an in-memory serial byte stream and an 80x25 text screen. `Keyboard`
  turns PC scan codes into characters, tracking Shift, Control and Caps Lock.
- `tinyfs.fmt`: `format_message(fmt, *args)` understands `%d`, `%x`, `%p`,
  `%s`, `%c` and `%%`; `format_int` renders 32-bit integers.
- `tinyfs.grep` and `tinyfs.tools`: `match(re, text)` supports `^ . * $`;
  `grep`, `cat`, `echo`, `fmtname` and `ls` are small tools, `ls` working on
  a mounted `FileSystem`.

## Installing

```
pip install .
```

Use `pip install .[test]` to install pytest as well.

## Building a disk image

`tinyfs-mkfs` writes a fresh 1000-block image with a root directory holding
`.` and `..` and one file per path you name:

```
tinyfs-mkfs fs.img README.md notes.txt
```

A leading underscore is dropped from each stored name, so `_cat` becomes
`cat`. Names are cut to 14 bytes, and a name containing `/` is refused.

From Python, `build_image({"name": b"data"})` returns the image bytes;
`ImageBuilder` offers `ialloc`, `iappend`, `add_file` and `finish`.

## Searching text

`tinyfs-grep` prints the lines that match a pattern, from the files named or
from standard input:

```
tinyfs-grep '^tiny.*fs$' words.txt
```

Only lines ending in a newline are printed. `match("^ab*c$", "abbc")` is
true.

## Using the file system from Python

```python
import sys

from tinyfs.disk import MemoryDisk
from tinyfs.fs import open_filesystem
from tinyfs.mkfs import build_image
from tinyfs.tools import ls

disk = MemoryDisk(build_image({"hello.txt": b"hello\n"}))
fs = open_filesystem(disk)

ls(fs, "/", sys.stdout)

with fs.log.transaction():
    ip = fs.namei("/hello.txt")
    fs.ilock(ip)
    try:
        data = fs.readi(ip, 0, ip.size)
    finally:
        fs.iunlockput(ip)
```

Any change to the file system must run inside a log transaction. To keep an
image, write `disk.image` to a file.

## What it does not do

There is no layer of path-level calls such as create, unlink, mkdir or
link: those are built by hand from `ialloc`, `dirlink` and `writei`.
Disks exist only in memory, there is no shell or process model, and the
console and keyboard work on values you pass in rather than on a terminal.

## Limits

| Limit                     | Value                                  |
|---------------------------|----------------------------------------|
| Block size                | 512 bytes                              |
| Image size (`tinyfs-mkfs`)| 1000 blocks                            |
| Inodes (`tinyfs-mkfs`)    | 200                                    |
| Largest file              | 140 blocks (12 direct + 128 indirect)  |
| Longest name              | 14 bytes                               |
| Buffer cache              | 30 blocks                              |
| Log                       | 30 blocks                              |