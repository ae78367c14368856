"""A small Unix-style file system in memory with a redo log, inodes, directories and tools."""

__version__ = "0.1.0"

__all__ = [
    "bcache",
    "console",
    "disk",
    "file",
    "fmt",
    "fs",
    "grep",
    "kbd",
    "layout",
    "log",
    "mkfs",
    "pipe",
    "tools",
]