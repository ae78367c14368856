"""A bounded byte pipe with blocking reads and writes."""

from __future__ import annotations

import threading

PIPESIZE = 512


class Pipe:
    """A ring buffer shared by one reading end and one writing end."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._data = bytearray(PIPESIZE)
        self.nread = 0
        self.nwrite = 0
        self.readopen = True
        self.writeopen = True

    @property
    def closed(self) -> bool:
        """Whether both ends have been closed."""
        return not self.readopen and not self.writeopen

    def write(self, data) -> int:
        """Write all of ``data``, blocking while the pipe is full.

        Raises BrokenPipeError if the pipe is full and the reading end is closed;
        bytes written before that point stay in the pipe.
        """
        data = bytes(data)
        with self._cond:
            for byte in data:
                while self.nwrite == self.nread + PIPESIZE:
                    self._cond.notify_all()
                    if not self.readopen:
                        raise BrokenPipeError("pipe has no reader")
                    self._cond.wait()
                self._data[self.nwrite % PIPESIZE] = byte
                self.nwrite += 1
            self._cond.notify_all()
        return len(data)

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes, blocking until data arrives or the writer closes."""
        with self._cond:
            while self.nread == self.nwrite and self.writeopen:
                self._cond.wait()
            count = max(0, min(n, self.nwrite - self.nread))
            out = bytes(
                self._data[pos % PIPESIZE]
                for pos in range(self.nread, self.nread + count)
            )
            self.nread += count
            self._cond.notify_all()
            return out

    def close(self, writable: bool) -> None:
        """Close the writing end if ``writable``, else the reading end."""
        with self._cond:
            if writable:
                self.writeopen = False
            else:
                self.readopen = False
            self._cond.notify_all()