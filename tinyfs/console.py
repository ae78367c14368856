"""Console: line-edited input and output to a serial stream and a text screen."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable

from tinyfs.fmt import LOWER_DIGITS, format_int
from tinyfs.layout import Panic

BACKSPACE = 0x100
INPUT_BUF = 128
COLS = 80
ROWS = 25
_ATTR = 0x0700  # light grey on black
_NL = ord("\n")
_CR = ord("\r")


def _ctrl(ch: str) -> int:
    return ord(ch) - ord("@")


_EOF = _ctrl("D")


def _codes(chars: str | bytes | Iterable[int]) -> bytes:
    if isinstance(chars, str):
        return chars.encode("latin-1")
    return bytes(chars)


class Console:
    """Echoes typed characters, buffers complete lines and renders output."""

    def __init__(self, procdump: Callable[[], None] | None = None) -> None:
        self.procdump = procdump
        self.serial = bytearray()
        self.crt = [0] * (COLS * ROWS)
        self.pos = 0
        self._cond = threading.Condition(threading.RLock())
        self._buf = bytearray(INPUT_BUF)
        self._r = 0  # read index
        self._w = 0  # write index
        self._e = 0  # edit index

    def _cgaputc(self, c: int) -> None:
        pos = self.pos
        if c == _NL:
            pos += COLS - pos % COLS
        elif c == BACKSPACE:
            if pos > 0:
                pos -= 1
        else:
            self.crt[pos] = (c & 0xFF) | _ATTR
            pos += 1
        if pos < 0 or pos > ROWS * COLS:
            raise Panic("pos under/overflow")
        if pos // COLS >= 24:
            self.crt[: 23 * COLS] = self.crt[COLS : 24 * COLS]
            pos -= COLS
            self.crt[pos : 24 * COLS] = [0] * (24 * COLS - pos)
        self.pos = pos
        self.crt[pos] = ord(" ") | _ATTR

    def putc(self, c: int | str) -> None:
        """Send one character, or BACKSPACE, to the serial stream and the screen."""
        if isinstance(c, str):
            c = ord(c)
        if c == BACKSPACE:
            self.serial += b"\b \b"
        else:
            self.serial.append(c & 0xFF)
        self._cgaputc(c)

    def cprintf(self, fmt: str, *args: object) -> None:
        """Print with %d, %x, %p, %s and %%; other sequences are shown as typed."""
        if fmt is None:
            raise Panic("null fmt")
        params = iter(args)

        def arg() -> object:
            try:
                return next(params)
            except StopIteration:
                raise TypeError("not enough arguments for format string") from None

        with self._cond:
            chars = iter(fmt)
            for ch in chars:
                if ch != "%":
                    self.putc(ch)
                    continue
                ch = next(chars, None)
                if ch is None:
                    break
                if ch == "d":
                    text = format_int(arg(), 10, True, LOWER_DIGITS)
                elif ch in ("x", "p"):
                    text = format_int(arg(), 16, False, LOWER_DIGITS)
                elif ch == "s":
                    s = arg()
                    text = "(null)" if s is None else str(s)
                elif ch == "%":
                    text = "%"
                else:
                    text = "%" + ch
                for out in text:
                    self.putc(out)

    def intr(self, chars: str | bytes | Iterable[int]) -> None:
        """Handle typed characters: edit the current line and echo it."""
        dump = False
        with self._cond:
            for c in _codes(chars):
                if c == _ctrl("P"):
                    dump = True
                elif c == _ctrl("U"):
                    while (
                        self._e != self._w
                        and self._buf[(self._e - 1) % INPUT_BUF] != _NL
                    ):
                        self._e -= 1
                        self.putc(BACKSPACE)
                elif c in (_ctrl("H"), 0x7F):
                    if self._e != self._w:
                        self._e -= 1
                        self.putc(BACKSPACE)
                elif c != 0 and self._e - self._r < INPUT_BUF:
                    if c == _CR:
                        c = _NL
                    self._buf[self._e % INPUT_BUF] = c
                    self._e += 1
                    self.putc(c)
                    if c in (_NL, _EOF) or self._e == self._r + INPUT_BUF:
                        self._w = self._e
                        self._cond.notify_all()
        if dump and self.procdump is not None:
            self.procdump()

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes of completed input, stopping after a newline.

        Blocks until a line is available. Control-D ends the read; if it follows
        some data it is kept so the next read returns nothing.
        """
        out = bytearray()
        with self._cond:
            while len(out) < n:
                while self._r == self._w:
                    self._cond.wait()
                c = self._buf[self._r % INPUT_BUF]
                self._r += 1
                if c == _EOF:
                    if out:
                        self._r -= 1
                    break
                out.append(c)
                if c == _NL:
                    break
        return bytes(out)

    def write(self, data) -> int:
        """Print the bytes of ``data``; return how many there were."""
        data = bytes(data)
        with self._cond:
            for byte in data:
                self.putc(byte)
        return len(data)