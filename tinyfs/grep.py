"""A small grep: patterns with ``^``, ``.``, ``*`` and ``$`` only."""

from __future__ import annotations

import sys
from typing import BinaryIO

BUFSIZE = 1024


def _matchhere(re: str, text: str) -> bool:
    """Whether ``re`` matches at the beginning of ``text``."""
    if not re:
        return True
    if len(re) > 1 and re[1] == "*":
        return _matchstar(re[0], re[2:], text)
    if re == "$":
        return text == ""
    if text and (re[0] == "." or re[0] == text[0]):
        return _matchhere(re[1:], text[1:])
    return False


def _matchstar(c: str, re: str, text: str) -> bool:
    """Whether ``c*`` followed by ``re`` matches at the beginning of ``text``."""
    i = 0
    while True:
        if _matchhere(re, text[i:]):
            return True
        if i < len(text) and (text[i] == c or c == "."):
            i += 1
        else:
            return False


def match(re: str, text: str) -> bool:
    """Whether ``re`` matches anywhere in ``text``."""
    if re.startswith("^"):
        return _matchhere(re[1:], text)
    # The empty tail is tried too, so patterns like "$" can match.
    return any(_matchhere(re, text[i:]) for i in range(len(text) + 1))


def grep(pattern: str | bytes, stream: BinaryIO, out: BinaryIO) -> None:
    """Copy to ``out`` every newline-terminated line of ``stream`` that matches.

    Input is read in buffers of at most ``BUFSIZE - 1`` bytes. A buffer that
    holds no complete line is discarded, and a final line without a newline
    is never printed.
    """
    if isinstance(pattern, bytes):
        pattern = pattern.decode("latin-1")
    pending = b""
    while True:
        chunk = stream.read(BUFSIZE - 1 - len(pending))
        if not chunk:
            break
        pending += chunk
        *lines, rest = pending.split(b"\n")
        for line in lines:
            if match(pattern, line.decode("latin-1")):
                out.write(line + b"\n")
        pending = rest if lines else b""


def main(argv: list[str] | None = None) -> int:
    """Command line: ``grep pattern [file ...]``."""
    if argv is None:
        argv = sys.argv[1:]
    if not argv:
        sys.stderr.write("usage: grep pattern [file ...]\n")
        return 1
    pattern, names = argv[0], argv[1:]
    out = sys.stdout.buffer
    try:
        if not names:
            grep(pattern, sys.stdin.buffer, out)
            return 0
        for name in names:
            try:
                f = open(name, "rb")
            except OSError:
                out.write(f"grep: cannot open {name}\n".encode())
                return 1
            with f:
                grep(pattern, f, out)
        return 0
    finally:
        out.flush()