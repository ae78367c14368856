"""Formatting of the small printf dialect: %d, %x, %p, %s, %c and %%."""

from __future__ import annotations

from collections.abc import Iterator

UPPER_DIGITS = "0123456789ABCDEF"
LOWER_DIGITS = "0123456789abcdef"

_MASK = 0xFFFFFFFF
_SIGN = 0x80000000


def format_int(
    value: int, base: int = 10, signed: bool = True, digits: str = UPPER_DIGITS
) -> str:
    """Render ``value`` as a 32-bit integer in ``base``.

    When ``signed`` is false the value is taken as unsigned, so negative
    numbers wrap around to their two's complement.
    """
    if not 2 <= base <= len(digits):
        raise ValueError(f"base {base} is not supported by {len(digits)} digits")
    x = value & _MASK
    negative = signed and bool(x & _SIGN)
    if negative:
        x = -x & _MASK
    out: list[str] = []
    while True:
        out.append(digits[x % base])
        x //= base
        if x == 0:
            break
    if negative:
        out.append("-")
    return "".join(reversed(out))


def _next_arg(params: Iterator[object]) -> object:
    try:
        return next(params)
    except StopIteration:
        raise TypeError("not enough arguments for format string") from None


def format_message(fmt: str, *args: object) -> str:
    """Format ``fmt`` with ``args``; unknown conversions are echoed as they stand."""
    params = iter(args)
    out: list[str] = []
    pending = False
    for ch in fmt:
        if not pending:
            if ch == "%":
                pending = True
            else:
                out.append(ch)
            continue
        pending = False
        if ch == "d":
            out.append(format_int(_next_arg(params), 10, True))
        elif ch in ("x", "p"):
            out.append(format_int(_next_arg(params), 16, False))
        elif ch == "s":
            s = _next_arg(params)
            out.append("(null)" if s is None else str(s))
        elif ch == "c":
            c = _next_arg(params)
            out.append(c if isinstance(c, str) else chr(c & 0xFF))
        elif ch == "%":
            out.append("%")
        else:
            out.append("%" + ch)
    return "".join(out)