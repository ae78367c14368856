"""PC keyboard: turns scan codes into characters."""

from __future__ import annotations

import enum
from collections.abc import Iterable


class Modifier(enum.IntFlag):
    NONE = 0
    SHIFT = 1 << 0
    CTL = 1 << 1
    ALT = 1 << 2
    CAPSLOCK = 1 << 3
    NUMLOCK = 1 << 4
    SCROLLLOCK = 1 << 5
    E0ESC = 1 << 6


KEY_HOME = 0xE0
KEY_END = 0xE1
KEY_UP = 0xE2
KEY_DN = 0xE3
KEY_LF = 0xE4
KEY_RT = 0xE5
KEY_PGUP = 0xE6
KEY_PGDN = 0xE7
KEY_INS = 0xE8
KEY_DEL = 0xE9

_SHIFTCODE = {
    0x1D: Modifier.CTL,
    0x2A: Modifier.SHIFT,
    0x36: Modifier.SHIFT,
    0x38: Modifier.ALT,
    0x9D: Modifier.CTL,
    0xB8: Modifier.ALT,
}

_TOGGLECODE = {
    0x3A: Modifier.CAPSLOCK,
    0x45: Modifier.NUMLOCK,
    0x46: Modifier.SCROLLLOCK,
}


def _ctrl(ch: str) -> int:
    return (ord(ch) - ord("@")) & 0xFF


def _keymap(layout: bytes, kp_enter: int, kp_div: int) -> bytes:
    table = bytearray(256)
    table[: len(layout)] = layout
    table[0x9C] = kp_enter
    table[0xB5] = kp_div
    table[0xC8] = KEY_UP
    table[0xD0] = KEY_DN
    table[0xC9] = KEY_PGUP
    table[0xD1] = KEY_PGDN
    table[0xCB] = KEY_LF
    table[0xCD] = KEY_RT
    table[0x97] = KEY_HOME
    table[0xCF] = KEY_END
    table[0xD2] = KEY_INS
    table[0xD3] = KEY_DEL
    return bytes(table)


_KEYPAD = bytes(13) + b"789-456+1230."

_NORMAL = _keymap(
    b"\x00\x1b"
    + b"1234567890-=\b\t"
    + b"qwertyuiop[]\n\x00"
    + b"asdfghjkl;'`\x00\\"
    + b"zxcvbnm,./\x00*\x00 "
    + _KEYPAD,
    ord("\n"),
    ord("/"),
)

_SHIFTED = _keymap(
    b"\x00\x1b"
    + b"!@#$%^&*()_+\b\t"
    + b"QWERTYUIOP{}\n\x00"
    + b'ASDFGHJKL:"~\x00|'
    + b"ZXCVBNM<>?\x00*\x00 "
    + _KEYPAD,
    ord("\n"),
    ord("/"),
)


def _control_layout() -> bytes:
    table = bytearray(0x38)
    table[0x10:0x1A] = bytes(_ctrl(c) for c in "QWERTYUIOP")
    table[0x1C] = ord("\r")
    table[0x1E:0x27] = bytes(_ctrl(c) for c in "ASDFGHJKL")
    table[0x2B] = _ctrl("\\")
    table[0x2C:0x33] = bytes(_ctrl(c) for c in "ZXCVBNM")
    table[0x35] = _ctrl("/")
    return bytes(table)


_CONTROL = _keymap(_control_layout(), ord("\r"), _ctrl("/"))

_CHARCODE = (_NORMAL, _SHIFTED, _CONTROL, _CONTROL)


class Keyboard:
    """Tracks modifier state across scan codes."""

    def __init__(self) -> None:
        self.shift = Modifier.NONE

    def getc(self, data: int) -> int:
        """Decode one scan code; 0 means it produced no character."""
        if not 0 <= data <= 0xFF:
            raise ValueError(f"scan code out of range: {data}")
        if data == 0xE0:
            self.shift |= Modifier.E0ESC
            return 0
        if data & 0x80:
            # Key released.
            if not self.shift & Modifier.E0ESC:
                data &= 0x7F
            self.shift &= ~(_SHIFTCODE.get(data, Modifier.NONE) | Modifier.E0ESC)
            return 0
        if self.shift & Modifier.E0ESC:
            data |= 0x80
            self.shift &= ~Modifier.E0ESC

        self.shift |= _SHIFTCODE.get(data, Modifier.NONE)
        self.shift ^= _TOGGLECODE.get(data, Modifier.NONE)
        c = _CHARCODE[int(self.shift & (Modifier.CTL | Modifier.SHIFT))][data]
        if self.shift & Modifier.CAPSLOCK:
            if ord("a") <= c <= ord("z"):
                c += ord("A") - ord("a")
            elif ord("A") <= c <= ord("Z"):
                c += ord("a") - ord("A")
        return c

    def feed(self, scancodes: Iterable[int]) -> list[int]:
        """Decode a run of scan codes and return the characters they produced."""
        return [c for c in map(self.getc, scancodes) if c]