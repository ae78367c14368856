import pytest

from tinyfs.console import Console
from tinyfs.kbd import KEY_UP, Keyboard, Modifier


def test_plain_key():
    assert Keyboard().getc(0x1E) == ord("a")


def test_shift_press_and_release():
    kb = Keyboard()
    assert kb.getc(0x2A) == 0
    assert kb.getc(0x1E) == ord("A")
    assert kb.getc(0xAA) == 0
    assert kb.getc(0x1E) == ord("a")


def test_capslock_toggles_and_inverts_with_shift():
    kb = Keyboard()
    kb.getc(0x3A)
    kb.getc(0xBA)
    assert kb.shift & Modifier.CAPSLOCK
    assert kb.getc(0x1E) == ord("A")
    kb.getc(0x2A)
    assert kb.getc(0x1E) == ord("a")


def test_control_key():
    kb = Keyboard()
    kb.getc(0x1D)
    assert kb.getc(0x19) == ord("P") - ord("@")


def test_escaped_arrow_key():
    kb = Keyboard()
    assert kb.getc(0xE0) == 0
    assert kb.getc(0x48) == KEY_UP
    assert not kb.shift & Modifier.E0ESC


def test_keypad_enter():
    kb = Keyboard()
    kb.getc(0xE0)
    assert kb.getc(0x1C) == ord("\n")


def test_right_control_press_and_release():
    kb = Keyboard()
    kb.getc(0xE0)
    kb.getc(0x1D)
    assert kb.shift & Modifier.CTL
    kb.getc(0xE0)
    kb.getc(0x9D)
    assert kb.getc(0x19) == ord("p")


def test_feed_drops_non_characters():
    assert Keyboard().feed([0x2A, 0x23, 0xAA, 0x17]) == [ord("H"), ord("i")]


def test_out_of_range():
    with pytest.raises(ValueError):
        Keyboard().getc(256)


def test_keyboard_into_console():
    con = Console()
    con.intr(Keyboard().feed([0x23, 0x17, 0x1C]))
    assert con.read(10) == b"hi\n"