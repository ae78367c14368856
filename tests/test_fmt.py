import pytest

from tinyfs.fmt import LOWER_DIGITS, format_int, format_message


def test_decimal_negative():
    assert format_message("%d", -42) == "-42"


def test_hex_is_upper_case():
    assert format_message("%x", 255) == "FF"


def test_hex_of_negative_wraps_unsigned():
    assert format_message("%x", -1) == "FFFFFFFF"


def test_pointer_formats_like_hex():
    assert format_message("%p", 4096) == format_message("%x", 4096)


def test_null_string():
    assert format_message("[%s]", None) == "[(null)]"


def test_string_and_text():
    assert format_message("%s=%d", "size", 12) == "size=12"


def test_char_conversion():
    assert format_message("%c%c", ord("o"), ord("k")) == "ok"


def test_unknown_conversion_is_echoed():
    assert format_message("%q") == "%q"


def test_percent_escape():
    assert format_message("100%%") == "100%"


def test_trailing_percent_is_dropped():
    assert format_message("abc%") == "abc"


def test_missing_argument():
    with pytest.raises(TypeError):
        format_message("%d %d", 1)


@pytest.mark.parametrize("n", [0, 1, -1, 7, 123456, -2147483648, 2147483647])
def test_decimal_matches_python(n):
    assert format_int(n) == str(n)


@pytest.mark.parametrize("n", [0, 15, 16, 65535, 0xDEADBEEF])
def test_hex_round_trip(n):
    assert int(format_int(n, 16, False), 16) == n


def test_digits_choose_case():
    upper = format_int(0xABC, 16, False)
    assert format_int(0xABC, 16, False, LOWER_DIGITS) == upper.lower()


def test_bad_base():
    with pytest.raises(ValueError):
        format_int(5, 1)