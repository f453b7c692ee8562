"""Unit tests for the base62 codec."""

import pytest

from shortlinks.codec import BASE62_ALPHABET, decode, encode
from shortlinks.exceptions import InvalidArgument


def test_alphabet_is_digits_lowercase_uppercase():
    assert len(BASE62_ALPHABET) == 62
    assert len(set(BASE62_ALPHABET)) == 62
    assert BASE62_ALPHABET[:10] == "0123456789"
    assert BASE62_ALPHABET[10] == "a"
    assert BASE62_ALPHABET[36] == "A"


def test_encode_basic():
    assert encode(0) == "0"
    assert encode(1) == "1"
    assert encode(10) == "a"
    assert encode(61) == "Z"
    assert encode(62) == "10"


def test_encode_large_numbers():
    assert encode(12345) == "3d7"
    assert encode(999999) == "4c91"


def test_decode_basic():
    assert decode("0") == 0
    assert decode("Z") == 61
    assert decode("10") == 62
    assert decode("3d7") == 12345


def test_decode_empty_string_is_zero():
    assert decode("") == 0


def test_decode_ignores_leading_zero_symbols():
    assert decode("0003d7") == 12345


@pytest.mark.parametrize("number", [0, 1, 61, 62, 3843, 3844, 2**31, 2**53 - 1, 2**53, 2**53 + 1, 2**63 - 1, 2**80])
def test_round_trip_boundaries(number):
    assert decode(encode(number)) == number


def test_encode_is_compact():
    # 62**6 - 1 is the largest value that fits in six symbols.
    assert len(encode(62**6 - 1)) == 6
    assert len(encode(62**6)) == 7


def test_encode_negative():
    with pytest.raises(InvalidArgument, match="non-negative"):
        encode(-1)


def test_decode_rejects_characters_outside_alphabet():
    with pytest.raises(InvalidArgument, match="'!'"):
        decode("!@#")


def test_decode_reports_first_offending_character():
    with pytest.raises(InvalidArgument, match="'-'"):
        decode("ab-cd_")


def test_invalid_argument_is_a_value_error():
    with pytest.raises(ValueError):
        encode(-5)
