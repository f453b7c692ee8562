"""Base62 codec for short codes.

Converts between non-negative integers and compact strings over a fixed
62-symbol alphabet ordered digits, lowercase, uppercase. Both functions are
pure and have no upper bound on the integer (Python ints do not overflow).

Examples:
    >>> encode(0)
    '0'
    >>> encode(62)
    '10'
    >>> decode("3d7")
    12345
"""

from shortlinks.exceptions import InvalidArgument

__all__ = ["BASE62_ALPHABET", "encode", "decode"]

BASE62_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"
BASE = len(BASE62_ALPHABET)

_DIGIT_VALUES = {char: index for index, char in enumerate(BASE62_ALPHABET)}


def encode(number: int) -> str:
    """Encode a non-negative integer to its base62 representation.

    Raises:
        InvalidArgument: If ``number`` is negative.
    """
    if number < 0:
        raise InvalidArgument(f"Number must be non-negative, got {number}")

    if number == 0:
        return BASE62_ALPHABET[0]

    result = []
    while number > 0:
        number, remainder = divmod(number, BASE)
        result.append(BASE62_ALPHABET[remainder])

    return "".join(result[::-1])


def decode(value: str) -> int:
    """Decode a base62 string back to the integer it encodes.

    The empty string decodes to 0.

    Raises:
        InvalidArgument: If ``value`` contains a character outside the alphabet.
    """
    number = 0
    for char in value:
        digit = _DIGIT_VALUES.get(char)
        if digit is None:
            raise InvalidArgument(f"Invalid character in base62 string: {char!r}")
        number = number * BASE + digit
    return number
