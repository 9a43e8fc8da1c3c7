"""Base62 codec for turning sequence numbers into short keys.

Alphabet Layout
===============
::
    index  0 .. 25   26 .. 51   52 .. 61
    symbol a .. z    A .. Z     0 .. 9

    encode(0)  == "a"
    encode(1)  == "b"
    encode(61) == "9"
    encode(62) == "ba"

Key Behaviours
===============
- Pure and deterministic, no padding: the shortest representation is used.
- ``encode(0)`` is ``"a"`` rather than the empty string.
- Decoding rejects any symbol outside the alphabet with ``InvalidSymbol``.
- Keys with leading ``"a"`` symbols decode to the same number as the key
  without them; ``is_canonical`` tells the two apart.
"""

from shortlink.exceptions import InvalidSymbol

__all__ = ["BASE62_ALPHABET", "Base62Codec", "codec", "encode", "decode"]

BASE62_ALPHABET = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"


class Base62Codec:
    """Bidirectional mapping between non-negative integers and base62 strings."""

    def __init__(self, alphabet: str = BASE62_ALPHABET):
        if len(set(alphabet)) != len(alphabet):
            raise ValueError("Alphabet symbols must be unique")
        self.alphabet = alphabet
        self.base = len(alphabet)
        self._index = {symbol: position for position, symbol in enumerate(alphabet)}

    def encode(self, number: int) -> str:
        """Encode a number to a base62 string.

        Example:
            >>> Base62Codec().encode(125)
            'cb'
        """
        if not isinstance(number, int) or isinstance(number, bool):
            raise TypeError(f"number must be int, got {type(number).__name__}")
        if number < 0:
            raise ValueError("Number must be non-negative")

        if number == 0:
            return self.alphabet[0]

        result = []
        while number > 0:
            number, remainder = divmod(number, self.base)
            result.append(self.alphabet[remainder])

        return "".join(result[::-1])

    def decode(self, value: str) -> int:
        """Decode a base62 string back to its number, raising ``InvalidSymbol`` on bad input."""
        if not value:
            raise InvalidSymbol(value)

        number = 0
        for symbol in value:
            position = self._index.get(symbol)
            if position is None:
                raise InvalidSymbol(value, symbol)
            number = number * self.base + position
        return number

    def is_canonical(self, value: str) -> bool:
        """True when ``value`` is exactly what ``encode`` produces for its number."""
        try:
            return self.encode(self.decode(value)) == value
        except InvalidSymbol:
            return False


codec = Base62Codec()


def encode(number: int) -> str:
    return codec.encode(number)


def decode(value: str) -> int:
    return codec.decode(value)
