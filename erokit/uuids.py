"""Generation, parsing and formatting of 16-byte filesystem UUIDs."""

import os
import string

_HEX = frozenset(string.hexdigits)
_SPACE = frozenset(" \t\n\v\f\r")
_HYPHEN_AFTER = frozenset({3, 5, 7, 9})


def generate_uuid() -> bytes:
    """Return 16 random bytes carrying version and variant bits."""
    raw = bytearray(os.urandom(16))
    raw[0] = (raw[6] & 0x0F) | 0x40
    raw[1] = (raw[8] & 0x3F) | 0x80
    return bytes(raw)


def _parse_pair(pair: str) -> int:
    """Parse two characters the way an unsigned base-16 conversion would."""
    if len(pair) != 2:
        raise ValueError("truncated UUID text")
    first, second = pair
    if first in _HEX and second in _HEX:
        return int(pair, 16)
    if second in _HEX and first in _SPACE | {"+"}:
        return int(second, 16)
    if second in _HEX and first == "-":
        return (-int(second, 16)) & 0xFF
    raise ValueError(f"invalid hex byte {pair!r} in UUID")


def parse_uuid(text: str) -> bytes:
    """Parse ``xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx`` into 16 bytes.

    Raises ValueError on malformed input.
    """
    out = bytearray()
    pos = 0
    for index in range(16):
        out.append(_parse_pair(text[pos:pos + 2]))
        pos += 2
        if index in _HYPHEN_AFTER:
            if text[pos:pos + 1] != "-":
                raise ValueError("missing hyphen in UUID")
            pos += 1
    if pos != len(text):
        raise ValueError("trailing characters after UUID")
    return bytes(out)


def unparse_uuid_lower(data) -> str:
    """Format 16 bytes as a lowercase hyphenated UUID string."""
    raw = memoryview(data).tobytes()
    if len(raw) != 16:
        raise ValueError("a UUID is exactly 16 bytes")
    h = raw.hex()
    return f"{h[0:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"