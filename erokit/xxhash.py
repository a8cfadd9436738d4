"""xxHash32 and xxHash64 non-cryptographic hash functions."""

import struct

_M32 = 0xFFFFFFFF
_M64 = 0xFFFFFFFFFFFFFFFF

_PRIME32_1 = 2654435761
_PRIME32_2 = 2246822519
_PRIME32_3 = 3266489917
_PRIME32_4 = 668265263
_PRIME32_5 = 374761393

_PRIME64_1 = 11400714785074694791
_PRIME64_2 = 14029467366897019727
_PRIME64_3 = 1609587929392839161
_PRIME64_4 = 9650029242287828579
_PRIME64_5 = 2870177450012600261


def _rotl32(x: int, r: int) -> int:
    return ((x << r) | (x >> (32 - r))) & _M32


def _rotl64(x: int, r: int) -> int:
    return ((x << r) | (x >> (64 - r))) & _M64


def _round32(acc: int, value: int) -> int:
    acc = (acc + value * _PRIME32_2) & _M32
    return (_rotl32(acc, 13) * _PRIME32_1) & _M32


def _round64(acc: int, value: int) -> int:
    acc = (acc + value * _PRIME64_2) & _M64
    return (_rotl64(acc, 31) * _PRIME64_1) & _M64


def _merge_round64(acc: int, value: int) -> int:
    acc ^= _round64(0, value)
    return (acc * _PRIME64_1 + _PRIME64_4) & _M64


def xxh32(data, seed: int = 0) -> int:
    """Return the 32-bit xxHash of ``data`` with the given seed."""
    buf = memoryview(data).tobytes()
    length = len(buf)
    seed &= _M32

    stripes_end = length - length % 16
    if length >= 16:
        v1 = (seed + _PRIME32_1 + _PRIME32_2) & _M32
        v2 = (seed + _PRIME32_2) & _M32
        v3 = seed
        v4 = (seed - _PRIME32_1) & _M32
        for a, b, c, d in struct.iter_unpack("<4I", buf[:stripes_end]):
            v1 = _round32(v1, a)
            v2 = _round32(v2, b)
            v3 = _round32(v3, c)
            v4 = _round32(v4, d)
        h32 = (_rotl32(v1, 1) + _rotl32(v2, 7)
               + _rotl32(v3, 12) + _rotl32(v4, 18)) & _M32
    else:
        stripes_end = 0
        h32 = (seed + _PRIME32_5) & _M32

    h32 = (h32 + length) & _M32

    tail = buf[stripes_end:]
    words_end = len(tail) - len(tail) % 4
    for (word,) in struct.iter_unpack("<I", tail[:words_end]):
        h32 = (h32 + word * _PRIME32_3) & _M32
        h32 = (_rotl32(h32, 17) * _PRIME32_4) & _M32

    for byte in tail[words_end:]:
        h32 = (h32 + byte * _PRIME32_5) & _M32
        h32 = (_rotl32(h32, 11) * _PRIME32_1) & _M32

    h32 ^= h32 >> 15
    h32 = (h32 * _PRIME32_2) & _M32
    h32 ^= h32 >> 13
    h32 = (h32 * _PRIME32_3) & _M32
    h32 ^= h32 >> 16
    return h32


def xxh64(data, seed: int = 0) -> int:
    """Return the 64-bit xxHash of ``data`` with the given seed."""
    buf = memoryview(data).tobytes()
    length = len(buf)
    seed &= _M64

    stripes_end = length - length % 32
    if length >= 32:
        v1 = (seed + _PRIME64_1 + _PRIME64_2) & _M64
        v2 = (seed + _PRIME64_2) & _M64
        v3 = seed
        v4 = (seed - _PRIME64_1) & _M64
        for a, b, c, d in struct.iter_unpack("<4Q", buf[:stripes_end]):
            v1 = _round64(v1, a)
            v2 = _round64(v2, b)
            v3 = _round64(v3, c)
            v4 = _round64(v4, d)
        h64 = (_rotl64(v1, 1) + _rotl64(v2, 7)
               + _rotl64(v3, 12) + _rotl64(v4, 18)) & _M64
        for v in (v1, v2, v3, v4):
            h64 = _merge_round64(h64, v)
    else:
        stripes_end = 0
        h64 = (seed + _PRIME64_5) & _M64

    h64 = (h64 + length) & _M64

    tail = buf[stripes_end:]
    words_end = len(tail) - len(tail) % 8
    for (word,) in struct.iter_unpack("<Q", tail[:words_end]):
        h64 ^= _round64(0, word)
        h64 = (_rotl64(h64, 27) * _PRIME64_1 + _PRIME64_4) & _M64

    rest = tail[words_end:]
    if len(rest) >= 4:
        (word,) = struct.unpack_from("<I", rest)
        h64 ^= (word * _PRIME64_1) & _M64
        h64 = (_rotl64(h64, 23) * _PRIME64_2 + _PRIME64_3) & _M64
        rest = rest[4:]

    for byte in rest:
        h64 ^= (byte * _PRIME64_5) & _M64
        h64 = (_rotl64(h64, 11) * _PRIME64_1) & _M64

    h64 ^= h64 >> 33
    h64 = (h64 * _PRIME64_2) & _M64
    h64 ^= h64 >> 29
    h64 = (h64 * _PRIME64_3) & _M64
    h64 ^= h64 >> 32
    return h64