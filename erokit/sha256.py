"""Pure SHA-256 message digest."""

import struct

_M32 = 0xFFFFFFFF
_M64 = 0xFFFFFFFFFFFFFFFF
_BLOCK = 64

_K = (
    0x428A2F98, 0x71374491, 0xB5C0FBCF, 0xE9B5DBA5, 0x3956C25B,
    0x59F111F1, 0x923F82A4, 0xAB1C5ED5, 0xD807AA98, 0x12835B01,
    0x243185BE, 0x550C7DC3, 0x72BE5D74, 0x80DEB1FE, 0x9BDC06A7,
    0xC19BF174, 0xE49B69C1, 0xEFBE4786, 0x0FC19DC6, 0x240CA1CC,
    0x2DE92C6F, 0x4A7484AA, 0x5CB0A9DC, 0x76F988DA, 0x983E5152,
    0xA831C66D, 0xB00327C8, 0xBF597FC7, 0xC6E00BF3, 0xD5A79147,
    0x06CA6351, 0x14292967, 0x27B70A85, 0x2E1B2138, 0x4D2C6DFC,
    0x53380D13, 0x650A7354, 0x766A0ABB, 0x81C2C92E, 0x92722C85,
    0xA2BFE8A1, 0xA81A664B, 0xC24B8B70, 0xC76C51A3, 0xD192E819,
    0xD6990624, 0xF40E3585, 0x106AA070, 0x19A4C116, 0x1E376C08,
    0x2748774C, 0x34B0BCB5, 0x391C0CB3, 0x4ED8AA4A, 0x5B9CCA4F,
    0x682E6FF3, 0x748F82EE, 0x78A5636F, 0x84C87814, 0x8CC70208,
    0x90BEFFFA, 0xA4506CEB, 0xBEF9A3F7, 0xC67178F2,
)

_INITIAL_STATE = (
    0x6A09E667, 0xBB67AE85, 0x3C6EF372, 0xA54FF53A,
    0x510E527F, 0x9B05688C, 0x1F83D9AB, 0x5BE0CD19,
)


def _rotr(x: int, n: int) -> int:
    return ((x >> n) | (x << (32 - n))) & _M32


def _compress(state: list[int], block: bytes) -> list[int]:
    w = list(struct.unpack(">16I", block))
    for i in range(16, 64):
        x15, x2 = w[i - 15], w[i - 2]
        gamma0 = _rotr(x15, 7) ^ _rotr(x15, 18) ^ (x15 >> 3)
        gamma1 = _rotr(x2, 17) ^ _rotr(x2, 19) ^ (x2 >> 10)
        w.append((gamma1 + w[i - 7] + gamma0 + w[i - 16]) & _M32)

    a, b, c, d, e, f, g, h = state
    for k, wi in zip(_K, w):
        sigma1 = _rotr(e, 6) ^ _rotr(e, 11) ^ _rotr(e, 25)
        ch = g ^ (e & (f ^ g))
        t0 = (h + sigma1 + ch + k + wi) & _M32
        sigma0 = _rotr(a, 2) ^ _rotr(a, 13) ^ _rotr(a, 22)
        maj = ((a | b) & c) | (a & b)
        t1 = (sigma0 + maj) & _M32
        a, b, c, d, e, f, g, h = (
            (t0 + t1) & _M32, a, b, c, (d + t0) & _M32, e, f, g)
    return [(s + x) & _M32 for s, x in zip(state, (a, b, c, d, e, f, g, h))]


class Sha256:
    """Incremental SHA-256 hash state."""

    digest_size = 32
    block_size = _BLOCK

    def __init__(self, data=b""):
        self._state = list(_INITIAL_STATE)
        self._buffer = bytearray()
        self._length = 0  # bits already compressed
        if data:
            self.update(data)

    def update(self, data) -> None:
        """Feed more bytes into the hash."""
        self._buffer += memoryview(data).tobytes()
        whole = len(self._buffer) - len(self._buffer) % _BLOCK
        if not whole:
            return
        for offset in range(0, whole, _BLOCK):
            self._state = _compress(self._state,
                                    bytes(self._buffer[offset:offset + _BLOCK]))
        del self._buffer[:whole]
        self._length = (self._length + whole * 8) & _M64

    def copy(self) -> "Sha256":
        """Return an independent copy of the current state."""
        clone = Sha256()
        clone._state = list(self._state)
        clone._buffer = bytearray(self._buffer)
        clone._length = self._length
        return clone

    def digest(self) -> bytes:
        """Return the 32-byte digest of everything fed so far."""
        total_bits = (self._length + len(self._buffer) * 8) & _M64
        tail = bytes(self._buffer) + b"\x80"
        tail += b"\x00" * ((56 - len(tail)) % _BLOCK)
        tail += struct.pack(">Q", total_bits)
        state = list(self._state)
        for offset in range(0, len(tail), _BLOCK):
            state = _compress(state, tail[offset:offset + _BLOCK])
        return struct.pack(">8I", *state)

    def hexdigest(self) -> str:
        """Return the digest as lowercase hexadecimal text."""
        return self.digest().hex()


def sha256(data) -> bytes:
    """Return the SHA-256 digest of ``data``."""
    return Sha256(data).digest()