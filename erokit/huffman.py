"""Huffman code construction, bit output and symbol tables for DEFLATE."""

from typing import Iterable, Iterator, Optional, Sequence

HISTORY_SIZE = 1 << 15

SYMBOL_END_OF_BLOCK = 256
SYMBOL_MATCH = SYMBOL_END_OF_BLOCK + 1
NUM_LEN_SLOTS = 29
MAIN_TABLE_SIZE = SYMBOL_MATCH + NUM_LEN_SLOTS
FIXED_LEN_TABLE_SIZE = SYMBOL_MATCH + 31
DIST_TABLE_SIZE = 30
LENS_TABLE_SIZE = 19

NUM_LITLEN_CODES_MIN = 257
NUM_DIST_CODES_MIN = 1
NUM_LENS_CODES_MIN = 4

MATCH_MIN_LEN = 3
MATCH_MAX_LEN = 256 + MATCH_MIN_LEN - 1

TABLE_DIRECT_LEVELS = 16
BITLENS_REP_3_6 = TABLE_DIRECT_LEVELS
BITLENS_ZERO_3_10 = BITLENS_REP_3_6 + 1
BITLENS_ZERO_11_138 = BITLENS_ZERO_3_10 + 1

MAX_LEN = 16

BLOCK_STORED = 0
BLOCK_FIXED = 1
BLOCK_DYNAMIC = 2

LEN_START = (0, 1, 2, 3, 4, 5, 6, 7, 8, 10, 12, 14, 16, 20, 24, 28, 32, 40,
             48, 56, 64, 80, 96, 112, 128, 160, 192, 224, 255)
LEN_EXTRA_BITS = (0, 0, 0, 0, 0, 0, 0, 0, 1, 1, 1, 1, 2, 2, 2, 2, 3, 3, 3, 3,
                  4, 4, 4, 4, 5, 5, 5, 5, 0)
DIST_START = (0, 1, 2, 3, 4, 6, 8, 12, 16, 24, 32, 48, 64, 96, 128, 192, 256,
              384, 512, 768, 1024, 1536, 2048, 3072, 4096, 6144, 8192, 12288,
              16384, 24576)
DIST_EXTRA_BITS = (0, 0, 0, 0, 1, 1, 2, 2, 3, 3, 4, 4, 5, 5, 6, 6, 7, 7, 8, 8,
                   9, 9, 10, 10, 11, 11, 12, 12, 13, 13)
CODE_LENGTH_ORDER = (16, 17, 18, 0, 8, 7, 9, 6, 10, 5, 11, 4, 12, 3, 13, 2,
                     14, 1, 15)
LEVEL_EXTRA_BITS = (2, 3, 7)

_NUM_BITS = 10
_MASK = (1 << _NUM_BITS) - 1
_M32 = 0xFFFFFFFF
_NUM_LOG_BITS = 9


def reverse_bits(code: int, bits: int) -> int:
    """Reverse the lowest ``bits`` bits of a code of at most 16 bits."""
    x = code & 0xFFFF
    x = ((x & 0x5555) << 1) | ((x & 0xAAAA) >> 1)
    x = ((x & 0x3333) << 2) | ((x & 0xCCCC) >> 2)
    x = ((x & 0x0F0F) << 4) | ((x & 0xF0F0) >> 4)
    return (((x & 0x00FF) << 8) | ((x & 0xFF00) >> 8)) >> (16 - bits)


def gen_huff_codes(lens: Sequence[int], bl_count: Sequence[int]) -> list[int]:
    """Assign canonical (MSB-first) codes from code lengths.

    ``bl_count[n]`` is the number of codes of length ``n``.  Symbols with a
    zero length get code 0.
    """
    counts = list(bl_count) + [0] * (MAX_LEN + 1 - len(bl_count))
    next_codes = [0] * (MAX_LEN + 1)
    code = 0
    for bits in range(1, MAX_LEN + 1):
        code = (code + counts[bits - 1]) << 1
        next_codes[bits] = code
    codes = []
    for length in lens:
        if length:
            codes.append(next_codes[length])
            next_codes[length] += 1
        else:
            codes.append(0)
    return codes


def huffman_generate(freqs: Sequence[int],
                     max_len: int) -> tuple[list[int], list[int]]:
    """Build a length-limited Huffman code for ``freqs``.

    Returns ``(lens, codes)``; codes are canonical and MSB-first.  Symbols
    with zero frequency get length 0, except that at least two symbols
    always receive a code.
    """
    num_symbols = len(freqs)
    if num_symbols < 2:
        raise ValueError("a Huffman alphabet needs at least two symbols")
    lens = [0] * num_symbols
    p = sorted(((freq << _NUM_BITS) | i) & _M32
               for i, freq in enumerate(freqs) if freq)
    num = len(p)

    if num < 2:
        codes = [0] * num_symbols
        min_code, max_code = 0, 1
        if num == 1:
            max_code = (p[0] & _MASK) or 1
        codes[min_code] = 0
        codes[max_code] = 1
        lens[min_code] = lens[max_code] = 1
        return lens, codes

    p += [0] * (num_symbols - num)
    i = b = e = 0

    def pick() -> int:
        nonlocal i, b
        if i != num and (b == e or (p[i] >> _NUM_BITS) <= (p[b] >> _NUM_BITS)):
            i += 1
            return i - 1
        b += 1
        return b - 1

    while True:
        n = pick()
        freq = p[n] & ~_MASK & _M32
        p[n] = (p[n] & _MASK) | (e << _NUM_BITS)
        m = pick()
        freq = (freq + (p[m] & ~_MASK & _M32)) & _M32
        p[m] = (p[m] & _MASK) | (e << _NUM_BITS)
        p[e] = (p[e] & _MASK) | freq
        e += 1
        if num - e <= 1:
            break

    len_counters = [0] * (MAX_LEN + 1)
    e -= 1
    p[e] &= _MASK
    len_counters[1] = 2
    while e > 0:
        e -= 1
        length = (p[p[e] >> _NUM_BITS] >> _NUM_BITS) + 1
        p[e] = (p[e] & _MASK) | (length << _NUM_BITS)
        if length >= max_len:
            length = max_len - 1
            while len_counters[length] == 0:
                length -= 1
        len_counters[length] -= 1
        len_counters[length + 1] += 2

    order = iter(p)
    for length in range(max_len, 0, -1):
        for _ in range(len_counters[length]):
            lens[next(order) & _MASK] = length
    return lens, gen_huff_codes(lens, len_counters)


def code_length_tokens(lens: Iterable[int]) -> Iterator[tuple[int, int, int]]:
    """Run-length encode code lengths as ``(symbol, extra, extra_bits)``.

    Symbols 0-15 are literal lengths, 16 repeats the previous length 3-6
    times, 17 emits 3-10 zeros and 18 emits 11-138 zeros.
    """
    lens = list(lens)
    if not lens:
        return
    prevlen = -1
    count = 0
    max_count, min_count = (138, 3) if lens[0] == 0 else (7, 4)
    for curlen, nextlen in zip(lens, lens[1:] + [-1]):
        count += 1
        if count < max_count and curlen == nextlen:
            continue
        if count < min_count:
            for _ in range(count):
                yield curlen, 0, 0
        elif curlen:
            if curlen != prevlen:
                yield curlen, 0, 0
                count -= 1
            yield BITLENS_REP_3_6, count - 3, 2
        elif count <= 10:
            yield BITLENS_ZERO_3_10, count - 3, 3
        else:
            yield BITLENS_ZERO_11_138, count - 11, 7

        count = 0
        prevlen = curlen
        if nextlen == 0:
            max_count, min_count = 138, 3
        elif curlen == nextlen:
            max_count, min_count = 6, 3
        else:
            max_count, min_count = 7, 4


def scan_lens(lens: Iterable[int],
              freqs: Optional[Sequence[int]] = None) -> list[int]:
    """Return code-length alphabet frequencies for ``lens``.

    Counts are added to a copy of ``freqs`` when it is given.
    """
    result = list(freqs) if freqs is not None else [0] * LENS_TABLE_SIZE
    for symbol, _, _ in code_length_tokens(lens):
        result[symbol] += 1
    return result


def huffman_price(freqs: Sequence[int], lens: Sequence[int],
                  extra_bits: Sequence[int] = (), extra_base: int = 0) -> int:
    """Bits needed to encode ``freqs`` with ``lens`` plus extra bits."""
    price = sum(f * n for f, n in zip(freqs, lens))
    return price + sum(f * n for f, n in zip(freqs[extra_base:], extra_bits))


def _build_len_slots() -> tuple[int, ...]:
    table = [0] * 256
    for slot, (start, extra) in enumerate(zip(LEN_START, LEN_EXTRA_BITS)):
        for c in range(start, start + (1 << extra)):
            table[c] = slot
    return tuple(table)


def _build_fast_pos() -> tuple[int, ...]:
    table = []
    for slot in range(_NUM_LOG_BITS * 2):
        table += [slot] * (1 << DIST_EXTRA_BITS[slot])
    return tuple(table)


_LEN_SLOTS = _build_len_slots()
_FAST_POS = _build_fast_pos()


def len_slot(lc: int) -> int:
    """Length slot for a match length minus the minimum match length."""
    return _LEN_SLOTS[lc]


def dist_slot(pos: int) -> int:
    """Distance code for a distance minus one."""
    zz = _NUM_LOG_BITS - 1 if pos >= (1 << _NUM_LOG_BITS) else 0
    return _FAST_POS[pos >> zz] + zz * 2


FIXED_LITLEN_LEVELS = tuple([8] * 144 + [9] * 112 + [7] * 24 + [8] * 8)
_FIXED_BL_COUNT = [0] * (MAX_LEN + 1)
_FIXED_BL_COUNT[7] = 24
_FIXED_BL_COUNT[8] = 144 + 8
_FIXED_BL_COUNT[9] = 112
FIXED_MAIN_CODES = tuple(
    reverse_bits(code, length) for code, length in
    zip(gen_huff_codes(FIXED_LITLEN_LEVELS, _FIXED_BL_COUNT),
        FIXED_LITLEN_LEVELS))
FIXED_DIST_CODES = tuple(reverse_bits(i, 5) for i in range(32))


class BitWriter:
    """LSB-first bit sink that commits output in 32-bit little-endian words."""

    def __init__(self, capacity: Optional[int] = None):
        self.capacity = capacity
        self._out = bytearray()
        self._acc = 0
        self._nbits = 0

    @property
    def pos(self) -> int:
        """Number of bytes committed so far."""
        return len(self._out)

    @property
    def bitpos(self) -> int:
        """Number of bits pending in the accumulator (0-32)."""
        return self._nbits

    def _emit(self, data: bytes) -> None:
        if self.capacity is not None and len(self._out) + len(data) > self.capacity:
            raise OverflowError("output buffer capacity exceeded")
        self._out += data

    def write(self, value: int, bits: int) -> None:
        """Append the low ``bits`` bits of ``value``."""
        if not 0 <= bits <= 32:
            raise ValueError("between 0 and 32 bits can be written at once")
        value &= (1 << bits) - 1
        rem = 32 - self._nbits
        if bits > rem:
            word = (self._acc | (value << self._nbits)) & _M32
            self._emit(word.to_bytes(4, "little"))
            self._acc = value >> rem
            self._nbits = bits - rem
            return
        self._acc |= value << self._nbits
        self._nbits += bits

    def flush(self) -> None:
        """Pad pending bits with zeros to a byte boundary and commit them."""
        if not self._nbits:
            return
        nbytes = (self._nbits + 7) >> 3
        self._emit((self._acc & _M32).to_bytes(4, "little")[:nbytes])
        self._acc = 0
        self._nbits = 0

    def write_bytes(self, data) -> None:
        """Append raw bytes; the writer must be byte aligned."""
        if self._nbits:
            raise ValueError("raw bytes need a flushed bit writer")
        self._emit(bytes(data))

    def getvalue(self) -> bytes:
        """Return the committed bytes (pending bits are not included)."""
        return bytes(self._out)