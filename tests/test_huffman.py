import random

import pytest

from erokit.huffman import (
    DIST_EXTRA_BITS,
    DIST_START,
    FIXED_LITLEN_LEVELS,
    FIXED_MAIN_CODES,
    LEN_EXTRA_BITS,
    LEN_START,
    LENS_TABLE_SIZE,
    BitWriter,
    code_length_tokens,
    dist_slot,
    gen_huff_codes,
    huffman_generate,
    len_slot,
    reverse_bits,
    scan_lens,
)


def _read_bits(data: bytes, widths):
    value = int.from_bytes(data, "little")
    out = []
    for w in widths:
        out.append(value & ((1 << w) - 1))
        value >>= w
    return out


def _kraft(lens):
    return sum(2.0 ** -n for n in lens if n)


def _prefix_free(lens, codes):
    items = [(format(c, f"0{n}b")) for c, n in zip(codes, lens) if n]
    for a in items:
        for b in items:
            if a is not b and b.startswith(a):
                return False
    return len(set(items)) == len(items)


def _expand_tokens(tokens):
    out = []
    for sym, extra, bits in tokens:
        assert 0 <= extra < (1 << bits) or bits == 0
        if sym < 16:
            out.append(sym)
        elif sym == 16:
            out += [out[-1]] * (extra + 3)
        elif sym == 17:
            out += [0] * (extra + 3)
        else:
            out += [0] * (extra + 11)
    return out


def test_reverse_bits_pins():
    assert reverse_bits(1, 5) == 16
    assert reverse_bits(0b110, 3) == 0b011


@pytest.mark.parametrize("bits", range(1, 17))
def test_reverse_bits_involution(bits):
    rng = random.Random(bits)
    for _ in range(50):
        code = rng.randrange(1 << bits)
        assert reverse_bits(reverse_bits(code, bits), bits) == code


def test_fixed_codes_match_format():
    counts = [0] * 17
    for n in FIXED_LITLEN_LEVELS:
        counts[n] += 1
    codes = gen_huff_codes(FIXED_LITLEN_LEVELS, counts)
    assert codes[0] == 0x30
    assert codes[256] == 0
    assert codes[280] == 0xC0
    assert codes[144] == 0x190
    assert FIXED_MAIN_CODES[0] == reverse_bits(0x30, 8)


def test_gen_huff_codes_canonical_and_prefix_free():
    lens = [3, 3, 3, 3, 3, 2, 4, 4]
    counts = [0] * 17
    for n in lens:
        counts[n] += 1
    codes = gen_huff_codes(lens, counts)
    assert _prefix_free(lens, codes)
    same = [c for c, n in zip(codes, lens) if n == 3]
    assert same == list(range(same[0], same[0] + len(same)))


def test_huffman_generate_complete_code():
    freqs = [random.Random(7).randrange(0, 100) for _ in range(286)]
    freqs[256] = 1
    lens, codes = huffman_generate(freqs, 16)
    assert _kraft(lens) == pytest.approx(1.0)
    assert all(n == 0 for f, n in zip(freqs, lens) if f == 0)
    assert all(n > 0 for f, n in zip(freqs, lens) if f)
    assert _prefix_free(lens, codes)


def test_huffman_generate_monotonic_lengths():
    freqs = [1, 50, 3, 0, 20, 7, 7, 100, 2]
    lens, _ = huffman_generate(freqs, 16)
    for fi, li in zip(freqs, lens):
        for fj, lj in zip(freqs, lens):
            if fi > fj > 0:
                assert li <= lj


def test_huffman_generate_length_limit():
    freqs = [1, 1]
    while len(freqs) < 19:
        freqs.append(freqs[-1] + freqs[-2])
    unlimited, _ = huffman_generate(freqs, 16)
    assert max(unlimited) > 7
    lens, codes = huffman_generate(freqs, 7)
    assert max(lens) <= 7
    assert _kraft(lens) == pytest.approx(1.0)
    assert _prefix_free(lens, codes)


def test_huffman_generate_equal_pair():
    lens, codes = huffman_generate([0, 4, 4, 0], 16)
    assert lens == [0, 1, 1, 0]
    assert sorted([codes[1], codes[2]]) == [0, 1]


def test_huffman_generate_single_symbol():
    lens, codes = huffman_generate([0, 0, 5, 0], 16)
    assert lens == [1, 0, 1, 0]
    assert codes[0] == 0 and codes[2] == 1


def test_huffman_generate_single_symbol_zero():
    lens, codes = huffman_generate([9, 0, 0], 16)
    assert lens == [1, 1, 0]
    assert (codes[0], codes[1]) == (0, 1)


def test_huffman_generate_empty():
    lens, _ = huffman_generate([0] * 30, 16)
    assert lens[:2] == [1, 1]
    assert sum(lens) == 2


def test_huffman_generate_too_small_alphabet():
    with pytest.raises(ValueError):
        huffman_generate([3], 16)


@pytest.mark.parametrize("lens", [
    [3, 3, 3, 3, 3],
    [0] * 200,
    [8] * 144 + [9] * 112 + [7] * 24 + [8] * 6,
    [0, 0, 5, 5, 5, 5, 5, 5, 5, 5, 0, 4, 0, 0, 0, 0],
    [1],
    [2, 0, 0, 2, 2, 2, 2, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 2],
])
def test_code_length_tokens_round_trip(lens):
    assert _expand_tokens(code_length_tokens(lens)) == lens


def test_scan_lens_counts_tokens():
    lens = [0] * 20 + [6] * 9 + [7, 7, 0, 0]
    freqs = scan_lens(lens)
    assert len(freqs) == LENS_TABLE_SIZE
    expected = [0] * LENS_TABLE_SIZE
    for sym, _, _ in code_length_tokens(lens):
        expected[sym] += 1
    assert freqs == expected


def test_scan_lens_accumulates():
    first = scan_lens([5, 5, 0])
    both = scan_lens([5, 5, 0], first)
    assert both == [2 * f for f in first]
    assert first == scan_lens([5, 5, 0])


def test_scan_lens_run_symbols():
    freqs = scan_lens([3] * 5)
    assert freqs[3] == 1 and freqs[16] == 1
    assert sum(freqs) == 2


def test_len_slot_ranges():
    assert len_slot(0) == 0
    assert len_slot(255) == 28
    for lc in range(255):
        slot = len_slot(lc)
        assert LEN_START[slot] <= lc < LEN_START[slot] + (1 << LEN_EXTRA_BITS[slot])


def test_dist_slot_ranges():
    assert dist_slot(0) == 0
    assert dist_slot(32767) == 29
    for pos in range(32768):
        slot = dist_slot(pos)
        assert DIST_START[slot] <= pos < DIST_START[slot] + (1 << DIST_EXTRA_BITS[slot])


def test_bitwriter_lsb_first():
    w = BitWriter()
    w.write(1, 1)
    w.write(1, 1)
    w.flush()
    assert w.getvalue() == b"\x03"


def test_bitwriter_round_trip():
    rng = random.Random(3)
    fields = [(rng.randrange(1 << n), n) for n in
              (rng.randrange(0, 33) for _ in range(200))]
    w = BitWriter()
    for value, n in fields:
        w.write(value, n)
    total = sum(n for _, n in fields)
    assert w.pos * 8 + w.bitpos == total
    w.flush()
    data = w.getvalue()
    assert len(data) == (total + 7) // 8
    assert _read_bits(data, [n for _, n in fields]) == [v for v, _ in fields]


def test_bitwriter_holds_full_word():
    w = BitWriter()
    w.write(0xFFFFFFFF, 32)
    assert (w.pos, w.bitpos) == (0, 32)
    w.write(0, 1)
    assert (w.pos, w.bitpos) == (4, 1)


def test_bitwriter_write_bytes_needs_alignment():
    w = BitWriter()
    w.write(1, 3)
    with pytest.raises(ValueError):
        w.write_bytes(b"ab")
    w.flush()
    w.write_bytes(b"ab")
    assert w.getvalue() == b"\x01ab"


def test_bitwriter_capacity():
    w = BitWriter(capacity=2)
    w.write(0xABC, 12)
    w.flush()
    assert len(w.getvalue()) == 2
    with pytest.raises(OverflowError):
        w.write_bytes(b"x")


def test_bitwriter_rejects_wide_write():
    with pytest.raises(ValueError):
        BitWriter().write(0, 33)