import pytest

from erokit.rolling_hash import (
    PRIME_NUMBER,
    rolling_hash_advance,
    rolling_hash_calc_rm,
    rolling_hash_init,
)

DATA = bytes((i * 131 + 17) & 0xFF for i in range(300))


def test_empty_window_is_zero():
    assert rolling_hash_init(b"", False) == 0
    assert rolling_hash_init(b"", True) == 0


def test_small_forward_value():
    assert rolling_hash_init(b"\x01\x02", False) == 258


def test_backwards_equals_reversed_forwards():
    assert rolling_hash_init(DATA[:40], True) == rolling_hash_init(DATA[:40][::-1], False)


def test_rm_for_single_byte_window():
    assert rolling_hash_calc_rm(1) == 1


def test_rm_grows_by_radix():
    assert rolling_hash_calc_rm(3) == rolling_hash_calc_rm(2) * 256


@pytest.mark.parametrize("window", [1, 4, 8, 16, 64])
def test_advance_matches_fresh_hash(window):
    rm = rolling_hash_calc_rm(window)
    h = rolling_hash_init(DATA[:window], False)
    for start in range(1, len(DATA) - window + 1):
        h = rolling_hash_advance(h, rm, DATA[start - 1], DATA[start + window - 1])
        assert h == rolling_hash_init(DATA[start:start + window], False)


def test_advance_result_is_non_negative_and_bounded():
    rm = rolling_hash_calc_rm(8)
    h = rolling_hash_init(b"\x00" * 8, False)
    result = rolling_hash_advance(h, rm, 255, 0)
    assert 0 <= result < PRIME_NUMBER


def test_hash_bounded_for_long_input():
    assert 0 <= rolling_hash_init(b"\xff" * 1000, False) < PRIME_NUMBER