"""Rabin-Karp style rolling hash over byte windows."""

PRIME_NUMBER = 4294967295
RADIX = 256


def rolling_hash_init(data, backwards: bool = False) -> int:
    """Hash a whole window, reading it forwards or from the end."""
    window = memoryview(data).tobytes()
    if backwards:
        window = window[::-1]
    value = 0
    for byte in window:
        value = (RADIX * value + byte) % PRIME_NUMBER
    return value


def rolling_hash_advance(old_hash: int, rm: int, to_remove: int, to_add: int) -> int:
    """Slide the window by one byte: drop ``to_remove`` and append ``to_add``.

    ``rm`` is ``RADIX ** (window - 1) % PRIME_NUMBER`` as given by
    :func:`rolling_hash_calc_rm`.
    """
    removed = (to_remove * rm) % PRIME_NUMBER
    return (RADIX * (old_hash - removed) + to_add) % PRIME_NUMBER


def rolling_hash_calc_rm(window_size: int) -> int:
    """Return ``RADIX ** (window_size - 1)`` modulo the hash prime."""
    rm = 1
    for _ in range(window_size - 1):
        rm = (rm * RADIX) % PRIME_NUMBER
    return rm