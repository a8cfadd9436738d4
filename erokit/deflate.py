"""Raw DEFLATE compressor that fills a fixed-size output buffer.

The compressor consumes as much input as fits into ``target_size`` bytes of
raw DEFLATE output and reports how many input bytes were encoded.
"""

import dataclasses
from typing import Optional

from erokit.huffman import (
    BitWriter,
    BLOCK_DYNAMIC,
    BLOCK_FIXED,
    BLOCK_STORED,
    CODE_LENGTH_ORDER,
    DIST_EXTRA_BITS,
    DIST_START,
    DIST_TABLE_SIZE,
    FIXED_DIST_CODES,
    FIXED_LITLEN_LEVELS,
    FIXED_MAIN_CODES,
    HISTORY_SIZE,
    LEN_EXTRA_BITS,
    LEN_START,
    LENS_TABLE_SIZE,
    LEVEL_EXTRA_BITS,
    MAIN_TABLE_SIZE,
    MATCH_MIN_LEN,
    MAX_LEN,
    NUM_DIST_CODES_MIN,
    NUM_LENS_CODES_MIN,
    NUM_LITLEN_CODES_MIN,
    SYMBOL_END_OF_BLOCK,
    SYMBOL_MATCH,
    TABLE_DIRECT_LEVELS,
    code_length_tokens,
    dist_slot,
    huffman_generate,
    huffman_price,
    len_slot,
    reverse_bits,
    scan_lens,
)

DISTANCE_TOO_FAR = 4096
MAX_SYMBOLS = 16384
_HASH_SIZE = 0x10000
_BASE_LIMIT = 0x7FFFFFFF


def _crc_ccitt_entry(byte: int) -> int:
    crc = byte
    for _ in range(8):
        crc = (crc >> 1) ^ 0x8408 if crc & 1 else crc >> 1
    return crc


_CRC_CCITT = tuple(_crc_ccitt_entry(i) for i in range(256))


@dataclasses.dataclass(frozen=True)
class _LevelConfig:
    good_length: int
    max_lazy: int
    nice_length: int
    depth: int
    lazy_search: bool


_LEVELS = (
    None,  # store only, unsupported
    _LevelConfig(4, 4, 8, 4, False),
    _LevelConfig(4, 5, 16, 8, False),
    _LevelConfig(4, 6, 32, 32, False),
    _LevelConfig(4, 4, 16, 16, True),
    _LevelConfig(8, 16, 32, 32, True),
    _LevelConfig(8, 16, 128, 128, True),
    _LevelConfig(8, 32, 128, 256, True),
    _LevelConfig(32, 128, 258, 1024, True),
    _LevelConfig(32, 258, 258, 4096, True),
)


@dataclasses.dataclass
class Match:
    """A literal (length below the minimum, ``dist`` is the byte) or a match."""

    length: int
    dist: int


def _common_prefix(buf: bytes, a: int, b: int, limit: int) -> int:
    """Number of equal leading bytes of ``buf[a:]`` and ``buf[b:]``, at most ``limit``."""
    if limit <= 0:
        return 0
    if buf[a:a + limit] == buf[b:b + limit]:
        return limit
    count = 0
    for x, y in zip(buf[a:a + limit], buf[b:b + limit]):
        if x != y:
            break
        count += 1
    return count


class MatchFinder:
    """Hash-chain LZ77 match finder keyed on three-byte prefixes."""

    def __init__(self, window_size: int, level: int):
        if not 0 < level < len(_LEVELS):
            raise ValueError(f"unsupported compression level {level}")
        if (window_size <= 0 or window_size > HISTORY_SIZE
                or window_size & (window_size - 1)):
            raise ValueError(f"invalid window size {window_size}")
        cfg = _LEVELS[level]
        self.wsiz = window_size
        self.good_len = cfg.good_length
        self.nice_len = cfg.nice_length
        self.depth = cfg.depth
        self.max_lazy = cfg.max_lazy
        self.lazy_search = cfg.lazy_search
        self.hash = [0] * _HASH_SIZE
        self.chain = [0] * window_size
        self.base = 0
        self.offset = 0
        self.cyclic_pos = 0
        self.end = 0
        self._buf = b""
        self.matches_matrix = [[Match(0, 0) for _ in range(4)] for _ in range(2)]
        self.matches = self.matches_matrix[0]

    def reset(self, data) -> None:
        """Start matching over ``data`` without clearing the hash table."""
        raw = memoryview(data).tobytes()
        self.end = len(raw)
        self._buf = raw + b"\0\0"
        self.base += self.offset + HISTORY_SIZE + 1
        if self.base > _BASE_LIMIT:
            self.base = HISTORY_SIZE + 1
            self.hash = [0] * _HASH_SIZE
        self.offset = 0
        self.cyclic_pos = 0
        self.matches = self.matches_matrix[0]
        self.matches_matrix[0][0].length = MATCH_MIN_LEN - 1
        self.matches_matrix[1][0].length = MATCH_MIN_LEN - 1

    def get_matches(self, depth: int, bestlen: int) -> int:
        """Insert the current position and search for matches longer than ``bestlen``.

        Found matches are stored in ``matches[1:]`` in increasing length;
        the number stored is returned, so ``matches[count]`` is the longest.
        """
        buf = self._buf
        cur = self.offset
        if self.end - cur < bestlen + 1:
            return 0
        b0, b1 = buf[cur], buf[cur + 1]
        hv = (b0 | (b1 << 8)) ^ _CRC_CCITT[buf[cur + 2]]
        cur_match = self.hash[hv]
        p = self.base + cur
        self.hash[hv] = p
        self.chain[self.cyclic_pos] = cur_match
        wsiz = self.wsiz
        mask = wsiz - 1
        k = 1

        if depth:
            wpos = wsiz + self.cyclic_pos
            limit = min(self.nice_len, self.end - cur)
            while True:
                diff = p - cur_match
                if diff >= wsiz:
                    break
                q = cur_match - self.base
                cur_match = self.chain[(wpos - diff) & mask]
                if (buf[q] == b0 and buf[q + 1] == b1 and (
                        bestlen < 3 or (
                            buf[cur + bestlen - 1:cur + bestlen + 1]
                            == buf[q + bestlen - 1:q + bestlen + 1]
                            and buf[cur + 3:cur + bestlen]
                            == buf[q + 3:q + bestlen]))):
                    extra = _common_prefix(buf, cur + bestlen + 1,
                                           q + bestlen + 1,
                                           limit - bestlen - 1)
                    bestlen += 1 + extra
                    if k >= len(self.matches):
                        k -= 1
                    slot = self.matches[k]
                    slot.length = bestlen
                    slot.dist = diff
                    k += 1
                    if bestlen >= limit:
                        break
                depth -= 1
                if not depth:
                    break

        self.offset += 1
        self.cyclic_pos = (self.cyclic_pos + 1) & mask
        return k - 1


@dataclasses.dataclass
class _Table:
    main_codes: list = dataclasses.field(default_factory=lambda: [0] * MAIN_TABLE_SIZE)
    litlen_levels: list = dataclasses.field(default_factory=lambda: [0] * MAIN_TABLE_SIZE)
    dist_codes: list = dataclasses.field(default_factory=lambda: [0] * DIST_TABLE_SIZE)
    dist_levels: list = dataclasses.field(default_factory=lambda: [0] * DIST_TABLE_SIZE)
    level_codes: list = dataclasses.field(default_factory=lambda: [0] * LENS_TABLE_SIZE)
    level_lens: list = dataclasses.field(default_factory=lambda: [0] * LENS_TABLE_SIZE)
    num_litlens: int = 0
    num_distlens: int = 0
    num_blcodes: int = 0


class KiteDeflate:
    """Raw DEFLATE encoder that stops when the output budget is used up."""

    def __init__(self, level: int = 9, dict_size: int = 0):
        self.mf = MatchFinder(dict_size or HISTORY_SIZE, level)
        self.lazy_search = self.mf.lazy_search
        self.max_symbols = MAX_SYMBOLS
        self.main_freqs = [0] * MAIN_TABLE_SIZE
        self.dist_freqs = [0] * DIST_TABLE_SIZE
        self.tables = [_Table(), _Table()]
        self._tab = 0
        self._reset_state(b"", 0)

    def _reset_state(self, data: bytes, target_size: int) -> None:
        self._data = data
        self.inlen = len(data)
        self.outlen = target_size
        self._out = BitWriter()
        self.pos_in = 0
        self.symbols: list[tuple[int, int]] = []
        self.costbits = 0
        self.startpos = 0
        self.encode_mode = BLOCK_STORED
        self.freq_changed = False
        self.lastblock = False
        self.prev_valid = False
        self.prev_longest = 0
        self._tab = 0

    @property
    def _table(self) -> _Table:
        return self.tables[self._tab]

    def compress_destsize(self, data, target_size: int) -> tuple[bytes, int]:
        """Compress a prefix of ``data`` into at most ``target_size`` bytes.

        Returns the raw DEFLATE stream and the number of input bytes it holds.
        """
        raw = memoryview(data).tobytes()
        if not raw:
            raise ValueError("nothing to compress")
        if target_size < 2:
            raise ValueError("target size too small for a DEFLATE block")
        self._reset_state(raw, target_size)
        self.mf.reset(raw)
        step = self._compress_slow if self.lazy_search else self._compress_fast
        while not step():
            pass
        self._out.flush()
        return self._out.getvalue(), self.startpos

    # block construction ---------------------------------------------------

    def _fix_dyn_block(self) -> None:
        if not self.freq_changed:
            return
        t = self._table
        t.litlen_levels, t.main_codes = huffman_generate(self.main_freqs, MAX_LEN)
        t.dist_levels, t.dist_codes = huffman_generate(self.dist_freqs, MAX_LEN)

        num_litlens = MAIN_TABLE_SIZE
        while num_litlens > NUM_LITLEN_CODES_MIN and not t.litlen_levels[num_litlens - 1]:
            num_litlens -= 1
        num_distlens = DIST_TABLE_SIZE
        while num_distlens > NUM_DIST_CODES_MIN and not t.dist_levels[num_distlens - 1]:
            num_distlens -= 1

        level_freqs = scan_lens(t.litlen_levels[:num_litlens])
        level_freqs = scan_lens(t.dist_levels[:num_distlens], level_freqs)
        t.level_lens, t.level_codes = huffman_generate(level_freqs, 7)
        num_blcodes = LENS_TABLE_SIZE
        while (num_blcodes > NUM_LENS_CODES_MIN
               and not t.level_lens[CODE_LENGTH_ORDER[num_blcodes - 1]]):
            num_blcodes -= 1

        t.num_litlens = num_litlens
        t.num_distlens = num_distlens
        t.num_blcodes = num_blcodes

        opt_mainlen = (
            huffman_price(self.main_freqs, t.litlen_levels, LEN_EXTRA_BITS, SYMBOL_MATCH)
            + huffman_price(self.dist_freqs, t.dist_levels, DIST_EXTRA_BITS, 0))
        self.costbits = (3 + 5 + 5 + 4 + 3 * num_blcodes
                         + huffman_price(level_freqs, t.level_lens,
                                         LEVEL_EXTRA_BITS, TABLE_DIRECT_LEVELS)
                         + opt_mainlen)
        self.freq_changed = False

    def _count_code(self, literal: bool, lslot: int, dslot: int) -> bool:
        t = self._table
        lenbase = 0 if literal else SYMBOL_MATCH
        rem = (self.outlen - self._out.pos) * 8 - self._out.bitpos
        recalc = False

        self.freq_changed = True
        self.main_freqs[lenbase + lslot] += 1
        if not literal:
            self.dist_freqs[dslot] += 1

        if self.encode_mode == BLOCK_FIXED:
            if literal:
                bits = FIXED_LITLEN_LEVELS[lslot]
            else:
                bits = (FIXED_LITLEN_LEVELS[SYMBOL_MATCH + lslot]
                        + LEN_EXTRA_BITS[lslot] + 5 + DIST_EXTRA_BITS[dslot])
        else:
            recalc = ((not literal and not t.dist_levels[dslot])
                      or not t.litlen_levels[lenbase + lslot])
            if recalc:
                self._tab ^= 1
                self._fix_dyn_block()
                bits = 0
            elif literal:
                bits = t.litlen_levels[lslot]
            else:
                bits = (t.dist_levels[dslot] + DIST_EXTRA_BITS[dslot]
                        + t.litlen_levels[SYMBOL_MATCH + lslot]
                        + LEN_EXTRA_BITS[lslot])

        if rem < self.costbits + bits:
            self.main_freqs[lenbase + lslot] -= 1
            if not literal:
                self.dist_freqs[dslot] -= 1
            if recalc:
                self._tab ^= 1
            return False
        self.costbits += bits
        return True

    def _tally(self, match: Match) -> bool:
        """Record a symbol; return True when the block is full."""
        length, dist = match.length, match.dist
        fixedcost = 0xFFFFFFFF
        while True:
            if length < MATCH_MIN_LEN:
                fits = self._count_code(True, dist, 0)
            else:
                fits = self._count_code(False, len_slot(length - MATCH_MIN_LEN),
                                        dist_slot(dist - 1))
            if fits:
                self.symbols.append((length, dist))
                return False
            if self.encode_mode == BLOCK_FIXED:
                fixedcost = self.costbits
                self.encode_mode = BLOCK_DYNAMIC
                continue
            self.lastblock = True
            if fixedcost <= self.costbits:
                self.encode_mode = BLOCK_FIXED
            return True

    def _start_block(self) -> None:
        self.main_freqs = [0] * MAIN_TABLE_SIZE
        self.dist_freqs = [0] * DIST_TABLE_SIZE
        self.tables[0] = _Table()
        self.symbols = []
        self.main_freqs[SYMBOL_END_OF_BLOCK] += 1
        self.encode_mode = BLOCK_FIXED
        self._tab = 0
        self.costbits = 3 + FIXED_LITLEN_LEVELS[SYMBOL_END_OF_BLOCK]

    def _stored_length(self) -> int:
        return self.pos_in - int(self.prev_valid) - self.startpos

    def _end_block(self) -> None:
        if self.encode_mode == BLOCK_FIXED:
            fixedcost = self.costbits
            self._fix_dyn_block()
            if fixedcost > self.costbits:
                self.encode_mode = BLOCK_DYNAMIC
            else:
                self.costbits = fixedcost

            storelen = self._stored_length()
            storeblocks = max(-(-storelen // 65535), 1)
            storecost = ((8 - self._out.bitpos) + storeblocks - 1
                         + storeblocks * 32 + storelen * 8)
            if self.costbits > storecost:
                self.costbits = storecost
                self.encode_mode = BLOCK_STORED

        self.lastblock |= (self.costbits + self._out.bitpos
                           >= (self.outlen - self._out.pos) * 8)

    # block output ---------------------------------------------------------

    def _send_tree(self, lens) -> None:
        t = self._table
        out = self._out
        for symbol, extra, extra_bits in code_length_tokens(lens):
            out.write(t.level_codes[symbol], t.level_lens[symbol])
            if extra_bits:
                out.write(extra, extra_bits)

    def _send_trees(self) -> None:
        t = self._table
        out = self._out
        out.write((BLOCK_DYNAMIC << 1) + int(self.lastblock), 3)
        out.write(t.num_litlens - NUM_LITLEN_CODES_MIN, 5)
        out.write(t.num_distlens - NUM_DIST_CODES_MIN, 5)
        out.write(t.num_blcodes - NUM_LENS_CODES_MIN, 4)
        for symbol in CODE_LENGTH_ORDER[:t.num_blcodes]:
            out.write(t.level_lens[symbol], 3)
        t.level_codes = [reverse_bits(c, n) for c, n in zip(t.level_codes, t.level_lens)]
        self._send_tree(t.litlen_levels[:t.num_litlens])
        self._send_tree(t.dist_levels[:t.num_distlens])

    def _write_block(self, fixed: bool) -> None:
        if fixed:
            main_codes, levels = FIXED_MAIN_CODES, FIXED_LITLEN_LEVELS
            dist_codes, dist_levels = FIXED_DIST_CODES, None
        else:
            t = self._table
            levels, dist_levels = t.litlen_levels, t.dist_levels
            main_codes = [reverse_bits(c, n) for c, n in zip(t.main_codes, levels)]
            dist_codes = [reverse_bits(c, n) for c, n in zip(t.dist_codes, dist_levels)]

        out = self._out
        for length, dist in self.symbols:
            if length < MATCH_MIN_LEN:
                out.write(main_codes[dist], levels[dist])
                continue
            lc = length - MATCH_MIN_LEN
            lslot = len_slot(lc)
            out.write(main_codes[SYMBOL_MATCH + lslot], levels[SYMBOL_MATCH + lslot])
            out.write(lc - LEN_START[lslot], LEN_EXTRA_BITS[lslot])
            dslot = dist_slot(dist - 1)
            out.write(dist_codes[dslot], 5 if fixed else dist_levels[dslot])
            out.write(dist - 1 - DIST_START[dslot], DIST_EXTRA_BITS[dslot])
        out.write(main_codes[SYMBOL_END_OF_BLOCK], levels[SYMBOL_END_OF_BLOCK])

    def _write_store(self) -> None:
        out = self._out
        first = not self.startpos and not out.bitpos
        total = self._stored_length()
        while True:
            length = min(total, 65535)
            total -= length
            header = ((int(first) << 3) | (BLOCK_STORED << 1)
                      | int(self.lastblock and not total))
            out.write(header, 3 + int(first))
            out.flush()
            out.write(length, 16)
            out.write(length ^ 0xFFFF, 16)
            out.flush()
            out.write_bytes(self._data[self.startpos:self.startpos + length])
            self.startpos += length
            if not total:
                break

    def _commit_block(self) -> bool:
        if self.encode_mode == BLOCK_FIXED:
            self._out.write((BLOCK_FIXED << 1) + int(self.lastblock), 3)
            self._write_block(True)
        elif self.encode_mode == BLOCK_DYNAMIC:
            self._send_trees()
            self._write_block(False)
        else:
            self._write_store()
        self.startpos = self.pos_in - int(self.prev_valid)
        return self.lastblock

    # parsing strategies ---------------------------------------------------

    def _compress_fast(self) -> bool:
        mf = self.mf
        self._start_block()
        while True:
            count = mf.get_matches(mf.depth, MATCH_MIN_LEN - 1)
            matched = False
            if count:
                best = mf.matches[count]
                length = best.length
                if not (length == MATCH_MIN_LEN and best.dist > DISTANCE_TOO_FAR):
                    if self._tally(best):
                        break
                    self.pos_in += length
                    for _ in range(length - 1):
                        mf.get_matches(0, 0)
                    matched = True
            if not matched:
                mf.matches[0].dist = self._data[self.pos_in]
                if self._tally(mf.matches[0]):
                    break
                self.pos_in += 1

            self.lastblock |= self.pos_in >= self.inlen
            if self.pos_in >= self.inlen or len(self.symbols) >= self.max_symbols:
                self._end_block()
                break
        return self._commit_block()

    def _compress_slow(self) -> bool:
        mf = self.mf
        flush = False
        self._start_block()
        while True:
            prev_matches = mf.matches
            length = MATCH_MIN_LEN - 1
            mf.matches = mf.matches_matrix[1 if mf.matches is mf.matches_matrix[0] else 0]
            mf.matches[0].dist = self._data[self.pos_in]

            len0 = prev_matches[self.prev_longest].length
            if len0 < mf.max_lazy:
                count = mf.get_matches(mf.depth >> int(len0 >= mf.good_len), len0)
                if count:
                    length = mf.matches[count].length
                    if (length == MATCH_MIN_LEN
                            and mf.matches[count].dist > DISTANCE_TOO_FAR):
                        count = 0
                        length = MATCH_MIN_LEN - 1
            else:
                count = 0
                mf.get_matches(0, 0)

            if length < len0:
                if self._tally(prev_matches[self.prev_longest]):
                    break
                len0 -= 1
                self.pos_in += len0
                for _ in range(len0 - 1):
                    mf.get_matches(0, 0)
                self.prev_valid = False
                self.prev_longest = 0
            else:
                if not self.prev_valid:
                    self.prev_valid = True
                elif self._tally(prev_matches[0]):
                    break
                self.pos_in += 1
                self.prev_longest = count

            self.lastblock |= self.pos_in >= self.inlen
            if self.pos_in >= self.inlen:
                flush = True
                break
            if len(self.symbols) >= self.max_symbols:
                self._end_block()
                break

        if flush and self.prev_valid:
            self._tally(mf.matches[self.prev_longest])
            self.prev_valid = False
        return self._commit_block()


def deflate_destsize(data, target_size: int, level: int = 9,
                     dict_size: Optional[int] = 0) -> tuple[bytes, int]:
    """Compress a prefix of ``data`` into at most ``target_size`` bytes.

    Returns the raw DEFLATE stream and the number of input bytes consumed.
    """
    return KiteDeflate(level, dict_size or 0).compress_destsize(data, target_size)