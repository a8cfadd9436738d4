# erokit

Pure-Python building blocks for tools that create and inspect EROFS
filesystem images. The package has no third-party dependencies.

## Modules

### `erokit.xxhash`

- `xxh32(data, seed=0)` returns the 32-bit xxHash of a bytes-like object.
- `xxh64(data, seed=0)` returns the 64-bit xxHash.

### `erokit.sha256`

- `Sha256(data=b"")` is an incremental hasher with `update(data)`,
  `digest()` (32 bytes), `hexdigest()` and `copy()`. You can call
  `digest()` more than once and keep feeding data after it.
- `sha256(data)` returns the digest in one call.

### `erokit.rolling_hash`

This is a Rabin–Karp style hash over byte windows, modulo `PRIME_NUMBER`
(4294967295) with `RADIX` 256.

- `rolling_hash_init(data, backwards=False)` hashes a whole window. With
  `backwards=True` it reads the window from its last byte to its first.
- `rolling_hash_calc_rm(window_size)` returns
  `RADIX ** (window_size - 1) % PRIME_NUMBER`.
- `rolling_hash_advance(old_hash, rm, to_remove, to_add)` slides the window
  along by one byte.

### `erokit.uuids`

- `generate_uuid()` returns 16 random bytes from `os.urandom`, with version
  and variant bits written into bytes 0 and 1.
- `parse_uuid(text)` turns `xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx` into
  16 bytes. It raises `ValueError` on malformed text.
- `unparse_uuid_lower(data)` formats 16 bytes as lowercase hyphenated text.

### `erokit.workqueue`

`WorkQueue(nworker, max_jobs, on_start=None, on_exit=None)` is a fixed pool
of threads fed from a bounded queue:

- `queue_work(fn)` adds a job and blocks while `max_jobs` jobs are already
  waiting.
- Each worker calls `on_start(queue)` once when it starts. It passes the
  returned value to every job it runs, as `fn(value)`, and then to
  `on_exit(queue, value)` when it stops.
- `destroy()` lets the workers drain the queue, joins them, and re-raises
  the first exception that any job raised.
- The class works as a context manager, and leaving the block calls
  `destroy()`.

```python
from erokit.workqueue import WorkQueue

results = []
with WorkQueue(4, 16) as wq:
    for n in range(10):
        wq.queue_work(lambda _local, n=n: results.append(n * n))
print(sorted(results))
```

### `erokit.iostream`

`IOStream(fileobj, decoder=Decoder.NONE)` is a forward-only buffered reader.
`Decoder` selects the input format: `NONE`, `GZIP` or `LZMA` (xz/lzma,
auto-detected).

- `read(size)` returns up to `size` bytes.
- `bread(size)` reads exactly `size` bytes unless the input ends first.
- `skip(size)` skips bytes and returns the count it could not skip.
- `close()` closes the decoder and the underlying file. The class also works
  as a context manager.

### `erokit.tarheader`

`TarReader(stream)` reads ustar, GNU and pax tar archives. It accepts an
`IOStream` or a plain binary file object, and yields `TarEntry` objects from
`next_entry()` or by iteration. The reader handles the following:

- header checksums (signed and unsigned sums are both accepted);
- GNU base-256 numbers;
- `prefix` + `name` paths;
- GNU long names and long links (`L`, `K`);
- pax local (`x`) and global (`g`) headers;
- volume headers (`V`), whose name is stored in `volume_name`.

Unknown type flags are logged and skipped. Malformed archives raise
`TarFormatError`, which is a subclass of `ValueError`.

A `TarEntry` holds the following fields:

- `path`, `typeflag`, `mode` (including file-type bits), `uid`, `gid`,
  `size`, `mtime`, `mtime_nsec`, `link`;
- `rdev`, `devmajor`, `devminor`;
- `xattrs` (an `XattrList`);
- `header_offset`, `data_offset`;
- `data`, which holds the file contents for regular files (type `0` and `7`)
  and is empty for every other type.

Helpers:

- `PaxHeader` and `parse_pax_header(data, header=None)` apply
  `LEN NAME=VALUE\n` records. The recognised keys are `path`, `linkpath`,
  `mtime`, `size`, `uid`, `gid`, `SCHILY.xattr.*` and `LIBARCHIVE.xattr.*`.
- `XattrList` is an ordered name → value mapping with `insert`, `merge` and
  `items`.
- `parse_octal`, `parse_number`, `base64_decode` and `verify_checksum` are
  also available.

```python
from erokit.iostream import IOStream, Decoder
from erokit.tarheader import TarReader

with open("layer.tar.gz", "rb") as f:
    with IOStream(f, Decoder.GZIP) as stream:
        for entry in TarReader(stream):
            print(oct(entry.mode), entry.path, entry.size)
```

### `erokit.huffman`

This module provides the DEFLATE support pieces:

- `BitWriter`: an LSB-first bit sink with `write`, `flush`, `write_bytes`,
  `getvalue` and an optional byte `capacity`.
- `reverse_bits` and `gen_huff_codes`.
- `huffman_generate(freqs, max_len)`: builds length-limited Huffman codes.
- `code_length_tokens`, `scan_lens` and `huffman_price`.
- `len_slot` and `dist_slot`.
- The fixed-Huffman tables.

### `erokit.deflate`

This module is a raw DEFLATE encoder that fills a fixed output budget.

- `deflate_destsize(data, target_size, level=9, dict_size=0)` compresses as
  long a prefix of `data` as fits into `target_size` bytes. It returns
  `(compressed, consumed)`.
- `KiteDeflate(level, dict_size).compress_destsize(data, target_size)` does
  the same with a reusable encoder.
- Levels 1–3 use greedy matching and levels 4–9 use lazy matching. Level 0
  is rejected.
- `dict_size` must be a power of two no larger than 32768; 0 means 32768.
- `MatchFinder` is the underlying hash-chain match finder.

```python
import zlib
from erokit.deflate import deflate_destsize

data = b"some highly repetitive text " * 1000
compressed, consumed = deflate_destsize(data, 4096, 9, 0)
assert zlib.decompress(compressed, -15) == data[:consumed]
```

## What this package does not do

erokit provides components only. It does not read or write EROFS images:

- There is no superblock, inode, directory or on-disk xattr handling.
- Nothing builds an image from a directory or a tar archive.
- There is no command-line tool.

## Installation and tests

```
pip install ".[test]"
pytest
```