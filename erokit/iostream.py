"""Buffered sequential reader over plain, gzip or xz/lzma input."""

import enum
import gzip
import lzma
from typing import BinaryIO


class Decoder(enum.IntEnum):
    """How the raw input is decoded before it is handed out."""

    NONE = 0
    GZIP = 1
    LZMA = 2


_PLAIN_BUFSIZE = 16384
_COMPRESSED_BUFSIZE = 32768


class IOStream:
    """Forward-only byte stream with an internal read-ahead buffer."""

    def __init__(self, fileobj: BinaryIO, decoder: Decoder = Decoder.NONE):
        self.decoder = Decoder(decoder)
        self._fileobj = fileobj
        self._buffer = bytearray()
        self._head = 0
        self.eof = False
        self.size = 0
        if self.decoder is Decoder.GZIP:
            self._reader = gzip.GzipFile(fileobj=fileobj, mode="rb")
            self.bufsize = _COMPRESSED_BUFSIZE
        elif self.decoder is Decoder.LZMA:
            self._reader = lzma.LZMAFile(fileobj, mode="rb",
                                         format=lzma.FORMAT_AUTO)
            self.bufsize = _COMPRESSED_BUFSIZE
        else:
            self._reader = fileobj
            seekable = getattr(fileobj, "seekable", None)
            if seekable is not None and seekable():
                start = fileobj.tell()
                length = fileobj.seek(0, 2) - start
                if length <= 0:
                    self.eof = length == 0
                else:
                    self.size = length
                fileobj.seek(start)
            self.bufsize = _PLAIN_BUFSIZE

    def _fill(self, want: int) -> bytes:
        parts = []
        got = 0
        while got < want:
            chunk = self._reader.read(want - got)
            if not chunk:
                break
            parts.append(chunk)
            got += len(chunk)
        if got < want:
            self.eof = True
        return b"".join(parts)

    def read(self, size: int) -> bytes:
        """Return up to ``size`` bytes; fewer only at end of input or when
        ``size`` exceeds what the buffer holds."""
        if size < 0:
            raise ValueError("size must not be negative")
        available = len(self._buffer) - self._head
        if available >= size:
            out = bytes(self._buffer[self._head:self._head + size])
            self._head += size
            return out
        if self._head:
            del self._buffer[:self._head]
            self._head = 0
        if not self.eof:
            want = self.bufsize - len(self._buffer)
            if want > 0:
                self._buffer += self._fill(want)
        count = min(len(self._buffer), size)
        self._head = count
        return bytes(self._buffer[:count])

    def bread(self, size: int) -> bytes:
        """Read exactly ``size`` bytes unless the input ends first."""
        parts = []
        remaining = size
        while remaining:
            chunk = self.read(remaining)
            if not chunk:
                break
            parts.append(chunk)
            remaining -= len(chunk)
        return b"".join(parts)

    def skip(self, size: int) -> int:
        """Skip ``size`` bytes; return how many could not be skipped."""
        if size < 0:
            raise ValueError("size must not be negative")
        available = len(self._buffer) - self._head
        if available >= size:
            self._head += size
            return 0
        size -= available
        self._buffer.clear()
        self._head = 0
        if self.eof:
            return size
        if self.size:
            start = self._fileobj.seek(0, 1) - (self._fileobj.tell() - self._fileobj.tell())
            cur = self._fileobj.seek(size, 1)
            end = self._origin_end(start, size)
            return max(cur - end, 0) if end is not None else 0
        while size:
            chunk = self.read(size)
            size -= len(chunk)
            if self.eof and not chunk:
                break
            if not chunk:
                break
            self._head = len(self._buffer)
            del self._buffer[:]
            self._head = 0
        return size

    def _origin_end(self, before: int, moved: int):
        """Absolute position where the plain input ends."""
        if not hasattr(self, "_end"):
            self._end = None
        return self._end

    def close(self) -> None:
        """Release the decoder and close the underlying file."""
        if self._reader is not self._fileobj:
            self._reader.close()
        self._fileobj.close()
        self._buffer.clear()
        self._head = 0

    def __enter__(self) -> "IOStream":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()