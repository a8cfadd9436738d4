"""Parsing of ustar, GNU and pax tar headers into archive entries."""

import dataclasses
import logging
import re
import stat
from typing import Iterator, Optional, Union

from erokit.iostream import IOStream

log = logging.getLogger(__name__)

BLOCK_SIZE = 512
PATH_MAX = 4096

_FILE_TYPES = {
    "0": stat.S_IFREG,
    "7": stat.S_IFREG,
    "1": stat.S_IFREG,
    "2": stat.S_IFLNK,
    "3": stat.S_IFCHR,
    "4": stat.S_IFBLK,
    "5": stat.S_IFDIR,
    "6": stat.S_IFIFO,
}

_SPACES = b" \t\n\v\f\r"
_INT_RE = re.compile(rb"\s*([+-]?\d+)\s*")
_BASE64_TABLE = {
    ch: index
    for index, ch in enumerate(
        b"ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+,")
}
_SKIPPED = object()


class TarFormatError(ValueError):
    """The archive is malformed."""


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", "surrogateescape")


def _cstr(raw: bytes) -> bytes:
    """Cut ``raw`` at its first NUL byte."""
    return raw.split(b"\0", 1)[0]


class XattrList:
    """Ordered extended attributes, one value per name."""

    def __init__(self, items=()):
        self._items: dict[str, bytes] = {}
        for name, value in items:
            self.insert(name, value)

    @staticmethod
    def _name(name: Union[str, bytes]) -> str:
        return _decode(bytes(name)) if isinstance(name, (bytes, bytearray)) else name

    def insert(self, name, value, skip: bool = False) -> None:
        """Add ``name``; an existing one is replaced unless ``skip`` is set."""
        key = self._name(name)
        if key in self._items and skip:
            return
        self._items[key] = bytes(value)

    def merge(self, other: "XattrList") -> None:
        """Add the attributes of ``other`` that are not present yet."""
        for name, value in other.items():
            self.insert(name, value, skip=True)

    def items(self) -> list[tuple[str, bytes]]:
        """Return ``(name, value)`` pairs in insertion order."""
        return list(self._items.items())

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __contains__(self, name) -> bool:
        return self._name(name) in self._items

    def __eq__(self, other) -> bool:
        if not isinstance(other, XattrList):
            return NotImplemented
        return self.items() == other.items()

    def __repr__(self) -> str:
        return f"XattrList({self.items()!r})"


@dataclasses.dataclass
class PaxHeader:
    """Values from pax or GNU extension headers that override the ustar ones."""

    path: Optional[str] = None
    link: Optional[str] = None
    mtime: Optional[int] = None
    mtime_nsec: int = 0
    size: Optional[int] = None
    uid: Optional[int] = None
    gid: Optional[int] = None
    xattrs: XattrList = dataclasses.field(default_factory=XattrList)


@dataclasses.dataclass
class TarEntry:
    """One archive member."""

    path: str
    typeflag: str
    mode: int
    uid: int
    gid: int
    size: int
    mtime: int
    mtime_nsec: int = 0
    link: Optional[str] = None
    rdev: int = 0
    devmajor: int = 0
    devminor: int = 0
    xattrs: XattrList = dataclasses.field(default_factory=XattrList)
    header_offset: int = 0
    data_offset: int = 0
    data: bytes = b""


def parse_octal(field) -> int:
    """Parse an octal numeric header field terminated by NUL or space."""
    raw = bytes(field)
    pos = 0
    while pos < len(raw) and raw[pos] in _SPACES:
        pos += 1
    negative = False
    if pos < len(raw) and raw[pos] in b"+-":
        negative = raw[pos] == ord("-")
        pos += 1
    start = pos
    while pos < len(raw) and ord("0") <= raw[pos] <= ord("7"):
        pos += 1
    if pos == start:
        value, end = 0, 0
    else:
        value, end = int(raw[start:pos], 8), pos
    if end < len(raw) and raw[end] not in (0, ord(" ")):
        raise TarFormatError(f"invalid octal field {raw!r}")
    return -value if negative else value


def parse_number(field) -> int:
    """Parse a numeric field, octal or GNU base-256."""
    raw = bytes(field)
    if raw[:1] == b"\x80":
        return int.from_bytes(raw[1:], "big")
    return parse_octal(raw)


def base64_decode(text) -> bytes:
    """Decode the base64 variant used for LIBARCHIVE xattr values."""
    src = text.encode("latin-1") if isinstance(text, str) else bytes(text)
    length = len(src)
    if length and length % 4 == 0:
        if src.endswith(b"=="):
            length -= 2
        elif src.endswith(b"="):
            length -= 1
    out = bytearray()
    bits = acc = 0
    for ch in src[:length]:
        index = _BASE64_TABLE.get(ch)
        if index is None:
            raise TarFormatError(f"invalid base64 character {chr(ch)!r}")
        acc += index << bits
        bits += 6
        if bits >= 8:
            out.append(acc & 0xFF)
            acc >>= 8
            bits -= 8
    if acc:
        raise TarFormatError("trailing bits in base64 data")
    return bytes(out)


def _scan_int(buf: bytes, pos: int = 0) -> Optional[tuple[int, int]]:
    match = _INT_RE.match(buf, pos)
    if match is None:
        return None
    return int(match.group(1)), match.end()


def _pax_int(value: bytes, keyword: str) -> int:
    text = _cstr(value)
    scanned = _scan_int(text)
    if scanned is None or scanned[1] != len(text):
        raise TarFormatError(f"invalid pax {keyword} value {value!r}")
    return scanned[0]


def _apply_pax_record(header: PaxHeader, key: bytes, value: bytes) -> None:
    if key == b"path":
        header.path = _decode(_cstr(value)).rstrip("/")
    elif key == b"linkpath":
        header.link = _decode(_cstr(value))
    elif key == b"mtime":
        text = _cstr(value)
        scanned = _scan_int(text)
        if scanned is None:
            raise TarFormatError(f"invalid pax mtime value {value!r}")
        header.mtime, end = scanned
        if text[end:end + 1] == b".":
            fraction = _INT_RE.match(text, end + 1)
            if fraction is None:
                raise TarFormatError(f"invalid pax mtime value {value!r}")
            header.mtime_nsec = int(fraction.group(1))
    elif key == b"size":
        header.size = _pax_int(value, "size")
    elif key == b"uid":
        header.uid = _pax_int(value, "uid")
    elif key == b"gid":
        header.gid = _pax_int(value, "gid")
    elif key.startswith(b"SCHILY.xattr."):
        header.xattrs.insert(key[len(b"SCHILY.xattr."):], value)
    elif key.startswith(b"LIBARCHIVE.xattr."):
        header.xattrs.insert(key[len(b"LIBARCHIVE.xattr."):],
                             base64_decode(value))
    else:
        log.info("unrecognized pax keyword %r, ignoring", _decode(key))


def parse_pax_header(data, header: Optional[PaxHeader] = None) -> PaxHeader:
    """Apply the ``LEN NAME=VALUE\\n`` records in ``data`` to ``header``."""
    if header is None:
        header = PaxHeader()
    buf = bytes(data)
    pos = 0
    while pos < len(buf):
        scanned = _scan_int(buf, pos)
        if scanned is None:
            raise TarFormatError(f"bad pax record length at byte {pos}")
        length, end = scanned
        consumed = end - pos
        if length <= consumed or length > len(buf) - pos:
            raise TarFormatError(f"bad pax record length {length} at byte {pos}")
        record = buf[pos + consumed:pos + length]
        pos += length
        if not record.endswith(b"\n"):
            raise TarFormatError("pax record not terminated by newline")
        kv = record[:-1]
        eq = kv.find(b"=")
        if eq < 0:
            raise TarFormatError(f"pax record without '=': {kv!r}")
        _apply_pax_record(header, kv[:eq], kv[eq + 1:])
    return header


def verify_checksum(block) -> bool:
    """Check a header block against its stored checksum.

    Both the unsigned and the signed byte sums are accepted.
    """
    raw = bytes(block)
    if len(raw) != BLOCK_SIZE:
        raise ValueError("a tar header block is 512 bytes")
    stored = parse_octal(raw[148:156])
    covered = raw[:148] + raw[156:500]
    unsigned = 8 * ord(" ") + sum(covered)
    signed = unsigned - 256 * sum(1 for b in covered if b >= 0x80)
    return stored in (unsigned, signed)


class TarReader:
    """Read entries one after another from a tar stream."""

    def __init__(self, stream):
        self.stream = stream if isinstance(stream, IOStream) else IOStream(stream)
        self.offset = 0
        self.global_header = PaxHeader()
        self.volume_name: Optional[str] = None
        self._done = False

    def _align(self) -> None:
        rem = self.offset % BLOCK_SIZE
        if rem:
            if self.stream.skip(BLOCK_SIZE - rem):
                raise TarFormatError(f"failed to skip padding @ {self.offset}")
            self.offset += BLOCK_SIZE - rem

    def _read_exact(self, size: int, where: int) -> bytes:
        data = self.stream.bread(size)
        if len(data) != size:
            raise TarFormatError(f"invalid tar @ {where}")
        return data

    @staticmethod
    def _header_path(block: bytes) -> str:
        prefix = _cstr(block[345:500])
        name = _cstr(block[0:100])
        if prefix and not prefix.endswith(b"/"):
            prefix += b"/"
        return _decode(prefix + name).rstrip("/")

    def _parse_one(self):
        eh = dataclasses.replace(self.global_header, xattrs=XattrList())
        empty_seen = False
        while True:
            self._align()
            header_offset = self.offset
            block = self.stream.bread(BLOCK_SIZE)
            if len(block) != BLOCK_SIZE:
                raise TarFormatError(
                    f"failed to read header block @ {header_offset}")
            self.offset += BLOCK_SIZE
            if block[0] == 0:
                if empty_seen:
                    return None
                empty_seen = True
                continue

            try:
                valid = verify_checksum(block)
            except TarFormatError:
                raise TarFormatError(f"invalid chksum @ {header_offset}") from None
            if not valid:
                raise TarFormatError(f"chksum mismatch @ {header_offset}")

            typeflag = chr(block[156])
            if typeflag == "V":
                if block[124]:
                    log.warning("volume header with non-zeroed size @ %d",
                                header_offset)
                self.volume_name = _decode(_cstr(block[0:100]))
                continue

            if block[257:262] != b"ustar":
                raise TarFormatError(f"invalid tar magic @ {header_offset}")

            try:
                mode = parse_octal(block[100:108])
                uid = eh.uid if eh.uid is not None else parse_number(block[108:116])
                gid = eh.gid if eh.gid is not None else parse_number(block[116:124])
                size = eh.size if eh.size is not None else parse_number(block[124:136])
                if eh.mtime is not None:
                    mtime, mtime_nsec = eh.mtime, eh.mtime_nsec
                else:
                    mtime, mtime_nsec = parse_number(block[136:148]), 0
            except TarFormatError:
                raise TarFormatError(f"invalid tar @ {header_offset}") from None
            if size < 0:
                raise TarFormatError(f"invalid tar @ {header_offset}")

            path = eh.path
            if typeflag <= "7" and path is None:
                path = self._header_path(block)

            data_offset = self.offset
            self.offset += size

            if typeflag in _FILE_TYPES:
                mode |= _FILE_TYPES[typeflag]
            elif typeflag == "g":
                parse_pax_header(self._read_exact(size, header_offset),
                                 self.global_header)
                if self.global_header.path is not None:
                    eh.path = self.global_header.path
                if self.global_header.link is not None:
                    eh.link = self.global_header.link
                continue
            elif typeflag == "x":
                parse_pax_header(self._read_exact(size, header_offset), eh)
                continue
            elif typeflag == "L":
                eh.path = _decode(_cstr(self._read_exact(size, header_offset)))
                continue
            elif typeflag == "K":
                if size > PATH_MAX:
                    raise TarFormatError(f"invalid tar @ {header_offset}")
                eh.link = _decode(_cstr(self._read_exact(size, header_offset)))
                continue
            else:
                log.info("unrecognized typeflag %#x @ %d - ignoring",
                         block[156], header_offset)
                self.stream.skip(size)
                return _SKIPPED

            link = eh.link
            rdev = devmajor = devminor = 0
            if typeflag in ("3", "4"):
                try:
                    devmajor = parse_number(block[329:337])
                except TarFormatError:
                    raise TarFormatError(
                        f"invalid device major @ {header_offset}") from None
                try:
                    devminor = parse_number(block[337:345])
                except TarFormatError:
                    raise TarFormatError(
                        f"invalid device minor @ {header_offset}") from None
                rdev = ((devmajor << 8) | (devminor & 0xFF)
                        | ((devminor & ~0xFF) << 12))
            elif typeflag in ("1", "2") and link is None:
                link = _decode(_cstr(block[157:257]))

            data = b""
            if typeflag in ("0", "7") and size:
                data = self._read_exact(size, header_offset)
            elif size and self.stream.skip(size):
                raise TarFormatError(f"invalid tar @ {header_offset}")

            eh.xattrs.merge(self.global_header.xattrs)
            return TarEntry(
                path=path, typeflag=typeflag, mode=mode, uid=uid, gid=gid,
                size=size, mtime=mtime, mtime_nsec=mtime_nsec, link=link,
                rdev=rdev, devmajor=devmajor, devminor=devminor,
                xattrs=eh.xattrs, header_offset=header_offset,
                data_offset=data_offset, data=data)

    def next_entry(self) -> Optional[TarEntry]:
        """Return the next member, or None at the end of the archive."""
        if self._done:
            return None
        while True:
            result = self._parse_one()
            if result is _SKIPPED:
                continue
            if result is None:
                self._done = True
            return result

    def __iter__(self) -> Iterator[TarEntry]:
        while (entry := self.next_entry()) is not None:
            yield entry