import gzip
import io
import stat
import tarfile

import pytest

from erokit.iostream import Decoder, IOStream
from erokit.tarheader import (
    PaxHeader,
    TarFormatError,
    TarReader,
    XattrList,
    base64_decode,
    parse_number,
    parse_octal,
    parse_pax_header,
    verify_checksum,
)

MTIME = 1600000000


def _info(name, type=tarfile.REGTYPE, size=0, mode=0o644, **attrs):
    info = tarfile.TarInfo(name)
    info.type = type
    info.size = size
    info.mode = mode
    info.mtime = MTIME
    for key, value in attrs.items():
        setattr(info, key, value)
    return info


def _archive(members, fmt=tarfile.USTAR_FORMAT, pax_headers=None):
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w", format=fmt,
                      pax_headers=pax_headers) as tf:
        for info, data in members:
            tf.addfile(info, io.BytesIO(data) if data else None)
    return buf.getvalue()


def _entries(raw):
    return list(TarReader(io.BytesIO(raw)))


def _record(kv: bytes) -> bytes:
    for digits in range(1, 10):
        total = digits + 1 + len(kv) + 1
        if len(str(total)) == digits:
            return str(total).encode() + b" " + kv + b"\n"
    raise AssertionError("record too long")


def test_parse_octal_values():
    assert parse_octal(b"0000644\x00") == 0o644
    assert parse_octal(b"0000017 ") == 0o17
    assert parse_octal(b"\x00" * 8) == 0


def test_parse_octal_rejects_garbage():
    with pytest.raises(TarFormatError):
        parse_octal(b"12x45\x00\x00\x00")


def test_parse_number_base256_round_trip():
    value = 8 ** 12 + 77
    field = b"\x80" + value.to_bytes(11, "big")
    assert parse_number(field) == value


def test_parse_number_falls_back_to_octal():
    assert parse_number(b"0000755\x00") == 0o755


def test_base64_decode_pinned():
    assert base64_decode("AA==") == b"\x00"


def test_base64_decode_rejects_invalid_character():
    with pytest.raises(TarFormatError):
        base64_decode("A/AA")


def test_base64_decode_rejects_leftover_bits():
    with pytest.raises(TarFormatError):
        base64_decode("B")


def test_xattrlist_insert_replace_and_skip():
    xattrs = XattrList()
    xattrs.insert("user.a", b"1")
    xattrs.insert(b"user.b", b"2")
    xattrs.insert("user.a", b"3")
    xattrs.insert("user.b", b"4", skip=True)
    assert xattrs.items() == [("user.a", b"3"), ("user.b", b"2")]
    assert len(xattrs) == 2
    assert "user.b" in xattrs


def test_xattrlist_merge_keeps_existing_values():
    own = XattrList([("user.x", b"mine")])
    other = XattrList([("user.x", b"theirs"), ("user.y", b"new")])
    own.merge(other)
    assert own.items() == [("user.x", b"mine"), ("user.y", b"new")]


def test_parse_pax_header_fields():
    data = (_record(b"path=dir/sub///") + _record(b"linkpath=target")
            + _record(b"size=42") + _record(b"uid=1001")
            + _record(b"gid=1002") + _record(b"mtime=12.5"))
    header = parse_pax_header(data)
    assert header.path == "dir/sub"
    assert header.link == "target"
    assert header.size == 42
    assert header.uid == 1001
    assert header.gid == 1002
    assert header.mtime == 12
    assert header.mtime_nsec == 5


def test_parse_pax_header_updates_given_header():
    header = PaxHeader(uid=7)
    result = parse_pax_header(_record(b"gid=9"), header)
    assert result is header
    assert (header.uid, header.gid) == (7, 9)


def test_parse_pax_header_xattrs():
    data = (_record(b"SCHILY.xattr.user.k=a=b")
            + _record(b"unknown.keyword=ignored"))
    header = parse_pax_header(data)
    assert header.xattrs.items() == [("user.k", b"a=b")]
    assert header.path is None


def test_parse_pax_header_libarchive_xattr():
    header = parse_pax_header(_record(b"LIBARCHIVE.xattr.user.z=AA=="))
    assert header.xattrs.items() == [("user.z", b"\x00")]


@pytest.mark.parametrize("data", [
    _record(b"size=12x"),
    b"5 a=b",
    b"99 path=x\n",
    _record(b"noequals"),
    b"x path=y\n",
])
def test_parse_pax_header_errors(data):
    with pytest.raises(TarFormatError):
        parse_pax_header(data)


def test_verify_checksum():
    raw = _archive([(_info("a.txt", size=5), b"hello")])
    block = bytearray(raw[:512])
    assert verify_checksum(block) is True
    block[0] = ord("b")
    assert verify_checksum(block) is False


def test_verify_checksum_invalid_field():
    raw = _archive([(_info("a.txt", size=5), b"hello")])
    block = bytearray(raw[:512])
    block[148:156] = b"zzzzzzzz"
    with pytest.raises(TarFormatError):
        verify_checksum(block)


def test_verify_checksum_wrong_length():
    with pytest.raises(ValueError):
        verify_checksum(b"\x00" * 100)


def test_reader_basic_members():
    raw = _archive([
        (_info("d", type=tarfile.DIRTYPE, mode=0o755), None),
        (_info("d/a.txt", size=5, uid=1000, gid=100), b"hello"),
        (_info("d/link", type=tarfile.SYMTYPE, linkname="a.txt", mode=0o777), None),
    ])
    entries = _entries(raw)
    assert [e.path for e in entries] == ["d", "d/a.txt", "d/link"]
    directory, regular, symlink = entries
    assert stat.S_ISDIR(directory.mode)
    assert stat.S_IMODE(directory.mode) == 0o755
    assert stat.S_ISREG(regular.mode)
    assert regular.data == b"hello"
    assert (regular.uid, regular.gid, regular.size) == (1000, 100, 5)
    assert regular.mtime == MTIME
    assert regular.data_offset == regular.header_offset + 512
    assert stat.S_ISLNK(symlink.mode)
    assert symlink.link == "a.txt"


def test_reader_ustar_prefix_path():
    name = "p" * 120 + "/file"
    entries = _entries(_archive([(_info(name, size=1), b"x")]))
    assert entries[0].path == name


def test_reader_gnu_long_names_and_base256():
    name = "d/" + "x" * 150
    target = "t/" + "y" * 150
    uid = 8 ** 8 + 5
    raw = _archive([
        (_info(name, size=2, uid=uid), b"ab"),
        (_info("hl", type=tarfile.LNKTYPE, linkname=target), None),
    ], fmt=tarfile.GNU_FORMAT)
    first, second = _entries(raw)
    assert first.path == name
    assert first.uid == uid
    assert first.data == b"ab"
    assert second.link == target


def test_reader_hard_link():
    raw = _archive([
        (_info("a.txt", size=3), b"abc"),
        (_info("b.txt", type=tarfile.LNKTYPE, linkname="a.txt"), None),
    ])
    entries = _entries(raw)
    assert entries[1].typeflag == "1"
    assert entries[1].link == "a.txt"
    assert stat.S_ISREG(entries[1].mode)


def test_reader_char_device():
    raw = _archive([(_info("null", type=tarfile.CHRTYPE,
                           devmajor=1, devminor=3), None)])
    (entry,) = _entries(raw)
    assert stat.S_ISCHR(entry.mode)
    assert (entry.devmajor, entry.devminor) == (1, 3)
    assert entry.rdev == 0x103


def test_reader_pax_xattrs_with_global():
    own = _info("f", size=1)
    own.pax_headers = {"SCHILY.xattr.user.comment": "hello"}
    override = _info("g", size=1)
    override.pax_headers = {"SCHILY.xattr.user.global": "mine"}
    raw = _archive([(own, b"1"), (override, b"2")], fmt=tarfile.PAX_FORMAT,
                   pax_headers={"SCHILY.xattr.user.global": "g"})
    first, second = _entries(raw)
    assert first.xattrs.items() == [("user.comment", b"hello"),
                                    ("user.global", b"g")]
    assert second.xattrs.items() == [("user.global", b"mine")]


def test_reader_skips_unknown_type_and_volume_header():
    reader = TarReader(io.BytesIO(_archive([
        (_info("myvol", type=tarfile.GNUTYPE_VOLHDR if hasattr(tarfile, "GNUTYPE_VOLHDR") else b"V"), None),
        (_info("odd", type=b"Z"), None),
        (_info("a", size=1), b"q"),
    ])))
    entries = list(reader)
    assert [e.path for e in entries] == ["a"]
    assert reader.volume_name == "myvol"
    assert reader.next_entry() is None


def test_reader_checksum_mismatch():
    raw = bytearray(_archive([(_info("a.txt", size=5), b"hello")]))
    raw[0] = ord("b")
    with pytest.raises(TarFormatError):
        _entries(bytes(raw))


def test_reader_truncated_data():
    raw = _archive([(_info("a.txt", size=5), b"hello")])
    with pytest.raises(TarFormatError):
        _entries(raw[:512])


def test_reader_missing_end_blocks():
    raw = _archive([(_info("a.txt", size=5), b"hello")])
    reader = TarReader(io.BytesIO(raw[:1024]))
    assert reader.next_entry().data == b"hello"
    with pytest.raises(TarFormatError):
        reader.next_entry()


def test_reader_gzip_stream():
    raw = _archive([(_info("a.txt", size=5), b"hello"),
                    (_info("b.txt", size=3), b"bye")])
    plain = [(e.path, e.data) for e in _entries(raw)]
    stream = IOStream(io.BytesIO(gzip.compress(raw)), Decoder.GZIP)
    packed = [(e.path, e.data) for e in TarReader(stream)]
    assert packed == plain
    assert plain[1] == ("b.txt", b"bye")