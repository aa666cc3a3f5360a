import struct

import pytest


def make_box(tag, payload=b"", extended=False, size=None):
    """Build a box; size overrides the declared size for corrupt headers."""
    tag = tag.encode("latin-1") if isinstance(tag, str) else tag
    if extended:
        declared = size if size is not None else 16 + len(payload)
        return struct.pack(">I4sQ", 1, tag, declared) + payload
    declared = size if size is not None else 8 + len(payload)
    return struct.pack(">I4s", declared, tag) + payload


def chpl_payload(records, layout="version-1", version=None):
    """
    Build a chpl payload from (title, ticks) pairs.

    layout is one of "version-1", "standard" or "vendor-padded".
    """
    if layout == "version-1":
        header = struct.pack(">B3xI", 1 if version is None else version, len(records))
    elif layout == "standard":
        header = struct.pack(">B3xB", 0 if version is None else version, len(records))
    elif layout == "vendor-padded":
        header = struct.pack(">B3x4xB", 0 if version is None else version, len(records))
    else:
        raise ValueError(layout)

    body = b""
    for title, ticks in records:
        raw = title.encode("utf-8") if isinstance(title, str) else title
        body += struct.pack(">QB", ticks, len(raw)) + raw
    return header + body


def mvhd_payload(duration, timescale=1000, version=0):
    if version == 1:
        fields = struct.pack(">B3xQQIQ", 1, 0, 0, timescale, duration)
    else:
        fields = struct.pack(">B3xIIII", 0, 0, 0, timescale, duration)
    # rate, volume, reserved, matrix, pre_defined, next_track_id
    return fields + b"\x00" * 80


def make_container(chpl=None, mvhd=None, extra_udta=b""):
    """An ftyp + moov file with optional mvhd and udta/chpl children."""
    ftyp = make_box("ftyp", b"M4B \x00\x00\x02\x00isomM4B ")
    moov_children = b""
    if mvhd is not None:
        moov_children += make_box("mvhd", mvhd)
    if chpl is not None or extra_udta:
        udta_children = extra_udta
        if chpl is not None:
            udta_children += make_box("chpl", chpl)
        moov_children += make_box("udta", udta_children)
    return ftyp + make_box("moov", moov_children) + make_box("mdat", b"\x00" * 32)


@pytest.fixture
def scenario_records():
    return [("Intro", 0), ("Ch1", 50_000_000), ("Ch2", 120_000_000)]


@pytest.fixture
def scenario_file(tmp_path, scenario_records):
    path = tmp_path / "book.m4b"
    path.write_bytes(make_container(chpl=chpl_payload(scenario_records), mvhd=mvhd_payload(20_000)))
    return path
