import bitstring
import pytest

from m4bchapters.boxes import (
    ByteRange,
    MovieHeader,
    find_box,
    find_path,
    iter_boxes,
    list_boxes,
    read_movie_duration,
    stream_range,
)
from m4bchapters.errors import MalformedBox

from conftest import chpl_payload, make_box, make_container, mvhd_payload


def stream_of(data):
    return bitstring.ConstBitStream(bytes=data)


class TestFindBox:
    """Tests for locating boxes at one level."""

    def test_finds_first_match(self):
        data = make_box("free", b"abc") + make_box("moov", b"1") + make_box("moov", b"22")
        box = find_box("moov", stream_of(data))

        assert box is not None
        assert box.tag == "moov"
        assert box.full_range == ByteRange(11, 20)
        assert box.header_size == 8
        assert box.payload_range == ByteRange(19, 20)

    def test_missing_tag_returns_none(self):
        data = make_box("ftyp", b"M4B ") + make_box("mdat", b"\x00" * 8)
        assert find_box("moov", stream_of(data)) is None

    def test_extended_size(self):
        data = make_box("ftyp", b"M4B ") + make_box("moov", b"payload", extended=True)
        box = find_box("moov", stream_of(data))

        assert box.header_size == 16
        assert box.size == 16 + len(b"payload")
        assert box.payload_range.size == len(b"payload")

    def test_zero_size_extends_to_end_of_range(self):
        data = make_box("ftyp", b"M4B ") + make_box("mdat", b"\x00" * 20, size=0)
        box = find_box("mdat", stream_of(data))

        assert box.full_range == ByteRange(12, len(data))

    def test_does_not_recurse(self):
        data = make_box("moov", make_box("udta", b""))
        assert find_box("udta", stream_of(data)) is None

    def test_searches_only_inside_range(self):
        inner = make_box("udta", make_box("chpl", b"x"))
        data = make_box("moov", inner) + make_box("chpl", b"y")
        stream = stream_of(data)
        moov = find_box("moov", stream)
        udta = find_box("udta", stream, moov.payload_range)
        chpl = find_box("chpl", stream, udta.payload_range)

        assert chpl.full_range.upper <= udta.full_range.upper
        assert chpl.payload_range == ByteRange(24, 25)

    def test_trailing_bytes_shorter_than_header_are_ignored(self):
        data = make_box("ftyp", b"M4B ") + b"\x00\x00\x00"
        assert find_box("moov", stream_of(data)) is None


class TestMalformedBoxes:
    """A corrupt size aborts the scan of that level."""

    def test_oversized_box_aborts_scan(self):
        data = make_box("free", b"", size=1000) + make_box("moov", b"")
        stream = stream_of(data)

        for tag in ("free", "moov", "chpl"):
            assert find_box(tag, stream) is None

    def test_size_smaller_than_header(self):
        data = make_box("free", b"", size=4) + make_box("moov", b"")
        assert find_box("moov", stream_of(data)) is None

    def test_extended_size_smaller_than_header(self):
        data = make_box("moov", b"abcd", extended=True, size=12)
        assert find_box("moov", stream_of(data)) is None

    def test_extended_header_cut_short(self):
        data = b"\x00\x00\x00\x01moov\x00\x00"
        assert find_box("moov", stream_of(data)) is None

    def test_huge_extended_size_is_not_infinite(self):
        data = make_box("moov", b"", extended=True, size=2 ** 64 - 1)
        assert find_box("moov", stream_of(data)) is None

    def test_iter_boxes_raises(self):
        data = make_box("ftyp", b"M4B ") + make_box("moov", b"", size=99)
        boxes = iter_boxes(stream_of(data))

        assert next(boxes).tag == "ftyp"
        with pytest.raises(MalformedBox) as excinfo:
            next(boxes)
        assert excinfo.value.offset == 12
        assert excinfo.value.size == 99

    def test_range_past_stream_is_rejected(self):
        with pytest.raises(ValueError):
            list(iter_boxes(stream_of(b"\x00" * 8), ByteRange(0, 16)))

    @pytest.mark.parametrize("data", [b"", b"\xff" * 7, b"\xff" * 64, bytes(range(256)), b"\x00\x00\x00\x01" * 16])
    def test_arbitrary_bytes_terminate(self, data):
        stream = stream_of(data)
        assert find_path(("moov", "udta", "chpl"), stream) is None
        assert list(list_boxes(stream)) is not None


class TestFindPath:
    def test_nested_lookup(self):
        data = make_container(chpl=chpl_payload([("One", 0)]))
        box = find_path(("moov", "udta", "chpl"), stream_of(data))

        assert box.tag == "chpl"

    def test_missing_link(self):
        data = make_container(mvhd=mvhd_payload(1000))
        assert find_path(("moov", "udta", "chpl"), stream_of(data)) is None


class TestListBoxes:
    def test_lists_tree(self):
        data = make_container(chpl=chpl_payload([("One", 0)]), mvhd=mvhd_payload(1000))
        listed = [(depth, box.tag) for depth, box in list_boxes(stream_of(data))]

        assert listed == [
            (0, "ftyp"),
            (0, "moov"),
            (1, "mvhd"),
            (1, "udta"),
            (2, "chpl"),
            (0, "mdat"),
        ]

    def test_caps_boxes_per_level(self):
        data = make_box("free") * 60
        assert len(list(list_boxes(stream_of(data)))) == 50

    def test_stops_at_corrupt_box(self):
        data = make_box("ftyp", b"M4B ") + make_box("moov", b"", size=500)
        assert [box.tag for _, box in list_boxes(stream_of(data))] == ["ftyp"]


class TestMovieHeader:
    def test_version_0(self):
        data = make_container(mvhd=mvhd_payload(42_000, timescale=1000))
        stream = stream_of(data)
        header = MovieHeader(stream, find_path(("moov", "mvhd"), stream))

        assert header.version == 0
        assert header.timescale == 1000
        assert header.duration_seconds == 42.0

    def test_version_1(self):
        data = make_container(mvhd=mvhd_payload(44100 * 90, timescale=44100, version=1))
        assert read_movie_duration(stream_of(data)) == 90.0

    def test_zero_timescale(self):
        data = make_container(mvhd=mvhd_payload(1000, timescale=0))
        assert read_movie_duration(stream_of(data)) is None

    def test_truncated(self):
        data = make_box("moov", make_box("mvhd", b"\x00\x00\x00\x00\x00\x00"))
        assert read_movie_duration(stream_of(data)) is None

    def test_unknown_version(self):
        data = make_box("moov", make_box("mvhd", b"\x07" + b"\x00" * 40))
        assert read_movie_duration(stream_of(data)) is None

    def test_missing(self):
        assert read_movie_duration(stream_of(make_container())) is None


def test_stream_range():
    assert stream_range(stream_of(b"\x00" * 12)) == ByteRange(0, 12)


def test_byte_range_rejects_inverted_bounds():
    with pytest.raises(ValueError):
        ByteRange(5, 4)
