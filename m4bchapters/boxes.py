import logging
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence, Tuple

import bitstring

from m4bchapters.errors import MalformedBox


logger = logging.getLogger(__name__)

HEADER_SIZE = 8
EXTENDED_HEADER_SIZE = 16

# Boxes listed per level by list_boxes
MAX_LISTED_BOXES = 50

CONTAINER_TAGS = ("moov", "udta")


@dataclass(frozen=True)
class ByteRange:
    """Half-open [lower, upper) byte offsets into a stream."""

    lower: int
    upper: int

    def __post_init__(self):
        if not 0 <= self.lower <= self.upper:
            raise ValueError(f"Invalid byte range [{self.lower}, {self.upper})")

    @property
    def size(self) -> int:
        return self.upper - self.lower


@dataclass(frozen=True)
class Box:
    tag: str
    full_range: ByteRange
    header_size: int

    @property
    def size(self) -> int:
        return self.full_range.size

    @property
    def payload_range(self) -> ByteRange:
        return ByteRange(self.full_range.lower + self.header_size, self.full_range.upper)


def stream_range(stream: bitstring.ConstBitStream) -> ByteRange:
    return ByteRange(0, stream.len // 8)


def read_box_header(stream: bitstring.ConstBitStream, offset: int, search_range: ByteRange) -> Box:
    """
    Read the header of the box starting at offset.

    Raises MalformedBox if the declared size is smaller than the header or
    places the end of the box beyond search_range.
    """
    stream.bytepos = offset
    size, tag = stream.readlist("uint:32, bytes:4")
    header_size = HEADER_SIZE

    if size == 1:
        if offset + EXTENDED_HEADER_SIZE > search_range.upper:
            raise MalformedBox(offset, size, "Extended size runs past the enclosing range")
        size = stream.read("uint:64")
        header_size = EXTENDED_HEADER_SIZE
    elif size == 0:
        size = search_range.upper - offset

    if size < header_size:
        raise MalformedBox(offset, size, "Box is smaller than its own header")
    if offset + size > search_range.upper:
        raise MalformedBox(offset, size, "Box extends past the enclosing range")

    # latin-1 maps every byte, so tags such as '\xa9nam' survive
    return Box(tag.decode("latin-1"), ByteRange(offset, offset + size), header_size)


def iter_boxes(stream: bitstring.ConstBitStream, search_range: Optional[ByteRange] = None) -> Iterator[Box]:
    """
    Yield the boxes at one level of search_range, in file order.

    Stops when fewer than a header's worth of bytes remain. A malformed box
    raises MalformedBox, ending the walk of this level.
    """
    if search_range is None:
        search_range = stream_range(stream)
    if search_range.upper > stream.len // 8:
        raise ValueError(f"Search range {search_range} exceeds stream of {stream.len // 8} bytes")

    offset = search_range.lower
    while offset + HEADER_SIZE <= search_range.upper:
        box = read_box_header(stream, offset, search_range)
        yield box
        offset = box.full_range.upper


def find_box(tag: str, stream: bitstring.ConstBitStream, search_range: Optional[ByteRange] = None) -> Optional[Box]:
    """
    Return the first box named tag directly inside search_range, or None.

    Does not descend into children; a corrupt or truncated level is reported
    as None.
    """
    try:
        for box in iter_boxes(stream, search_range):
            if box.tag == tag:
                logger.debug(f"Found '{tag}' at {box.full_range.lower}, size {box.size}")
                return box
    except MalformedBox as e:
        logger.warning(f"Aborting scan for '{tag}': {e}")
        return None

    logger.debug(f"No '{tag}' box found")
    return None


def find_path(path: Sequence[str], stream: bitstring.ConstBitStream, search_range: Optional[ByteRange] = None) -> Optional[Box]:
    """Follow a nested path of tags, e.g. ("moov", "udta", "chpl")."""
    box = None
    for tag in path:
        box = find_box(tag, stream, search_range)
        if box is None:
            return None
        search_range = box.payload_range
    return box


def list_boxes(
    stream: bitstring.ConstBitStream,
    search_range: Optional[ByteRange] = None,
    depth: int = 0,
    containers: Sequence[str] = CONTAINER_TAGS,
) -> Iterator[Tuple[int, Box]]:
    """Yield (depth, box) for the box tree, descending into the container tags."""
    try:
        for count, box in enumerate(iter_boxes(stream, search_range)):
            if count == MAX_LISTED_BOXES:
                break
            yield depth, box
            if box.tag in containers:
                yield from list_boxes(stream, box.payload_range, depth + 1, containers)
    except MalformedBox as e:
        logger.debug(f"Stopped listing at depth {depth}: {e}")


class MovieHeader:
    """
    Movie Header Box
    """

    def __init__(self, stream: bitstring.ConstBitStream, box: Box):
        payload = box.payload_range
        stream.bytepos = payload.lower

        if payload.size < 4:
            raise MalformedBox(box.full_range.lower, box.size, "mvhd is missing its version")
        self.version = stream.read("uint:8")
        self.flags = stream.read("bits:24")

        if self.version == 1:
            fields = "uint:64, uint:64, uint:32, uint:64"
        elif self.version == 0:
            fields = "uint:32, uint:32, uint:32, uint:32"
        else:
            raise MalformedBox(box.full_range.lower, box.size, f"Unknown mvhd version {self.version}")

        needed = 28 if self.version == 1 else 16
        if payload.size - 4 < needed:
            raise MalformedBox(box.full_range.lower, box.size, "mvhd is truncated")

        # Times are seconds since 1904-01-01 UTC
        self.creation_time, self.modification_time, self.timescale, self.duration = stream.readlist(fields)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.timescale == 0:
            return None
        return self.duration / self.timescale


def read_movie_duration(stream: bitstring.ConstBitStream) -> Optional[float]:
    """Return the presentation duration in seconds from moov/mvhd, or None."""
    box = find_path(("moov", "mvhd"), stream)
    if box is None:
        return None

    try:
        header = MovieHeader(stream, box)
    except MalformedBox as e:
        logger.warning(f"Ignoring movie header: {e}")
        return None

    return header.duration_seconds
