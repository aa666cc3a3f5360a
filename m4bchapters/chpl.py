"""
Decoder for the Nero style 'chpl' chapter list box found in moov/udta.

Layout after the box header::

    version (1) + flags (3)
    [vendor pad (4)]              some version 0 writers
    count (4 for version 1, else 1)
    count * (start (8, 100ns ticks) + title length (1) + title (UTF-8))

There is no flag marking the vendor pad, so version 0 payloads are told
apart by peeking at the first count byte. A leading zero is taken to start
the pad; a standard payload whose count byte really is zero would be
rejected anyway.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Tuple

import bitstring

from m4bchapters.boxes import Box
from m4bchapters.chapters import ChapterRecord
from m4bchapters.errors import InvalidChapterCount, TruncatedRecord, UnsupportedChplLayout


logger = logging.getLogger(__name__)

# Record start times are in 100 nanosecond units
TICKS_PER_SECOND = 10_000_000

# Counts at or above this are treated as garbage rather than chapters
MAX_CHAPTER_COUNT = 10000

VERSION_AND_FLAGS_SIZE = 4
VENDOR_PAD_SIZE = 4
RECORD_HEADER_SIZE = 9


class ChplLayout(enum.Enum):
    VERSION_1 = "version-1"
    STANDARD = "standard"
    VENDOR_PADDED = "vendor-padded"


@dataclass(frozen=True)
class DecodedChapterList:
    records: Tuple[ChapterRecord, ...]
    layout: ChplLayout


def _remaining(stream: bitstring.ConstBitStream, end: int) -> int:
    return end - stream.bytepos


def _read_count(stream: bitstring.ConstBitStream, version: int, end: int) -> Tuple[int, ChplLayout]:
    if version == 1:
        if _remaining(stream, end) < 4:
            raise UnsupportedChplLayout("Version 1 chpl is too short for its chapter count")
        return stream.read("uint:32"), ChplLayout.VERSION_1

    if _remaining(stream, end) >= VENDOR_PAD_SIZE + 1 and stream.peek("uint:8") == 0:
        stream.bytepos += VENDOR_PAD_SIZE
        return stream.read("uint:8"), ChplLayout.VENDOR_PADDED

    if _remaining(stream, end) < 1:
        raise UnsupportedChplLayout("chpl is too short for its chapter count")
    return stream.read("uint:8"), ChplLayout.STANDARD


def _read_record(stream: bitstring.ConstBitStream, index: int, end: int) -> ChapterRecord:
    if _remaining(stream, end) < RECORD_HEADER_SIZE:
        raise TruncatedRecord(index, "Unexpected end of data")

    ticks, title_length = stream.readlist("uint:64, uint:8")
    if _remaining(stream, end) < title_length:
        raise TruncatedRecord(index, "Title extends beyond box")

    raw_title = stream.read(f"bytes:{title_length}") if title_length else b""
    try:
        title = raw_title.decode("utf-8")
    except UnicodeDecodeError:
        title = f"Chapter {index + 1}"

    return ChapterRecord(title=title, start_seconds=ticks / TICKS_PER_SECOND, index=index)


def decode_chpl(stream: bitstring.ConstBitStream, box: Box) -> DecodedChapterList:
    """
    Decode the records of a located chpl box.

    Raises UnsupportedChplLayout when the payload cannot hold a count and
    InvalidChapterCount for a count of 0 or of MAX_CHAPTER_COUNT and above.
    A truncated record ends decoding; the records before it are kept.
    """
    payload = box.payload_range
    stream.bytepos = payload.lower

    if payload.size < VERSION_AND_FLAGS_SIZE + 1:
        raise UnsupportedChplLayout(f"chpl payload of {payload.size} bytes is too short")

    version = stream.read("uint:8")
    stream.read("bits:24")

    count, layout = _read_count(stream, version, payload.upper)
    if count == 0 or count >= MAX_CHAPTER_COUNT:
        raise InvalidChapterCount(count)
    logger.debug(f"chpl version {version}, {layout.value} layout, {count} chapter(s)")

    records = []
    for index in range(count):
        try:
            records.append(_read_record(stream, index, payload.upper))
        except TruncatedRecord as e:
            logger.warning(f"{e}; keeping {len(records)} of {count} chapter(s)")
            break

    return DecodedChapterList(records=tuple(records), layout=layout)
