class ChapterParseError(Exception):
    """Base class for conditions met while parsing a container for chapters."""


class MalformedBox(ChapterParseError):
    """A box header declares a size that does not fit its enclosing range."""

    def __init__(self, offset: int, size: int, message: str):
        super().__init__(f"{message} (box at offset {offset}, size {size})")
        self.offset = offset
        self.size = size


class UnsupportedChplLayout(ChapterParseError):
    """The chpl payload is too short to hold a version, flags and a record count."""


class InvalidChapterCount(ChapterParseError):
    def __init__(self, count: int):
        super().__init__(f"Invalid chapter count: {count}")
        self.count = count


class TruncatedRecord(ChapterParseError):
    def __init__(self, index: int, message: str):
        super().__init__(f"{message} at chapter {index}")
        self.index = index


class ChapterExtractionError(Exception):
    """No tier produced chapters and no duration is known for the file."""
