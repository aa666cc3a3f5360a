import os
from typing import Union

import bitstring


Source = Union[str, os.PathLike, bytes, bytearray]


def open_stream(source: Source) -> bitstring.ConstBitStream:
    """
    Open an immutable bit stream over a file path or an in-memory buffer.

    Files are memory mapped by bitstring, so only the boxes that are actually
    visited get paged in. Raises OSError when the file cannot be read.
    """
    if isinstance(source, (bytes, bytearray)):
        return bitstring.ConstBitStream(bytes=bytes(source))

    path = os.fspath(source)
    # An empty file cannot be memory mapped
    if os.path.getsize(path) == 0:
        return bitstring.ConstBitStream()
    return bitstring.ConstBitStream(filename=path)


def source_name(source: Source) -> str:
    if isinstance(source, (bytes, bytearray)):
        return f"<{len(source)} byte buffer>"
    return os.fspath(source)


def format_timestamp(seconds: float) -> str:
    """
    Format seconds as HH:MM:SS.mmm.

    Args:
        seconds (float): Time in seconds

    Returns:
        str: Formatted timestamp
    """
    hours, remainder = divmod(seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{int(hours):02d}:{int(minutes):02d}:{seconds:06.3f}"


def format_duration(seconds: float) -> str:
    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"
