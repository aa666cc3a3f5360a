#!/usr/bin/env python3
import argparse
import logging
import math
import sys
from pathlib import Path

from m4bchapters import boxes
from m4bchapters.config import ConfigError, get_config
from m4bchapters.errors import ChapterExtractionError
from m4bchapters.parser import ChapterExtractor
from m4bchapters.providers import ContainerMetadataProvider
from m4bchapters.utils import format_timestamp, open_stream


def _print_boxes(path: Path):
    for depth, box in boxes.list_boxes(open_stream(path)):
        print(f"{'  ' * depth}{box.tag!r} size={box.size} at offset {box.full_range.lower}")


def _duration_arg(value: str) -> float:
    try:
        seconds = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid duration: {value!r}")
    if math.isnan(seconds) or seconds < 0:
        raise argparse.ArgumentTypeError(f"duration must be a non-negative number of seconds: {value!r}")
    return seconds


def main(argv=None):
    """
    Print the chapters of an M4B/M4A file.

    Returns:
        int: Exit code (0 for success, non-zero for errors)
    """
    parser = argparse.ArgumentParser(
        description="List the chapters of an M4B/M4A audiobook.",
    )
    parser.add_argument("file", type=Path, help="The M4B/M4A file to read.")
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to the TOML configuration file (default: m4bchapters.toml if present).",
    )
    parser.add_argument(
        "--duration",
        type=_duration_arg,
        help="Total duration in seconds, overriding the movie header.",
    )
    parser.add_argument("--title", help="Title for the single chapter used when the file has none.")
    parser.add_argument(
        "--list-boxes",
        action="store_true",
        help="Print the moov/udta box tree before the chapters.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable INFO level logging (overrides config file setting).",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable DEBUG level logging (overrides config file setting). Implies --verbose.",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

    try:
        config = get_config(args.config)
    except ConfigError as e:
        logging.error(f"Configuration Error: {e}")
        return 1

    log_level = getattr(logging, config["logging"]["level"])
    if args.debug:
        log_level = logging.DEBUG
    elif args.verbose:
        log_level = logging.INFO

    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)-8s] %(name)-25s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger = logging.getLogger(__name__)

    if args.list_boxes:
        try:
            _print_boxes(args.file)
        except OSError as e:
            logger.error(f"Could not read {args.file}: {e}")
            return 1

    extractor = ChapterExtractor(ContainerMetadataProvider(), config)
    try:
        result = extractor.extract(args.file, duration=args.duration, title=args.title)
    except ChapterExtractionError as e:
        logger.error(str(e))
        return 1

    print(f"Strategy: {result.strategy.value}")
    if result.layout is not None:
        print(f"chpl layout: {result.layout.value}")
    for chapter in result.chapters:
        print(
            f"{chapter.index + 1:3d}  {format_timestamp(chapter.start_seconds)} - "
            f"{format_timestamp(chapter.end_seconds)}  ({chapter.formatted_duration})  {chapter.title}"
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
