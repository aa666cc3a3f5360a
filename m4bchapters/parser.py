import abc
import enum
import logging
import math
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

import bitstring

from m4bchapters import boxes, chpl
from m4bchapters.chapters import Chapter, assemble_chapters, resolve_final_end_time
from m4bchapters.config import default_config
from m4bchapters.errors import ChapterExtractionError, ChapterParseError
from m4bchapters.utils import Source, open_stream, source_name


CHPL_PATH = ("moov", "udta", "chpl")


class Strategy(enum.Enum):
    PLATFORM = "platform"
    DIRECT_PARSE = "direct-parse"
    SINGLE_CHAPTER_FALLBACK = "single-chapter-fallback"


@dataclass(frozen=True)
class PlatformChapterGroup:
    """A natively tagged chapter as reported by the host's metadata API."""

    title: str
    start_seconds: float
    end_seconds: float
    locale: Optional[str] = None


class PlatformChapterProvider(abc.ABC):
    """
    Metadata the host platform already knows about a file.

    The extractor only consumes this; hosts plug in their own media
    framework behind it.
    """

    @abc.abstractmethod
    def chapter_groups(self, source: Source, locales: Sequence[str]) -> List[PlatformChapterGroup]:
        """Return the natively tagged chapters for the best matching locale, in order."""

    @abc.abstractmethod
    def duration(self, source: Source) -> Optional[float]:
        """Return the total media duration in seconds, if known."""

    def title(self, source: Source) -> Optional[str]:
        return None


@dataclass(frozen=True)
class ExtractionResult:
    chapters: Tuple[Chapter, ...]
    strategy: Strategy
    # Which chpl layout was assumed, for diagnosing the version 0 heuristic
    layout: Optional[chpl.ChplLayout] = None

    def resolve_final_end_time(self, total_duration: float) -> "ExtractionResult":
        return replace(self, chapters=tuple(resolve_final_end_time(self.chapters, total_duration)))


class ChapterExtractor:
    """
    Find chapter boundaries for an M4B/M4A file.

    Tiers are tried in order and the first one producing chapters wins:

    1. chapters the platform provider already knows about
    2. the chpl box, parsed directly from the file
    3. a single chapter covering the whole file
    """

    def __init__(self, provider: PlatformChapterProvider, config: Optional[Dict[str, Any]] = None):
        self.provider = provider
        self.config = config if config is not None else default_config()
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def fallback_title(self) -> str:
        return self.config["extraction"]["fallback_title"]

    @property
    def preferred_locales(self) -> List[str]:
        return self.config["extraction"]["preferred_locales"]

    def extract(self, source: Source, duration: Optional[float] = None, title: Optional[str] = None) -> ExtractionResult:
        """
        Run the three tiers against source, a file path or an in-memory buffer.

        duration and title override what the provider reports. Raises
        ChapterExtractionError when no tier finds chapters and the duration is
        unknown, since then not even a whole-file chapter can be built.
        """
        name = source_name(source)

        chapters = self._platform_chapters(source)
        if chapters:
            self.logger.info(f"Using {len(chapters)} platform chapter(s) for {name}")
            return ExtractionResult(chapters=tuple(chapters), strategy=Strategy.PLATFORM)

        duration = self._usable_duration(duration, "caller")
        if duration is None:
            duration = self._usable_duration(self._provider_duration(source), "provider")

        result = self._parse_chpl(source, duration)
        if result is not None:
            self.logger.info(f"Parsed {len(result.chapters)} chapter(s) from chpl in {name}")
            return result

        if duration is None:
            raise ChapterExtractionError(f"Cannot extract chapters from {name}: no chapters found and duration unknown")

        title = title or self._provider_title(source) or self.fallback_title
        self.logger.info(f"No chapters in {name}; using a single chapter '{title}'")
        chapter = Chapter(title=title, start_seconds=0.0, end_seconds=duration, index=0)
        return ExtractionResult(chapters=(chapter,), strategy=Strategy.SINGLE_CHAPTER_FALLBACK)

    def _platform_chapters(self, source: Source) -> List[Chapter]:
        try:
            groups = self.provider.chapter_groups(source, self.preferred_locales)
        except Exception as e:
            self.logger.warning(f"Platform chapter lookup failed for {source_name(source)}: {e}")
            return []
        return [
            Chapter(
                title=group.title,
                start_seconds=group.start_seconds,
                end_seconds=max(group.end_seconds, group.start_seconds),
                index=index,
            )
            for index, group in enumerate(groups)
        ]

    def _provider_duration(self, source: Source) -> Optional[float]:
        try:
            return self.provider.duration(source)
        except Exception as e:
            self.logger.warning(f"Duration lookup failed for {source_name(source)}: {e}")
            return None

    def _provider_title(self, source: Source) -> Optional[str]:
        try:
            return self.provider.title(source)
        except Exception as e:
            self.logger.warning(f"Title lookup failed for {source_name(source)}: {e}")
            return None

    def _usable_duration(self, duration: Optional[float], origin: str) -> Optional[float]:
        # Negative or NaN durations count as unknown
        if duration is None:
            return None
        if math.isnan(duration) or duration < 0:
            self.logger.warning(f"Ignoring invalid duration {duration} from {origin}")
            return None
        return duration

    def _parse_chpl(self, source: Source, duration: Optional[float]) -> Optional[ExtractionResult]:
        try:
            stream = open_stream(source)
            if self.config["logging"]["list_boxes"]:
                self._log_boxes(stream)

            box = boxes.find_path(CHPL_PATH, stream)
            if box is None:
                self.logger.debug("No moov/udta/chpl box")
                return None

            decoded = chpl.decode_chpl(stream, box)
        except OSError as e:
            self.logger.warning(f"Could not read {source_name(source)}: {e}")
            return None
        except ChapterParseError as e:
            self.logger.info(f"Ignoring chpl box: {e}")
            return None
        except bitstring.ReadError as e:
            self.logger.error(f"Read past the end of the chpl data: {e}")
            return None

        chapters = assemble_chapters(decoded.records, duration)
        if not chapters:
            return None
        return ExtractionResult(chapters=tuple(chapters), strategy=Strategy.DIRECT_PARSE, layout=decoded.layout)

    def _log_boxes(self, stream: bitstring.ConstBitStream):
        for depth, box in boxes.list_boxes(stream):
            self.logger.debug(f"{'  ' * depth}'{box.tag}' size={box.size} at offset {box.full_range.lower}")
