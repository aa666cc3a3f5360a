from dataclasses import dataclass, replace
from typing import List, Optional, Sequence

from m4bchapters.utils import format_duration


@dataclass(frozen=True)
class ChapterRecord:
    """A (title, start) pair as stored in the container, before end times are known."""

    title: str
    start_seconds: float
    index: int


@dataclass(frozen=True)
class Chapter:
    title: str
    start_seconds: float
    end_seconds: float
    index: int

    @property
    def duration(self) -> float:
        return self.end_seconds - self.start_seconds

    @property
    def formatted_duration(self) -> str:
        return format_duration(self.duration)


def _chapter_ending_at(record: ChapterRecord, end_seconds: float) -> Chapter:
    # Out of order timestamps give a zero length chapter, never a negative one
    return Chapter(
        title=record.title,
        start_seconds=record.start_seconds,
        end_seconds=max(end_seconds, record.start_seconds),
        index=record.index,
    )


def assemble_chapters(records: Sequence[ChapterRecord], total_duration: Optional[float] = None) -> List[Chapter]:
    """
    Give each record an end time.

    Every chapter ends where the next one starts. The last one ends at
    total_duration, or at its own start when the duration is not known yet;
    see resolve_final_end_time.
    """
    chapters = []
    for position, record in enumerate(records):
        if position + 1 < len(records):
            end_seconds = records[position + 1].start_seconds
        elif total_duration is not None:
            end_seconds = total_duration
        else:
            end_seconds = record.start_seconds
        chapters.append(_chapter_ending_at(record, end_seconds))
    return chapters


def resolve_final_end_time(chapters: Sequence[Chapter], total_duration: float) -> List[Chapter]:
    """Return a new list whose last chapter ends at total_duration."""
    if not chapters:
        return []
    last = chapters[-1]
    resolved = replace(last, end_seconds=max(total_duration, last.start_seconds))
    return list(chapters[:-1]) + [resolved]
